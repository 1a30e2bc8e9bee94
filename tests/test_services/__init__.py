"""Tests for the async business services"""
