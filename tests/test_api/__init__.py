"""Tests for the HTTP API"""
