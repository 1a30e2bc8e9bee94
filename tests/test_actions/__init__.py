"""Tests for the schedule engines"""
