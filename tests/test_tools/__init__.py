"""
Test Tools Package
Tests for the tools module (scheduler helpers, change feed, notification service)
"""
