"""
CareWatch Test Suite
====================

This package contains all tests for the CareWatch dose schedule service.

Test Structure:
- test_tools/: Schedule helpers, change feed, messaging
- test_actions/: Evaluator, generator, marker, notifier, coordinator, countdown
- test_services/: Async business services
- test_api/: API endpoint tests for FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_actions/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "integration"
    pytest -m "not slow"
"""
