"""
DoseSentinel Test Suite
=======================

This package contains all tests for the DoseSentinel adherence engine.

Test Structure:
- test_api/: API endpoint tests for FastAPI routes
- test_services/: Recorder, sweeper, analytics and medication service tests
- test_actions/: Guardian alert fan-out and reminder tests
- test_tools/: Clock, slot-window, notification and scheduler tests
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_services/

    # Skip the file-backed concurrency tests
    pytest -m "not integration"
"""
