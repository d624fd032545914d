"""
DoseRight Test Suite
====================

Test Structure:
- test_tools/: pure scheduling, lifecycle and statistics helpers
- test_services/: business logic against an in-memory database
- test_api/: FastAPI routes for dashboard, hardware and auth
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "api"
"""
