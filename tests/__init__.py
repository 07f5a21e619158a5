"""
Test suite for the task lifecycle service.

This package contains:
- unit/: models, stores, service, events, validation and auth in isolation
- integration/: the HTTP API driven through the Flask test client
- smoke/: health checks against a running deployment (TEST_BASE_URL)
"""
