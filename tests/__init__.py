"""
Provider Outreach Tests

Running Tests:
    # Unit tests (no network, Redis or Claude key needed)
    pytest tests/unit -v

    # Run one module
    pytest tests/unit/test_orchestrator.py -v

    # E2E smoke tests against a running service
    pytest tests/e2e/smoke_test_e2e.py -v

Test Coverage:
    - Free-window reconciliation
    - Offer scoring and ranking
    - Call attempt lifecycle, takeover and resolution
    - Mission orchestration and events
    - Dialogue oracle parsing
    - Directory, calendar and voice clients
    - Booking ledger
    - HTTP routes
"""
