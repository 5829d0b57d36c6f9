"""
Test Suite for the ETL Orchestrator.

Test organization:
    - unit/: Unit tests for individual components
    - integration/: Orchestrator and config-driven pipeline tests
    - fixtures/: Scripted test stages

Running Tests:
    pytest tests/                           # All tests
    pytest tests/unit/                      # Unit tests only
    pytest tests/integration/               # Integration tests only
"""
