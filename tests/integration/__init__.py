"""
Integration Tests - End-to-End Pipeline Tests.

These tests run whole pipelines through the Orchestrator using
in-memory connectors, so no external systems are needed.

Test Files:
    - test_orchestrator.py: Retry, error policy, cancellation, concurrency
    - test_pipeline_from_config.py: YAML-defined pipelines
"""
