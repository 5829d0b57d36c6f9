"""
Unit Tests - Testing Individual Components in Isolation.

Each component is tested in isolation with in-memory adapters.
Unit tests should be fast, deterministic, and focused.

Test Files:
    - test_rule_engine.py: Rule ordering, cascading, error isolation
    - test_data_mapper.py: Direct, constant and conditional mappings
    - test_error_handler.py: Classification and retry with backoff
    - test_config_loader.py: Configuration loading/validation
"""
