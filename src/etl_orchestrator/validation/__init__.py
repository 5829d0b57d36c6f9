"""
Validation Package - Record Validation.

This package provides declarative per-record validation for Validate
stages:
    - RecordValidator: applies FieldRules to a record
    - FieldRule: required / type / range / pattern / allowed values
"""

from etl_orchestrator.validation.record_validator import FieldRule, RecordValidator

__all__ = ["FieldRule", "RecordValidator"]
