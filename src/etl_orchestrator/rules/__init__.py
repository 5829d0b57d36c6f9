"""
Rules Package - Priority-Ordered Business Rules.

This package provides the rule engine used by Transform stages:
    - RuleEngine: cascading evaluation of all matching rules per record
    - Rule: named, prioritized (predicate, action) pair
    - Conditions: Condition, AllOf, AnyOf, Not (record predicates)
    - Actions: SetField, RemoveField, CopyField, TransformField,
      ComputeField, Chain (record mutations)
    - Flow actions: SkipRecord, StopProcessing, LogMessage

Design Principles:
    - Predicates and actions are plain callables or value objects
    - Rules can be built entirely from configuration
"""

from etl_orchestrator.rules.actions import (
    Chain,
    ComputeField,
    CopyField,
    LogMessage,
    RemoveField,
    RuleSignal,
    SetField,
    SkipRecord,
    StopProcessing,
    TransformField,
)
from etl_orchestrator.rules.conditions import AllOf, AnyOf, Condition, Not, Operator, always
from etl_orchestrator.rules.rule_engine import Rule, RuleEngine, RuleStatistics

__all__ = [
    "Rule",
    "RuleEngine",
    "RuleStatistics",
    "Condition",
    "Operator",
    "AllOf",
    "AnyOf",
    "Not",
    "always",
    "SetField",
    "RemoveField",
    "CopyField",
    "TransformField",
    "ComputeField",
    "Chain",
    "SkipRecord",
    "StopProcessing",
    "LogMessage",
    "RuleSignal",
]
