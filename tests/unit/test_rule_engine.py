"""
Unit Tests for RuleEngine.

Test Aspects Covered:
    ✅ Business Logic: Priority order, cascading rules, every match fires
    ✅ Error Isolation: Failing rule affects only its record
    ✅ Edge Cases: Ties, overwrites, async predicates, cancellation
    ✅ Configuration: Rules built from RuleConfig
    ✅ Flow Control: StopProcessing, SkipRecord, LogMessage
    ✅ Statistics: Per-call counters next to lifetime totals
"""

from __future__ import annotations

import logging
from typing import List
from unittest.mock import Mock

import pytest

from etl_orchestrator.config.models import RuleConfig
from etl_orchestrator.domain.entities import DataRecord
from etl_orchestrator.domain.exceptions import CancellationRequested, RuleActionError
from etl_orchestrator.mapping.transforms import TransformRegistry
from etl_orchestrator.pipeline.cancellation import CancellationToken
from etl_orchestrator.rules.actions import (
    Chain,
    ComputeField,
    LogMessage,
    SetField,
    SkipRecord,
    StopProcessing,
    TransformField,
)
from etl_orchestrator.rules.conditions import Condition, Operator, always
from etl_orchestrator.rules.rule_engine import Rule, RuleEngine, RuleStatistics


def appender(label: str):
    def action(record: DataRecord) -> None:
        record.set("trace", record.get("trace", []) + [label])

    return action


class TestRuleOrdering:
    """Test priority ordering."""

    def test_ascending_priority_with_stable_ties(self) -> None:
        """
        SCENARIO: Rules added out of order, two share a priority
        EXPECTED: Ascending priority; equal priorities keep insertion order
        """
        # Arrange
        engine = RuleEngine()

        # Act
        engine.add_rule(Rule("late", 10, always, appender("late")))
        engine.add_rule(Rule("tie_a", 5, always, appender("tie_a")))
        engine.add_rule(Rule("early", 1, always, appender("early")))
        engine.add_rule(Rule("tie_b", 5, always, appender("tie_b")))

        # Assert
        assert [r.name for r in engine.rules] == ["early", "tie_a", "tie_b", "late"]

    @pytest.mark.asyncio
    async def test_every_matching_rule_fires_in_order(self) -> None:
        """
        SCENARIO: Three always-true rules
        EXPECTED: All three applied, in priority order
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("c", 3, always, appender("c")),
                Rule("a", 1, always, appender("a")),
                Rule("b", 2, always, appender("b")),
            ]
        )
        record = DataRecord()

        # Act
        result = await engine.apply(record)

        # Assert
        assert result.get("trace") == ["a", "b", "c"]


class TestCascading:
    """Test that later rules see earlier writes."""

    @pytest.mark.asyncio
    async def test_later_rule_sees_earlier_write(self) -> None:
        """
        SCENARIO: R1 sets A; R2 matches on A and writes B
        EXPECTED: Both fire on the same record
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("set_a", 1, Condition("Total", Operator.GREATER_THAN, 100), SetField("A", True)),
                Rule("use_a", 2, Condition("A", Operator.EQUALS, True), SetField("B", "derived")),
            ]
        )
        records = [DataRecord(fields={"Total": 150}), DataRecord(fields={"Total": 50})]

        # Act
        result = await engine.process(records)

        # Assert
        assert result[0].get("B") == "derived"
        assert "A" not in result[1] and "B" not in result[1]

    @pytest.mark.asyncio
    async def test_premium_discount(self, customer_records: List[DataRecord]) -> None:
        """
        SCENARIO: Discount rule over five customers
        EXPECTED: Only Premium customers get Discount=0.1
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule(
                    "premium_discount",
                    1,
                    Condition("CustomerType", Operator.EQUALS, "Premium"),
                    SetField("Discount", 0.1),
                )
            ]
        )

        # Act
        result = await engine.process(customer_records)

        # Assert
        discounted = [r.get("Name") for r in result if r.has("Discount")]
        assert discounted == ["alice", "carol"]
        assert engine.get_statistics()["rules_fired"] == {"premium_discount": 2}

    @pytest.mark.asyncio
    async def test_overwrite_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """
        SCENARIO: Two rules write the same field
        EXPECTED: Last write wins; warning logged and counted
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("first", 1, always, SetField("Tier", "silver")),
                Rule("second", 2, always, SetField("Tier", "gold")),
            ]
        )

        # Act
        with caplog.at_level(logging.WARNING, logger="etl_orchestrator.rules.rule_engine"):
            record = await engine.apply(DataRecord())

        # Assert
        assert record.get("Tier") == "gold"
        assert "overwrote field 'Tier'" in caplog.text
        assert engine.get_statistics()["field_overwrites"] == 1


class TestErrorIsolation:
    """Test per-record failure handling."""

    @pytest.mark.asyncio
    async def test_failing_action_isolated_to_record(self) -> None:
        """
        SCENARIO: Action raises for one record out of three
        EXPECTED: Error on that record only; other rules still run on it
        """
        # Arrange
        def explode_on_bob(record: DataRecord) -> None:
            if record.get("Name") == "bob":
                raise ValueError("bad data")
            record.set("Checked", True)

        engine = RuleEngine(
            [
                Rule("check", 1, always, explode_on_bob),
                Rule("stamp", 2, always, SetField("Stamped", True)),
            ]
        )
        records = [DataRecord(fields={"Name": n}) for n in ("alice", "bob", "carol")]
        on_error = Mock()

        # Act
        result = await engine.process(records, on_error=on_error)

        # Assert
        assert len(result) == 3
        assert [r.has_errors for r in result] == [False, True, False]
        assert result[1].errors[0].error_type == "RuleActionError"
        assert all(r.get("Stamped") for r in result)
        assert not result[1].has("Checked")
        on_error.assert_called_once()
        error = on_error.call_args.args[1]
        assert isinstance(error, RuleActionError)
        assert error.rule_name == "check"

    @pytest.mark.asyncio
    async def test_failing_predicate_recorded(self) -> None:
        """
        SCENARIO: Predicate raises
        EXPECTED: Counted as an action error, record kept
        """
        # Arrange
        def bad_predicate(record: DataRecord) -> bool:
            raise KeyError("Total")

        engine = RuleEngine([Rule("broken", 1, bad_predicate, SetField("X", 1))])

        # Act
        record = await engine.apply(DataRecord())

        # Assert
        assert record.has_errors
        assert engine.get_statistics()["action_errors"] == 1


class TestAsyncRules:
    """Test async predicates and actions."""

    @pytest.mark.asyncio
    async def test_async_predicate_and_action(self) -> None:
        """
        SCENARIO: Predicate and action are coroutines
        EXPECTED: Awaited transparently
        """
        # Arrange
        async def is_large(record: DataRecord) -> bool:
            return record.get("Total", 0) > 100

        async def flag(record: DataRecord) -> None:
            record.set("Large", True)

        engine = RuleEngine([Rule("large", 1, is_large, flag)])

        # Act
        result = await engine.process([DataRecord(fields={"Total": 500})])

        # Assert
        assert result[0].get("Large") is True

    @pytest.mark.asyncio
    async def test_action_returning_record_replaces_it(self) -> None:
        """
        SCENARIO: Action returns a new DataRecord
        EXPECTED: Later rules and the output use the new record
        """
        # Arrange
        def replace(record: DataRecord) -> DataRecord:
            return DataRecord(fields={"Replaced": True}, id=record.id)

        engine = RuleEngine(
            [
                Rule("replace", 1, always, replace),
                Rule("stamp", 2, always, ComputeField("Seen", lambda r: r.get("Replaced"))),
            ]
        )

        # Act
        result = await engine.apply(DataRecord(fields={"Old": 1}))

        # Assert
        assert result.fields == {"Replaced": True, "Seen": True}


class TestManagement:
    """Test rule management."""

    def test_remove_and_clear(self) -> None:
        """
        SCENARIO: Remove a rule by name, then clear
        EXPECTED: Removal reported; engine empty after clear
        """
        # Arrange
        engine = RuleEngine([Rule("a", 1, always, SetField("x", 1)), Rule("b", 2, always, SetField("y", 1))])

        # Act & Assert
        assert engine.remove_rule("a") is True
        assert engine.remove_rule("a") is False
        assert [r.name for r in engine.rules] == ["b"]
        engine.clear()
        assert engine.rules == []

    @pytest.mark.asyncio
    async def test_disabled_rule_skipped(self) -> None:
        """
        SCENARIO: Disabled rule in the engine
        EXPECTED: Not applied
        """
        # Arrange
        engine = RuleEngine([Rule("off", 1, always, SetField("x", 1), enabled=False)])

        # Act
        record = await engine.apply(DataRecord())

        # Assert
        assert "x" not in record

    @pytest.mark.asyncio
    async def test_cancellation_between_records(self) -> None:
        """
        SCENARIO: Token already cancelled
        EXPECTED: CancellationRequested before any record is processed
        """
        # Arrange
        token = CancellationToken()
        token.cancel("stop")
        engine = RuleEngine([Rule("a", 1, always, SetField("x", 1))])
        records = [DataRecord()]

        # Act & Assert
        with pytest.raises(CancellationRequested):
            await engine.process(records, token)
        assert "x" not in records[0]


class TestRuleFromConfig:
    """Test declarative rules."""

    @pytest.mark.asyncio
    async def test_build_from_config(self) -> None:
        """
        SCENARIO: RuleConfig with 'any' match and mixed actions
        EXPECTED: Predicate and actions behave as declared
        """
        # Arrange
        config = RuleConfig.model_validate(
            {
                "name": "normalize_vip",
                "priority": 3,
                "match": "any",
                "conditions": [
                    {"field": "CustomerType", "operator": "equals", "value": "Premium"},
                    {"field": "Total", "operator": ">", "value": 1000},
                ],
                "actions": [
                    {"type": "set_field", "field": "Vip", "value": True},
                    {"type": "transform_field", "field": "Name", "transform": "upper"},
                    {"type": "copy_field", "field": "Spend", "source_field": "Total"},
                ],
            }
        )

        # Act
        rule = Rule.from_config(config, TransformRegistry())
        record = await RuleEngine([rule]).apply(
            DataRecord(fields={"CustomerType": "Standard", "Total": 5000, "Name": "dave"})
        )

        # Assert
        assert rule.priority == 3
        assert record.get("Vip") is True
        assert record.get("Name") == "DAVE"
        assert record.get("Spend") == 5000

    def test_unknown_transform_raises(self) -> None:
        """
        SCENARIO: transform_field names an unregistered transform
        EXPECTED: KeyError
        """
        # Arrange
        config = RuleConfig.model_validate(
            {
                "name": "bad",
                "actions": [{"type": "transform_field", "field": "x", "transform": "nope"}],
            }
        )

        # Act & Assert
        with pytest.raises(KeyError):
            Rule.from_config(config)

    @pytest.mark.asyncio
    async def test_flow_actions_from_config(self) -> None:
        """
        SCENARIO: RuleConfig with log_message, skip_record and stop_processing
        EXPECTED: Trial customers skipped with the configured reason
        """
        # Arrange
        skip_trials = Rule.from_config(
            RuleConfig.model_validate(
                {
                    "name": "skip_trials",
                    "priority": 1,
                    "conditions": [{"field": "CustomerType", "operator": "equals", "value": "Trial"}],
                    "actions": [
                        {"type": "log_message", "message": "Skipping {Name}", "level": "debug"},
                        {"type": "skip_record", "message": "trial account"},
                    ],
                }
            )
        )
        stop = Rule.from_config(
            RuleConfig.model_validate({"name": "stop", "priority": 2, "actions": [{"type": "stop_processing"}]})
        )
        engine = RuleEngine([skip_trials, stop, Rule("never", 3, always, SetField("x", 1))])
        records = [
            DataRecord(fields={"CustomerType": "Trial", "Name": "erin"}),
            DataRecord(fields={"CustomerType": "Premium", "Name": "alice"}),
        ]

        # Act
        result = await engine.process(records)

        # Assert
        assert [r.get("Name") for r in result] == ["alice"]
        assert "x" not in result[0]
        assert records[0].metadata["skip_reason"] == "trial account"

    def test_field_action_without_field_rejected(self) -> None:
        """
        SCENARIO: set_field action with no field
        EXPECTED: ValueError naming the rule
        """
        # Arrange
        config = RuleConfig.model_validate(
            {"name": "broken", "actions": [{"type": "set_field", "value": 1}]}
        )

        # Act & Assert
        with pytest.raises(ValueError, match="broken"):
            Rule.from_config(config)

    def test_log_message_needs_message(self) -> None:
        """
        SCENARIO: log_message action with no text
        EXPECTED: ValueError
        """
        # Arrange
        config = RuleConfig.model_validate({"name": "quiet", "actions": [{"type": "log_message"}]})

        # Act & Assert
        with pytest.raises(ValueError):
            Rule.from_config(config)

    @pytest.mark.asyncio
    async def test_transform_field_with_arguments(self) -> None:
        """
        SCENARIO: transform_field using a parameterised transform
        EXPECTED: Factory built with transform_args
        """
        # Arrange
        config = RuleConfig.model_validate(
            {
                "name": "to_cents",
                "actions": [
                    {
                        "type": "transform_field",
                        "field": "Total",
                        "transform": "multiply",
                        "transform_args": {"factor": 100},
                    }
                ],
            }
        )

        # Act
        record = await RuleEngine([Rule.from_config(config)]).apply(DataRecord(fields={"Total": 12.5}))

        # Assert
        assert record.get("Total") == 1250.0

    def test_bad_transform_arguments_rejected(self) -> None:
        """
        SCENARIO: transform_args the factory does not accept
        EXPECTED: ValueError
        """
        # Arrange
        config = RuleConfig.model_validate(
            {
                "name": "bad_args",
                "actions": [
                    {
                        "type": "transform_field",
                        "field": "Total",
                        "transform": "multiply",
                        "transform_args": {"by": 2},
                    }
                ],
            }
        )

        # Act & Assert
        with pytest.raises(ValueError):
            Rule.from_config(config)


class TestFlowControl:
    """Test actions that steer rule evaluation."""

    @pytest.mark.asyncio
    async def test_stop_processing_finishes_current_rule(self) -> None:
        """
        SCENARIO: Rule 2 sets a field then stops; rule 3 would also fire
        EXPECTED: Rule 2's actions all applied, rule 3 never applied
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("first", 1, always, appender("first")),
                Rule("halt", 2, always, Chain((StopProcessing(), SetField("Halted", True)))),
                Rule("third", 3, always, appender("third")),
            ]
        )

        # Act
        record = await engine.apply(DataRecord())

        # Assert
        assert record.get("trace") == ["first"]
        assert record.get("Halted") is True
        assert engine.get_statistics()["rules_evaluated"] == 2

    @pytest.mark.asyncio
    async def test_stop_processing_only_for_matching_record(self) -> None:
        """
        SCENARIO: Stop rule conditioned on Premium, two records
        EXPECTED: Only the Premium record misses the later rule
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("halt", 1, Condition("CustomerType", Operator.EQUALS, "Premium"), StopProcessing()),
                Rule("stamp", 2, always, SetField("Stamped", True)),
            ]
        )
        records = [
            DataRecord(fields={"CustomerType": "Premium"}),
            DataRecord(fields={"CustomerType": "Standard"}),
        ]

        # Act
        result = await engine.process(records)

        # Assert
        assert len(result) == 2
        assert "Stamped" not in result[0]
        assert result[1].get("Stamped") is True

    @pytest.mark.asyncio
    async def test_skip_record_dropped_from_output(self) -> None:
        """
        SCENARIO: Skip rule matches one of three records
        EXPECTED: Two records out; skipped record marked and counted
        """
        # Arrange
        engine = RuleEngine(
            [
                Rule("skip_trials", 1, Condition("CustomerType", Operator.EQUALS, "Trial"), SkipRecord("trial")),
                Rule("stamp", 2, always, SetField("Stamped", True)),
            ]
        )
        records = [
            DataRecord(fields={"CustomerType": "Premium"}),
            DataRecord(fields={"CustomerType": "Trial"}),
            DataRecord(fields={"CustomerType": "Standard"}),
        ]
        stats = RuleStatistics()

        # Act
        result = await engine.process(records, statistics=stats)

        # Assert
        assert [r.id for r in result] == [records[0].id, records[2].id]
        assert records[1].metadata == {"skip_reason": "trial", "skipped_by": "skip_trials"}
        assert "Stamped" not in records[1]
        assert stats.records_processed == 3
        assert stats.records_skipped == 1

    @pytest.mark.asyncio
    async def test_apply_returns_skipped_record_marked(self) -> None:
        """
        SCENARIO: apply() on a record a rule skips
        EXPECTED: Record returned with skipped_by metadata
        """
        # Arrange
        engine = RuleEngine([Rule("drop", 1, always, SkipRecord())])

        # Act
        record = await engine.apply(DataRecord())

        # Assert
        assert record.metadata["skipped_by"] == "drop"
        assert record.metadata["skip_reason"] == "Record skipped by rule"

    @pytest.mark.asyncio
    async def test_log_message_substitutes_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        """
        SCENARIO: Message with a known and an unknown placeholder
        EXPECTED: Known field substituted; unknown placeholder kept
        """
        # Arrange
        engine = RuleEngine(
            [Rule("log", 1, always, LogMessage("Customer {Name} spent {Total} ({Missing})", "warning"))]
        )

        # Act
        with caplog.at_level(logging.WARNING, logger="etl_orchestrator.rules.actions"):
            await engine.apply(DataRecord(fields={"Name": "alice", "Total": 1200}))

        # Assert
        assert "Customer alice spent 1200 ({Missing})" in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_log_level_falls_back_to_info(self, caplog: pytest.LogCaptureFixture) -> None:
        """
        SCENARIO: LogMessage with an unrecognised level name
        EXPECTED: Logged at INFO
        """
        # Act
        with caplog.at_level(logging.INFO, logger="etl_orchestrator.rules.actions"):
            LogMessage("hello {Name}", "loud")(DataRecord(fields={"Name": "bob"}))

        # Assert
        assert [(r.levelno, r.getMessage()) for r in caplog.records] == [(logging.INFO, "hello bob")]


class TestStatistics:
    """Test per-call and lifetime counters."""

    @pytest.mark.asyncio
    async def test_per_call_statistics_do_not_accumulate(self) -> None:
        """
        SCENARIO: Same engine processes two records twice
        EXPECTED: Each call reports 2 records; lifetime totals report 4
        """
        # Arrange
        engine = RuleEngine([Rule("premium", 1, always, SetField("Seen", True))])
        first, second = RuleStatistics(), RuleStatistics()

        # Act
        await engine.process([DataRecord(), DataRecord()], statistics=first)
        await engine.process([DataRecord(), DataRecord()], statistics=second)

        # Assert
        assert first.records_processed == 2
        assert second.records_processed == 2
        assert second.rules_fired == {"premium": 2}
        assert engine.get_statistics()["records_processed"] == 4
        assert engine.get_statistics()["rules_fired"] == {"premium": 4}

    @pytest.mark.asyncio
    async def test_statistics_collected_when_cancelled(self) -> None:
        """
        SCENARIO: Token cancelled by the first record's rule
        EXPECTED: The record already processed is still counted
        """
        # Arrange
        token = CancellationToken()

        def cancel(record: DataRecord) -> None:
            token.cancel("enough")

        engine = RuleEngine([Rule("cancel", 1, always, cancel)])
        stats = RuleStatistics()

        # Act
        with pytest.raises(CancellationRequested):
            await engine.process([DataRecord(), DataRecord()], token, statistics=stats)

        # Assert
        assert stats.records_processed == 1
        assert engine.get_statistics()["records_processed"] == 1


class TestWriteTracking:
    """Test detection of fields written by several rules."""

    @pytest.mark.asyncio
    async def test_same_object_rewrite_detected(self, caplog: pytest.LogCaptureFixture) -> None:
        """
        SCENARIO: Two rules set the same field to the identical object
        EXPECTED: Overwrite still warned and counted
        """
        # Arrange
        tier = "gold"
        engine = RuleEngine(
            [
                Rule("first", 1, always, SetField("Tier", tier)),
                Rule("second", 2, always, SetField("Tier", tier)),
            ]
        )

        # Act
        with caplog.at_level(logging.WARNING, logger="etl_orchestrator.rules.rule_engine"):
            await engine.apply(DataRecord())

        # Assert
        assert "Rule 'second' overwrote field 'Tier'" in caplog.text
        assert engine.get_statistics()["field_overwrites"] == 1

    @pytest.mark.asyncio
    async def test_in_place_mutation_detected(self) -> None:
        """
        SCENARIO: Second rule appends to the list the first rule set
        EXPECTED: Counted as an overwrite of that field
        """
        # Arrange
        def tag_vip(tags: List[str]) -> List[str]:
            tags.append("vip")
            return tags

        engine = RuleEngine(
            [
                Rule("init", 1, always, SetField("Tags", ["customer"])),
                Rule("vip", 2, always, TransformField("Tags", tag_vip)),
            ]
        )
        stats = RuleStatistics()

        # Act
        record = await engine.apply(DataRecord(), statistics=stats)

        # Assert
        assert record.get("Tags") == ["customer", "vip"]
        assert stats.field_overwrites == 1

    @pytest.mark.asyncio
    async def test_same_rule_rewrite_not_counted(self) -> None:
        """
        SCENARIO: One rule's chain writes a field twice
        EXPECTED: No overwrite reported
        """
        # Arrange
        engine = RuleEngine(
            [Rule("twice", 1, always, Chain((SetField("x", 1), SetField("x", 2))))]
        )

        # Act
        record = await engine.apply(DataRecord())

        # Assert
        assert record.get("x") == 2
        assert engine.get_statistics()["field_overwrites"] == 0
