"""Tests for the diagnostic engine: ranking, truncation, config and failures."""

from __future__ import annotations

import logging

import pytest

from conftest import relop
from planscope.analyzer import DiagnosticEngine, Severity, diagnose
from planscope.analyzer.rules import DominantCost, Rule
from planscope.config import Config, RuleSettings
from planscope.exceptions import ConfigurationError, RuleError
from planscope.parser import PlanDocument


def concatenation_of_scans(count: int, rows: float = 5_000, scan_cost: float = 0.01) -> str:
    body = "".join(
        relop(i + 1, "Table Scan", cost=scan_cost, rows=rows) for i in range(count)
    )
    return relop(0, "Concatenation", cost=1.0, body=f"<Concatenation>{body}</Concatenation>")


class ExplodingRule(Rule):
    rule_id = "EXPLODING"
    severity = Severity.INFO

    def evaluate(self, op, metrics):
        raise ZeroDivisionError("boom")


class TestDiagnose:
    def test_large_scan_with_full_cost_share(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=50_000), 1.0)

        issues = diagnose(statement)

        assert {i.rule_id for i in issues} == {"LARGE_SCAN", "DOMINANT_COST"}
        assert all(i.severity == Severity.CRITICAL for i in issues)
        assert issues[0].rule_id == "DOMINANT_COST"
        assert issues[0].impact == pytest.approx(100.0)

    def test_actual_plan(self, actual_plan_document: PlanDocument):
        issues = diagnose(actual_plan_document.statements[0])

        assert [(i.rule_id, i.node_id) for i in issues] == [
            ("LARGE_SCAN", 3),
            ("LARGE_HASH_JOIN", 1),
            ("LARGE_CLUSTERED_SCAN", 2),
            ("ESTIMATE_MISMATCH", 0),
            ("EXPENSIVE_SORT", 0),
        ]
        assert issues[-1].severity == Severity.CRITICAL

    def test_estimated_lookup_plan(self, nested_loops_document: PlanDocument):
        issues = diagnose(nested_loops_document.statements[0])

        assert [(i.rule_id, i.node_id) for i in issues] == [("DOMINANT_COST", 3)]
        assert issues[0].impact == pytest.approx(95.0)

    def test_impact_non_increasing(self, build_statement):
        statement = build_statement(concatenation_of_scans(6, rows=2_000_000), 1.0)
        impacts = [i.impact for i in diagnose(statement)]

        assert impacts == sorted(impacts, reverse=True)

    def test_ties_keep_pre_order(self, build_statement):
        statement = build_statement(concatenation_of_scans(2), 1.0)

        issues = diagnose(statement)

        assert [(i.rule_id, i.node_id) for i in issues] == [
            ("DOMINANT_COST", 0),
            ("LARGE_SCAN", 1),
            ("LARGE_SCAN", 2),
        ]

    def test_ties_on_one_operator_keep_registration_order(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=1e7), 1.0)

        issues = diagnose(statement)

        assert [i.rule_id for i in issues] == ["LARGE_SCAN", "DOMINANT_COST"]
        assert issues[0].impact == issues[1].impact == 100.0

    def test_truncated_to_ten(self, build_statement):
        statement = build_statement(concatenation_of_scans(12), 1.0)
        assert len(diagnose(statement)) == 10

    def test_clean_plan(self, build_statement):
        body = "<Top>" + relop(1, "Index Seek", cost=0.5, rows=10) + "</Top>"
        statement = build_statement(relop(0, "Top", cost=1.0, rows=10, body=body), 1.0)

        assert diagnose(statement) == []

    def test_placeholder_statement(self, subquery_document: PlanDocument):
        assert diagnose(subquery_document.statements[0]) == []


class TestEngineOptions:
    def test_max_issues(self, build_statement):
        statement = build_statement(concatenation_of_scans(5), 1.0)
        assert len(DiagnosticEngine(max_issues=2).diagnose(statement)) == 2

    def test_include_and_exclude(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=50_000), 1.0)

        only_scan = DiagnosticEngine(include_rules={"LARGE_SCAN"}).diagnose(statement)
        no_scan = DiagnosticEngine(exclude_rules={"LARGE_SCAN"}).diagnose(statement)

        assert [i.rule_id for i in only_scan] == ["LARGE_SCAN"]
        assert [i.rule_id for i in no_scan] == ["DOMINANT_COST"]

    def test_explicit_rules(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=50_000), 1.0)
        engine = DiagnosticEngine(rules=[DominantCost()])

        assert [i.rule_id for i in engine.diagnose(statement)] == ["DOMINANT_COST"]

    def test_failing_rule_is_skipped(self, build_statement, caplog: pytest.LogCaptureFixture):
        statement = build_statement(relop(0, "Table Scan", cost=1.0), 1.0)
        engine = DiagnosticEngine(rules=[ExplodingRule(), DominantCost()])

        with caplog.at_level(logging.WARNING, logger="planscope.analyzer.engine"):
            issues = engine.diagnose(statement)

        assert [i.rule_id for i in issues] == ["DOMINANT_COST"]
        assert "EXPLODING" in caplog.text

    def test_fail_fast(self, build_statement):
        statement = build_statement(relop(7, "Table Scan", cost=1.0), 1.0)
        engine = DiagnosticEngine(rules=[ExplodingRule()], fail_fast=True)

        with pytest.raises(RuleError) as exc_info:
            engine.diagnose(statement)

        assert exc_info.value.rule_id == "EXPLODING"
        assert exc_info.value.node_id == 7
        assert isinstance(exc_info.value.original_error, ZeroDivisionError)


class TestEngineConfig:
    def test_disabled_rule(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=50_000), 1.0)
        config = Config(rules={"DOMINANT_COST": RuleSettings(enabled=False)})

        issues = DiagnosticEngine(config=config).diagnose(statement)

        assert [i.rule_id for i in issues] == ["LARGE_SCAN"]

    def test_threshold_override(self, build_statement):
        statement = build_statement(relop(0, "Table Scan", cost=0.1, rows=50), 1.0)
        config = Config(
            rules={"LARGE_SCAN": RuleSettings(thresholds={"warning_rows": 10, "critical_rows": 20})}
        )

        issues = DiagnosticEngine(config=config).diagnose(statement)

        assert [(i.rule_id, i.severity) for i in issues] == [("LARGE_SCAN", Severity.CRITICAL)]

    def test_max_issues_from_config(self, build_statement):
        statement = build_statement(concatenation_of_scans(5), 1.0)
        engine = DiagnosticEngine(config=Config(max_issues=1))

        assert len(engine.diagnose(statement)) == 1

    def test_invalid_thresholds(self):
        config = Config(rules={"HOT_LOOKUP": RuleSettings(thresholds={"warning_executions": -1})})

        with pytest.raises(ConfigurationError):
            DiagnosticEngine(config=config)

    def test_environment_config(self, build_statement, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PLANSCOPE_RULE_LARGE_SCAN__ENABLED", "false")
        statement = build_statement(relop(0, "Table Scan", cost=1.0, rows=50_000), 1.0)

        issues = diagnose(statement)

        assert [i.rule_id for i in issues] == ["DOMINANT_COST"]
