"""
Tests for the built-in diagnostic rules.

Each rule is exercised in isolation against hand-built operators and
metrics; the engine tests cover how rules combine.
"""

from __future__ import annotations

import math

import pytest

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import RuleRegistry, get_registry
from planscope.analyzer.rules import (
    DominantCost,
    EstimateMismatch,
    ExpensiveSort,
    HotLookup,
    LargeClusteredScan,
    LargeHashJoin,
    LargeScan,
    LargeScanConfig,
    Rule,
    RuleConfig,
)
from planscope.config import Config, RuleSettings
from planscope.exceptions import ConfigurationError
from planscope.metrics import OperatorMetrics
from planscope.parser.models import (
    IndexScanDetail,
    ObjectReference,
    Operator,
    RuntimeInfo,
)


def make_operator(physical_op: str = "Table Scan", **kwargs) -> Operator:
    """Create a minimal Operator."""
    return Operator(node_id=kwargs.pop("node_id", 0), physical_op=physical_op, **kwargs)


def make_metrics(own_share: float = 0.0, share: float | None = None) -> OperatorMetrics:
    return OperatorMetrics(
        node_id=0,
        cost_percentage=own_share if share is None else share,
        own_cost_percentage=own_share,
    )


def on_table(table: str) -> IndexScanDetail:
    return IndexScanDetail(object=ObjectReference(table=table))


class TestLargeScan:
    def test_ignores_small_scans(self):
        assert LargeScan().evaluate(make_operator(estimated_rows=1_000), make_metrics()) is None

    def test_warning_above_1000_rows(self):
        issue = LargeScan().evaluate(make_operator(estimated_rows=5_000), make_metrics())

        assert issue is not None
        assert issue.severity == Severity.WARNING
        assert issue.impact == pytest.approx(15 * math.log10(5_000))

    def test_critical_above_10000_rows(self):
        op = make_operator(estimated_rows=50_000, detail=on_table("Orders"))
        issue = LargeScan().evaluate(op, make_metrics())

        assert issue.severity == Severity.CRITICAL
        assert issue.rule_id == "LARGE_SCAN"
        assert "Orders" in issue.title
        assert issue.node_id == 0
        assert issue.physical_op == "Table Scan"

    @pytest.mark.parametrize("physical_op", ["Index Scan", "Nonclustered Index Scan"])
    def test_nonclustered_scans(self, physical_op: str):
        issue = LargeScan().evaluate(make_operator(physical_op, estimated_rows=2_000), make_metrics())
        assert issue is not None

    @pytest.mark.parametrize("physical_op", ["Clustered Index Scan", "Index Seek", "Sort"])
    def test_other_operators(self, physical_op: str):
        issue = LargeScan().evaluate(make_operator(physical_op, estimated_rows=2_000_000), make_metrics())
        assert issue is None

    def test_impact_is_clamped(self):
        issue = LargeScan().evaluate(make_operator(estimated_rows=1e12), make_metrics())
        assert issue.impact == 100.0

    def test_threshold_override(self):
        rule = LargeScan({"warning_rows": 10, "critical_rows": 100})
        issue = rule.evaluate(make_operator(estimated_rows=500), make_metrics())

        assert issue.severity == Severity.CRITICAL

    def test_invalid_threshold_order(self):
        with pytest.raises(ConfigurationError):
            LargeScan({"warning_rows": 100, "critical_rows": 10})

    def test_unknown_setting(self):
        with pytest.raises(ConfigurationError) as exc_info:
            LargeScan({"max_rows": 5})
        assert exc_info.value.config_key.startswith("LARGE_SCAN.")

    def test_config_instance(self):
        rule = LargeScan(LargeScanConfig(warning_rows=1))
        assert rule.config.warning_rows == 1


class TestLargeClusteredScan:
    def test_triggers_above_10000_rows(self):
        op = make_operator("Clustered Index Scan", estimated_rows=20_000)
        issue = LargeClusteredScan().evaluate(op, make_metrics())

        assert issue.severity == Severity.WARNING
        assert issue.impact == pytest.approx(12 * math.log10(20_000))

    def test_ignores_10000_rows(self):
        op = make_operator("Clustered Index Scan", estimated_rows=10_000)
        assert LargeClusteredScan().evaluate(op, make_metrics()) is None

    def test_ignores_heap_scans(self):
        assert LargeClusteredScan().evaluate(make_operator(estimated_rows=1e6), make_metrics()) is None


class TestHotLookup:
    def test_actual_executions(self):
        op = make_operator(
            "Key Lookup",
            runtime=RuntimeInfo(actual_rows=5_000, actual_executions=5_000),
        )
        issue = HotLookup().evaluate(op, make_metrics())

        assert issue.severity == Severity.CRITICAL
        assert issue.metric("executions") == 5_000
        assert issue.impact == pytest.approx(20 * math.log10(5_000))

    def test_warning_between_thresholds(self):
        op = make_operator("RID Lookup", runtime=RuntimeInfo(actual_executions=500))
        assert HotLookup().evaluate(op, make_metrics()).severity == Severity.WARNING

    def test_estimated_executions_without_runtime(self):
        op = make_operator("Key Lookup", estimate_rebinds=199, estimate_rewinds=0)
        issue = HotLookup().evaluate(op, make_metrics())

        assert issue.metric("executions") == 200

    def test_few_executions(self):
        op = make_operator("Key Lookup", runtime=RuntimeInfo(actual_executions=100))
        assert HotLookup().evaluate(op, make_metrics()) is None

    def test_lookup_reported_by_logical_op(self):
        op = make_operator(
            "Clustered Index Seek",
            logical_op="Key Lookup",
            runtime=RuntimeInfo(actual_executions=101),
        )
        assert HotLookup().evaluate(op, make_metrics()) is not None

    def test_not_a_lookup(self):
        op = make_operator("Index Seek", runtime=RuntimeInfo(actual_executions=10_000))
        assert HotLookup().evaluate(op, make_metrics()) is None


class TestExpensiveSort:
    def test_warning(self):
        issue = ExpensiveSort().evaluate(make_operator("Sort"), make_metrics(own_share=20))

        assert issue.severity == Severity.WARNING
        assert issue.impact == pytest.approx(20)

    def test_critical(self):
        issue = ExpensiveSort().evaluate(make_operator("Top N Sort"), make_metrics(own_share=45))
        assert issue.severity == Severity.CRITICAL

    def test_cheap_sort(self):
        assert ExpensiveSort().evaluate(make_operator("Sort"), make_metrics(own_share=15)) is None

    def test_uses_own_share_not_subtree_share(self):
        metrics = make_metrics(own_share=5, share=100)
        assert ExpensiveSort().evaluate(make_operator("Sort"), metrics) is None


class TestLargeHashJoin:
    def test_triggers(self):
        op = make_operator("Hash Match", logical_op="Inner Join", estimated_rows=250_000)
        issue = LargeHashJoin().evaluate(op, make_metrics())

        assert issue.severity == Severity.WARNING
        assert "Inner Join" in issue.title
        assert issue.impact == pytest.approx(10 * math.log10(250_000))

    def test_small_hash(self):
        op = make_operator("Hash Match", estimated_rows=100_000)
        assert LargeHashJoin().evaluate(op, make_metrics()) is None


class TestDominantCost:
    def test_triggers_over_half(self):
        issue = DominantCost().evaluate(make_operator(), make_metrics(own_share=80))

        assert issue.severity == Severity.CRITICAL
        assert issue.impact == pytest.approx(80)

    def test_half_is_not_dominant(self):
        assert DominantCost().evaluate(make_operator(), make_metrics(own_share=50)) is None

    def test_any_operator(self):
        issue = DominantCost().evaluate(make_operator("Compute Scalar"), make_metrics(own_share=51))
        assert issue is not None

    def test_root_subtree_share_alone_does_not_trigger(self):
        metrics = make_metrics(own_share=10, share=100)
        assert DominantCost().evaluate(make_operator("Nested Loops"), metrics) is None


class TestEstimateMismatch:
    def test_requires_runtime(self):
        assert EstimateMismatch().evaluate(make_operator(estimated_rows=1), make_metrics()) is None

    def test_underestimate(self):
        op = make_operator(
            estimated_rows=10,
            runtime=RuntimeInfo(actual_rows=10_000, actual_executions=1),
        )
        issue = EstimateMismatch().evaluate(op, make_metrics())

        assert issue.severity == Severity.WARNING
        assert "underestimated" in issue.title
        assert issue.metric("ratio") == pytest.approx(1_000)
        assert issue.impact == pytest.approx(75)

    def test_overestimate(self):
        op = make_operator(
            estimated_rows=5_000,
            runtime=RuntimeInfo(actual_rows=0, actual_executions=1),
        )
        issue = EstimateMismatch().evaluate(op, make_metrics())

        assert "overestimated" in issue.title
        assert issue.metric("ratio") == pytest.approx(1 / 5_000)

    def test_estimate_is_per_execution(self):
        op = make_operator(
            estimated_rows=10,
            runtime=RuntimeInfo(actual_rows=1_000, actual_executions=100),
        )
        assert EstimateMismatch().evaluate(op, make_metrics()) is None

    def test_within_bounds(self):
        op = make_operator(estimated_rows=100, runtime=RuntimeInfo(actual_rows=900, actual_executions=1))
        assert EstimateMismatch().evaluate(op, make_metrics()) is None

    def test_impact_is_clamped(self):
        op = make_operator(estimated_rows=1, runtime=RuntimeInfo(actual_rows=10**12, actual_executions=1))
        assert EstimateMismatch().evaluate(op, make_metrics()).impact == 100.0


class TestRuleBase:
    def test_issue_rejects_out_of_range_impact(self):
        with pytest.raises(Exception):
            Issue(rule_id="X", severity=Severity.INFO, title="t", impact=101)

    def test_severity_ordering(self):
        assert sorted([Severity.INFO, Severity.CRITICAL, Severity.WARNING]) == [
            Severity.CRITICAL,
            Severity.WARNING,
            Severity.INFO,
        ]

    def test_issue_metrics_are_immutable(self):
        op = make_operator("Key Lookup", runtime=RuntimeInfo(actual_executions=5_000))
        issue = HotLookup().evaluate(op, make_metrics())

        assert issue.metrics == (("executions", 5_000),)
        assert issue.metric("ratio") is None
        with pytest.raises(TypeError):
            issue.metrics[0] = ("executions", 0)  # type: ignore[index]
        assert hash(issue) == hash(HotLookup().evaluate(op, make_metrics()))

    def test_repr(self):
        assert repr(DominantCost()) == "DominantCost(rule_id='DOMINANT_COST', version='1.0.0')"

    def test_custom_rule_without_editing_others(self):
        class SpoolRule(Rule):
            rule_id = "TABLE_SPOOL"
            severity = Severity.INFO
            config_schema = RuleConfig

            def evaluate(self, op, metrics):
                if op.physical_op != "Table Spool":
                    return None
                return self.issue(op, title="Table Spool", description="", impact=250)

        registry = RuleRegistry()
        registry.register(SpoolRule)
        issue = SpoolRule().evaluate(make_operator("Table Spool"), make_metrics())

        assert registry.rule_ids == ("TABLE_SPOOL",)
        assert issue.impact == 100.0


class TestRegistry:
    def test_builtin_rules_registered_in_order(self):
        assert get_registry().rule_ids[:7] == (
            "LARGE_SCAN",
            "LARGE_CLUSTERED_SCAN",
            "HOT_LOOKUP",
            "EXPENSIVE_SORT",
            "LARGE_HASH_JOIN",
            "DOMINANT_COST",
            "ESTIMATE_MISMATCH",
        )

    def test_duplicate_registration(self):
        registry = RuleRegistry()
        registry.register(LargeScan)

        with pytest.raises(ValueError, match="already registered"):
            registry.register(LargeScan)

    @pytest.mark.parametrize("rule_id", ["", "large_scan", "LARGE-SCAN", "_LARGE", "LARGE__SCAN"])
    def test_rule_id_must_be_upper_snake_case(self, rule_id: str):
        rule_cls = type("Misnamed", (DominantCost,), {"rule_id": rule_id})

        with pytest.raises(ValueError, match="UPPER_SNAKE_CASE"):
            RuleRegistry().register(rule_cls)

    def test_select_keeps_registration_order(self):
        registry = RuleRegistry()
        registry.register(DominantCost)
        registry.register(LargeScan)
        registry.register(HotLookup)

        assert registry.select() == [DominantCost, LargeScan, HotLookup]
        assert registry.select(include=["HOT_LOOKUP", "DOMINANT_COST"]) == [DominantCost, HotLookup]
        assert registry.select(exclude={"LARGE_SCAN"}) == [DominantCost, HotLookup]

    def test_instantiate_applies_config(self):
        registry = RuleRegistry()
        registry.register(LargeScan)
        registry.register(DominantCost)
        config = Config(rules={
            "DOMINANT_COST": RuleSettings(enabled=False),
            "LARGE_SCAN": RuleSettings(thresholds={"warning_rows": 5, "critical_rows": 50}),
        })

        rules = registry.instantiate(config)

        assert [r.rule_id for r in rules] == ["LARGE_SCAN"]
        assert rules[0].config.critical_rows == 50

    def test_instantiate_invalid_thresholds(self):
        registry = RuleRegistry()
        registry.register(LargeScan)
        config = Config(rules={"LARGE_SCAN": RuleSettings(thresholds={"warning_rows": -1})})

        with pytest.raises(ConfigurationError):
            registry.instantiate(config)
