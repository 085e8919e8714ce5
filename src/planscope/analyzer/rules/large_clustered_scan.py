"""
Rule: Large clustered index scan

A clustered index scan reads the whole table through its clustered key.
Reported at WARNING; it often means a missing nonclustered index.
"""

from __future__ import annotations

from pydantic import Field

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig, describe_object, log_scaled
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class LargeClusteredScanConfig(RuleConfig):
    min_rows: float = Field(default=10_000, ge=0)


@register_rule
class LargeClusteredScan(Rule):
    rule_id = "LARGE_CLUSTERED_SCAN"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects clustered index scans over many rows"
    config_schema = LargeClusteredScanConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: LargeClusteredScanConfig = self.config  # type: ignore[assignment]

        if op.physical_op != "Clustered Index Scan":
            return None

        rows = op.estimated_rows
        if rows <= config.min_rows:
            return None

        target = describe_object(op)
        return self.issue(
            op,
            title=f"Clustered Index Scan on {target} ({rows:,.0f} estimated rows)",
            description=(
                f"The whole clustered index of {target} is read. "
                "Filtering happens after the rows are fetched."
            ),
            suggestion="Consider a nonclustered index on the predicate columns.",
            impact=log_scaled(rows, 12),
            metrics={"estimated_rows": rows},
        )
