"""
Rule: Large scan

Detects heap scans and nonclustered index scans that read a large number
of rows. Clustered index scans are reported separately by
LARGE_CLUSTERED_SCAN.

Severity: CRITICAL above critical_rows, WARNING above warning_rows
"""

from __future__ import annotations

from pydantic import Field, model_validator

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig, describe_object, log_scaled
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator

FULL_SCAN_OPERATORS = frozenset({"Table Scan", "Index Scan", "Nonclustered Index Scan"})


class LargeScanConfig(RuleConfig):
    """
    Configuration for the large scan rule.

    Attributes:
        warning_rows: Estimated rows above which a scan is reported
        critical_rows: Estimated rows above which the issue is critical
    """

    warning_rows: float = Field(default=1_000, ge=0)
    critical_rows: float = Field(default=10_000, ge=0)

    @model_validator(mode="after")
    def critical_above_warning(self) -> "LargeScanConfig":
        if self.critical_rows < self.warning_rows:
            raise ValueError("critical_rows must be >= warning_rows")
        return self


@register_rule
class LargeScan(Rule):
    """Full scans that read many rows."""

    rule_id = "LARGE_SCAN"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects full table or index scans over many rows"
    config_schema = LargeScanConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: LargeScanConfig = self.config  # type: ignore[assignment]

        if op.physical_op not in FULL_SCAN_OPERATORS:
            return None

        rows = op.estimated_rows
        if rows <= config.warning_rows:
            return None

        severity = Severity.CRITICAL if rows > config.critical_rows else Severity.WARNING
        target = describe_object(op)

        return self.issue(
            op,
            severity=severity,
            title=f"{op.physical_op} on {target} ({rows:,.0f} estimated rows)",
            description=(
                f"{op.physical_op} reads every row of {target}. "
                f"With {rows:,.0f} estimated rows this is usually the most "
                "expensive way to reach a subset of the data."
            ),
            suggestion=(
                "Add an index covering the filter columns so the optimizer "
                "can seek instead of scanning."
            ),
            impact=log_scaled(rows, 15),
            metrics={"estimated_rows": rows, "cost_percentage": metrics.cost_percentage},
        )
