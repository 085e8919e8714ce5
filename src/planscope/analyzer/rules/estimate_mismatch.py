"""
Rule: Estimate mismatch

Compares actual rows with the optimizer's estimate once runtime counters
exist. EstimateRows is per execution, so it is scaled by the number of
executions before comparing.

Bad cardinality estimates are the root cause of most poor plan choices:
wrong join algorithm, undersized memory grants, lookups instead of scans.
"""

from __future__ import annotations

import math

from pydantic import Field, model_validator

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class EstimateMismatchConfig(RuleConfig):
    over_ratio: float = Field(default=10.0, gt=1)
    under_ratio: float = Field(default=0.1, gt=0, lt=1)
    impact_factor: float = Field(default=25.0, gt=0)

    @model_validator(mode="after")
    def ratios_ordered(self) -> "EstimateMismatchConfig":
        if self.under_ratio >= self.over_ratio:
            raise ValueError("under_ratio must be < over_ratio")
        return self


def row_ratio(op: Operator) -> float | None:
    """actual / estimated rows, None without runtime counters."""
    if op.runtime is None:
        return None
    executions = max(op.runtime.actual_executions, 1)
    estimated = max(op.estimated_rows * executions, 1.0)
    actual = max(float(op.runtime.actual_rows), 1.0)
    return actual / estimated


@register_rule
class EstimateMismatch(Rule):
    rule_id = "ESTIMATE_MISMATCH"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects operators whose actual row count is far from the estimate"
    config_schema = EstimateMismatchConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: EstimateMismatchConfig = self.config  # type: ignore[assignment]

        ratio = row_ratio(op)
        if ratio is None:
            return None
        if config.under_ratio <= ratio <= config.over_ratio:
            return None

        assert op.runtime is not None
        direction = "underestimated" if ratio > 1 else "overestimated"
        return self.issue(
            op,
            title=f"Rows {direction} on {op.physical_op} ({ratio:.3g}x)",
            description=(
                f"Estimated {op.estimated_rows:,.0f} rows per execution, actual "
                f"{op.runtime.actual_rows:,} over "
                f"{op.runtime.actual_executions:,} executions."
            ),
            suggestion="Update statistics on the underlying tables or check for parameter sniffing.",
            impact=config.impact_factor * abs(math.log10(ratio)),
            metrics={
                "ratio": ratio,
                "estimated_rows": op.estimated_rows,
                "actual_rows": float(op.runtime.actual_rows),
            },
        )
