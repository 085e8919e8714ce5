"""
Rule: Hot lookup

Key Lookup and RID Lookup operators run once per outer row of a nested
loops join. A high execution count means the base table is being hit row
by row, which a covering index would avoid.

The execution count is the actual count when runtime counters exist, and
otherwise the estimated count (1 + rebinds + rewinds).
"""

from __future__ import annotations

from pydantic import Field, model_validator

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig, describe_object, log_scaled
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class HotLookupConfig(RuleConfig):
    warning_executions: float = Field(default=100, ge=0)
    critical_executions: float = Field(default=1_000, ge=0)

    @model_validator(mode="after")
    def critical_above_warning(self) -> "HotLookupConfig":
        if self.critical_executions < self.warning_executions:
            raise ValueError("critical_executions must be >= warning_executions")
        return self


def execution_count(op: Operator) -> float:
    """Actual executions if recorded, else the optimizer's estimate."""
    if op.runtime is not None:
        return float(op.runtime.actual_executions)
    return 1.0 + (op.estimate_rebinds or 0.0) + (op.estimate_rewinds or 0.0)


@register_rule
class HotLookup(Rule):
    """Lookups executed many times."""

    rule_id = "HOT_LOOKUP"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects key and RID lookups executed many times"
    config_schema = HotLookupConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: HotLookupConfig = self.config  # type: ignore[assignment]

        if not op.is_lookup:
            return None

        executions = execution_count(op)
        if executions <= config.warning_executions:
            return None

        severity = (
            Severity.CRITICAL if executions > config.critical_executions else Severity.WARNING
        )
        target = describe_object(op)

        return self.issue(
            op,
            severity=severity,
            title=f"{op.physical_op} on {target} executed {executions:,.0f} times",
            description=(
                f"Each execution fetches columns missing from the index used "
                f"upstream. {executions:,.0f} executions means {executions:,.0f} "
                "random reads into the base table."
            ),
            suggestion="Add the looked-up columns to the index with INCLUDE.",
            impact=log_scaled(executions, 20),
            metrics={"executions": executions},
        )
