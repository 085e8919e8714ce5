"""
Rule: Expensive sort

Flags Sort operators whose own cost is a large share of the statement.
The share is own_cost_percentage, not the subtree-based cost_percentage,
so a Sort at the root is judged on its own work only.
Sorts block the pipeline and may spill to tempdb when the memory grant is
too small.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator

SORT_OPERATORS = frozenset({"Sort", "Top N Sort"})


class ExpensiveSortConfig(RuleConfig):
    warning_share: float = Field(default=15.0, ge=0, le=100)
    critical_share: float = Field(default=30.0, ge=0, le=100)

    @model_validator(mode="after")
    def critical_above_warning(self) -> "ExpensiveSortConfig":
        if self.critical_share < self.warning_share:
            raise ValueError("critical_share must be >= warning_share")
        return self


@register_rule
class ExpensiveSort(Rule):
    rule_id = "EXPENSIVE_SORT"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects sorts that dominate statement cost"
    config_schema = ExpensiveSortConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: ExpensiveSortConfig = self.config  # type: ignore[assignment]

        if op.physical_op not in SORT_OPERATORS:
            return None

        share = metrics.own_cost_percentage
        if share <= config.warning_share:
            return None

        severity = Severity.CRITICAL if share > config.critical_share else Severity.WARNING
        return self.issue(
            op,
            severity=severity,
            title=f"{op.physical_op} accounts for {share:.1f}% of statement cost",
            description=(
                "The sort has to consume its whole input before producing a row "
                "and needs a memory grant sized for it."
            ),
            suggestion=(
                "Provide the order from an index, or reduce the rows reaching "
                "the sort."
            ),
            impact=share,
            metrics={"own_cost_percentage": share},
        )
