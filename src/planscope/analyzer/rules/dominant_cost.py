"""
Rule: Dominant cost

Any operator whose own cost is more than half of the statement. The impact
is the cost share itself. The share is own_cost_percentage rather than the
subtree-based cost_percentage, which is 100 for every root operator.
"""

from __future__ import annotations

from pydantic import Field

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig, describe_object
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class DominantCostConfig(RuleConfig):
    min_share: float = Field(default=50.0, ge=0, le=100)


@register_rule
class DominantCost(Rule):
    rule_id = "DOMINANT_COST"
    version = "1.0.0"
    severity = Severity.CRITICAL
    description = "Detects a single operator carrying most of the statement cost"
    config_schema = DominantCostConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: DominantCostConfig = self.config  # type: ignore[assignment]

        share = metrics.own_cost_percentage
        if share <= config.min_share:
            return None

        return self.issue(
            op,
            title=f"{op.physical_op} carries {share:.1f}% of statement cost",
            description=(
                f"{op.physical_op} ({describe_object(op)}) is where the optimizer "
                "expects most of the work to happen. Tuning elsewhere has "
                "little effect until this operator gets cheaper."
            ),
            impact=share,
            metrics={"own_cost_percentage": share, "own_cost": metrics.own_cost},
        )
