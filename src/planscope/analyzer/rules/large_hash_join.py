"""
Rule: Large hash join

Hash Match over many rows needs a large memory grant to build its hash
table and spills when the grant is underestimated.
"""

from __future__ import annotations

from pydantic import Field

from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig, log_scaled
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class LargeHashJoinConfig(RuleConfig):
    min_rows: float = Field(default=100_000, ge=0)


@register_rule
class LargeHashJoin(Rule):
    rule_id = "LARGE_HASH_JOIN"
    version = "1.0.0"
    severity = Severity.WARNING
    description = "Detects hash matches over many rows"
    config_schema = LargeHashJoinConfig

    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        config: LargeHashJoinConfig = self.config  # type: ignore[assignment]

        if op.physical_op != "Hash Match":
            return None

        rows = op.estimated_rows
        if rows <= config.min_rows:
            return None

        return self.issue(
            op,
            title=f"Hash Match ({op.logical_op or 'join'}) over {rows:,.0f} estimated rows",
            description=(
                "Large hash operations need a matching memory grant and spill "
                "to tempdb when it is too small."
            ),
            suggestion="Check join predicates and indexes that would allow a merge or loop join.",
            impact=log_scaled(rows, 10),
            metrics={"estimated_rows": rows},
        )
