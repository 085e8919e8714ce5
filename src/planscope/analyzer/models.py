"""
Data models for the analyzer module.

These models represent the output of diagnostic rules - the issues detected
in a statement's plan. They're designed to be:
- Immutable (frozen=True): Issues don't change after creation
- Serializable: Easy JSON output via model_dump()
- Bounded: impact is always within [0, 100]
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

MIN_IMPACT = 0.0
MAX_IMPACT = 100.0


class Severity(str, Enum):
    """
    Severity levels for issues.

    CRITICAL: Severe performance impact, address first
    WARNING: Significant performance issue that should be addressed
    INFO: Optimization opportunity, nice-to-have improvement
    """
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    def __lt__(self, other: object) -> bool:
        """Enable sorting by severity (CRITICAL > WARNING > INFO)."""
        if not isinstance(other, Severity):
            return NotImplemented
        order = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}
        return order[self] < order[other]


def clamp_impact(value: float) -> float:
    """Bound an impact score to [0, 100]."""
    return max(MIN_IMPACT, min(MAX_IMPACT, value))


class Issue(BaseModel):
    """
    A single problem detected in a statement's plan.

    Attributes:
        rule_id: Identifier of the rule that produced the issue
            (UPPER_SNAKE_CASE, e.g. "LARGE_SCAN").
        severity: How serious the issue is.
        title: Human-readable one-line summary.
        description: Detailed explanation of why this is a problem.
        suggestion: Actionable fix recommendation, if applicable.
        node_id: NodeId of the operator the issue is about, if any.
        physical_op: Physical operator name of that operator.
        impact: Ranking score in [0, 100]; higher is more important.
        metrics: (name, value) pairs of quantitative data, read with metric().

    Example:
        Issue(
            rule_id="LARGE_SCAN",
            severity=Severity.CRITICAL,
            title="Table Scan on Orders (50,000 estimated rows)",
            description="Every row of Orders is read...",
            node_id=0,
            physical_op="Table Scan",
            impact=70.5,
        )
    """

    model_config = ConfigDict(frozen=True)

    rule_id: str = Field(..., min_length=1)
    severity: Severity
    title: str = Field(..., min_length=1)
    description: str = ""
    suggestion: str | None = None
    node_id: int | None = None
    physical_op: str | None = None
    impact: float = Field(default=0.0, ge=MIN_IMPACT, le=MAX_IMPACT)
    metrics: tuple[tuple[str, float], ...] = ()

    def metric(self, name: str) -> float | None:
        """Named measurement behind the issue, or None."""
        return dict(self.metrics).get(name)
