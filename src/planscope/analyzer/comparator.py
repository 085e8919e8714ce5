"""
Statement comparison.

Answers "what changed between these two plans?" for a before/after pair:
- aggregate totals (node count, cost, elapsed time) and their deltas
- which operator kinds appeared, disappeared or changed count

The comparison is structural only: operators are counted by physical
operator name, not matched node by node. compare(a, b) and compare(b, a)
report the same changed kinds with added and removed swapped.

Usage:
    from planscope.analyzer.comparator import compare

    result = compare(before, after)
    for diff in result.added:
        print(f"+ {diff.kind} x{diff.comparison_count}")
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict

from planscope.metrics import own_elapsed_ms
from planscope.parser.models import Statement
from planscope.traversal import flatten, operators_by_kind


class PlanTotals(BaseModel):
    """Aggregate figures for one statement."""

    model_config = ConfigDict(frozen=True)

    node_count: int
    total_cost: float
    total_elapsed_ms: float | None = None


class DiffStatus(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


class OperatorDiff(BaseModel):
    """Count change for one operator kind."""

    model_config = ConfigDict(frozen=True)

    kind: str
    primary_count: int
    comparison_count: int
    status: DiffStatus

    @property
    def delta(self) -> int:
        return self.comparison_count - self.primary_count


class ComparisonResult(BaseModel):
    """
    Outcome of comparing two statements.

    Attributes:
        primary: Totals of the reference statement
        comparison: Totals of the statement compared against it
        cost_delta_pct: Cost change in percent, None when unavailable
        time_delta_pct: Elapsed change in percent, None unless both sides
            carry runtime information
        node_count_delta: comparison node count minus primary node count
        diffs: Operator kinds whose counts differ, sorted by kind
    """

    model_config = ConfigDict(frozen=True)

    primary: PlanTotals
    comparison: PlanTotals
    cost_delta_pct: float | None = None
    time_delta_pct: float | None = None
    node_count_delta: int = 0
    diffs: tuple[OperatorDiff, ...] = ()

    @property
    def added(self) -> list[OperatorDiff]:
        return [d for d in self.diffs if d.status is DiffStatus.ADDED]

    @property
    def removed(self) -> list[OperatorDiff]:
        return [d for d in self.diffs if d.status is DiffStatus.REMOVED]

    @property
    def changed(self) -> list[OperatorDiff]:
        return [d for d in self.diffs if d.status is DiffStatus.CHANGED]


def percent_delta(primary: float | None, comparison: float | None) -> float | None:
    """
    (comparison - primary) / primary * 100.

    None when either value is missing or primary is 0, never inf or nan.
    """
    if primary is None or comparison is None or primary == 0:
        return None
    return (comparison - primary) / primary * 100.0


def plan_totals(statement: Statement) -> PlanTotals:
    operators = flatten(statement.root)

    elapsed: float | None = None
    if statement.has_runtime_info:
        elapsed = sum(own_elapsed_ms(op, statement) or 0.0 for op in operators)

    return PlanTotals(
        node_count=len(operators),
        total_cost=statement.subtree_cost,
        total_elapsed_ms=elapsed,
    )


def _diff_kinds(primary: Statement, comparison: Statement) -> tuple[OperatorDiff, ...]:
    before = operators_by_kind(primary.root)
    after = operators_by_kind(comparison.root)

    diffs: list[OperatorDiff] = []
    for kind in sorted(set(before) | set(after)):
        p, c = before.get(kind, 0), after.get(kind, 0)
        if p == c:
            continue
        if p == 0:
            status = DiffStatus.ADDED
        elif c == 0:
            status = DiffStatus.REMOVED
        else:
            status = DiffStatus.CHANGED
        diffs.append(OperatorDiff(kind=kind, primary_count=p, comparison_count=c, status=status))

    return tuple(diffs)


def compare(primary: Statement, comparison: Statement) -> ComparisonResult:
    """Compare two statements structurally and by totals."""
    primary_totals = plan_totals(primary)
    comparison_totals = plan_totals(comparison)

    return ComparisonResult(
        primary=primary_totals,
        comparison=comparison_totals,
        cost_delta_pct=percent_delta(primary_totals.total_cost, comparison_totals.total_cost),
        time_delta_pct=percent_delta(
            primary_totals.total_elapsed_ms, comparison_totals.total_elapsed_ms
        ),
        node_count_delta=comparison_totals.node_count - primary_totals.node_count,
        diffs=_diff_kinds(primary, comparison),
    )
