"""
Per-operator cost and time metrics.

Cost attribution rules:
- The total cost of a statement is its declared StatementSubTreeCost. Each
  operator's subtree cost is already cumulative over its descendants, so
  summing operator costs would double count.
- Own cost is an operator's subtree cost minus its children's subtree
  costs, floored at 0 to absorb floating-point noise and plans where the
  children nominally cost more than their parent.

Time attribution mirrors cost, using ActualElapsedms from the runtime
counters. When no operator in the tree carries runtime information the time
metrics are None ("not recorded"), which is different from 0.0 ("recorded as
zero"). Batch-mode operators report their own elapsed time rather than a
cumulative one, so nothing is subtracted for them. Under a row-mode parent a
batch child counts as its own time plus the cumulative time of its
descendants.

All functions are pure and recompute on every call; callers that need
memoization own the cache.

Usage:
    from planscope.metrics import metrics_for, statement_metrics

    for op, m in statement_metrics(statement):
        print(f"{op.physical_op}: {m.cost_percentage:.1f}% ({m.own_cost_percentage:.1f}% own)")
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from planscope.parser.models import Operator, Statement
from planscope.traversal import flatten


class OperatorMetrics(BaseModel):
    """
    Derived metrics for one operator within its statement.

    Attributes:
        node_id: NodeId of the operator
        cost_percentage: Subtree cost as a share of the statement cost (0-100)
        own_cost: Cost attributable to the operator alone
        own_cost_percentage: Own cost as a share of the statement cost
        elapsed_ms: Cumulative actual elapsed time (None without runtime data)
        elapsed_percentage: Elapsed time as a share of the root's elapsed time
        own_elapsed_ms: Elapsed time attributable to the operator alone
    """

    model_config = ConfigDict(frozen=True)

    node_id: int
    cost_percentage: float = 0.0
    own_cost: float = 0.0
    own_cost_percentage: float = 0.0
    elapsed_ms: float | None = None
    elapsed_percentage: float | None = None
    own_elapsed_ms: float | None = None

    @property
    def has_time(self) -> bool:
        return self.elapsed_ms is not None


def _percentage(part: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return part / total * 100.0


def _tree_has_runtime(root: Operator) -> bool:
    return any(op.runtime is not None for op in root.iter_nodes())


def _raw_elapsed(op: Operator) -> float:
    return op.runtime.actual_elapsed_ms if op.runtime is not None else 0.0


# =============================================================================
# Cost
# =============================================================================


def statement_total_cost(statement: Statement) -> float:
    """Total plan cost: the statement's declared subtree cost."""
    return statement.subtree_cost


def cost_percentage(op: Operator, statement: Statement) -> float:
    """Operator subtree cost as a percentage of the statement cost (0 if that is 0)."""
    return _percentage(op.subtree_cost, statement_total_cost(statement))


def own_cost(op: Operator) -> float:
    """Cost of the operator alone, never negative."""
    children_cost = sum(child.subtree_cost for child in op.children)
    return max(0.0, op.subtree_cost - children_cost)


def own_cost_percentage(op: Operator, statement: Statement) -> float:
    return _percentage(own_cost(op), statement_total_cost(statement))


# =============================================================================
# Time
# =============================================================================


def elapsed_ms(op: Operator, statement: Statement) -> float | None:
    """
    Cumulative actual elapsed time of the operator.

    None when the statement has no runtime information anywhere; 0.0 for an
    operator that lacks counters in a plan that otherwise has them.
    """
    if not _tree_has_runtime(statement.root):
        return None
    return _raw_elapsed(op)


def own_elapsed_ms(op: Operator, statement: Statement) -> float | None:
    """Elapsed time attributable to the operator alone (None if unavailable)."""
    if not _tree_has_runtime(statement.root):
        return None
    return _own_elapsed(op)


def _is_batch(op: Operator) -> bool:
    return op.runtime is not None and (op.runtime.execution_mode or "").lower() == "batch"


def _cumulative_elapsed(op: Operator) -> float:
    """Elapsed time of the subtree, adding up own times below batch operators."""
    total = 0.0
    stack = [op]
    while stack:
        node = stack.pop()
        total += _raw_elapsed(node)
        if _is_batch(node):
            stack.extend(node.children)
    return total


def _own_elapsed(op: Operator) -> float:
    if _is_batch(op):
        return _raw_elapsed(op)
    children_elapsed = sum(_cumulative_elapsed(child) for child in op.children)
    return max(0.0, _raw_elapsed(op) - children_elapsed)


def elapsed_percentage(op: Operator, statement: Statement) -> float | None:
    """Elapsed time as a percentage of the root operator's elapsed time."""
    if not _tree_has_runtime(statement.root):
        return None
    return _percentage(_raw_elapsed(op), _raw_elapsed(statement.root))


# =============================================================================
# Bundled metrics
# =============================================================================


def _build_metrics(op: Operator, statement: Statement, has_runtime: bool) -> OperatorMetrics:
    total_cost = statement_total_cost(statement)
    own = own_cost(op)

    elapsed: float | None = None
    elapsed_pct: float | None = None
    own_elapsed: float | None = None
    if has_runtime:
        elapsed = _raw_elapsed(op)
        elapsed_pct = _percentage(elapsed, _raw_elapsed(statement.root))
        own_elapsed = _own_elapsed(op)

    return OperatorMetrics(
        node_id=op.node_id,
        cost_percentage=_percentage(op.subtree_cost, total_cost),
        own_cost=own,
        own_cost_percentage=_percentage(own, total_cost),
        elapsed_ms=elapsed,
        elapsed_percentage=elapsed_pct,
        own_elapsed_ms=own_elapsed,
    )


def metrics_for(op: Operator, statement: Statement) -> OperatorMetrics:
    """All derived metrics for one operator of `statement`."""
    return _build_metrics(op, statement, _tree_has_runtime(statement.root))


def statement_metrics(statement: Statement) -> list[tuple[Operator, OperatorMetrics]]:
    """
    Metrics for every operator of the statement, in pre-order.

    Pairs are returned instead of a dict keyed by node id because node ids
    are only unique within well-formed plans.
    """
    has_runtime = _tree_has_runtime(statement.root)
    return [
        (op, _build_metrics(op, statement, has_runtime))
        for op in flatten(statement.root)
    ]
