"""
Traversal helpers for operator trees.

Every traversal here is iterative, so trees deeper than the interpreter's
recursion limit are handled like any other.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterator, NamedTuple

from planscope.parser.models import Operator


class OperatorVisit(NamedTuple):
    """One step of a pre-order walk."""

    operator: Operator
    parent: Operator | None
    depth: int
    index: int  # position among the parent's children (0 for the root)


def walk(root: Operator) -> Iterator[OperatorVisit]:
    """
    Traverse the tree, yielding each operator with its parent.

    This is the canonical way to iterate when the caller needs the parent
    or depth of an operator.

    Yields:
        OperatorVisit tuples in pre-order (document order)

    Example:
        for visit in walk(statement.root):
            if visit.operator.physical_op == "Key Lookup":
                print(f"lookup under {visit.parent.physical_op}")
    """
    stack: list[OperatorVisit] = [OperatorVisit(root, None, 0, 0)]
    while stack:
        visit = stack.pop()
        yield visit
        node = visit.operator
        for i in range(len(node.children) - 1, -1, -1):
            stack.append(OperatorVisit(node.children[i], node, visit.depth + 1, i))


def flatten(root: Operator) -> list[Operator]:
    """All operators of the tree in pre-order."""
    return [visit.operator for visit in walk(root)]


def find_parent(root: Operator, target: Operator) -> Operator | None:
    """Parent of `target` within `root`'s tree, by identity."""
    for visit in walk(root):
        if visit.operator is target:
            return visit.parent
    return None


def operators_by_kind(root: Operator) -> Counter[str]:
    """Count of operators per physical operator name."""
    return Counter(op.physical_op for op in flatten(root))
