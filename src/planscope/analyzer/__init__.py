"""
Diagnostics and comparison over parsed statements.

- DiagnosticEngine / diagnose: rule-based issues ranked by impact
- compare: structural before/after comparison of two statements
"""

from planscope.analyzer.comparator import (
    ComparisonResult,
    DiffStatus,
    OperatorDiff,
    PlanTotals,
    compare,
    percent_delta,
    plan_totals,
)
from planscope.analyzer.engine import DiagnosticEngine, diagnose
from planscope.analyzer.models import Issue, Severity
from planscope.analyzer.registry import RuleRegistry, get_registry, register_rule
from planscope.analyzer.rules.base import Rule, RuleConfig

__all__ = [
    "DiagnosticEngine",
    "diagnose",
    "Issue",
    "Severity",
    "Rule",
    "RuleConfig",
    "RuleRegistry",
    "get_registry",
    "register_rule",
    "compare",
    "percent_delta",
    "plan_totals",
    "ComparisonResult",
    "DiffStatus",
    "OperatorDiff",
    "PlanTotals",
]
