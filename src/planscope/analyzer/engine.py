"""
Diagnostic engine - runs rules over every operator of a statement.

Evaluation order is tree pre-order, then rule registration order. Issues
are ranked by impact with a stable sort, so equal impacts keep that order,
and the list is truncated to the configured maximum.

Usage:
    from planscope.analyzer.engine import DiagnosticEngine

    engine = DiagnosticEngine(exclude_rules={"LARGE_HASH_JOIN"})
    for issue in engine.diagnose(statement):
        print(f"[{issue.severity.value}] {issue.title} ({issue.impact:.0f})")
"""

from __future__ import annotations

import logging

# Registers the built-in rules
import planscope.analyzer.rules  # noqa: F401
from planscope.analyzer.models import Issue
from planscope.analyzer.registry import get_registry
from planscope.analyzer.rules.base import Rule
from planscope.config import Config, get_config
from planscope.exceptions import RuleError
from planscope.metrics import statement_metrics
from planscope.parser.models import Statement

logger = logging.getLogger(__name__)


class DiagnosticEngine:
    """
    Rule-based diagnostics for a single statement.

    Example:
        engine = DiagnosticEngine(max_issues=5)
        issues = engine.diagnose(plan.statements[0])
    """

    def __init__(
        self,
        rules: list[Rule] | None = None,
        include_rules: set[str] | None = None,
        exclude_rules: set[str] | None = None,
        max_issues: int | None = None,
        config: Config | None = None,
        fail_fast: bool = False,
    ) -> None:
        """
        Initialize the engine.

        Args:
            rules: Rule instances to use (if None, uses the registry)
            include_rules: Only run these rule IDs
            exclude_rules: Skip these rule IDs
            max_issues: Cap on returned issues (default: config.max_issues)
            config: Configuration instance (if None, uses get_config())
            fail_fast: Raise RuleError on the first rule failure

        Raises:
            ConfigurationError: If configured thresholds are invalid for a rule
        """
        self.config = config if config is not None else get_config()

        if rules is not None:
            self.rules = list(rules)
        else:
            self.rules = get_registry().instantiate(
                self.config, include=include_rules, exclude=exclude_rules
            )

        self.rules = [
            r for r in self.rules
            if self.config.is_rule_enabled(r.rule_id) and r.config.enabled
        ]

        self.max_issues = max_issues if max_issues is not None else self.config.max_issues
        self.fail_fast = fail_fast

    def diagnose(self, statement: Statement) -> list[Issue]:
        """
        Evaluate every rule against every operator of the statement.

        Returns:
            At most max_issues issues, highest impact first.
        """
        issues: list[Issue] = []

        for op, metrics in statement_metrics(statement):
            for rule in self.rules:
                try:
                    issue = rule.evaluate(op, metrics)
                except Exception as e:
                    if self.fail_fast:
                        raise RuleError(rule.rule_id, rule.version, e, node_id=op.node_id) from e
                    logger.warning(
                        "Rule %s failed at node %d: %s", rule.rule_id, op.node_id, e
                    )
                    continue
                if issue is not None:
                    issues.append(issue)

        issues.sort(key=lambda i: i.impact, reverse=True)

        logger.debug(
            "Statement %d: %d issues from %d rules",
            statement.statement_id, len(issues), len(self.rules),
        )
        return issues[: self.max_issues]


def diagnose(statement: Statement) -> list[Issue]:
    """Diagnose a statement with the default engine."""
    return DiagnosticEngine().diagnose(statement)
