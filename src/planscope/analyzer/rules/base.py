"""
Base class for diagnostic rules.

A rule is an independent predicate over one operator and its derived
metrics. It returns at most one Issue per operator; one operator may trigger
several rules. Rules never see each other's output, so adding a rule never
requires touching another one.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from planscope.analyzer.models import Issue, Severity, clamp_impact
from planscope.exceptions import ConfigurationError
from planscope.metrics import OperatorMetrics
from planscope.parser.models import Operator


class RuleConfig(BaseModel):
    """
    Base configuration for all rules.

    Rules define their own thresholds by subclassing this. Default values
    are the built-in thresholds; overrides come from planscope.config.

    Example:
        class MyRuleConfig(RuleConfig):
            threshold_rows: float = 1000
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True


def log_scaled(value: float, factor: float) -> float:
    """`factor * log10(value)` clamped to [0, 100]; 0 for non-positive values."""
    if value <= 0:
        return 0.0
    return clamp_impact(factor * math.log10(value))


class Rule(ABC):
    """
    Abstract base class for diagnostic rules.

    Rules should be:
    - Deterministic: Same input always produces same output
    - Local: Look only at the operator and its metrics
    - Focused: One rule, one concern

    Attributes:
        rule_id: Unique identifier, UPPER_SNAKE_CASE (e.g., "LARGE_SCAN")
        version: Semver string, bump when detection logic changes
        severity: Default severity for issues from this rule
        description: One-line description for documentation
        config_schema: Pydantic model for rule configuration
    """

    rule_id: str
    version: str = "1.0.0"
    severity: Severity
    description: str = ""

    config_schema: type[RuleConfig] = RuleConfig

    def __init__(self, config: RuleConfig | dict[str, Any] | None = None) -> None:
        """
        Initialize the rule with configuration.

        Args:
            config: RuleConfig instance, dict (validated against
                config_schema) or None for defaults.

        Raises:
            ConfigurationError: If a dict config fails validation.
        """
        if config is None:
            self.config = self.config_schema()
        elif isinstance(config, dict):
            try:
                self.config = self.config_schema(**config)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid configuration for rule {self.rule_id}: {e.errors()[0]['msg']}",
                    config_key=f"{self.rule_id}.{e.errors()[0]['loc'][0] if e.errors()[0]['loc'] else ''}",
                ) from e
        else:
            self.config = config

    @abstractmethod
    def evaluate(self, op: Operator, metrics: OperatorMetrics) -> Issue | None:
        """
        Check one operator.

        Args:
            op: The operator to check
            metrics: Its derived metrics within the statement

        Returns:
            An Issue, or None if the rule does not apply.
        """

    def issue(
        self,
        op: Operator,
        *,
        title: str,
        description: str,
        impact: float,
        severity: Severity | None = None,
        suggestion: str | None = None,
        metrics: dict[str, float] | None = None,
    ) -> Issue:
        """Build an Issue attributed to `op` with a bounded impact."""
        return Issue(
            rule_id=self.rule_id,
            severity=severity or self.severity,
            title=title,
            description=description,
            suggestion=suggestion,
            node_id=op.node_id,
            physical_op=op.physical_op,
            impact=clamp_impact(impact),
            metrics=tuple((metrics or {}).items()),
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(rule_id={self.rule_id!r}, version={self.version!r})"


def describe_object(op: Operator) -> str:
    """Table name for titles, falling back to the operator name."""
    return op.object_name or op.physical_op
