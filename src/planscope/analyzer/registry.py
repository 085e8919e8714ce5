"""
Ordered registry of diagnostic rules.

Registration order is part of the ranking contract: the engine evaluates
operators in pre-order and, for each operator, rules in registration order,
then sorts issues by impact with a stable sort. Two issues with equal impact
therefore come out in tree order first and registry order second.
`select()` and `instantiate()` always preserve that order, whatever order
the include/exclude sets are given in.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, TypeVar

if TYPE_CHECKING:
    from planscope.analyzer.rules.base import Rule
    from planscope.config import Config

T = TypeVar("T", bound="Rule")

RULE_ID_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*$")


class RuleRegistry:
    """Rule classes keyed by rule ID, in registration order."""

    def __init__(self) -> None:
        self._rules: dict[str, type[Rule]] = {}

    def register(self, rule_cls: type[T]) -> type[T]:
        """
        Append a rule class to the evaluation order.

        Raises:
            ValueError: If the rule ID is not UPPER_SNAKE_CASE, since it
                doubles as the PLANSCOPE_RULE_<ID>__<SETTING> key, or is
                already taken.
        """
        rule_id = getattr(rule_cls, "rule_id", "")
        if not RULE_ID_PATTERN.match(rule_id):
            raise ValueError(
                f"{rule_cls.__name__}.rule_id must be UPPER_SNAKE_CASE, got {rule_id!r}"
            )

        existing = self._rules.get(rule_id)
        if existing is not None:
            raise ValueError(
                f"Rule '{rule_id}' already registered by {existing.__module__}.{existing.__name__}"
            )

        self._rules[rule_id] = rule_cls
        return rule_cls

    @property
    def rule_ids(self) -> tuple[str, ...]:
        return tuple(self._rules)

    def select(
        self,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
    ) -> list[type[Rule]]:
        """Rule classes kept by include/exclude, in registration order."""
        wanted = None if include is None else set(include)
        unwanted = set(exclude or ())
        return [
            cls for rule_id, cls in self._rules.items()
            if (wanted is None or rule_id in wanted) and rule_id not in unwanted
        ]

    def instantiate(
        self,
        config: Config,
        include: Iterable[str] | None = None,
        exclude: Iterable[str] | None = None,
    ) -> list[Rule]:
        """
        Build the rules enabled by `config`, in registration order.

        Each rule receives its threshold overrides from config.

        Raises:
            ConfigurationError: If overrides fail a rule's config schema.
        """
        return [
            cls(config.get_rule_thresholds(cls.rule_id) or None)
            for cls in self.select(include, exclude)
            if config.is_rule_enabled(cls.rule_id)
        ]


_global_registry = RuleRegistry()


def get_registry() -> RuleRegistry:
    """The registry the built-in rules register into."""
    return _global_registry


def register_rule(rule_cls: type[T]) -> type[T]:
    """
    Class decorator adding a rule to the global registry.

    Example:
        @register_rule
        class LargeScan(Rule):
            rule_id = "LARGE_SCAN"
            ...
    """
    return _global_registry.register(rule_cls)
