"""
Configuration system for planscope.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON config file for local development
- Per-rule enable flags and threshold overrides

Usage:
    from planscope.config import get_config

    config = get_config()

    if config.is_rule_enabled("LARGE_SCAN"):
        overrides = config.get_rule_thresholds("LARGE_SCAN")

Environment variables:
    PLANSCOPE_CONFIG_FILE=planscope.json
    PLANSCOPE_MAX_ISSUES=10
    PLANSCOPE_RULE_LARGE_SCAN__ENABLED=false
    PLANSCOPE_RULE_LARGE_SCAN__CRITICAL_ROWS=50000

Rule settings use a double underscore between the rule ID and the setting
name, because both contain single underscores.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planscope.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLANSCOPE_"
RULE_PREFIX = f"{ENV_PREFIX}RULE_"

DEFAULT_MAX_ISSUES = 10


class RuleSettings(BaseModel):
    """Configuration for a single rule."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether the rule is enabled")
    thresholds: dict[str, int | float] = Field(
        default_factory=dict,
        description="Overrides for the rule's config fields",
    )


class Config(BaseModel):
    """
    planscope configuration.

    Loaded from environment variables and an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    max_issues: int = Field(
        default=DEFAULT_MAX_ISSUES,
        gt=0,
        description="Maximum number of issues returned by diagnose()",
    )
    rules: dict[str, RuleSettings] = Field(
        default_factory=dict,
        description="Per-rule settings keyed by rule ID",
    )

    def is_rule_enabled(self, rule_id: str) -> bool:
        """Check if a rule is enabled (rules are enabled by default)."""
        if rule_id in self.rules:
            return self.rules[rule_id].enabled
        return True

    def get_rule_thresholds(self, rule_id: str) -> dict[str, int | float]:
        """Threshold overrides for a rule (empty when none are configured)."""
        if rule_id in self.rules:
            return dict(self.rules[rule_id].thresholds)
        return {}


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse integer setting %r, using %d", value, default)
        return default


def _parse_number(value: str) -> int | float:
    return float(value) if "." in value or "e" in value.lower() else int(value)


def _rules_from_env(environ: dict[str, str]) -> dict[str, RuleSettings]:
    rules: dict[str, RuleSettings] = {}

    for key, value in environ.items():
        if not key.startswith(RULE_PREFIX):
            continue

        rule_id, sep, setting = key[len(RULE_PREFIX):].partition("__")
        if not sep or not rule_id or not setting:
            logger.warning("Ignoring malformed rule setting %s", key)
            continue

        current = rules.get(rule_id, RuleSettings())
        setting = setting.lower()

        if setting == "enabled":
            rules[rule_id] = current.model_copy(
                update={"enabled": _parse_env_bool(value, True)}
            )
            continue

        try:
            number = _parse_number(value)
        except ValueError:
            logger.warning("Could not parse threshold %s=%s", key, value)
            continue

        thresholds = dict(current.thresholds)
        thresholds[setting] = number
        rules[rule_id] = current.model_copy(update={"thresholds": thresholds})

    return rules


def load_config_from_env(environ: dict[str, str] | None = None) -> Config:
    """
    Load configuration from environment variables.

    Args:
        environ: Mapping to read instead of os.environ (for testing).
    """
    env = dict(os.environ) if environ is None else environ

    try:
        return Config(
            max_issues=_parse_env_int(env.get(f"{ENV_PREFIX}MAX_ISSUES"), DEFAULT_MAX_ISSUES),
            rules=_rules_from_env(env),
        )
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in environment: {e.errors()[0]['msg']}",
            config_key=".".join(str(x) for x in e.errors()[0]["loc"]),
        ) from e


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON file.

    Falls back to environment variables when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but is not a valid config.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a JSON object")

    try:
        return Config(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid config file {path}: {e.errors()[0]['msg']}",
            config_key=".".join(str(x) for x in e.errors()[0]["loc"]),
        ) from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PLANSCOPE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
