"""
Package-level exception hierarchy for planscope.

All exceptions inherit from PlanScopeError, enabling:
- Catching all planscope errors with a single except clause
- Context fields for debugging (rule_id, node_id, config_key, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    PlanScopeError
    ├── ParseError             – Failed to read or parse a plan document
    │   └── XmlMalformedError  – The document is not well-formed XML
    └── AnalyzerError          – Errors during diagnostics
        ├── RuleError          – A specific rule failed during evaluation
        └── ConfigurationError – Invalid analyzer configuration

Structural gaps (a statement without a query plan) and attributes that fail
numeric coercion are not errors: the parser substitutes defaults.
"""

from __future__ import annotations

from typing import Any


class PlanScopeError(Exception):
    """
    Base exception for all planscope errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseError(PlanScopeError):
    """
    Failed to read or parse a Showplan document.

    Attributes:
        detail: Technical details for debugging (parser diagnostic, OS error).
        source: Where the error occurred (e.g., "xml_decode", "file_read").
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result


class XmlMalformedError(ParseError):
    """
    The input is not well-formed XML.

    This is the only failure mode of parse_plan(). No partial document
    is produced.
    """

    def __init__(self, detail: str) -> None:
        super().__init__(
            "Plan document is not well-formed XML",
            detail=detail,
            source="xml_decode",
        )


# ── Analysis Errors ──────────────────────────────────────────────────────


class AnalyzerError(PlanScopeError):
    """Errors during diagnostic rule evaluation."""
    pass


class RuleError(AnalyzerError):
    """
    Error during rule evaluation.

    Attributes:
        rule_id: The ID of the rule that failed.
        rule_version: Version of the rule.
        node_id: NodeId of the operator being evaluated (if known).
        original_error: The underlying exception.
    """

    def __init__(
        self,
        rule_id: str,
        rule_version: str,
        original_error: Exception,
        node_id: int | None = None,
    ) -> None:
        self.rule_id = rule_id
        self.rule_version = rule_version
        self.node_id = node_id
        self.original_error = original_error

        context = f"Rule '{rule_id}' v{rule_version}"
        if node_id is not None:
            context += f" at node {node_id}"

        message = (
            f"{context} failed: "
            f"{original_error.__class__.__name__}: {original_error}"
        )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output / logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "rule_id": self.rule_id,
            "rule_version": self.rule_version,
            "node_id": self.node_id,
            "original_error_type": self.original_error.__class__.__name__,
            "original_error_message": str(self.original_error),
        }


class ConfigurationError(AnalyzerError):
    """
    Error in analyzer configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
