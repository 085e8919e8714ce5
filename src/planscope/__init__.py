"""planscope - SQL Server execution plan analyzer."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from planscope.exceptions import (
    PlanScopeError,
    ParseError,
    XmlMalformedError,
    AnalyzerError,
    RuleError,
    ConfigurationError,
)

# Plan model and parsing
from planscope.parser import (
    Batch,
    Operator,
    PlanDocument,
    QueryPlan,
    RuntimeInfo,
    Statement,
    WaitStat,
    parse_plan,
    parse_plan_file,
)
from planscope.traversal import flatten, walk

# Derived metrics
from planscope.metrics import OperatorMetrics, metrics_for, statement_metrics

# Diagnostics and comparison
from planscope.analyzer import (
    ComparisonResult,
    DiagnosticEngine,
    Issue,
    Severity,
    compare,
    diagnose,
)

# Configuration
from planscope.config import Config, get_config

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "PlanScopeError",
    "ParseError",
    "XmlMalformedError",
    "AnalyzerError",
    "RuleError",
    "ConfigurationError",
    # Parsing
    "parse_plan",
    "parse_plan_file",
    "PlanDocument",
    "Batch",
    "Statement",
    "QueryPlan",
    "Operator",
    "RuntimeInfo",
    "WaitStat",
    # Traversal
    "flatten",
    "walk",
    # Metrics
    "metrics_for",
    "statement_metrics",
    "OperatorMetrics",
    # Analysis
    "DiagnosticEngine",
    "diagnose",
    "Issue",
    "Severity",
    "compare",
    "ComparisonResult",
    # Config
    "Config",
    "get_config",
]
