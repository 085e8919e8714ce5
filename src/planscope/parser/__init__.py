"""Showplan XML parsing module."""

from planscope.exceptions import ParseError, XmlMalformedError
from planscope.parser.config import DEFAULT_CONFIG, ParserConfig
from planscope.parser.models import (
    Batch,
    Operator,
    OperationDetail,
    PlanDocument,
    QueryPlan,
    RuntimeInfo,
    Statement,
    WaitStat,
)
from planscope.parser.parser import parse_plan, parse_plan_file

__all__ = [
    "Batch",
    "Operator",
    "OperationDetail",
    "PlanDocument",
    "QueryPlan",
    "RuntimeInfo",
    "Statement",
    "WaitStat",
    "parse_plan",
    "parse_plan_file",
    "ParseError",
    "XmlMalformedError",
    "ParserConfig",
    "DEFAULT_CONFIG",
]
