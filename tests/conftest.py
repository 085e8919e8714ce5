"""Shared fixtures and plan builders for the planscope test suite."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pytest

from planscope.config import Config, reset_config
from planscope.parser import PlanDocument, Statement, parse_plan

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SHOWPLAN_NS = "http://schemas.microsoft.com/sqlserver/2004/07/showplan"


def load_fixture(name: str) -> str:
    """Load a .sqlplan fixture file as text."""
    path = FIXTURES_DIR / f"{name}.sqlplan"
    return path.read_text(encoding="utf-8")


def relop(
    node_id: int,
    physical_op: str,
    *,
    cost: float = 1.0,
    rows: float = 1.0,
    logical_op: str | None = None,
    extra: str = "",
    body: str = "",
) -> str:
    """XML for one RelOp element. `body` goes after the OutputList."""
    return (
        f'<RelOp NodeId="{node_id}" PhysicalOp="{physical_op}" '
        f'LogicalOp="{logical_op or physical_op}" EstimateRows="{rows}" '
        f'EstimatedTotalSubtreeCost="{cost}" {extra}>'
        f"<OutputList />{body}</RelOp>"
    )


def runtime(rows: int, executions: int = 1, elapsed: float = 0.0, mode: str = "Row") -> str:
    return (
        "<RunTimeInformation>"
        f'<RunTimeCountersPerThread Thread="0" ActualRows="{rows}" '
        f'ActualExecutions="{executions}" ActualElapsedms="{elapsed}" '
        f'ActualCPUms="{elapsed}" ActualExecutionMode="{mode}" />'
        "</RunTimeInformation>"
    )


def plan_xml(root_relop: str, statement_cost: float) -> str:
    """A complete single-statement ShowPlanXML document."""
    return (
        f'<ShowPlanXML xmlns="{SHOWPLAN_NS}" Version="1.564" Build="16.0.1000.6">'
        "<BatchSequence><Batch><Statements>"
        f'<StmtSimple StatementId="1" StatementType="SELECT" '
        f'StatementSubTreeCost="{statement_cost}">'
        f"<QueryPlan>{root_relop}</QueryPlan>"
        "</StmtSimple></Statements></Batch></BatchSequence></ShowPlanXML>"
    )


def statement_from(root_relop: str, statement_cost: float) -> Statement:
    return parse_plan(plan_xml(root_relop, statement_cost)).statements[0]


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """Keep PLANSCOPE_* variables from the environment out of the tests."""
    for key in list(os.environ):
        if key.startswith("PLANSCOPE_"):
            monkeypatch.delenv(key)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def default_config() -> Config:
    return Config()


@pytest.fixture
def build_statement() -> Callable[[str, float], Statement]:
    return statement_from


@pytest.fixture
def table_scan_document() -> PlanDocument:
    """One Table Scan, 100 rows, the whole statement cost."""
    return parse_plan(load_fixture("single_table_scan"))


@pytest.fixture
def nested_loops_document() -> PlanDocument:
    """Index Seek + Key Lookup under Nested Loops, estimated plan."""
    return parse_plan(load_fixture("nested_loops_lookup"))


@pytest.fixture
def actual_plan_document() -> PlanDocument:
    """Sort over a parallel Hash Match, captured with runtime counters."""
    return parse_plan(load_fixture("actual_hash_join"))


@pytest.fixture
def subquery_document() -> PlanDocument:
    """Filter with an EXISTS subquery operator nested in its predicate."""
    return parse_plan(load_fixture("subquery_filter"))
