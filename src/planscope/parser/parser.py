"""
Parser for SQL Server Showplan XML (.sqlplan) documents.

This module handles:
- Loading Showplan XML from strings, bytes or files (UTF-8 or UTF-16)
- Matching elements by local name, whatever namespace prefix the
  producing tool used
- Discovering each operator's direct child operators through
  operation-specific wrapper elements of any depth
- Converting the XML into the frozen models in planscope.parser.models

Error handling philosophy: only a document that is not well-formed XML is
fatal. Everything beneath the document level degrades to defaults: missing
structural elements become empty placeholders and attributes that are absent
or not numeric become zero/False.
"""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Callable

from planscope.exceptions import ParseError, XmlMalformedError
from planscope.parser.config import DEFAULT_CONFIG, ParserConfig
from planscope.parser.models import (
    AggregateDetail,
    Batch,
    ColumnReference,
    ComputeScalarDetail,
    DefinedValue,
    FilterDetail,
    HashDetail,
    IndexScanDetail,
    MemoryGrant,
    MergeDetail,
    NestedLoopsDetail,
    NoDetail,
    ObjectReference,
    Operator,
    OperationDetail,
    OrderByColumn,
    ParallelismDetail,
    Parameter,
    PlanDocument,
    QueryPlan,
    RuntimeInfo,
    SeekPredicate,
    SeekPrefix,
    SortDetail,
    Statement,
    WaitStat,
)

logger = logging.getLogger(__name__)

OPERATOR_ELEMENT = "RelOp"


def parse_plan(
    source: str | bytes,
    config: ParserConfig | None = None,
) -> PlanDocument:
    """
    Parse Showplan XML text into a PlanDocument.

    Args:
        source: The XML document. A str may carry any encoding declaration;
            bytes may be UTF-8 or UTF-16 (BOM or declaration).
        config: Parser configuration. Defaults to DEFAULT_CONFIG.

    Returns:
        PlanDocument: The immutable plan tree.

    Raises:
        XmlMalformedError: If the input is not well-formed XML. No partial
            document is returned.

    Example:
        >>> document = parse_plan(xml_text)
        >>> statement = document.statements[0]
        >>> statement.root.physical_op
        'Nested Loops'
    """
    config = config or DEFAULT_CONFIG
    root = _load_xml(source)

    if _local_name(root) != "ShowPlanXML":
        logger.debug("Unexpected document root <%s>", _local_name(root))

    document = PlanDocument(
        version=root.get("Version", ""),
        build=root.get("Build", ""),
        batches=_parse_batches(root, config),
    )
    logger.debug(
        "Parsed plan document: %d batch(es), %d statement(s)",
        len(document.batches),
        len(document.statements),
    )
    return document


def parse_plan_file(
    path: str | Path,
    config: ParserConfig | None = None,
) -> PlanDocument:
    """
    Parse a .sqlplan file.

    The file is read as bytes so that the XML declaration / BOM decides the
    encoding.

    Raises:
        ParseError: If the file cannot be read, is empty or exceeds
            config.max_file_size_mb.
        XmlMalformedError: If the content is not well-formed XML.
    """
    config = config or DEFAULT_CONFIG
    filepath = Path(path)

    if not filepath.exists():
        raise ParseError(f"File not found: {filepath}", source="file_read")

    if not filepath.is_file():
        raise ParseError(f"Path is not a file: {filepath}", source="file_read")

    size_mb = filepath.stat().st_size / (1024 * 1024)
    if size_mb > config.max_file_size_mb:
        raise ParseError(
            f"File too large: {size_mb:.1f}MB (max {config.max_file_size_mb}MB)",
            detail="Increase max_file_size_mb in ParserConfig for known-large plans",
            source="resource_limit",
        )

    try:
        content = filepath.read_bytes()
    except OSError as e:
        raise ParseError(
            f"Cannot read file: {filepath}",
            detail=str(e),
            source="file_read",
        ) from e

    if not content.strip():
        raise ParseError(f"File is empty: {filepath}", source="file_read")

    return parse_plan(content, config)


# =============================================================================
# XML access helpers (namespace-agnostic)
# =============================================================================


def _load_xml(source: str | bytes) -> ET.Element:
    if isinstance(source, str):
        source = source.lstrip("\ufeff")
    elif not isinstance(source, (bytes, bytearray)):
        raise TypeError(
            f"Expected str or bytes, got {type(source).__name__}"
        )
    try:
        return ET.fromstring(source)
    except ET.ParseError as e:
        raise XmlMalformedError(str(e)) from e


def _local_name(elem: ET.Element) -> str:
    tag = elem.tag
    if not isinstance(tag, str):
        return ""
    return tag.rpartition("}")[2].rpartition(":")[2]


def _child(parent: ET.Element, name: str) -> ET.Element | None:
    """First direct child with the given local name."""
    for child in parent:
        if _local_name(child) == name:
            return child
    return None


def _children(parent: ET.Element | None, name: str) -> list[ET.Element]:
    """All direct children with the given local name."""
    if parent is None:
        return []
    return [child for child in parent if _local_name(child) == name]


def _find_child_operators(elem: ET.Element) -> list[ET.Element]:
    """
    Find the operators that are direct children of an operator element.

    Child RelOps may be wrapped in operation-specific elements at any depth
    (NestedLoops, Filter > Predicate > ScalarOperator > Subquery, ...).
    Non-operator elements are descended into; a RelOp is recorded and its
    own subtree is left for when that RelOp is expanded. Document order is
    preserved.
    """
    found: list[ET.Element] = []
    stack = list(reversed(list(elem)))
    while stack:
        node = stack.pop()
        if _local_name(node) == OPERATOR_ELEMENT:
            found.append(node)
            continue
        stack.extend(reversed(list(node)))
    return found


# Attribute coercion: always total, never raises.

def _str_attr(elem: ET.Element, name: str) -> str | None:
    value = elem.get(name)
    return value if value else None


def _float_attr(elem: ET.Element, name: str, default: float = 0.0) -> float:
    value = _opt_float_attr(elem, name)
    return default if value is None else value


def _opt_float_attr(elem: ET.Element, name: str) -> float | None:
    raw = elem.get(name)
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _int_attr(elem: ET.Element, name: str, default: int = 0) -> int:
    value = _opt_int_attr(elem, name)
    return default if value is None else value


def _opt_int_attr(elem: ET.Element, name: str) -> int | None:
    raw = elem.get(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        pass
    value = _opt_float_attr(elem, name)
    return int(value) if value is not None else None


def _bool_attr(elem: ET.Element, name: str) -> bool:
    return (elem.get(name) or "").strip().lower() in ("true", "1")


def _strip_brackets(value: str | None) -> str | None:
    if not value:
        return None
    return value.replace("[", "").replace("]", "") or None


def _scalar_string(parent: ET.Element | None) -> str | None:
    """ScalarString of the ScalarOperator directly under `parent`."""
    if parent is None:
        return None
    scalar = _child(parent, "ScalarOperator")
    if scalar is None:
        return None
    return _str_attr(scalar, "ScalarString")


# =============================================================================
# Document structure
# =============================================================================


def _parse_batches(root: ET.Element, config: ParserConfig) -> tuple[Batch, ...]:
    batch_sequence = _child(root, "BatchSequence")
    if batch_sequence is None:
        logger.debug("No BatchSequence element; document has no batches")
        return ()

    return tuple(
        Batch(statements=_parse_statements(batch_el, config))
        for batch_el in _children(batch_sequence, "Batch")
    )


def _parse_statements(batch_el: ET.Element, config: ParserConfig) -> tuple[Statement, ...]:
    statements_el = _child(batch_el, "Statements")
    if statements_el is None:
        logger.debug("Batch without Statements element")
        return ()

    return tuple(
        _parse_statement(stmt_el, config)
        for stmt_el in _children(statements_el, "StmtSimple")
    )


def _parse_statement(stmt_el: ET.Element, config: ParserConfig) -> Statement:
    statement_id = _int_attr(stmt_el, "StatementId")
    plan_el = _child(stmt_el, "QueryPlan")

    if plan_el is None:
        logger.debug("Statement %d has no QueryPlan; using placeholder", statement_id)
        query_plan = QueryPlan()
    else:
        query_plan = _parse_query_plan(plan_el, config)

    return Statement(
        statement_id=statement_id,
        statement_text=stmt_el.get("StatementText", ""),
        statement_type=stmt_el.get("StatementType", ""),
        subtree_cost=_float_attr(stmt_el, "StatementSubTreeCost"),
        estimated_rows=_float_attr(stmt_el, "StatementEstRows"),
        optimization_level=_str_attr(stmt_el, "StatementOptmLevel"),
        query_hash=_str_attr(stmt_el, "QueryHash"),
        query_plan_hash=_str_attr(stmt_el, "QueryPlanHash"),
        query_plan=query_plan,
    )


def _parse_query_plan(plan_el: ET.Element, config: ParserConfig) -> QueryPlan:
    relop_el = _child(plan_el, OPERATOR_ELEMENT)
    grant_el = _child(plan_el, "MemoryGrantInfo")
    params_el = _child(plan_el, "ParameterList")

    if relop_el is None:
        logger.debug("QueryPlan has no root RelOp; using placeholder operator")
        root = Operator()
    else:
        root = _build_operator_tree(relop_el, config)

    return QueryPlan(
        degree_of_parallelism=_int_attr(plan_el, "DegreeOfParallelism", 1),
        cached_plan_size=_int_attr(plan_el, "CachedPlanSize"),
        compile_time_ms=_int_attr(plan_el, "CompileTime"),
        compile_cpu_ms=_int_attr(plan_el, "CompileCPU"),
        compile_memory_kb=_int_attr(plan_el, "CompileMemory"),
        memory_grant=_parse_memory_grant(grant_el) if grant_el is not None else None,
        parameters=_parse_parameters(params_el) if params_el is not None else None,
        root=root,
    )


def _parse_memory_grant(el: ET.Element) -> MemoryGrant:
    return MemoryGrant(
        serial_required_kb=_int_attr(el, "SerialRequiredMemory"),
        serial_desired_kb=_int_attr(el, "SerialDesiredMemory"),
        granted_kb=_int_attr(el, "GrantedMemory"),
        max_used_kb=_int_attr(el, "MaxUsedMemory"),
    )


def _parse_parameters(params_el: ET.Element) -> tuple[Parameter, ...]:
    return tuple(
        Parameter(
            column=col.get("Column", ""),
            data_type=col.get("ParameterDataType", ""),
            compiled_value=_str_attr(col, "ParameterCompiledValue"),
            runtime_value=_str_attr(col, "ParameterRuntimeValue"),
        )
        for col in _children(params_el, "ColumnReference")
    )


# =============================================================================
# Operator tree
# =============================================================================


def _build_operator_tree(root_el: ET.Element, config: ParserConfig) -> Operator:
    """
    Build the Operator tree rooted at `root_el` without recursion.

    Operators are frozen, so children must exist before their parent:
    each element is visited twice, once to discover its child operators
    and once, after all of them are built, to build itself.
    """
    built: dict[int, Operator] = {}
    pending: dict[int, list[ET.Element]] = {}
    stack: list[tuple[ET.Element, bool]] = [(root_el, False)]

    while stack:
        elem, expanded = stack.pop()
        if expanded:
            children = tuple(built.pop(id(c)) for c in pending.pop(id(elem)))
            built[id(elem)] = _parse_operator(elem, children, config)
            continue

        child_elems = _find_child_operators(elem)
        pending[id(elem)] = child_elems
        stack.append((elem, True))
        stack.extend((c, False) for c in reversed(child_elems))

    return built[id(root_el)]


def _parse_operator(
    relop_el: ET.Element,
    children: tuple[Operator, ...],
    config: ParserConfig,
) -> Operator:
    physical_op = relop_el.get("PhysicalOp") or "Unknown"
    attributes = tuple(relop_el.attrib.items())

    return Operator(
        node_id=_int_attr(relop_el, "NodeId"),
        physical_op=physical_op,
        logical_op=relop_el.get("LogicalOp", ""),
        estimate_cpu=_float_attr(relop_el, "EstimateCPU"),
        estimate_io=_float_attr(relop_el, "EstimateIO"),
        subtree_cost=_float_attr(relop_el, "EstimatedTotalSubtreeCost"),
        estimated_rows=_float_attr(relop_el, "EstimateRows"),
        estimated_rows_read=_opt_float_attr(relop_el, "EstimatedRowsRead"),
        avg_row_size=_int_attr(relop_el, "AvgRowSize"),
        parallel=_bool_attr(relop_el, "Parallel"),
        estimated_execution_mode=_str_attr(relop_el, "EstimatedExecutionMode"),
        estimate_rebinds=_opt_float_attr(relop_el, "EstimateRebinds"),
        estimate_rewinds=_opt_float_attr(relop_el, "EstimateRewinds"),
        table_cardinality=_opt_float_attr(relop_el, "TableCardinality"),
        attributes=attributes,
        output_columns=_parse_column_list(_child(relop_el, "OutputList")),
        runtime=_parse_runtime_info(relop_el, config),
        children=children,
        detail=_parse_operation_detail(relop_el, attributes),
    )


def _parse_column_reference(col_el: ET.Element) -> ColumnReference:
    return ColumnReference(
        column=_strip_brackets(col_el.get("Column")) or "",
        database=_strip_brackets(col_el.get("Database")),
        schema_name=_strip_brackets(col_el.get("Schema")),
        table=_strip_brackets(col_el.get("Table")),
        alias=_str_attr(col_el, "Alias"),
    )


def _parse_column_list(list_el: ET.Element | None) -> tuple[ColumnReference, ...]:
    return tuple(
        _parse_column_reference(col) for col in _children(list_el, "ColumnReference")
    )


# =============================================================================
# Runtime information
# =============================================================================


def _sum_optional(counters: list[ET.Element], name: str) -> int | None:
    values = [v for v in (_opt_int_attr(c, name) for c in counters) if v is not None]
    return sum(values) if values else None


def _parse_runtime_info(relop_el: ET.Element, config: ParserConfig) -> RuntimeInfo | None:
    runtime_el = _child(relop_el, "RunTimeInformation")
    if runtime_el is None:
        return None

    counters = _children(runtime_el, "RunTimeCountersPerThread")
    if not counters:
        return None

    # WaitStats may sit under each thread's counters or under RunTimeInformation
    wait_elems = _children(runtime_el, "WaitStats")
    for counter in counters:
        wait_elems.extend(_children(counter, "WaitStats"))

    execution_mode = next(
        (c.get("ActualExecutionMode") for c in counters if c.get("ActualExecutionMode")),
        None,
    )

    return RuntimeInfo(
        actual_rows=sum(_int_attr(c, "ActualRows") for c in counters),
        actual_executions=sum(_int_attr(c, "ActualExecutions") for c in counters),
        actual_rows_read=_sum_optional(counters, "ActualRowsRead"),
        actual_end_of_scans=_sum_optional(counters, "ActualEndOfScans"),
        actual_elapsed_ms=max(_float_attr(c, "ActualElapsedms") for c in counters),
        actual_cpu_ms=sum(_float_attr(c, "ActualCPUms") for c in counters),
        actual_scans=_sum_optional(counters, "ActualScans"),
        actual_logical_reads=_sum_optional(counters, "ActualLogicalReads"),
        actual_physical_reads=_sum_optional(counters, "ActualPhysicalReads"),
        actual_read_aheads=_sum_optional(counters, "ActualReadAheads"),
        actual_lob_logical_reads=_sum_optional(counters, "ActualLobLogicalReads"),
        actual_lob_physical_reads=_sum_optional(counters, "ActualLobPhysicalReads"),
        actual_lob_read_aheads=_sum_optional(counters, "ActualLobReadAheads"),
        execution_mode=execution_mode,
        thread_count=len(counters),
        wait_stats=_parse_wait_stats(wait_elems, config),
    )


def _parse_wait_stats(
    wait_elems: list[ET.Element],
    config: ParserConfig,
) -> tuple[WaitStat, ...]:
    """Merge waits by type and order them longest first."""
    totals: dict[str, list[float]] = {}
    for waits_el in wait_elems:
        for wait_el in _children(waits_el, "Wait"):
            wait_type = wait_el.get("WaitType", "")
            entry = totals.setdefault(wait_type, [0.0, 0])
            entry[0] += _float_attr(wait_el, "WaitTimeMs")
            entry[1] += _int_attr(wait_el, "WaitCount")

    waits = [
        WaitStat(wait_type=wait_type, wait_time_ms=time_ms, wait_count=int(count))
        for wait_type, (time_ms, count) in totals.items()
        if time_ms > 0 or config.keep_zero_waits
    ]
    waits.sort(key=lambda w: w.wait_time_ms, reverse=True)
    return tuple(waits)


# =============================================================================
# Operation details
# =============================================================================


def _parse_defined_values(parent: ET.Element) -> tuple[DefinedValue, ...]:
    values: list[DefinedValue] = []
    for dv_el in _children(_child(parent, "DefinedValues"), "DefinedValue"):
        col_el = _child(dv_el, "ColumnReference")
        if col_el is None:
            continue
        values.append(DefinedValue(
            column=_parse_column_reference(col_el),
            expression=_scalar_string(dv_el),
        ))
    return tuple(values)


def _parse_order_by(parent: ET.Element) -> tuple[OrderByColumn, ...]:
    columns: list[OrderByColumn] = []
    for obc_el in _children(_child(parent, "OrderBy"), "OrderByColumn"):
        col_el = _child(obc_el, "ColumnReference")
        if col_el is None:
            continue
        ascending = (obc_el.get("Ascending") or "true").strip().lower() in ("true", "1")
        columns.append(OrderByColumn(
            column=_parse_column_reference(col_el),
            ascending=ascending,
        ))
    return tuple(columns)


def _parse_object_reference(obj_el: ET.Element) -> ObjectReference:
    return ObjectReference(
        table=_strip_brackets(obj_el.get("Table")) or "",
        database=_strip_brackets(obj_el.get("Database")),
        schema_name=_strip_brackets(obj_el.get("Schema")),
        index=_strip_brackets(obj_el.get("Index")),
        index_kind=_str_attr(obj_el, "IndexKind"),
        storage=_str_attr(obj_el, "Storage"),
        alias=_str_attr(obj_el, "Alias"),
    )


def _parse_seek_predicates(index_el: ET.Element) -> tuple[SeekPredicate, ...]:
    predicates: list[SeekPredicate] = []
    for sp_el in _children(_child(index_el, "SeekPredicates"), "SeekPredicateNew"):
        seek_keys = _child(sp_el, "SeekKeys")
        prefix_el = _child(seek_keys if seek_keys is not None else sp_el, "Prefix")
        if prefix_el is None:
            continue
        expressions = _children(_child(prefix_el, "RangeExpressions"), "ScalarOperator")
        predicates.append(SeekPredicate(prefix=SeekPrefix(
            scan_type=prefix_el.get("ScanType", ""),
            range_columns=_parse_column_list(_child(prefix_el, "RangeColumns")),
            range_expressions=tuple(e.get("ScalarString", "") for e in expressions),
        )))
    return tuple(predicates)


def _index_scan_detail(el: ET.Element, relop_el: ET.Element) -> IndexScanDetail:
    obj_el = _child(el, "Object")
    return IndexScanDetail(
        ordered=_bool_attr(el, "Ordered"),
        scan_direction=_str_attr(el, "ScanDirection"),
        forced_index=_bool_attr(el, "ForcedIndex"),
        force_seek=_bool_attr(el, "ForceSeek"),
        force_scan=_bool_attr(el, "ForceScan"),
        no_expand_hint=_bool_attr(el, "NoExpandHint"),
        storage=el.get("Storage") or "RowStore",
        object=_parse_object_reference(obj_el) if obj_el is not None else ObjectReference(),
        seek_predicates=_parse_seek_predicates(el),
        predicate=_scalar_string(_child(el, "Predicate")),
        defined_values=_parse_defined_values(el),
    )


def _nested_loops_detail(el: ET.Element, relop_el: ET.Element) -> NestedLoopsDetail:
    return NestedLoopsDetail(
        optimized=_bool_attr(el, "Optimized"),
        outer_references=_parse_column_list(_child(el, "OuterReferences")),
        predicate=_scalar_string(_child(el, "Predicate")),
    )


def _hash_detail(el: ET.Element, relop_el: ET.Element) -> HashDetail:
    return HashDetail(
        build_residual=_scalar_string(_child(el, "BuildResidual")),
        probe_residual=_scalar_string(_child(el, "ProbeResidual")),
        hash_keys_build=_parse_column_list(_child(el, "HashKeysBuild")),
        hash_keys_probe=_parse_column_list(_child(el, "HashKeysProbe")),
    )


def _merge_detail(el: ET.Element, relop_el: ET.Element) -> MergeDetail:
    return MergeDetail(
        many_to_many=_bool_attr(el, "ManyToMany"),
        inner_side_join_columns=_parse_column_list(_child(el, "InnerSideJoinColumns")),
        outer_side_join_columns=_parse_column_list(_child(el, "OuterSideJoinColumns")),
        residual=_scalar_string(_child(el, "Residual")),
    )


def _sort_detail(el: ET.Element, relop_el: ET.Element) -> SortDetail:
    return SortDetail(
        distinct=_bool_attr(el, "Distinct"),
        order_by=_parse_order_by(el),
    )


def _compute_scalar_detail(el: ET.Element, relop_el: ET.Element) -> ComputeScalarDetail:
    return ComputeScalarDetail(defined_values=_parse_defined_values(el))


def _filter_detail(el: ET.Element, relop_el: ET.Element) -> FilterDetail:
    return FilterDetail(
        predicate=_scalar_string(_child(el, "Predicate")) or "",
        startup_expression=_bool_attr(el, "StartupExpression"),
    )


def _parallelism_detail(el: ET.Element, relop_el: ET.Element) -> ParallelismDetail:
    return ParallelismDetail(
        exchange_type=relop_el.get("LogicalOp", ""),
        partition_columns=_parse_column_list(_child(el, "PartitionColumns")),
        order_by=_parse_order_by(el),
    )


def _aggregate_detail(el: ET.Element, relop_el: ET.Element) -> AggregateDetail:
    return AggregateDetail(
        group_by=_parse_column_list(_child(el, "GroupBy")),
        defined_values=_parse_defined_values(el),
    )


# Wrapper element -> detail builder. Order matters: first match wins.
_DETAIL_PARSERS: tuple[tuple[str, Callable[[ET.Element, ET.Element], OperationDetail]], ...] = (
    ("IndexScan", _index_scan_detail),
    ("TableScan", _index_scan_detail),
    ("NestedLoops", _nested_loops_detail),
    ("Hash", _hash_detail),
    ("Merge", _merge_detail),
    ("Sort", _sort_detail),
    ("TopSort", _sort_detail),
    ("ComputeScalar", _compute_scalar_detail),
    ("Filter", _filter_detail),
    ("Assert", _filter_detail),
    ("Parallelism", _parallelism_detail),
    ("StreamAggregate", _aggregate_detail),
)


def _parse_operation_detail(relop_el: ET.Element, attributes: tuple[tuple[str, str], ...]) -> OperationDetail:
    for element_name, build in _DETAIL_PARSERS:
        wrapper = _child(relop_el, element_name)
        if wrapper is not None:
            return build(wrapper, relop_el)
    return NoDetail(raw=attributes)
