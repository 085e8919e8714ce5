"""
Pydantic models for SQL Server Showplan XML documents.

These models represent the structure of a parsed execution plan:
- PlanDocument: Top-level wrapper (ShowPlanXML) holding batches
- Batch / Statement / QueryPlan: The fixed structural path down to the plan
- Operator: Recursive structure representing each RelOp in the plan tree

Every model is frozen and uses tuples for sequences, so a parsed document
is a value: metrics, diagnostics and comparisons are derived from it and
never written back onto it.

Reference: http://schemas.microsoft.com/sqlserver/2004/07/showplan
"""

from __future__ import annotations

from typing import Annotated, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

_FROZEN = ConfigDict(frozen=True)

# Physical operators that read an entire table or index
SCAN_OPERATORS = frozenset({
    "Table Scan",
    "Clustered Index Scan",
    "Nonclustered Index Scan",
    "Index Scan",
    "Columnstore Index Scan",
    "Remote Scan",
})

SEEK_OPERATORS = frozenset({
    "Clustered Index Seek",
    "Nonclustered Index Seek",
    "Index Seek",
    "Columnstore Index Seek",
})

LOOKUP_OPERATORS = frozenset({"Key Lookup", "RID Lookup"})

JOIN_OPERATORS = frozenset({
    "Nested Loops",
    "Hash Match",
    "Merge Join",
    "Adaptive Join",
})


# =============================================================================
# Supporting value types
# =============================================================================


class ColumnReference(BaseModel):
    """A column as referenced by an output list, key list or predicate."""

    model_config = _FROZEN

    column: str = ""
    database: str | None = None
    schema_name: str | None = None
    table: str | None = None
    alias: str | None = None

    @property
    def qualified_name(self) -> str:
        """Column name prefixed with its table (or alias) when known."""
        owner = self.alias or self.table
        return f"{owner}.{self.column}" if owner else self.column


class ObjectReference(BaseModel):
    """The table/index an access operator reads."""

    model_config = _FROZEN

    table: str = ""
    database: str | None = None
    schema_name: str | None = None
    index: str | None = None
    index_kind: str | None = None
    storage: str | None = None
    alias: str | None = None


class SeekPrefix(BaseModel):
    model_config = _FROZEN

    scan_type: str = ""
    range_columns: tuple[ColumnReference, ...] = ()
    range_expressions: tuple[str, ...] = ()


class SeekPredicate(BaseModel):
    model_config = _FROZEN

    prefix: SeekPrefix | None = None


class DefinedValue(BaseModel):
    """A column produced by an operator and the expression defining it."""

    model_config = _FROZEN

    column: ColumnReference
    expression: str | None = None


class OrderByColumn(BaseModel):
    model_config = _FROZEN

    column: ColumnReference
    ascending: bool = True


class MemoryGrant(BaseModel):
    """Memory grant figures from a QueryPlan's MemoryGrantInfo (KB)."""

    model_config = _FROZEN

    serial_required_kb: int = 0
    serial_desired_kb: int = 0
    granted_kb: int = 0
    max_used_kb: int = 0


class Parameter(BaseModel):
    """A parameter binding from a QueryPlan's ParameterList."""

    model_config = _FROZEN

    column: str = ""
    data_type: str = ""
    compiled_value: str | None = None
    runtime_value: str | None = None


# =============================================================================
# Runtime (actual execution) information
# =============================================================================


class WaitStat(BaseModel):
    """Time an operator spent blocked on one wait type."""

    model_config = _FROZEN

    wait_type: str
    wait_time_ms: float = 0.0
    wait_count: int = 0


class RuntimeInfo(BaseModel):
    """
    Actual execution statistics for an operator.

    Present only in plans captured with actual execution. Counters are
    aggregated over every RunTimeCountersPerThread element: row, execution
    and I/O counters are summed, elapsed time is the slowest thread and CPU
    time is summed.
    """

    model_config = _FROZEN

    actual_rows: int = 0
    actual_executions: int = 0
    actual_rows_read: int | None = None
    actual_end_of_scans: int | None = None
    actual_elapsed_ms: float = 0.0
    actual_cpu_ms: float = 0.0
    actual_scans: int | None = None
    actual_logical_reads: int | None = None
    actual_physical_reads: int | None = None
    actual_read_aheads: int | None = None
    actual_lob_logical_reads: int | None = None
    actual_lob_physical_reads: int | None = None
    actual_lob_read_aheads: int | None = None
    execution_mode: str | None = None
    thread_count: int = 1
    wait_stats: tuple[WaitStat, ...] = ()

    @property
    def total_wait_ms(self) -> float:
        return sum(w.wait_time_ms for w in self.wait_stats)

    @property
    def top_wait(self) -> WaitStat | None:
        """The wait type with the longest total wait time."""
        return self.wait_stats[0] if self.wait_stats else None


# =============================================================================
# Operation details (closed tagged union)
# =============================================================================


class IndexScanDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["index_scan"] = "index_scan"
    ordered: bool = False
    scan_direction: str | None = None
    forced_index: bool = False
    force_seek: bool = False
    force_scan: bool = False
    no_expand_hint: bool = False
    storage: str = "RowStore"
    object: ObjectReference = Field(default_factory=ObjectReference)
    seek_predicates: tuple[SeekPredicate, ...] = ()
    predicate: str | None = None
    defined_values: tuple[DefinedValue, ...] = ()


class NestedLoopsDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["nested_loops"] = "nested_loops"
    optimized: bool = False
    outer_references: tuple[ColumnReference, ...] = ()
    predicate: str | None = None


class HashDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["hash"] = "hash"
    build_residual: str | None = None
    probe_residual: str | None = None
    hash_keys_build: tuple[ColumnReference, ...] = ()
    hash_keys_probe: tuple[ColumnReference, ...] = ()


class MergeDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["merge"] = "merge"
    many_to_many: bool = False
    inner_side_join_columns: tuple[ColumnReference, ...] = ()
    outer_side_join_columns: tuple[ColumnReference, ...] = ()
    residual: str | None = None


class SortDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["sort"] = "sort"
    distinct: bool = False
    order_by: tuple[OrderByColumn, ...] = ()


class ComputeScalarDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["compute_scalar"] = "compute_scalar"
    defined_values: tuple[DefinedValue, ...] = ()


class FilterDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["filter"] = "filter"
    predicate: str = ""
    startup_expression: bool = False


class ParallelismDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["parallelism"] = "parallelism"
    exchange_type: str = ""
    partition_columns: tuple[ColumnReference, ...] = ()
    order_by: tuple[OrderByColumn, ...] = ()


class AggregateDetail(BaseModel):
    model_config = _FROZEN

    kind: Literal["aggregate"] = "aggregate"
    group_by: tuple[ColumnReference, ...] = ()
    defined_values: tuple[DefinedValue, ...] = ()


class NoDetail(BaseModel):
    """Operator without a recognized wrapper element: raw attributes only."""

    model_config = _FROZEN

    kind: Literal["none"] = "none"
    raw: tuple[tuple[str, str], ...] = ()

    def value(self, name: str) -> str | None:
        return dict(self.raw).get(name)


OperationDetail = Annotated[
    Union[
        IndexScanDetail,
        NestedLoopsDetail,
        HashDetail,
        MergeDetail,
        SortDetail,
        ComputeScalarDetail,
        FilterDetail,
        ParallelismDetail,
        AggregateDetail,
        NoDetail,
    ],
    Field(discriminator="kind"),
]


# =============================================================================
# Operator tree
# =============================================================================


class Operator(BaseModel):
    """
    A single RelOp in the execution plan tree.

    This is a recursive structure - each operator holds its direct child
    operators in `children`, in document order. Cost fields are estimates;
    `subtree_cost` is cumulative over the operator and all of its
    descendants, as declared by the plan.
    """

    model_config = _FROZEN

    node_id: int = 0
    physical_op: str = "Unknown"
    logical_op: str = ""

    estimate_cpu: float = 0.0
    estimate_io: float = 0.0
    subtree_cost: float = 0.0
    estimated_rows: float = 0.0
    estimated_rows_read: float | None = None
    avg_row_size: int = 0
    parallel: bool = False
    estimated_execution_mode: str | None = None
    estimate_rebinds: float | None = None
    estimate_rewinds: float | None = None
    table_cardinality: float | None = None

    attributes: tuple[tuple[str, str], ...] = ()
    output_columns: tuple[ColumnReference, ...] = ()
    runtime: RuntimeInfo | None = None
    children: tuple[Operator, ...] = ()
    detail: OperationDetail = Field(default_factory=NoDetail)

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def is_scan(self) -> bool:
        return self.physical_op in SCAN_OPERATORS

    @property
    def is_seek(self) -> bool:
        return self.physical_op in SEEK_OPERATORS

    @property
    def is_lookup(self) -> bool:
        return self.physical_op in LOOKUP_OPERATORS or self.logical_op in LOOKUP_OPERATORS

    @property
    def is_join(self) -> bool:
        return self.physical_op in JOIN_OPERATORS

    @property
    def has_runtime_info(self) -> bool:
        """Check if actual execution statistics are attached."""
        return self.runtime is not None

    @property
    def object_name(self) -> str | None:
        """Table accessed by this operator, if it carries an index-scan detail."""
        if isinstance(self.detail, IndexScanDetail) and self.detail.object.table:
            return self.detail.object.table
        return None

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def attribute(self, name: str) -> str | None:
        """Raw RelOp attribute value, or None when absent."""
        return dict(self.attributes).get(name)

    def iter_nodes(self) -> Iterator[Operator]:
        """Iterate through this operator and all descendants (pre-order)."""
        stack: list[Operator] = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


# =============================================================================
# Document structure
# =============================================================================


def empty_operator() -> Operator:
    """Placeholder operator for a statement that carries no plan."""
    return Operator()


class QueryPlan(BaseModel):
    model_config = _FROZEN

    degree_of_parallelism: int = 1
    cached_plan_size: int = 0
    compile_time_ms: int = 0
    compile_cpu_ms: int = 0
    compile_memory_kb: int = 0
    memory_grant: MemoryGrant | None = None
    parameters: tuple[Parameter, ...] | None = None
    root: Operator = Field(default_factory=empty_operator)


class Statement(BaseModel):
    """
    One StmtSimple element with its query plan.

    `subtree_cost` is the authoritative total cost of the statement and is
    the denominator for every cost percentage.
    """

    model_config = _FROZEN

    statement_id: int = 0
    statement_text: str = ""
    statement_type: str = ""
    subtree_cost: float = 0.0
    estimated_rows: float = 0.0
    optimization_level: str | None = None
    query_hash: str | None = None
    query_plan_hash: str | None = None
    query_plan: QueryPlan = Field(default_factory=QueryPlan)

    @property
    def root(self) -> Operator:
        return self.query_plan.root

    @property
    def has_runtime_info(self) -> bool:
        """True if any operator was captured with actual execution data."""
        return any(op.runtime is not None for op in self.root.iter_nodes())


class Batch(BaseModel):
    model_config = _FROZEN

    statements: tuple[Statement, ...] = ()


class PlanDocument(BaseModel):
    """
    Top-level structure for a ShowPlanXML document.

    Usage:
        document = parse_plan(xml_text)
        for statement in document.statements:
            for op in statement.root.iter_nodes():
                print(op.physical_op, op.subtree_cost)
    """

    model_config = _FROZEN

    version: str = ""
    build: str = ""
    batches: tuple[Batch, ...] = ()

    @property
    def statements(self) -> list[Statement]:
        """All statements across batches, in document order."""
        return [stmt for batch in self.batches for stmt in batch.statements]

    @property
    def total_cost(self) -> float:
        """Sum of the declared subtree cost of every statement."""
        return sum(stmt.subtree_cost for stmt in self.statements)

    @property
    def has_runtime_info(self) -> bool:
        return any(stmt.has_runtime_info for stmt in self.statements)

    def most_expensive_statement(self) -> Statement | None:
        """The statement with the highest declared cost (None if all are 0)."""
        best: Statement | None = None
        for stmt in self.statements:
            if stmt.subtree_cost > (best.subtree_cost if best else 0.0):
                best = stmt
        return best


Operator.model_rebuild()
