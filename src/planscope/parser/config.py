"""
Parser configuration.

Parsing a document held in memory never fails on size; the only limit
applies when reading from disk, so that a multi-GB file is rejected before
it is loaded.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParserConfig(BaseModel):
    """
    Configuration for the Showplan parser.

    Attributes:
        max_file_size_mb: Maximum file size accepted by parse_plan_file().
        keep_zero_waits: Keep WaitStats entries that recorded 0 ms.

    Example:
        config = ParserConfig(max_file_size_mb=10)
        document = parse_plan_file("query.sqlplan", config=config)
    """

    model_config = ConfigDict(frozen=True)

    max_file_size_mb: float = Field(
        default=100.0,
        gt=0,
        description="Maximum file size in megabytes",
    )

    keep_zero_waits: bool = Field(
        default=False,
        description="Keep wait types with no recorded wait time",
    )


DEFAULT_CONFIG = ParserConfig()
