"""Uniform row/column shape for engine results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .serializers import serialize_rowset

if TYPE_CHECKING:
    import pyarrow as pa


@dataclass
class QueryResult:
    """Result of one user statement.

    Attributes:
        columns: Column names in schema order
        rows: Row values, one list per row, nulls as ``None``
        row_count: Number of rows returned
        execution_time_ms: Wall time between submission and result
    """

    columns: list[str] = field(default_factory=list)
    rows: list[list[Any]] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0

    @classmethod
    def from_arrow(cls, table: pa.Table, execution_time_ms: float) -> QueryResult:
        """Walk a columnar engine result into rows.

        Args:
            table: Columnar result returned by the engine connection
            execution_time_ms: Measured execution time

        Returns:
            QueryResult with one entry per row and column
        """
        columns = [str(name) for name in table.schema.names]
        values = [table.column(j).to_pylist() for j in range(table.num_columns)]
        rows = [
            [column[i] if i < len(column) else None for column in values]
            for i in range(table.num_rows)
        ]
        return cls(
            columns=columns,
            rows=rows,
            row_count=table.num_rows,
            execution_time_ms=execution_time_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": serialize_rowset(self.rows),
            "rowCount": self.row_count,
            "executionTimeMs": self.execution_time_ms,
        }
