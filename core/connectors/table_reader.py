"""
Read-only table access for race data.

A TableReader answers one kind of query: select columns from a table where a key
column is in a list of values, optionally narrowed by simple comparison filters.
Large id lists are split into batches by fetch_in_batches so that no backend sees an
unbounded IN clause.
"""

import logging
import re
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

FILTER_OPERATORS = {
    'eq': '=',
    'gt': '>',
    'gte': '>=',
    'lt': '<',
    'not_null': 'IS NOT NULL',
}


@dataclass(frozen=True)
class QueryFilter:
    """Single column comparison, e.g. QueryFilter('position', 'gt', 0)."""
    column: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator '{self.op}' (expected one of {sorted(FILTER_OPERATORS)})")
        validate_identifier(self.column)


def validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table or column name: {name!r}")
    return name


class TableReader(ABC):
    """Backend capable of batched IN-clause selects."""

    @abstractmethod
    def select_in(self,
                  table: str,
                  columns: Sequence[str],
                  in_column: str,
                  values: Sequence[Any],
                  filters: Sequence[QueryFilter] = ()) -> List[Dict[str, Any]]:
        """Return matching rows as dictionaries keyed by column name."""
        raise NotImplementedError


class SQLiteTableReader(TableReader):
    """TableReader over a local SQLite database."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.logger = logging.getLogger(__name__)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def select_in(self, table, columns, in_column, values, filters=()):
        if not values:
            return []

        validate_identifier(table)
        validate_identifier(in_column)
        column_sql = ', '.join(validate_identifier(column) for column in columns)

        placeholders = ','.join('?' * len(values))
        clauses = [f"{in_column} IN ({placeholders})"]
        params = list(values)

        for query_filter in filters:
            if query_filter.op == 'not_null':
                clauses.append(f"{query_filter.column} IS NOT NULL")
            else:
                clauses.append(f"{query_filter.column} {FILTER_OPERATORS[query_filter.op]} ?")
                params.append(query_filter.value)

        query = f"SELECT {column_sql} FROM {table} WHERE {' AND '.join(clauses)}"

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        return [dict(row) for row in rows]


def fetch_in_batches(reader: TableReader,
                     table: str,
                     columns: Sequence[str],
                     in_column: str,
                     values: Sequence[Any],
                     batch_size: int = 50,
                     filters: Sequence[QueryFilter] = (),
                     skip_failed_batches: bool = False) -> List[Dict[str, Any]]:
    """
    Run select_in over consecutive slices of values and concatenate the rows.

    Args:
        reader: Backend to query
        table: Table name
        columns: Columns to return
        in_column: Column matched against values
        values: Full list of keys (deduplicated, order kept)
        batch_size: Maximum keys per query
        filters: Extra comparisons applied to every batch
        skip_failed_batches: Log and continue when a batch raises instead of propagating

    Returns:
        All rows from all batches
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    unique_values = list(dict.fromkeys(values))
    rows: List[Dict[str, Any]] = []

    for start in range(0, len(unique_values), batch_size):
        batch = unique_values[start:start + batch_size]
        try:
            rows.extend(reader.select_in(table, columns, in_column, batch, filters))
        except Exception as e:
            if not skip_failed_batches:
                raise
            logger.warning(f"Batch {start // batch_size + 1} from {table} failed ({len(batch)} ids): {e}")

    return rows
