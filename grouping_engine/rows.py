"""
Row handles and row sources consumed by the grouping engine.
"""
import itertools
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import pyarrow as pa

from .util.arrow_utils import ensure_arrow_table

_row_ids = itertools.count(1)


def _merge(target: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``updates`` into ``target``."""
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value
    return target


class Row:
    """A row handle with a stable identity and mutable field data."""

    type = "row"

    def __init__(self, data: Dict[str, Any], row_id: Optional[Any] = None):
        self.id = row_id if row_id is not None else next(_row_ids)
        self.data = dict(data)
        self.group = None  # back reference to the owning leaf group

    def get_data(self) -> Dict[str, Any]:
        return self.data

    def update_data(self, data: Dict[str, Any]):
        _merge(self.data, data)

    def __repr__(self):
        return f"Row(id={self.id!r}, data={self.data!r})"


class RowSource(ABC):
    """Ordered collection of row handles"""

    @abstractmethod
    def get_rows(self) -> List[Row]:
        pass

    def get_row_data(self, row: Row) -> Dict[str, Any]:
        return row.get_data()


class ListRowSource(RowSource):
    """Row source over a list of dicts or Row objects."""

    def __init__(self, records: Iterable[Any] = ()):
        self.rows: List[Row] = [r if isinstance(r, Row) else Row(r) for r in records]

    def get_rows(self) -> List[Row]:
        return list(self.rows)

    def add(self, data: Dict[str, Any]) -> Row:
        row = Row(data)
        self.rows.append(row)
        return row

    def remove(self, row: Row):
        self.rows.remove(row)


class ArrowRowSource(ListRowSource):
    """
    Row source backed by a PyArrow table.

    Args:
        data: pa.Table, or anything ``ensure_arrow_table`` accepts.
        id_column: Optional column used as the row identity.
    """

    def __init__(self, data: Any, id_column: Optional[str] = None):
        self.table: pa.Table = ensure_arrow_table(data)
        self.id_column = id_column
        records = self.table.to_pylist()
        super().__init__(
            Row(record, row_id=record.get(id_column) if id_column else None)
            for record in records
        )
