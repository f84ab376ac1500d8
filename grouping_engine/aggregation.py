"""
Per-group top/bottom aggregate rows.

The manager only talks to the ``AggregationHook`` interface; ``ColumnCalcHook``
is a ready made implementation that computes column calculations with
pyarrow.compute.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .util.arrow_utils import calc_column


class AggregationHook(ABC):
    """Generates summary rows for a leaf group's member rows"""

    row_data: Optional[Callable[[Any], Dict[str, Any]]] = None

    def bind(self, row_data: Callable[[Any], Dict[str, Any]]):
        """Read row data through ``row_data`` (the owning manager's row source)."""
        self.row_data = row_data

    def get_row_data(self, row) -> Dict[str, Any]:
        if self.row_data is not None:
            return self.row_data(row)
        return row.get_data()

    @abstractmethod
    def has_top_aggregate(self) -> bool:
        pass

    @abstractmethod
    def has_bottom_aggregate(self) -> bool:
        pass

    @abstractmethod
    def generate_top_aggregate(self, rows: List[Any]) -> Any:
        pass

    @abstractmethod
    def generate_bottom_aggregate(self, rows: List[Any]) -> Any:
        pass


@dataclass
class ColumnCalcHook(AggregationHook):
    """
    Column calculations per group, e.g. ``top_calcs={"sales": "sum"}``.

    Supported calculations: sum, avg/mean, min, max, count.
    """
    top_calcs: Dict[str, str] = field(default_factory=dict)
    bottom_calcs: Dict[str, str] = field(default_factory=dict)

    def has_top_aggregate(self) -> bool:
        return bool(self.top_calcs)

    def has_bottom_aggregate(self) -> bool:
        return bool(self.bottom_calcs)

    def generate_top_aggregate(self, rows: List[Any]) -> Dict[str, Any]:
        return self._calculate(self.top_calcs, rows)

    def generate_bottom_aggregate(self, rows: List[Any]) -> Dict[str, Any]:
        return self._calculate(self.bottom_calcs, rows)

    def _calculate(self, calcs: Dict[str, str], rows: List[Any]) -> Dict[str, Optional[Any]]:
        records = [self.get_row_data(row) for row in rows]
        return {column: calc_column(records, column, calc) for column, calc in calcs.items()}
