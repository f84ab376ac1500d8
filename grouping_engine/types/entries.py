"""
Render entries produced by flattening a group tree.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class EntryKind(str, Enum):
    """Kinds of flattened entries"""
    HEADER = "header"
    ROW = "row"
    AGGREGATE = "aggregate"


class AggregatePosition(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


@dataclass
class FlatEntry:
    """A single entry of the render list"""
    kind: EntryKind
    indent: int
    group: Optional[Any] = None
    row: Optional[Any] = None
    content: Any = None  # header contents or aggregate payload
    row_count: Optional[int] = None  # recursive count, header entries only
    position: Optional[AggregatePosition] = None  # aggregate entries only

    @property
    def is_header(self) -> bool:
        return self.kind == EntryKind.HEADER

    @property
    def is_row(self) -> bool:
        return self.kind == EntryKind.ROW

    @property
    def is_aggregate(self) -> bool:
        return self.kind == EntryKind.AGGREGATE
