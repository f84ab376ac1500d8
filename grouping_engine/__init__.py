"""
grouping_engine package - hierarchical row grouping

Expose the manager, group node and row source types.
"""
from .manager import GroupManager
from .group import Group, Visibility
from .group_handle import GroupHandle
from .rows import Row, RowSource, ListRowSource, ArrowRowSource
from .aggregation import AggregationHook, ColumnCalcHook
from .config import GroupingEngineConfig, get_config
from .exceptions import GroupingError, ConfigurationError, ResolutionFailure, InvariantViolation
from .types.grouping_spec import NAN_KEY, UNDEFINED
from .types.entries import EntryKind, FlatEntry

__all__ = [
    "GroupManager",
    "Group",
    "Visibility",
    "GroupHandle",
    "Row",
    "RowSource",
    "ListRowSource",
    "ArrowRowSource",
    "AggregationHook",
    "ColumnCalcHook",
    "GroupingEngineConfig",
    "get_config",
    "GroupingError",
    "ConfigurationError",
    "ResolutionFailure",
    "InvariantViolation",
    "UNDEFINED",
    "NAN_KEY",
    "EntryKind",
    "FlatEntry",
]
