"""
GroupManager - builds and maintains the grouping tree for a row set.

Owns the top level groups, the parsed grouping options, and orchestrates full
rebuilds (reusing group objects from the previous build), incremental row
moves, and flattening into render entries.
"""
import logging
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import pyarrow as pa

from .aggregation import AggregationHook
from .changes import ChangeType, RowChange
from .config import GroupingEngineConfig, get_config
from .exceptions import ConfigurationError, GroupingError, InvariantViolation, ResolutionFailure
from .group import CompositeKey, Group
from .group_handle import GroupHandle
from .resolver import GroupKeyResolver
from .rows import RowSource
from .types.entries import EntryKind, FlatEntry
from .types.grouping_spec import GroupingSpec, LevelSpec, default_header_generator
from .util.arrow_utils import grouped_rows_to_arrow

logger = logging.getLogger(__name__)


class GroupManager:
    """
    Orchestrates grouping of rows into a tree of Groups.

    Args:
        group_by: Field name, callable, or list of either (one per level).
        start_open: Initial visibility per level (bool, callable, or list).
        group_header: Header generator per level (callable or list).
        group_values: Allowed keys per level; a level with a list only ever
            contains groups for those keys, in list order.
        config: Engine configuration; defaults to the global config.
        aggregation_hook: Optional top/bottom aggregate generator.
        row_source: Optional source used to read row data and to rebuild.
    """

    def __init__(
        self,
        group_by=None,
        start_open=None,
        group_header=None,
        group_values=None,
        config: Optional[GroupingEngineConfig] = None,
        aggregation_hook: Optional[AggregationHook] = None,
        row_source: Optional[RowSource] = None,
    ):
        self.config = config or get_config()
        self.aggregation_hook = aggregation_hook
        self.row_source = row_source

        if aggregation_hook is not None:
            aggregation_hook.bind(self.get_row_data)

        self.spec = GroupingSpec(
            group_by=group_by,
            start_open=start_open,
            group_header=group_header,
            group_values=group_values,
        )
        self.resolver = GroupKeyResolver()
        self.levels: List[LevelSpec] = []
        self.start_open: List[Any] = [self.config.default_start_open]
        self.header_generator: List[Callable[..., Any]] = []

        self.group_list: List[Group] = []  # ordered top level groups
        self.groups: Dict[CompositeKey, Group] = {}
        self.rows: List[Any] = []  # rows of the last build, plus incremental additions

        self.blocked = False
        self.errors: List[GroupingError] = []
        self._listeners: Dict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._build_stats = {"created": 0, "reused": 0}

        self.configure_group_setup()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return bool(self.levels)

    def configure_group_setup(self):
        """Parse grouping options into levels, start-open rules and header generators."""
        self.spec.levels = self.spec.build_levels()
        levels = self.spec.levels

        if len(levels) > self.config.max_group_depth:
            raise ConfigurationError(
                f"{len(levels)} grouping levels exceed max_group_depth={self.config.max_group_depth}"
            )

        self.levels = levels
        self.resolver = GroupKeyResolver(levels)
        self.start_open = self.spec.start_open_rules(self.config.default_start_open)

        default_header = default_header_generator(self.config.item_label, self.config.items_label)
        self.header_generator = self.spec.header_generators(default_header)

        if isinstance(self.spec.group_header, (list, tuple)) and len(levels) > len(self.spec.group_header):
            self.report(ConfigurationError(
                "Error creating group headers, group_header list is shorter than group_by list; "
                "falling back to the first generator for deeper levels",
                level=len(self.spec.group_header),
            ))

        if not self.enabled:
            self.group_list = []
            self.groups = {}

    def start_open_rule(self, level: int):
        if level < len(self.start_open):
            return self.start_open[level]
        return self.start_open[0]

    def header_generator_for(self, level: int) -> Callable[..., Any]:
        if level < len(self.header_generator):
            return self.header_generator[level]
        return self.header_generator[0]

    def allowed_values(self, level: int) -> Optional[List[Any]]:
        if level < len(self.levels):
            return self.levels[level].values
        return None

    def retains_group(self, group: Group) -> bool:
        """Whether an emptied group stays in the tree."""
        return self.config.retain_empty_groups or self.allowed_values(group.level) is not None

    def set_group_by(self, group_by):
        self.spec.group_by = group_by
        self.configure_group_setup()
        self.refresh_data()
        self.track_changes()

    def set_group_values(self, group_values):
        self.spec.group_values = group_values
        self.configure_group_setup()
        self.refresh_data()
        self.track_changes()

    def set_group_start_open(self, start_open):
        self.spec.start_open = start_open
        self.configure_group_setup()

        if self.enabled:
            self.refresh_data()
            self.track_changes()
        else:
            logger.warning("Grouping update - can't refresh view, no groups have been set")

    def set_group_header(self, group_header):
        self.spec.group_header = group_header
        self.configure_group_setup()

        if self.enabled:
            self.refresh_data()
            self.track_changes()
        else:
            logger.warning("Grouping update - can't refresh view, no groups have been set")

    # ------------------------------------------------------------------
    # Events and error reporting
    # ------------------------------------------------------------------

    def subscribe(self, event: str, callback: Callable[..., Any]):
        self._listeners[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[..., Any]):
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def subscribed(self, event: str) -> bool:
        return bool(self._listeners.get(event))

    def dispatch(self, event: str, *args):
        for callback in list(self._listeners.get(event, [])):
            callback(*args)

    def track_changes(self):
        self.dispatch("group_changed")

    def report(self, error: GroupingError):
        """Log a recoverable error and keep it for the caller."""
        logger.warning(error.describe())
        self.errors.append(error)

    def clear_errors(self) -> List[GroupingError]:
        errors, self.errors = self.errors, []
        return errors

    # ------------------------------------------------------------------
    # Redraw blocking
    # ------------------------------------------------------------------

    def _block_redrawing(self):
        self.blocked = True

    def _restore_redrawing(self):
        self.blocked = False

    @contextmanager
    def block_redraw(self):
        """
        Suspend flattening for a batch of mutations.

        The previous state is always restored; callers flatten or refresh once
        after the block.
        """
        previous = self.blocked
        self.blocked = True
        try:
            yield self
        finally:
            self.blocked = previous

    # ------------------------------------------------------------------
    # Row data
    # ------------------------------------------------------------------

    def get_row_data(self, row) -> Dict[str, Any]:
        if self.row_source is not None:
            return self.row_source.get_row_data(row)
        return row.get_data()

    def resolve_path(self, row, start: int = 0) -> Optional[List[Any]]:
        """
        Resolve a row's keys from level ``start`` to the leaf level.

        A failing resolver excludes the row: the failure is reported and None
        is returned.
        """
        try:
            return self.resolver.expected_path(self.get_row_data(row), start)
        except ResolutionFailure as e:
            logger.debug("Row %s excluded from grouping", getattr(row, "id", row))
            self.report(e)
            return None

    def get_expected_path(self, row) -> Optional[List[Any]]:
        return self.resolve_path(row)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build(self, rows: Optional[Iterable[Any]] = None):
        """
        Rebuild the tree from ``rows`` (or the row source).

        Groups from the previous build whose composite key reappears are
        reused, keeping their visibility and cached header resources.
        """
        if rows is None:
            rows = self.row_source.get_rows() if self.row_source is not None else self.rows
        self.rows = list(rows)

        if not self.enabled:
            self.wipe()
            return

        self.dispatch("data_grouping")
        self.generate_groups(self.rows)

        if self.subscribed("data_grouped"):
            self.dispatch("data_grouped", self.get_groups(True))

    def generate_groups(self, rows: List[Any]):
        old_groups = self.groups
        self.groups = {}
        self.group_list = []
        self._build_stats = {"created": 0, "reused": 0}

        values = self.allowed_values(0)
        if values is not None:
            for value in values:
                self.create_group(value, 0, old_groups)

            for row in rows:
                self.assign_row_to_existing_group(row)
        else:
            for row in rows:
                self.assign_row_to_group(row, old_groups)

        # anything still in the old index was not matched by this build
        for group in old_groups.values():
            group.wipe()

        for group in self.group_list:
            group.discard_stale()

        logger.debug(
            "Grouped %d rows: %d groups created, %d reused, %d top level discarded",
            len(rows), self._build_stats["created"], self._build_stats["reused"], len(old_groups),
        )

    def make_group(self, parent: Optional[Group], level: int, key: Any,
                   old_groups: Optional[Dict[CompositeKey, Group]] = None) -> Group:
        """Reuse the matching group from ``old_groups`` or construct a new one."""
        old = old_groups.pop((level, key), None) if old_groups else None

        if old is not None:
            old.reset(parent)
            self._build_stats["reused"] += 1
            return old

        self._build_stats["created"] += 1
        return Group(self, parent, level, key, self.levels[level].field, self.header_generator_for(level))

    def create_group(self, key: Any, level: int = 0,
                     old_groups: Optional[Dict[CompositeKey, Group]] = None) -> Group:
        composite = (level, key)
        if composite in self.groups:
            return self.groups[composite]

        group = self.make_group(None, level, key, old_groups)
        self.groups[composite] = group
        self.group_list.append(group)
        return group

    def assign_row_to_existing_group(self, row) -> bool:
        path = self.resolve_path(row)
        if path is None:
            return False

        group = self.groups.get((0, path[0]))
        if group is None:
            logger.debug("Dropping row %s: key %r is not an allowed value at level 0", row.id, path[0])
            return False

        return group.add_row(row, path[1:])

    def assign_row_to_group(self, row, old_groups: Optional[Dict[CompositeKey, Group]] = None) -> bool:
        if self.allowed_values(0) is not None:
            return self.assign_row_to_existing_group(row)

        path = self.resolve_path(row)
        if path is None:
            return False

        composite = (0, path[0])
        if composite not in self.groups:
            self.create_group(path[0], 0, old_groups)

        return self.groups[composite].add_row(row, path[1:])

    def remove_group(self, group: Group):
        composite = (group.level, group.key)

        if self.groups.get(composite) is group:
            del self.groups[composite]
            self.group_list.remove(group)
            group.wipe(elements_only=True)

    def wipe(self):
        for group in self.group_list:
            group.wipe()

        self.group_list = []
        self.groups = {}

    def refresh_data(self):
        """Rebuild from the current rows and notify listeners."""
        self.build()
        self.update_group_rows(True)

    # ------------------------------------------------------------------
    # Row membership
    # ------------------------------------------------------------------

    def add_row(self, row) -> bool:
        if not self.enabled:
            raise InvariantViolation("Cannot add a row to a manager without grouping levels")

        if row not in self.rows:
            self.rows.append(row)

        if row.group is not None:
            # already grouped, a row lives in exactly one leaf
            self.reassign_row(row)
            return row.group is not None

        placed = self.assign_row_to_group(row)
        self.update_group_rows(True)
        return placed

    def remove_row(self, row):
        if row in self.rows:
            self.rows.remove(row)

        group = row.group
        if group is not None:
            group.remove_row(row)

    def insert_row(self, row, to=None, after: bool = True, group: Optional[Group] = None):
        """
        Insert ``row`` next to ``to`` inside ``group`` (or ``to``'s group).

        The row's data is conformed to the target group's keys; conforming a
        function-derived level is reported on ``errors``.
        """
        target = self._unwrap(group) if group is not None else getattr(to, "group", None)
        if target is None:
            raise InvariantViolation("insert_row needs a target group or a grouped anchor row")

        if row not in self.rows:
            self.rows.append(row)

        if row.group is not None and row.group is not target:
            with self.block_redraw():
                row.group.remove_row(row)

        target.insert_row(row, to, after)

    def reassign_row(self, row) -> bool:
        """
        Move a row to the group matching its current data.

        Returns:
            True if the row changed group.
        """
        old_group = row.group
        new_path = self.resolve_path(row)

        if new_path is None:
            if old_group is not None:
                old_group.remove_row(row)
            return old_group is not None

        if old_group is not None and self.resolver.paths_equal(old_group.get_path(), new_path):
            # same group, but cached headers and visibility depend on row data
            old_group._membership_changed()
            return False

        with self.block_redraw():
            if old_group is not None:
                old_group.remove_row(row)
            self.assign_row_to_group(row)

        self.update_group_rows(True)
        return True

    def row_data_changed(self, row):
        if not self.enabled:
            return

        if self.config.update_on_data_change:
            self.reassign_row(row)
        elif row.group is not None:
            row.group._membership_changed()

    def move_row(self, row, to, after: bool = True):
        """
        Move a row next to ``to``, which is a row or a Group.

        Within one group this is a reorder; across groups the row is removed
        from its group and inserted (and conformed) into the target group.
        """
        to_group = self._unwrap(to) if isinstance(to, (Group, GroupHandle)) else to.group
        from_group = row.group

        if to_group is None:
            raise InvariantViolation("Cannot move a row next to an ungrouped row")

        anchor = None if isinstance(to, (Group, GroupHandle)) else to

        if to_group is from_group:
            self.move_row_in_array(to_group.rows, row, anchor, after)
            self.update_group_rows(True)
        else:
            if from_group is not None:
                with self.block_redraw():
                    from_group.remove_row(row)
            to_group.insert_row(row, anchor, after)

    @staticmethod
    def move_row_in_array(rows: List[Any], row, to, after: bool):
        """Reposition ``row`` next to ``to`` (or at an end when ``to`` is absent)."""
        for i, item in enumerate(rows):
            if item is row:
                del rows[i]
                break

        for i, item in enumerate(rows):
            if item is to:
                rows.insert(i + 1 if after else i, row)
                return

        if after:
            rows.append(row)
        else:
            rows.insert(0, row)

    def row_adding_index(self, row, index=None, top: bool = False):
        """
        Group a newly added row and position it within its group.

        Returns the row used as the insertion anchor.
        """
        if row not in self.rows:
            self.rows.append(row)

        self.assign_row_to_group(row)
        if row.group is None:
            return index

        group_rows = row.group.rows

        if len(group_rows) > 1:
            if index is None or not any(item is index for item in group_rows):
                if top:
                    if group_rows[0] is not row:
                        index = group_rows[0]
                        self.move_row_in_array(group_rows, row, index, not top)
                else:
                    if group_rows[-1] is not row:
                        index = group_rows[-1]
                        self.move_row_in_array(group_rows, row, index, not top)
            else:
                self.move_row_in_array(group_rows, row, index, not top)

        return index

    def apply_change(self, change: RowChange):
        """Apply an INSERT, UPDATE or DELETE to the tree."""
        if change.type == ChangeType.INSERT:
            self.add_row(change.row)
        elif change.type == ChangeType.UPDATE:
            if change.new_data:
                change.row.update_data(change.new_data)
            self.reassign_row(change.row)
        elif change.type == ChangeType.DELETE:
            self.remove_row(change.row)
        else:
            raise ValueError(f"Unknown change type: {change.type}")

    # ------------------------------------------------------------------
    # Flattening
    # ------------------------------------------------------------------

    def flatten(self) -> List[FlatEntry]:
        return self.update_group_rows()

    def update_group_rows(self, force: bool = False) -> List[FlatEntry]:
        """
        Build the render list; with ``force`` listeners receive a refresh.

        Returns an empty list while redraw is blocked.
        """
        output: List[FlatEntry] = []

        if not self.blocked:
            if self.enabled:
                for group in self.group_list:
                    output.extend(group.get_headers_and_rows())
            else:
                output = [FlatEntry(kind=EntryKind.ROW, indent=0, row=row) for row in self.rows]

            if force:
                self.dispatch("refresh", output)

        return output

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def show(self, group: Union[Group, GroupHandle]):
        self._unwrap(group).show()

    def hide(self, group: Union[Group, GroupHandle]):
        self._unwrap(group).hide()

    def toggle(self, group: Union[Group, GroupHandle]):
        self._unwrap(group).toggle_visibility()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _unwrap(group: Union[Group, GroupHandle]) -> Group:
        return group._get_self() if isinstance(group, GroupHandle) else group

    def get_groups(self, as_handles: bool = False) -> List[Union[Group, GroupHandle]]:
        return [group.get_component() if as_handles else group for group in self.group_list]

    def get_child_groups(self, group: Optional[Group] = None) -> List[Group]:
        """All leaf groups below ``group`` (or the whole tree), in order."""
        group_list = self._unwrap(group).group_list if group is not None else self.group_list

        output = []
        for child in group_list:
            if child.group_list:
                output.extend(self.get_child_groups(child))
            else:
                output.append(child)
        return output

    def get_group_of(self, row) -> Optional[Group]:
        group = getattr(row, "group", None)
        if group is not None and group._index_of(row) > -1:
            return group

        for top in self.group_list:
            match = top.get_row_group(row)
            if match:
                return match
        return None

    def get_recursive_row_count(self, group: Union[Group, GroupHandle]) -> int:
        return self._unwrap(group).get_row_count()

    def count_groups(self) -> int:
        return len(self.group_list)

    def row_sample(self) -> List[Any]:
        """First row of the first top level group, if any."""
        if self.group_list:
            rows = self.group_list[0].get_rows(include_children=True)
            if rows:
                return [rows[0]]
        return []

    def get_grouped_data(self) -> List[Dict[str, Any]]:
        """Header dicts interleaved with row data, depth first."""
        if not self.enabled:
            return [self.get_row_data(row) for row in self.rows]
        return self.pull_group_list_data(self.group_list)

    def pull_group_list_data(self, group_list: List[Group]) -> List[Dict[str, Any]]:
        output = []

        for group in group_list:
            row_count = group.get_row_count()
            output.append({
                "level": group.level,
                "row_count": row_count,
                "header_content": group.generator(
                    group.key, row_count, group.get_descendant_data(), group.get_component()
                ),
            })

            if group.has_sub_groups:
                output.extend(self.pull_group_list_data(group.group_list))
            else:
                output.extend(self.get_row_data(row) for row in group.rows)

        return output

    def grouped_data_to_arrow(self) -> pa.Table:
        """Leaf rows as a PyArrow table with ``_group_level``/``_group_path`` columns."""
        records = []
        for group in self.get_child_groups():
            path = group.get_path()
            for row in group.rows:
                records.append({"level": group.level, "path": path, "data": self.get_row_data(row)})
        return grouped_rows_to_arrow(records)
