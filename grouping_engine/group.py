"""
Group - a single node of the grouping tree.

A group either holds child groups (every level but the deepest) or member rows
(the deepest level). Child groups are indexed by the composite key
``(level, key)`` and kept in insertion order in ``group_list``.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .exceptions import ConfigurationError, InvariantViolation
from .group_handle import GroupHandle
from .resolver import set_field_value
from .types.entries import AggregatePosition, EntryKind, FlatEntry

logger = logging.getLogger(__name__)

CompositeKey = Tuple[int, Any]


class Visibility:
    """
    Open/closed state of a group.

    Either fixed (a bool) or deferred (a predicate called with
    ``key, recursive_count, descendant_data, handle``). A deferred result is
    cached until ``invalidate`` is called after a membership change.
    """

    def __init__(self, rule: Union[bool, Callable[..., Any]]):
        self.predicate: Optional[Callable[..., Any]] = None
        self._value: Optional[bool] = None

        if callable(rule):
            self.predicate = rule
        else:
            self._value = bool(rule)

    @property
    def is_deferred(self) -> bool:
        return self.predicate is not None

    def resolve(self, group: 'Group') -> bool:
        if self._value is None:
            self._value = bool(self.predicate(
                group.key,
                group.get_row_count(),
                group.get_descendant_data(),
                group.get_component(),
            ))
        return self._value

    def set(self, value: bool):
        self.predicate = None
        self._value = bool(value)

    def invalidate(self):
        if self.predicate is not None:
            self._value = None


class Group:
    """Node of the grouping tree, owned by its parent group or the manager."""

    type = "group"

    def __init__(self, manager, parent: Optional['Group'], level: int, key: Any,
                 field: Optional[str], generator: Callable[..., Any]):
        self.manager = manager
        self.parent = parent
        self.key = key
        self.level = level
        self.field = field
        self.generator = generator
        self.has_sub_groups = level < len(manager.levels) - 1

        self.rows: List[Any] = []
        self.groups: Dict[CompositeKey, 'Group'] = {}
        self.group_list: List['Group'] = []
        self._old_groups: Dict[CompositeKey, 'Group'] = {}

        self.visibility = Visibility(manager.start_open_rule(level))

        self.header_contents: Any = None
        self._header_stale = True
        self.element: Any = None  # renderer-owned header resource
        self.height = 0
        self.calcs: Dict[str, Any] = {}
        self.component: Optional[GroupHandle] = None

        self.create_value_groups()

    def __repr__(self):
        return f"Group(level={self.level}, key={self.key!r}, rows={self.get_row_count()})"

    # ------------------------------------------------------------------
    # Rebuild support
    # ------------------------------------------------------------------

    def reset(self, parent: Optional['Group']):
        """
        Prepare a group from the previous build for reuse.

        Membership is cleared; visibility, header element and the old child
        index are kept so deeper levels can be matched against it.
        """
        self.parent = parent
        self.field = self.manager.levels[self.level].field
        self.generator = self.manager.header_generator_for(self.level)
        self.has_sub_groups = self.level < len(self.manager.levels) - 1

        self._old_groups = self.groups
        self.groups = {}
        self.group_list = []

        for row in self.rows:
            if row.group is self:
                row.group = None
        self.rows = []
        self.calcs = {}

        self._membership_changed()
        self.create_value_groups()

    def discard_stale(self):
        """Wipe children of the previous build that were not reused."""
        for group in self._old_groups.values():
            group.wipe()
        self._old_groups = {}

        for group in self.group_list:
            group.discard_stale()

    def wipe(self, elements_only: bool = False):
        if not elements_only:
            if self.group_list:
                for group in self.group_list:
                    group.wipe()
            else:
                for row in self.rows:
                    if row.group is self:
                        row.group = None

        self.element = None
        self.header_contents = None
        self._header_stale = True
        self.height = 0

    def create_value_groups(self):
        level = self.level + 1
        values = self.manager.allowed_values(level) if self.has_sub_groups else None
        if values is not None:
            for value in values:
                if (level, value) not in self.groups:
                    self._create_group(value, level)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def _create_group(self, key: Any, level: int) -> 'Group':
        group = self.manager.make_group(self, level, key, self._old_groups)
        self.groups[(level, key)] = group
        self.group_list.append(group)
        return group

    def add_row(self, row, path: Optional[List[Any]] = None) -> bool:
        """
        Place a row below this group.

        Args:
            row: Row handle.
            path: Keys for the levels below this group; resolved from the row
                data when omitted.

        Returns:
            True if the row was placed in a leaf group.
        """
        if path is None:
            path = self.manager.resolve_path(row, start=self.level + 1)
            if path is None:
                return False

        if self.has_sub_groups:
            return self._add_row_to_group(row, path)
        return self._add_row(row)

    def _add_row_to_group(self, row, path: List[Any]) -> bool:
        level = self.level + 1
        key = path[0]
        group = self.groups.get((level, key))

        if group is None:
            if self.manager.allowed_values(level) is not None:
                logger.debug("Dropping row %s: key %r is not an allowed value at level %d", row.id, key, level)
                return False
            group = self._create_group(key, level)

        return group.add_row(row, path[1:])

    def _add_row(self, row) -> bool:
        if self.has_sub_groups:
            raise InvariantViolation("Cannot add a row directly to a group with sub groups",
                                     level=self.level, field=self.field, key=self.key)
        self.rows.append(row)
        row.group = self
        self._membership_changed()
        return True

    def insert_row(self, row, to=None, after: bool = True):
        """
        Insert a row next to ``to``, conforming its data to this group's path.

        If ``to`` is not a member, the row is appended (``after``) or
        prepended (not ``after``).
        """
        if self.has_sub_groups:
            raise InvariantViolation("Cannot insert a row into a group with sub groups",
                                     level=self.level, field=self.field, key=self.key)

        data = self.conform_row_data({})
        if data:
            row.update_data(data)

        current = self._index_of(row)
        if current > -1:
            del self.rows[current]

        to_index = self._index_of(to)
        if to_index > -1:
            self.rows.insert(to_index + 1 if after else to_index, row)
        elif after:
            self.rows.append(row)
        else:
            self.rows.insert(0, row)

        row.group = self
        self._membership_changed()

        self.manager.update_group_rows(True)

    def conform_row_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Write this group's key, and every ancestor's key, into ``data``."""
        if self.field:
            set_field_value(data, self.field, self.key)
        else:
            self.manager.report(ConfigurationError(
                "Cannot conform row data to match new group as its key is derived from a function",
                level=self.level, key=self.key,
            ))

        if self.parent:
            data = self.parent.conform_row_data(data)

        return data

    def remove_row(self, row):
        index = self._index_of(row)
        if index > -1:
            del self.rows[index]
        if row.group is self:
            row.group = None

        self._membership_changed()

        if not self.rows and not self.manager.retains_group(self):
            self._unlink()
        elif not self.manager.blocked:
            self.generate_group_header_contents()

        self.manager.update_group_rows(True)

    def remove_group(self, group: 'Group'):
        composite = (group.level, group.key)

        if self.groups.get(composite) is group:
            del self.groups[composite]
            self.group_list.remove(group)
            group.wipe(elements_only=True)
            self._membership_changed()

            if not self.group_list and not self.manager.retains_group(self):
                self._unlink()

    def _unlink(self):
        if self.parent:
            self.parent.remove_group(self)
        else:
            self.manager.remove_group(self)

    def _index_of(self, row) -> int:
        for i, item in enumerate(self.rows):
            if item is row:
                return i
        return -1

    def _membership_changed(self):
        group = self
        while group is not None:
            group._header_stale = True
            group.visibility.invalidate()
            group = group.parent

    # ------------------------------------------------------------------
    # Flattening
    # ------------------------------------------------------------------

    def get_headers_and_rows(self) -> List[FlatEntry]:
        output = [FlatEntry(
            kind=EntryKind.HEADER,
            indent=self.level,
            group=self,
            content=self.get_header_contents(),
            row_count=self.get_row_count(),
        )]

        self.calcs = {}

        if self.visible:
            if self.has_sub_groups:
                for group in self.group_list:
                    output.extend(group.get_headers_and_rows())
            else:
                self._append_aggregate(output, AggregatePosition.TOP)
                output.extend(
                    FlatEntry(kind=EntryKind.ROW, indent=self.level + 1, group=self, row=row)
                    for row in self.rows
                )
                self._append_aggregate(output, AggregatePosition.BOTTOM)
        elif not self.has_sub_groups and self.manager.config.show_aggregates_while_closed:
            self._append_aggregate(output, AggregatePosition.TOP)
            self._append_aggregate(output, AggregatePosition.BOTTOM)

        return output

    def _append_aggregate(self, output: List[FlatEntry], position: AggregatePosition):
        hook = self.manager.aggregation_hook
        if hook is None:
            return

        if position == AggregatePosition.TOP:
            if not hook.has_top_aggregate():
                return
            calc = hook.generate_top_aggregate(self.rows)
        else:
            if not hook.has_bottom_aggregate():
                return
            calc = hook.generate_bottom_aggregate(self.rows)

        self.calcs[position.value] = calc
        output.append(FlatEntry(
            kind=EntryKind.AGGREGATE,
            indent=self.level + 1,
            group=self,
            content=calc,
            position=position,
        ))

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    @property
    def visible(self) -> bool:
        return self.visibility.resolve(self)

    def toggle_visibility(self):
        if self.visible:
            self.hide()
        else:
            self.show()

    def hide(self):
        self.visibility.set(False)
        self.manager.update_group_rows(True)
        self.manager.dispatch("group_visibility_changed", self.get_component(), False)

    def show(self):
        self.visibility.set(True)
        self.manager.update_group_rows(True)
        self.manager.dispatch("group_visibility_changed", self.get_component(), True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_row_count(self) -> int:
        if self.has_sub_groups:
            return sum(group.get_row_count() for group in self.group_list)
        return len(self.rows)

    def get_rows(self, include_children: bool = False) -> List[Any]:
        if include_children and self.has_sub_groups:
            output = []
            for group in self.group_list:
                output.extend(group.get_rows(include_children))
            return output

        return list(self.rows)

    def get_descendant_data(self) -> List[Dict[str, Any]]:
        return [self.manager.get_row_data(row) for row in self.get_rows(include_children=True)]

    def get_data(self, visible: bool = False) -> List[Dict[str, Any]]:
        if visible and not self.visible:
            return []
        return [self.manager.get_row_data(row) for row in self.rows]

    def get_row_group(self, row) -> Optional['Group']:
        if self.has_sub_groups:
            for group in self.group_list:
                match = group.get_row_group(row)
                if match:
                    return match
            return None

        return self if self._index_of(row) > -1 else None

    def get_sub_groups(self, component: bool = False) -> List[Any]:
        return [child.get_component() if component else child for child in self.group_list]

    def get_path(self) -> List[Any]:
        path = []
        group = self
        while group is not None:
            path.insert(0, group.key)
            group = group.parent
        return path

    # ------------------------------------------------------------------
    # Header contents
    # ------------------------------------------------------------------

    def generate_group_header_contents(self):
        self.header_contents = self.generator(
            self.key, self.get_row_count(), self.get_descendant_data(), self.get_component()
        )
        self._header_stale = False
        return self.header_contents

    def get_header_contents(self):
        if self._header_stale:
            return self.generate_group_header_contents()
        return self.header_contents

    def attach_element(self, element: Any, height: int = 0):
        """Cache a renderer resource for this group's header."""
        self.element = element
        self.height = height

    def get_component(self) -> GroupHandle:
        if self.component is None:
            self.component = GroupHandle(self)
        return self.component
