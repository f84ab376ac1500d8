"""
Public group handle handed to header generators, visibility predicates and
event listeners.
"""
from typing import Any, List, Optional


class GroupHandle:
    """Public wrapper around an internal Group"""

    type = "GroupHandle"

    def __init__(self, group):
        self._group = group

    def get_key(self) -> Any:
        return self._group.key

    def get_field(self) -> Optional[str]:
        return self._group.field

    def get_level(self) -> int:
        return self._group.level

    def get_element(self) -> Any:
        return self._group.element

    def get_rows(self) -> List[Any]:
        return self._group.get_rows()

    def get_sub_groups(self) -> List['GroupHandle']:
        return self._group.get_sub_groups(True)

    def get_parent_group(self) -> Optional['GroupHandle']:
        return self._group.parent.get_component() if self._group.parent else None

    def get_path(self) -> List[Any]:
        return self._group.get_path()

    def get_row_count(self) -> int:
        return self._group.get_row_count()

    def is_visible(self) -> bool:
        return self._group.visible

    def show(self):
        self._group.show()

    def hide(self):
        self._group.hide()

    def toggle(self):
        self._group.toggle_visibility()

    def _get_self(self):
        return self._group

    def __repr__(self):
        return f"GroupHandle(level={self._group.level}, key={self._group.key!r})"
