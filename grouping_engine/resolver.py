"""
Key resolution for grouping levels.

A level either reads a (possibly dotted) field from the row data or calls a
user supplied extractor with the full row data.
"""
from typing import Any, Dict, List, Mapping, Optional

from .exceptions import ResolutionFailure
from .types.grouping_spec import LevelSpec, UNDEFINED, canonical_key


def get_field_value(data: Mapping[str, Any], field: str) -> Any:
    """Read a field from row data, following dots into nested mappings."""
    if field in data:
        return data[field]

    value: Any = data
    for part in field.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return UNDEFINED
        value = value[part]
    return value


def set_field_value(data: Dict[str, Any], field: str, value: Any) -> Dict[str, Any]:
    """Write a field into row data, creating nested mappings for dotted paths."""
    parts = field.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value
    return data


class GroupKeyResolver:
    """Resolves group keys for each configured level."""

    def __init__(self, levels: Optional[List[LevelSpec]] = None):
        self.levels: List[LevelSpec] = list(levels or [])

    def resolve(self, level: int, data: Mapping[str, Any]) -> Any:
        """
        Resolve the key of a row at one level.

        Raises:
            ResolutionFailure: the extractor raised, or the key is unhashable.
        """
        spec = self.levels[level]

        try:
            if spec.func is not None:
                key = spec.func(data)
            else:
                key = get_field_value(data, spec.field)
        except Exception as e:
            raise ResolutionFailure(
                f"Group key lookup failed: {e}", level=level, field=spec.field
            ) from e

        try:
            hash(key)
        except TypeError as e:
            raise ResolutionFailure(
                f"Group key of type {type(key).__name__} is not hashable",
                level=level, field=spec.field, key=key
            ) from e

        return canonical_key(key)

    def expected_path(self, data: Mapping[str, Any], start: int = 0) -> List[Any]:
        """Resolve the keys for every level from ``start`` down to the leaf level."""
        return [self.resolve(level, data) for level in range(start, len(self.levels))]

    @staticmethod
    def paths_equal(path_a: List[Any], path_b: List[Any]) -> bool:
        if len(path_a) != len(path_b):
            return False
        for a, b in zip(path_a, path_b):
            a, b = canonical_key(a), canonical_key(b)
            if not (a is b or a == b):
                return False
        return True
