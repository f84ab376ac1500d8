"""
Types and normalization for grouping options.

The option surface accepts a single value or a list per option:

- ``group_by``: field name or callable(row_data) per level
- ``start_open``: bool or callable(key, count, data, group) per level
- ``group_header``: callable(key, count, data, group) per level
- ``group_values``: list of allowed keys per level (or None for a free level)
"""
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Union

from ..exceptions import ConfigurationError


class _Undefined:
    """Key used for rows that lack the grouping field"""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(_Undefined, cls).__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNDEFINED"

    def __bool__(self):
        return False

    def __reduce__(self):
        return (_Undefined, ())


UNDEFINED = _Undefined()

# NaN never equals itself, so every NaN key maps onto this one object
NAN_KEY = float("nan")


def canonical_key(key: Any) -> Any:
    if isinstance(key, float) and key != key:
        return NAN_KEY
    return key

HeaderGenerator = Callable[[Any, int, List[dict], Any], Any]
StartOpenRule = Union[bool, Callable[[Any, int, List[dict], Any], bool]]


@dataclass
class LevelSpec:
    """One grouping level: a field lookup or an extractor function"""
    field: Optional[str] = None
    func: Optional[Callable[[dict], Any]] = None
    values: Optional[List[Any]] = None

    @property
    def is_function(self) -> bool:
        return self.func is not None

    @property
    def label(self) -> str:
        if self.field is not None:
            return self.field
        return getattr(self.func, "__name__", "<function>")


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def default_header_generator(item_label: str = "item", items_label: str = "items") -> HeaderGenerator:
    """Header text of the form ``<key> (<count> items)``."""
    def generate(key, count, data, group):
        label = item_label if count == 1 else items_label
        text = "" if key is UNDEFINED else str(key)
        return f"{text} ({count} {label})"

    return generate


@dataclass
class GroupingSpec:
    group_by: Optional[Union[str, Callable, List[Union[str, Callable]]]] = None
    start_open: Optional[Union[StartOpenRule, List[StartOpenRule]]] = None
    group_header: Optional[Union[HeaderGenerator, List[HeaderGenerator]]] = None
    group_values: Optional[List[Optional[List[Any]]]] = None
    levels: List[LevelSpec] = field(default_factory=list)

    def __post_init__(self):
        self.levels = self.build_levels()

    @property
    def enabled(self) -> bool:
        return bool(self.levels)

    def build_levels(self) -> List[LevelSpec]:
        if self.group_by is None or self.group_by is False:
            return []

        levels = []
        for i, group in enumerate(_as_list(self.group_by)):
            values = None
            if self.group_values and i < len(self.group_values):
                values = [canonical_key(v) for v in self.group_values[i]] if self.group_values[i] else None

            if callable(group):
                levels.append(LevelSpec(field=None, func=group, values=values))
            elif isinstance(group, str):
                levels.append(LevelSpec(field=group, func=None, values=values))
            else:
                raise ConfigurationError(
                    f"Grouping level must be a field name or a callable, got {type(group).__name__}",
                    level=i,
                )
        return levels

    def start_open_rules(self, default: bool = True) -> List[StartOpenRule]:
        """Normalize start-open options to a non-empty list of bools/callables."""
        if self.start_open is None:
            return [default]

        rules = []
        for rule in _as_list(self.start_open):
            rules.append(rule if callable(rule) else bool(rule))
        return rules or [default]

    def header_generators(self, default: HeaderGenerator) -> List[HeaderGenerator]:
        if not self.group_header:
            return [default]
        return _as_list(self.group_header)

    @staticmethod
    def from_dict(d: dict) -> 'GroupingSpec':
        return GroupingSpec(
            group_by=d.get("group_by"),
            start_open=d.get("start_open"),
            group_header=d.get("group_header"),
            group_values=d.get("group_values"),
        )

    def to_dict(self):
        return {
            "group_by": self.group_by,
            "start_open": self.start_open,
            "group_header": self.group_header,
            "group_values": self.group_values,
        }
