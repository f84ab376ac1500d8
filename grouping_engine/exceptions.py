"""
Error taxonomy for the grouping engine.

ConfigurationError and ResolutionFailure are reported (logged and collected on
the manager) while processing continues; InvariantViolation is raised.
"""
from typing import Any, Optional


class GroupingError(Exception):
    """Base class for grouping engine errors"""

    def __init__(self, message: str, level: Optional[int] = None,
                 field: Optional[str] = None, key: Any = None):
        super().__init__(message)
        self.level = level
        self.field = field
        self.key = key

    def describe(self) -> str:
        parts = [str(self)]
        if self.level is not None:
            parts.append(f"level={self.level}")
        if self.field is not None:
            parts.append(f"field={self.field!r}")
        if self.key is not None:
            parts.append(f"key={self.key!r}")
        return " ".join(parts)


class ConfigurationError(GroupingError):
    """Grouping options cannot support the requested operation"""


class ResolutionFailure(GroupingError):
    """A key resolver raised or produced a key that cannot be grouped on"""


class InvariantViolation(GroupingError):
    """Internal tree invariant broken; a programming error"""
