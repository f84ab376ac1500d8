"""
Data models for row changes fed into a GroupManager
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class RowChange:
    """Represents a change to one row of the source"""
    type: ChangeType
    row: Any
    new_data: Optional[Dict[str, Any]] = None  # UPDATE only
