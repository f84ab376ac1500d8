"""
Utilities for Arrow table handling.
"""
from typing import Any, Dict, List, Optional

import pyarrow as pa
import pyarrow.compute as pc


_CALC_FUNCTIONS = {
    "sum": pc.sum,
    "avg": pc.mean,
    "mean": pc.mean,
    "min": pc.min,
    "max": pc.max,
    "count": pc.count,
}


def ensure_arrow_table(data: Any) -> pa.Table:
    """
    Ensure the input data is a PyArrow Table.

    Args:
        data: Input data (pa.Table, pandas.DataFrame, list of dicts, dict of lists)

    Returns:
        pa.Table
    """
    if isinstance(data, pa.Table):
        return data

    # Check for pandas DataFrame without importing pandas if not needed
    if hasattr(data, "to_dict") and hasattr(data, "columns"):
        return pa.Table.from_pandas(data)

    if isinstance(data, list):
        if not data:
            return pa.Table.from_pydict({})
        return pa.Table.from_pylist(data)

    if isinstance(data, dict):
        return pa.Table.from_pydict(data)

    raise ValueError(f"Could not convert {type(data)} to PyArrow Table")


def calc_column(records: List[Dict[str, Any]], column: str, calc: str) -> Optional[Any]:
    """
    Compute a single aggregate over one column of a list of records.

    Returns None when there are no records or the column is absent.
    """
    func = _CALC_FUNCTIONS.get(calc)
    if func is None:
        raise ValueError(f"Unsupported calculation: {calc}")

    values = [r[column] for r in records if column in r]
    if not values:
        return 0 if calc == "count" else None

    result = func(pa.array(values))
    return result.as_py()


def grouped_rows_to_arrow(grouped_rows: List[Dict[str, Any]]) -> pa.Table:
    """
    Build a table from ``{"level": int, "path": [...], "data": {...}}`` records.

    Group path values are stringified so mixed-type keys share one column type.
    """
    records = []
    for item in grouped_rows:
        record = dict(item["data"])
        record["_group_level"] = item["level"]
        record["_group_path"] = [str(k) for k in item["path"]]
        records.append(record)

    if not records:
        return pa.table({
            "_group_level": pa.array([], type=pa.int64()),
            "_group_path": pa.array([], type=pa.list_(pa.string())),
        })

    return pa.Table.from_pylist(records)
