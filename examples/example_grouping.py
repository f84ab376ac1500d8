"""
Example usage of the grouping_engine with an in-memory Arrow table.
"""
import json

import pyarrow as pa
from grouping_engine import ArrowRowSource, ColumnCalcHook, GroupManager, GroupingEngineConfig
from grouping_engine.config import setup_logging


def main():
    config = GroupingEngineConfig(log_level="DEBUG")
    setup_logging(config)

    table = pa.table({
        "id": [1, 2, 3, 4, 5],
        "region": ["North", "North", "South", "South", "East"],
        "product": ["A", "B", "A", "A", "B"],
        "sales": [100, 200, 150, 50, 300],
    })

    # Group by region, then product; products start collapsed when they hold a single row
    manager = GroupManager(
        group_by=["region", "product"],
        start_open=[True, lambda key, count, data, group: count > 1],
        config=config,
        aggregation_hook=ColumnCalcHook(bottom_calcs={"sales": "sum"}),
        row_source=ArrowRowSource(table, id_column="id"),
    )
    manager.subscribe("group_visibility_changed", lambda handle, visible: print(f"{handle!r} visible={visible}"))
    manager.build()

    print("\nRender list:")
    for entry in manager.flatten():
        if entry.is_header:
            print("  " * entry.indent + str(entry.content))
        elif entry.is_row:
            print("  " * entry.indent + json.dumps(entry.row.get_data()))
        else:
            print("  " * entry.indent + f"[{entry.position.value}] {entry.content}")

    # Collapse the first region and regroup a row
    manager.hide(manager.get_groups()[0])
    south_row = manager.get_groups()[1].get_rows(include_children=True)[0]
    south_row.update_data({"region": "East"})
    manager.reassign_row(south_row)

    print("\nGrouped data:")
    print(json.dumps(manager.get_grouped_data(), indent=2, default=str))

    print("\nAs Arrow:")
    print(manager.grouped_data_to_arrow())


if __name__ == "__main__":
    main()
