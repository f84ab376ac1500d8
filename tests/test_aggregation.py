"""
Tests for aggregate rows, Arrow row sources and grouped data export.
"""
import pyarrow as pa
import pytest
from grouping_engine.aggregation import ColumnCalcHook
from grouping_engine.config import GroupingEngineConfig
from grouping_engine.manager import GroupManager
from grouping_engine.rows import ArrowRowSource, ListRowSource, Row
from grouping_engine.types.entries import AggregatePosition, EntryKind
from grouping_engine.util.arrow_utils import calc_column, ensure_arrow_table, grouped_rows_to_arrow


@pytest.fixture
def sales_table() -> pa.Table:
    return pa.table({
        "id": [1, 2, 3],
        "region": ["EU", "EU", "NA"],
        "sales": [10, 20, 5],
    })


@pytest.fixture
def hook() -> ColumnCalcHook:
    return ColumnCalcHook(top_calcs={"sales": "sum"}, bottom_calcs={"sales": "count"})


def test_aggregate_entries_wrap_leaf_rows(sales_table, hook):
    manager = GroupManager(
        group_by="region",
        config=GroupingEngineConfig(),
        aggregation_hook=hook,
        row_source=ArrowRowSource(sales_table, id_column="id"),
    )
    manager.build()

    entries = manager.flatten()
    kinds = [e.kind for e in entries]
    assert kinds == [
        EntryKind.HEADER, EntryKind.AGGREGATE, EntryKind.ROW, EntryKind.ROW, EntryKind.AGGREGATE,
        EntryKind.HEADER, EntryKind.AGGREGATE, EntryKind.ROW, EntryKind.AGGREGATE,
    ]

    assert entries[1].position == AggregatePosition.TOP
    assert entries[1].content == {"sales": 30}
    assert entries[4].position == AggregatePosition.BOTTOM
    assert entries[4].content == {"sales": 2}
    assert entries[1].indent == 1

    group_eu = manager.get_groups()[0]
    assert group_eu.calcs == {"top": {"sales": 30}, "bottom": {"sales": 2}}


def test_closed_groups_hide_aggregates_by_default(sales_table, hook):
    manager = GroupManager(
        group_by="region",
        start_open=False,
        config=GroupingEngineConfig(),
        aggregation_hook=hook,
        row_source=ArrowRowSource(sales_table),
    )
    manager.build()

    assert all(e.is_header for e in manager.flatten())


def test_closed_groups_show_aggregates_when_configured(sales_table, hook):
    manager = GroupManager(
        group_by="region",
        start_open=False,
        config=GroupingEngineConfig(show_aggregates_while_closed=True),
        aggregation_hook=hook,
        row_source=ArrowRowSource(sales_table),
    )
    manager.build()

    kinds = [e.kind for e in manager.flatten()]
    assert kinds == [EntryKind.HEADER, EntryKind.AGGREGATE, EntryKind.AGGREGATE] * 2


def test_aggregates_only_on_leaf_groups(hook):
    rows = [Row({"d": "X", "t": "1", "sales": 4}), Row({"d": "X", "t": "1", "sales": 6})]
    manager = GroupManager(group_by=["d", "t"], config=GroupingEngineConfig(), aggregation_hook=hook)
    manager.build(rows)

    entries = manager.flatten()
    aggregates = [e for e in entries if e.is_aggregate]
    assert len(aggregates) == 2
    assert all(e.group.key == "1" for e in aggregates)
    assert aggregates[0].content == {"sales": 10}


def test_arrow_row_source_ids(sales_table):
    source = ArrowRowSource(sales_table, id_column="id")

    assert [row.id for row in source.get_rows()] == [1, 2, 3]
    assert source.get_row_data(source.get_rows()[2]) == {"id": 3, "region": "NA", "sales": 5}


def test_list_row_source_add_remove():
    source = ListRowSource([{"k": "A"}])
    row = source.add({"k": "B"})

    manager = GroupManager(group_by="k", config=GroupingEngineConfig(), row_source=source)
    manager.build()
    assert [g.key for g in manager.get_groups()] == ["A", "B"]

    source.remove(row)
    manager.build()
    assert [g.key for g in manager.get_groups()] == ["A"]


def test_grouped_data_to_arrow(sales_table):
    manager = GroupManager(
        group_by="region",
        config=GroupingEngineConfig(),
        row_source=ArrowRowSource(sales_table, id_column="id"),
    )
    manager.build()

    table = manager.grouped_data_to_arrow()

    assert table.num_rows == 3
    assert {"id", "region", "sales", "_group_level", "_group_path"} <= set(table.column_names)
    assert table.column("_group_path").to_pylist() == [["EU"], ["EU"], ["NA"]]
    assert table.column("_group_level").to_pylist() == [0, 0, 0]


def test_grouped_rows_to_arrow_empty():
    table = grouped_rows_to_arrow([])

    assert table.num_rows == 0
    assert table.column_names == ["_group_level", "_group_path"]


def test_get_grouped_data():
    rows = [Row({"d": "X", "t": "1"}), Row({"d": "X", "t": "2"})]
    manager = GroupManager(group_by=["d", "t"], config=GroupingEngineConfig())
    manager.build(rows)

    data = manager.get_grouped_data()

    assert data[0] == {"level": 0, "row_count": 2, "header_content": "X (2 items)"}
    assert data[1] == {"level": 1, "row_count": 1, "header_content": "1 (1 item)"}
    assert data[2] == {"d": "X", "t": "1"}
    assert len(data) == 5


def test_row_sample():
    rows = [Row({"k": "B"}), Row({"k": "A"})]
    manager = GroupManager(group_by="k", config=GroupingEngineConfig())
    assert manager.row_sample() == []

    manager.build(rows)
    assert manager.row_sample() == [rows[0]]


class TestCalcColumn:

    def test_calculations(self):
        records = [{"v": 1}, {"v": 2}, {"v": 6}, {"other": 1}]

        assert calc_column(records, "v", "sum") == 9
        assert calc_column(records, "v", "avg") == 3.0
        assert calc_column(records, "v", "min") == 1
        assert calc_column(records, "v", "max") == 6
        assert calc_column(records, "v", "count") == 3

    def test_missing_column(self):
        assert calc_column([], "v", "count") == 0
        assert calc_column([{"x": 1}], "v", "sum") is None

    def test_unsupported_calculation(self):
        with pytest.raises(ValueError):
            calc_column([{"v": 1}], "v", "median")


def test_ensure_arrow_table_inputs(sales_table):
    assert ensure_arrow_table(sales_table) is sales_table
    assert ensure_arrow_table({"a": [1, 2]}).num_rows == 2
    assert ensure_arrow_table([{"a": 1}]).column_names == ["a"]

    with pytest.raises(ValueError):
        ensure_arrow_table(42)


class ScaledRowSource(ListRowSource):
    """Row source that serves sales in cents."""

    def get_row_data(self, row):
        data = dict(row.get_data())
        data["sales"] = data["sales"] * 100
        return data


def test_aggregates_read_through_row_source():
    source = ScaledRowSource([{"region": "EU", "sales": 1}, {"region": "EU", "sales": 2}])
    manager = GroupManager(
        group_by="region",
        group_header=lambda key, count, data, group: sum(d["sales"] for d in data),
        config=GroupingEngineConfig(),
        aggregation_hook=ColumnCalcHook(bottom_calcs={"sales": "sum"}),
        row_source=source,
    )
    manager.build()

    entries = manager.flatten()
    assert entries[0].content == 300
    assert entries[-1].content == {"sales": 300}
