import json
import random
import unittest

import pytest

from column_definition import ColumnDataType, ColumnDefinition
from column_type_registry import create_default_registry
from editing_state import EditingState
from grid_cell import Cell, CellKind
from row_index_map import RowIndexMap

COLUMNS = [
    ColumnDefinition(id="id", name="id", data_type=ColumnDataType.TEXT, index_number=0),
    ColumnDefinition(id="qty", name="qty", data_type=ColumnDataType.NUMBER, index_number=1, is_required=True),
]


def text_cell(value):
    return Cell(kind=CellKind.TEXT, data=value, display_data=str(value))


def number_cell(value):
    return Cell(kind=CellKind.NUMBER, data=value, display_data="" if value is None else str(value))


class RowIndexMapTests(unittest.TestCase):
    def test_identity_without_changes(self):
        row_map = RowIndexMap(4, [], set())
        self.assertEqual(len(row_map), 4)
        self.assertEqual([row_map.to_original(d) for d in range(4)], [0, 1, 2, 3])

    def test_skips_deleted_and_appends_added(self):
        added, deleted = [5, 6], {1, 3, 6}
        row_map = RowIndexMap(5, added, deleted)
        self.assertEqual(row_map.mapping.tolist(), [0, 2, 4, 5])
        self.assertEqual(row_map.to_display(4), 2)
        self.assertEqual(row_map.to_display(5), 3)
        self.assertIsNone(row_map.to_display(3))
        self.assertIsNone(row_map.to_display(6))

    def test_out_of_range_lookups_return_none(self):
        row_map = RowIndexMap(2, [], set())
        self.assertIsNone(row_map.to_original(2))
        self.assertIsNone(row_map.to_original(-1))

    def test_mapping_is_cached_until_invalidated(self):
        added, deleted = [], set()
        row_map = RowIndexMap(3, added, deleted)
        self.assertEqual(len(row_map), 3)
        deleted.add(0)
        self.assertEqual(len(row_map), 3)
        row_map.invalidate()
        self.assertEqual(len(row_map), 2)


class EditingStateCellTests(unittest.TestCase):
    def test_set_cell_stamps_monotonic_counter(self):
        state = EditingState(3)
        first = state.set_cell(0, 0, text_cell("a"))
        second = state.set_cell(0, 1, text_cell("b"))
        self.assertLess(first, second)
        self.assertEqual(state.get_cell(0, 0).last_updated, first)

    def test_get_cell_returns_independent_copy(self):
        state = EditingState(1)
        state.set_cell(0, 0, Cell(kind=CellKind.TEXT, data=["x"]))
        cell = state.get_cell(0, 0)
        cell.data.append("y")
        self.assertEqual(state.get_cell(0, 0).data, ["x"])
        self.assertIsNone(state.get_cell(1, 0))

    def test_discard_respects_stamp(self):
        state = EditingState(1)
        stale = state.set_cell(0, 0, text_cell("a"))
        state.set_cell(0, 0, text_cell("b"))
        self.assertFalse(state.discard_cell(0, 0, stale))
        self.assertTrue(state.has_cell(0, 0))
        self.assertTrue(state.discard_cell(0, 0))
        self.assertFalse(state.has_cell(0, 0))


class EditingStateRowTests(unittest.TestCase):
    def test_added_rows_get_synthetic_indices(self):
        state = EditingState(3)
        row = state.add_row({0: text_cell(""), 1: number_cell(None)}, COLUMNS)
        self.assertEqual(row, 3)
        self.assertTrue(state.is_added_row(3))
        self.assertFalse(state.is_added_row(2))
        self.assertEqual(state.get_num_rows(), 4)
        self.assertEqual(state.get_original_row_index(3), 3)

    def test_add_row_requires_every_editable_column(self):
        state = EditingState(3)
        with self.assertRaises(ValueError):
            state.add_row({0: text_cell("")}, COLUMNS)
        self.assertEqual(state.get_num_rows(), 3)

    def test_synthetic_indices_are_not_recycled(self):
        state = EditingState(2)
        first = state.add_row({0: text_cell(""), 1: number_cell(1)}, COLUMNS)
        state.delete_row(first)
        second = state.add_row({0: text_cell(""), 1: number_cell(2)}, COLUMNS)
        self.assertEqual((first, second), (2, 3))
        self.assertEqual(state.get_added_rows(), [3])

    def test_delete_is_idempotent(self):
        once, twice = EditingState(4), EditingState(4)
        once.delete_row(2)
        twice.delete_row(2)
        twice.delete_row(2)
        self.assertEqual(once.get_deleted_rows(), twice.get_deleted_rows())
        self.assertEqual(twice.get_num_rows(), 3)
        self.assertEqual(twice.get_original_row_index(2), 3)

    def test_memory_usage(self):
        state = EditingState(3)
        state.set_cell(0, 0, text_cell("x"))
        state.delete_row(1)
        state.delete_row(2)
        self.assertEqual(
            state.get_memory_usage(),
            {"edited_cells": 1, "added_rows": 0, "deleted_rows": 2},
        )


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_effective_row_count_after_random_mutations(seed):
    rng = random.Random(seed)
    snapshot_rows = 6
    state = EditingState(snapshot_rows)
    added, deleted = set(), set()
    for _ in range(40):
        if rng.random() < 0.4:
            added.add(state.add_row({0: text_cell(""), 1: number_cell(0)}, COLUMNS))
        else:
            row = rng.randrange(snapshot_rows + len(added))
            state.delete_row(row)
            deleted.add(row)
        expected = (
            snapshot_rows
            - len(deleted & set(range(snapshot_rows)))
            + len(added - deleted)
        )
        assert state.get_num_rows() == expected


class EditingStateJsonTests(unittest.TestCase):
    def setUp(self):
        self.registry = create_default_registry()

    def test_export_shape(self):
        state = EditingState(3)
        state.set_cell(1, 0, number_cell(5))
        state.add_row({0: text_cell("new"), 1: number_cell(7)}, COLUMNS)
        state.add_row({0: text_cell("incomplete"), 1: number_cell(None)}, COLUMNS)
        state.delete_row(2)

        payload = json.loads(state.to_json(COLUMNS, self.registry))
        self.assertEqual(payload["edited_rows"], {"0": {"qty": 5}})
        self.assertEqual(payload["added_rows"], [{"id": "new", "qty": 7}])
        self.assertEqual(payload["deleted_rows"], [2])

    def test_parse_rebuilds_cells(self):
        source = EditingState(3)
        source.set_cell(1, 0, number_cell(5))
        source.add_row({0: text_cell("new"), 1: number_cell(7)}, COLUMNS)
        source.delete_row(2)

        parsed = EditingState(3).parse_json(source.to_json(COLUMNS, self.registry), COLUMNS, self.registry)
        self.assertEqual(parsed.edited_cells[(1, 0)].data, 5)
        self.assertEqual(len(parsed.added_rows), 1)
        self.assertEqual(parsed.added_rows[0][0].data, "new")
        self.assertEqual(parsed.added_rows[0][1].data, 7)
        self.assertEqual(parsed.deleted_rows, [2])

    def test_parse_leaves_overlay_untouched(self):
        state = EditingState(3)
        state.set_cell(1, 1, number_cell(4))
        state.parse_json('{"edited_rows": {"0": {"qty": 1}}, "deleted_rows": [2]}', COLUMNS, self.registry)
        self.assertEqual(state.get_memory_usage(), {"edited_cells": 1, "added_rows": 0, "deleted_rows": 0})

    def test_malformed_row_key_raises(self):
        state = EditingState(3)
        with self.assertRaises(ValueError):
            state.parse_json('{"edited_rows": {"0": {"qty": 1}, "oops": {"qty": 2}}}', COLUMNS, self.registry)
        with self.assertRaises(ValueError):
            state.parse_json('{"deleted_rows": ["x"]}', COLUMNS, self.registry)

    def test_edited_rows_outside_snapshot_are_skipped(self):
        payload = '{"edited_rows": {"7": {"qty": 1}, "-1": {"qty": 2}, "1": {"qty": 3}}}'
        parsed = EditingState(3).parse_json(payload, COLUMNS, self.registry)
        self.assertEqual(list(parsed.edited_cells), [(1, 1)])
