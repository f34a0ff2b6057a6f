import unittest

import pytest

from column_definition import SortMode
from column_types import NumberColumn, TextColumn
from sort_overlay import ASC, AUTO, DESC, SortOverlay, natural_key, sorted_order


@pytest.mark.parametrize(
    "direction, expected",
    [(ASC, [1, 2, 3, 0]), (DESC, [0, 3, 2, 1])],
)
def test_missing_values_first_ascending_last_descending(direction, expected):
    values = [3, None, 1, 2]
    assert sorted_order(values, SortMode.DEFAULT, NumberColumn(), direction) == expected


def test_sort_is_stable_for_equal_keys():
    values = [2, 1, 2, 1]
    assert sorted_order(values, SortMode.DEFAULT, NumberColumn(), ASC) == [1, 3, 0, 2]


def test_raw_mode_compares_bytes():
    values = ["b", "B", "a"]
    assert sorted_order(values, SortMode.RAW, TextColumn(), ASC) == [1, 2, 0]


def test_smart_mode_orders_embedded_numbers_naturally():
    values = ["file10", "file2", "File1"]
    assert sorted_order(values, SortMode.SMART, TextColumn(), ASC) == [2, 1, 0]
    assert natural_key(2) < natural_key("1")


def test_default_mode_numbers_are_numeric_not_lexical():
    values = ["10", "9", "100"]
    assert sorted_order(values, SortMode.DEFAULT, NumberColumn(), ASC) == [1, 0, 2]


class NextDirectionTests(unittest.TestCase):
    def test_auto_cycles_asc_desc_none(self):
        overlay = SortOverlay()
        seen = []
        for _ in range(3):
            direction = overlay.next_direction("qty", AUTO)
            overlay.apply(1, "qty", direction)
            seen.append(direction)
        self.assertEqual(seen, [ASC, DESC, None])
        self.assertFalse(overlay.is_active)

    def test_auto_on_other_column_starts_ascending(self):
        overlay = SortOverlay()
        overlay.apply(1, "qty", DESC)
        self.assertEqual(overlay.next_direction("id", AUTO), ASC)

    def test_auto_reset_toggles_off(self):
        overlay = SortOverlay()
        overlay.apply(1, "qty", ASC)
        self.assertIsNone(overlay.next_direction("qty", ASC, auto_reset=True))
        self.assertEqual(overlay.next_direction("qty", ASC), ASC)
        self.assertEqual(overlay.next_direction("qty", DESC, auto_reset=True), DESC)

    def test_unknown_direction(self):
        with self.assertRaises(ValueError):
            SortOverlay().next_direction("qty", "sideways")


class PermutationTests(unittest.TestCase):
    def test_identity_when_inactive(self):
        overlay = SortOverlay()
        self.assertEqual(overlay.to_unsorted(4), 4)
        self.assertIsNone(overlay.get_state())

    def test_rebuild_and_translate(self):
        overlay = SortOverlay()
        overlay.apply(0, "qty", ASC)
        self.assertTrue(overlay.needs_rebuild)
        overlay.rebuild([30, 10, 20], SortMode.DEFAULT, NumberColumn())
        self.assertFalse(overlay.needs_rebuild)
        self.assertEqual([overlay.to_unsorted(i) for i in range(3)], [1, 2, 0])
        self.assertEqual(overlay.to_sorted(0), 2)
        self.assertIsNone(overlay.to_unsorted(3))
        self.assertEqual(overlay.get_state(), ("qty", ASC))

    def test_invalidate_forces_rebuild(self):
        overlay = SortOverlay()
        overlay.apply(0, "qty", DESC)
        overlay.rebuild([1, 2], SortMode.DEFAULT, NumberColumn())
        overlay.invalidate()
        self.assertTrue(overlay.needs_rebuild)
        overlay.clear()
        self.assertFalse(overlay.needs_rebuild)
