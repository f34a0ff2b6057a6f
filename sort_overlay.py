import re

import numpy as np

from cell_coercion import is_missing
from column_definition import SortMode

ASC = "asc"
DESC = "desc"
AUTO = "auto"

_DIGITS = re.compile(r"(\d+)")


def natural_key(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, float(value), ())
    parts = _DIGITS.split(str(value).casefold())
    return (
        1,
        0.0,
        tuple((0, int(part)) if part.isdigit() else (1, part) for part in parts if part),
    )


def sort_key(value, mode, handler):
    if mode == SortMode.RAW:
        return str(value).encode("utf-8")
    if mode == SortMode.SMART:
        return natural_key(value)
    return handler.sort_key(value)


def sorted_order(values, mode, handler, direction: str) -> list[int]:
    """Stable order of `values`; missing values first ascending, last descending."""
    missing = [idx for idx, value in enumerate(values) if is_missing(value)]
    keyed = [
        (idx, sort_key(value, mode, handler))
        for idx, value in enumerate(values)
        if not is_missing(value)
    ]
    keyed.sort(key=lambda pair: pair[1], reverse=direction == DESC)
    present = [idx for idx, _ in keyed]
    if direction == DESC:
        return present + missing
    return missing + present


class SortOverlay:
    """One active sort over display rows; the permutation is rebuilt lazily."""

    def __init__(self):
        self.column_index: int | None = None
        self.column_id: str | None = None
        self.direction: str | None = None
        self._permutation: np.ndarray | None = None

    @property
    def is_active(self) -> bool:
        return self.direction is not None

    @property
    def needs_rebuild(self) -> bool:
        return self.is_active and self._permutation is None

    def get_state(self):
        if not self.is_active:
            return None
        return (self.column_id, self.direction)

    def next_direction(self, column_id: str, direction: str = AUTO, auto_reset: bool = False):
        current = self.direction if column_id == self.column_id else None
        if direction == AUTO:
            if current is None:
                return ASC
            if current == ASC:
                return DESC
            return None
        if direction not in (ASC, DESC):
            raise ValueError(f"Unknown sort direction: {direction}")
        if auto_reset and current == direction:
            return None
        return direction

    def apply(self, column_index: int, column_id: str, direction: str | None):
        if direction is None:
            self.clear()
            return
        self.column_index = column_index
        self.column_id = column_id
        self.direction = direction
        self._permutation = None

    def clear(self):
        self.column_index = None
        self.column_id = None
        self.direction = None
        self._permutation = None

    def invalidate(self):
        self._permutation = None

    def rebuild(self, values, mode, handler):
        order = sorted_order(values, mode, handler, self.direction)
        self._permutation = np.asarray(order, dtype=np.int64)

    def to_unsorted(self, display_row: int) -> int | None:
        if not self.is_active or self._permutation is None:
            return display_row
        if display_row < 0 or display_row >= self._permutation.shape[0]:
            return None
        return int(self._permutation[display_row])

    def to_sorted(self, unsorted_row: int) -> int | None:
        if not self.is_active or self._permutation is None:
            return unsorted_row
        hits = np.flatnonzero(self._permutation == unsorted_row)
        return int(hits[0]) if hits.size else None
