import numpy as np


class RowIndexMap:
    """Display row <-> original row translation.

    Display order is the snapshot rows that are not deleted, followed by the
    added rows that are not deleted, in insertion order. Synthetic indices are
    allocated past the snapshot in increasing order, so the mapping array is
    strictly increasing and the reverse lookup is a binary search.

    The array is rebuilt lazily; owners call invalidate() on add/delete only.
    """

    def __init__(self, snapshot_rows: int, added_rows: list, deleted_rows: set):
        self.snapshot_rows = snapshot_rows
        self._added_rows = added_rows
        self._deleted_rows = deleted_rows
        self._mapping: np.ndarray | None = None

    def invalidate(self):
        self._mapping = None

    def _build(self) -> np.ndarray:
        base = np.arange(self.snapshot_rows, dtype=np.int64)
        added = np.asarray(self._added_rows, dtype=np.int64)
        if self._deleted_rows:
            deleted = np.fromiter(self._deleted_rows, dtype=np.int64)
            base = base[~np.isin(base, deleted)]
            added = added[~np.isin(added, deleted)]
        return np.concatenate([base, added])

    @property
    def mapping(self) -> np.ndarray:
        if self._mapping is None:
            self._mapping = self._build()
        return self._mapping

    def __len__(self):
        return int(self.mapping.shape[0])

    def to_original(self, display_row: int) -> int | None:
        mapping = self.mapping
        if display_row < 0 or display_row >= mapping.shape[0]:
            return None
        return int(mapping[display_row])

    def to_display(self, original_row: int) -> int | None:
        mapping = self.mapping
        idx = int(np.searchsorted(mapping, original_row))
        if idx < mapping.shape[0] and int(mapping[idx]) == original_row:
            return idx
        return None
