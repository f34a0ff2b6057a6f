import datetime as dt
import itertools
import json
import logging
from dataclasses import dataclass, field

from cell_coercion import is_missing
from column_definition import RenderContext
from row_index_map import RowIndexMap

logger = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, (dt.date, dt.time, dt.datetime)):
        return value.isoformat()
    return str(value)


@dataclass
class OverlayPayload:
    edited_cells: dict = field(default_factory=dict)
    added_rows: list = field(default_factory=list)
    deleted_rows: list = field(default_factory=list)


class EditingState:
    """Sparse overlay of edits, added rows and deleted rows over a snapshot.

    Cells are keyed by (original column, original row). Added rows receive
    synthetic original indices past the snapshot and are never recycled;
    deletion only hides an index and cannot be undone within a session.
    """

    def __init__(self, num_rows: int):
        self.num_rows = max(0, num_rows)
        self._edited_cells: dict[tuple[int, int], object] = {}
        self._added_rows: list[int] = []
        self._deleted_rows: set[int] = set()
        self._clock = itertools.count(1)
        self.row_map = RowIndexMap(self.num_rows, self._added_rows, self._deleted_rows)

    # ---------- cells ----------
    def set_cell(self, col: int, row: int, cell):
        stored = cell.copy()
        stored.last_updated = next(self._clock)
        self._edited_cells[(col, row)] = stored
        return stored.last_updated

    def get_cell(self, col: int, row: int):
        cell = self._edited_cells.get((col, row))
        return cell.copy() if cell is not None else None

    def has_cell(self, col: int, row: int) -> bool:
        return (col, row) in self._edited_cells

    def discard_cell(self, col: int, row: int, stamp: int | None = None) -> bool:
        """Drop an edit record, optionally only if it still carries `stamp`."""
        cell = self._edited_cells.get((col, row))
        if cell is None:
            return False
        if stamp is not None and cell.last_updated != stamp:
            return False
        del self._edited_cells[(col, row)]
        return True

    # ---------- rows ----------
    def is_added_row(self, row: int) -> bool:
        return row >= self.num_rows

    def next_row_index(self) -> int:
        return self.num_rows + len(self._added_rows)

    def add_row(self, cells_by_column: dict, columns=()) -> int:
        missing = [
            column.column_name
            for column in columns
            if column.is_editable and column.index_number not in cells_by_column
        ]
        if missing:
            raise ValueError(f"Added row is missing cells for: {', '.join(missing)}")

        row = self.next_row_index()
        for col, cell in cells_by_column.items():
            self.set_cell(col, row, cell)
        self._added_rows.append(row)
        self.row_map.invalidate()
        return row

    def delete_row(self, row: int):
        if row in self._deleted_rows:
            return
        self._deleted_rows.add(row)
        self.row_map.invalidate()

    def get_deleted_rows(self) -> set[int]:
        return set(self._deleted_rows)

    def get_added_rows(self) -> list[int]:
        return [row for row in self._added_rows if row not in self._deleted_rows]

    def get_original_row_index(self, display_row: int) -> int | None:
        return self.row_map.to_original(display_row)

    def get_display_row_index(self, original_row: int) -> int | None:
        return self.row_map.to_display(original_row)

    def get_num_rows(self) -> int:
        return len(self.row_map)

    # ---------- housekeeping ----------
    def get_memory_usage(self) -> dict:
        return {
            "edited_cells": len(self._edited_cells),
            "added_rows": len(self._added_rows),
            "deleted_rows": len(self._deleted_rows),
        }

    # ---------- serialization ----------
    def to_json(self, columns, registry) -> str:
        state = {"edited_rows": {}, "added_rows": [], "deleted_rows": []}

        for (col, row), cell in sorted(self._edited_cells.items(), key=lambda kv: (kv[0][1], kv[0][0])):
            if self.is_added_row(row) or col >= len(columns):
                continue
            column = columns[col]
            handler = registry.get(column.data_type)
            if handler is None:
                continue
            edited = state["edited_rows"].setdefault(str(row), {})
            edited[column.column_name] = handler.extract_value(cell)

        for row in self.get_added_rows():
            added = {}
            incomplete = False
            for column in columns:
                handler = registry.get(column.data_type)
                cell = self._edited_cells.get((column.index_number, row))
                if handler is None or cell is None:
                    continue
                value = handler.extract_value(cell)
                if column.is_required and column.is_editable and is_missing(value):
                    incomplete = True
                if value is not None:
                    added[column.column_name] = value
            if not incomplete:
                state["added_rows"].append(added)

        state["deleted_rows"] = sorted(r for r in self._deleted_rows if not self.is_added_row(r))
        return json.dumps(state, default=_json_default)

    def parse_json(self, payload: str, columns, registry, context: RenderContext | None = None) -> OverlayPayload:
        """Build cells from exported edits without touching the overlay.

        Raises ValueError on malformed payloads. Edited rows outside the
        snapshot are skipped.
        """
        state = json.loads(payload) if payload else {}
        if not isinstance(state, dict):
            raise ValueError("Edit payload must be a JSON object")
        by_name = {column.column_name: column for column in columns}
        parsed = OverlayPayload()

        def build(column, value):
            handler = registry.get(column.data_type)
            if handler is None:
                logger.warning("No column type registered for %s", column.data_type)
                return None
            try:
                return handler.to_display_cell(value, column, context)
            except (TypeError, ValueError):
                logger.warning("Skipping unreadable value %r for column %s", value, column.column_name)
                return None

        for key, edited in (state.get("edited_rows") or {}).items():
            try:
                row = int(key)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid edited row key {key!r}") from None
            if not 0 <= row < self.num_rows:
                logger.warning("Skipping edits for row %d outside the snapshot", row)
                continue
            if not isinstance(edited, dict):
                raise ValueError(f"Edited row {key!r} must map column names to values")
            for name, value in edited.items():
                column = by_name.get(name)
                cell = build(column, value) if column is not None else None
                if cell is not None:
                    parsed.edited_cells[(column.index_number, row)] = cell

        for added in state.get("added_rows") or []:
            if not isinstance(added, dict):
                raise ValueError("Added rows must map column names to values")
            cells = {}
            for column in columns:
                handler = registry.get(column.data_type)
                if handler is None:
                    continue
                raw = added.get(column.column_name, handler.default_value(column))
                cell = build(column, raw)
                if cell is None:
                    cell = build(column, handler.default_value(column))
                if cell is not None:
                    cells[column.index_number] = cell
            parsed.added_rows.append(cells)

        for row in state.get("deleted_rows") or []:
            if not isinstance(row, int) or isinstance(row, bool):
                raise ValueError(f"Invalid deleted row {row!r}")
            if 0 <= row < self.num_rows:
                parsed.deleted_rows.append(row)
        return parsed
