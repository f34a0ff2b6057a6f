import asyncio
import inspect
import logging
from dataclasses import replace

from cell_cache import CellCache
from column_definition import RenderContext
from column_type_registry import create_default_registry
from column_types import TextColumn
from editing_state import EditingState
from grid_cell import (
    Cell,
    CellKind,
    bounds_error_cell,
    creation_error_cell,
    error_cell,
    loading_cell,
    placeholder_cell,
)
from sort_overlay import AUTO, SortOverlay

logger = logging.getLogger(__name__)


def _running_loop():
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


async def _await(awaitable):
    return await awaitable


class DataProvider:
    """Editable view over an immutable snapshot.

    Reads go sort overlay -> row index map -> edit overlay -> cache ->
    data source, and never raise: every failure becomes an error cell.
    Writes land in the edit overlay immediately and reach the data source
    asynchronously.
    """

    def __init__(
        self,
        data_source,
        registry=None,
        theme=None,
        is_dark_theme=False,
        column_formats=None,
        persist_failure_policy="keep",
        cell_styler=None,
        on_cell_loaded=None,
    ):
        self.data_source = data_source
        self.registry = registry if registry is not None else create_default_registry()
        self.context = RenderContext(dict(theme or {}), is_dark_theme)
        self.column_formats = dict(column_formats or {})
        self.persist_failure_policy = persist_failure_policy
        self.cell_styler = cell_styler
        self.on_cell_loaded = on_cell_loaded

        self._cache = CellCache()
        self._sort = SortOverlay()
        self._tasks = set()
        self._load_session()

    def _load_session(self):
        self.column_definitions = [
            replace(column, index_number=idx)
            for idx, column in enumerate(self.data_source.get_column_definitions())
        ]
        self._formatted_columns = None
        self.editing_state = EditingState(self.data_source.row_count)

    # ---------- dimensions ----------
    def get_row_count(self) -> int:
        return self.editing_state.get_num_rows()

    def get_column_count(self) -> int:
        return len(self.column_definitions)

    def get_column_definition(self, col: int):
        if col < 0 or col >= self.get_column_count():
            return None
        return self._columns()[col]

    def _columns(self):
        if self._formatted_columns is None:
            self._formatted_columns = [
                self._apply_column_format(column) for column in self.column_definitions
            ]
        return self._formatted_columns

    def _apply_column_format(self, column):
        fmt = self.column_formats.get(column.id)
        return column.with_format(fmt) if fmt else column

    def _in_bounds(self, col: int, row: int) -> bool:
        return 0 <= col < self.get_column_count() and 0 <= row < self.get_row_count()

    # ---------- reads ----------
    def get_cell(self, col: int, row: int) -> Cell:
        try:
            if not self._in_bounds(col, row):
                return bounds_error_cell(col, row)
            unsorted = self._unsorted_row(row)
            if unsorted is None:
                return bounds_error_cell(col, row)
            return self._resolve(col, unsorted)
        except Exception as exc:
            logger.error("Failed to resolve cell %d,%d: %s", col, row, exc)
            return error_cell(f"Error: {exc}")

    def _unsorted_row(self, row: int):
        if self._sort.needs_rebuild:
            self._rebuild_sort()
        return self._sort.to_unsorted(row)

    def _original_row(self, display_row):
        if display_row is None:
            return None
        return self.editing_state.get_original_row_index(display_row)

    def _resolve(self, col: int, display_row: int) -> Cell:
        column = self._columns()[col]
        original = self.editing_state.get_original_row_index(display_row)
        if original is None:
            return bounds_error_cell(col, display_row)

        handler = self.registry.get(column.data_type)
        if handler is None:
            logger.warning("No column type registered for %s", column.data_type)
            return placeholder_cell()

        is_added = self.editing_state.is_added_row(original)
        if column.is_editable or is_added:
            edited = self.editing_state.get_cell(col, original)
            if edited is not None:
                return self._rederive(edited, column, handler)
            if is_added:
                return creation_error_cell(col, display_row, "added row has no value")

        key = (col, display_row)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        return self._read_snapshot(key, original, column, handler)

    def _rederive(self, edited: Cell, column, handler) -> Cell:
        try:
            cell = handler.to_display_cell(handler.extract_value(edited), column, self.context)
        except (TypeError, ValueError):
            if edited.validation_error:
                return edited
            raise
        cell.last_updated = edited.last_updated
        if edited.validation_error:
            self._mark_invalid(cell, edited.validation_error)
        return cell

    def _mark_invalid(self, cell: Cell, reason: str):
        cell.validation_error = reason
        cell.tooltip = reason
        cell.theme_override = {"textColor": self.context.error_color()}

    def _read_snapshot(self, key, original, column, handler) -> Cell:
        col, display_row = key
        raw = self.data_source.get_cell_data(col, original)
        if inspect.isawaitable(raw):
            loop = _running_loop()
            if loop is not None:
                base = handler.to_display_cell(handler.default_value(column), column, self.context)
                placeholder = loading_cell(base)
                self._cache.put(key, placeholder)
                generation = self._cache.generation
                self._track(loop.create_task(self._fetch(raw, key, original, column, handler, generation)))
                return placeholder
            raw = asyncio.run(_await(raw))

        cell = self._snapshot_cell(raw, column, handler, original)
        self._cache.put(key, cell)
        return cell

    def _snapshot_cell(self, raw, column, handler, original) -> Cell:
        try:
            cell = handler.to_display_cell(raw, column, self.context)
        except (TypeError, ValueError) as exc:
            return error_cell(
                f"Incompatible value for column '{column.column_name}': {raw!r}",
                tooltip=str(exc),
            )
        if self.cell_styler is not None:
            cell = self.cell_styler(cell, column, original) or cell
        return cell

    async def _fetch(self, awaitable, key, original, column, handler, generation):
        col, display_row = key
        try:
            raw = await awaitable
        except Exception as exc:
            logger.error("Failed to load cell data for %d,%d: %s", col, original, exc)
            cell = error_cell(f"Failed to load cell data: {exc}")
        else:
            cell = self._snapshot_cell(raw, column, handler, original)

        if not self._cache.put(key, cell, generation):
            logger.debug("Discarding stale fetch for %d,%d", col, display_row)
            return
        if self._sort.column_index == col:
            self._sort.invalidate()
        if self.on_cell_loaded is not None:
            self.on_cell_loaded(col, display_row)

    # ---------- sorting ----------
    def sort_column(self, col: int, direction: str = AUTO, auto_reset: bool = False):
        if col < 0 or col >= self.get_column_count():
            logger.warning("Cannot sort by column %d: out of range", col)
            return self._sort.get_state()
        column = self.column_definitions[col]
        self._sort.apply(col, column.id, self._sort.next_direction(column.id, direction, auto_reset))
        return self._sort.get_state()

    def get_sort_state(self):
        return self._sort.get_state()

    def _rebuild_sort(self):
        col = self._sort.column_index
        column = self._columns()[col]
        handler = self.registry.get(column.data_type) or TextColumn()
        values = [self._sort_value(col, row, handler) for row in range(self.get_row_count())]
        self._sort.rebuild(values, column.sort_mode, handler)

    def _sort_value(self, col: int, display_row: int, handler):
        try:
            cell = self._resolve(col, display_row)
        except Exception as exc:
            logger.error("Failed to read sort value at %d,%d: %s", col, display_row, exc)
            return None
        if cell.kind in (CellKind.ERROR, CellKind.LOADING):
            return None
        return handler.extract_value(cell)

    # ---------- edits ----------
    def set_cell(self, col: int, row: int, proposed: Cell):
        if not self._in_bounds(col, row):
            logger.warning("Ignoring edit outside the grid at %d,%d", col, row)
            return
        column = self._columns()[col]
        if not column.is_editable:
            return
        handler = self.registry.get(column.data_type)
        if handler is None:
            logger.warning("No column type registered for %s", column.data_type)
            return

        display_row = self._unsorted_row(row)
        original = self._original_row(display_row)
        if original is None:
            logger.warning("Ignoring edit for unmapped row %d", row)
            return

        value = handler.extract_value(proposed)
        validation = handler.validate(value, column)
        key = (col, display_row)

        if validation.is_valid and self._matches_snapshot(key, original, handler, value):
            self.editing_state.discard_cell(col, original)
            stamp = None
        else:
            cell = self._edited_cell(value, column, handler)
            if not validation.is_valid:
                self._mark_invalid(cell, validation.reason)
            stamp = self.editing_state.set_cell(col, original, cell)

        if validation.is_valid:
            self._persist(col, original, value, stamp)
        else:
            self._cache.drop(key)
        if self._sort.column_index == col:
            self._sort.invalidate()

    def _edited_cell(self, value, column, handler) -> Cell:
        try:
            return handler.to_display_cell(value, column, self.context)
        except (TypeError, ValueError):
            return Cell(
                kind=handler.kind,
                data=value,
                display_data="" if value is None else str(value),
            )

    def _matches_snapshot(self, key, original, handler, value) -> bool:
        if self.editing_state.is_added_row(original):
            return False
        cached = self._cache.get(key)
        if cached is None or cached.kind in (CellKind.ERROR, CellKind.LOADING):
            return False
        return handler.extract_value(cached) == value

    def _persist(self, col: int, original: int, value, stamp):
        async def write():
            try:
                await self.data_source.set_cell_data(col, original, value)
            except Exception as exc:
                logger.error("Failed to save cell data for %d,%d: %s", col, original, exc)
                if (
                    self.persist_failure_policy == "revert"
                    and stamp is not None
                    and not self.editing_state.is_added_row(original)
                    and self.editing_state.discard_cell(col, original, stamp)
                ):
                    logger.warning("Reverted unsaved edit at %d,%d", col, original)

        self._spawn(write())

    def _spawn(self, coro):
        loop = _running_loop()
        if loop is None:
            asyncio.run(coro)
            return
        self._track(loop.create_task(coro))

    def _track(self, task):
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------- rows ----------
    async def add_row(self) -> int:
        columns = [c for c in self._columns() if self.registry.has_type(c.data_type)]
        cells = {}
        defaults = {}
        for column in columns:
            handler = self.registry.get(column.data_type)
            try:
                value = handler.default_value(column)
                cell = handler.to_display_cell(value, column, self.context)
            except (TypeError, ValueError) as exc:
                logger.warning("Unusable default for column %s: %s", column.column_name, exc)
                value = None
                cell = handler.to_display_cell(None, column, self.context)
            cells[column.index_number] = cell
            defaults[column.index_number] = value

        original = await self._append_row(cells, columns, defaults)
        unsorted = self.editing_state.get_display_row_index(original)
        if self._sort.is_active:
            self._rebuild_sort()
            return self._sort.to_sorted(unsorted)
        return unsorted

    async def _append_row(self, cells, columns, values) -> int:
        try:
            external_row = await self.data_source.add_row()
        except Exception as exc:
            logger.error("Failed to add row: %s", exc)
            raise

        expected = self.editing_state.next_row_index()
        if external_row != expected:
            logger.warning("Data source added row %s, overlay allocated %d", external_row, expected)
        original = self.editing_state.add_row(cells, columns)
        self._sort.invalidate()

        for col, value in values.items():
            if value is not None and self.column_definitions[col].is_editable:
                self._persist(col, original, value, None)
        return original

    async def delete_row(self, row: int) -> bool:
        if not 0 <= row < self.get_row_count():
            logger.warning("Cannot delete row %d: out of range", row)
            return False
        original = self._original_row(self._unsorted_row(row))
        if original is None:
            return False
        return await self._delete_original(original)

    async def delete_rows(self, rows) -> int:
        originals = []
        for row in sorted(set(rows)):
            if 0 <= row < self.get_row_count():
                original = self._original_row(self._unsorted_row(row))
                if original is not None:
                    originals.append(original)
        deleted = 0
        for original in originals:
            if await self._delete_original(original):
                deleted += 1
        return deleted

    async def _delete_original(self, original: int) -> bool:
        try:
            success = await self.data_source.delete_row(original)
        except Exception as exc:
            logger.error("Failed to delete row %d: %s", original, exc)
            raise
        if not success:
            logger.warning("Data source refused to delete row %d", original)
            return False
        self.editing_state.delete_row(original)
        self._cache.clear("row deleted")
        self._sort.invalidate()
        return True

    def get_deleted_rows(self) -> set[int]:
        return set(self.data_source.get_deleted_rows()) | self.editing_state.get_deleted_rows()

    # ---------- session ----------
    async def refresh(self):
        await self.flush()
        self._cache.clear("refresh")
        await self.data_source.refresh()
        self._cache.clear("refresh")
        self._sort.clear()
        self._load_session()

    def update_theme(self, theme, is_dark_theme: bool = False):
        self.context = RenderContext(dict(theme or {}), is_dark_theme)
        self._cache.clear("theme")

    def set_column_formats(self, formats):
        self.column_formats = dict(formats or {})
        self._formatted_columns = None
        self._cache.clear("column formats")

    def export_edits(self) -> str:
        return self.editing_state.to_json(self.column_definitions, self.registry)

    async def import_edits(self, payload: str):
        """Replay exported edits onto this session through the data source.

        The payload is parsed completely before anything changes, so a
        malformed payload leaves the session untouched.
        """
        columns = self._columns()
        parsed = self.editing_state.parse_json(payload, columns, self.registry, self.context)
        deleted = self.editing_state.get_deleted_rows()

        for (col, original), cell in parsed.edited_cells.items():
            column = columns[col]
            if not column.is_editable or original in deleted:
                continue
            handler = self.registry.get(column.data_type)
            value = handler.extract_value(cell)
            validation = handler.validate(value, column)
            if not validation.is_valid:
                self._mark_invalid(cell, validation.reason)
            stamp = self.editing_state.set_cell(col, original, cell)
            if validation.is_valid:
                self._persist(col, original, value, stamp)

        typed = [c for c in columns if self.registry.has_type(c.data_type)]
        for cells in parsed.added_rows:
            values = {}
            for col, cell in cells.items():
                handler = self.registry.get(columns[col].data_type)
                value = handler.extract_value(cell)
                if handler.validate(value, columns[col]).is_valid:
                    values[col] = value
            await self._append_row(cells, typed, values)

        for original in parsed.deleted_rows:
            if original not in deleted:
                await self._delete_original(original)

        self._cache.clear("edits imported")
        self._sort.invalidate()
        await self.flush()

    def get_memory_usage(self) -> dict:
        usage = self.editing_state.get_memory_usage()
        usage["cached_cells"] = len(self._cache)
        return usage
