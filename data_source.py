import abc
import logging

import pandas as pd

from cell_coercion import normalize_scalar
from column_definition import (
    INDEX_IDENTIFIER,
    ColumnDataType,
    ColumnDefinition,
    ColumnFormatting,
    SortMode,
)
from file_type_handler import FileTypeHandler

logger = logging.getLogger(__name__)


class DataSource(abc.ABC):
    """Backend holding the immutable snapshot and receiving committed edits.

    `get_cell_data` may return the value directly or an awaitable resolving
    to it; every other mutating call is a coroutine.
    """

    @property
    @abc.abstractmethod
    def row_count(self) -> int: ...

    @property
    @abc.abstractmethod
    def column_count(self) -> int: ...

    @abc.abstractmethod
    def get_column_definitions(self) -> list[ColumnDefinition]: ...

    @abc.abstractmethod
    def get_cell_data(self, col: int, row: int): ...

    @abc.abstractmethod
    async def set_cell_data(self, col: int, row: int, value) -> None: ...

    @abc.abstractmethod
    async def add_row(self) -> int: ...

    @abc.abstractmethod
    async def delete_row(self, row: int) -> bool: ...

    @abc.abstractmethod
    def get_deleted_rows(self) -> set[int]: ...

    @abc.abstractmethod
    async def refresh(self) -> None: ...


def infer_data_type(dtype) -> ColumnDataType:
    if isinstance(dtype, pd.CategoricalDtype):
        return ColumnDataType.DROPDOWN
    if pd.api.types.is_bool_dtype(dtype):
        return ColumnDataType.BOOLEAN
    if pd.api.types.is_numeric_dtype(dtype):
        return ColumnDataType.NUMBER
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return ColumnDataType.DATETIME
    return ColumnDataType.TEXT


class DataFrameSource(DataSource):
    """In-memory snapshot over a pandas DataFrame.

    Writes, added rows and deletions are recorded but the frame itself stays
    untouched until refresh(), which commits them into the next snapshot.
    """

    def __init__(
        self,
        df: pd.DataFrame,
        column_types: dict | None = None,
        read_only=(),
        required=(),
        sort_modes: dict | None = None,
        formats: dict | None = None,
        defaults: dict | None = None,
        include_index: bool = False,
    ):
        self._df = df
        self.column_types = dict(column_types or {})
        self.read_only = set(read_only)
        self.required = set(required)
        self.sort_modes = dict(sort_modes or {})
        self.formats = dict(formats or {})
        self.defaults = dict(defaults or {})
        self.include_index = include_index
        self.file_handler: FileTypeHandler | None = None
        self._reset_pending()
        self._columns = self._build_columns()

    @classmethod
    def from_path(cls, path: str, sheet: str | None = None, **kwargs) -> "DataFrameSource":
        handler = FileTypeHandler(path, sheet=sheet)
        source = cls(handler.load(), **kwargs)
        source.file_handler = handler
        return source

    # ---------- schema ----------
    def _reset_pending(self):
        self._pending: dict[tuple[int, int], object] = {}
        self._added: dict[int, dict[int, object]] = {}
        self._deleted: set[int] = set()

    def _column(self, position, name, dtype, is_index=False) -> ColumnDefinition:
        key = INDEX_IDENTIFIER if is_index else str(name)
        data_type = self.column_types.get(key) or infer_data_type(dtype)
        options = ()
        if isinstance(dtype, pd.CategoricalDtype):
            options = tuple(normalize_scalar(c) for c in dtype.categories)
        fmt = self.formats.get(key)
        return ColumnDefinition(
            id=key,
            name="" if is_index else str(name),
            data_type=ColumnDataType(data_type),
            index_number=position,
            is_editable=not is_index and key not in self.read_only,
            is_required=key in self.required,
            is_index=is_index,
            is_pinned=is_index,
            formatting=ColumnFormatting(type=fmt) if fmt else None,
            sort_mode=SortMode(self.sort_modes.get(key, SortMode.DEFAULT)),
            default_value=self.defaults.get(key),
            options=options,
        )

    def _build_columns(self) -> list[ColumnDefinition]:
        columns = []
        if self.include_index:
            columns.append(self._column(0, INDEX_IDENTIFIER, self._df.index.dtype, is_index=True))
        for name, dtype in self._df.dtypes.items():
            columns.append(self._column(len(columns), name, dtype))
        return columns

    def _frame_col(self, col: int) -> int | None:
        if self.include_index:
            return None if col == 0 else col - 1
        return col

    # ---------- reads ----------
    @property
    def row_count(self) -> int:
        return len(self._df)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    def get_column_definitions(self) -> list[ColumnDefinition]:
        return list(self._columns)

    def get_cell_data(self, col: int, row: int):
        if col < 0 or col >= self.column_count:
            raise IndexError(f"Column {col} out of range")
        if row >= self.row_count:
            if row not in self._added:
                raise IndexError(f"Row {row} out of range")
            return self._added[row].get(col)
        frame_col = self._frame_col(col)
        if frame_col is None:
            return normalize_scalar(self._df.index[row])
        return normalize_scalar(self._df.iat[row, frame_col])

    def get_deleted_rows(self) -> set[int]:
        return set(self._deleted)

    def to_frame(self) -> pd.DataFrame:
        return self._df.copy()

    # ---------- writes ----------
    async def set_cell_data(self, col: int, row: int, value) -> None:
        if self._frame_col(col) is None:
            raise ValueError("The index column is read-only")
        if row in self._deleted:
            raise ValueError(f"Row {row} has been deleted")
        if row >= self.row_count:
            if row not in self._added:
                raise IndexError(f"Row {row} out of range")
            self._added[row][col] = value
            return
        self._pending[(col, row)] = value

    async def add_row(self) -> int:
        row = self.row_count + len(self._added)
        self._added[row] = {}
        return row

    async def delete_row(self, row: int) -> bool:
        if row < 0 or (row >= self.row_count and row not in self._added):
            return False
        self._deleted.add(row)
        return True

    def _added_labels(self, count: int):
        if not self.include_index:
            return None
        index = self._df.index
        start = len(index)
        if len(index) and pd.api.types.is_integer_dtype(index.dtype):
            start = max(start, int(index.max()) + 1)
        return pd.RangeIndex(start, start + count)

    async def refresh(self) -> None:
        df = self._df.copy()
        by_column: dict[int, dict[int, object]] = {}
        for (col, row), value in self._pending.items():
            by_column.setdefault(self._frame_col(col), {})[row] = value
        for frame_col, values in by_column.items():
            # upcast so a write may change the column's dtype
            series = df.iloc[:, frame_col].astype(object)
            for row, value in values.items():
                series.iat[row] = value
            df.isetitem(frame_col, series.infer_objects())

        keep = [pos for pos in range(len(df)) if pos not in self._deleted]
        df = df.iloc[keep]

        added = [values for row, values in self._added.items() if row not in self._deleted]
        if added:
            offset = 1 if self.include_index else 0
            rows = [
                {name: values.get(pos + offset) for pos, name in enumerate(df.columns)}
                for values in added
            ]
            new_rows = pd.DataFrame(rows, columns=df.columns, index=self._added_labels(len(rows)))
            df = pd.concat([df, new_rows])
        if not self.include_index:
            df = df.reset_index(drop=True)

        logger.debug(
            "Committed %d edits, %d added rows, %d deletions",
            len(self._pending),
            len(added),
            len(self._deleted),
        )
        # commit point: self is untouched until here
        self._df = df
        self._reset_pending()
        self._columns = self._build_columns()

    def save(self, path: str | None = None) -> None:
        handler = FileTypeHandler(path) if path else self.file_handler
        if handler is None:
            raise ValueError("No path to save to")
        handler.save(self._df)
