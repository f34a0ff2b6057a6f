import copy
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional


BOUNDS_ERROR_HINT = "This should never happen. Please report this bug."


class CellKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    DROPDOWN = "dropdown"
    PHONE = "phone"
    LOADING = "loading"
    ERROR = "error"


@dataclass
class Cell:
    """A single resolved grid cell, handed to the renderer by value."""

    kind: CellKind
    data: Any = None
    display_data: str = ""
    is_missing_value: bool = False
    validation_error: Optional[str] = None
    tooltip: Optional[str] = None
    last_updated: Optional[int] = None
    allow_overlay: bool = True
    allowed_values: tuple = ()
    theme_override: Optional[dict] = None

    @property
    def is_error(self) -> bool:
        return self.kind == CellKind.ERROR

    def copy(self) -> "Cell":
        # data may be a mutable container (lists from json imports, dicts)
        return replace(
            self,
            data=copy.deepcopy(self.data),
            theme_override=dict(self.theme_override) if self.theme_override else None,
        )


def error_cell(message: str, tooltip: str | None = None) -> Cell:
    return Cell(
        kind=CellKind.ERROR,
        data=message,
        display_data=message,
        tooltip=tooltip or message,
        allow_overlay=False,
    )


def bounds_error_cell(col: int, row: int) -> Cell:
    return error_cell(f"Index out of bounds ({col}, {row}). {BOUNDS_ERROR_HINT}")


def creation_error_cell(col: int, row: int, reason: str = "") -> Cell:
    message = f"Error during cell creation ({col}, {row})"
    if reason:
        message = f"{message}: {reason}"
    return error_cell(message)


def placeholder_cell() -> Cell:
    return Cell(kind=CellKind.TEXT, data="", display_data="", allow_overlay=False)


def loading_cell(base: Cell) -> Cell:
    """Marks a default-valued cell as pending an asynchronous fetch."""
    cell = base.copy()
    cell.kind = CellKind.LOADING
    cell.allow_overlay = False
    return cell
