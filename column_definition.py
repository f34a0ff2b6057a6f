from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional


INDEX_IDENTIFIER = "_index"


class ColumnDataType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    DROPDOWN = "dropdown"
    PHONE = "phone"


class SortMode(str, Enum):
    DEFAULT = "default"
    RAW = "raw"
    SMART = "smart"


@dataclass(frozen=True)
class ColumnFormatting:
    type: Optional[str] = None
    pattern: Optional[str] = None
    locale: Optional[str] = None


@dataclass(frozen=True)
class ValidationRule:
    type: str  # pattern | min | max | custom
    value: Any = None
    message: Optional[str] = None
    validate: Optional[Callable[[Any], bool]] = None


@dataclass(frozen=True)
class ColumnDefinition:
    id: str
    data_type: ColumnDataType
    name: str = ""
    index_number: int = 0
    is_editable: bool = True
    is_required: bool = False
    is_index: bool = False
    is_pinned: bool = False
    is_hidden: bool = False
    formatting: Optional[ColumnFormatting] = None
    sort_mode: SortMode = SortMode.DEFAULT
    default_value: Any = None
    options: tuple = ()
    validation_rules: tuple = ()

    @property
    def column_name(self) -> str:
        if self.is_index:
            return INDEX_IDENTIFIER
        return self.name or self.id

    def with_format(self, format_type: str) -> "ColumnDefinition":
        base = self.formatting or ColumnFormatting()
        return replace(self, formatting=replace(base, type=format_type))


@dataclass
class RenderContext:
    theme: dict = field(default_factory=dict)
    is_dark: bool = False

    def error_color(self) -> str:
        return self.theme.get("textError", "#ef4444")
