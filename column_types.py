import datetime as dt
import re
from dataclasses import dataclass
from typing import Optional

from cell_coercion import (
    coerce_boolean,
    coerce_date,
    coerce_datetime,
    coerce_number,
    coerce_text,
    coerce_time,
    is_missing,
    normalize_scalar,
)
from cell_formatting import (
    format_date,
    format_datetime,
    format_number,
    format_phone,
    format_text,
    format_time,
)
from column_definition import ColumnDataType, RenderContext
from grid_cell import Cell, CellKind

PHONE_RE = re.compile(r"^\+?[\d\s\-().]+$")


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None


VALID = ValidationResult(True)


def _format_key(column):
    fmt = column.formatting if column is not None else None
    if fmt is None:
        return None
    return fmt.type or fmt.pattern


class ColumnType:
    """Base handler: converts raw values to cells and back for one data type."""

    data_type: ColumnDataType = ColumnDataType.TEXT
    kind: CellKind = CellKind.TEXT
    required_message = "This field is required"
    invalid_message = "Invalid value"

    # ---------- conversion hooks ----------
    def parse_value(self, value, column=None):
        return coerce_text(value)

    def format_value(self, value, column=None) -> str:
        return format_text(value, _format_key(column))

    def allowed_values(self, column) -> tuple:
        return ()

    # ---------- handler interface ----------
    def to_display_cell(self, value, column, context: RenderContext | None = None) -> Cell:
        context = context or RenderContext()
        parsed = self.parse_value(value, column)
        cell = Cell(
            kind=self.kind,
            data=parsed,
            display_data=self.format_value(parsed, column),
            allow_overlay=column.is_editable and not column.is_index,
            allowed_values=self.allowed_values(column),
        )
        if is_missing(parsed):
            cell.is_missing_value = True
            if column.is_required:
                cell.theme_override = {"textColor": context.error_color()}
        return cell

    def extract_value(self, cell: Cell | None):
        if cell is None or cell.kind == CellKind.ERROR:
            return None
        try:
            return self.parse_value(cell.data)
        except (TypeError, ValueError):
            return cell.data

    def default_value(self, column):
        return column.default_value

    def validate(self, value, column) -> ValidationResult:
        if is_missing(value):
            if column.is_required:
                return ValidationResult(False, self.required_message)
            return VALID
        try:
            parsed = self.parse_value(value, column)
        except (TypeError, ValueError):
            return ValidationResult(False, self.invalid_message)
        for rule in column.validation_rules:
            reason = self.check_rule(rule, parsed)
            if reason:
                return ValidationResult(False, reason)
        return VALID

    def check_rule(self, rule, value) -> str | None:
        if rule.type == "custom" and rule.validate is not None:
            if not rule.validate(value):
                return rule.message or self.invalid_message
        return None

    def sort_key(self, value):
        try:
            return (0, self.typed_sort_key(self.parse_value(value)))
        except (TypeError, ValueError):
            return (1, str(value))

    def typed_sort_key(self, value):
        return str(value)


class TextColumn(ColumnType):
    data_type = ColumnDataType.TEXT
    kind = CellKind.TEXT

    def check_rule(self, rule, value):
        text = str(value)
        if rule.type == "pattern" and rule.value:
            if not re.search(rule.value, text):
                return rule.message or "Invalid format"
        elif rule.type == "min" and rule.value:
            if len(text) < rule.value:
                return rule.message or f"Minimum {rule.value} characters required"
        elif rule.type == "max" and rule.value:
            if len(text) > rule.value:
                return rule.message or f"Maximum {rule.value} characters allowed"
        return super().check_rule(rule, value)

    def default_value(self, column):
        return column.default_value or ""


class NumberColumn(ColumnType):
    data_type = ColumnDataType.NUMBER
    kind = CellKind.NUMBER
    invalid_message = "Invalid number"

    def parse_value(self, value, column=None):
        return coerce_number(value)

    def format_value(self, value, column=None):
        return format_number(value, _format_key(column))

    def check_rule(self, rule, value):
        if rule.type == "min" and rule.value is not None and value < rule.value:
            return rule.message or f"Value must be at least {rule.value}"
        if rule.type == "max" and rule.value is not None and value > rule.value:
            return rule.message or f"Value must be at most {rule.value}"
        return super().check_rule(rule, value)

    def typed_sort_key(self, value):
        return float(value)


class BooleanColumn(ColumnType):
    data_type = ColumnDataType.BOOLEAN
    kind = CellKind.BOOLEAN
    invalid_message = "Invalid boolean"

    def parse_value(self, value, column=None):
        return coerce_boolean(value)

    def format_value(self, value, column=None):
        if value is None:
            return ""
        return "true" if value else "false"

    def default_value(self, column):
        if column.default_value is None:
            return False
        return bool(column.default_value)

    def typed_sort_key(self, value):
        return int(value)


class DateColumn(ColumnType):
    data_type = ColumnDataType.DATE
    kind = CellKind.DATE
    required_message = "Date is required"
    invalid_message = "Invalid date"

    def parse_value(self, value, column=None):
        return coerce_date(value)

    def format_value(self, value, column=None):
        return format_date(value, _format_key(column))

    def default_value(self, column):
        if column.default_value == "today":
            return dt.date.today()
        return self.parse_value(column.default_value)

    def check_rule(self, rule, value):
        if rule.type in ("min", "max") and rule.value:
            bound = self.parse_value(rule.value)
            if rule.type == "min" and value < bound:
                return rule.message or f"Date must be after {bound.isoformat()}"
            if rule.type == "max" and value > bound:
                return rule.message or f"Date must be before {bound.isoformat()}"
        return super().check_rule(rule, value)

    def typed_sort_key(self, value):
        return value


class TimeColumn(ColumnType):
    data_type = ColumnDataType.TIME
    kind = CellKind.TIME
    required_message = "Time is required"
    invalid_message = "Invalid time format"

    def parse_value(self, value, column=None):
        return coerce_time(value)

    def format_value(self, value, column=None):
        return format_time(value, _format_key(column))

    def default_value(self, column):
        if column.default_value == "now":
            return dt.datetime.now().time().replace(microsecond=0)
        return self.parse_value(column.default_value)

    def typed_sort_key(self, value):
        return value


class DatetimeColumn(ColumnType):
    data_type = ColumnDataType.DATETIME
    kind = CellKind.DATETIME
    required_message = "Date is required"
    invalid_message = "Invalid date"

    def parse_value(self, value, column=None):
        return coerce_datetime(value)

    def format_value(self, value, column=None):
        return format_datetime(value, _format_key(column))

    def default_value(self, column):
        if column.default_value == "now":
            return dt.datetime.now().replace(microsecond=0)
        return self.parse_value(column.default_value)

    def typed_sort_key(self, value):
        return value


class DropdownColumn(ColumnType):
    data_type = ColumnDataType.DROPDOWN
    kind = CellKind.DROPDOWN
    required_message = "Please select an option"
    invalid_message = "Invalid selection"

    def parse_value(self, value, column=None):
        value = normalize_scalar(value)
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    def format_value(self, value, column=None):
        return "" if value is None else str(value)

    def allowed_values(self, column):
        return tuple(column.options)

    def validate(self, value, column):
        result = super().validate(value, column)
        if not result.is_valid or is_missing(value) or not column.options:
            return result
        choices = {str(option) for option in column.options}
        if str(value) not in choices:
            return ValidationResult(False, self.invalid_message)
        return VALID


class PhoneColumn(ColumnType):
    data_type = ColumnDataType.PHONE
    kind = CellKind.PHONE
    required_message = "Phone number is required"
    invalid_message = "Invalid phone number format"

    def format_value(self, value, column=None):
        return format_phone(value, _format_key(column))

    def validate(self, value, column):
        result = super().validate(value, column)
        if not result.is_valid or is_missing(value):
            return result
        text = str(value)
        if not PHONE_RE.match(text):
            return ValidationResult(False, self.invalid_message)
        digits = re.sub(r"\D", "", text)
        if len(digits) < 10 or len(digits) > 15:
            return ValidationResult(False, "Phone number must be between 10 and 15 digits")
        return VALID


def default_column_types() -> list[ColumnType]:
    return [
        TextColumn(),
        NumberColumn(),
        BooleanColumn(),
        DateColumn(),
        TimeColumn(),
        DatetimeColumn(),
        DropdownColumn(),
        PhoneColumn(),
    ]
