"""
Report layout shared by every export renderer.

build_layout() turns a definition, its rows and totals into formatted cells
once; the workbook and PDF renderers only decide how to draw them.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from reportengine.modules.reports.report_models import DataType, ReportBranding, ReportColumn, ReportDefinition

PLACEHOLDER = "-"
CURRENCY_NUMBER_FORMAT = '"$"#,##0.00'
NUMBER_NUMBER_FORMAT = '#,##0.00'

# Spreadsheet width units are roughly one character, about 7 pixels
PIXELS_PER_WIDTH_UNIT = 7
DEFAULT_COLUMN_WIDTH = 15

TITLE_COLOR = "2E75B6"
HEADER_FILL_COLOR = "4472C4"
HEADER_FONT_COLOR = "FFFFFF"
STRIPE_FILL_COLOR = "F2F2F2"

DEFAULT_SHEET_NAME = "Report"
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")
MAX_SHEET_NAME_LENGTH = 31


@dataclass(frozen=True)
class FormattedCell:
    value: Any  # value stored in a spreadsheet cell
    text: str  # text drawn by paginated renderers
    number_format: Optional[str] = None
    alignment: str = "left"


@dataclass(frozen=True)
class LayoutColumn:
    field_name: str
    title: str
    data_type: DataType
    alignment: str
    width_px: Optional[int]

    @property
    def width_units(self) -> float:
        if not self.width_px:
            return DEFAULT_COLUMN_WIDTH
        return self.width_px / PIXELS_PER_WIDTH_UNIT


@dataclass(frozen=True)
class TotalLine:
    label: str
    text: str
    value: Any


@dataclass(frozen=True)
class ReportLayout:
    title: str
    subtitle: str
    sheet_name: str
    columns: Tuple[LayoutColumn, ...]
    rows: Tuple[Tuple[FormattedCell, ...], ...]
    totals: Tuple[TotalLine, ...]
    branding: ReportBranding
    generated_at: Optional[datetime] = None

    @staticmethod
    def is_striped(row_index: int) -> bool:
        """Zero-based even rows get the alternate background."""
        return row_index % 2 == 0


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return None
    return None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def format_amount(number: Decimal) -> str:
    return f"{number:,.2f}"


def format_money(number: Decimal) -> str:
    if number < 0:
        return f"-${-number:,.2f}"
    return f"${number:,.2f}"


def parse_date_value(value: Any):
    """Return a date/datetime for date-like values, or None when the value cannot be read as one."""
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_us_datetime(value) -> str:
    """en-US locale style: 1/15/2024, 2:05:09 PM (pure dates: 1/15/2024)."""
    day_part = f"{value.month}/{value.day}/{value.year}"
    if not isinstance(value, datetime):
        return day_part
    hour = value.hour % 12 or 12
    meridiem = "AM" if value.hour < 12 else "PM"
    return f"{day_part}, {hour}:{value.minute:02d}:{value.second:02d} {meridiem}"


def _raw_cell(value: Any, alignment: str) -> FormattedCell:
    if _is_empty(value):
        return FormattedCell(PLACEHOLDER, PLACEHOLDER, alignment=alignment)
    if not isinstance(value, (str, int, float, Decimal, date, datetime)):
        value = str(value)
    elif isinstance(value, datetime) and value.tzinfo is not None:
        # Spreadsheets cannot store offsets
        value = value.isoformat(sep=" ")
    return FormattedCell(value, str(value), alignment=alignment)


def _format_string(value: Any, alignment: str) -> FormattedCell:
    return _raw_cell(value, alignment)


def _format_number(value: Any, alignment: str) -> FormattedCell:
    number = None if _is_empty(value) else _to_decimal(value)
    if number is None:
        return _raw_cell(value, alignment)
    return FormattedCell(float(number), format_amount(number), NUMBER_NUMBER_FORMAT, alignment)


def _format_currency(value: Any, alignment: str) -> FormattedCell:
    number = None if _is_empty(value) else _to_decimal(value)
    if number is None:
        return _raw_cell(value, alignment)
    return FormattedCell(float(number), format_money(number), CURRENCY_NUMBER_FORMAT, alignment)


def _format_date(value: Any, alignment: str) -> FormattedCell:
    parsed = None if _is_empty(value) else parse_date_value(value)
    if parsed is None:
        return _raw_cell(value, alignment)
    text = format_us_datetime(parsed)
    return FormattedCell(text, text, alignment=alignment)


_FORMATTERS: Dict[DataType, Callable[[Any, str], FormattedCell]] = {
    DataType.STRING: _format_string,
    DataType.NUMBER: _format_number,
    DataType.CURRENCY: _format_currency,
    DataType.DATE: _format_date,
}


def format_cell(column: ReportColumn, value: Any) -> FormattedCell:
    formatter = _FORMATTERS.get(column.data_type, _format_string)
    return formatter(value, column.alignment or "left")


def sanitize_sheet_name(name: Optional[str]) -> str:
    cleaned = _INVALID_SHEET_CHARS.sub("_", (name or "").strip())[:MAX_SHEET_NAME_LENGTH].strip("'")
    return cleaned or DEFAULT_SHEET_NAME


def humanize_key(key: str) -> str:
    return " ".join(part.capitalize() for part in re.split(r"[_\s]+", str(key)) if part)


def _total_text(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, (Decimal, float)):
        return format_amount(Decimal(str(value)))
    return str(value)


def build_total_lines(totals: Mapping[str, Any]) -> Tuple[TotalLine, ...]:
    lines = []
    for key, value in (totals or {}).items():
        label = humanize_key(key)
        if isinstance(value, Mapping):
            for group, group_value in value.items():
                lines.append(TotalLine(f"{label} / {group or PLACEHOLDER}", _total_text(group_value), group_value))
        else:
            lines.append(TotalLine(label, _total_text(value), value))
    return tuple(lines)


def build_layout(
    definition: ReportDefinition,
    rows: Sequence[Mapping[str, Any]],
    totals: Optional[Mapping[str, Any]],
    branding: ReportBranding,
    generated_at: Optional[datetime] = None,
) -> ReportLayout:
    columns = definition.columns
    layout_columns = tuple(
        LayoutColumn(
            field_name=column.field_name,
            title=column.display_name,
            data_type=column.data_type,
            alignment=column.alignment or "left",
            width_px=column.width,
        )
        for column in columns
    )
    body = tuple(
        tuple(format_cell(column, row.get(column.field_name)) for column in columns)
        for row in rows
    )
    return ReportLayout(
        title=branding.company_name,
        subtitle=definition.name,
        sheet_name=sanitize_sheet_name(definition.export_sheet_name),
        columns=layout_columns,
        rows=body,
        totals=build_total_lines(totals or {}),
        branding=branding,
        generated_at=generated_at,
    )
