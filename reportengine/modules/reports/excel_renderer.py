"""
Workbook renderer.

Layout: company name (row 1) and report name (row 2) merged across all
columns, a blank spacer (row 3), the header row (row 4) and one row per data
row from row 5. Non-empty totals go to a separate Summary sheet so the data
sheet keeps exactly that shape.
"""
import io
from datetime import datetime

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from reportengine.modules.reports.report_layout import (
    HEADER_FILL_COLOR,
    HEADER_FONT_COLOR,
    STRIPE_FILL_COLOR,
    TITLE_COLOR,
    ReportLayout,
)

TITLE_ROW = 1
SUBTITLE_ROW = 2
HEADER_ROW = 4
FIRST_DATA_ROW = HEADER_ROW + 1
SUMMARY_SHEET_NAME = "Summary"

# Document properties never carry the wall clock unless a stamp is supplied
FIXED_TIMESTAMP = datetime(2000, 1, 1)


def _sheet_value(value):
    """Strings are written as plain text with XML-illegal characters stripped."""
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def _write_cell(sheet, row, column, value):
    cell = sheet.cell(row=row, column=column, value=_sheet_value(value))
    # openpyxl treats a leading '=' as a formula
    if cell.data_type == "f":
        cell.data_type = "s"
    return cell


class ExcelRenderer:
    """Renders a ReportLayout into an .xlsx workbook."""

    output_format = "EXCEL"
    extension = "xlsx"
    media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    def render(self, layout: ReportLayout) -> bytes:
        workbook = Workbook()
        stamp = layout.generated_at or FIXED_TIMESTAMP
        workbook.properties.creator = layout.branding.company_name
        workbook.properties.title = layout.subtitle
        workbook.properties.created = stamp
        workbook.properties.modified = stamp

        sheet = workbook.active
        sheet.title = layout.sheet_name
        self._write_title_rows(sheet, layout)
        self._write_header(sheet, layout)
        self._write_rows(sheet, layout)
        if layout.totals:
            self._write_summary_sheet(workbook, layout)

        output = io.BytesIO()
        workbook.save(output)
        return output.getvalue()

    def _write_title_rows(self, sheet, layout: ReportLayout):
        col_count = max(1, len(layout.columns))
        for row_index, text, font in (
            (TITLE_ROW, layout.title, Font(size=16, bold=True, color=TITLE_COLOR)),
            (SUBTITLE_ROW, layout.subtitle, Font(size=12, bold=True)),
        ):
            if col_count > 1:
                sheet.merge_cells(start_row=row_index, start_column=1, end_row=row_index, end_column=col_count)
            cell = _write_cell(sheet, row_index, 1, text)
            cell.font = font
            cell.alignment = Alignment(horizontal="center")

    def _write_header(self, sheet, layout: ReportLayout):
        header_font = Font(bold=True, color=HEADER_FONT_COLOR)
        header_fill = PatternFill(fill_type="solid", fgColor=HEADER_FILL_COLOR)
        for index, column in enumerate(layout.columns, start=1):
            sheet.column_dimensions[get_column_letter(index)].width = column.width_units
            cell = _write_cell(sheet, HEADER_ROW, index, column.title)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal=column.alignment)

    def _write_rows(self, sheet, layout: ReportLayout):
        stripe_fill = PatternFill(fill_type="solid", fgColor=STRIPE_FILL_COLOR)
        for row_index, cells in enumerate(layout.rows):
            excel_row = FIRST_DATA_ROW + row_index
            striped = layout.is_striped(row_index)
            for col_index, formatted in enumerate(cells, start=1):
                cell = _write_cell(sheet, excel_row, col_index, formatted.value)
                if formatted.number_format:
                    cell.number_format = formatted.number_format
                cell.alignment = Alignment(horizontal=formatted.alignment)
                if striped:
                    cell.fill = stripe_fill

    def _write_summary_sheet(self, workbook, layout: ReportLayout):
        sheet = workbook.create_sheet(SUMMARY_SHEET_NAME)
        header_font = Font(bold=True, color=HEADER_FONT_COLOR)
        header_fill = PatternFill(fill_type="solid", fgColor=HEADER_FILL_COLOR)
        for index, title in enumerate(("Total", "Value"), start=1):
            cell = sheet.cell(row=1, column=index, value=title)
            cell.font = header_font
            cell.fill = header_fill
        sheet.column_dimensions["A"].width = 30
        sheet.column_dimensions["B"].width = 20
        for row_index, line in enumerate(layout.totals, start=2):
            _write_cell(sheet, row_index, 1, line.label)
            value_cell = _write_cell(sheet, row_index, 2, line.text)
            value_cell.alignment = Alignment(horizontal="right")
