"""
Paginated (PDF) renderer.

Draws the same ReportLayout as the workbook renderer: branded page header,
table with a repeating header row and striped body, totals block after the
table, and a footer with the company address and "Page X of Y".
"""
import io
import os
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from reportengine.modules.reports.report_layout import (
    HEADER_FILL_COLOR,
    PIXELS_PER_WIDTH_UNIT,
    STRIPE_FILL_COLOR,
    TITLE_COLOR,
    ReportLayout,
)

PAGE_SIZE = landscape(letter)
MARGIN = 30
HEADER_HEIGHT = 60
FOOTER_HEIGHT = 20
TEXT_GRAY = colors.HexColor("#666666")
RULE_GRAY = colors.HexColor("#CCCCCC")

_ALIGNMENTS = {"left": TA_LEFT, "center": TA_CENTER, "right": TA_RIGHT}


def _cell_style(alignment: str, header: bool = False) -> ParagraphStyle:
    return ParagraphStyle(
        name=f"cell-{alignment}-{'header' if header else 'body'}",
        fontName="Helvetica-Bold" if header else "Helvetica",
        fontSize=7 if header else 6.5,
        leading=9 if header else 8,
        textColor=colors.white if header else colors.black,
        alignment=_ALIGNMENTS.get(alignment, TA_LEFT),
    )


class _NumberedCanvas(canvas.Canvas):
    """Holds pages back until save() so every footer can show the page count."""

    def __init__(self, *args, footer_text="", **kwargs):
        super().__init__(*args, **kwargs)
        self._footer_text = footer_text
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total_pages)
            super().showPage()
        super().save()

    def _draw_footer(self, total_pages):
        page_width, _ = self._pagesize
        y = MARGIN - 12
        self.setFont("Helvetica", 7)
        self.setFillColor(TEXT_GRAY)
        self.drawString(MARGIN, y, self._footer_text)
        self.drawRightString(page_width - MARGIN, y, f"Page {self._pageNumber} of {total_pages}")


class PdfRenderer:
    """Renders a ReportLayout into a landscape letter PDF."""

    output_format = "PDF"
    extension = "pdf"
    media_type = "application/pdf"

    def render(self, layout: ReportLayout) -> bytes:
        output = io.BytesIO()
        doc = SimpleDocTemplate(
            output,
            pagesize=PAGE_SIZE,
            leftMargin=MARGIN,
            rightMargin=MARGIN,
            topMargin=MARGIN + HEADER_HEIGHT,
            bottomMargin=MARGIN + FOOTER_HEIGHT,
            title=layout.subtitle,
            author=layout.branding.company_name,
            invariant=1,
        )

        elements = [self._build_table(layout, doc.width)]
        if layout.totals:
            elements.append(Spacer(1, 12))
            elements.append(self._build_totals(layout))

        def draw_header(pdf_canvas, _doc):
            self._draw_header(pdf_canvas, layout)

        footer_text = layout.branding.company_address or ""
        if layout.generated_at is not None:
            stamp = f"Generated {layout.generated_at.strftime('%Y-%m-%d %H:%M')}"
            footer_text = f"{footer_text}  |  {stamp}" if footer_text else stamp

        doc.build(
            elements,
            onFirstPage=draw_header,
            onLaterPages=draw_header,
            canvasmaker=lambda *args, **kwargs: _NumberedCanvas(*args, footer_text=footer_text, **kwargs),
        )
        return output.getvalue()

    def _draw_header(self, pdf_canvas, layout: ReportLayout):
        page_width, page_height = PAGE_SIZE
        top = page_height - MARGIN
        text_left = MARGIN

        logo = layout.branding.company_logo
        if logo and os.path.isfile(logo):
            pdf_canvas.drawImage(logo, MARGIN, top - 40, width=70, height=40, preserveAspectRatio=True, mask="auto")
            text_left = MARGIN + 80

        pdf_canvas.saveState()
        pdf_canvas.setFillColor(colors.HexColor(f"#{TITLE_COLOR}"))
        pdf_canvas.setFont("Helvetica-Bold", 13)
        pdf_canvas.drawString(text_left, top - 12, layout.title or "")
        pdf_canvas.setFillColor(colors.HexColor("#333333"))
        pdf_canvas.setFont("Helvetica-Bold", 10)
        pdf_canvas.drawString(text_left, top - 27, layout.subtitle or "")

        contact = "  |  ".join(part for part in (layout.branding.company_address, layout.branding.company_phone) if part)
        if contact:
            pdf_canvas.setFillColor(TEXT_GRAY)
            pdf_canvas.setFont("Helvetica", 7)
            pdf_canvas.drawString(text_left, top - 39, contact)

        pdf_canvas.setStrokeColor(RULE_GRAY)
        pdf_canvas.setLineWidth(0.5)
        pdf_canvas.line(MARGIN, top - HEADER_HEIGHT + 10, page_width - MARGIN, top - HEADER_HEIGHT + 10)
        pdf_canvas.restoreState()

    def _column_widths(self, layout: ReportLayout, available_width: float):
        pixel_widths = [column.width_units * PIXELS_PER_WIDTH_UNIT for column in layout.columns]
        total = sum(pixel_widths) or 1
        return [available_width * width / total for width in pixel_widths]

    def _build_table(self, layout: ReportLayout, available_width: float):
        if not layout.columns:
            return Paragraph("This report has no columns.", _cell_style("left"))

        header = [
            Paragraph(escape(column.title or ""), _cell_style(column.alignment, header=True))
            for column in layout.columns
        ]
        body = [
            [Paragraph(escape(cell.text), _cell_style(cell.alignment)) for cell in cells]
            for cells in layout.rows
        ]

        commands = [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_FILL_COLOR}")),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("GRID", (0, 0), (-1, -1), 0.25, RULE_GRAY),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
        ]
        stripe = colors.HexColor(f"#{STRIPE_FILL_COLOR}")
        for row_index in range(len(body)):
            if layout.is_striped(row_index):
                commands.append(("BACKGROUND", (0, row_index + 1), (-1, row_index + 1), stripe))

        table = Table([header] + body, colWidths=self._column_widths(layout, available_width), repeatRows=1)
        table.setStyle(TableStyle(commands))
        return table

    def _build_totals(self, layout: ReportLayout):
        label_style = _cell_style("left", header=False)
        value_style = _cell_style("right", header=False)
        data = [
            [Paragraph(f"<b>{escape(line.label)}</b>", label_style), Paragraph(escape(line.text), value_style)]
            for line in layout.totals
        ]
        table = Table(data, colWidths=[180, 100], hAlign="LEFT")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#E7E6E6")),
            ("GRID", (0, 0), (-1, -1), 0.25, RULE_GRAY),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
        ]))
        return table
