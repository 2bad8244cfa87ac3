"""
Document Generator

Picks a renderer for the requested output format and feeds it the shared
ReportLayout. Renderers are stateless, so one instance per format is reused.
"""
import os
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

from reportengine.modules.reports.excel_renderer import ExcelRenderer
from reportengine.modules.reports.pdf_renderer import PdfRenderer
from reportengine.modules.reports.report_errors import ReportServiceError
from reportengine.modules.reports.report_layout import build_layout
from reportengine.modules.reports.report_models import ReportBranding, ReportDefinition

DEFAULT_OUTPUT_FORMAT = "EXCEL"

_RENDERERS: Dict[str, Any] = {
    "EXCEL": ExcelRenderer(),
    "XLSX": ExcelRenderer(),
    "PDF": PdfRenderer(),
}

SUPPORTED_FORMATS = ("EXCEL", "PDF")


def get_renderer(output_format: Optional[str] = None):
    key = (output_format or DEFAULT_OUTPUT_FORMAT).strip().upper()
    renderer = _RENDERERS.get(key)
    if renderer is None:
        raise ReportServiceError(
            f"Unsupported output format '{output_format}'",
            status_code=400,
            code="UNSUPPORTED_FORMAT",
            details={"outputFormat": output_format, "supported": list(SUPPORTED_FORMATS)},
        )
    return renderer


def resolve_logo(branding: ReportBranding, assets_directory: Optional[str]) -> ReportBranding:
    """Point company_logo at an existing file under the assets directory, or drop it."""
    logo = (branding.company_logo or "").strip()
    if not logo:
        return branding
    candidate = logo if os.path.isabs(logo) else os.path.join(assets_directory or "", os.path.basename(logo))
    return replace(branding, company_logo=candidate if os.path.isfile(candidate) else None)


def render_document(
    definition: ReportDefinition,
    rows: Sequence[Mapping[str, Any]],
    totals: Optional[Mapping[str, Any]],
    branding: ReportBranding,
    output_format: str = DEFAULT_OUTPUT_FORMAT,
    generated_at: Optional[datetime] = None,
    assets_directory: Optional[str] = None,
) -> bytes:
    renderer = get_renderer(output_format)
    layout = build_layout(
        definition,
        rows,
        totals,
        resolve_logo(branding, assets_directory),
        generated_at=generated_at,
    )
    return renderer.render(layout)
