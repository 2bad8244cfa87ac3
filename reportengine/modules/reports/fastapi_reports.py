from __future__ import annotations

import io
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from reportengine.modules.logger import error, info, reset_log_user, set_log_user
from reportengine.modules.reports.filter_compiler import filter_values_from_pairs
from reportengine.modules.reports.report_errors import ReportServiceError
from reportengine.modules.reports.report_service import get_report_engine_service

router = APIRouter(tags=["reports"])

# Query-string keys that are never treated as filter values
RESERVED_PARAMS = ("outputFormat",)


class ExportRequest(BaseModel):
    outputFormat: str = "EXCEL"
    filters: Dict[str, Any] = Field(default_factory=dict)


def _current_username(request: Request) -> str:
    return (
        request.headers.get("X-User")
        or request.headers.get("X-USER-ID")
        or request.headers.get("X-USERNAME")
        or "system"
    )


def _handle_service_error(exc: ReportServiceError) -> JSONResponse:
    response = {
        "success": False,
        "message": exc.message,
        "code": exc.code,
        "details": exc.details,
    }
    return JSONResponse(status_code=exc.status_code, content=response)


def _safe_name(name: str, ascii_only: bool = False) -> str:
    safe = "".join(
        c if (c.isalnum() and (c.isascii() or not ascii_only)) or c in "-_" else "_"
        for c in name
    )
    return safe if any(c.isalnum() for c in safe) else "report"


def _content_disposition(name: str, stamp: str, extension: str) -> str:
    """Latin-1 safe header with an RFC 5987 filename* for non-ASCII report names."""
    ascii_name = f"{_safe_name(name, ascii_only=True)}_{stamp}.{extension}"
    utf8_name = f"{_safe_name(name)}_{stamp}.{extension}"
    header = f'attachment; filename="{ascii_name}"'
    if utf8_name != ascii_name:
        header += f"; filename*=UTF-8''{quote(utf8_name)}"
    return header


@router.get("/reports")
def list_reports(request: Request, permissions: Optional[str] = None):
    """Public report list. `permissions` is an optional comma separated permission-code set."""
    token = set_log_user(_current_username(request))
    try:
        permission_codes = None
        if permissions is not None:
            permission_codes = [code.strip() for code in permissions.split(",") if code.strip()]
        data = [report.to_dict() for report in get_report_engine_service().list_reports(permission_codes)]
        return {"success": True, "count": len(data), "data": data}
    except ReportServiceError as exc:
        return _handle_service_error(exc)
    except Exception as exc:
        error(f"[reports.list_reports] Unexpected error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch reports") from exc
    finally:
        reset_log_user(token)


@router.get("/reports/{code}")
def get_report(request: Request, code: str):
    token = set_log_user(_current_username(request))
    try:
        definition = get_report_engine_service().get_definition(code)
        return {"success": True, "data": definition.to_dict()}
    except ReportServiceError as exc:
        return _handle_service_error(exc)
    except Exception as exc:
        error(f"[reports.get_report] Unexpected error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load report") from exc
    finally:
        reset_log_user(token)


@router.get("/reports/{code}/filters")
def get_filter_options(request: Request, code: str):
    token = set_log_user(_current_username(request))
    try:
        data = get_report_engine_service().get_filter_options(code)
        return {"success": True, "data": data}
    except ReportServiceError as exc:
        return _handle_service_error(exc)
    except Exception as exc:
        error(f"[reports.get_filter_options] Unexpected error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load filter options") from exc
    finally:
        reset_log_user(token)


@router.get("/reports/{code}/data")
def run_report(request: Request, code: str):
    """Rows and totals; every query-string parameter is a filter value."""
    username = _current_username(request)
    token = set_log_user(username)
    try:
        filter_values = filter_values_from_pairs(request.query_params.multi_items(), RESERVED_PARAMS)
        result = get_report_engine_service().run_report(code, filter_values)
        info(f"[reports.run_report] Ran report '{code}' for {username}")
        return {"success": True, "data": result.to_dict()}
    except ReportServiceError as exc:
        return _handle_service_error(exc)
    except Exception as exc:
        error(f"[reports.run_report] Unexpected error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to run report") from exc
    finally:
        reset_log_user(token)


def _export_response(request: Request, code: str, filter_values: Dict[str, Any], output_format: str):
    username = _current_username(request)
    token = set_log_user(username)
    try:
        export = get_report_engine_service().export_report(code, filter_values, output_format=output_format)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        disposition = _content_disposition(export.definition.name, stamp, export.extension)
        info(f"[reports.export_report] Exported report '{code}' ({export.row_count} rows) for {username}")
        return StreamingResponse(
            io.BytesIO(export.content),
            media_type=export.media_type,
            headers={"Content-Disposition": disposition},
        )
    except ReportServiceError as exc:
        return _handle_service_error(exc)
    except Exception as exc:
        error(f"[reports.export_report] Unexpected error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to export report") from exc
    finally:
        reset_log_user(token)


@router.get("/reports/{code}/export")
def export_report(request: Request, code: str, outputFormat: str = "EXCEL"):
    filter_values = filter_values_from_pairs(request.query_params.multi_items(), RESERVED_PARAMS)
    return _export_response(request, code, filter_values, outputFormat)


@router.post("/reports/{code}/export")
def export_report_with_body(request: Request, code: str, payload: ExportRequest):
    """Same as the GET export, with filters in a JSON body (daterange values may be [from, to])."""
    return _export_response(request, code, payload.filters, payload.outputFormat)
