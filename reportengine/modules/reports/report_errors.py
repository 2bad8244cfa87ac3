from typing import Any, Dict, Optional


class ReportServiceError(Exception):
    """Domain-specific exception for report engine failures."""

    def __init__(self, message: str, status_code: int = 400, code: str = "REPORT_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}


class ReportNotFoundError(ReportServiceError):
    """Unknown or inactive report code."""

    def __init__(self, report_code: str):
        super().__init__(
            f"Report '{report_code}' not found",
            status_code=404,
            code="REPORT_NOT_FOUND",
            details={"reportCode": report_code},
        )


class ReportConfigError(ReportServiceError):
    """Stored report metadata is malformed (authoring bug, not transient)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, code="REPORT_CONFIG_ERROR", details=details)


class ReportQueryError(ReportServiceError):
    """Data store execution failure. Never retried by the engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: int = 502, code: str = "REPORT_QUERY_FAILED"):
        super().__init__(message, status_code=status_code, code=code, details=details)


class ReportCancelledError(ReportQueryError):
    """Query aborted by timeout or by the caller's cancellation signal."""

    def __init__(self, message: str = "Report query was cancelled", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, status_code=504, code="REPORT_QUERY_CANCELLED")


class SummaryCalculationError(ReportServiceError):
    """Failure inside a summary calculation script. Downgraded to empty totals."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, code="SUMMARY_CALCULATION_FAILED", details=details)
