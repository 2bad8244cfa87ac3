import os
from typing import List, Optional

from reportengine.modules.reports.report_models import ReportBranding


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


class ReportEngineConfig:
    """Configuration for the report engine."""

    def __init__(self):
        # Metadata tables may live in a dedicated schema
        self.metadata_schema: Optional[str] = os.environ.get("REPORT_METADATA_SCHEMA") or None

        # Seconds; 0 disables the timeout
        self.query_timeout = _env_float("REPORT_QUERY_TIMEOUT", 60.0)

        # Seconds a loaded definition is reused; 0 disables caching
        self.definition_cache_ttl = _env_float("REPORT_DEFINITION_CACHE_TTL", 300.0)

        self.options_max_workers = max(1, _env_int("REPORT_OPTIONS_MAX_WORKERS", 4))

        # Branding defaults; rows in the settings table override them
        self.company_name = os.environ.get("REPORT_COMPANY_NAME", "Company Name")
        self.company_address = os.environ.get("REPORT_COMPANY_ADDRESS", "")
        self.company_phone = os.environ.get("REPORT_COMPANY_PHONE", "")
        self.assets_directory = os.path.abspath(
            os.environ.get(
                "REPORT_ASSETS_DIR",
                os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "assets", "images"),
            )
        )

        self.cors_origins: List[str] = [
            origin.strip()
            for origin in os.environ.get("REPORT_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
            if origin.strip()
        ]

    @property
    def effective_query_timeout(self) -> Optional[float]:
        return self.query_timeout if self.query_timeout > 0 else None

    def default_branding(self) -> ReportBranding:
        return ReportBranding(
            company_name=self.company_name,
            company_address=self.company_address,
            company_phone=self.company_phone,
        )
