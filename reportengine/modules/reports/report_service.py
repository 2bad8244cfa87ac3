"""
Report engine facade.

Wires the pipeline: definition repository -> filter compiler -> query
executor -> summary calculator -> document generator. The filter option
provider is a read-only side channel used before a report is run.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from reportengine.modules.logger import info
from reportengine.modules.reports.document_generator import get_renderer, render_document
from reportengine.modules.reports.filter_compiler import compile_filters
from reportengine.modules.reports.filter_options import FilterOptionProvider
from reportengine.modules.reports.query_executor import QueryExecutor, ensure_not_cancelled
from reportengine.modules.reports.report_config import ReportEngineConfig
from reportengine.modules.reports.report_models import ReportDefinition, ReportSummary
from reportengine.modules.reports.report_repository import ReportDefinitionRepository
from reportengine.modules.reports.summary_calculator import SummaryCalculator


@dataclass(frozen=True)
class ReportResult:
    definition: ReportDefinition
    rows: List[Dict[str, Any]]
    totals: Dict[str, Any]
    sql: str
    params: Tuple[Any, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.definition.to_dict(),
            "rows": self.rows,
            "rowCount": len(self.rows),
            "totals": self.totals,
        }


@dataclass(frozen=True)
class ReportExport:
    content: bytes
    extension: str
    media_type: str
    definition: ReportDefinition
    row_count: int


class ReportEngineService:
    """Entry point for listing, running and exporting stored report definitions."""

    def __init__(
        self,
        repository: Optional[ReportDefinitionRepository] = None,
        executor: Optional[QueryExecutor] = None,
        calculator: Optional[SummaryCalculator] = None,
        config: Optional[ReportEngineConfig] = None,
        option_provider: Optional[FilterOptionProvider] = None,
    ):
        self.config = config or ReportEngineConfig()
        self.repository = repository or ReportDefinitionRepository(
            schema=self.config.metadata_schema,
            cache_ttl=self.config.definition_cache_ttl,
        )
        self.executor = executor or QueryExecutor()
        self.calculator = calculator or SummaryCalculator()
        self.option_provider = option_provider or FilterOptionProvider(
            self.executor, max_workers=self.config.options_max_workers
        )

    def list_reports(self, permission_codes: Optional[Iterable[str]] = None) -> List[ReportSummary]:
        return self.repository.list_reports(permission_codes)

    def get_definition(self, code: str) -> ReportDefinition:
        return self.repository.get_definition(code)

    def get_filter_options(self, code: str) -> Dict[str, List[Any]]:
        definition = self.repository.get_definition(code)
        return self.option_provider.options(definition, timeout=self.config.effective_query_timeout)

    def run_report(
        self,
        code: str,
        filter_values: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReportResult:
        ensure_not_cancelled(cancel_event)
        definition = self.repository.get_definition(code)

        compiled = compile_filters(definition, filter_values)
        info(
            f"[ReportEngineService] Running report '{code}' with filters "
            f"{list(compiled.applied_filters) or 'none'}"
        )
        ensure_not_cancelled(cancel_event)
        rows = self.executor.execute(
            compiled.sql,
            compiled.params,
            timeout=timeout if timeout is not None else self.config.effective_query_timeout,
            cancel_event=cancel_event,
        )

        ensure_not_cancelled(cancel_event)
        totals = self.calculator.summarize(definition, rows)
        info(f"[ReportEngineService] Report '{code}' returned {len(rows)} row(s)")
        return ReportResult(definition=definition, rows=rows, totals=totals, sql=compiled.sql, params=compiled.params)

    def export_report(
        self,
        code: str,
        filter_values: Optional[Mapping[str, Any]] = None,
        output_format: str = "EXCEL",
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        generated_at: Optional[datetime] = None,
    ) -> ReportExport:
        # Reject unknown formats before touching either store
        renderer = get_renderer(output_format)
        result = self.run_report(code, filter_values, timeout=timeout, cancel_event=cancel_event)

        ensure_not_cancelled(cancel_event)
        branding = self.repository.load_branding(self.config.default_branding())
        content = render_document(
            result.definition,
            result.rows,
            result.totals,
            branding,
            output_format=output_format,
            generated_at=generated_at,
            assets_directory=self.config.assets_directory,
        )
        info(f"[ReportEngineService] Exported report '{code}' as {renderer.output_format} ({len(content)} bytes)")
        return ReportExport(
            content=content,
            extension=renderer.extension,
            media_type=renderer.media_type,
            definition=result.definition,
            row_count=len(result.rows),
        )


# Singleton instance
_service_instance: Optional[ReportEngineService] = None


def get_report_engine_service() -> ReportEngineService:
    """Get or create the report engine service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = ReportEngineService()
    return _service_instance
