"""
Filter Option Provider

Resolves the selectable values of a report's filters. Static options are a
JSON array stored with the filter; query options come from a SELECT run
through the QueryExecutor. Nothing here writes.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from reportengine.modules.logger import debug
from reportengine.modules.reports.query_executor import QueryExecutor
from reportengine.modules.reports.report_errors import ReportConfigError
from reportengine.modules.reports.report_models import OptionsSource, ReportDefinition, ReportFilter


def parse_static_options(report_filter: ReportFilter) -> List[Any]:
    try:
        options = json.loads(report_filter.static_options)
    except (TypeError, ValueError) as exc:
        raise ReportConfigError(
            f"Static options for filter '{report_filter.field_name}' are not valid JSON",
            details={"fieldName": report_filter.field_name, "reason": str(exc)},
        ) from exc
    if not isinstance(options, list):
        raise ReportConfigError(
            f"Static options for filter '{report_filter.field_name}' must be a JSON array",
            details={"fieldName": report_filter.field_name},
        )
    return options


class FilterOptionProvider:
    """Builds {field_name: options} for the filters that have an options source."""

    def __init__(self, executor: Optional[QueryExecutor] = None, max_workers: int = 4):
        self.executor = executor or QueryExecutor()
        self.max_workers = max(1, max_workers)

    def options(self, definition: ReportDefinition, timeout: Optional[float] = None) -> Dict[str, List[Any]]:
        result: Dict[str, List[Any]] = {}
        query_filters = []
        for report_filter in definition.filters:
            if report_filter.options_source == OptionsSource.STATIC and (report_filter.static_options or "").strip():
                result[report_filter.field_name] = parse_static_options(report_filter)
            elif report_filter.options_source == OptionsSource.QUERY and (report_filter.options_query or "").strip():
                # reserve the slot so output keeps filter order
                result[report_filter.field_name] = []
                query_filters.append(report_filter)

        if query_filters:
            debug(f"[FilterOptionProvider] Running {len(query_filters)} option query(ies) for '{definition.code}'")
            workers = min(self.max_workers, len(query_filters))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="report-options") as pool:
                futures = [
                    (report_filter.field_name, pool.submit(self.executor.execute, report_filter.options_query, (), timeout))
                    for report_filter in query_filters
                ]
                for field_name, future in futures:
                    result[field_name] = future.result()
        return result
