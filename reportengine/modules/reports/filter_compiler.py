"""
Filter Compiler

Turns caller-supplied filter values into the final report SQL plus a
positional parameter list. Placeholders are filled left-to-right by position,
so fragments and parameters are kept together as one ordered clause list and
only flattened at the end.
"""
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from reportengine.modules.reports.report_models import ReportDefinition, ReportFilter

ALL_SENTINEL = "all"

_QUOTED_LITERAL = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"")
_PLACEHOLDER = re.compile(r"\?|%s|(?<![:\w]):(?:\d+|[A-Za-z_]\w*)")


def count_placeholders(sql: Optional[str]) -> int:
    """Count positional bind placeholders (?, %s, :1, :name) outside quoted literals."""
    if not sql:
        return 0
    stripped = _QUOTED_LITERAL.sub("", sql).replace("%%", "")
    return len(_PLACEHOLDER.findall(stripped))


@dataclass(frozen=True)
class FilterClause:
    field_name: str
    fragment: str
    params: Tuple[Any, ...]


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: Tuple[Any, ...]
    applied_filters: Tuple[str, ...] = ()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == "" or value == ALL_SENTINEL
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def split_date_range(value: Any) -> Optional[Tuple[str, str]]:
    """
    Split a daterange value into (from, to).

    Accepts "from,to" strings or two-item sequences. Returns None unless both
    bounds are present; a partial range means "no filter".
    """
    if isinstance(value, (list, tuple)):
        parts = [("" if part is None else str(part)) for part in value]
    else:
        parts = str(value).split(",")
    date_from = parts[0].strip() if len(parts) > 0 else ""
    date_to = parts[1].strip() if len(parts) > 1 else ""
    if not date_from or not date_to:
        return None
    return date_from, date_to


def build_clause(report_filter: ReportFilter, value: Any) -> Optional[FilterClause]:
    """Return the clause a single filter contributes, or None when it is not applied."""
    if _is_blank(value):
        return None
    if report_filter.is_daterange:
        bounds = split_date_range(value)
        if bounds is None:
            return None
        return FilterClause(report_filter.field_name, report_filter.sql_condition, bounds)
    return FilterClause(report_filter.field_name, report_filter.sql_condition, (value,))


def _prepare_base_query(base_query: str) -> str:
    return (base_query or "").strip().rstrip(";").rstrip()


def compile_filters(definition: ReportDefinition, filter_values: Optional[Mapping[str, Any]] = None) -> CompiledQuery:
    """
    Compile a definition and filter values into SQL + parameters.

    Filters are visited in definition (sort) order; each applied filter appends
    " AND <condition>" and its values, so parameter order always matches
    placeholder order. Values are bound, never interpolated.
    """
    filter_values = filter_values or {}
    clauses: List[FilterClause] = []
    for report_filter in definition.filters:
        clause = build_clause(report_filter, filter_values.get(report_filter.field_name))
        if clause is not None:
            clauses.append(clause)

    sql = _prepare_base_query(definition.base_query)
    params: List[Any] = []
    for clause in clauses:
        sql += f" AND {clause.fragment}"
        params.extend(clause.params)

    return CompiledQuery(
        sql=sql,
        params=tuple(params),
        applied_filters=tuple(clause.field_name for clause in clauses),
    )


def filter_values_from_pairs(pairs: Sequence[Tuple[str, str]], reserved: Sequence[str] = ()) -> dict:
    """Collapse query-string pairs into a filter value map; the last value wins."""
    values = {}
    for key, value in pairs:
        if key in reserved:
            continue
        values[key] = value
    return values
