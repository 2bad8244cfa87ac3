import threading
import time
from contextlib import suppress
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from reportengine.database.dbconnect import create_metadata_connection
from reportengine.modules.common.db_table_utils import detect_db_type, get_metadata_table_refs
from reportengine.modules.logger import debug, info
from reportengine.modules.reports.filter_compiler import count_placeholders
from reportengine.modules.reports.report_errors import ReportConfigError, ReportNotFoundError
from reportengine.modules.reports.report_models import (
    DataType,
    OptionsSource,
    ReportBranding,
    ReportColumn,
    ReportDefinition,
    ReportFilter,
    ReportSummary,
)

SETTINGS_PREFIX = "reports."
ALIGNMENTS = ("left", "center", "right")


class _ParamBuilder:
    """Utility to build parameter collections for Oracle (dict), SQLite (qmark) and the %s drivers."""

    def __init__(self, db_type: str):
        self.db_type = db_type.upper()
        self._params: Dict[str, Any] | List[Any]
        if self.db_type == "ORACLE":
            self._params = {}
        else:
            self._params = []
        self._counter = 0

    def add(self, value: Any, hint: str = "p") -> str:
        if self.db_type == "ORACLE":
            key = f"{hint}{self._counter}"
            self._counter += 1
            self._params[key] = value
            return f":{key}"
        self._params.append(value)
        return "?" if self.db_type == "SQLITE" else "%s"

    @property
    def params(self) -> Dict[str, Any] | Sequence[Any] | None:
        if self.db_type == "ORACLE":
            return self._params if self._params else None
        return tuple(self._params) if self._params else None


class _MetadataRepository:
    """Shared helpers for metadata-backed services."""

    def __init__(self, connection_factory: Optional[Callable[[], Any]] = None, schema: Optional[str] = None):
        self.connection_factory = connection_factory or create_metadata_connection
        self.schema = schema

    def _open_connection(self):
        conn = self.connection_factory()
        cursor = conn.cursor()
        db_type = detect_db_type(conn)
        tables = get_metadata_table_refs(self.schema, db_type)
        return conn, cursor, db_type, tables

    def _close_connection(self, conn, cursor):
        with suppress(Exception):
            if cursor:
                cursor.close()
        with suppress(Exception):
            if conn:
                conn.close()

    def _execute(self, cursor, query: str, params: Optional[Sequence[Any] | Dict[str, Any]] = None):
        if params is None:
            cursor.execute(query)
        else:
            cursor.execute(query, params)

    def _fetch_all_dict(self, cursor) -> List[Dict[str, Any]]:
        rows = cursor.fetchall()
        if not rows:
            return []
        columns = [desc[0].lower() for desc in cursor.description]
        return [{columns[idx]: row[idx] for idx in range(len(columns))} for row in rows]

    def _read_lob(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if hasattr(value, "read"):
            return value.read()
        return str(value)

    def _to_int(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, Decimal):
            return int(value)
        with suppress(ValueError, TypeError):
            return int(value)
        return None

    def _from_flag(self, value: Any) -> bool:
        if value is None:
            return False
        return str(value).strip().upper() in ("1", "Y", "YES", "TRUE")

    def _alignment(self, value: Any) -> str:
        alignment = str(value or "").strip().lower()
        return alignment if alignment in ALIGNMENTS else "left"


class ReportDefinitionRepository(_MetadataRepository):
    """
    Read-only access to report definitions.

    Loaded definitions are immutable and cached per code for cache_ttl seconds.
    A reload replaces the cached object instead of mutating it, so concurrent
    readers never see a half-updated definition.
    """

    def __init__(
        self,
        connection_factory: Optional[Callable[[], Any]] = None,
        schema: Optional[str] = None,
        cache_ttl: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(connection_factory=connection_factory, schema=schema)
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: Dict[str, Tuple[float, ReportDefinition]] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_definition(self, code: str) -> ReportDefinition:
        cached = self._cached(code)
        if cached is not None:
            return cached

        conn, cursor, db_type, tables = self._open_connection()
        try:
            definition = self._load_definition(cursor, tables, db_type, code)
        finally:
            self._close_connection(conn, cursor)

        self._validate_filters(definition)
        if self.cache_ttl > 0:
            with self._cache_lock:
                self._cache[code] = (self._clock() + self.cache_ttl, definition)
        debug(f"[ReportDefinitionRepository] Loaded report '{code}' with {len(definition.columns)} columns, {len(definition.filters)} filters")
        return definition

    def list_reports(self, permission_codes: Optional[Iterable[str]] = None) -> List[ReportSummary]:
        """
        Active, public reports ordered by category and sort order.

        Args:
            permission_codes: When given, reports requiring a permission outside
                this set are left out. Reports without a permission are always listed.
        """
        conn, cursor, db_type, tables = self._open_connection()
        try:
            query = f"""
                SELECT report_id, code, name, description, icon, color, category, permission_code
                FROM {tables['REPORT_DEFINITIONS']}
                WHERE is_active = 1 AND is_public = 1
                ORDER BY category, sort_order, report_id
            """
            self._execute(cursor, query)
            rows = self._fetch_all_dict(cursor)
        finally:
            self._close_connection(conn, cursor)

        allowed = set(permission_codes) if permission_codes is not None else None
        reports = []
        for row in rows:
            permission = row.get("permission_code") or None
            if allowed is not None and permission and permission not in allowed:
                continue
            reports.append(ReportSummary(
                report_id=self._to_int(row.get("report_id")),
                code=row.get("code"),
                name=row.get("name"),
                description=row.get("description"),
                icon=row.get("icon"),
                color=row.get("color"),
                category=row.get("category"),
                permission_code=permission,
            ))
        return reports

    def load_branding(self, defaults: Optional[ReportBranding] = None) -> ReportBranding:
        """Overlay active 'reports.*' settings rows on the configured branding defaults."""
        defaults = defaults or ReportBranding()
        conn, cursor, db_type, tables = self._open_connection()
        try:
            builder = _ParamBuilder(db_type)
            placeholder = builder.add(f"{SETTINGS_PREFIX}%", "prefix")
            key_column = "`key`" if db_type == "MYSQL" else "key"
            query = f"""
                SELECT {key_column} AS setting_key, value AS setting_value
                FROM {tables['SETTINGS']}
                WHERE {key_column} LIKE {placeholder} AND is_active = 1
            """
            self._execute(cursor, query, builder.params)
            rows = self._fetch_all_dict(cursor)
        finally:
            self._close_connection(conn, cursor)

        config = {}
        for row in rows:
            key = str(row.get("setting_key") or "")[len(SETTINGS_PREFIX):]
            config[key] = self._read_lob(row.get("setting_value"))

        return ReportBranding(
            company_name=config.get("company_name") or defaults.company_name,
            company_logo=config.get("company_logo") or defaults.company_logo,
            company_address=config.get("company_address") or defaults.company_address,
            company_phone=config.get("company_phone") or defaults.company_phone,
        )

    def invalidate(self, code: Optional[str] = None):
        with self._cache_lock:
            if code is None:
                self._cache.clear()
            else:
                self._cache.pop(code, None)
        info(f"[ReportDefinitionRepository] Cache invalidated for {code or 'all reports'}")

    # ------------------------------------------------------------------
    # Data Fetch helpers
    # ------------------------------------------------------------------
    def _cached(self, code: str) -> Optional[ReportDefinition]:
        if self.cache_ttl <= 0:
            return None
        with self._cache_lock:
            entry = self._cache.get(code)
        if entry is None:
            return None
        expires_at, definition = entry
        if self._clock() >= expires_at:
            return None
        return definition

    def _load_definition(self, cursor, tables, db_type: str, code: str) -> ReportDefinition:
        builder = _ParamBuilder(db_type)
        placeholder = builder.add(code, "code")
        query = f"""
            SELECT
                report_id, code, name, description, icon, color, category, sort_order,
                base_query, summary_calculations, excel_sheet_name,
                is_active, is_public, permission_code
            FROM {tables['REPORT_DEFINITIONS']}
            WHERE code = {placeholder} AND is_active = 1
        """
        self._execute(cursor, query, builder.params)
        rows = self._fetch_all_dict(cursor)
        if not rows:
            raise ReportNotFoundError(code)
        row = rows[0]
        report_id = self._to_int(row.get("report_id"))

        return ReportDefinition(
            report_id=report_id,
            code=row.get("code"),
            name=row.get("name"),
            description=row.get("description"),
            base_query=self._read_lob(row.get("base_query")) or "",
            summary_calculations=self._read_lob(row.get("summary_calculations")),
            export_sheet_name=row.get("excel_sheet_name"),
            is_active=self._from_flag(row.get("is_active")),
            is_public=self._from_flag(row.get("is_public")),
            category=row.get("category"),
            sort_order=self._to_int(row.get("sort_order")) or 0,
            permission_code=row.get("permission_code") or None,
            icon=row.get("icon"),
            color=row.get("color"),
            columns=tuple(self._fetch_columns(cursor, tables, db_type, report_id)),
            filters=tuple(self._fetch_filters(cursor, tables, db_type, report_id)),
        )

    def _fetch_columns(self, cursor, tables, db_type: str, report_id: int) -> List[ReportColumn]:
        builder = _ParamBuilder(db_type)
        placeholder = builder.add(report_id, "columns")
        query = f"""
            SELECT column_id, field_name, display_name, data_type, alignment, width, sort_order
            FROM {tables['REPORT_COLUMNS']}
            WHERE report_id = {placeholder} AND is_active = 1
            ORDER BY sort_order, column_id
        """
        self._execute(cursor, query, builder.params)
        return [
            ReportColumn(
                column_id=self._to_int(row.get("column_id")),
                field_name=row.get("field_name"),
                display_name=row.get("display_name") or row.get("field_name"),
                data_type=DataType.parse(row.get("data_type")),
                alignment=self._alignment(row.get("alignment")),
                width=self._to_int(row.get("width")),
                sort_order=self._to_int(row.get("sort_order")) or 0,
            )
            for row in self._fetch_all_dict(cursor)
        ]

    def _fetch_filters(self, cursor, tables, db_type: str, report_id: int) -> List[ReportFilter]:
        builder = _ParamBuilder(db_type)
        placeholder = builder.add(report_id, "filters")
        query = f"""
            SELECT
                filter_id, field_name, display_name, filter_type, sql_condition,
                options_source, static_options, options_query, sort_order
            FROM {tables['REPORT_FILTERS']}
            WHERE report_id = {placeholder} AND is_active = 1
            ORDER BY sort_order, filter_id
        """
        self._execute(cursor, query, builder.params)
        return [
            ReportFilter(
                filter_id=self._to_int(row.get("filter_id")),
                field_name=row.get("field_name"),
                display_name=row.get("display_name"),
                filter_type=(row.get("filter_type") or "equals").strip().lower(),
                sql_condition=self._read_lob(row.get("sql_condition")) or "",
                options_source=OptionsSource.parse(row.get("options_source")),
                static_options=self._read_lob(row.get("static_options")),
                options_query=self._read_lob(row.get("options_query")),
                sort_order=self._to_int(row.get("sort_order")) or 0,
            )
            for row in self._fetch_all_dict(cursor)
        ]

    def _validate_filters(self, definition: ReportDefinition):
        for report_filter in definition.filters:
            found = count_placeholders(report_filter.sql_condition)
            if found != report_filter.placeholder_count:
                raise ReportConfigError(
                    f"Filter '{report_filter.field_name}' of report '{definition.code}' has {found} "
                    f"placeholder(s); '{report_filter.filter_type}' filters need {report_filter.placeholder_count}",
                    details={
                        "reportCode": definition.code,
                        "fieldName": report_filter.field_name,
                        "expected": report_filter.placeholder_count,
                        "found": found,
                    },
                )
