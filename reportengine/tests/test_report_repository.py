"""
Tests for ReportDefinitionRepository against the seeded SQLite store, plus
the placeholder styles used for other databases.
"""
import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from reportengine.modules.reports.report_errors import ReportConfigError, ReportNotFoundError
from reportengine.modules.reports.report_models import DataType, OptionsSource, ReportBranding
from reportengine.modules.reports.report_repository import ReportDefinitionRepository, _ParamBuilder


class TestGetDefinition:

    def test_loads_definition_with_ordered_columns_and_filters(self, repository):
        definition = repository.get_definition("sales_summary")
        assert definition.name == "Sales Summary"
        assert definition.export_sheet_name == "Sales"
        assert [column.field_name for column in definition.columns] == ["sale_date", "customer", "status", "total"]
        assert [report_filter.field_name for report_filter in definition.filters] == ["date", "status", "customer"]

    def test_inactive_columns_are_excluded(self, repository):
        definition = repository.get_definition("sales_summary")
        assert "payment_method" not in [column.field_name for column in definition.columns]

    def test_column_and_filter_attributes(self, repository):
        definition = repository.get_definition("sales_summary")
        total = definition.columns[-1]
        assert total.data_type == DataType.CURRENCY
        assert total.alignment == "right"
        assert total.width == 100
        date_filter = definition.filters[0]
        assert date_filter.is_daterange
        assert date_filter.display_name == "Date Range"
        assert definition.filters[1].options_source == OptionsSource.STATIC
        assert definition.filters[2].options_source == OptionsSource.QUERY

    def test_unknown_code_raises_not_found(self, repository):
        with pytest.raises(ReportNotFoundError) as exc_info:
            repository.get_definition("missing")
        assert exc_info.value.status_code == 404
        assert exc_info.value.details == {"reportCode": "missing"}

    def test_inactive_definition_raises_not_found(self, repository):
        with pytest.raises(ReportNotFoundError):
            repository.get_definition("retired")

    def test_placeholder_mismatch_raises_config_error(self, repository):
        with pytest.raises(ReportConfigError) as exc_info:
            repository.get_definition("bad_filter")
        assert exc_info.value.details["expected"] == 2
        assert exc_info.value.details["found"] == 1

    def test_definition_is_immutable(self, repository):
        definition = repository.get_definition("sales_summary")
        with pytest.raises(AttributeError):
            definition.name = "changed"
        assert isinstance(definition.columns, tuple)


class TestDefinitionCache:

    def _repository(self, report_db, clock):
        connections = []

        def factory():
            connections.append(1)
            return sqlite3.connect(report_db)

        return ReportDefinitionRepository(connection_factory=factory, cache_ttl=60, clock=clock), connections

    def test_cached_until_ttl_expires(self, report_db):
        now = [100.0]
        repository, connections = self._repository(report_db, lambda: now[0])
        first = repository.get_definition("sales_summary")
        second = repository.get_definition("sales_summary")
        assert first is second
        assert len(connections) == 1

        now[0] += 61
        third = repository.get_definition("sales_summary")
        assert third is not first
        assert third == first
        assert len(connections) == 2

    def test_invalidate_drops_entries(self, report_db):
        repository, connections = self._repository(report_db, lambda: 0.0)
        repository.get_definition("sales_summary")
        repository.invalidate("sales_summary")
        repository.get_definition("sales_summary")
        assert len(connections) == 2

    def test_zero_ttl_disables_caching(self, connection_factory):
        repository = ReportDefinitionRepository(connection_factory=connection_factory, cache_ttl=0)
        assert repository.get_definition("sales_summary") is not repository.get_definition("sales_summary")


class TestListReports:

    def test_lists_active_public_reports_by_category(self, repository):
        codes = [report.code for report in repository.list_reports()]
        assert codes == ["finance_ledger", "sales_summary", "broken_summary"]

    def test_permission_codes_hide_restricted_reports(self, repository):
        codes = [report.code for report in repository.list_reports(permission_codes=[])]
        assert codes == ["sales_summary", "broken_summary"]
        codes = [report.code for report in repository.list_reports(permission_codes=["reports.finance"])]
        assert "finance_ledger" in codes

    def test_summary_serialization(self, repository):
        report = repository.list_reports()[0]
        assert report.to_dict()["permissionCode"] == "reports.finance"


class TestLoadBranding:

    def test_settings_override_defaults(self, repository):
        branding = repository.load_branding(ReportBranding(company_name="Fallback", company_phone="000"))
        assert branding.company_name == "Acme Corp"
        assert branding.company_address == "1 Main St, Springfield"
        assert branding.company_phone == "555-0100"

    def test_inactive_settings_are_ignored(self, repository):
        assert repository.load_branding().company_logo is None

    def test_defaults_when_no_settings(self, report_db):
        conn = sqlite3.connect(report_db)
        conn.execute("DELETE FROM settings")
        conn.commit()
        conn.close()
        repository = ReportDefinitionRepository(connection_factory=lambda: sqlite3.connect(report_db))
        assert repository.load_branding().company_name == "Company Name"


class TestParamBuilder:

    def test_oracle_uses_named_binds(self):
        builder = _ParamBuilder("ORACLE")
        assert builder.add("sales", "code") == ":code0"
        assert builder.params == {"code0": "sales"}

    def test_postgres_uses_format_binds(self):
        builder = _ParamBuilder("POSTGRESQL")
        assert builder.add("sales") == "%s"
        assert builder.params == ("sales",)

    def test_sqlite_uses_qmark_binds(self):
        builder = _ParamBuilder("SQLITE")
        assert builder.add(1) == "?"
        assert builder.params == (1,)


def test_postgres_metadata_queries_use_schema_and_format_binds():
    cursor = MagicMock()
    cursor.fetchall.return_value = []
    conn = MagicMock()
    conn.cursor.return_value = cursor
    repository = ReportDefinitionRepository(connection_factory=lambda: conn, schema="Reporting")

    with patch("reportengine.modules.reports.report_repository.detect_db_type", return_value="POSTGRESQL"):
        with pytest.raises(ReportNotFoundError):
            repository.get_definition("sales_summary")

    query, params = cursor.execute.call_args[0]
    assert "reporting.report_definitions" in query
    assert "code = %s" in query
    assert params == ("sales_summary",)
    cursor.close.assert_called_once()
    conn.close.assert_called_once()
