"""
Unit tests for the filter compiler: clause order, parameter order and the
skip rules for absent, empty, "all" and partial daterange values.
"""
import pytest

from reportengine.modules.reports.filter_compiler import (
    build_clause,
    compile_filters,
    count_placeholders,
    filter_values_from_pairs,
    split_date_range,
)
from reportengine.modules.reports.report_models import ReportDefinition, ReportFilter

BASE_QUERY = "SELECT * FROM sales WHERE 1=1"


def _definition(*filters, base_query=BASE_QUERY):
    return ReportDefinition(report_id=1, code="sales", name="Sales", base_query=base_query, filters=tuple(filters))


STATUS = ReportFilter(field_name="status", filter_type="select", sql_condition="status = ?", sort_order=1)
DATES = ReportFilter(field_name="date", filter_type="daterange", sql_condition="sale_date BETWEEN ? AND ?", sort_order=2)
CUSTOMER = ReportFilter(field_name="customer", filter_type="text", sql_condition="customer = ?", sort_order=3)


class TestCompileFilters:

    def test_no_filter_values_returns_base_query(self):
        compiled = compile_filters(_definition(STATUS, DATES))
        assert compiled.sql == BASE_QUERY
        assert compiled.params == ()
        assert compiled.applied_filters == ()

    def test_single_value_filter_is_appended_and_bound(self):
        compiled = compile_filters(_definition(STATUS), {"status": "PAID"})
        assert compiled.sql == BASE_QUERY + " AND status = ?"
        assert compiled.params == ("PAID",)

    def test_daterange_pushes_from_then_to(self):
        compiled = compile_filters(_definition(DATES), {"date": "2024-01-01,2024-01-31"})
        assert compiled.sql == BASE_QUERY + " AND sale_date BETWEEN ? AND ?"
        assert compiled.params == ("2024-01-01", "2024-01-31")

    def test_fragments_and_params_follow_filter_order(self):
        compiled = compile_filters(
            _definition(STATUS, DATES, CUSTOMER),
            {"customer": "Alice", "date": "2024-01-01, 2024-01-31", "status": "PAID"},
        )
        assert compiled.sql == (
            BASE_QUERY + " AND status = ? AND sale_date BETWEEN ? AND ? AND customer = ?"
        )
        assert compiled.params == ("PAID", "2024-01-01", "2024-01-31", "Alice")
        assert compiled.applied_filters == ("status", "date", "customer")

    @pytest.mark.parametrize("value", [None, "", "all"])
    def test_blank_and_all_values_are_skipped(self, value):
        compiled = compile_filters(_definition(STATUS, CUSTOMER), {"status": value, "customer": "Bob"})
        assert compiled.sql == BASE_QUERY + " AND customer = ?"
        assert compiled.params == ("Bob",)

    @pytest.mark.parametrize("value", ["2024-01-01,", ",2024-01-31", "2024-01-01", " , "])
    def test_partial_daterange_is_treated_as_absent(self, value):
        compiled = compile_filters(_definition(DATES, STATUS), {"date": value, "status": "PAID"})
        assert compiled.sql == BASE_QUERY + " AND status = ?"
        assert compiled.params == ("PAID",)

    def test_parameter_count_matches_appended_placeholders(self):
        compiled = compile_filters(
            _definition(STATUS, DATES, CUSTOMER),
            {"status": "PAID", "date": "2024-01-01,2024-02-01", "customer": "all"},
        )
        appended = compiled.sql[len(BASE_QUERY):]
        assert count_placeholders(appended) == len(compiled.params) == 3

    def test_values_are_never_interpolated(self):
        hostile = "x' OR '1'='1"
        compiled = compile_filters(_definition(STATUS), {"status": hostile})
        assert hostile not in compiled.sql
        assert compiled.params == (hostile,)

    def test_trailing_semicolon_is_stripped_before_appending(self):
        compiled = compile_filters(_definition(STATUS, base_query=BASE_QUERY + " ;\n"), {"status": "PAID"})
        assert compiled.sql == BASE_QUERY + " AND status = ?"

    def test_unknown_filter_keys_are_ignored(self):
        compiled = compile_filters(_definition(STATUS), {"region": "north"})
        assert compiled.params == ()

    def test_compilation_is_deterministic(self):
        definition = _definition(STATUS, DATES, CUSTOMER)
        values = {"status": "PAID", "date": "2024-01-01,2024-02-01", "customer": "Alice"}
        assert compile_filters(definition, values) == compile_filters(definition, dict(values))


def test_split_date_range_ignores_parts_after_the_second():
    assert split_date_range("2024-01-01,2024-01-31,2024-12-31") == ("2024-01-01", "2024-01-31")


def test_split_date_range_accepts_two_item_sequences():
    assert split_date_range(["2024-01-01", "2024-01-31"]) == ("2024-01-01", "2024-01-31")
    assert split_date_range(["2024-01-01", None]) is None


def test_build_clause_keeps_non_string_values():
    clause = build_clause(STATUS, 42)
    assert clause.params == (42,)


def test_count_placeholders_styles():
    assert count_placeholders("a = ?") == 1
    assert count_placeholders("a BETWEEN %s AND %s") == 2
    assert count_placeholders("a BETWEEN :1 AND :2") == 2
    assert count_placeholders("a = :status") == 1


def test_count_placeholders_ignores_literals_and_casts():
    assert count_placeholders("a = '?' AND b = ?") == 1
    assert count_placeholders("a::date = ?") == 1
    assert count_placeholders("a LIKE '%%' AND b = 'x:y'") == 0
    assert count_placeholders(None) == 0


def test_filter_values_from_pairs_skips_reserved_keys():
    pairs = [("status", "PAID"), ("outputFormat", "PDF"), ("status", "PENDING")]
    assert filter_values_from_pairs(pairs, reserved=("outputFormat",)) == {"status": "PENDING"}
