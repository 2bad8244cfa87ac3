"""
Shared fixtures: a file-backed SQLite database holding both the report
metadata tables and the sales data the seeded reports query.
"""
import json
import sqlite3

import pytest

from reportengine.modules.reports.query_executor import QueryExecutor
from reportengine.modules.reports.report_config import ReportEngineConfig
from reportengine.modules.reports.report_repository import ReportDefinitionRepository
from reportengine.modules.reports.report_service import ReportEngineService

SCHEMA = """
CREATE TABLE report_definitions (
    report_id INTEGER PRIMARY KEY,
    code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT,
    icon TEXT,
    color TEXT,
    category TEXT,
    sort_order INTEGER DEFAULT 0,
    base_query TEXT NOT NULL,
    summary_calculations TEXT,
    excel_sheet_name TEXT,
    is_active INTEGER DEFAULT 1,
    is_public INTEGER DEFAULT 1,
    permission_code TEXT
);
CREATE TABLE report_columns (
    column_id INTEGER PRIMARY KEY,
    report_id INTEGER NOT NULL,
    field_name TEXT NOT NULL,
    display_name TEXT,
    data_type TEXT,
    alignment TEXT,
    width INTEGER,
    sort_order INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1
);
CREATE TABLE report_filters (
    filter_id INTEGER PRIMARY KEY,
    report_id INTEGER NOT NULL,
    field_name TEXT NOT NULL,
    display_name TEXT,
    filter_type TEXT,
    sql_condition TEXT,
    options_source TEXT,
    static_options TEXT,
    options_query TEXT,
    sort_order INTEGER DEFAULT 0,
    is_active INTEGER DEFAULT 1
);
CREATE TABLE settings (
    key TEXT NOT NULL,
    value TEXT,
    is_active INTEGER DEFAULT 1
);
CREATE TABLE sales (
    sale_id INTEGER PRIMARY KEY,
    sale_date TEXT,
    customer TEXT,
    status TEXT,
    payment_method TEXT,
    total REAL
);
"""

SALES_QUERY = "SELECT sale_id, sale_date, customer, status, payment_method, total FROM sales WHERE 1=1"

SALES_SUMMARY = json.dumps({
    "sum_total": {"op": "sum", "field": "total"},
    "transactions": {"op": "count"},
})

SALES = [
    (1, "2024-01-10", "Alice", "PAID", "cash", 10.0),
    (2, "2024-01-15 10:30:00", "Bob", "PAID", "card", 20.0),
    (3, "2024-02-01", "Alice", "PENDING", "cash", 5.5),
    (4, "2024-03-05", "Carol", "PAID", "card", 100.25),
]

# report_id, code, name, category, sort_order, base_query, summary, sheet, is_active, is_public, permission
DEFINITIONS = [
    (1, "sales_summary", "Sales Summary", "Sales", 1, SALES_QUERY, SALES_SUMMARY, "Sales", 1, 1, None),
    (2, "broken_summary", "Broken Summary", "Sales", 2, SALES_QUERY, "{not json", None, 1, 1, None),
    (3, "retired", "Retired Report", "Sales", 3, SALES_QUERY, None, None, 0, 1, None),
    (4, "finance_ledger", "Finance Ledger", "Finance", 1, SALES_QUERY, None, None, 1, 1, "reports.finance"),
    (5, "internal_only", "Internal Only", "Admin", 1, SALES_QUERY, None, None, 1, 0, None),
    (6, "bad_filter", "Bad Filter", "Admin", 2, SALES_QUERY, None, None, 1, 0, None),
    (7, "bad_options", "Bad Options", "Admin", 3, SALES_QUERY, None, None, 1, 0, None),
]

# report_id, field_name, display_name, data_type, alignment, width, sort_order, is_active
COLUMNS = [
    (1, "total", "Total", "currency", "right", 100, 4, 1),
    (1, "sale_date", "Date", "date", "left", 120, 1, 1),
    (1, "customer", "Customer", "string", "left", None, 2, 1),
    (1, "status", "Status", "string", "center", None, 3, 1),
    (1, "payment_method", "Method", "string", "left", None, 5, 0),
    (2, "customer", "Customer", "string", "left", None, 1, 1),
    (2, "total", "Total", "currency", "right", None, 2, 1),
    (4, "total", "Total", "number", "right", None, 1, 1),
]

# report_id, field_name, display_name, filter_type, sql_condition, options_source, static_options, options_query, sort_order
FILTERS = [
    (1, "status", "Status", "select", "status = ?", "static", '["PAID", "PENDING"]', None, 2),
    (1, "date", "Date Range", "daterange", "date(sale_date) BETWEEN ? AND ?", "none", None, None, 1),
    (1, "customer", "Customer", "select", "customer = ?", "query", None,
     "SELECT DISTINCT customer AS value, customer AS label FROM sales ORDER BY customer", 3),
    (6, "date", "Date Range", "daterange", "date(sale_date) >= ?", "none", None, None, 1),
    (7, "status", "Status", "select", "status = ?", "static", "PAID, PENDING", None, 1),
]

SETTINGS = [
    ("reports.company_name", "Acme Corp", 1),
    ("reports.company_address", "1 Main St, Springfield", 1),
    ("reports.company_phone", "555-0100", 1),
    ("reports.company_logo", "missing-logo.png", 0),
    ("pos.receipt_footer", "Thanks!", 1),
]


def seed_database(path):
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA)
        conn.executemany(
            """
            INSERT INTO report_definitions (
                report_id, code, name, category, sort_order, base_query,
                summary_calculations, excel_sheet_name, is_active, is_public, permission_code
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            DEFINITIONS,
        )
        conn.executemany(
            """
            INSERT INTO report_columns (
                report_id, field_name, display_name, data_type, alignment, width, sort_order, is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            COLUMNS,
        )
        conn.executemany(
            """
            INSERT INTO report_filters (
                report_id, field_name, display_name, filter_type, sql_condition,
                options_source, static_options, options_query, sort_order
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            FILTERS,
        )
        conn.executemany("INSERT INTO settings (key, value, is_active) VALUES (?, ?, ?)", SETTINGS)
        conn.executemany("INSERT INTO sales VALUES (?, ?, ?, ?, ?, ?)", SALES)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def report_db(tmp_path):
    path = str(tmp_path / "reports.db")
    seed_database(path)
    return path


@pytest.fixture
def connection_factory(report_db):
    return lambda: sqlite3.connect(report_db)


@pytest.fixture
def repository(connection_factory):
    return ReportDefinitionRepository(connection_factory=connection_factory)


@pytest.fixture
def executor(connection_factory):
    return QueryExecutor(connection_factory=connection_factory)


@pytest.fixture
def engine_config(tmp_path):
    config = ReportEngineConfig()
    config.metadata_schema = None
    config.query_timeout = 30.0
    config.definition_cache_ttl = 0
    config.options_max_workers = 2
    config.company_name = "Company Name"
    config.company_address = ""
    config.company_phone = ""
    config.assets_directory = str(tmp_path)
    return config


@pytest.fixture
def service(repository, executor, engine_config):
    return ReportEngineService(repository=repository, executor=executor, config=engine_config)
