"""
Database helpers shared by the report engine.

Connections handed out by SQLAlchemy's raw_connection() are proxies around the
driver connection, so type detection looks through the proxy first. The
detected type decides the bind placeholder style used for metadata queries
and how a running statement is interrupted.
"""

import builtins
import os

METADATA_TABLES = ('REPORT_DEFINITIONS', 'REPORT_COLUMNS', 'REPORT_FILTERS', 'SETTINGS')


def unwrap_connection(connection):
    """Return the underlying DB-API driver connection."""
    for attr in ('driver_connection', 'dbapi_connection'):
        inner = getattr(connection, attr, None)
        if inner is not None:
            return inner
    return connection


def _detect_db_type(connection):
    """Detect database type from connection"""
    if connection is None:
        return os.getenv("DB_TYPE", "SQLITE").upper()

    connection_type = builtins.type(unwrap_connection(connection))
    module_name = connection_type.__module__.lower()
    class_name = connection_type.__name__.lower()

    # Check module name first (most reliable)
    if "sqlite" in module_name:
        return "SQLITE"
    if "psycopg" in module_name or "pg8000" in module_name:
        return "POSTGRESQL"
    if "oracledb" in module_name or "cx_oracle" in module_name:
        return "ORACLE"
    if "pymysql" in module_name or "mysql" in module_name:
        return "MYSQL"

    # Check class name as fallback
    if "postgres" in class_name:
        return "POSTGRESQL"
    if "oracle" in class_name:
        return "ORACLE"

    # Last resort: check environment variable
    return os.getenv("DB_TYPE", "SQLITE").upper()


def detect_db_type(connection):
    """Public wrapper around internal DB type detection."""
    return _detect_db_type(connection)


def format_table_name(schema_name, table_name: str, db_type: str) -> str:
    """
    Format table name with optional schema prefix.

    The report metadata tables use lowercase unquoted names, which every
    supported database resolves case-insensitively.
    """
    table = table_name.lower()
    if not schema_name:
        return table
    if db_type == "POSTGRESQL":
        return f'{schema_name.lower()}.{table}'
    return f'{schema_name}.{table}'


def get_metadata_table_refs(schema_name, db_type: str):
    """
    Get formatted table references for the report metadata tables.

    Returns:
        Dictionary keyed by REPORT_DEFINITIONS, REPORT_COLUMNS, REPORT_FILTERS, SETTINGS
    """
    return {name: format_table_name(schema_name, name, db_type) for name in METADATA_TABLES}


def interrupt_connection(connection):
    """Ask the driver to abort the statement currently running on a connection."""
    driver_connection = unwrap_connection(connection)
    for method_name in ('interrupt', 'cancel'):
        method = getattr(driver_connection, method_name, None)
        if callable(method):
            method()
            return True
    return False
