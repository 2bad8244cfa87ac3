"""
Sanity checks for connection helpers: type detection through SQLAlchemy's
connection proxy, table references and store URL resolution.
"""
import sqlite3
from unittest.mock import Mock

from reportengine.database import dbconnect
from reportengine.modules.common.db_table_utils import (
    detect_db_type,
    get_metadata_table_refs,
    interrupt_connection,
    unwrap_connection,
)


def test_detects_sqlite_directly_and_through_a_proxy():
    conn = sqlite3.connect(":memory:")
    try:
        assert detect_db_type(conn) == "SQLITE"
        proxy = Mock(driver_connection=conn)
        assert unwrap_connection(proxy) is conn
        assert detect_db_type(proxy) == "SQLITE"
    finally:
        conn.close()


def test_metadata_table_refs():
    assert get_metadata_table_refs(None, "SQLITE")["REPORT_DEFINITIONS"] == "report_definitions"
    refs = get_metadata_table_refs("Reporting", "POSTGRESQL")
    assert refs["SETTINGS"] == "reporting.settings"
    assert get_metadata_table_refs("RPT", "ORACLE")["REPORT_FILTERS"] == "RPT.report_filters"


def test_interrupt_prefers_interrupt_then_cancel():
    sqlite_like = Mock(spec=["interrupt"])
    assert interrupt_connection(sqlite_like) is True
    sqlite_like.interrupt.assert_called_once()

    oracle_like = Mock(spec=["cancel"])
    assert interrupt_connection(oracle_like) is True
    oracle_like.cancel.assert_called_once()

    assert interrupt_connection(Mock(spec=[])) is False


def test_store_urls_fall_back_to_shared_url(monkeypatch):
    monkeypatch.delenv("REPORT_METADATA_DB_URL", raising=False)
    monkeypatch.delenv("REPORT_DATA_DB_URL", raising=False)
    monkeypatch.setenv("REPORT_DB_URL", "sqlite:///shared.db")
    assert dbconnect.get_database_url("metadata") == "sqlite:///shared.db"

    monkeypatch.setenv("REPORT_DATA_DB_URL", "postgresql://reports@db/sales")
    assert dbconnect.get_database_url("data") == "postgresql://reports@db/sales"


def test_default_url_is_local_sqlite(monkeypatch):
    for name in ("REPORT_DB_URL", "REPORT_METADATA_DB_URL"):
        monkeypatch.delenv(name, raising=False)
    assert dbconnect.get_database_url("metadata") == dbconnect.DEFAULT_DB_URL


def test_raw_connections_come_from_a_cached_engine(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'nested' / 'data.db'}"
    monkeypatch.setenv("REPORT_DATA_DB_URL", url)
    try:
        conn = dbconnect.create_data_connection()
        try:
            assert detect_db_type(conn) == "SQLITE"
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            assert cursor.fetchall() == [(1,)]
            cursor.close()
        finally:
            conn.close()
        assert dbconnect.get_engine(url) is dbconnect.get_engine(url)
    finally:
        dbconnect.dispose_engines()
