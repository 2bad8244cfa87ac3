"""
Query Executor

Runs a compiled report query against the data store. Failures are fatal and
surface as ReportQueryError; the engine never retries. A timeout or a
cancellation Event interrupts the running statement through the driver.
"""
import threading
import time
from contextlib import suppress
from typing import Any, Callable, Dict, List, Optional, Sequence

from reportengine.database.dbconnect import create_data_connection
from reportengine.modules.common.db_table_utils import interrupt_connection
from reportengine.modules.logger import debug, error
from reportengine.modules.reports.report_errors import ReportCancelledError, ReportQueryError

WATCHDOG_POLL_SECONDS = 0.05


class _QueryWatchdog:
    """Interrupts a connection when the deadline passes or the cancel event fires."""

    def __init__(self, connection, timeout: Optional[float], cancel_event: Optional[threading.Event]):
        self.connection = connection
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.fired_reason: Optional[str] = None
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self):
        if self.timeout is None and self.cancel_event is None:
            return self
        self._thread = threading.Thread(target=self._watch, name="report-query-watchdog", daemon=True)
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._done.set()
        if self._thread is not None:
            self._thread.join()
        return False

    def _watch(self):
        deadline = time.monotonic() + self.timeout if self.timeout is not None else None
        while not self._done.wait(WATCHDOG_POLL_SECONDS):
            if self.cancel_event is not None and self.cancel_event.is_set():
                self._fire("cancelled")
                return
            if deadline is not None and time.monotonic() >= deadline:
                self._fire("timeout")
                return

    def _fire(self, reason: str):
        self.fired_reason = reason
        with suppress(Exception):
            interrupt_connection(self.connection)


def ensure_not_cancelled(cancel_event: Optional[threading.Event]):
    if cancel_event is not None and cancel_event.is_set():
        raise ReportCancelledError("Report request was cancelled before completion")


class QueryExecutor:
    """Executes SELECT statements and returns rows as dicts."""

    def __init__(self, connection_factory: Optional[Callable[[], Any]] = None):
        self.connection_factory = connection_factory or create_data_connection

    def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[Dict[str, Any]]:
        ensure_not_cancelled(cancel_event)

        connection = None
        cursor = None
        watchdog = None
        try:
            connection = self.connection_factory()
            cursor = connection.cursor()
            debug(f"[QueryExecutor] Executing report query with {len(params)} parameter(s)")
            with _QueryWatchdog(connection, timeout, cancel_event) as watchdog:
                if params:
                    cursor.execute(sql, tuple(params))
                else:
                    cursor.execute(sql)
                rows = cursor.fetchall()
            columns = [desc[0] for desc in (cursor.description or [])]
            return self._rows_to_dicts(columns, rows)
        except Exception as exc:
            reason = watchdog.fired_reason if watchdog is not None else None
            if reason == "timeout":
                raise ReportCancelledError(
                    f"Report query exceeded the {timeout:g}s timeout",
                    details={"timeoutSeconds": timeout},
                ) from exc
            if reason == "cancelled":
                raise ReportCancelledError() from exc
            error(f"[QueryExecutor] Report query failed: {exc}", exc_info=True)
            raise ReportQueryError("Failed to execute report query", details={"reason": str(exc)}) from exc
        finally:
            if cursor is not None:
                with suppress(Exception):
                    cursor.close()
            if connection is not None:
                with suppress(Exception):
                    connection.close()

    def _rows_to_dicts(self, columns: List[str], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
        dataset = []
        for row in rows:
            entry = {}
            for idx, column in enumerate(columns):
                entry[column] = row[idx]
            dataset.append(entry)
        return dataset
