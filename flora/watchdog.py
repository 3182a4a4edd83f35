from __future__ import annotations
import threading, time
from contextlib import contextmanager
from typing import List

from .db import SQLITE, LockHolder
from .logging import log

def _first_line(sql: str, width: int = 120) -> str:
    text = " ".join(sql.split())
    return text if len(text) <= width else text[: width - 3] + "..."

class StallWatchdog:
    """Logs who holds locks on ``table`` when a statement runs past ``threshold_s``.

    Observational only: the watched statement is never cancelled or altered.
    """

    def __init__(self, db, table: str, threshold_s: float = 20.0):
        self.db = db
        self.table = table
        self.threshold_s = threshold_s
        self.reports: List[List[LockHolder]] = []

    @contextmanager
    def watch(self, statement: str):
        timer = threading.Timer(self.threshold_s, self._diagnose, args=(statement, time.monotonic()))
        timer.daemon = True
        timer.start()
        try:
            yield
        finally:
            timer.cancel()

    def _diagnose(self, statement: str, started: float) -> None:
        elapsed = time.monotonic() - started
        log().warning(f"Statement still running after {elapsed:.0f}s: {_first_line(statement)}")
        if self.db.dialect == SQLITE:
            log().warning("Lock inspection is not available for SQLite stores")
            self.reports.append([])
            return
        try:
            holders = self.db.inspect_locks(self.table)
        except Exception as e:
            # the diagnostic must never disturb the statement it is watching
            log().warning(f"Lock inspection on {self.table} failed: {e}")
            return
        self.reports.append(holders)
        if not holders:
            log().warning(f"No other session holds locks on {self.table}")
        for h in holders:
            log().warning(
                f"  pid={h.pid} state={h.state} mode={h.mode} granted={h.granted} "
                f"running_for={h.running_for} query={_first_line(h.query or '')}"
            )
