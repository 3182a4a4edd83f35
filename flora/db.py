"""Single-connection access to the taxonomy store.

One connection is opened lazily and probed before each use; a failed probe
reconnects. Every statement goes through ``retrying``: a transient error
discards the connection and the statement is retried after ``backoff_s *
attempt`` seconds, up to ``retries`` attempts, after which the original
error is re-raised. Transient means a psycopg connection error, or a busy or
locked SQLite database; anything else is raised at once. Statements
auto-commit individually.

SQL is written with ``?`` placeholders. The Postgres dialect (psycopg)
rewrites them to ``%s``; the SQLite dialect uses them as-is.
"""
from __future__ import annotations
import csv, sqlite3, time
from contextlib import nullcontext, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import psycopg
from psycopg.rows import dict_row

from .logging import log

POSTGRES = "postgres"
SQLITE = "sqlite"

T = TypeVar("T")

_SQLITE_BATCH = 5000
# SQLITE_BUSY, SQLITE_LOCKED; every other OperationalError is permanent
_SQLITE_RETRYABLE = (5, 6)
_COPY_BLOCK = 1 << 20

LOCKS_SQL = """
SELECT l.pid, a.state, l.mode, l.granted,
       (now() - a.query_start)::text AS running_for,
       left(a.query, 200) AS query
FROM pg_locks AS l
JOIN pg_stat_activity AS a ON a.pid = l.pid
WHERE l.relation = to_regclass(?)
  AND l.pid <> ?
ORDER BY a.query_start
"""

class DatabaseError(Exception):
    """Database configuration or operation error."""
    pass

class CopyError(DatabaseError):
    """A bulk-load input file is missing columns or has malformed rows."""
    pass

@dataclass
class LockHolder:
    pid: int
    state: Optional[str]
    mode: str
    granted: bool
    running_for: Optional[str]
    query: Optional[str]

def dialect_of(url: str) -> str:
    if url.startswith("sqlite:"):
        return SQLITE
    if url.startswith(("postgres://", "postgresql://")):
        return POSTGRES
    raise DatabaseError(f"unsupported database url: {url.split('@')[-1]}")

class Database:
    def __init__(self, url: str, *, retries: int = 3, backoff_s: float = 2.0,
                 statement_timeout_off: bool = True,
                 sleep: Callable[[float], None] = time.sleep):
        self.url = url
        self.dialect = dialect_of(url)
        self.retries = max(1, retries)
        self.backoff_s = backoff_s
        self.statement_timeout_off = statement_timeout_off
        self.watchdog = None
        self._sleep = sleep
        self._con: Any = None
        self._backend_pid: Optional[int] = None

    @staticmethod
    def from_config(cfg) -> "Database":
        if not cfg.database_url:
            raise DatabaseError("no database url configured (set FLORA_DATABASE_URL)")
        return Database(
            cfg.database_url,
            retries=cfg.retries,
            backoff_s=cfg.retry_backoff_s,
            statement_timeout_off=cfg.statement_timeout_off,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # -- connection management -------------------------------------------

    @property
    def transient_errors(self) -> tuple:
        if self.dialect == POSTGRES:
            return (psycopg.OperationalError, psycopg.InterfaceError)
        return (sqlite3.OperationalError,)

    def is_transient(self, e: BaseException) -> bool:
        if not isinstance(e, self.transient_errors):
            return False
        if self.dialect == POSTGRES:
            return True
        code = getattr(e, "sqlite_errorcode", None)
        if code is not None:
            return (code & 0xFF) in _SQLITE_RETRYABLE
        msg = str(e).lower()
        return "locked" in msg or "busy" in msg

    @property
    def _driver_error(self) -> type:
        return psycopg.Error if self.dialect == POSTGRES else sqlite3.Error

    def describe(self) -> str:
        """Connection target without credentials."""
        if self.dialect == SQLITE:
            return self.url
        return self.url.split("@")[-1]

    def _sqlite_path(self) -> str:
        return self.url.split("sqlite:///", 1)[1] if "sqlite:///" in self.url else ":memory:"

    def _connect(self):
        if self.dialect == SQLITE:
            con = sqlite3.connect(self._sqlite_path(), isolation_level=None)
            con.row_factory = sqlite3.Row
            con.execute("PRAGMA busy_timeout=5000")
        else:
            # session-level SET below needs a session-mode endpoint; see config.supabase_url
            con = psycopg.connect(self.url, autocommit=True, prepare_threshold=None, row_factory=dict_row)
            if self.statement_timeout_off:
                con.execute("SET statement_timeout = 0")
            self._backend_pid = con.info.backend_pid
        log().debug(f"Connected to {self.describe()}")
        return con

    def _discard(self) -> None:
        if self._con is not None:
            with suppress(self._driver_error):
                self._con.close()
        self._con = None

    def connection(self):
        """Live connection; probes the cached one and reconnects when the probe fails."""
        if self._con is not None:
            try:
                self._con.execute("SELECT 1").fetchone()
                return self._con
            except self._driver_error as e:
                log().warning(f"Connection probe failed ({e}); reconnecting")
                self._discard()
        self._con = self._connect()
        return self._con

    def close(self) -> None:
        if self._con is not None:
            self._discard()
            log().debug("Database connection closed")

    # -- statements ---------------------------------------------------------

    def _sql(self, sql: str) -> str:
        return sql.replace("?", "%s") if self.dialect == POSTGRES else sql

    def retrying(self, fn: Callable[[Any], T], what: str = "statement") -> T:
        """Run ``fn(connection)`` with bounded retries and linear backoff."""
        for attempt in range(1, self.retries + 1):
            try:
                return fn(self.connection())
            except self.transient_errors as e:
                if not self.is_transient(e):
                    raise
                self._discard()
                if attempt >= self.retries:
                    log().error(f"{what} failed after {attempt} attempts: {e}")
                    raise
                wait = self.backoff_s * attempt
                log().warning(f"{what} failed (attempt {attempt}/{self.retries}): {e}; retrying in {wait:.0f}s")
                self._sleep(wait)
        raise AssertionError("unreachable")

    def _run(self, con, sql: str, params: Sequence[Any]):
        return con.execute(sql, tuple(params)) if params else con.execute(sql)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute one mutating statement; returns the affected row count."""
        sql = self._sql(sql)
        def _do(con) -> int:
            with self._watch(sql):
                return self._run(con, sql, params).rowcount
        return self.retrying(_do)

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        sql = self._sql(sql)
        def _do(con) -> List[Dict[str, Any]]:
            return [dict(r) for r in self._run(con, sql, params).fetchall()]
        return self.retrying(_do, what="query")

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        rows = self.query(sql, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    def execute_script(self, script: str) -> None:
        """Apply a multi-statement DDL script verbatim."""
        def _do(con) -> None:
            with self._watch(script):
                if self.dialect == SQLITE:
                    con.executescript(script)
                else:
                    con.execute(script)
        self.retrying(_do, what="script")

    def _watch(self, sql: str):
        return self.watchdog.watch(sql) if self.watchdog is not None else nullcontext()

    # -- bulk load ----------------------------------------------------------

    def copy_csv(self, table: str, columns: List[str], path: Path) -> None:
        """Empty ``table`` and stream ``path`` (CSV with header) into it.

        The whole truncate-and-load is one retry unit, so a retried attempt
        starts again from an empty table.
        """
        def _do(con) -> None:
            if self.dialect == POSTGRES:
                self._copy_postgres(con, table, columns, path)
            else:
                self._copy_sqlite(con, table, columns, path)
        self.retrying(_do, what=f"load {table}")

    def _copy_postgres(self, con, table: str, columns: List[str], path: Path) -> None:
        cols = ", ".join(columns)
        con.execute(f"TRUNCATE {table}")
        try:
            with con.cursor() as cur:
                with cur.copy(f"COPY {table} ({cols}) FROM STDIN WITH (FORMAT csv, HEADER true)") as copy:
                    with Path(path).open("rb") as f:
                        for block in iter(lambda: f.read(_COPY_BLOCK), b""):
                            copy.write(block)
        except psycopg.DataError as e:
            raise CopyError(f"{path}: {e}") from e

    def _copy_sqlite(self, con, table: str, columns: List[str], path: Path) -> None:
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})"
        width = len(columns)
        con.execute("BEGIN")
        try:
            con.execute(f"DELETE FROM {table}")
            with Path(path).open("r", encoding="utf-8-sig", newline="") as f:
                reader = csv.reader(f)
                next(reader, None)
                batch: List[tuple] = []
                for row in reader:
                    if len(row) != width:
                        raise CopyError(f"{path}:{reader.line_num}: expected {width} fields, got {len(row)}")
                    batch.append(tuple(v if v != "" else None for v in row))
                    if len(batch) >= _SQLITE_BATCH:
                        con.executemany(sql, batch)
                        batch = []
                if batch:
                    con.executemany(sql, batch)
        except BaseException:
            con.execute("ROLLBACK")
            raise
        con.execute("COMMIT")

    # -- diagnostics --------------------------------------------------------

    def inspect_locks(self, table: str) -> List[LockHolder]:
        """Sessions other than ours holding or awaiting locks on ``table``.

        Runs on a separate short-lived connection because the main one is
        busy with the statement being diagnosed. SQLite has no lock table.
        """
        if self.dialect == SQLITE:
            return []
        with psycopg.connect(self.url, autocommit=True, prepare_threshold=None, row_factory=dict_row) as side:
            rows = side.execute(self._sql(LOCKS_SQL), (table, self._backend_pid or 0)).fetchall()
        return [LockHolder(**r) for r in rows]
