import time

from flora.db import POSTGRES, SQLITE, LockHolder
from flora.watchdog import StallWatchdog

HOLDER = LockHolder(pid=4242, state="idle in transaction", mode="RowExclusiveLock",
                    granted=True, running_for="00:03:12", query="UPDATE app_taxa SET family = NULL")

class FakeStore:
    def __init__(self, dialect=POSTGRES, holders=None, fail=False):
        self.dialect = dialect
        self.holders = holders or []
        self.fail = fail
        self.inspected = []

    def inspect_locks(self, table):
        self.inspected.append(table)
        if self.fail:
            raise RuntimeError("side connection refused")
        return self.holders

def _wait_for(wd, n=1, timeout=2.0):
    deadline = time.monotonic() + timeout
    while len(wd.reports) < n and time.monotonic() < deadline:
        time.sleep(0.01)

def test_slow_statement_reports_lock_holders():
    store = FakeStore(holders=[HOLDER])
    wd = StallWatchdog(store, "app_taxa", threshold_s=0.05)
    with wd.watch("UPDATE app_taxa SET parent_id = 1"):
        _wait_for(wd)
    assert store.inspected == ["app_taxa"]
    assert wd.reports == [[HOLDER]]

def test_fast_statement_is_not_diagnosed():
    store = FakeStore(holders=[HOLDER])
    wd = StallWatchdog(store, "app_taxa", threshold_s=5.0)
    with wd.watch("SELECT 1"):
        pass
    time.sleep(0.05)
    assert store.inspected == []
    assert wd.reports == []

def test_sqlite_store_skips_inspection():
    store = FakeStore(dialect=SQLITE)
    wd = StallWatchdog(store, "app_taxa", threshold_s=0.05)
    with wd.watch("UPDATE app_taxa SET parent_id = 1"):
        _wait_for(wd)
    assert store.inspected == []
    assert wd.reports == [[]]

def test_failed_inspection_does_not_disturb_statement():
    store = FakeStore(fail=True)
    wd = StallWatchdog(store, "app_taxa", threshold_s=0.05)
    with wd.watch("UPDATE app_taxa SET parent_id = 1"):
        deadline = time.monotonic() + 2.0
        while not store.inspected and time.monotonic() < deadline:
            time.sleep(0.01)
    assert store.inspected == ["app_taxa"]
    assert wd.reports == []
