"""Build dashboard and invariant checks over ``app_taxa``."""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.table import Table
from rich.text import Text

from .io import read_json
from .logging import console

ROOT_RANKS = ("Kingdom",)

DASHBOARD = {
    "total": "SELECT COUNT(*) FROM app_taxa",
    "roots": "SELECT COUNT(*) FROM app_taxa WHERE parent_id IS NULL",
    "orphaned": "SELECT COUNT(*) FROM app_taxa WHERE parent_id IS NULL AND taxon_rank NOT IN ({ranks})",
    "paths_built": "SELECT COUNT(*) FROM app_taxa WHERE hierarchy_path IS NOT NULL",
    "missing_paths": "SELECT COUNT(*) FROM app_taxa WHERE hierarchy_path IS NULL",
}

# Each check counts rows that break it.
CHECKS = {
    "root paths are the root id": """
        SELECT COUNT(*) FROM app_taxa
        WHERE parent_id IS NULL AND hierarchy_path IS NOT NULL
          AND hierarchy_path <> CAST(id AS TEXT)
    """,
    "child path extends parent path": """
        SELECT COUNT(*) FROM app_taxa AS c
        JOIN app_taxa AS p ON p.id = c.parent_id
        WHERE c.hierarchy_path IS NOT NULL
          AND (p.hierarchy_path IS NULL
               OR c.hierarchy_path <> p.hierarchy_path || '.' || CAST(c.id AS TEXT))
    """,
    "child count matches children": """
        SELECT COUNT(*) FROM app_taxa AS t
        WHERE t.descendant_count <> (SELECT COUNT(*) FROM app_taxa AS c WHERE c.parent_id = t.id)
    """,
    "no row is its own parent": "SELECT COUNT(*) FROM app_taxa WHERE parent_id = id",
}

def dashboard(db) -> Dict[str, int]:
    ranks = ", ".join("?" for _ in ROOT_RANKS)
    out: Dict[str, int] = {}
    for key, sql in DASHBOARD.items():
        params = ROOT_RANKS if "{ranks}" in sql else ()
        out[key] = db.scalar(sql.format(ranks=ranks), params) or 0
    return out

def verify(db) -> List[str]:
    """Violated checks, each with the number of offending rows; empty when all hold."""
    failures: List[str] = []
    for name, sql in CHECKS.items():
        bad = db.scalar(sql) or 0
        if bad:
            failures.append(f"{name}: {bad:,} rows")
    return failures

def print_dashboard(stats: Dict[str, int]) -> None:
    table = Table(title="app_taxa build status")
    table.add_column("metric")
    table.add_column("rows", justify="right")
    for key, value in stats.items():
        table.add_row(key.replace("_", " "), f"{value:,}")
    console().print(table)

def last_run(build_root: Path) -> Optional[Dict[str, Any]]:
    """The report of the most recent ``flora run``, if any."""
    path = Path(build_root) / "report" / "run.json"
    return read_json(path) if path.exists() else None

def print_last_run(report: Optional[Dict[str, Any]]) -> None:
    if report is None:
        console().print(Text("No run report yet", style="yellow"))
        return
    steps = ", ".join(f"{s['id']}:{s['status']}" for s in report["stages"])
    style = "green" if report["success"] else "red bold"
    console().print(Text(f"Last run: {'ok' if report['success'] else 'failed'} in {report['duration_s']}s ({steps})",
                         style=style))
