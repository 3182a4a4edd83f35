"""Pytest fixtures: a file-backed SQLite store and cleaned input files under tmp_path."""
import csv
from pathlib import Path

import pytest

from flora.config import PACKAGE_DIR, BuildConfig
from flora.dag import Context, DagRunner, parse_selection
from flora.db import Database
from flora.segments import SegmentPlanner
from flora.sources import load_sources
from flora.stages.catalogue import load_default

# Family -> Genus -> Species, linked by checklist ids.
WCVP_ROWS = [
    {"plant_name_id": "100", "taxon_rank": "Family", "taxon_status": "Accepted",
     "family": "Rosaceae", "taxon_name": "Rosaceae"},
    {"plant_name_id": "101", "taxon_rank": "Genus", "taxon_status": "Accepted",
     "family": "Rosaceae", "genus": "Rosa", "taxon_name": "Rosa", "parent_plant_name_id": "100"},
    {"plant_name_id": "102", "taxon_rank": "Species", "taxon_status": "Accepted",
     "family": "Rosaceae", "genus": "Rosa", "species": "canina", "taxon_name": "Rosa canina",
     "taxon_authors": "L.", "parent_plant_name_id": "101"},
]

# Kingdom -> Family, linked by backbone ids.
WFO_ROWS = [
    {"taxon_id": "wfo-9000000001", "scientific_name": "Plantae", "taxon_rank": "kingdom",
     "taxonomic_status": "Accepted"},
    {"taxon_id": "wfo-7000000535", "scientific_name": "Rosaceae", "taxon_rank": "family",
     "taxonomic_status": "Accepted", "parent_name_usage_id": "wfo-9000000001", "family": "Rosaceae"},
]

@pytest.fixture
def cfg(tmp_path):
    c = BuildConfig(
        build_root=tmp_path / "build",
        data_dir=tmp_path / "data",
        schema_dir=PACKAGE_DIR / "sql",
        sources_path=PACKAGE_DIR / "sources.yaml",
        database_url=f"sqlite:///{tmp_path / 'flora.db'}",
        retry_backoff_s=0.0,
    )
    c.ensure_dirs()
    return c

@pytest.fixture
def db(cfg):
    database = Database(cfg.database_url, retries=cfg.retries, backoff_s=0.0, sleep=lambda s: None)
    yield database
    database.close()

@pytest.fixture
def ctx(cfg, db):
    return Context(cfg=cfg, db=db, sources=load_sources(cfg.sources_path),
                   planner=SegmentPlanner(db, cfg.segments))

@pytest.fixture
def write_clean(ctx):
    """Write rows (dicts keyed by column) as the cleaned CSV of a source."""
    def _write(key, rows, columns=None):
        source = ctx.sources[key]
        columns = columns or source.columns
        path = ctx.cfg.resolve_data_path(source.clean_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as f:
            w = csv.writer(f)
            w.writerow(columns)
            for row in rows:
                w.writerow([row.get(c, "") for c in columns])
        return path
    return _write

@pytest.fixture
def seeded(write_clean):
    write_clean("wcvp", WCVP_ROWS)
    write_clean("wfo", WFO_ROWS)

@pytest.fixture
def build(ctx):
    """Run a step selection against the test store; fails the test if a step fails."""
    dag = load_default()
    def _build(selection="all"):
        summary = DagRunner(ctx, dag).run(parse_selection(selection, dag))
        assert summary["success"], summary
        return summary
    return _build

@pytest.fixture
def taxon(db):
    """Look up one app_taxa row by name and source key."""
    def _taxon(name, source="wcvp"):
        rows = db.query(
            "SELECT * FROM app_taxa WHERE taxon_name = ? AND source_id = ?",
            (name, 1 if source == "wcvp" else 2),
        )
        assert len(rows) == 1, rows
        return rows[0]
    return _taxon
