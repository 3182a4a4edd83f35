from __future__ import annotations

from ..dag import Context
from ..db import CopyError
from ..io import read_csv_header
from ..logging import log
from ..sources import WCVP, WFO, Source

STAGING_TABLE = {WCVP: "wcvp_import", WFO: "wfo_import"}

# Name column of each staging table; populate segments over it.
NAME_COLUMN = {WCVP: "taxon_name", WFO: "scientific_name"}

class StagingError(Exception):
    """Cleaned input file missing, with unexpected columns or malformed rows."""
    pass

def import_source(ctx: Context, source: Source) -> int:
    """Truncate the source's staging table and stream its cleaned file into it."""
    path = ctx.cfg.resolve_data_path(source.clean_file)
    if not path.exists():
        raise StagingError(f"{source.key}: cleaned file not found: {path} (run the prepare step)")

    header = read_csv_header(path)
    if len(set(header)) != len(header):
        raise StagingError(f"{path}: duplicate columns in header")
    missing = [c for c in source.columns if c not in header]
    unexpected = [c for c in header if c not in source.columns]
    if missing or unexpected:
        raise StagingError(f"{path}: header mismatch (missing={missing}, unexpected={unexpected})")

    table = STAGING_TABLE[source.key]
    log().info(f"Streaming {path} into {table}")
    try:
        ctx.db.copy_csv(table, header, path)
    except CopyError as e:
        raise StagingError(str(e)) from e

    column = NAME_COLUMN[source.key]
    ctx.db.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table} ({column})")
    rows = ctx.db.scalar(f"SELECT COUNT(*) FROM {table}") or 0
    log().info(f"Loaded {rows:,} rows into {table}")
    return rows

def import_wcvp(ctx: Context) -> None:
    import_source(ctx, ctx.sources[WCVP])

def import_wfo(ctx: Context) -> None:
    import_source(ctx, ctx.sources[WFO])
