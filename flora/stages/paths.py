from __future__ import annotations

from ..dag import Context
from ..logging import log
from ..segments import run_segmented
from .common import TABLE
from .propagate import until_stable

# Paths are dot-joined ids from the root down, e.g. "12.480.9031".
PATH_ROOTS = """
UPDATE app_taxa
SET hierarchy_path = CAST(id AS TEXT)
WHERE parent_id IS NULL
  AND hierarchy_path IS NULL
  AND {segment}
"""

PATH_LEVEL = """
UPDATE app_taxa AS c
SET hierarchy_path = p.hierarchy_path || '.' || CAST(c.id AS TEXT)
FROM app_taxa AS p
WHERE c.parent_id = p.id
  AND c.hierarchy_path IS NULL
  AND p.hierarchy_path IS NOT NULL
  AND {segment}
"""

CLEAR_PATHS = """
UPDATE app_taxa
SET hierarchy_path = NULL
WHERE hierarchy_path IS NOT NULL
  AND {segment}
"""

def build_paths(ctx: Context) -> None:
    """Assign paths level by level until a level assigns none."""
    segs = ctx.segments(TABLE)
    roots = run_segmented(ctx.db, segs, PATH_ROOTS, column="taxon_name", label="path roots")
    log().info(f"Level 1: {roots:,} roots")
    n = until_stable(
        "hierarchy paths",
        lambda: run_segmented(ctx.db, segs, PATH_LEVEL, column="c.taxon_name", label="path level"),
        ctx.cfg.convergence_limit,
    )
    log().info(f"Assigned {roots + n:,} hierarchy paths")

def clear_paths(ctx: Context) -> None:
    n = run_segmented(ctx.db, ctx.segments(TABLE), CLEAR_PATHS, column="taxon_name", label="clear paths")
    log().info(f"Cleared {n:,} hierarchy paths")
