from __future__ import annotations

from ..dag import Context
from ..logging import log
from ..segments import run_segmented
from .common import TABLE

# Immediate children only. The column name predates this and the app reads it as is.
COMPUTE_COUNTS = """
UPDATE app_taxa
SET descendant_count = (SELECT COUNT(*) FROM app_taxa AS c WHERE c.parent_id = app_taxa.id)
WHERE descendant_count <> (SELECT COUNT(*) FROM app_taxa AS c WHERE c.parent_id = app_taxa.id)
  AND {segment}
"""

def compute_counts(ctx: Context) -> None:
    """Snapshot each row's child count; rerun whenever parentage changes."""
    n = run_segmented(ctx.db, ctx.segments(TABLE), COMPUTE_COUNTS, column="taxon_name", label="counts")
    log().info(f"Updated child counts on {n:,} rows")
