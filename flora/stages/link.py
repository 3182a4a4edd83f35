"""Parent resolution: within each source, across sources, and away from synonyms."""
from __future__ import annotations

from ..dag import Context
from ..logging import log
from ..segments import run_segmented
from .common import ANCHORS, TABLE, wcvp_id, wfo_id
from .propagate import propagate_wfo_literals

LINK_WCVP = """
UPDATE app_taxa AS c
SET parent_id = p.id
FROM app_taxa AS p
WHERE c.parent_id IS NULL
  AND c.parent_plant_name_id IS NOT NULL
  AND p.wcvp_id = c.parent_plant_name_id
  AND {segment}
"""

LINK_WFO = """
UPDATE app_taxa AS c
SET parent_id = p.id
FROM app_taxa AS p
WHERE c.parent_id IS NULL
  AND c.wfo_parent_id IS NOT NULL
  AND p.wfo_id = c.wfo_parent_id
  AND c.id <> p.id
  AND {segment}
"""

GRAFT_ROOTS = """
UPDATE app_taxa AS c
SET parent_id = a.id, family = a.family
FROM (""" + ANCHORS + """) AS a
WHERE c.parent_id IS NULL
  AND c.source_id = ?
  AND c.family = a.family
  AND c.id <> a.id
  AND {segment}
"""

# {parent_key}/{accepted_key}: the synonym's pointer and the column it points at.
_DEREFERENCE = """
UPDATE app_taxa AS c
SET parent_id = a.id, family = COALESCE(a.family, c.family)
FROM app_taxa AS p, app_taxa AS a
WHERE c.parent_id = p.id
  AND p.taxon_status = 'Synonym'
  AND p.{parent_key} IS NOT NULL
  AND a.{accepted_key} = p.{parent_key}
  AND COALESCE(a.taxon_status, '') <> 'Synonym'
  AND a.id <> p.id
  AND a.id <> c.id
  AND {{segment}}
"""

DEREFERENCE_WFO = _DEREFERENCE.format(parent_key="wfo_accepted_id", accepted_key="wfo_id")
DEREFERENCE_WCVP = _DEREFERENCE.format(parent_key="accepted_plant_name_id", accepted_key="wcvp_id")

def link_wcvp_parents(ctx: Context) -> None:
    n = run_segmented(ctx.db, ctx.segments(TABLE), LINK_WCVP, column="c.taxon_name", label="link wcvp")
    log().info(f"Linked {n:,} checklist rows to their parents")

def resolve_wfo_hierarchy(ctx: Context) -> None:
    n = run_segmented(ctx.db, ctx.segments(TABLE), LINK_WFO, column="c.taxon_name", label="link wfo")
    log().info(f"Linked {n:,} backbone rows to their parents")
    propagate_wfo_literals(ctx)

def graft_roots(ctx: Context) -> None:
    """Attach unparented checklist roots under the backbone Family of the same name."""
    n = run_segmented(ctx.db, ctx.segments(TABLE), GRAFT_ROOTS, (wfo_id(ctx), wcvp_id(ctx)),
                      column="c.taxon_name", label="graft roots")
    log().info(f"Grafted {n:,} checklist roots onto backbone families")

def dereference_synonyms(ctx: Context) -> None:
    """Move children of synonym parents under the synonym's accepted name."""
    segs = ctx.segments(TABLE)
    n = run_segmented(ctx.db, segs, DEREFERENCE_WFO, column="c.taxon_name", label="dereference wfo")
    n += run_segmented(ctx.db, segs, DEREFERENCE_WCVP, column="c.taxon_name", label="dereference wcvp")
    log().info(f"Redirected {n:,} children from synonyms to accepted names")
