"""Classification literals: within-backbone propagation and flow from Family anchors."""
from __future__ import annotations
from typing import Callable

from ..dag import Context
from ..logging import log
from ..segments import run_segmented
from .common import ANCHORS, CLASSIFICATION, TABLE, fill_needed, fill_set, take_needed, take_set, wfo_id

class ConvergenceError(Exception):
    """A propagate-until-stable loop was still changing rows at its pass limit."""
    pass

def until_stable(label: str, one_pass: Callable[[], int], limit: int) -> int:
    """Repeat ``one_pass`` until it updates no rows; returns the total rows updated."""
    total = 0
    for n in range(1, limit + 1):
        changed = one_pass()
        total += changed
        log().info(f"{label}: pass {n} updated {changed:,} rows")
        if changed == 0:
            return total
    raise ConvergenceError(f"{label} still changing after {limit} passes")

_WFO_LITERALS = CLASSIFICATION + ["family"]

PROPAGATE_WFO = f"""
UPDATE app_taxa AS c
SET {fill_set("c", "p", _WFO_LITERALS)}
FROM app_taxa AS p
WHERE c.parent_id = p.id
  AND c.source_id = ? AND p.source_id = ?
  AND ({fill_needed("c", "p", _WFO_LITERALS)})
  AND {{segment}}
"""

FLOW_LITERALS = f"""
UPDATE app_taxa AS c
SET {take_set("c", "a", CLASSIFICATION)}
FROM ({ANCHORS}) AS a
WHERE COALESCE(c.source_id, 0) <> ?
  AND c.family = a.family
  AND ({take_needed("c", "a", CLASSIFICATION)})
  AND {{segment}}
"""

def propagate_wfo_literals(ctx: Context) -> int:
    """Fill missing backbone literals from resolved parents until nothing changes."""
    segs = ctx.segments(TABLE)
    src = wfo_id(ctx)
    return until_stable(
        "propagate backbone literals",
        lambda: run_segmented(ctx.db, segs, PROPAGATE_WFO, (src, src), column="c.taxon_name",
                              label="propagate wfo"),
        ctx.cfg.convergence_limit,
    )

def flow_literals(ctx: Context) -> None:
    """Copy kingdom..order from each Family anchor to checklist rows of the same family.

    Matched on the family literal, not on parent_id, so rows are reached no
    matter how they were attached.
    """
    src = wfo_id(ctx)
    n = run_segmented(ctx.db, ctx.segments(TABLE), FLOW_LITERALS, (src, src), column="c.taxon_name",
                      label="flow literals")
    log().info(f"Classification literals updated on {n:,} rows")
