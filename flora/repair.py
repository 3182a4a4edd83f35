"""Post-build reconciliation of an existing ``app_taxa``.

Run after manual edits or a partial build. Every statement is watched by a
:class:`StallWatchdog` so a run that stops making progress says who is
holding it up.
"""
from __future__ import annotations
from typing import Callable, Dict

from .dag import Context
from .logging import log
from .segments import run_segmented
from .stages.common import CLASSIFICATION, RANK_LITERALS, TABLE, fill_needed, fill_set, take_needed, take_set
from .stages.counts import compute_counts
from .stages.paths import build_paths, clear_paths
from .stages.propagate import flow_literals, until_stable
from .watchdog import StallWatchdog

class RepairError(Exception):
    pass

SEED_LITERAL = """
UPDATE app_taxa
SET {column} = taxon_name
WHERE taxon_rank = ?
  AND COALESCE({column}, '') <> taxon_name
  AND {{segment}}
"""

# kingdom..order follow the parent; family is only filled when missing.
PROPAGATE_EDGES = f"""
UPDATE app_taxa AS c
SET {take_set("c", "p", CLASSIFICATION)}, {fill_set("c", "p", ["family"])}
FROM app_taxa AS p
WHERE c.parent_id = p.id
  AND ({take_needed("c", "p", CLASSIFICATION)} OR {fill_needed("c", "p", ["family"])})
  AND {{segment}}
"""

def seed_rank_literals(ctx: Context) -> int:
    segs = ctx.segments(TABLE)
    total = 0
    for rank, column in RANK_LITERALS:
        sql = SEED_LITERAL.format(column=column)
        n = run_segmented(ctx.db, segs, sql, (rank,), column="taxon_name", label=f"seed {rank}")
        log().info(f"Seeded {column} on {n:,} {rank} rows")
        total += n
    return total

def propagate_edges(ctx: Context) -> int:
    segs = ctx.segments(TABLE)
    return until_stable(
        "propagate along parents",
        lambda: run_segmented(ctx.db, segs, PROPAGATE_EDGES, column="c.taxon_name", label="propagate"),
        ctx.cfg.convergence_limit,
    )

def analyze(ctx: Context) -> None:
    log().info(f"Refreshing planner statistics for {TABLE}")
    ctx.db.execute(f"ANALYZE {TABLE}")

def repair_full(ctx: Context) -> None:
    seed_rank_literals(ctx)
    propagate_edges(ctx)
    flow_literals(ctx)
    compute_counts(ctx)
    analyze(ctx)

def repair_counts(ctx: Context) -> None:
    compute_counts(ctx)

def repair_paths(ctx: Context) -> None:
    clear_paths(ctx)
    build_paths(ctx)

MODES: Dict[str, Callable[[Context], None]] = {
    "full": repair_full,
    "counts": repair_counts,
    "paths": repair_paths,
}

def run_repair(ctx: Context, mode: str) -> None:
    if mode not in MODES:
        raise RepairError(f"unknown repair mode: {mode} (expected one of {', '.join(MODES)})")
    watchdog = StallWatchdog(ctx.db, TABLE, ctx.cfg.watchdog_s)
    previous, ctx.db.watchdog = ctx.db.watchdog, watchdog
    log().info(f"Starting {mode} repair on {ctx.db.describe()}")
    try:
        MODES[mode](ctx)
    finally:
        ctx.db.watchdog = previous
    log().info(f"Repair '{mode}' finished")
