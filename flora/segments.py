"""Half-open name-range segments that bound the cost of full-table statements.

A segmented statement is a template with a ``{segment}`` placeholder that
appears after every other ``?`` placeholder, so the segment's bound
parameters can be appended to the statement's own. Each statement must
also restrict itself to rows it has not yet resolved, which makes a
re-run of an already-completed segment a no-op.
"""
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .logging import log

@dataclass(frozen=True)
class Segment:
    label: str
    start: str
    end: Optional[str] = None  # None: unbounded above

    def clause(self, column: str) -> Tuple[str, Tuple[str, ...]]:
        if self.end is None:
            return f"{column} >= ?", (self.start,)
        return f"({column} >= ? AND {column} < ?)", (self.start, self.end)

def _letters() -> List[Segment]:
    # Everything below "B" (digits, punctuation, "A...") lands in the first
    # bucket and everything from "Z" up (lowercase, "×" hybrids) in the last.
    bounds = [""] + [chr(c) for c in range(ord("B"), ord("Z") + 1)]
    s = bounds.index("S")
    bounds.insert(s + 1, "Sh")  # S is the heaviest initial in both backbones
    segs: List[Segment] = []
    for i, start in enumerate(bounds):
        end = bounds[i + 1] if i + 1 < len(bounds) else None
        label = "A" if start == "" else start
        if start == "S":
            label = "S-Sg"
        elif start == "Sh":
            label = "Sh-Sz"
        segs.append(Segment(label, start, end))
    return segs

LETTER_SEGMENTS: List[Segment] = _letters()

def segments_from_bounds(bounds: Sequence[str]) -> List[Segment]:
    """Segments covering the whole keyspace split at the given sorted, distinct bounds."""
    starts = [""] + [b for b in bounds if b != ""]
    segs: List[Segment] = []
    for i, start in enumerate(starts):
        end = starts[i + 1] if i + 1 < len(starts) else None
        segs.append(Segment(f"{i + 1:02d}:{start[:12] or '^'}", start, end))
    return segs

def quantile_segments(db, table: str, column: str, buckets: int) -> List[Segment]:
    """Split ``table.column`` into ``buckets`` roughly equal ranges by sampling its sort order."""
    total = db.scalar(f"SELECT COUNT(*) FROM {table} WHERE {column} IS NOT NULL") or 0
    if buckets <= 1 or total < buckets:
        return segments_from_bounds([])
    bounds: List[str] = []
    for k in range(1, buckets):
        value = db.scalar(
            f"SELECT {column} FROM {table} WHERE {column} IS NOT NULL ORDER BY {column} LIMIT 1 OFFSET ?",
            (total * k // buckets,),
        )
        if value is not None and (not bounds or value > bounds[-1]):
            bounds.append(value)
    return segments_from_bounds(bounds)

class SegmentPlanner:
    """Chooses the segment table for a step according to ``strategy``.

    ``letters`` uses the static alphabetic table; ``quantile:<n>`` samples the
    target table's name column into ``n`` buckets at the start of each step.
    """

    def __init__(self, db, strategy: str = "letters"):
        self.db = db
        self.strategy = strategy
        if strategy != "letters" and not strategy.startswith("quantile:"):
            raise ValueError(f"unknown segment strategy: {strategy}")

    def for_table(self, table: str, column: str) -> List[Segment]:
        if self.strategy == "letters":
            return list(LETTER_SEGMENTS)
        buckets = int(self.strategy.split(":", 1)[1])
        segs = quantile_segments(self.db, table, column, buckets)
        log().debug(f"Planned {len(segs)} quantile segments over {table}.{column}")
        return segs

def run_segmented(db, segments: Sequence[Segment], sql: str, params: Sequence[Any] = (),
                  *, column: str, label: str = "") -> int:
    """Run ``sql`` once per segment, restricted by ``column``; returns total rows affected."""
    total = 0
    for seg in segments:
        clause, seg_params = seg.clause(column)
        t0 = time.time()
        n = db.execute(sql.format(segment=clause), (*params, *seg_params))
        total += max(n, 0)
        log().debug(f"  {label} ({seg.label}) {max(n, 0):,} rows in {(time.time() - t0) * 1000:.0f}ms")
    return total

def describe(segments: Sequence[Segment]) -> List[Dict[str, Optional[str]]]:
    return [{"label": s.label, "start": s.start, "end": s.end} for s in segments]
