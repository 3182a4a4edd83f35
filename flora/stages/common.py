"""Shared names and SQL fragments for statements over ``app_taxa``."""
from __future__ import annotations
from typing import List

from ..dag import Context
from ..sources import WCVP, WFO

TABLE = "app_taxa"

# Higher classification carried down from anchors; family is handled separately.
CLASSIFICATION = ["kingdom", "phylum", "class", '"order"']

# Ranks whose own name defines a classification literal.
RANK_LITERALS = [("Kingdom", "kingdom"), ("Phylum", "phylum"), ("Class", "class"),
                 ("Order", '"order"'), ("Family", "family")]

ANCHOR_RANK = "Family"

# One backbone Family row per family literal: Accepted first, then lowest id.
# Takes one parameter, the backbone source id.
ANCHORS = """
    SELECT id, family, kingdom, phylum, class, "order" FROM (
        SELECT id, family, kingdom, phylum, class, "order",
               ROW_NUMBER() OVER (
                   PARTITION BY family
                   ORDER BY CASE WHEN taxon_status = 'Accepted' THEN 0 ELSE 1 END, id
               ) AS rn
        FROM app_taxa
        WHERE source_id = ? AND taxon_rank = '""" + ANCHOR_RANK + """' AND family IS NOT NULL
    ) AS ranked_anchors
    WHERE rn = 1
"""

def fill_set(child: str, parent: str, cols: List[str]) -> str:
    return ", ".join(f"{c} = COALESCE({child}.{c}, {parent}.{c})" for c in cols)

def fill_needed(child: str, parent: str, cols: List[str]) -> str:
    return " OR ".join(f"({child}.{c} IS NULL AND {parent}.{c} IS NOT NULL)" for c in cols)

def take_set(child: str, parent: str, cols: List[str]) -> str:
    return ", ".join(f"{c} = COALESCE({parent}.{c}, {child}.{c})" for c in cols)

def take_needed(child: str, parent: str, cols: List[str]) -> str:
    return " OR ".join(f"({parent}.{c} IS NOT NULL AND COALESCE({child}.{c}, '') <> {parent}.{c})" for c in cols)

def wcvp_id(ctx: Context) -> int:
    return ctx.sources[WCVP].id

def wfo_id(ctx: Context) -> int:
    return ctx.sources[WFO].id
