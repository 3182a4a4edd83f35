from __future__ import annotations

from ..dag import Context
from ..logging import log
from ..segments import run_segmented
from ..sources import WCVP, WFO, Source
from .common import TABLE
from .staging import NAME_COLUMN, STAGING_TABLE

REGISTER_SOURCE = """
INSERT INTO data_sources (id, name, version, url, trust_level)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (id) DO NOTHING
"""

POPULATE_WCVP = """
INSERT INTO app_taxa (
    wcvp_id, ipni_id, powo_id, parent_plant_name_id, accepted_plant_name_id,
    taxon_name, taxon_authors, taxon_rank, taxon_status,
    family, genus, species, infraspecies, infraspecific_rank,
    geographic_area, lifeform_description, climate_description, first_published,
    source_id
)
SELECT
    plant_name_id, ipni_id, powo_id, parent_plant_name_id, accepted_plant_name_id,
    taxon_name, taxon_authors, COALESCE(taxon_rank, 'Unranked'), taxon_status,
    family, genus, species, infraspecies, infraspecific_rank,
    geographic_area, lifeform_description, climate_description, first_published,
    ?
FROM wcvp_import
WHERE plant_name_id IS NOT NULL AND taxon_name IS NOT NULL AND {segment}
ON CONFLICT (wcvp_id) DO NOTHING
"""

# The backbone repeats names (accepted and synonym usages of the same
# name/rank); exactly one row per (name, rank) is kept, Accepted first.
POPULATE_WFO = """
INSERT INTO app_taxa (
    wfo_id, wfo_parent_id, wfo_accepted_id,
    taxon_name, taxon_authors, taxon_rank, taxon_status,
    kingdom, phylum, class, "order", family,
    genus, species, infraspecies,
    source_id
)
SELECT
    taxon_id, parent_name_usage_id, accepted_name_usage_id,
    scientific_name, scientific_name_authorship, norm_rank, taxonomic_status,
    CASE WHEN norm_rank = 'Kingdom' THEN scientific_name END,
    CASE WHEN norm_rank = 'Phylum' THEN scientific_name END,
    CASE WHEN norm_rank = 'Class' THEN scientific_name END,
    CASE WHEN norm_rank = 'Order' THEN scientific_name END,
    COALESCE(family, CASE WHEN norm_rank = 'Family' THEN scientific_name END),
    genus, specific_epithet, infraspecific_epithet,
    ?
FROM (
    SELECT w.*,
           ROW_NUMBER() OVER (
               PARTITION BY w.scientific_name, w.norm_rank
               ORDER BY CASE WHEN w.taxonomic_status = 'Accepted' THEN 0 ELSE 1 END, w.taxon_id
           ) AS rn
    FROM (
        SELECT taxon_id, scientific_name, taxonomic_status, parent_name_usage_id,
               accepted_name_usage_id, family, genus, specific_epithet,
               infraspecific_epithet, scientific_name_authorship,
               COALESCE(UPPER(SUBSTR(taxon_rank, 1, 1)) || LOWER(SUBSTR(taxon_rank, 2)), 'Unranked') AS norm_rank
        FROM wfo_import
        WHERE taxon_id IS NOT NULL AND scientific_name IS NOT NULL AND {segment}
    ) AS w
) AS ranked
WHERE rn = 1
ON CONFLICT (wfo_id) DO NOTHING
"""

def register_source(ctx: Context, source: Source) -> None:
    ctx.db.execute(REGISTER_SOURCE, (source.id, source.name, source.version, source.url, source.trust_level))

def populate_wcvp(ctx: Context) -> None:
    source = ctx.sources[WCVP]
    register_source(ctx, source)
    n = run_segmented(ctx.db, ctx.segments(STAGING_TABLE[WCVP], NAME_COLUMN[WCVP]), POPULATE_WCVP,
                      (source.id,), column="taxon_name", label="populate wcvp")
    log().info(f"Inserted {n:,} checklist rows into {TABLE}")

def populate_wfo(ctx: Context) -> None:
    source = ctx.sources[WFO]
    register_source(ctx, source)
    n = run_segmented(ctx.db, ctx.segments(STAGING_TABLE[WFO], NAME_COLUMN[WFO]), POPULATE_WFO,
                      (source.id,), column="scientific_name", label="populate wfo")
    log().info(f"Inserted {n:,} backbone rows into {TABLE}")
