"""The fixed step catalogue and its dependency edges."""
from __future__ import annotations

from ..dag import Dag, Stage
from . import counts, link, paths, populate, prepare, propagate, schema, staging

def load_default() -> Dag:
    stages = [
        Stage("1", "prepare-wcvp", "Convert raw WCVP export to a clean CSV", [], prepare.prepare_wcvp),
        Stage("2", "prepare-wfo", "Convert raw WFO backbone to a clean CSV", [], prepare.prepare_wfo),
        Stage("3", "reset-schema", "Drop and recreate staging and canonical tables", [], schema.reset_schema),
        Stage("4", "import-wcvp", "Bulk-load WCVP into wcvp_import", ["1", "3"], staging.import_wcvp),
        Stage("5", "import-wfo", "Bulk-load WFO into wfo_import", ["2", "3"], staging.import_wfo),
        Stage("6", "populate-wcvp", "Insert WCVP names into app_taxa", ["4"], populate.populate_wcvp),
        Stage("7", "populate-wfo", "Insert de-duplicated WFO names into app_taxa", ["5"], populate.populate_wfo),
        Stage("8", "build-structural-indexes", "Index natural keys for linking", ["6", "7"],
              schema.build_structural_indexes),
        Stage("9", "link-wcvp-parents", "Resolve WCVP parent ids", ["8"], link.link_wcvp_parents),
        Stage("10", "resolve-wfo-hierarchy", "Resolve WFO parents and propagate literals", ["8"],
              link.resolve_wfo_hierarchy),
        Stage("11", "graft-roots", "Attach WCVP roots under WFO families", ["9", "10"], link.graft_roots),
        Stage("12", "dereference-synonyms", "Move children off synonym parents", ["11"],
              link.dereference_synonyms),
        Stage("13", "flow-literals", "Copy kingdom..order from family anchors", ["12"], propagate.flow_literals),
        Stage("14", "build-paths", "Materialize hierarchy paths", ["12"], paths.build_paths),
        Stage("15", "compute-counts", "Count immediate children", ["12"], counts.compute_counts),
        Stage("16", "optimize-indexes", "Swap build indexes for serving indexes", ["13", "14", "15"],
              schema.optimize_indexes),
    ]
    return Dag(stages)
