"""flora operator console.

Usage:
  flora run 4-9            # or: all, 12, 4,6,9, graft-roots
  flora steps
  flora repair full|counts|paths
  flora status | verify | segments
"""
from __future__ import annotations
import argparse, os, sys
from typing import List, Optional

from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from .config import DEFAULT_POOLER_HOST, BuildConfig, supabase_url
from .dag import Context, DagError, DagRunner, parse_selection
from .db import Database, DatabaseError
from .logging import console, log, set_verbosity
from .repair import run_repair
from .segments import SegmentPlanner, describe
from .sources import SourcesError, load_sources
from .stages.catalogue import load_default
from .stages.common import TABLE
from .status import dashboard, last_run, print_dashboard, print_last_run, verify

def _resolve_url(cfg: BuildConfig) -> None:
    if cfg.database_url:
        return
    console().print(Text("No connection string configured (FLORA_DATABASE_URL).", style="yellow"))
    project = os.environ.get("SUPABASE_PROJECT_ID") or Prompt.ask("Supabase project id")
    password = os.environ.get("DATABASE_PASSWORD") or Prompt.ask("Database password", password=True)
    host = os.environ.get("SUPABASE_POOLER_HOST", DEFAULT_POOLER_HOST)
    cfg.database_url = supabase_url(project, password, host)

def _context(cfg: BuildConfig, db: Database) -> Context:
    return Context(cfg=cfg, db=db, sources=load_sources(cfg.sources_path),
                   planner=SegmentPlanner(db, cfg.segments))

def print_steps() -> None:
    dag = load_default()
    table = Table(title="Build steps")
    table.add_column("#", justify="right")
    table.add_column("step")
    table.add_column("after")
    table.add_column("description")
    for s in dag.stages:
        table.add_row(s.id, s.name, ",".join(s.after) or "-", s.description)
    console().print(table)

def cmd_run(cfg: BuildConfig, selection: Optional[str]) -> int:
    dag = load_default()
    if not selection:
        print_steps()
        selection = Prompt.ask("Steps to run (e.g. 7, 4-9, 4,6,9 or all)", default="all")
    ids = parse_selection(selection, dag)
    _resolve_url(cfg)
    cfg.ensure_dirs()
    with Database.from_config(cfg) as db:
        summary = DagRunner(_context(cfg, db), dag).run(ids)
    return 0 if summary["success"] else 1

def cmd_repair(cfg: BuildConfig, mode: str) -> int:
    _resolve_url(cfg)
    with Database.from_config(cfg) as db:
        run_repair(_context(cfg, db), mode)
    return 0

def cmd_status(cfg: BuildConfig) -> int:
    _resolve_url(cfg)
    with Database.from_config(cfg) as db:
        print_dashboard(dashboard(db))
    print_last_run(last_run(cfg.build_root))
    return 0

def cmd_verify(cfg: BuildConfig) -> int:
    _resolve_url(cfg)
    with Database.from_config(cfg) as db:
        failures = verify(db)
    if failures:
        for msg in failures:
            console().print(Text(f"  ❌ {msg}", style="red bold"))
        return 1
    console().print(Text(f"✓ {TABLE} invariants hold", style="green bold"))
    return 0

def cmd_segments(cfg: BuildConfig) -> int:
    db = None
    if cfg.segments != "letters":
        _resolve_url(cfg)
        db = Database.from_config(cfg)
    try:
        segs = SegmentPlanner(db, cfg.segments).for_table(TABLE, "taxon_name")
    finally:
        if db is not None:
            db.close()
    table = Table(title=f"Segments ({cfg.segments})")
    for col in ("label", "start", "end"):
        table.add_column(col)
    for row in describe(segs):
        table.add_row(row["label"], repr(row["start"]), "∞" if row["end"] is None else repr(row["end"]))
    console().print(table)
    return 0

def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="flora", description="Bridge WCVP and WFO into app_taxa")
    sub = ap.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="Run build steps")
    run.add_argument("selection", nargs="?", help="Step id, name, list (4,6,9), range (4-9) or 'all'")
    run.add_argument("--verbose", action="store_true")

    steps = sub.add_parser("steps", help="List the step catalogue")
    steps.add_argument("--verbose", action="store_true")

    repair = sub.add_parser("repair", help="Reconcile an existing app_taxa")
    repair.add_argument("mode", choices=["full", "counts", "paths"])
    repair.add_argument("--verbose", action="store_true")

    for name, help_text in [("status", "Show the build dashboard"),
                            ("verify", "Check path and child-count invariants"),
                            ("segments", "Print the active segment plan")]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--verbose", action="store_true")

    args = ap.parse_args(argv)
    set_verbosity(args.verbose)
    cfg = BuildConfig.from_env()
    log().debug(f"Paths: {cfg.as_paths()}")

    try:
        if args.cmd == "run":
            rc = cmd_run(cfg, args.selection)
        elif args.cmd == "steps":
            print_steps()
            rc = 0
        elif args.cmd == "repair":
            rc = cmd_repair(cfg, args.mode)
        elif args.cmd == "status":
            rc = cmd_status(cfg)
        elif args.cmd == "verify":
            rc = cmd_verify(cfg)
        else:
            rc = cmd_segments(cfg)
    except (DagError, DatabaseError, SourcesError) as e:
        log().error(str(e))
        rc = 1
    except Exception as e:
        log().error(f"{args.cmd} failed: {e}")
        log().debug("failure", exc_info=True)
        rc = 1
    sys.exit(rc)

if __name__ == "__main__":
    main()
