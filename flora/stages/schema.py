from __future__ import annotations
from pathlib import Path

from ..dag import Context
from ..logging import log

def ddl_path(ctx: Context, name: str) -> Path:
    return ctx.cfg.schema_dir / ctx.db.dialect / name

def apply_ddl(ctx: Context, name: str) -> None:
    path = ddl_path(ctx, name)
    if not path.exists():
        raise FileNotFoundError(f"DDL asset not found: {path}")
    log().info(f"Applying {path}")
    ctx.db.execute_script(path.read_text(encoding="utf-8"))

def reset_schema(ctx: Context) -> None:
    apply_ddl(ctx, "schema.sql")

def build_structural_indexes(ctx: Context) -> None:
    apply_ddl(ctx, "structural_indexes.sql")

def optimize_indexes(ctx: Context) -> None:
    apply_ddl(ctx, "optimize.sql")
