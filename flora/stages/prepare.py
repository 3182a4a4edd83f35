from __future__ import annotations
import subprocess
from pathlib import Path

from ..dag import Context
from ..logging import log
from ..sources import WCVP, WFO, Source

class PrepareError(Exception):
    """Raw input missing or the external cleaning command failed."""
    pass

def prepare_source(ctx: Context, source: Source) -> Path:
    """Make sure the cleaned file for ``source`` exists, converting the raw file if needed."""
    clean = ctx.cfg.resolve_data_path(source.clean_file)
    if clean.exists():
        log().info(f"Found cleaned {source.key} file {clean}; skipping conversion")
        return clean

    raw = ctx.cfg.resolve_data_path(source.raw_file) if source.raw_file else None
    if raw is None or not raw.exists():
        raise PrepareError(
            f"{source.key}: neither {clean} nor the raw download {raw} exists; "
            f"place the unzipped {source.name} file under {ctx.cfg.data_dir / 'input'}"
        )
    if not source.prepare_command:
        raise PrepareError(f"{source.key}: {clean} missing and no prepare_command configured")

    clean.parent.mkdir(parents=True, exist_ok=True)
    cmd = [part.format(raw=str(raw), clean=str(clean)) for part in source.prepare_command]
    log().info(f"Converting {raw} -> {clean}: {' '.join(cmd)}")
    proc = subprocess.run(cmd, capture_output=True, text=True)
    if proc.returncode != 0:
        raise PrepareError(f"{source.key}: converter exited {proc.returncode}: {proc.stderr.strip()[-500:]}")
    if not clean.exists():
        raise PrepareError(f"{source.key}: converter finished but did not write {clean}")
    return clean

def prepare_wcvp(ctx: Context) -> None:
    prepare_source(ctx, ctx.sources[WCVP])

def prepare_wfo(ctx: Context) -> None:
    prepare_source(ctx, ctx.sources[WFO])
