import sys
from dataclasses import replace

import pytest

from flora.stages.prepare import PrepareError, prepare_source, prepare_wcvp

COPY = [sys.executable, "-c", "import shutil, sys; shutil.copy(sys.argv[1], sys.argv[2])", "{raw}", "{clean}"]
FAIL = [sys.executable, "-c", "import sys; sys.exit('bad encoding on line 3')"]

def _raw(ctx, key):
    path = ctx.cfg.resolve_data_path(ctx.sources[key].raw_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("plant_name_id|taxon_name\n1|Rosa\n", encoding="utf-8")
    return path

def test_existing_clean_file_is_kept(ctx, seeded):
    clean = ctx.cfg.resolve_data_path(ctx.sources["wcvp"].clean_file)
    before = clean.read_text(encoding="utf-8")
    prepare_wcvp(ctx)
    assert clean.read_text(encoding="utf-8") == before

def test_missing_inputs_are_fatal(ctx):
    with pytest.raises(PrepareError, match="neither"):
        prepare_wcvp(ctx)

def test_converter_runs_over_raw_file(ctx):
    raw = _raw(ctx, "wcvp")
    source = replace(ctx.sources["wcvp"], prepare_command=COPY)
    clean = prepare_source(ctx, source)
    assert clean.read_text(encoding="utf-8") == raw.read_text(encoding="utf-8")

def test_failing_converter(ctx):
    _raw(ctx, "wcvp")
    source = replace(ctx.sources["wcvp"], prepare_command=FAIL)
    with pytest.raises(PrepareError, match="bad encoding"):
        prepare_source(ctx, source)

def test_raw_without_converter(ctx):
    _raw(ctx, "wfo")
    source = replace(ctx.sources["wfo"], prepare_command=None)
    with pytest.raises(PrepareError, match="no prepare_command"):
        prepare_source(ctx, source)
