import json, os, subprocess, sys
from pathlib import Path

import pytest

REPO = Path(__file__).resolve().parents[1]

def run(args, env):
    proc = subprocess.run([sys.executable, "-m", "flora", *args], capture_output=True, text=True,
                          cwd=REPO, env=env, encoding="utf-8")
    return proc.returncode, proc.stdout, proc.stderr

@pytest.fixture
def env(cfg, seeded):
    e = dict(os.environ)
    e.update({
        "FLORA_DATABASE_URL": cfg.database_url,
        "FLORA_DATA_DIR": str(cfg.data_dir),
        "FLORA_BUILD_ROOT": str(cfg.build_root),
        "FLORA_RETRY_BACKOFF_S": "0",
        "PYTHONPATH": str(REPO) + os.pathsep + e.get("PYTHONPATH", ""),
        "PYTHONIOENCODING": "utf-8",
        "COLUMNS": "200",
    })
    return e

def test_steps_lists_catalogue(env):
    code, out, err = run(["steps"], env)
    assert code == 0, err
    assert "graft-roots" in out
    assert "optimize-indexes" in out

def test_segments_prints_plan(env):
    code, out, err = run(["segments"], env)
    assert code == 0, err
    assert "Sh-Sz" in out

def test_run_all_then_verify_and_status(env, cfg):
    code, out, err = run(["run", "all"], env)
    assert code == 0, out + err
    report = json.loads((cfg.build_root / "report" / "run.json").read_text(encoding="utf-8"))
    assert report["success"] is True
    assert len(report["stages"]) == 16

    code, out, err = run(["verify"], env)
    assert code == 0, out + err
    code, out, err = run(["status"], env)
    assert code == 0, out + err
    assert "missing paths" in out
    assert "Last run: ok" in out

    code, out, err = run(["repair", "counts"], env)
    assert code == 0, out + err

def test_failed_step_exits_non_zero(env, cfg):
    # import before reset: the staging table does not exist yet
    code, out, err = run(["run", "4"], env)
    assert code == 1
    report = json.loads((cfg.build_root / "report" / "run.json").read_text(encoding="utf-8"))
    assert report["stages"][0]["status"] == "error"

def test_unknown_step_exits_non_zero(env):
    code, out, err = run(["run", "99"], env)
    assert code == 1
