import pytest

from flora.dag import Dag, DagError, DagRunner, Stage, parse_selection
from flora.stages.catalogue import load_default

def _ids(stages):
    return [s.id for s in stages]

def test_catalogue_has_sixteen_steps():
    dag = load_default()
    assert dag.ids() == [str(i) for i in range(1, 17)]
    assert dag.resolve("graft-roots").id == "11"
    assert dag.by_id["11"].after == ["9", "10"]

@pytest.mark.parametrize("text,expected", [
    ("7", ["7"]),
    ("4-6", ["4", "5", "6"]),
    ("9,4,6", ["9", "4", "6"]),
    ("4, 4,5", ["4", "5"]),
    ("graft-roots", ["11"]),
    ("prepare-wcvp,14-15", ["1", "14", "15"]),
])
def test_parse_selection(text, expected):
    assert parse_selection(text, load_default()) == expected

def test_parse_selection_all():
    dag = load_default()
    assert parse_selection("all", dag) == dag.ids()
    assert parse_selection("A", dag) == dag.ids()

@pytest.mark.parametrize("text", ["", "99", "6-4", "no-such-step"])
def test_parse_selection_rejects(text):
    with pytest.raises(DagError):
        parse_selection(text, load_default())

def test_selected_steps_run_in_dependency_order():
    dag = load_default()
    assert _ids(dag.order(["16", "3", "4"])) == ["3", "4", "16"]
    assert _ids(dag.order(["14", "13", "15"])) == ["13", "14", "15"]

def test_unselected_steps_are_not_pulled_in():
    dag = load_default()
    assert _ids(dag.order(["12"])) == ["12"]

def test_edges_win_over_catalogue_position():
    dag = Dag([
        Stage("1", "load", "", ["2"]),
        Stage("2", "schema", ""),
        Stage("3", "report", "", ["1"]),
    ])
    assert _ids(dag.order(["3", "1", "2"])) == ["2", "1", "3"]
    # 3 -> 1 -> 2 still orders 2 before 3 when 1 is left out
    assert _ids(dag.order(["3", "2"])) == ["2", "3"]

def test_cycles_and_unknown_dependencies_are_rejected():
    with pytest.raises(DagError):
        Dag([Stage("1", "a", "", ["2"]), Stage("2", "b", "", ["1"])])
    with pytest.raises(DagError):
        Dag([Stage("1", "a", "", ["7"])])
    with pytest.raises(DagError):
        Dag([Stage("1", "a", ""), Stage("1", "b", "")])

def test_runner_stops_at_first_failure(ctx):
    seen = []
    def ok(name):
        return lambda c: seen.append(name)
    def boom(c):
        raise RuntimeError("store went away")
    dag = Dag([
        Stage("1", "first", "", [], ok("first")),
        Stage("2", "second", "", ["1"], boom),
        Stage("3", "third", "", ["2"], ok("third")),
    ])
    summary = DagRunner(ctx, dag).run(dag.ids())
    assert summary["success"] is False
    assert seen == ["first"]
    assert [s["status"] for s in summary["stages"]] == ["ok", "error"]
    assert summary["stages"][-1]["error"] == "store went away"
    assert (ctx.cfg.build_root / "report" / "run.json").exists()
