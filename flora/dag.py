from __future__ import annotations
import heapq, time
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from rich.text import Text

from .config import BuildConfig
from .io import write_json
from .logging import console, log
from .segments import SegmentPlanner

class DagError(Exception):
    """Unknown step, malformed selection or a dependency cycle."""
    pass

@dataclass
class Stage:
    id: str
    name: str
    description: str
    after: List[str] = field(default_factory=list)  # ids this step depends on
    run: Callable[["Context"], None] = lambda ctx: None

@dataclass
class Context:
    cfg: BuildConfig
    db: object
    sources: Dict[str, object]
    planner: SegmentPlanner
    now: float = field(default_factory=time.time)

    def segments(self, table: str, column: str = "taxon_name"):
        return self.planner.for_table(table, column)

class Dag:
    """Fixed catalogue of steps with explicit dependency edges.

    Catalogue position only breaks ties between steps whose order the
    edges leave open.
    """

    def __init__(self, stages: List[Stage]):
        self.stages = stages
        self.by_id: Dict[str, Stage] = {}
        self.by_name: Dict[str, Stage] = {}
        for s in stages:
            if s.id in self.by_id or s.name in self.by_name:
                raise DagError(f"duplicate step: {s.id} {s.name}")
            self.by_id[s.id] = s
            self.by_name[s.name] = s
        for s in stages:
            for dep in s.after:
                if dep not in self.by_id:
                    raise DagError(f"step {s.id} depends on unknown step {dep}")
        self.order(self.ids())

    def ids(self) -> List[str]:
        return [s.id for s in self.stages]

    def resolve(self, token: str) -> Stage:
        token = token.strip()
        stage = self.by_id.get(token) or self.by_name.get(token)
        if stage is None:
            raise DagError(f"unknown step: {token!r}")
        return stage

    def order(self, selected: List[str]) -> List[Stage]:
        """Selected steps in dependency order; unselected steps are not pulled in."""
        chosen = {self.resolve(t).id for t in selected}
        position = {sid: i for i, sid in enumerate(self.ids())}
        # Edges between chosen steps, including ones that pass through unchosen steps.
        ancestors = self._ancestors()
        indegree = {sid: 0 for sid in chosen}
        children: Dict[str, List[str]] = {sid: [] for sid in chosen}
        for sid in chosen:
            for dep in ancestors[sid] & chosen:
                indegree[sid] += 1
                children[dep].append(sid)
        ready = [(position[sid], sid) for sid, deg in indegree.items() if deg == 0]
        heapq.heapify(ready)
        out: List[Stage] = []
        while ready:
            _, sid = heapq.heappop(ready)
            out.append(self.by_id[sid])
            for child in children[sid]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (position[child], child))
        if len(out) != len(chosen):
            stuck = sorted(set(chosen) - {s.id for s in out}, key=position.get)
            raise DagError(f"dependency cycle among steps: {', '.join(stuck)}")
        return out

    def _ancestors(self) -> Dict[str, set]:
        memo: Dict[str, set] = {}
        def visit(sid: str, trail: tuple) -> set:
            if sid in trail:
                raise DagError(f"dependency cycle: {' -> '.join(trail + (sid,))}")
            if sid not in memo:
                acc: set = set()
                for dep in self.by_id[sid].after:
                    acc.add(dep)
                    acc |= visit(dep, trail + (sid,))
                memo[sid] = acc
            return memo[sid]
        for sid in self.ids():
            visit(sid, ())
        return memo

def parse_selection(text: str, dag: Dag) -> List[str]:
    """Ids selected by an operator string: ``all``, ``7``, ``4,6,9``, ``4-9`` or step names."""
    text = (text or "").strip()
    if not text:
        raise DagError("empty step selection")
    if text.lower() in ("all", "a"):
        return dag.ids()
    ids = dag.ids()
    picked: List[str] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        lo, sep, hi = part.partition("-")
        if sep and lo.strip() in dag.by_id and hi.strip() in dag.by_id:
            i, j = ids.index(lo.strip()), ids.index(hi.strip())
            if i > j:
                raise DagError(f"range runs backwards: {part}")
            picked.extend(ids[i:j + 1])
        else:
            picked.append(dag.resolve(part).id)
    return list(dict.fromkeys(picked))

class DagRunner:
    def __init__(self, ctx: Context, dag: Dag):
        self.ctx = ctx
        self.dag = dag

    def run(self, selection: List[str]) -> Dict:
        plan = self.dag.order(selection)
        total = len(self.dag.stages)
        summary = {"success": True, "stages": [], "built_at": int(time.time())}
        t_all = time.time()
        for s in plan:
            console().print(Text(f"🔄 [Step {s.id}/{total}] {s.name}: {s.description}...", style="blue bold"))
            log().debug(f"enter step {s.id} ({s.name})")
            self.ctx.now = time.time()
            try:
                s.run(self.ctx)
            except Exception as e:
                duration_ms = (time.time() - self.ctx.now) * 1000
                console().print(Text(f"  ❌ Step {s.id} ({s.name}) failed after {duration_ms:.0f}ms: {e}", style="red bold"))
                log().debug("step failure", exc_info=True)
                summary["success"] = False
                summary["stages"].append({"id": s.id, "name": s.name, "status": "error",
                                          "duration_ms": round(duration_ms, 1), "error": str(e)})
                break
            duration_ms = (time.time() - self.ctx.now) * 1000
            log().debug(f"exit step {s.id} ({s.name})")
            console().print(Text(f"✅ Step {s.id} completed in {duration_ms:.0f}ms", style="green bold"))
            summary["stages"].append({"id": s.id, "name": s.name, "status": "ok",
                                      "duration_ms": round(duration_ms, 1)})
        summary["duration_s"] = round(time.time() - t_all, 2)
        write_json(self.ctx.cfg.build_root / "report" / "run.json", summary)
        if summary["success"]:
            console().print(Text(f"🎉 Pipeline completed successfully in {summary['duration_s']:.2f}s", style="green bold"))
        else:
            failed = summary["stages"][-1]
            console().print(Text(f"✗ Pipeline stopped at step {failed['id']}; re-run it to resume", style="red bold"))
        return summary
