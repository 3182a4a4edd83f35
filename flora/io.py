from __future__ import annotations
import csv, json
from pathlib import Path
from typing import Any, List

def read_json(p: Path) -> Any:
    return json.loads(Path(p).read_text(encoding="utf-8"))

def write_json(p: Path, obj: Any) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")

def read_csv_header(p: Path) -> List[str]:
    """First row of a comma-delimited file, stripped of a UTF-8 BOM."""
    with Path(p).open("r", encoding="utf-8-sig", newline="") as f:
        row = next(csv.reader(f), None)
    return [c.strip() for c in row] if row else []
