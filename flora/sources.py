from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

# Keys of the two bridged datasets; SQL in the stages is written against these.
WCVP = "wcvp"
WFO = "wfo"

_SOURCE_SCHEMA: Dict[str, Any] = {
  "type": "object",
  "required": ["id", "name", "clean_file", "columns"],
  "additionalProperties": False,
  "properties": {
    "id": {"type": "integer", "minimum": 1},
    "name": {"type": "string", "minLength": 1},
    "version": {"type": "string"},
    "url": {"type": "string"},
    "trust_level": {"type": "integer", "minimum": 0, "maximum": 10},
    "raw_file": {"type": "string"},
    "clean_file": {"type": "string"},
    "prepare_command": {
      "oneOf": [{"type": "null"}, {"type": "array", "items": {"type": "string"}, "minItems": 1}]
    },
    "columns": {
      "type": "array", "minItems": 1, "uniqueItems": True,
      "items": {"type": "string", "pattern": "^[a-z_][a-z0-9_]*$"}
    }
  }
}

_SOURCES_FILE_SCHEMA: Dict[str, Any] = {
  "type": "object",
  "required": ["sources"],
  "properties": {
    "sources": {
      "type": "object",
      "required": [WCVP, WFO],
      "additionalProperties": _SOURCE_SCHEMA,
    }
  }
}

class SourcesError(Exception):
    """The sources file is missing or does not match its schema."""
    pass

@dataclass
class Source:
    key: str
    id: int
    name: str
    clean_file: str
    columns: List[str] = field(default_factory=list)
    version: Optional[str] = None
    url: Optional[str] = None
    trust_level: Optional[int] = None
    raw_file: Optional[str] = None
    prepare_command: Optional[List[str]] = None

def load_sources(path: Path) -> Dict[str, Source]:
    if not Path(path).exists():
        raise SourcesError(f"sources file not found: {path}")
    try:
        doc = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SourcesError(f"{path}: invalid YAML: {e}") from e

    errors = sorted(Draft202012Validator(_SOURCES_FILE_SCHEMA).iter_errors(doc), key=lambda e: list(e.path))
    if errors:
        msgs = [f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors]
        raise SourcesError(f"{path}: " + "; ".join(msgs))

    out = {key: Source(key=key, **spec) for key, spec in doc["sources"].items()}
    ids = [s.id for s in out.values()]
    if len(set(ids)) != len(ids):
        raise SourcesError(f"{path}: source ids must be unique (got {ids})")
    return out
