from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import quote

from dotenv import load_dotenv

DEFAULT_BUILD_ROOT = "build"
DEFAULT_DATA_DIR = "data"
PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_POOLER_HOST = "aws-0-us-west-2.pooler.supabase.com"

def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}

def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)

def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return float(value)

def load_env(project_root: Optional[Path] = None) -> None:
    """Load a .env file if present; variables already set in the environment win."""
    dotenv_path = (project_root or Path.cwd()) / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path, override=False)

def supabase_url(project_id: str, password: str, pooler_host: str = DEFAULT_POOLER_HOST) -> str:
    """Session-mode pooler connection string for a Supabase project.

    Port 5432 pins one server connection to the client for its lifetime, so
    the session-level ``SET statement_timeout = 0`` and the backend pid used
    by lock inspection hold for the whole run. The transaction-mode port
    (6543) would hand each autocommitted statement to any backend.
    """
    return f"postgresql://postgres.{project_id}:{quote(password, safe='')}@{pooler_host}:5432/postgres"

@dataclass
class BuildConfig:
    build_root: Path
    data_dir: Path
    schema_dir: Path
    sources_path: Path
    database_url: Optional[str] = None
    segments: str = "letters"
    retries: int = 3
    retry_backoff_s: float = 2.0
    watchdog_s: float = 20.0
    convergence_limit: int = 100
    statement_timeout_off: bool = True

    @staticmethod
    def from_env() -> "BuildConfig":
        load_env()
        root = Path(os.environ.get("FLORA_BUILD_ROOT", DEFAULT_BUILD_ROOT))
        data = Path(os.environ.get("FLORA_DATA_DIR", DEFAULT_DATA_DIR))
        url = os.environ.get("FLORA_DATABASE_URL") or os.environ.get("DATABASE_URL")
        if not url and os.environ.get("SUPABASE_PROJECT_ID") and os.environ.get("DATABASE_PASSWORD"):
            url = supabase_url(
                os.environ["SUPABASE_PROJECT_ID"],
                os.environ["DATABASE_PASSWORD"],
                os.environ.get("SUPABASE_POOLER_HOST", DEFAULT_POOLER_HOST),
            )
        return BuildConfig(
            build_root=root,
            data_dir=data,
            schema_dir=Path(os.environ.get("FLORA_SCHEMA_DIR", str(PACKAGE_DIR / "sql"))),
            sources_path=Path(os.environ.get("FLORA_SOURCES", str(PACKAGE_DIR / "sources.yaml"))),
            database_url=url,
            segments=os.environ.get("FLORA_SEGMENTS", "letters"),
            retries=_env_int("FLORA_RETRIES", 3),
            retry_backoff_s=_env_float("FLORA_RETRY_BACKOFF_S", 2.0),
            watchdog_s=_env_float("FLORA_WATCHDOG_S", 20.0),
            convergence_limit=_env_int("FLORA_CONVERGENCE_LIMIT", 100),
            statement_timeout_off=_env_bool("FLORA_STATEMENT_TIMEOUT_OFF", True),
        )

    def ensure_dirs(self) -> None:
        for p in [self.build_root / "report", self.data_dir / "input", self.data_dir / "temp"]:
            p.mkdir(parents=True, exist_ok=True)

    def resolve_data_path(self, path: str) -> Path:
        """Paths in the sources file are relative to the data directory."""
        p = Path(path)
        return p if p.is_absolute() else self.data_dir / p

    def as_paths(self) -> Dict[str, str]:
        return {
            "build_root": str(self.build_root),
            "report_dir": str(self.build_root / "report"),
            "data_dir": str(self.data_dir),
            "schema_dir": str(self.schema_dir),
            "sources": str(self.sources_path),
            "segments": self.segments,
        }
