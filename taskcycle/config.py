from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PRODUCTION_ENVS = frozenset({"production", "prod"})
SERVERLESS_MARKERS = ("SERVERLESS", "VERCEL", "AWS_LAMBDA_FUNCTION_NAME")


def _resolve_project_root() -> Path:
    home = os.getenv("TASKCYCLE_HOME", "").strip()
    if home:
        return Path(home).expanduser().resolve()
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def _find_env_file(name: str) -> Path | None:
    for base in (Path.cwd(), PROJECT_ROOT):
        path = base / name
        if path.is_file():
            return path
    return None


def load_env() -> list[Path]:
    """Load `.env`, then `.env.<APP_ENV>` on top of it. Returns the files read."""
    loaded: list[Path] = []
    shared = _find_env_file(".env")
    if shared is not None:
        load_dotenv(shared)
        loaded.append(shared)

    # APP_ENV may itself come from the shared file.
    specific = _find_env_file(f".env.{os.getenv('APP_ENV', 'development')}")
    if specific is not None:
        load_dotenv(specific, override=True)
        loaded.append(specific)
    return loaded


def _env_marker(name: str) -> bool:
    return os.getenv(name, "").strip().lower() not in {"", "0", "false", "no"}


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    app_env: str = "development"
    app_url: str = "http://localhost:3000"
    redis_url: str | None = None
    serverless: bool = False
    scheduling_strategy: str | None = None
    throttle_backend: str = "memory"
    horizon_days: int = 30
    cleanup_days_past_due: int = 7

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() in PRODUCTION_ENVS


def load_settings() -> Settings:
    load_env()

    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Create a .env file with your connection string.")

    return Settings(
        database_url=database_url,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", "logs"),
        app_env=os.getenv("APP_ENV", "development"),
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        redis_url=os.getenv("REDIS_URL", "").strip() or None,
        serverless=any(_env_marker(name) for name in SERVERLESS_MARKERS),
        scheduling_strategy=os.getenv("SCHEDULING_STRATEGY", "").strip() or None,
        throttle_backend=os.getenv("THROTTLE_BACKEND", "memory").strip().lower() or "memory",
        horizon_days=int(os.getenv("RECURRING_HORIZON_DAYS", "30")),
        cleanup_days_past_due=int(os.getenv("CLEANUP_DAYS_PAST_DUE", "7")),
    )
