"""Settings loaded from environment variables (+ optional .env).

All keys use the TASKS_ prefix, e.g. TASKS_DB_PATH=todo.db.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKS"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v.strip()


def _env_optional(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Optional[Path]) -> Optional[Path]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str = "todo-api"
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    # ---- Storage ----
    db_path: Path = Path("todo.db")

    # ---- Broadcasting ----
    broadcast_driver: str = "log"  # pusher | log | null
    broadcast_workers: int = 2
    pusher_app_id: Optional[str] = None
    pusher_key: Optional[str] = None
    pusher_secret: Optional[str] = None
    pusher_cluster: str = "mt1"
    pusher_timeout: float = 5.0

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            app_name=_env(_k("APP_NAME"), "todo-api"),
            log_level=_env(_k("LOG_LEVEL"), "INFO").upper(),
            log_dir=_env_path(_k("LOG_DIR"), None),
            db_path=_env_path(_k("DB_PATH"), Path("todo.db")),
            broadcast_driver=_env(_k("BROADCAST_DRIVER"), "log").lower(),
            broadcast_workers=max(1, _env_int(_k("BROADCAST_WORKERS"), 2)),
            pusher_app_id=_env_optional(_k("PUSHER_APP_ID")),
            pusher_key=_env_optional(_k("PUSHER_APP_KEY")),
            pusher_secret=_env_optional(_k("PUSHER_APP_SECRET")),
            pusher_cluster=_env(_k("PUSHER_APP_CLUSTER"), "mt1"),
            pusher_timeout=_env_float(_k("PUSHER_TIMEOUT"), 5.0),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
