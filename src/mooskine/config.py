# src/mooskine/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Nothing required at import time; every value has a default.
- The Store never reads settings itself: the composition root passes values in.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "MOOSKINE"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data (ignored by git) ----
    data_dir: Path
    store_name: str

    # ---- Persistence tuning ----
    autosave_interval: float
    transform_delay: float
    check_domains: bool

    @property
    def store_path(self) -> Path:
        return self.data_dir / f"{self.store_name}.sqlite3"

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "mooskine").strip() or "mooskine"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/mooskine"))
        store_name = _env(_k("STORE_NAME"), "Mooskine").strip() or "Mooskine"

        # Interval <= 0 is passed through on purpose: the pump rejects and logs it.
        autosave_interval = _env_float(_k("AUTOSAVE_INTERVAL"), 30.0)
        transform_delay = max(0.0, _env_float(_k("TRANSFORM_DELAY"), 5.0))
        check_domains = _env_bool(_k("CHECK_DOMAINS"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            store_name=store_name,
            autosave_interval=autosave_interval,
            transform_delay=transform_delay,
            check_domains=check_domains,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
