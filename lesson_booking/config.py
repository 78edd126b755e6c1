from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "")
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or default


@dataclass(frozen=True)
class Settings:
    db_name: str = field(default_factory=lambda: os.getenv("DB_NAME", "lesson_booking"))
    db_echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", False))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    cors_origins: list[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", ["*"]))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    seed_on_startup: bool = field(default_factory=lambda: _env_bool("SEED_ON_STARTUP", True))
    _database_url: str | None = field(default_factory=lambda: os.getenv("DATABASE_URL") or None)

    @property
    def database_url(self) -> str:
        # SQLite file in the project root, named after the storage namespace
        if self._database_url:
            return self._database_url
        return f"sqlite:///{PROJECT_ROOT / f'{self.db_name}.sqlite'}"


settings = Settings()
