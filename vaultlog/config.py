from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def load_env(env_name: str | None = None) -> None:
    """Load `.env`, then `.env.<APP_ENV>` over it, from the cwd or the project root."""
    env_name = env_name or os.getenv("APP_ENV", "development")
    for filename, override in ((".env", False), (f".env.{env_name}", True)):
        for base in (Path.cwd(), PROJECT_ROOT):
            if (base / filename).exists():
                load_dotenv(base / filename, override=override)
                break


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        database_url = env.get("DATABASE_URL", "").strip()
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set. Create a .env file with your connection string.")

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise RuntimeError(f"LOG_LEVEL {log_level!r} is not a logging level")

        raw_port = env.get("API_PORT", "8000").strip()
        if not raw_port.isdigit() or not 0 < int(raw_port) < 65536:
            raise RuntimeError(f"API_PORT must be a TCP port, got {raw_port!r}")

        return cls(
            database_url=database_url,
            log_level=log_level,
            log_dir=env.get("LOG_DIR", "logs").strip() or "logs",
            api_host=env.get("API_HOST", "127.0.0.1").strip() or "127.0.0.1",
            api_port=int(raw_port),
        )

    @property
    def log_path(self) -> Path:
        log_dir = Path(self.log_dir)
        return log_dir if log_dir.is_absolute() else PROJECT_ROOT / log_dir


load_env()
SETTINGS = Settings.from_env()
