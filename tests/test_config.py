from __future__ import annotations

import logging

import pytest
from sqlalchemy.pool import StaticPool

from vaultlog.config import PROJECT_ROOT, Settings
from vaultlog.infra.db import _engine_options
from vaultlog.infra.logging import setup_logging

URL = "postgresql+psycopg2://vaultlog@localhost/vaultlog"


def test_settings_defaults() -> None:
    settings = Settings.from_env({"DATABASE_URL": f" {URL} "})

    assert settings == Settings(database_url=URL)
    assert settings.log_path == PROJECT_ROOT / "logs"


def test_settings_read_server_options() -> None:
    settings = Settings.from_env(
        {"DATABASE_URL": URL, "API_HOST": "0.0.0.0", "API_PORT": "9000", "LOG_LEVEL": "debug"}
    )

    assert settings.api_host == "0.0.0.0"
    assert settings.api_port == 9000
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"DATABASE_URL": "  "},
        {"DATABASE_URL": URL, "API_PORT": "http"},
        {"DATABASE_URL": URL, "API_PORT": "70000"},
        {"DATABASE_URL": URL, "LOG_LEVEL": "LOUD"},
    ],
)
def test_invalid_settings_fail_fast(env: dict) -> None:
    with pytest.raises(RuntimeError):
        Settings.from_env(env)


def test_setup_logging_creates_log_dir(tmp_path) -> None:
    settings = Settings(database_url=URL, log_dir=str(tmp_path / "var" / "log"))

    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging(settings)
    finally:
        for handler in set(root.handlers) - set(before):
            root.removeHandler(handler)
            handler.close()

    assert settings.log_path.is_dir()


def test_memory_database_shares_one_connection() -> None:
    assert _engine_options("sqlite+pysqlite:///:memory:")["poolclass"] is StaticPool
    assert _engine_options("sqlite://")["poolclass"] is StaticPool


def test_file_database_uses_regular_pool(tmp_path) -> None:
    options = _engine_options(f"sqlite+pysqlite:///{tmp_path / 'vaultlog.db'}")

    assert "poolclass" not in options
    assert options["connect_args"] == {"check_same_thread": False}
    assert _engine_options(URL) == {"pool_pre_ping": True}
