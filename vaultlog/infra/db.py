from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from vaultlog.config import SETTINGS


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options: dict = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
        # One shared connection, otherwise every session sees an empty database.
        # Sessions then share one transaction too: tests and single-threaded use only.
        # Point DATABASE_URL at a sqlite file (or PostgreSQL) for a served API.
        options["poolclass"] = StaticPool
    return options


engine = create_engine(SETTINGS.database_url, **_engine_options(SETTINGS.database_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
Base = declarative_base()


def init_db() -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def create_schema() -> None:
    """Create all tables directly. Local SQLite runs and tests only; use alembic elsewhere."""
    from . import models  # noqa: F401

    Base.metadata.create_all(engine)


def drop_schema() -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(engine)
