"""Database session and base model setup."""
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from workout_insight.config import get_settings


settings = get_settings()

_connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(
    settings.database_url,
    future=True,
    connect_args=_connect_args,
)


def apply_sqlite_pragmas(dbapi_conn, busy_timeout_ms: int) -> None:
    """
    Prepare a SQLite connection for concurrent quota reservations.

    WAL keeps readers (cache lookups, usage snapshots) unblocked while a
    reservation holds the write lock, and ``busy_timeout`` makes a second
    writer wait for that lock instead of failing with "database is locked".
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    cursor.close()


def _configure_sqlite_connection(dbapi_conn, connection_record):
    apply_sqlite_pragmas(dbapi_conn, settings.sqlite_busy_timeout_ms)


if engine.dialect.name == "sqlite":
    event.listen(engine, "connect", _configure_sqlite_connection)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db():
    """FastAPI dependency yielding a transactional database session."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _alembic_config() -> Config:
    """Return a configured Alembic Config instance."""

    root = Path(__file__).resolve().parent.parent
    cfg = Config(str(root / "alembic.ini"))
    cfg.set_main_option("script_location", str(root / "migrations"))
    cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return cfg


def run_migrations(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the specified revision."""

    cfg = _alembic_config()
    command.upgrade(cfg, target_revision)
