import logging
import os
import time
from contextlib import contextmanager
from datetime import timezone
from typing import Callable, TypeVar

from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from linkauth.config import settings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def _build_database_url() -> str:
    raw_url = os.getenv("DATABASE_URL", "")
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"timeout": settings.db_timeout_seconds, "check_same_thread": False}
    if url.startswith("postgresql"):
        return {"connect_timeout": settings.db_timeout_seconds}
    return {}


def _create_engine(url: str):
    if not url:
        # Placeholder so imports succeed; init_db() refuses to run without a URL.
        return create_engine("sqlite://")
    options = {"pool_pre_ping": True, "connect_args": _connect_args(url)}
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(url, **options)
        _use_immediate_transactions(sqlite_engine)
        return sqlite_engine
    options["pool_timeout"] = settings.db_timeout_seconds
    return create_engine(url, **options)


def _use_immediate_transactions(sqlite_engine) -> None:
    # pysqlite defers BEGIN until the first write, so two transactions can
    # both read and then fail to upgrade their locks. Taking the write lock
    # up front makes concurrent writers queue on the busy timeout instead.
    @event.listens_for(sqlite_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


DATABASE_URL = _build_database_url()
engine = _create_engine(DATABASE_URL)
SessionLocal = sessionmaker(
    bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
)
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime column that always round-trips as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def init_db() -> None:
    if not DATABASE_URL:
        raise RuntimeError("DATABASE_URL is not configured")
    from linkauth.models.schema import magic_link as _magic_link  # noqa: F401
    from linkauth.models.schema import session as _session  # noqa: F401
    from linkauth.models.schema import user as _user  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def read_with_retry(operation: Callable[[], T], attempts: int | None = None) -> T:
    """Run an idempotent read, retrying transient storage failures.

    Only use this for reads: a write that failed mid-flight may have
    committed, and replaying it is not safe.
    """
    total = attempts if attempts is not None else settings.db_read_retries + 1
    attempt = 1
    while True:
        try:
            return operation()
        except OperationalError as exc:
            if attempt >= total:
                raise
            LOGGER.warning(
                "Transient storage error on read attempt %s/%s: %s",
                attempt,
                total,
                exc.orig if exc.orig is not None else exc,
            )
            time.sleep(0.05 * attempt)
            attempt += 1


def check_connection() -> bool:
    try:
        with engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")
    except OperationalError as exc:
        LOGGER.error("Database health check failed: %s", exc)
        return False
    return True
