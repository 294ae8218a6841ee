"""
Database engine and session management with connection pooling.

This module provides connection and session management for the analytics
store. Engines are created once per service and cached; sessions are handed
out through a context manager that commits on success, rolls back on error
and always closes.

Key Features:
    - Connection pooling with configurable pool sizes (QueuePool)
    - Automatic connection health checks (pre-ping) and recycling
    - PostgreSQL statement_timeout on every pooled connection
    - Tables mapped into ``DATABASE_SCHEMA`` via ``schema_translate_map``
    - SQLite support with working SAVEPOINTs, used by the test suite

Usage:
    ```python
    from umami_common.database import get_db_session

    with get_db_session("analytics-service") as session:
        website = session.get(Website, website_id)
    ```
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from umami_common.config import BaseServiceSettings, get_settings
from umami_common.database.base import Base

load_dotenv()

# Global engine cache to avoid creating multiple engines per service
_engines: dict[str, Engine] = {}
_session_makers: dict[str, sessionmaker] = {}


def create_sqlalchemy_url(settings: BaseServiceSettings) -> URL:
    """
    Create the SQLAlchemy URL for the analytics database.

    ``DATABASE_URL`` wins when set. Otherwise the URL is assembled from the
    POSTGRES_* settings with the synchronous pg8000 driver.

    Args:
        settings: Service settings carrying the connection parameters.

    Returns:
        SQLAlchemy URL object.
    """
    if settings.DATABASE_URL:
        return make_url(settings.DATABASE_URL)

    return URL.create(
        drivername="postgresql+pg8000",
        username=settings.POSTGRES_USER,
        password=settings.POSTGRES_PASSWORD,
        host=settings.POSTGRES_HOST,
        port=settings.POSTGRES_PORT,
        database=settings.POSTGRES_DATABASE,
    )


def _setup_sqlite_events(engine: Engine) -> None:
    """Let SQLAlchemy own transaction boundaries so SAVEPOINT works on pysqlite."""

    @event.listens_for(engine, "connect")
    def disable_pysqlite_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def emit_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")


def _setup_postgres_events(engine: Engine, statement_timeout_seconds: int) -> None:
    """Apply connection-level settings on every new PostgreSQL connection."""

    @event.listens_for(engine, "connect")
    def set_statement_timeout(dbapi_connection: Any, connection_record: Any) -> None:
        if statement_timeout_seconds <= 0:
            return
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"SET statement_timeout = '{int(statement_timeout_seconds)}s'")
        finally:
            cursor.close()
        # pg8000 opens a transaction for the SET; end it so the pool gets a clean connection
        dbapi_connection.commit()


def build_engine(
    url: str | URL,
    settings: BaseServiceSettings | None = None,
    service_name: str | None = None,
) -> Engine:
    """
    Create a configured engine for ``url``.

    Args:
        url: Database URL. ``sqlite://`` creates a single shared in-memory
            database, suitable for tests.
        settings: Settings providing pool and timeout configuration. Defaults to
            the settings of ``service_name``.
        service_name: Name of the service, used for connection naming and logs.

    Returns:
        SQLAlchemy Engine instance.
    """
    settings = settings or get_settings(service_name)
    url = make_url(url)

    if url.get_backend_name() == "sqlite":
        kwargs: dict[str, Any] = {
            "connect_args": {"check_same_thread": False},
            "echo": settings.DATABASE_ECHO,
        }
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _setup_sqlite_events(engine)
        return engine

    engine = create_engine(
        url,
        # Connection pool settings
        poolclass=QueuePool,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_recycle=settings.DATABASE_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DATABASE_ECHO,
        connect_args={
            "application_name": service_name or settings.SERVICE_NAME,
        },
        execution_options={"schema_translate_map": {None: settings.DATABASE_SCHEMA}},
    )
    _setup_postgres_events(engine, settings.DATABASE_STATEMENT_TIMEOUT_SECONDS)

    logger.info(
        f"Created database engine for {service_name or settings.SERVICE_NAME} "
        f"with pool_size={settings.DATABASE_POOL_SIZE}, "
        f"max_overflow={settings.DATABASE_MAX_OVERFLOW}"
    )
    return engine


def get_engine(service_name: str | None = None) -> Engine:
    """
    Get the cached engine of a service, creating it on first use.

    Args:
        service_name: Name of the service (e.g. "ingest-service").

    Returns:
        SQLAlchemy Engine instance.
    """
    cache_key = service_name or "default"
    if cache_key in _engines:
        return _engines[cache_key]

    settings = get_settings(service_name)
    engine = build_engine(create_sqlalchemy_url(settings), settings, service_name)
    _engines[cache_key] = engine
    return engine


def get_session_maker(service_name: str | None = None) -> sessionmaker:
    """Get the cached session maker of a service."""
    cache_key = service_name or "default"
    if cache_key not in _session_makers:
        _session_makers[cache_key] = create_session_maker(get_engine(service_name))
    return _session_makers[cache_key]


def create_session_maker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,  # Keep objects usable after commit
    )


def dispose_engines() -> None:
    """Dispose every cached engine. Used on shutdown and between tests."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_makers.clear()


def create_schema(engine: Engine, schema: str | None = None) -> None:
    """
    Create the analytics schema (PostgreSQL only) and every table.

    Existing tables are left untouched.
    """
    if engine.dialect.name == "postgresql" and schema:
        with engine.begin() as connection:
            connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
    Base.metadata.create_all(engine)


@contextmanager
def session_scope(session_maker: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on successful exit, rolls back on any exception and always closes.
    """
    session = session_maker()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.debug(f"Database session rolled back: {e}")
        raise
    finally:
        session.close()


@contextmanager
def get_db_session(service_name: str | None = None) -> Iterator[Session]:
    """
    Context manager for database sessions with automatic cleanup.

    Args:
        service_name: Optional name of the service whose engine to use.

    Yields:
        SQLAlchemy Session object ready for database operations.

    Example:
        ```python
        with get_db_session("analytics-service") as session:
            count = session.scalar(select(func.count()).select_from(WebsiteEvent))
        ```

    Note:
        - Sessions automatically commit on successful exit
        - Sessions automatically rollback on exceptions
        - Sessions are automatically closed when exiting the context
    """
    with session_scope(get_session_maker(service_name)) as session:
        yield session
