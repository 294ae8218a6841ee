"""
Common database utilities and session management.

Main Components:
    - Base: SQLAlchemy declarative base class for all ORM models
    - types: portable column types (UTC timestamps, DECIMAL(19,4), JSON)
    - session: engine caching, pooling and session context managers

Usage:
    ```python
    from umami_common.database import get_db_session

    with get_db_session("ingest-service") as session:
        session.add(event)
    ```
"""

from .base import Base
from .session import (
    build_engine,
    create_schema,
    create_session_maker,
    create_sqlalchemy_url,
    dispose_engines,
    get_db_session,
    get_engine,
    get_session_maker,
    session_scope,
)
from .types import FixedDecimal, JSONType, UTCDateTime, quantize_decimal

__all__ = [
    "Base",
    "FixedDecimal",
    "JSONType",
    "UTCDateTime",
    "build_engine",
    "create_schema",
    "create_session_maker",
    "create_sqlalchemy_url",
    "dispose_engines",
    "get_db_session",
    "get_engine",
    "get_session_maker",
    "quantize_decimal",
    "session_scope",
]
