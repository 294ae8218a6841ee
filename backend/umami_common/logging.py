"""
Logging setup shared by the ingest and analytics services (loguru).

Sinks:
    - console: colorized, at LOG_LEVEL
    - logs/{service}.log: everything at LOG_LEVEL, 50 MB rotation, 7 days
    - logs/{service}-error.log: ERROR and above, 10 MB rotation, 30 days
    - logs/{service}-security.log: access denials and unknown callers only,
      with the caller and website bound on every line, 10 MB rotation, 90 days

Security records are regular records bound with ``security=True``; they also
reach the general sinks.

Example:
    ```python
    setup_logging("analytics-service")
    security_log(user_id=ctx.user_id, website_id=website_id).warning("Denied read")
    ```
"""

from pathlib import Path
import sys
from typing import Any

from loguru import logger

from umami_common.config import get_settings

LOGS_DIR = Path("logs")

_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
_SECURITY_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "user={extra[user_id]} website={extra[website_id]} | {message}"
)
_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)


def _only_security(record: dict) -> bool:
    return bool(record["extra"].get("security"))


def security_log(user_id: Any = None, website_id: Any = None):  # noqa: ANN201
    """Logger bound for the security sink, tagged with the caller and website."""
    return logger.bind(
        security=True,
        user_id=user_id if user_id is not None else "-",
        website_id=website_id if website_id is not None else "-",
    )


def setup_logging(service_name: str | None = None) -> None:
    """
    Replace loguru's default handler with the service sinks.

    Safe to call more than once: previous handlers are removed first.
    """
    settings = get_settings(service_name)
    prefix = service_name or "app"

    logger.remove()
    logger.configure(extra={"user_id": "-", "website_id": "-"})

    logger.add(sys.stdout, format=_CONSOLE_FORMAT, level=settings.LOG_LEVEL, colorize=True)

    LOGS_DIR.mkdir(exist_ok=True)
    logger.add(
        LOGS_DIR / f"{prefix}.log",
        format=_FILE_FORMAT,
        level=settings.LOG_LEVEL,
        rotation="50 MB",
        retention="7 days",
        compression="zip",
    )
    logger.add(
        LOGS_DIR / f"{prefix}-error.log",
        format=_FILE_FORMAT,
        level="ERROR",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )
    # Kept longer than errors: denials are audited after the fact
    logger.add(
        LOGS_DIR / f"{prefix}-security.log",
        format=_SECURITY_FORMAT,
        level="INFO",
        filter=_only_security,
        rotation="10 MB",
        retention="90 days",
        compression="zip",
    )
    logger.debug(f"Logging configured for {prefix} at {settings.LOG_LEVEL}")
