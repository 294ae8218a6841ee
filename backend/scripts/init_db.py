"""
Analytics Store Database Initialization Script.

Creates the analytics schema (``DATABASE_SCHEMA``, default ``umami``), every
table and index of the store, and the default administrator account.

**Idempotency:**
    - Existing tables are left untouched
    - The administrator is only inserted when no user named ``admin`` exists

**Default Credentials:**
    The administrator is created as ``admin`` with password ``umami``. Change
    the password right after the first login.

**Example Usage:**
    ```bash
    # Uses DATABASE_URL or the POSTGRES_* variables from the environment / .env
    python scripts/init_db.py
    ```

**Error Handling:**
    - Exits with code 0 on success
    - Exits with code 1 on failure (database connection, SQL errors, etc.)
"""

from pathlib import Path
import sys
import uuid

from dotenv import load_dotenv
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

load_dotenv()

# Add the project's root directory to the Python path
sys.path.append(str(Path(__file__).parent.parent.resolve()))

from umami_common.config import get_settings  # noqa: E402
from umami_common.database import (  # noqa: E402
    create_schema,
    create_session_maker,
    get_engine,
    session_scope,
)
from umami_common.models import ROLE_ADMIN, User  # noqa: E402

ADMIN_USER_ID = uuid.UUID("41e2b680-648e-4b09-bcd7-3e2b10c06264")
ADMIN_USERNAME = "admin"
# bcrypt hash of "umami"
ADMIN_PASSWORD_HASH = "$2b$10$BUli0c.muyCW1ErNJc3jL.vFRFtFJWrT8/GcR4A.sUdCznaXiqFXa"


def seed_admin(session_maker) -> bool:
    """Insert the default administrator. Returns False when one already exists."""
    with session_scope(session_maker) as session:
        existing = session.scalars(select(User).where(User.username == ADMIN_USERNAME)).first()
        if existing is not None:
            return False
        session.add(
            User(
                user_id=ADMIN_USER_ID,
                username=ADMIN_USERNAME,
                password=ADMIN_PASSWORD_HASH,
                role=ROLE_ADMIN,
            )
        )
    return True


def main() -> None:
    settings = get_settings()
    engine = get_engine()

    logger.info(f"Creating schema {settings.DATABASE_SCHEMA} and tables")
    create_schema(engine, settings.DATABASE_SCHEMA)

    if seed_admin(create_session_maker(engine)):
        logger.info(f"✓ Created default administrator '{ADMIN_USERNAME}'")
    else:
        logger.info(f"✓ Administrator '{ADMIN_USERNAME}' already exists")
    logger.info("✓ Database initialized")


if __name__ == "__main__":
    logger.add("logs/init_db.log", rotation="500 MB")  # For logging to a file

    try:
        main()
    except SQLAlchemyError as e:
        logger.error(f"✗ Error during initialization: {e}")
        sys.exit(1)
