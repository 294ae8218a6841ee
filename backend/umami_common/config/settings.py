"""
Settings of the ingest and analytics services.

The base class carries what both services need (database, pool, tenant
retention, CORS); the service classes add the session and retry knobs of
ingestion and the streaming and rollup knobs of aggregation. Environment
variables win over `.env`, which wins over the defaults below.

Service Settings Hierarchy:
    BaseServiceSettings (base class)
    ├── IngestServiceSettings
    └── AnalyticsServiceSettings

Example:
    ```python
    from umami_common.config.settings import IngestServiceSettings

    settings = IngestServiceSettings()
    print(settings.SERVICE_NAME)  # "ingest-service"
    print(settings.SESSION_INACTIVITY_WINDOW_SECONDS)  # 1800
    ```

Environment Variables:
    All settings can be overridden via environment variables. For example:
    - DATABASE_URL=postgresql+pg8000://user:pass@db:5432/analytics
    - DATABASE_SCHEMA=umami
    - SESSION_INACTIVITY_WINDOW_SECONDS=900
    - LOG_LEVEL=DEBUG
"""

from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Constants
MIN_WINDOW_SECONDS = 60  # Session and visit windows shorter than a minute are rejected


class BaseServiceSettings(BaseSettings):
    """
    Base settings class providing common configuration for all services.

    Attributes:
        SERVICE_NAME (str): Name identifier for the service. Default: "base-service"
        SERVICE_VERSION (str): Version string for the service. Default: "0.1.0"
        PORT (int): Port number the service listens on. Default: 8000

        ENVIRONMENT (str): Deployment environment. Values: "DEV" or "PROD". Default: "DEV"
        DEBUG (bool): Enable debug mode. Default: False
        LOG_LEVEL (str): Logging level. Default: "INFO"

        API_V1_STR (str): API version prefix for routes. Default: "/api/v1"
        CORS_ORIGINS (list[str]): Allowed CORS origins, comma-separated string or list.

        DATABASE_URL (str): Full SQLAlchemy URL. When empty, the URL is assembled
            from the POSTGRES_* fields.
        DATABASE_SCHEMA (str): PostgreSQL schema holding the analytics tables.
            Default: "umami"
        DATABASE_POOL_SIZE (int): Number of pooled connections. Default: 10
        DATABASE_MAX_OVERFLOW (int): Overflow connections beyond pool_size. Default: 5
        DATABASE_POOL_RECYCLE (int): Seconds before a pooled connection is recycled.
        DATABASE_STATEMENT_TIMEOUT_SECONDS (int): PostgreSQL statement_timeout
            applied to every connection. Default: 30

        SOFT_DELETE_RETENTION_DAYS (int): How long a soft-deleted website stays
            recoverable by an administrator. Default: 30

    Note:
        - CORS_ORIGINS can be set as a comma-separated string or a list
        - All pool fields are validated to be non-negative integers
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Service Information (defaults)
    SERVICE_NAME: str = "base-service"
    SERVICE_VERSION: str = "0.1.0"
    PORT: int = 8000

    # Global Configuration
    ENVIRONMENT: str = "DEV"  # Can be "DEV" or "PROD"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API Configuration
    API_V1_STR: str = "/api/v1"

    # CORS Configuration
    CORS_ORIGINS: Any = ""

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Any) -> list[str]:
        """
        Assemble CORS origins from string or list format.

        Args:
            v: Input value that can be a string, list, or other type.

        Returns:
            List of CORS origin strings with whitespace stripped. Empty list if
            input is empty or invalid.
        """
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        return []

    # Database Configuration
    DATABASE_URL: str = ""
    DATABASE_SCHEMA: str = "umami"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "postgres"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 5
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600
    DATABASE_STATEMENT_TIMEOUT_SECONDS: int = 30
    DATABASE_ECHO: bool = False

    # Tenant lifecycle
    SOFT_DELETE_RETENTION_DAYS: int = 30

    @field_validator(
        "DATABASE_POOL_SIZE",
        "DATABASE_MAX_OVERFLOW",
        "DATABASE_POOL_TIMEOUT",
        "DATABASE_STATEMENT_TIMEOUT_SECONDS",
        "SOFT_DELETE_RETENTION_DAYS",
        mode="before",
    )
    @classmethod
    def validate_positive_int(cls, v: Any, info: ValidationInfo) -> int | None:
        """
        Validate that numeric configuration fields are non-negative integers.

        Accepts string input (common when loading from environment variables)
        and converts it to int.

        Raises:
            ValueError: If the value cannot be converted to an integer or is negative.
        """
        if v is None:
            return None
        try:
            int_val = int(v)
            if int_val < 0:
                msg = f"{info.field_name} must be a positive integer"
                raise ValueError(msg)
            return int_val
        except (ValueError, TypeError) as e:
            msg = f"{info.field_name} must be a valid positive integer, got: {v}"
            raise ValueError(
                msg
            ) from e


class IngestServiceSettings(BaseServiceSettings):
    """
    Settings configuration for the ingestion service.

    Inherited Attributes:
        All attributes from BaseServiceSettings are available with these overrides:
        - SERVICE_NAME: "ingest-service"
        - PORT: 8002

    Additional Attributes:
        SESSION_INACTIVITY_WINDOW_SECONDS (int): Rolling inactivity window after
            which a returning fingerprint starts a new session. Default: 1800
        VISIT_WINDOW_SECONDS (int): Width of the time bucket that groups events of
            one session into a visit. Default: 3600
        SESSION_CREATE_MAX_ATTEMPTS (int): Conflict-then-reread attempts before a
            session creation race surfaces as a transient failure. Default: 3
        INGEST_MAX_ATTEMPTS (int): Attempts for a whole hit unit of work on
            transient storage failures. Default: 3
        INGEST_RETRY_BACKOFF_SECONDS (float): Linear backoff step between
            attempts. Default: 0.05
        MAX_BATCH_SIZE (int): Maximum number of hits accepted per request.
        FINGERPRINT_SALT (str): Salt mixed into client fingerprints. Rotating it
            makes every returning visitor look new.

    Note:
        - The inactivity window is configuration, never a hardcoded constant
        - Window values below one minute are rejected
    """

    SERVICE_NAME: str = "ingest-service"
    PORT: int = 8002

    # Session resolution
    SESSION_INACTIVITY_WINDOW_SECONDS: int = 1800
    VISIT_WINDOW_SECONDS: int = 3600
    SESSION_CREATE_MAX_ATTEMPTS: int = 3

    # Write path
    INGEST_MAX_ATTEMPTS: int = 3
    INGEST_RETRY_BACKOFF_SECONDS: float = 0.05
    MAX_BATCH_SIZE: int = 100

    FINGERPRINT_SALT: str = ""

    @field_validator("SESSION_INACTIVITY_WINDOW_SECONDS", "VISIT_WINDOW_SECONDS")
    @classmethod
    def validate_window(cls, v: int, info: ValidationInfo) -> int:
        """Reject windows shorter than MIN_WINDOW_SECONDS."""
        if v < MIN_WINDOW_SECONDS:
            msg = f"{info.field_name} must be at least {MIN_WINDOW_SECONDS} seconds"
            raise ValueError(msg)
        return v

    @field_validator("SESSION_CREATE_MAX_ATTEMPTS", "INGEST_MAX_ATTEMPTS", "MAX_BATCH_SIZE")
    @classmethod
    def validate_at_least_one(cls, v: int, info: ValidationInfo) -> int:
        """Attempt counts and batch sizes must allow at least one item."""
        if v < 1:
            msg = f"{info.field_name} must be at least 1"
            raise ValueError(msg)
        return v


class AnalyticsServiceSettings(BaseServiceSettings):
    """
    Settings configuration for the analytics (read path) service.

    Inherited Attributes:
        All attributes from BaseServiceSettings are available with these overrides:
        - SERVICE_NAME: "analytics-service"
        - PORT: 8001

    Additional Attributes:
        QUERY_STREAM_CHUNK_SIZE (int): Rows fetched per chunk by streaming scans.
            Cancellation is checked between chunks. Default: 1000
        ROLLUP_BUCKET_HOURS (int): Width of incremental rollup buckets. Default: 24
        ROLLUP_SETTLE_SECONDS (int): A bucket is cached only once its end lies
            this far in the past. Default: 300
        ROLLUP_CACHE_MAX_ENTRIES (int): Upper bound of cached bucket partials.
        DEFAULT_METRICS_LIMIT (int): Rows returned by dimension breakdowns when the
            caller does not pass a limit. Default: 100
    """

    SERVICE_NAME: str = "analytics-service"
    PORT: int = 8001

    QUERY_STREAM_CHUNK_SIZE: int = 1000
    ROLLUP_BUCKET_HOURS: int = 24
    ROLLUP_SETTLE_SECONDS: int = 300
    ROLLUP_CACHE_MAX_ENTRIES: int = 10000
    DEFAULT_METRICS_LIMIT: int = 100

    @field_validator("QUERY_STREAM_CHUNK_SIZE", "ROLLUP_BUCKET_HOURS", "DEFAULT_METRICS_LIMIT")
    @classmethod
    def validate_at_least_one(cls, v: int, info: ValidationInfo) -> int:
        if v < 1:
            msg = f"{info.field_name} must be at least 1"
            raise ValueError(msg)
        return v
