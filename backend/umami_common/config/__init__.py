"""
Centralized configuration management for all backend services.

This module provides a unified interface for accessing service-specific configuration
settings. It automatically selects the appropriate settings class based on the service
name, ensuring each service gets its correct configuration.

The configuration system uses Pydantic Settings, which automatically loads values from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values defined in the settings classes

Service-Specific Settings:
    - IngestServiceSettings: Configuration for ingest-service
    - AnalyticsServiceSettings: Configuration for analytics-service
    - BaseServiceSettings: Base configuration shared by all services

Example:
    ```python
    from umami_common.config import get_settings

    settings = get_settings("ingest-service")
    print(settings.SESSION_INACTIVITY_WINDOW_SECONDS)  # 1800
    ```
"""

from umami_common.config.settings import (
    AnalyticsServiceSettings,
    BaseServiceSettings,
    IngestServiceSettings,
)


def get_settings(service_name: str | None = None) -> BaseServiceSettings:
    """
    Get settings instance for the specified service.

    Performs fuzzy matching to handle variations in service naming (e.g., "ingest"
    matches "ingest-service").

    Args:
        service_name: Name of the service to get settings for. Can be:
            - "ingest-service" or any string containing "ingest"
            - "analytics-service" or any string containing "analytics"
            - None or any other value returns BaseServiceSettings

    Returns:
        Instance of the appropriate settings class.

    Note:
        - Settings are loaded from environment variables and .env file
        - Each call returns a new instance (settings are not cached)
        - Service name matching is case-insensitive
    """
    if service_name:
        service_lower = service_name.lower()
        if "ingest" in service_lower:
            return IngestServiceSettings()
        if "analytics" in service_lower:
            return AnalyticsServiceSettings()
    # Default to base settings
    return BaseServiceSettings()


__all__ = [
    "AnalyticsServiceSettings",
    "BaseServiceSettings",
    "IngestServiceSettings",
    "get_settings",
]
