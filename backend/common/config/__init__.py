"""
Centralized configuration management for the backend services.

This module provides a unified interface for accessing service-specific configuration
settings. It selects the appropriate settings class based on the service name, so
each service gets its correct configuration.

The configuration system uses Pydantic Settings, which loads values from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values defined in the settings classes

Service-Specific Settings:
    - SessionServiceSettings: Configuration for session-service
    - BaseServiceSettings: Base configuration shared by all services

Example:
    ```python
    from common.config import get_settings

    settings = get_settings("session-service")
    print(settings.SERVICE_NAME)  # "session-service"
    print(settings.PORT)  # 8001
    ```
"""

from common.config.settings import (
    BaseServiceSettings,
    SessionServiceSettings,
)


def get_settings(service_name: str | None = None) -> BaseServiceSettings:
    """
    Get settings instance for the specified service.

    Performs fuzzy matching on the service name, so "session" and
    "session-service" both resolve to SessionServiceSettings.

    Args:
        service_name: Name of the service to get settings for. None or an
            unknown name returns BaseServiceSettings.

    Returns:
        Instance of the appropriate settings class.

    Note:
        - Settings are loaded from environment variables and .env file
        - Each call returns a new instance (settings are not cached)
        - Service name matching is case-insensitive
    """
    if service_name:
        service_lower = service_name.lower()
        if service_lower == "session-service" or "session" in service_lower:
            return SessionServiceSettings()
    # Default to base settings
    return BaseServiceSettings()


__all__ = [
    "BaseServiceSettings",
    "SessionServiceSettings",
    "get_settings",
]
