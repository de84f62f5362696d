"""
Common logging configuration for the backend services.

This module provides centralized logging configuration using loguru, ensuring
consistent logging behavior across services. It configures both console
and file-based logging with appropriate formatting, rotation, and retention policies.

Log Files:
    - {service_name}.log: All logs at configured level (default: INFO)
    - {service_name}-error.log: Only ERROR level logs

Log Rotation:
    - Error logs: Rotate at 10 MB, retain 30 days, compress with zip
    - General logs: Rotate at 50 MB, retain 7 days, compress with zip

Example:
    ```python
    from common.logging import setup_logging

    setup_logging("session-service")

    from loguru import logger
    logger.info("Service started successfully")
    ```
"""

from pathlib import Path
import sys

from loguru import logger

from common.config import get_settings

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(service_name: str | None = None, logs_dir: str | Path = "logs") -> None:
    """
    Configure logging for the application using loguru.

    Sets up a colorized console sink plus service-specific rotating file sinks,
    one for all messages at the configured level and one for errors only.

    Args:
        service_name: Optional name of the service (e.g., "session-service").
            If provided, log files are named after it; otherwise generic names
            are used.
        logs_dir: Directory receiving the log files. Created if missing.

    Side Effects:
        - Removes default loguru handlers
        - Adds new console and file handlers
        - Creates the logs directory if it doesn't exist

    Note:
        Log level is taken from the LOG_LEVEL setting of the service.
        This function should be called early in the application startup process.
    """

    settings = get_settings(service_name)

    # Remove default handler
    logger.remove()

    # Add console handler with custom format
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>",
        level=settings.LOG_LEVEL,
        colorize=True,
    )

    logs_path = Path(logs_dir)
    logs_path.mkdir(parents=True, exist_ok=True)

    # Determine service-specific log file names
    if service_name:
        service_log_file = logs_path / f"{service_name}.log"
        service_error_file = logs_path / f"{service_name}-error.log"
    else:
        service_log_file = logs_path / "app.log"
        service_error_file = logs_path / "error.log"

    # Add file handler for errors (service-specific)
    logger.add(
        str(service_error_file),
        format=LOG_FORMAT,
        level="ERROR",
        rotation="10 MB",
        retention="30 days",
        compression="zip",
    )

    # Add file handler for all logs (service-specific)
    logger.add(
        str(service_log_file),
        format=LOG_FORMAT,
        level=settings.LOG_LEVEL,
        rotation="50 MB",
        retention="7 days",
        compression="zip",
    )
