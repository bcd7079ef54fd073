"""Core module exports."""

from covplane.core.errors import (
    CapabilityError,
    CollectionError,
    ConfigError,
    CovPlaneError,
    ErrorCode,
    GenerationError,
    InternalError,
    ProviderInitError,
)
from covplane.core.logging import (
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)
from covplane.core.progress import get_console, pluralize, status

__all__ = [
    # Errors
    "CapabilityError",
    "CollectionError",
    "ConfigError",
    "CovPlaneError",
    "ErrorCode",
    "GenerationError",
    "InternalError",
    "ProviderInitError",
    # Logging
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
    # Console
    "get_console",
    "pluralize",
    "status",
]
