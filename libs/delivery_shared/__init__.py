"""
Shared utilities for the delivery dashboard project.

This package provides logging, configuration, error and health helpers
used by every service in the repository.
"""

# Configuration
from .config import BaseServiceConfig

# Errors
from .errors import ServiceError

# Health
from .health import format_health_response, status_for

# Logging
from .logging import get_logger, set_log_level

# Metrics
from .metrics import Metrics

# Models
from .models import ErrorResponse, HealthResponse, HealthStatus

__all__ = [
    # Configuration
    "BaseServiceConfig",
    # Errors
    "ServiceError",
    # Health
    "format_health_response",
    "status_for",
    # Logging
    "get_logger",
    "set_log_level",
    # Metrics
    "Metrics",
    # Models
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
]
