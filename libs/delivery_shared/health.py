# libs/delivery_shared/health.py
"""
Health report helpers for all services.
"""

from typing import Any, Dict, Optional

from .models import HealthResponse, HealthStatus


def format_health_response(
    status: HealthStatus, details: Dict[str, Any], version: str
) -> HealthResponse:
    """
    Create a standardized health response.

    Args:
        status: Health status
        details: Service-specific health details
        version: Service version

    Returns:
        Formatted health response
    """
    return HealthResponse(status=status, details=details, version=version)


def status_for(last_error: Optional[str], degraded: bool = False) -> HealthStatus:
    """Pick a status: ERROR when the last operation failed, WARNING when degraded."""
    if last_error:
        return HealthStatus.ERROR
    if degraded:
        return HealthStatus.WARNING
    return HealthStatus.OK
