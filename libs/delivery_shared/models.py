# libs/delivery_shared/models.py
"""
Shared Pydantic models used across all services.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error payload.

    Gives UI code one shape to render regardless of which service failed,
    with a machine-readable error code and a human-readable detail message.

    Example:
        {
            "error": "INVALID_ORDER",
            "detail": "Order is missing an id"
        }
    """

    error: str = Field(..., description="Error code or type")
    detail: Optional[str] = Field(None, description="Human-readable error details")


class HealthStatus(str, Enum):
    """
    Health status enum for health reports.
    """

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


class HealthResponse(BaseModel):
    """
    Standard health report model.

    Example:
        {
            "status": "ok",
            "version": "0.3.0",
            "details": {
                "order_count": 12,
                "seller_keys": ["sellerA", "seller-xyz"],
                "last_error": null
            }
        }
    """

    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="Component version identifier")
    details: Dict[str, Any] = Field(
        default_factory=dict, description="Component-specific health details"
    )
