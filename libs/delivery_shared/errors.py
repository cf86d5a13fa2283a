"""
Structured exceptions shared across services.

Errors carry a machine-readable ``code`` and a human-readable message.
Subclasses register default messages per code so callers can raise with
only a code.
"""

from typing import Any, Dict, Optional

from .models import ErrorResponse


class ServiceError(Exception):
    """
    Base exception with a stable error code.

    Usage:
        try:
            ledger.insert(raw)
        except ServiceError as e:
            if e.code == "INVALID_ORDER":
                handle_invalid()
    """

    _default_messages: Dict[str, str] = {}

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        **context: Any,
    ):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.context = context
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.context:
            details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({details})"
        return f"[{self.code}] {self.message}"

    def to_response(self) -> ErrorResponse:
        """Convert to the shared error response model."""
        return ErrorResponse(error=self.code, detail=self.message)
