"""Order metrics exceptions."""

from libs.delivery_shared.errors import ServiceError


class OrderMetricsError(ServiceError):
    """
    Structured exception for order metrics operations.

    These never cross the store's public methods; the store catches them,
    logs them and returns a neutral value instead.
    """

    _default_messages = {
        "INVALID_ORDER": "Order is missing an id",
        "STORAGE_FAILURE": "Persisted state could not be read or written",
        "SNAPSHOT_VERSION_MISMATCH": "Persisted snapshot has an unsupported version",
        "RECOMPUTE_FAILED": "Metrics recompute failed",
    }


class InvalidOrderError(OrderMetricsError):
    def __init__(self, message=None, **context):
        super().__init__("INVALID_ORDER", message, **context)


class StorageError(OrderMetricsError):
    def __init__(self, code="STORAGE_FAILURE", message=None, **context):
        super().__init__(code, message, **context)


class RecomputeError(OrderMetricsError):
    def __init__(self, message=None, **context):
        super().__init__("RECOMPUTE_FAILED", message, **context)
