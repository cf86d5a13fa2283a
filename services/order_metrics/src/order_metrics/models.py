# services/order_metrics/src/order_metrics/models.py
"""
Order metrics models.

Orders are stored in a normalized shape so that dashboard metrics can be
derived from them at any time. Python attributes are snake_case; the
persisted JSON uses the camelCase names the UI already knows
(``totalOrders``, ``popularItems``, ...).
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Statuses are compared lower-cased
PENDING_STATUSES = frozenset({"pending", "preparing", "on-the-way", "out for delivery"})
COMPLETED_STATUS = "delivered"

UNKNOWN = "unknown"
UNKNOWN_ITEM = "Unknown Item"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_number(value: Any) -> Optional[float]:
    """
    Coerce a loosely typed amount to a finite float.

    Returns None for anything that is not a finite number (None, "", "abc",
    NaN, infinity, booleans).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def to_timestamp(value: Any) -> str:
    """
    ISO string for a timestamp given as a date, a datetime, epoch
    milliseconds or any other value (kept as its string form).
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    number = None if isinstance(value, str) else to_number(value)
    if number is not None:
        try:
            return datetime.fromtimestamp(number / 1000, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            pass
    return str(value)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderLine(_CamelModel):
    """One line of an order as far as popularity counting is concerned."""

    name: str = Field(UNKNOWN_ITEM, description="Menu item name", examples=["Dosa"])
    quantity: float = Field(
        1.0, ge=0, description="Units ordered; never negative", examples=[2]
    )

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("name", mode="before")
    def default_name(cls, v):
        """Blank or missing names are grouped under one placeholder."""
        if v is None:
            return UNKNOWN_ITEM
        v = str(v).strip()
        return v or UNKNOWN_ITEM

    @field_validator("quantity", mode="before")
    def coerce_quantity(cls, v):
        """Missing, zero or unusable quantities count the item once."""
        number = to_number(v)
        if not number:
            return 1.0
        return max(number, 0.0)


class SellerRef(_CamelModel):
    """
    Raw seller reference captured at insert time.

    Kept next to the canonical seller key so the key can be derived again
    later (see ``reconciler.record_seller_key``).
    """

    id: Optional[str] = Field(None, description="Seller id as supplied")
    alt_id: Optional[str] = Field(
        None, description="Alternate id, usually a Mongo style _id"
    )
    name: Optional[str] = Field(None, description="Display name, if supplied")

    model_config = ConfigDict(frozen=True)

    @property
    def ids(self) -> List[str]:
        """Non-empty ids in precedence order."""
        return [i for i in (self.id, self.alt_id) if i]


class OrderRecord(_CamelModel):
    """
    A normalized order owned by the ledger.

    Records are immutable; a status change replaces the record with a copy.
    """

    id: str = Field(..., min_length=1, description="Unique order id (upsert key)")
    seller_id: str = Field(
        UNKNOWN, description="Canonical seller key computed at insert time"
    )
    seller_ref: SellerRef = Field(
        default_factory=SellerRef, description="Raw seller reference"
    )
    customer_id: str = Field(UNKNOWN, description="Ordering customer")
    status: str = Field("pending", description="Open status enum")
    total_price: float = Field(0.0, ge=0, description="Order total")
    created_at: str = Field(
        default_factory=utc_now_iso, description="ISO timestamp of creation"
    )
    updated_at: Optional[str] = Field(None, description="ISO timestamp of last change")
    items: List[OrderLine] = Field(default_factory=list)

    # Carried through for dashboard rendering only
    payment_status: str = Field("pending")
    delivery_address: str = Field("")
    special_instructions: str = Field("")

    model_config = ConfigDict(frozen=True)

    @field_validator("id", mode="before")
    def stringify_id(cls, v):
        return str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v

    @field_validator("seller_id", "customer_id", mode="before")
    def default_unknown(cls, v):
        if v is None or v == "":
            return UNKNOWN
        return str(v)

    @field_validator("status", "payment_status", mode="before")
    def default_pending(cls, v):
        if v is None or v == "":
            return "pending"
        return str(v)

    @field_validator("delivery_address", "special_instructions", mode="before")
    def default_blank(cls, v):
        return "" if v is None else str(v)

    @field_validator("total_price", mode="before")
    def coerce_total(cls, v):
        number = to_number(v)
        if number is None:
            return 0.0
        return max(number, 0.0)

    @field_validator("created_at", mode="before")
    def coerce_created_at(cls, v):
        if v is None or v == "":
            return utc_now_iso()
        return to_timestamp(v)

    @field_validator("updated_at", mode="before")
    def coerce_updated_at(cls, v):
        if v is None or v == "":
            return None
        return to_timestamp(v)

    @field_validator("items", mode="before")
    def coerce_items(cls, v):
        """Non-list values become an empty list; scalar lines are dropped."""
        if not isinstance(v, (list, tuple)):
            return []
        lines = []
        for line in v:
            if isinstance(line, OrderLine):
                lines.append(line)
            elif isinstance(line, dict):
                lines.append(
                    {"name": line.get("name"), "quantity": line.get("quantity")}
                )
            elif hasattr(line, "name"):
                lines.append(
                    {"name": line.name, "quantity": getattr(line, "quantity", None)}
                )
        return lines

    @property
    def normalized_status(self) -> str:
        return self.status.strip().lower()

    @property
    def is_pending(self) -> bool:
        return self.normalized_status in PENDING_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.normalized_status == COMPLETED_STATUS


class PopularItem(_CamelModel):
    """Summed quantity of one menu item across a seller's orders."""

    name: str = Field(..., examples=["Dosa"])
    count: Union[int, float] = Field(..., ge=0, examples=[3])

    @field_validator("count", mode="before")
    def whole_counts_as_int(cls, v):
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v


class CustomerMetrics(_CamelModel):
    """
    Customer dashboard summary.

    ``total_spent`` only counts delivered orders.
    """

    total_orders: int = Field(0, ge=0)
    pending_orders: int = Field(0, ge=0)
    completed_orders: int = Field(0, ge=0)
    total_spent: float = Field(0.0, ge=0)
    recent_orders: List[OrderRecord] = Field(
        default_factory=list, description="Newest first"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "totalOrders": 3,
                "pendingOrders": 1,
                "completedOrders": 2,
                "totalSpent": 240.0,
                "recentOrders": [],
            }
        },
    )


class SellerMetrics(_CamelModel):
    """
    Seller dashboard summary for one canonical seller key.

    ``total_revenue`` only counts delivered orders.
    """

    total_orders: int = Field(0, ge=0)
    pending_orders: int = Field(0, ge=0)
    completed_orders: int = Field(0, ge=0)
    total_revenue: float = Field(0.0, ge=0)
    popular_items: List[PopularItem] = Field(
        default_factory=list, description="Highest summed quantity first"
    )
    recent_orders: List[OrderRecord] = Field(
        default_factory=list, description="Newest first"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "totalOrders": 2,
                "pendingOrders": 1,
                "completedOrders": 1,
                "totalRevenue": 100.0,
                "popularItems": [{"name": "Dosa", "count": 3}],
                "recentOrders": [],
            }
        },
    )


class MetricsResult(BaseModel):
    """Output of one full recompute."""

    customer_metrics: CustomerMetrics
    seller_metrics_by_key: Dict[str, SellerMetrics] = Field(default_factory=dict)


class MetricsSnapshot(_CamelModel):
    """
    Everything that is persisted between sessions.

    The recompute-in-progress flag is never part of it.
    """

    version: int = Field(1, ge=1)
    orders: List[OrderRecord] = Field(default_factory=list)
    customer_metrics: CustomerMetrics = Field(default_factory=CustomerMetrics)
    seller_metrics: Dict[str, SellerMetrics] = Field(default_factory=dict)
    last_updated: Optional[float] = Field(
        None, description="Epoch milliseconds of the last recompute"
    )
