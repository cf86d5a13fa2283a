"""
Order ledger: the authoritative list of normalized orders.

Orders arrive from checkout in whatever shape the page had at hand. They
are normalized once on the way in and never merged afterwards: the first
insert of an id wins, later inserts of the same id are ignored. Only the
status of a stored order can change.
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Tuple

from pydantic import ValidationError

from libs.delivery_shared.logging import get_logger
from libs.delivery_shared.metrics import Metrics

from .exceptions import InvalidOrderError
from .models import OrderRecord, to_number, utc_now_iso
from .reconciler import canonicalize, seller_ref_from_raw

logger = get_logger(__name__)


def _field(raw: Any, *names: str) -> Any:
    """First non-None value among ``names`` on a mapping or an object."""
    for name in names:
        if isinstance(raw, Mapping):
            value = raw.get(name)
        else:
            value = getattr(raw, name, None)
        if value is not None:
            return value
    return None


def normalize_order(raw: Any) -> OrderRecord:
    """
    Normalize a loosely shaped order into an OrderRecord.

    Accepts mappings as well as objects exposing the same names as
    attributes. Both the camelCase names used by the web client
    (``restaurantId``, ``totalPrice``, ...) and their snake_case forms are
    read. Every field but ``id`` has a default.

    Args:
        raw: Order-like object from checkout

    Returns:
        Normalized OrderRecord

    Raises:
        InvalidOrderError: If the order has no id
    """
    order_id = _field(raw, "id") if raw is not None else None
    if order_id is None or not str(order_id).strip():
        raise InvalidOrderError(order=raw)

    raw_seller_id = _field(raw, "restaurantId", "restaurant_id")
    seller_obj = _field(raw, "restaurant")
    seller_info = _field(raw, "restaurantInfo", "restaurant_info")

    # totalPrice wins unless it is falsy (0, "", None)
    total = _field(raw, "totalPrice", "total_price")
    if not to_number(total):
        fallback = _field(raw, "total")
        if fallback is not None:
            total = fallback

    created_at = _field(raw, "createdAt", "created_at")

    try:
        record = OrderRecord(
            id=str(order_id),
            seller_id=canonicalize(raw_seller_id, seller_obj, seller_info),
            seller_ref=seller_ref_from_raw(raw_seller_id, seller_obj, seller_info),
            customer_id=_field(raw, "userId", "user_id", "customerId", "customer_id"),
            status=_field(raw, "status"),
            total_price=total,
            created_at=created_at,
            updated_at=_field(raw, "updatedAt", "updated_at") or created_at,
            items=_field(raw, "items"),
            payment_status=_field(raw, "paymentStatus", "payment_status"),
            delivery_address=_field(raw, "deliveryAddress", "delivery_address"),
            special_instructions=_field(
                raw, "specialInstructions", "special_instructions"
            ),
        )
    except ValidationError as e:
        raise InvalidOrderError(str(e), order_id=order_id) from e

    logger.debug(
        f"Normalized order {record.id}: seller '{record.seller_id}' "
        f"(raw {raw_seller_id!r}), {len(record.items)} items"
    )
    return record


class OrderLedger:
    """
    Insertion-ordered collection of OrderRecords keyed by order id.

    ``on_change`` is called after every mutation that changed the ledger;
    the store uses it to mark its metrics stale.
    """

    def __init__(
        self,
        records: Optional[Iterable[OrderRecord]] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self._records: Dict[str, OrderRecord] = {}
        self.on_change = on_change
        if records:
            self.replace_all(records, notify=False)

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    def insert(self, raw: Any) -> Tuple[OrderRecord, bool]:
        """
        Normalize and insert an order.

        Returns:
            (stored record, whether it was inserted). For a known id the
            stored record is the first one and nothing changes.

        Raises:
            InvalidOrderError: If the order has no id
        """
        record = normalize_order(raw)
        existing = self._records.get(record.id)
        if existing is not None:
            logger.debug(f"Order {record.id} already in ledger, ignoring insert")
            return existing, False

        self._records[record.id] = record
        self._changed()
        return record, True

    def upsert(self, raw: Any) -> bool:
        """
        Insert an order unless its id is already known.

        Orders without an id are logged and dropped; this never raises.

        Returns:
            True if the ledger changed
        """
        try:
            _, inserted = self.insert(raw)
        except InvalidOrderError as e:
            logger.warning(f"Rejected order: {e}")
            Metrics.counter("orders_rejected", {"reason": e.code})
            return False

        if inserted:
            Metrics.counter("orders_inserted")
        return inserted

    def update_status(self, order_id: str, status: str) -> bool:
        """
        Change the status of a stored order.

        Unknown ids and empty statuses are ignored.

        Returns:
            True if the ledger changed
        """
        record = self._records.get(str(order_id))
        if record is None:
            logger.info(f"Status update for unknown order {order_id} ignored")
            return False

        new_status = str(status).strip() if status is not None else ""
        if not new_status:
            logger.warning(f"Empty status for order {order_id} ignored")
            return False

        self._records[record.id] = record.model_copy(
            update={"status": new_status, "updated_at": utc_now_iso()}
        )
        logger.debug(f"Order {order_id} status {record.status} -> {new_status}")
        self._changed()
        return True

    def replace_all(self, records: Iterable[OrderRecord], notify: bool = True) -> None:
        """Swap the ledger contents, keeping the first record of each id."""
        self._records = {}
        for record in records:
            self._records.setdefault(record.id, record)
        logger.info(f"Ledger loaded with {len(self._records)} orders")
        if notify:
            self._changed()

    def get(self, order_id: str) -> Optional[OrderRecord]:
        return self._records.get(order_id)

    def all(self) -> Tuple[OrderRecord, ...]:
        """Read-only view of every record, in insertion order."""
        return tuple(self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._records

    def __iter__(self) -> Iterator[OrderRecord]:
        return iter(self.all())
