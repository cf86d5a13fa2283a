"""
Seller identifier reconciliation.

Checkout and order pages hand over the seller of an order in different
shapes: a bare id string, a nested ``restaurant`` object carrying ``id`` or
``_id``, or a separate ``restaurantInfo`` object. The helpers here reduce any
of those to one canonical key, and decide whether two keys refer to the same
seller.

Matching is loose: ``match`` accepts case-insensitive equality or
substring containment, which bridges ids that only differ by wrapping
(``"64f1c2"`` vs ``"seller-64f1c2"``). It can also pair two unrelated sellers
when one id happens to contain the other.

None of these functions raise.
"""

from collections.abc import Mapping
from typing import Any, Iterable, List, Optional, Tuple

from libs.delivery_shared.logging import get_logger

from .models import UNKNOWN, OrderRecord, SellerRef

logger = get_logger(__name__)


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (Mapping, SellerRef)):
        return None
    text = str(value)
    return text if text.strip() else None


def _ids_of(obj: Any) -> Tuple[Optional[str], Optional[str]]:
    """(id, alternate id) of a mapping, SellerRef or attribute-bearing object."""
    if obj is None or isinstance(obj, (str, bytes)):
        return None, None
    if isinstance(obj, SellerRef):
        return obj.id, obj.alt_id
    if isinstance(obj, Mapping):
        return _clean(obj.get("id")), _clean(obj.get("_id"))
    return _clean(getattr(obj, "id", None)), _clean(getattr(obj, "_id", None))


def _id_of(obj: Any) -> Optional[str]:
    primary, alternate = _ids_of(obj)
    return primary or alternate


def _name_of(obj: Any) -> Optional[str]:
    if obj is None or isinstance(obj, (str, bytes)):
        return None
    if isinstance(obj, Mapping):
        return _clean(obj.get("name"))
    return _clean(getattr(obj, "name", None))


def _raw_id(raw_seller_id: Any) -> Optional[str]:
    # a "bare id" that turns out to be a wrapped object
    if isinstance(raw_seller_id, (Mapping, SellerRef)):
        return _id_of(raw_seller_id)
    return _clean(raw_seller_id)


def canonicalize(
    raw_seller_id: Any, seller_obj: Any = None, seller_info: Any = None
) -> str:
    """
    Reduce a seller reference to its canonical key.

    Precedence:
        1. ``seller_info.id`` / ``seller_info._id``
        2. ``seller_obj.id`` / ``seller_obj._id``, only when the raw id is
           missing or the ``"unknown"`` sentinel
        3. the raw id itself
        4. ``"unknown"``

    The key keeps its original case; comparisons lower-case it.

    Args:
        raw_seller_id: Bare seller id (``restaurantId``), possibly missing
        seller_obj: Nested seller object (``restaurant``) or a SellerRef
        seller_info: Separate info object (``restaurantInfo``)

    Returns:
        Canonical seller key, never empty
    """
    info_id = _id_of(seller_info)
    if info_id:
        return info_id

    raw = _raw_id(raw_seller_id)
    if not raw or raw == UNKNOWN:
        obj_id = _id_of(seller_obj)
        if obj_id:
            return obj_id

    return raw or UNKNOWN


def seller_ref_from_raw(
    raw_seller_id: Any, seller_obj: Any = None, seller_info: Any = None
) -> SellerRef:
    """
    Capture the seller reference exactly as supplied.

    The ids come from the first shape that carries any: info object, nested
    object, wrapped raw id, then the bare raw id. The name is the first one
    found on the info or nested object.
    """
    name = _name_of(seller_info) or _name_of(seller_obj)

    for source in (seller_info, seller_obj, raw_seller_id):
        if isinstance(source, (str, bytes)):
            continue
        primary, alternate = _ids_of(source)
        if primary or alternate:
            return SellerRef(id=primary, alt_id=alternate, name=name)

    raw = _clean(raw_seller_id)
    return SellerRef(id=raw if raw != UNKNOWN else None, name=name)


def record_seller_key(record: OrderRecord) -> str:
    """Grouping key of a stored record, derived again from its raw reference."""
    return canonicalize(record.seller_id, seller_obj=record.seller_ref)


def match(key: Optional[str], candidate_key: Optional[str]) -> bool:
    """
    Loose seller key comparison.

    True when both keys are non-empty and are equal ignoring case, or when
    either contains the other.
    """
    if not key or not candidate_key:
        return False
    left = str(key).strip().lower()
    right = str(candidate_key).strip().lower()
    if not left or not right:
        return False
    return left == right or left in right or right in left


def record_keys(record: OrderRecord) -> List[str]:
    """Every id an order can be found by: canonical key first, then raw ids."""
    keys = [record.seller_id]
    keys.extend(i for i in record.seller_ref.ids if i not in keys)
    return keys


def resolve_orders_for_seller(
    records: Iterable[OrderRecord], query_seller_id: Optional[str]
) -> List[OrderRecord]:
    """
    Find the orders that belong to a seller whose id format may not match
    the stored keys.

    Args:
        records: Ledger records, in ledger order
        query_seller_id: Seller id as the caller knows it

    Returns:
        Matching records in ledger order; empty when nothing matches
    """
    if not query_seller_id:
        return []

    matched = [
        record
        for record in records
        if any(match(key, query_seller_id) for key in record_keys(record))
    ]
    logger.debug(
        f"Resolved {len(matched)} orders for seller '{query_seller_id}' by fuzzy match"
    )
    return matched
