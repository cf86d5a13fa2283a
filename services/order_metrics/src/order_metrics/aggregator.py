"""
Metrics aggregation over the order ledger.

This module derives the customer and seller dashboard summaries from the
ledger contents. Everything here is a pure function of the records passed
in: no state, no I/O, and the same records always give equal results.
"""

from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from libs.delivery_shared.logging import get_logger
from libs.delivery_shared.metrics import Metrics

from .exceptions import RecomputeError
from .models import (
    COMPLETED_STATUS,
    PENDING_STATUSES,
    CustomerMetrics,
    MetricsResult,
    OrderRecord,
    PopularItem,
    SellerMetrics,
)
from .reconciler import match, record_seller_key, resolve_orders_for_seller

logger = get_logger(__name__)

LINE_COLUMNS = ["position", "name", "quantity"]


def _parse_timestamps(values: List[str]) -> pd.Series:
    """ISO strings to UTC timestamps; anything unparsable becomes NaT."""
    return pd.to_datetime(
        pd.Series(values, dtype="object"),
        utc=True,
        errors="coerce",
        format="ISO8601",
    )


def _orders_frame(records: Sequence[OrderRecord]) -> pd.DataFrame:
    """
    One row per record. ``position`` indexes back into ``records``.
    """
    frame = pd.DataFrame(
        {
            "position": list(range(len(records))),
            "seller_key": [record_seller_key(r) for r in records],
            "status": [r.normalized_status for r in records],
            "total_price": [float(r.total_price) for r in records],
        }
    )
    frame["created_at"] = _parse_timestamps([r.created_at for r in records])
    return frame


def _lines_frame(records: Sequence[OrderRecord]) -> pd.DataFrame:
    """One row per order line, flattened across all records."""
    rows = [
        (position, line.name, float(line.quantity))
        for position, record in enumerate(records)
        for line in record.items
    ]
    return pd.DataFrame(rows, columns=LINE_COLUMNS)


class MetricsAggregator:
    """
    Computes dashboard summaries from ledger records.

    Args:
        recent_orders_limit: Length cap of ``recent_orders``
        popular_items_limit: Length cap of ``popular_items``
    """

    def __init__(self, recent_orders_limit: int = 5, popular_items_limit: int = 5):
        self.recent_orders_limit = recent_orders_limit
        self.popular_items_limit = popular_items_limit

    # ------------------------------------------------------------------
    # Frame helpers
    # ------------------------------------------------------------------

    def _counts(self, frame: pd.DataFrame) -> dict:
        """Order counts and delivered revenue of a frame."""
        delivered = frame["status"] == COMPLETED_STATUS
        pending = frame["status"].isin(sorted(PENDING_STATUSES))
        return {
            "total_orders": int(len(frame)),
            "pending_orders": int(pending.sum()),
            "completed_orders": int(delivered.sum()),
            "revenue": float(frame.loc[delivered, "total_price"].sum()),
        }

    def _recent(
        self, frame: pd.DataFrame, records: Sequence[OrderRecord]
    ) -> List[OrderRecord]:
        """Newest first; ties keep ledger order, unparsable dates go last."""
        newest = frame.sort_values(
            "created_at", ascending=False, kind="mergesort", na_position="last"
        ).head(self.recent_orders_limit)
        return [records[int(p)] for p in newest["position"]]

    def _popular(self, lines: pd.DataFrame) -> List[PopularItem]:
        """Summed quantity per item name, highest first; ties keep first-seen order."""
        if lines.empty:
            return []
        totals = (
            lines.groupby("name", sort=False)["quantity"]
            .sum()
            .sort_values(ascending=False, kind="mergesort")
            .head(self.popular_items_limit)
        )
        return [
            PopularItem(name=str(name), count=float(count))
            for name, count in totals.items()
        ]

    def _customer_from_frame(
        self, frame: pd.DataFrame, records: Sequence[OrderRecord]
    ) -> CustomerMetrics:
        counts = self._counts(frame)
        return CustomerMetrics(
            total_orders=counts["total_orders"],
            pending_orders=counts["pending_orders"],
            completed_orders=counts["completed_orders"],
            total_spent=counts["revenue"],
            recent_orders=self._recent(frame, records),
        )

    def _seller_from_frame(
        self,
        frame: pd.DataFrame,
        lines: pd.DataFrame,
        records: Sequence[OrderRecord],
    ) -> SellerMetrics:
        counts = self._counts(frame)
        seller_lines = lines[lines["position"].isin(frame["position"])]
        return SellerMetrics(
            total_orders=counts["total_orders"],
            pending_orders=counts["pending_orders"],
            completed_orders=counts["completed_orders"],
            total_revenue=counts["revenue"],
            popular_items=self._popular(seller_lines),
            recent_orders=self._recent(frame, records),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def summarize_customer(self, records: Sequence[OrderRecord]) -> CustomerMetrics:
        """Customer summary over exactly ``records``."""
        records = list(records)
        if not records:
            return CustomerMetrics()
        return self._customer_from_frame(_orders_frame(records), records)

    def summarize_seller(self, records: Sequence[OrderRecord]) -> SellerMetrics:
        """Seller summary over exactly ``records``, whatever their seller keys."""
        records = list(records)
        if not records:
            return SellerMetrics()
        return self._seller_from_frame(
            _orders_frame(records), _lines_frame(records), records
        )

    def recompute(self, records: Sequence[OrderRecord]) -> MetricsResult:
        """
        Full recompute of both summary shapes.

        Args:
            records: Ledger records in ledger order

        Returns:
            MetricsResult with the customer summary and one seller summary
            per canonical seller key (keys in sorted order)

        Raises:
            RecomputeError: If a record could not be aggregated
        """
        records = list(records)
        if not records:
            return MetricsResult(customer_metrics=CustomerMetrics())

        try:
            with Metrics.timed("metrics_recompute_ms", {"orders": str(len(records))}):
                frame = _orders_frame(records)
                lines = _lines_frame(records)

                customer_metrics = self._customer_from_frame(frame, records)
                seller_metrics = {
                    str(key): self._seller_from_frame(group, lines, records)
                    for key, group in frame.groupby("seller_key", sort=True)
                }
        except Exception as e:
            raise RecomputeError(str(e), orders=len(records)) from e

        logger.debug(
            f"Recomputed metrics for {len(records)} orders across "
            f"{len(seller_metrics)} sellers"
        )
        return MetricsResult(
            customer_metrics=customer_metrics, seller_metrics_by_key=seller_metrics
        )

    def lookup_seller_metrics(
        self,
        query_seller_id: Optional[str],
        precomputed: Mapping[str, SellerMetrics],
        records: Sequence[OrderRecord],
    ) -> SellerMetrics:
        """
        Seller summary for an id in whatever format the caller has.

        Tries, in order:
            1. the precomputed entry under exactly that key
            2. the first precomputed key (sorted) that ``match``es it
            3. a one-off summary over the ledger orders that match it;
               ``precomputed`` is left untouched
            4. a zeroed summary

        Returns:
            A copy of the summary; never raises
        """
        if not query_seller_id:
            return self._tier("default", SellerMetrics())

        query = str(query_seller_id)

        exact = precomputed.get(query)
        if exact is not None:
            return self._tier("exact", exact.model_copy(deep=True))

        for key in sorted(precomputed):
            if match(key, query):
                logger.debug(f"Seller '{query}' matched precomputed key '{key}'")
                return self._tier("key_match", precomputed[key].model_copy(deep=True))

        matching = resolve_orders_for_seller(records, query)
        if matching:
            try:
                return self._tier("ledger_scan", self.summarize_seller(matching))
            except Exception as e:
                logger.error(f"Fallback computation for seller '{query}' failed: {e}")

        return self._tier("default", SellerMetrics())

    @staticmethod
    def _tier(tier: str, metrics: SellerMetrics) -> SellerMetrics:
        Metrics.counter("seller_lookup", {"tier": tier})
        return metrics


def date_range(records: Sequence[OrderRecord]) -> Dict[str, Optional[str]]:
    """Oldest and newest parsable ``created_at`` as ISO strings."""
    stamps = _parse_timestamps([r.created_at for r in records]).dropna()
    if stamps.empty:
        return {"start": None, "end": None}
    return {"start": stamps.min().isoformat(), "end": stamps.max().isoformat()}
