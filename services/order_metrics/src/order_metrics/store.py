"""
Order metrics store.

``OrderMetricsStore`` is the state container the dashboard pages share. It
owns the order ledger and the last computed customer and seller summaries,
and keeps them in sync with a dirty flag:

- ``upsert`` / ``update_status`` change the ledger and mark the summaries
  stale;
- ``flush`` recomputes them if stale and saves a snapshot;
- inside a running asyncio loop a flush is scheduled automatically,
  ``recompute_delay_seconds`` after the first mutation of a burst.

Create one per application with ``OrderMetricsStore.create()``, call
``load()`` at startup and pass the instance to whatever needs it.
No public method raises.
"""

import asyncio
import time
from typing import Any, Dict, Optional

from libs.delivery_shared.errors import ServiceError
from libs.delivery_shared.health import format_health_response, status_for
from libs.delivery_shared.logging import get_logger, set_log_level
from libs.delivery_shared.metrics import Metrics
from libs.delivery_shared.models import HealthResponse

from .aggregator import MetricsAggregator, date_range
from .config import OrderMetricsConfig
from .exceptions import RecomputeError
from .ledger import OrderLedger
from .models import (
    CustomerMetrics,
    MetricsSnapshot,
    OrderRecord,
    SellerMetrics,
)
from .storage import JsonFileStorage, StateStorage

logger = get_logger(__name__)

VERSION = "0.3.0"


class OrderMetricsStore:
    """
    Ledger plus derived dashboard metrics.

    Args:
        config: Store configuration; read from the environment when omitted
        storage: Snapshot storage; no persistence when None
        aggregator: Metrics aggregator; built from ``config`` when omitted
        ledger: Order ledger; a new empty one when omitted
    """

    def __init__(
        self,
        config: Optional[OrderMetricsConfig] = None,
        storage: Optional[StateStorage] = None,
        aggregator: Optional[MetricsAggregator] = None,
        ledger: Optional[OrderLedger] = None,
    ):
        self.config = config or OrderMetricsConfig()
        self.storage = storage
        self.aggregator = aggregator or MetricsAggregator(
            recent_orders_limit=self.config.recent_orders_limit,
            popular_items_limit=self.config.popular_items_limit,
        )
        self.ledger = ledger if ledger is not None else OrderLedger()
        self.ledger.on_change = self._mark_dirty

        self.customer_metrics = CustomerMetrics()
        self.seller_metrics: Dict[str, SellerMetrics] = {}
        self.last_updated: Optional[float] = None
        self.last_error: Optional[str] = None
        self._last_failure: Optional[ServiceError] = None

        self._dirty = len(self.ledger) > 0
        self._recomputing = False
        self._flush_handle: Optional[asyncio.TimerHandle] = None

    @classmethod
    def create(
        cls,
        config: Optional[OrderMetricsConfig] = None,
        storage: Optional[StateStorage] = None,
    ) -> "OrderMetricsStore":
        """
        Build a store with the default wiring.

        Uses a JSON file snapshot under ``config.storage_dir`` unless a
        storage is given or persistence is disabled.
        """
        config = config or OrderMetricsConfig()
        set_log_level(config.log_level, "order_metrics", "libs.delivery_shared")
        if storage is None and config.persist_enabled:
            storage = JsonFileStorage(
                config.storage_dir, config.storage_key, config.snapshot_version
            )
        return cls(config=config, storage=storage)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert(self, raw_order: Any) -> bool:
        """
        Add an order from checkout. Known ids and orders without an id are
        ignored.

        Returns:
            True if the order was added
        """
        return self.ledger.upsert(raw_order)

    def update_status(self, order_id: str, status: str) -> bool:
        """
        Change the status of a known order.

        Returns:
            True if the order was updated
        """
        return self.ledger.update_status(order_id, status)

    def reset(self) -> None:
        """Forget every order and summary, and persist the empty state."""
        self._cancel_scheduled_flush()
        self.ledger.replace_all([], notify=False)
        self.customer_metrics = CustomerMetrics()
        self.seller_metrics = {}
        self.last_updated = time.time() * 1000
        self.last_error = None
        self._last_failure = None
        self._dirty = False
        self._persist()

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # no event loop, the caller flushes explicitly
            return
        self._flush_handle = loop.call_later(
            self.config.recompute_delay_seconds, self._run_scheduled_flush
        )

    def _run_scheduled_flush(self) -> None:
        self._flush_handle = None
        self.flush()

    def _cancel_scheduled_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def flush(self) -> bool:
        """
        Recompute the summaries if the ledger changed since the last run.

        A flush requested while a recompute is running is dropped; the
        running one reads the ledger as it is. If the recompute fails the
        previous summaries stay in place and the store stays dirty.

        Returns:
            True if the summaries were replaced
        """
        if self._recomputing:
            logger.debug("Recompute already running, flush dropped")
            return False
        if not self._dirty:
            return False

        self._recomputing = True
        self._dirty = False
        try:
            records = self.ledger.all()
            result = self.aggregator.recompute(records)
        except Exception as e:
            self._dirty = True
            self.last_error = str(e)
            self._last_failure = (
                e if isinstance(e, ServiceError) else RecomputeError(str(e))
            )
            logger.error(f"Metrics recompute failed, keeping previous metrics: {e}")
            Metrics.counter("metrics_recompute_failed")
            return False
        finally:
            self._recomputing = False

        self.customer_metrics = result.customer_metrics
        self.seller_metrics = result.seller_metrics_by_key
        self.last_updated = time.time() * 1000
        self.last_error = None
        self._last_failure = None
        Metrics.gauge("ledger_orders", len(records))
        logger.info(
            f"Metrics updated: {len(records)} orders, "
            f"{len(self.seller_metrics)} sellers"
        )

        self._persist()
        return True

    def close(self) -> None:
        """Run any pending flush now instead of waiting for the loop."""
        self._cancel_scheduled_flush()
        self.flush()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        """Current state in its persisted shape."""
        return MetricsSnapshot(
            version=self.config.snapshot_version,
            orders=list(self.ledger.all()),
            customer_metrics=self.customer_metrics,
            seller_metrics=dict(self.seller_metrics),
            last_updated=self.last_updated,
        )

    def _persist(self) -> None:
        if self.storage is None or not self.config.persist_enabled:
            return
        self.storage.save(self.snapshot())

    def load(self) -> bool:
        """
        Restore the persisted snapshot, then recompute once so the stored
        summaries cannot drift from the stored orders.

        Returns:
            True if a snapshot was restored
        """
        if self.storage is None:
            return False

        snapshot = self.storage.load()
        if snapshot is None:
            return False

        self._cancel_scheduled_flush()
        self.ledger.replace_all(snapshot.orders, notify=False)
        self.customer_metrics = snapshot.customer_metrics
        self.seller_metrics = dict(snapshot.seller_metrics)
        self.last_updated = snapshot.last_updated

        self._dirty = True
        self.flush()
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def orders(self) -> tuple:
        """Read-only view of the ledger."""
        return self.ledger.all()

    def get_order(self, order_id: str) -> Optional[OrderRecord]:
        return self.ledger.get(order_id)

    def get_customer_metrics(self, customer_id: Optional[str] = None) -> CustomerMetrics:
        """
        Customer dashboard summary.

        Args:
            customer_id: Limit the summary to this customer's orders. The
                summary is then computed on demand instead of read from the
                last recompute.

        Returns:
            CustomerMetrics, zeroed when there are no matching orders
        """
        if customer_id is None:
            return self.customer_metrics.model_copy(deep=True)

        records = [r for r in self.ledger.all() if r.customer_id == str(customer_id)]
        try:
            return self.aggregator.summarize_customer(records)
        except Exception as e:
            logger.error(f"Customer metrics for '{customer_id}' failed: {e}")
            return CustomerMetrics()

    def get_seller_metrics(self, seller_id: Optional[str]) -> SellerMetrics:
        """
        Seller dashboard summary for an id in any of the formats pages use.

        Returns:
            SellerMetrics, zeroed when no order matches
        """
        try:
            return self.aggregator.lookup_seller_metrics(
                seller_id, self.seller_metrics, self.ledger.all()
            )
        except Exception as e:
            logger.error(f"Seller metrics for '{seller_id}' failed: {e}")
            return SellerMetrics()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health_stats(self) -> Dict[str, Any]:
        """Basic statistics about the store contents."""
        records = self.ledger.all()
        stats: Dict[str, Any] = {
            "total_orders": len(records),
            "seller_keys": sorted(self.seller_metrics),
            "date_range": {"start": None, "end": None},
            "last_updated": self.last_updated,
            "dirty": self._dirty,
            "last_error": self.last_error,
            "error": (
                self._last_failure.to_response().model_dump()
                if self._last_failure is not None
                else None
            ),
        }
        if records:
            try:
                stats["date_range"] = date_range(records)
            except Exception as e:
                logger.warning(f"Could not compute order date range: {e}")
        return stats

    def health(self) -> HealthResponse:
        """Health report: ERROR after a failed recompute, WARNING while stale."""
        stats = self.get_health_stats()
        return format_health_response(
            status=status_for(stats["last_error"], degraded=stats["dirty"]),
            details=stats,
            version=VERSION,
        )
