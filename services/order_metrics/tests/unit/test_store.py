# services/order_metrics/tests/unit/test_store.py

import asyncio

import pytest

from libs.delivery_shared.models import HealthStatus
from order_metrics.aggregator import MetricsAggregator
from order_metrics.models import CustomerMetrics, PopularItem, SellerMetrics
from order_metrics.storage import InMemoryStorage, JsonFileStorage
from order_metrics.store import OrderMetricsStore


class FlakyAggregator(MetricsAggregator):
    """Fails every recompute while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def recompute(self, records):
        if self.failing:
            raise RuntimeError("aggregation exploded")
        return super().recompute(records)


class ReentrantAggregator(MetricsAggregator):
    """Calls back into the store while recomputing."""

    def __init__(self, on_recompute):
        super().__init__()
        self.on_recompute = on_recompute
        self.calls = 0

    def recompute(self, records):
        self.calls += 1
        self.on_recompute()
        return super().recompute(records)


@pytest.mark.unit
def test_empty_store_customer_metrics_are_zeroed(store):
    metrics = store.get_customer_metrics()

    assert metrics == CustomerMetrics()
    assert metrics.model_dump(by_alias=True) == {
        "totalOrders": 0,
        "pendingOrders": 0,
        "completedOrders": 0,
        "totalSpent": 0.0,
        "recentOrders": [],
    }
    assert store.get_seller_metrics("sellerA") == SellerMetrics()


@pytest.mark.unit
def test_mutations_mark_dirty_until_flush(store, make_order):
    assert not store.is_dirty
    assert store.flush() is False

    assert store.upsert(make_order("o1", status="delivered", totalPrice=40)) is True
    assert store.is_dirty
    # metrics are only replaced by a flush
    assert store.get_customer_metrics().total_orders == 0

    assert store.flush() is True
    assert not store.is_dirty
    assert store.get_customer_metrics().total_spent == 40.0
    assert store.last_updated is not None

    assert store.flush() is False


@pytest.mark.unit
def test_ignored_mutations_leave_store_clean(store, make_order):
    store.upsert(make_order("o1"))
    store.flush()

    assert store.upsert(make_order("o1", totalPrice=999)) is False
    assert store.upsert({"restaurantId": "sellerA"}) is False
    assert store.update_status("missing", "delivered") is False
    assert not store.is_dirty


@pytest.mark.unit
def test_worked_example_through_store(store, make_order):
    store.upsert(
        make_order(
            "o1", status="delivered", totalPrice=100, items=[{"name": "Dosa", "quantity": 2}]
        )
    )
    store.upsert(
        make_order(
            "o2", status="pending", totalPrice=50, items=[{"name": "Dosa", "quantity": 1}]
        )
    )
    store.flush()

    seller = store.get_seller_metrics("sellerA")

    assert seller.total_orders == 2
    assert seller.pending_orders == 1
    assert seller.completed_orders == 1
    assert seller.total_revenue == 100.0
    assert seller.popular_items == [PopularItem(name="Dosa", count=3)]


@pytest.mark.unit
def test_restaurant_info_key_matches_any_case(store):
    store.upsert(
        {
            "id": "x1",
            "restaurantInfo": {"id": "seller-xyz"},
            "status": "delivered",
            "totalPrice": 20,
        }
    )
    store.flush()

    assert store.get_order("x1").seller_id == "seller-xyz"
    assert list(store.seller_metrics) == ["seller-xyz"]

    metrics = store.get_seller_metrics("SELLER-XYZ")
    assert metrics.total_orders == 1
    assert metrics.total_revenue == 20.0


@pytest.mark.unit
def test_update_status_moves_order_to_completed(store, make_order):
    store.upsert(make_order("o1", status="pending", totalPrice=25))
    store.flush()
    assert store.get_customer_metrics().total_spent == 0.0

    assert store.update_status("o1", "delivered") is True
    assert store.is_dirty
    store.flush()

    metrics = store.get_customer_metrics()
    assert metrics.pending_orders == 0
    assert metrics.completed_orders == 1
    assert metrics.total_spent == 25.0


@pytest.mark.unit
def test_returned_metrics_are_copies(store, sample_orders):
    for order in sample_orders:
        store.upsert(order)
    store.flush()

    metrics = store.get_customer_metrics()
    metrics.recent_orders.clear()
    seller = store.get_seller_metrics("sellerA")
    seller.popular_items.clear()

    assert len(store.get_customer_metrics().recent_orders) == 4
    assert store.get_seller_metrics("sellerA").popular_items


@pytest.mark.unit
def test_customer_metrics_for_one_customer(store, sample_orders, make_order):
    for order in sample_orders:
        store.upsert(order)
    store.upsert(make_order("o5", userId="user-2", status="delivered", totalPrice=15))
    store.flush()

    assert store.get_customer_metrics().total_orders == 5

    other = store.get_customer_metrics("user-2")
    assert other.total_orders == 1
    assert other.total_spent == 15.0
    assert [r.id for r in other.recent_orders] == ["o5"]

    assert store.get_customer_metrics("user-1").total_orders == 4
    assert store.get_customer_metrics("nobody") == CustomerMetrics()


@pytest.mark.unit
def test_reentrant_flush_is_dropped(config, make_order):
    nested = []
    store = None

    def flush_again():
        nested.append(store.flush())

    aggregator = ReentrantAggregator(flush_again)
    store = OrderMetricsStore(config=config, aggregator=aggregator)
    store.upsert(make_order("o1"))

    assert store.flush() is True
    assert nested == [False]
    assert aggregator.calls == 1


@pytest.mark.unit
def test_mutation_during_recompute_keeps_store_dirty(config, make_order):
    store = None

    def late_insert():
        if "late" not in store.ledger:
            store.upsert(make_order("late"))

    store = OrderMetricsStore(config=config, aggregator=ReentrantAggregator(late_insert))
    store.upsert(make_order("o1"))

    assert store.flush() is True
    assert store.is_dirty
    assert store.get_customer_metrics().total_orders == 1

    assert store.flush() is True
    assert store.get_customer_metrics().total_orders == 2


@pytest.mark.unit
def test_failed_recompute_keeps_previous_metrics(config, make_order):
    aggregator = FlakyAggregator()
    store = OrderMetricsStore(config=config, aggregator=aggregator)
    store.upsert(make_order("o1", status="delivered", totalPrice=10))
    store.flush()
    before = store.get_customer_metrics()
    stamp = store.last_updated

    aggregator.failing = True
    store.upsert(make_order("o2", status="delivered", totalPrice=30))

    assert store.flush() is False
    assert store.get_customer_metrics() == before
    assert store.last_updated == stamp
    assert store.is_dirty
    assert "aggregation exploded" in store.last_error
    health = store.health()
    assert health.status == HealthStatus.ERROR
    assert health.details["error"] == {
        "error": "RECOMPUTE_FAILED",
        "detail": "aggregation exploded",
    }

    aggregator.failing = False
    assert store.flush() is True
    assert store.get_customer_metrics().total_spent == 40.0
    assert store.last_error is None
    health = store.health()
    assert health.status == HealthStatus.OK
    assert health.details["error"] is None


@pytest.mark.unit
def test_health_reports_stale_metrics(store, sample_orders):
    assert store.health().status == HealthStatus.OK

    for order in sample_orders:
        store.upsert(order)
    health = store.health()
    assert health.status == HealthStatus.WARNING
    assert health.details["dirty"] is True

    store.flush()
    health = store.health()
    assert health.status == HealthStatus.OK
    assert health.version == "0.3.0"
    assert health.details["total_orders"] == 4
    assert health.details["seller_keys"] == ["64f1c2aa", "sellerA"]
    assert health.details["date_range"] == {
        "start": "2024-03-01T10:00:00+00:00",
        "end": "2024-03-04T10:00:00+00:00",
    }
    assert health.details["last_error"] is None


@pytest.mark.unit
def test_reset_clears_and_persists_empty_state(store, storage, sample_orders):
    for order in sample_orders:
        store.upsert(order)
    store.flush()

    store.reset()

    assert store.orders == ()
    assert store.seller_metrics == {}
    assert store.get_customer_metrics() == CustomerMetrics()
    assert not store.is_dirty
    assert storage.load().orders == []


@pytest.mark.unit
def test_create_uses_json_storage(config):
    store = OrderMetricsStore.create(config)

    assert isinstance(store.storage, JsonFileStorage)
    assert store.storage.path.name == "order-metrics-storage-v1.json"
    assert store.aggregator.recent_orders_limit == 5


@pytest.mark.unit
def test_create_without_persistence(config, make_order):
    config = config.model_copy(update={"persist_enabled": False})
    store = OrderMetricsStore.create(config)

    assert store.storage is None
    assert store.load() is False
    store.upsert(make_order("o1"))
    assert store.flush() is True


@pytest.mark.unit
def test_persist_disabled_skips_explicit_storage(config, make_order):
    storage = InMemoryStorage()
    config = config.model_copy(update={"persist_enabled": False})
    store = OrderMetricsStore(config=config, storage=storage)

    store.upsert(make_order("o1"))
    store.flush()

    assert storage.read_raw() is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_mutations_schedule_one_deferred_flush(store, make_order):
    store.upsert(make_order("o1", status="delivered", totalPrice=10))
    handle = store._flush_handle
    assert handle is not None

    store.upsert(make_order("o2", status="delivered", totalPrice=20))
    store.update_status("o1", "cancelled")
    assert store._flush_handle is handle

    await asyncio.sleep(store.config.recompute_delay_seconds * 5)

    assert not store.is_dirty
    assert store._flush_handle is None
    metrics = store.get_customer_metrics()
    assert metrics.total_orders == 2
    assert metrics.total_spent == 20.0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_close_runs_pending_flush_now(store, make_order):
    store.upsert(make_order("o1"))
    assert store._flush_handle is not None

    store.close()

    assert store._flush_handle is None
    assert not store.is_dirty
    assert store.get_customer_metrics().total_orders == 1
