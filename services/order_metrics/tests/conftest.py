"""
Test configuration for the order metrics store.
"""

import sys
from pathlib import Path

import pytest


# Configure Python path for testing
def setup_python_path():
    """Set up Python path to allow imports from both the service and shared libs."""
    project_root = Path(__file__).parent.parent.parent.parent.absolute()
    service_src = Path(__file__).parent.parent / "src"

    paths_to_add = [str(service_src), str(project_root)]
    for path in paths_to_add:
        if path not in sys.path:
            sys.path.insert(0, path)


# Set up paths immediately when module is imported
setup_python_path()

from order_metrics.config import OrderMetricsConfig  # noqa: E402
from order_metrics.ledger import normalize_order  # noqa: E402
from order_metrics.storage import JsonFileStorage  # noqa: E402
from order_metrics.store import OrderMetricsStore  # noqa: E402


@pytest.fixture
def config(tmp_path):
    return OrderMetricsConfig(
        _env_file=None,
        storage_dir=str(tmp_path / "snapshots"),
        recompute_delay_seconds=0.01,
    )


@pytest.fixture
def storage(config):
    return JsonFileStorage(
        config.storage_dir, config.storage_key, config.snapshot_version
    )


@pytest.fixture
def store(config, storage):
    return OrderMetricsStore(config=config, storage=storage)


@pytest.fixture
def make_order():
    """Build a raw checkout order with sensible defaults."""

    def _make(order_id, **fields):
        order = {
            "id": order_id,
            "restaurantId": "sellerA",
            "userId": "user-1",
            "status": "pending",
            "totalPrice": 10.0,
            "createdAt": "2024-03-01T12:00:00Z",
            "items": [{"name": "Dosa", "quantity": 1}],
        }
        order.update(fields)
        return order

    return _make


@pytest.fixture
def make_record(make_order):
    """Normalized OrderRecord built from a raw order."""

    def _make(order_id, **fields):
        return normalize_order(make_order(order_id, **fields))

    return _make


@pytest.fixture
def sample_orders(make_order):
    """Orders from two sellers arriving in the three seller shapes."""
    return [
        make_order(
            "o1",
            status="delivered",
            totalPrice=100,
            createdAt="2024-03-01T10:00:00Z",
            items=[{"name": "Dosa", "quantity": 2}],
        ),
        make_order(
            "o2",
            status="pending",
            totalPrice=50,
            createdAt="2024-03-02T10:00:00Z",
            items=[{"name": "Dosa", "quantity": 1}],
        ),
        make_order(
            "o3",
            restaurantId=None,
            restaurant={"_id": "64f1c2aa", "name": "Idli House"},
            status="Delivered",
            total="80",
            totalPrice=None,
            createdAt="2024-03-03T10:00:00Z",
            items=[{"name": "Idli", "quantity": 4}],
        ),
        make_order(
            "o4",
            restaurantId=None,
            restaurantInfo={"id": "64f1c2aa", "name": "Idli House"},
            status="cancelled",
            totalPrice=30,
            createdAt="2024-03-04T10:00:00Z",
            items=[{"name": "Vada", "quantity": 1}],
        ),
    ]
