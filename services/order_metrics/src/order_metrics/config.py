"""Order metrics store configuration."""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from libs.delivery_shared.config import BaseServiceConfig


class OrderMetricsConfig(BaseServiceConfig):
    """Order metrics store specific configuration."""

    # Persistence settings
    storage_dir: str = Field(
        ".order-metrics",
        description="Directory holding persisted store snapshots",
    )
    storage_key: str = Field(
        "order-metrics-storage-v1",
        description="Name of the persisted snapshot (one JSON file per key)",
    )
    snapshot_version: int = Field(
        1, ge=1, description="Snapshot format version; other versions are ignored"
    )
    persist_enabled: bool = Field(
        True, description="Save a snapshot after every successful recompute"
    )

    # Aggregation settings
    recent_orders_limit: int = Field(
        5, ge=1, description="How many orders recentOrders keeps"
    )
    popular_items_limit: int = Field(
        5, ge=1, description="How many entries popularItems keeps"
    )

    # Deferred recompute, lets a burst of mutations settle first
    recompute_delay_seconds: float = Field(
        0.05, ge=0, description="Delay before a scheduled flush runs"
    )

    model_config = SettingsConfigDict(
        env_prefix="ORDER_METRICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
