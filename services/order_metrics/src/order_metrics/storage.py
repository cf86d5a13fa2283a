"""
Persistence adapters for the order metrics store.

Storage is best effort: ``load`` and ``save`` never raise. A snapshot that
cannot be read is treated as no snapshot, a snapshot that cannot be
written is skipped. Backends only implement raw read/write of one JSON
document; decoding, version checks and error handling live in the base
class.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from libs.delivery_shared.logging import get_logger
from libs.delivery_shared.metrics import Metrics

from .exceptions import StorageError
from .models import MetricsSnapshot

logger = get_logger(__name__)


class StateStorage(ABC):
    """
    Abstract storage for one persisted store snapshot.

    Args:
        key: Name of the snapshot, e.g. ``order-metrics-storage-v1``
        snapshot_version: Only snapshots of this version are loaded
    """

    def __init__(self, key: str, snapshot_version: int = 1):
        self.key = key
        self.snapshot_version = snapshot_version

    @abstractmethod
    def read_raw(self) -> Optional[str]:
        """
        Read the stored document.

        Returns:
            The JSON text, or None if nothing is stored
        """
        pass

    @abstractmethod
    def write_raw(self, payload: str) -> None:
        """Replace the stored document with ``payload``."""
        pass

    @abstractmethod
    def remove(self) -> None:
        """Delete the stored document if there is one."""
        pass

    def decode(self, payload: str) -> MetricsSnapshot:
        """
        Parse and version-check a stored document.

        Raises:
            StorageError: If the document is not a valid snapshot
        """
        try:
            snapshot = MetricsSnapshot.model_validate_json(payload)
        except ValueError as e:
            raise StorageError(message=f"Unreadable snapshot: {e}", key=self.key) from e

        if snapshot.version != self.snapshot_version:
            raise StorageError(
                "SNAPSHOT_VERSION_MISMATCH",
                key=self.key,
                found=snapshot.version,
                expected=self.snapshot_version,
            )
        return snapshot

    def load(self) -> Optional[MetricsSnapshot]:
        """
        Load the persisted snapshot.

        Returns:
            The snapshot, or None when nothing usable is stored
        """
        try:
            payload = self.read_raw()
            if payload is None:
                logger.info(f"No persisted snapshot under '{self.key}'")
                return None
            snapshot = self.decode(payload)
        except Exception as e:
            logger.error(f"Failed to load snapshot '{self.key}': {e}")
            Metrics.counter("storage_errors", {"op": "load"})
            return None

        logger.info(
            f"Loaded snapshot '{self.key}' with {len(snapshot.orders)} orders"
        )
        return snapshot

    def save(self, snapshot: MetricsSnapshot) -> bool:
        """
        Persist a snapshot.

        Returns:
            True if the snapshot was written
        """
        try:
            self.write_raw(snapshot.model_dump_json(by_alias=True))
        except Exception as e:
            logger.error(f"Failed to save snapshot '{self.key}': {e}")
            Metrics.counter("storage_errors", {"op": "save"})
            return False

        logger.debug(f"Saved snapshot '{self.key}' ({len(snapshot.orders)} orders)")
        return True

    def clear(self) -> bool:
        """Remove the persisted snapshot. Returns False if removal failed."""
        try:
            self.remove()
        except Exception as e:
            logger.error(f"Failed to remove snapshot '{self.key}': {e}")
            return False
        return True


class JsonFileStorage(StateStorage):
    """
    Snapshot stored as ``<directory>/<key>.json``.

    Writes go to a temporary file that is then moved into place, so a
    crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, directory: str, key: str, snapshot_version: int = 1):
        super().__init__(key, snapshot_version)
        self.directory = Path(directory)

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def read_raw(self) -> Optional[str]:
        if not self.path.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return f.read()

    def write_raw(self, payload: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_path, self.path)

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)


class InMemoryStorage(StateStorage):
    """Process-local storage, for tests and hosts without a writable disk."""

    def __init__(self, key: str = "order-metrics-storage-v1", snapshot_version: int = 1):
        super().__init__(key, snapshot_version)
        self._documents: Dict[str, str] = {}

    def read_raw(self) -> Optional[str]:
        return self._documents.get(self.key)

    def write_raw(self, payload: str) -> None:
        self._documents[self.key] = payload

    def remove(self) -> None:
        self._documents.pop(self.key, None)
