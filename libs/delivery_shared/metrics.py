# libs/delivery_shared/metrics.py
"""
Lightweight metric recording.

There is no metrics backend on the client; every observation becomes a
debug log line so it shows up next to the events that produced it.
"""

import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from .logging import get_logger

logger = get_logger(__name__)


def _format_labels(labels: Optional[Dict[str, str]]) -> str:
    return ", ".join(f"{k}={v}" for k, v in (labels or {}).items())


class Metrics:
    """Static helpers for counters, gauges and timings."""

    @staticmethod
    def counter(name: str, labels: Optional[Dict[str, str]] = None):
        """
        Record a counter increment.

        Args:
            name: Metric name
            labels: Optional labels dictionary
        """
        logger.debug(f"METRIC: counter {name} {_format_labels(labels)}")

    @staticmethod
    def gauge(name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record the current value of a gauge."""
        logger.debug(f"METRIC: gauge {name}={value} {_format_labels(labels)}")

    @staticmethod
    def histogram(name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record one observation of a distribution (e.g. a duration in ms)."""
        logger.debug(f"METRIC: histogram {name}={value} {_format_labels(labels)}")

    @staticmethod
    @contextmanager
    def timed(name: str, labels: Optional[Dict[str, str]] = None) -> Iterator[None]:
        """
        Time the wrapped block and record it as a histogram in milliseconds.

        The observation is recorded even when the block raises.
        """
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)
            Metrics.histogram(name, elapsed_ms, labels)
