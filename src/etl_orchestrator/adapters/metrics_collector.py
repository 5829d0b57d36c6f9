"""
In-Memory Metrics Collector.

Stores metric samples in memory and summarizes them per metric name.
"""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional


class InMemoryMetricsCollector:
    """Thread-safe in-memory metrics store."""

    def __init__(self) -> None:
        self._samples: Dict[str, List[Dict[str, Any]]] = {}
        self._lock = Lock()

    def record_timing(
        self,
        name: str,
        duration_seconds: float,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        self._record(name, "timing", float(duration_seconds), tags)

    def record_count(
        self,
        name: str,
        value: int,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        self._record(name, "count", value, tags)

    def record_gauge(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        self._record(name, "gauge", value, tags)

    def get_samples(self, name: str) -> List[Dict[str, Any]]:
        """Raw samples of one metric."""
        with self._lock:
            return list(self._samples.get(name, []))

    def get_metrics(self) -> Dict[str, Any]:
        """
        Summaries per metric.

        Returns:
            name -> {type, count, total, min, max, last}
        """
        with self._lock:
            summary: Dict[str, Any] = {}
            for name, samples in self._samples.items():
                values = [s["value"] for s in samples]
                summary[name] = {
                    "type": samples[-1]["type"],
                    "count": len(values),
                    "total": sum(values),
                    "min": min(values),
                    "max": max(values),
                    "last": values[-1],
                }
            return summary

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def _record(
        self,
        name: str,
        metric_type: str,
        value: float,
        tags: Optional[Dict[str, str]],
    ) -> None:
        sample = {
            "type": metric_type,
            "value": value,
            "tags": dict(tags or {}),
            "timestamp": datetime.now().isoformat(),
        }
        with self._lock:
            self._samples.setdefault(name, []).append(sample)
