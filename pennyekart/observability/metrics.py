"""In-process metrics: counters, gauges, latency histograms and recent events."""
from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from pennyekart.config import Config

Labels = Tuple[Tuple[str, str], ...]
MetricKey = Tuple[str, Labels]


def _freeze(labels: Optional[Dict[str, str]]) -> Labels:
    if not labels:
        return ()
    return tuple(sorted((key, str(value)) for key, value in labels.items()))


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    min_value: float = field(default=float("inf"))
    max_value: float = field(default=float("-inf"))

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min_value = min(self.min_value, value)
        self.max_value = max(self.max_value, value)

    def snapshot(self) -> Dict[str, Any]:
        if not self.count:
            return {"count": 0, "avg": 0.0, "min": None, "max": None}
        return {
            "count": self.count,
            "avg": self.total / self.count,
            "min": self.min_value,
            "max": self.max_value,
        }


class _Registry:
    def __init__(self, max_events: int) -> None:
        self.lock = threading.Lock()
        self.counters: Dict[MetricKey, float] = defaultdict(float)
        self.gauges: Dict[MetricKey, float] = {}
        self.histograms: Dict[MetricKey, Histogram] = {}
        self.events: Deque[Dict[str, Any]] = deque(maxlen=max_events)

    def clear(self) -> None:
        with self.lock:
            self.counters.clear()
            self.gauges.clear()
            self.histograms.clear()
            self.events.clear()


_registry = _Registry(Config.METRICS_MAX_EVENTS)


def increment_counter(name: str, amount: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
    with _registry.lock:
        _registry.counters[(name, _freeze(labels))] += amount


def set_gauge(name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
    with _registry.lock:
        _registry.gauges[(name, _freeze(labels))] = value


def observe_latency(name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
    with _registry.lock:
        _registry.histograms.setdefault((name, _freeze(labels)), Histogram()).observe(value)


@contextmanager
def timed(name: str, labels: Optional[Dict[str, str]] = None) -> Iterator[None]:
    """Observe the wall time of the wrapped block in milliseconds."""
    started = time.perf_counter()
    try:
        yield
    finally:
        observe_latency(name, (time.perf_counter() - started) * 1000, labels)


def record_event(name: str, payload: Dict[str, Any]) -> None:
    with _registry.lock:
        _registry.events.append({"name": name, "timestamp": time.time(), "payload": payload})


def _group(items, render) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for (name, labels), value in items:
        grouped[name].append({"labels": dict(labels), **render(value)})
    return dict(grouped)


def get_metrics_snapshot() -> Dict[str, Any]:
    with _registry.lock:
        return {
            "counters": _group(_registry.counters.items(), lambda v: {"value": v}),
            "gauges": _group(_registry.gauges.items(), lambda v: {"value": v}),
            "histograms": _group(_registry.histograms.items(), lambda h: {"stats": h.snapshot()}),
            "events": list(_registry.events),
        }


def get_counter_value(name: str, labels: Optional[Dict[str, str]] = None) -> float:
    with _registry.lock:
        return _registry.counters.get((name, _freeze(labels)), 0.0)


def reset_metrics() -> None:
    """Testing helper."""
    _registry.clear()
