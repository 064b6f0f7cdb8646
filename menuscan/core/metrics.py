"""Latency timers for upstream model calls."""
import time
from contextlib import contextmanager
from collections import defaultdict

_timers = defaultdict(list)


@contextmanager
def record_latency(name: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        _timers[name].append((time.perf_counter() - start) * 1000.0)


def get_metrics_snapshot():
    snapshot = {}
    for name, values in _timers.items():
        ordered = sorted(values)
        count = len(ordered)
        snapshot[name] = {
            "count": count,
            "avg_ms": round(sum(ordered) / count, 2) if count else 0.0,
            "p95_ms": round(ordered[max(0, int(round(0.95 * (count - 1))))], 2) if count else 0.0,
        }
    return snapshot


def reset_metrics():
    _timers.clear()
