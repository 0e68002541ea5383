from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Metrics must never break a request path; failures are logged at DEBUG.
# -----------------------------------------------------------------------------
def _best_effort(msg: str, fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:  # pragma: no cover
        _log.debug("%s: %s", msg, e)


image_requests_total = Counter(
    "imagist_requests_total",
    "Image requests by outcome code.",
    ["outcome"],
)

source_bytes_total = Counter(
    "imagist_source_bytes_total",
    "Bytes read from image sources.",
    ["kind"],
)

fetch_latency_seconds = Histogram(
    "imagist_fetch_latency_seconds",
    "Time from issuing the fetch until response headers arrived.",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

transform_latency_seconds = Histogram(
    "imagist_transform_latency_seconds",
    "Time until the transform engine produced its first output chunk.",
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def inc_request(outcome: str) -> None:
    _best_effort(
        "inc imagist_requests_total",
        lambda: image_requests_total.labels(outcome or "unknown").inc(),
    )


def add_source_bytes(kind: str, amount: int) -> None:
    if amount <= 0:
        return
    _best_effort(
        "inc imagist_source_bytes_total",
        lambda: source_bytes_total.labels(kind).inc(amount),
    )


@contextmanager
def observe(histogram: Histogram) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        _best_effort("observe latency", lambda: histogram.observe(elapsed))


__all__ = [
    "image_requests_total",
    "source_bytes_total",
    "fetch_latency_seconds",
    "transform_latency_seconds",
    "inc_request",
    "add_source_bytes",
    "observe",
]
