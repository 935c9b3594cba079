"""Prometheus metrics definitions for Trolley."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "trolley_http_requests_total",
    "Total number of HTTP requests processed by the Trolley API",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "trolley_http_request_duration_seconds",
    "Latency of HTTP requests processed by the Trolley API",
    ["method", "path"],
)

ROW_DELETES = Counter(
    "trolley_row_deletes_total",
    "Single row deletes by outcome",
    ["result"],
)

MASS_DELETES = Counter(
    "trolley_mass_deletes_total",
    "Bulk deletes executed by delete type",
    ["delete_type"],
)

DIRECTIVES = Counter(
    "trolley_directives_total",
    "Directives sent to the presentation host",
    ["kind", "status"],
)

AUTO_DELETED_ITEMS = Counter(
    "trolley_auto_deleted_items_total",
    "Expired items removed by the auto delete sweep",
)

__all__ = [
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "ROW_DELETES",
    "MASS_DELETES",
    "DIRECTIVES",
    "AUTO_DELETED_ITEMS",
]
