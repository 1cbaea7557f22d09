"""Prometheus metrics for bitwarden-reader.

All metrics live in the default registry and are exposed by the
``GET /metrics`` route.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

hub_connections = Gauge(
    "bwreader_hub_connections",
    "Number of WebSocket connections currently registered with the hub.",
)

hub_publishes_total = Counter(
    "bwreader_hub_publishes_total",
    "Snapshot publish attempts, by outcome (accepted or dropped).",
    ["outcome"],
)

hub_evictions_total = Counter(
    "bwreader_hub_evictions_total",
    "Connections removed because their outbound queue was full.",
)

resolver_outcomes_total = Counter(
    "bwreader_resolver_outcomes_total",
    "BitwardenSecret lookups, by classified outcome.",
    ["outcome"],
)

snapshot_duration_seconds = Histogram(
    "bwreader_snapshot_duration_seconds",
    "Time taken to build one snapshot of all configured secrets.",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

trigger_sync_total = Counter(
    "bwreader_trigger_sync_total",
    "Force-sync annotations applied, by result.",
    ["result"],
)
