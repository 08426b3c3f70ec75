"""Prometheus metrics for the per-user object namespace."""

from __future__ import annotations

from prometheus_client import Counter

STORAGE_OPERATIONS_TOTAL = Counter(
    "vault_storage_operations_total",
    "Object store operations grouped by operation and result",
    ["operation", "result"],
)

STORAGE_UPLOAD_BYTES_TOTAL = Counter(
    "vault_storage_upload_bytes_total",
    "Total bytes uploaded into user namespaces",
)
