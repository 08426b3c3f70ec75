"""Prometheus metrics for authentication and token rotation."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

AUTH_DECISIONS_TOTAL = Counter(
    "vault_auth_decisions_total",
    "Authentication decisions grouped by outcome",
    ["outcome"],
)

TOKEN_REFRESH_TOTAL = Counter(
    "vault_token_refresh_total",
    "Token refresh attempts grouped by stage and result",
    ["stage", "result"],
)

IDENTITY_LATENCY_SECONDS = Histogram(
    "vault_identity_latency_seconds",
    "Latency of identity provider round trips",
    ["operation"],
)
