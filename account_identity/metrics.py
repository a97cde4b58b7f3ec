"""Prometheus counters for authentication and account lifecycle activity."""

from __future__ import annotations

from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "account_login_attempts_total",
    "Login attempts grouped by outcome.",
    ["outcome"],
)

LIFECYCLE_TRANSITIONS = Counter(
    "account_lifecycle_transitions_total",
    "Account lifecycle transitions grouped by action.",
    ["action"],
)
