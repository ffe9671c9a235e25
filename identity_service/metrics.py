"""Prometheus counters for authentication activity."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "identity_registrations_total",
    "Accounts successfully registered",
)

LOGIN_ATTEMPTS = Counter(
    "identity_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)

MFA_EVENTS = Counter(
    "identity_mfa_events_total",
    "MFA enrollment and verification events",
    ["event"],
)
