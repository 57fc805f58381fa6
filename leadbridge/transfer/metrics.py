"""Prometheus metrics helpers for the transfer engine."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_salesforce_auth_attempts = Counter(
    "transfer_salesforce_auth_attempts_total",
    "Salesforce adapter authentication attempts by outcome.",
    ["outcome"],
)
_transfer_counter = Counter(
    "transfer_leads_total",
    "Lead transfer attempts by outcome.",
    ["outcome"],
)
_transfer_duration = Histogram(
    "transfer_lead_duration_seconds",
    "Duration of a full lead transfer in seconds.",
    buckets=(0.25, 0.5, 1, 2, 5, 10, 30, 60),
)
_field_provisioning_counter = Counter(
    "transfer_custom_fields_total",
    "Custom field provisioning outcomes.",
    ["outcome"],
)
_picklist_lookup_counter = Counter(
    "transfer_picklist_lookups_total",
    "Picklist value lookups by source (cache, remote, fallback).",
    ["source"],
)
_reconcile_counter = Counter(
    "transfer_reconcile_results_total",
    "Reconciliation results by status code.",
    ["status"],
)


def record_salesforce_auth_attempt(outcome: Literal["success", "failure"]) -> None:
    """Increment the Salesforce adapter authentication counter."""

    _salesforce_auth_attempts.labels(outcome=outcome).inc()


def record_transfer(
    *,
    outcome: Literal["success", "failed", "blocked", "duplicate"],
    duration_seconds: float,
) -> None:
    """Capture metrics for a single lead transfer."""

    _transfer_counter.labels(outcome=outcome).inc()
    _transfer_duration.observe(duration_seconds)


def record_field_provisioning(outcome: Literal["created", "skipped", "failed"], count: int = 1) -> None:
    if count <= 0:
        return
    _field_provisioning_counter.labels(outcome=outcome).inc(count)


def record_picklist_lookup(source: Literal["cache", "remote", "fallback"]) -> None:
    _picklist_lookup_counter.labels(source=source).inc()


def record_reconcile_result(status: str) -> None:
    _reconcile_counter.labels(status=status).inc()
