"""
Transfer engine Celery tasks.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from celery import shared_task
from flask import current_app

from leadbridge.transfer.runtime import build_reconciler


@shared_task(name="transfer.healthcheck", bind=True)
def transfer_healthcheck(self) -> dict[str, Any]:
    """Heartbeat task used by worker health checks."""
    now = datetime.now(timezone.utc)
    return {
        "status": "ok",
        "timestamp": now.isoformat(),
        "worker_hostname": self.request.hostname,
    }


@shared_task(name="transfer.reconcile_tenant", bind=True)
def reconcile_tenant(self, *, tenant_id: str, limit: int | None = None) -> dict[str, Any]:
    """Verify every ledger entry of ``tenant_id`` against Salesforce."""
    limit = limit or current_app.config.get("TRANSFER_RECONCILE_BATCH_SIZE")
    started_at = datetime.now(timezone.utc)
    counts = build_reconciler().reconcile_tenant(tenant_id, limit=limit)
    current_app.logger.info(
        "Tenant reconciliation task finished",
        extra={"tenant_id": tenant_id, "counts": counts, "task_id": self.request.id},
    )
    return {
        "tenant_id": tenant_id,
        "counts": counts,
        "started_at": started_at.isoformat(),
        "finished_at": datetime.now(timezone.utc).isoformat(),
    }
