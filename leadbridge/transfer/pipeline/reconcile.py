"""
Reconcile ledger entries against the authoritative CRM state.

Verification is best-effort: remote failures become an ``ERROR`` status rather
than an exception so a transient outage shows up as a status, not a crash.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable

from simple_salesforce.exceptions import SalesforceExpiredSession

from leadbridge.models import TransferStatus
from leadbridge.models.base import ensure_aware, utcnow
from leadbridge.transfer.metrics import record_reconcile_result
from leadbridge.transfer.pipeline.ledger import LedgerEntry, TransferLedger

logger = logging.getLogger(__name__)


class ReconciledStatusCode(str, enum.Enum):
    NOT_TRANSFERRED = "NOT_TRANSFERRED"
    SUCCESS = "SUCCESS"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


STATUS_LABELS: dict[ReconciledStatusCode, str] = {
    ReconciledStatusCode.NOT_TRANSFERRED: "Not yet transferred",
    ReconciledStatusCode.SUCCESS: "Transferred",
    ReconciledStatusCode.MODIFIED: "Modified after transfer",
    ReconciledStatusCode.DELETED: "Deleted in Salesforce",
    ReconciledStatusCode.NOT_FOUND: "Not found in Salesforce",
    ReconciledStatusCode.ERROR: "Transfer error",
}


@dataclass(frozen=True)
class ReconciledStatus:
    source_record_id: str
    code: ReconciledStatusCode
    detail: str
    remote_id: str | None = None
    transferred_at: datetime | None = None
    last_modified: datetime | None = None

    @property
    def label(self) -> str:
        return STATUS_LABELS[self.code]

    def to_dict(self) -> dict[str, object]:
        return {
            "source_record_id": self.source_record_id,
            "code": self.code.value,
            "label": self.label,
            "detail": self.detail,
            "remote_id": self.remote_id,
            "transferred_at": self.transferred_at.isoformat() if self.transferred_at else None,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }


class TransferReconciler:
    """Classify ledger entries as transferred, modified, deleted, missing or errored."""

    def __init__(
        self,
        ledger: TransferLedger,
        client=None,
        *,
        client_provider: Callable[[], Any] | None = None,
        on_session_expired: Callable[[], None] | None = None,
        object_type: str = "Lead",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if client is None and client_provider is None:
            raise ValueError("TransferReconciler needs a client or a client_provider")
        self.ledger = ledger
        self._client = client
        self.client_provider = client_provider
        self.on_session_expired = on_session_expired
        self.object_type = object_type
        self.clock = clock

    @property
    def client(self):
        """The CRM client, built on first remote call so login failures become ERROR results."""
        if self._client is None:
            self._client = self.client_provider()
        return self._client

    def _drop_expired_client(self) -> None:
        if self.client_provider is not None:
            self._client = None
        if self.on_session_expired is not None:
            self.on_session_expired()

    def verify(self, tenant_id: str, source_record_id: str) -> ReconciledStatus:
        entry = self.ledger.get_status(tenant_id, source_record_id)
        if entry is None:
            result = ReconciledStatus(
                source_record_id=source_record_id,
                code=ReconciledStatusCode.NOT_TRANSFERRED,
                detail="No transfer has been recorded for this lead.",
            )
            record_reconcile_result(result.code.value)
            return result

        result = self._classify(entry)
        self.ledger.mark_reconciled(tenant_id, source_record_id, result.code.value, at=self.clock())
        record_reconcile_result(result.code.value)
        logger.info(
            "Transfer reconciled",
            extra={
                "tenant_id": tenant_id,
                "source_record_id": source_record_id,
                "status": result.code.value,
            },
        )
        return result

    def _classify(self, entry: LedgerEntry) -> ReconciledStatus:
        transferred_at = ensure_aware(entry.transferred_at)
        if not entry.remote_id:
            detail = entry.error_message or f"Last transfer attempt ended with status {entry.status.value}."
            if entry.status is TransferStatus.PENDING and not entry.error_message:
                detail = "Transfer has not completed."
            return ReconciledStatus(
                source_record_id=entry.source_record_id,
                code=ReconciledStatusCode.ERROR,
                detail=detail,
                transferred_at=transferred_at,
            )

        try:
            remote = self.client.query_record(self.object_type, entry.remote_id)
        except Exception as exc:  # verification never propagates remote errors
            if isinstance(exc, SalesforceExpiredSession):
                self._drop_expired_client()
            logger.warning(
                "Reconciliation query failed",
                extra={"remote_id": entry.remote_id, "error": str(exc)},
            )
            return ReconciledStatus(
                source_record_id=entry.source_record_id,
                code=ReconciledStatusCode.ERROR,
                detail=f"Verification failed: {exc}",
                remote_id=entry.remote_id,
                transferred_at=transferred_at,
            )

        if remote is None:
            return ReconciledStatus(
                source_record_id=entry.source_record_id,
                code=ReconciledStatusCode.NOT_FOUND,
                detail=f"{self.object_type} {entry.remote_id} no longer exists in Salesforce.",
                remote_id=entry.remote_id,
                transferred_at=transferred_at,
            )

        last_modified = ensure_aware(remote.last_modified)
        if remote.is_deleted:
            return ReconciledStatus(
                source_record_id=entry.source_record_id,
                code=ReconciledStatusCode.DELETED,
                detail=f"{self.object_type} {entry.remote_id} was deleted in Salesforce.",
                remote_id=entry.remote_id,
                transferred_at=transferred_at,
                last_modified=last_modified,
            )

        if last_modified is not None and transferred_at is not None and last_modified > transferred_at:
            return ReconciledStatus(
                source_record_id=entry.source_record_id,
                code=ReconciledStatusCode.MODIFIED,
                detail=f"Edited in Salesforce on {last_modified.isoformat()} after the transfer.",
                remote_id=entry.remote_id,
                transferred_at=transferred_at,
                last_modified=last_modified,
            )

        return ReconciledStatus(
            source_record_id=entry.source_record_id,
            code=ReconciledStatusCode.SUCCESS,
            detail=f"Transferred as {self.object_type} {entry.remote_id}.",
            remote_id=entry.remote_id,
            transferred_at=transferred_at,
            last_modified=last_modified,
        )

    def verify_batch(self, tenant_id: str, source_record_ids: Iterable[str]) -> dict[str, ReconciledStatus]:
        return {record_id: self.verify(tenant_id, record_id) for record_id in dict.fromkeys(source_record_ids)}

    def reconcile_tenant(self, tenant_id: str, *, limit: int | None = None) -> dict[str, int]:
        """
        Verify the ledger entries of a tenant and return counts per status code.

        Without ``limit`` every entry is checked. With it, the entries that have
        gone longest without a check come first, so repeated runs cycle through
        the whole ledger.
        """

        counts = {code.value: 0 for code in ReconciledStatusCode}
        for entry in self.ledger.get_reconcile_queue(tenant_id, limit=limit):
            result = self.verify(tenant_id, entry.source_record_id)
            counts[result.code.value] += 1
        logger.info("Tenant reconciliation finished", extra={"tenant_id": tenant_id, "counts": counts})
        return counts
