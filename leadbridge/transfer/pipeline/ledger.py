"""
Tenant-scoped ledger of the latest transfer outcome per source lead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Mapping, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadbridge.models import LeadTransferStatus, TransferStatus, db
from leadbridge.models.base import ensure_aware, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """Detached view of a ledger row; placeholders carry no timestamps."""

    tenant_id: str
    source_record_id: str
    status: TransferStatus
    remote_id: str | None = None
    error_message: str | None = None
    transferred_at: datetime | None = None
    last_updated: datetime | None = None
    last_reconciled_at: datetime | None = None
    last_reconciled_status: str | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.transferred_at is None

    @classmethod
    def pending(cls, tenant_id: str, source_record_id: str) -> "LedgerEntry":
        return cls(tenant_id=tenant_id, source_record_id=source_record_id, status=TransferStatus.PENDING)

    @classmethod
    def from_row(cls, row: LeadTransferStatus) -> "LedgerEntry":
        return cls(
            tenant_id=row.tenant_id,
            source_record_id=row.source_record_id,
            status=TransferStatus(row.status),
            remote_id=row.remote_id,
            error_message=row.error_message,
            transferred_at=ensure_aware(row.transferred_at),
            last_updated=ensure_aware(row.last_updated),
            last_reconciled_at=ensure_aware(row.last_reconciled_at),
            last_reconciled_status=row.last_reconciled_status,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "tenant_id": self.tenant_id,
            "source_record_id": self.source_record_id,
            "status": self.status.value,
            "remote_id": self.remote_id,
            "error_message": self.error_message,
            "transferred_at": self.transferred_at.isoformat() if self.transferred_at else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "last_reconciled_at": self.last_reconciled_at.isoformat() if self.last_reconciled_at else None,
            "last_reconciled_status": self.last_reconciled_status,
        }


class TransferLedger:
    """
    Upsert/read facade over ``LeadTransferStatus``.

    Every query is filtered by tenant; the ledger holds only the latest outcome
    per (tenant, source record) and never appends history.
    """

    def __init__(self, session: Session | None = None, *, clock: Callable[[], datetime] = utcnow):
        self.session: Session = session or db.session
        self.clock = clock

    def _row(self, tenant_id: str, source_record_id: str) -> LeadTransferStatus | None:
        return (
            self.session.query(LeadTransferStatus)
            .filter(
                LeadTransferStatus.tenant_id == tenant_id,
                LeadTransferStatus.source_record_id == source_record_id,
            )
            .one_or_none()
        )

    def set_status(
        self,
        tenant_id: str,
        source_record_id: str,
        status: TransferStatus | str,
        *,
        remote_id: str | None = None,
        error_message: str | None = None,
    ) -> LedgerEntry:
        status = TransferStatus(status)
        now = self.clock()

        row = self._row(tenant_id, source_record_id)
        if row is None:
            row = LeadTransferStatus(tenant_id=tenant_id, source_record_id=source_record_id)
            self.session.add(row)
        self._apply(row, status, remote_id, error_message, now)
        try:
            self.session.commit()
        except IntegrityError:
            # Another writer inserted the same key first; last write wins.
            self.session.rollback()
            row = self._row(tenant_id, source_record_id)
            if row is None:
                raise
            self._apply(row, status, remote_id, error_message, now)
            self.session.commit()

        logger.info(
            "Transfer status recorded",
            extra={
                "tenant_id": tenant_id,
                "source_record_id": source_record_id,
                "status": status.value,
                "remote_id": remote_id,
            },
        )
        return LedgerEntry.from_row(row)

    @staticmethod
    def _apply(
        row: LeadTransferStatus,
        status: TransferStatus,
        remote_id: str | None,
        error_message: str | None,
        now: datetime,
    ) -> None:
        row.status = status
        row.remote_id = remote_id
        row.error_message = error_message
        row.transferred_at = now
        row.last_updated = now
        row.last_reconciled_at = None
        row.last_reconciled_status = None

    def get_status(self, tenant_id: str, source_record_id: str) -> LedgerEntry | None:
        row = self._row(tenant_id, source_record_id)
        return LedgerEntry.from_row(row) if row is not None else None

    def get_batch(self, tenant_id: str, source_record_ids: Iterable[str]) -> dict[str, LedgerEntry]:
        """Entries for ``source_record_ids``; ids without a row map to a Pending placeholder."""

        ids = list(dict.fromkeys(source_record_ids))
        if not ids:
            return {}
        rows = (
            self.session.query(LeadTransferStatus)
            .filter(
                LeadTransferStatus.tenant_id == tenant_id,
                LeadTransferStatus.source_record_id.in_(ids),
            )
            .all()
        )
        found: Mapping[str, LeadTransferStatus] = {row.source_record_id: row for row in rows}
        return {
            record_id: LedgerEntry.from_row(found[record_id])
            if record_id in found
            else LedgerEntry.pending(tenant_id, record_id)
            for record_id in ids
        }

    def get_tenant_statuses(
        self,
        tenant_id: str,
        *,
        status: TransferStatus | None = None,
        limit: int | None = None,
    ) -> Sequence[LedgerEntry]:
        query = self.session.query(LeadTransferStatus).filter(LeadTransferStatus.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(LeadTransferStatus.status == status)
        query = query.order_by(LeadTransferStatus.last_updated.desc(), LeadTransferStatus.id.desc())
        if limit:
            query = query.limit(limit)
        return [LedgerEntry.from_row(row) for row in query.all()]

    def get_reconcile_queue(self, tenant_id: str, *, limit: int | None = None) -> Sequence[LedgerEntry]:
        """Entries of a tenant, never-reconciled first, then the longest since their last check."""
        query = (
            self.session.query(LeadTransferStatus)
            .filter(LeadTransferStatus.tenant_id == tenant_id)
            .order_by(
                LeadTransferStatus.last_reconciled_at.is_not(None),
                LeadTransferStatus.last_reconciled_at.asc(),
                LeadTransferStatus.id.asc(),
            )
        )
        if limit:
            query = query.limit(limit)
        return [LedgerEntry.from_row(row) for row in query.all()]

    def delete_status(self, tenant_id: str, source_record_id: str) -> bool:
        deleted = (
            self.session.query(LeadTransferStatus)
            .filter(
                LeadTransferStatus.tenant_id == tenant_id,
                LeadTransferStatus.source_record_id == source_record_id,
            )
            .delete(synchronize_session=False)
        )
        self.session.commit()
        if deleted:
            logger.info(
                "Transfer status deleted",
                extra={"tenant_id": tenant_id, "source_record_id": source_record_id},
            )
        return bool(deleted)

    def mark_reconciled(
        self,
        tenant_id: str,
        source_record_id: str,
        status_code: str,
        *,
        at: datetime | None = None,
    ) -> LedgerEntry | None:
        """Stamp the verification result without touching the transfer timestamps."""
        row = self._row(tenant_id, source_record_id)
        if row is None:
            return None
        row.last_reconciled_at = at or self.clock()
        row.last_reconciled_status = status_code
        self.session.commit()
        return LedgerEntry.from_row(row)
