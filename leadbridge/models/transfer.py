"""
SQLAlchemy models for the lead transfer ledger.

One row per (tenant, source record) holds the latest known transfer outcome.
Rows are overwritten on every new transfer attempt and only removed by an
explicit operator delete.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db, utcnow


class TransferStatus(str, enum.Enum):
    """Outcome recorded for the latest transfer attempt."""

    SUCCESS = "Success"
    FAILED = "Failed"
    PENDING = "Pending"


class LeadTransferStatus(BaseModel):
    """Latest transfer outcome for a single source lead within a tenant."""

    __tablename__ = "lead_transfer_statuses"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    source_record_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    status: Mapped[TransferStatus] = mapped_column(
        Enum(
            TransferStatus,
            name="lead_transfer_status_enum",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=TransferStatus.PENDING,
    )
    remote_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    error_message: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    transferred_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    last_updated: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    last_reconciled_at: Mapped[datetime | None] = mapped_column(
        db.DateTime(timezone=True),
        nullable=True,
        comment="When the entry was last verified against the CRM.",
    )
    last_reconciled_status: Mapped[str | None] = mapped_column(
        db.String(32),
        nullable=True,
        comment="Reconciled status code from the latest verification.",
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "source_record_id", name="uq_lead_transfer_tenant_record"),
        Index("idx_lead_transfer_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<LeadTransferStatus tenant={self.tenant_id} record={self.source_record_id} status={self.status}>"
