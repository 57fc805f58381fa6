# leadbridge/models/field_config.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db, utcnow


class LeadFieldConfig(BaseModel):
    """Per-tenant field transfer configuration (active fields, labels, aliases)."""

    __tablename__ = "lead_field_configs"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True, index=True)
    active_fields_json: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    custom_labels_json: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    aliases_json: Mapped[dict] = mapped_column(
        db.JSON,
        nullable=False,
        default=dict,
        comment="Source field name -> remote field name overrides.",
    )
    last_updated: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<LeadFieldConfig tenant={self.tenant_id} active={len(self.active_fields_json or [])}>"
