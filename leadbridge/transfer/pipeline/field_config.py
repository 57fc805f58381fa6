"""
Per-tenant field configuration: active fields, display labels and field aliases.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Mapping

from sqlalchemy.orm import Session

from leadbridge.models import LeadFieldConfig, db
from leadbridge.models.base import ensure_aware, utcnow
from leadbridge.transfer.pipeline.classify import is_dynamic_field
from leadbridge.transfer.pipeline.payload import STANDARD_LEAD_FIELDS

logger = logging.getLogger(__name__)

_ALIAS_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(__c)?$")


class InvalidFieldAlias(ValueError):
    """Raised when a field alias cannot be used as a remote field name."""

    def __init__(self, source_name: str, alias: str, reason: str):
        super().__init__(f"Invalid alias {alias!r} for field {source_name!r}: {reason}")
        self.source_name = source_name
        self.alias = alias
        self.reason = reason


@dataclass(frozen=True)
class FieldConfig:
    tenant_id: str
    active_fields: list[str] | None = None
    custom_labels: dict[str, str] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "tenant_id": self.tenant_id,
            "active_fields": self.active_fields,
            "custom_labels": self.custom_labels,
            "aliases": self.aliases,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


def validate_aliases(aliases: Mapping[str, str] | None) -> dict[str, str]:
    """Return cleaned aliases, raising ``InvalidFieldAlias`` for the first bad entry."""

    cleaned: dict[str, str] = {}
    for source_name, alias in (aliases or {}).items():
        alias = (alias or "").strip()
        if not alias:
            continue
        if is_dynamic_field(source_name):
            raise InvalidFieldAlias(source_name, alias, "dynamic fields have a fixed remote name")
        if source_name in STANDARD_LEAD_FIELDS:
            raise InvalidFieldAlias(source_name, alias, "standard lead fields keep their Salesforce name")
        if alias == source_name:
            raise InvalidFieldAlias(source_name, alias, "alias must differ from the field name")
        if not _ALIAS_PATTERN.match(alias):
            raise InvalidFieldAlias(source_name, alias, "not a valid Salesforce field name")
        cleaned[source_name] = alias
    return cleaned


class FieldConfigService:
    """Read and upsert ``LeadFieldConfig`` rows."""

    def __init__(self, session: Session | None = None, *, clock: Callable[[], datetime] = utcnow):
        self.session: Session = session or db.session
        self.clock = clock

    def _row(self, tenant_id: str) -> LeadFieldConfig | None:
        return self.session.query(LeadFieldConfig).filter(LeadFieldConfig.tenant_id == tenant_id).one_or_none()

    def get_config(self, tenant_id: str) -> FieldConfig:
        row = self._row(tenant_id)
        if row is None:
            return FieldConfig(tenant_id=tenant_id)
        return FieldConfig(
            tenant_id=tenant_id,
            active_fields=list(row.active_fields_json or []),
            custom_labels=dict(row.custom_labels_json or {}),
            aliases=dict(row.aliases_json or {}),
            last_updated=ensure_aware(row.last_updated),
        )

    def set_config(
        self,
        tenant_id: str,
        active_fields: Iterable[str],
        custom_labels: Mapping[str, str] | None = None,
        aliases: Mapping[str, str] | None = None,
    ) -> FieldConfig:
        cleaned_aliases = validate_aliases(aliases)
        active = list(dict.fromkeys(name.strip() for name in active_fields if name and name.strip()))
        labels = {name: label.strip() for name, label in (custom_labels or {}).items() if label and label.strip()}

        row = self._row(tenant_id)
        if row is None:
            row = LeadFieldConfig(tenant_id=tenant_id)
            self.session.add(row)
        row.active_fields_json = active
        row.custom_labels_json = labels
        row.aliases_json = cleaned_aliases
        row.last_updated = self.clock()
        self.session.commit()

        logger.info(
            "Field configuration saved",
            extra={"tenant_id": tenant_id, "active_fields": len(active), "aliases": len(cleaned_aliases)},
        )
        return self.get_config(tenant_id)

    def get_active_fields(self, tenant_id: str) -> list[str] | None:
        return self.get_config(tenant_id).active_fields

    def add_active_field(self, tenant_id: str, field_name: str) -> FieldConfig:
        config = self.get_config(tenant_id)
        active = list(config.active_fields or [])
        if field_name not in active:
            active.append(field_name)
        return self.set_config(tenant_id, active, config.custom_labels, config.aliases)

    def remove_active_field(self, tenant_id: str, field_name: str) -> FieldConfig:
        config = self.get_config(tenant_id)
        active = [name for name in (config.active_fields or []) if name != field_name]
        return self.set_config(tenant_id, active, config.custom_labels, config.aliases)
