"""
Salesforce client used by the transfer engine.

Wraps a ``simple_salesforce.Salesforce`` connection behind the small set of
calls the engine relies on: object describe, custom field creation through the
metadata API, record create, record lookup (including deleted rows) and
attachment upload.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from simple_salesforce import Salesforce, format_soql

from leadbridge.transfer.adapters.salesforce import _login_kwargs, ensure_salesforce_adapter_ready

logger = logging.getLogger(__name__)

# Matches "(CODE, message)" as well as repr'd tuples "('CODE', 'message')"
_METADATA_ERROR_PATTERN = re.compile(r"\(\s*['\"]?([A-Z_]+)['\"]?,\s*['\"]?(.*?)['\"]?\s*\)(?=,|\]|$)", re.MULTILINE)
_OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


@dataclass(frozen=True)
class FieldCreateError:
    status_code: str
    message: str


@dataclass(frozen=True)
class FieldCreateOutcome:
    """Result of a single metadata create call."""

    full_name: str
    success: bool
    errors: tuple[FieldCreateError, ...] = ()


@dataclass(frozen=True)
class RemoteRecordState:
    """Current state of a record as reported by the CRM."""

    record_id: str
    is_deleted: bool
    last_modified: datetime | None
    status: str | None = None


def parse_salesforce_datetime(raw: str | None) -> datetime | None:
    """Parse Salesforce timestamps (``...Z`` or ``...+0000``) into aware UTC datetimes."""

    if not raw:
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    candidate = _OFFSET_WITHOUT_COLON.sub(r"\1:\2", candidate)
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_metadata_errors(message: str) -> tuple[FieldCreateError, ...]:
    errors = tuple(
        FieldCreateError(status_code=code, message=text.strip())
        for code, text in _METADATA_ERROR_PATTERN.findall(message)
    )
    if errors:
        return errors
    return (FieldCreateError(status_code="UNKNOWN", message=message.strip() or "Unknown error"),)


class SalesforceLeadClient:
    """Thin adapter over simple-salesforce exposing the calls the engine needs."""

    def __init__(self, sf: Salesforce) -> None:
        self.sf = sf

    def describe(self, object_type: str) -> Mapping[str, Any]:
        return getattr(self.sf, object_type).describe()

    def create_custom_field(
        self,
        *,
        full_name: str,
        label: str,
        field_type: str = "Text",
        length: int = 255,
    ) -> FieldCreateOutcome:
        """
        Create a custom field through the metadata API.

        simple-salesforce raises a plain ``Exception`` carrying
        ``(STATUS_CODE, message)`` pairs when the metadata call reports errors,
        so the message is parsed back into typed errors here.
        """

        mdapi = self.sf.mdapi
        custom_field = mdapi.CustomField(
            fullName=full_name,
            label=label,
            type=field_type,
            length=length,
            required=False,
            externalId=False,
            unique=False,
        )
        try:
            mdapi.CustomField.create(custom_field)
        except Exception as exc:  # simple-salesforce raises bare Exception for metadata errors
            return FieldCreateOutcome(
                full_name=full_name,
                success=False,
                errors=_parse_metadata_errors(str(exc)),
            )
        return FieldCreateOutcome(full_name=full_name, success=True)

    def create_record(self, object_type: str, fields: Mapping[str, Any]) -> str:
        result = getattr(self.sf, object_type).create(dict(fields))
        return result["id"]

    def query_record(self, object_type: str, record_id: str) -> RemoteRecordState | None:
        soql = format_soql(
            "SELECT Id, LastModifiedDate, Status, IsDeleted FROM {:literal} WHERE Id = {} LIMIT 1",
            object_type,
            record_id,
        )
        result = self.sf.query(soql, include_deleted=True)
        records: Sequence[Mapping[str, Any]] = result.get("records") or []
        if not records:
            return None
        row = records[0]
        return RemoteRecordState(
            record_id=row.get("Id") or record_id,
            is_deleted=bool(row.get("IsDeleted")),
            last_modified=parse_salesforce_datetime(row.get("LastModifiedDate")),
            status=row.get("Status"),
        )

    def find_by_email(self, object_type: str, email: str) -> str | None:
        soql = format_soql(
            "SELECT Id, Name FROM {:literal} WHERE Email = {} LIMIT 1",
            object_type,
            email,
        )
        result = self.sf.query(soql)
        records = result.get("records") or []
        if not records:
            return None
        return records[0].get("Id")

    def create_attachment(
        self,
        *,
        parent_id: str,
        name: str,
        body: str,
        content_type: str | None = None,
    ) -> str:
        result = self.sf.Attachment.create(
            {
                "Name": name,
                "Body": body,
                "ContentType": content_type or "application/octet-stream",
                "ParentId": parent_id,
            }
        )
        return result["id"]


def create_salesforce_client(env: Mapping[str, str] | None = None) -> SalesforceLeadClient:
    """Instantiate a client using environment credentials."""

    env = os.environ if env is None else env
    ensure_salesforce_adapter_ready(env)
    sf = Salesforce(**_login_kwargs(env))
    logger.debug("Salesforce client created", extra={"sf_instance": getattr(sf, "sf_instance", None)})
    return SalesforceLeadClient(sf)
