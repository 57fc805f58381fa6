"""
Assemble the flat Salesforce field map for a lead write.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from leadbridge.transfer.pipeline.classify import is_field_active, match_dynamic_field

logger = logging.getLogger(__name__)

DEFAULT_LEAD_SOURCE = "LeadSuccess API"
MANDATORY_DEFAULT = "Unknown"
MANDATORY_FIELDS = ("LastName", "Company")

STANDARD_LEAD_FIELDS = frozenset(
    {
        "LastName",
        "FirstName",
        "Company",
        "Email",
        "Phone",
        "MobilePhone",
        "Title",
        "Industry",
        "Description",
        "Street",
        "City",
        "State",
        "PostalCode",
        "Country",
        "CountryCode",
        "Website",
        "Salutation",
        "LeadSource",
        "Status",
    }
)

SYSTEM_FIELDS = frozenset(
    {
        "__metadata",
        "KontaktViewId",
        "Id",
        "CreatedDate",
        "LastModifiedDate",
        "CreatedById",
        "LastModifiedById",
        "DeviceId",
        "DeviceRecordId",
        "RequestBarcode",
        "EventId",
        "SystemModstamp",
        "AttachmentIdList",
        "IsReviewed",
        "StatusMessage",
    }
)

SENTINEL_VALUES = frozenset({"N/A", "undefined", "null"})


def clean_value(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped in SENTINEL_VALUES:
            return ""
        return stripped
    return value


def build_lead_payload(
    record: Mapping[str, Any],
    *,
    active_fields: Iterable[str] | None = None,
    aliases: Mapping[str, str] | None = None,
    lead_source: str = DEFAULT_LEAD_SOURCE,
) -> dict[str, Any]:
    """
    Build the field map sent to the CRM.

    Standard fields are always sent. Dynamic fields go out under their ``__c``
    name when active, with ``None`` kept so the CRM value is cleared. Other
    fields are sent when active (or when no active set is configured), renamed
    through ``aliases`` when one exists.
    """

    active = None if active_fields is None else frozenset(active_fields)
    aliases = aliases or {}
    payload: dict[str, Any] = {}

    for name, value in record.items():
        if name in SYSTEM_FIELDS:
            continue

        if name in STANDARD_LEAD_FIELDS:
            cleaned = clean_value(value)
            if cleaned is None:
                continue
            payload[name] = cleaned
            continue

        parsed = match_dynamic_field(name)
        if parsed is not None:
            if is_field_active(name, active):
                payload[parsed.remote_name] = clean_value(value)
            continue

        if active is not None and name not in active:
            continue
        cleaned = clean_value(value)
        if cleaned is None:
            continue
        payload[aliases.get(name, name)] = cleaned

    for name in MANDATORY_FIELDS:
        if not payload.get(name):
            logger.debug("Defaulting mandatory lead field", extra={"field": name})
            payload[name] = MANDATORY_DEFAULT

    if not payload.get("LeadSource"):
        payload["LeadSource"] = lead_source

    return payload
