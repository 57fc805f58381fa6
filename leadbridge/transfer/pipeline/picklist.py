"""
Picklist lookup, caching and repair for constrained lead fields.

Salesforce orgs with state and country picklists reject any ``CountryCode`` not
in the org's active picklist, and reject records whose ``Country`` and
``CountryCode`` disagree. Valid codes are read from the object describe, cached
per tenant for a configurable TTL, and replaced by an embedded table when the
describe call is unavailable so a lookup failure never blocks a transfer.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from leadbridge.transfer.metrics import record_picklist_lookup

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
CODE_WIDTH = 2

# Common spellings observed in source data, keyed by ISO code.
KNOWN_COUNTRY_NAMES: Mapping[str, tuple[str, ...]] = {
    "DE": ("Germany", "Deutschland"),
    "FR": ("France",),
    "GB": ("United Kingdom", "UK", "Great Britain"),
    "US": ("United States", "USA", "America"),
    "CA": ("Canada",),
    "CH": ("Switzerland", "Schweiz"),
    "AT": ("Austria", "Österreich"),
    "IT": ("Italy", "Italia"),
    "ES": ("Spain", "España"),
    "NL": ("Netherlands",),
    "BE": ("Belgium", "Belgique"),
    "SE": ("Sweden", "Sverige"),
    "DK": ("Denmark", "Danmark"),
    "NO": ("Norway", "Norge"),
    "FI": ("Finland", "Suomi"),
    "PL": ("Poland", "Polska"),
    "CZ": ("Czech Republic", "Czechia"),
    "PT": ("Portugal",),
    "IE": ("Ireland",),
    "GR": ("Greece",),
    "LU": ("Luxembourg",),
    "JP": ("Japan",),
    "CN": ("China",),
    "IN": ("India",),
    "BR": ("Brazil", "Brasil"),
    "MX": ("Mexico", "México"),
    "AR": ("Argentina",),
    "AU": ("Australia",),
}

_NAME_NOISE = re.compile(r"[0-9_]+|[^\w\s'.\-]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class PicklistValues:
    """Valid codes plus the derived code -> display names map."""

    codes: frozenset[str]
    name_map: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    is_fallback: bool = False


@dataclass(frozen=True)
class PicklistCacheEntry:
    values: PicklistValues
    captured_at: float


def fallback_picklist_values() -> PicklistValues:
    return PicklistValues(
        codes=frozenset(KNOWN_COUNTRY_NAMES),
        name_map=dict(KNOWN_COUNTRY_NAMES),
        is_fallback=True,
    )


class PicklistCache:
    """
    TTL cache of picklist snapshots keyed by (tenant, object type).

    Safe for concurrent use; a refresh race simply stores an equally valid
    snapshot.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[tuple[str, str], PicklistCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str, object_type: str) -> PicklistValues | None:
        key = (tenant_id, object_type)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self.clock() - entry.captured_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return entry.values

    def put(self, tenant_id: str, object_type: str, values: PicklistValues) -> None:
        with self._lock:
            self._entries[(tenant_id, object_type)] = PicklistCacheEntry(values=values, captured_at=self.clock())

    def invalidate(self, tenant_id: str, object_type: str) -> None:
        with self._lock:
            self._entries.pop((tenant_id, object_type), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def _active_entries(field_description: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    if not field_description:
        return []
    return [entry for entry in field_description.get("picklistValues") or [] if entry.get("active")]


def _match_code(name: str, codes: frozenset[str], code_labels: Mapping[str, str]) -> str | None:
    """Best-effort match of a country display name to one of ``codes``."""

    lowered = name.strip().lower()
    if not lowered:
        return None
    for code, known_names in KNOWN_COUNTRY_NAMES.items():
        if code in codes and any(known.lower() == lowered for known in known_names):
            return code
    if name.strip().upper() in codes:
        return name.strip().upper()
    for code, label in code_labels.items():
        label_lower = label.lower()
        if label_lower and (label_lower in lowered or lowered in label_lower):
            return code
    return None


def build_picklist_values(
    describe: Mapping[str, Any],
    *,
    code_field: str,
    name_field: str,
) -> PicklistValues | None:
    """Build a snapshot from an object describe, or None when the code field is unusable."""

    fields_by_name = {item.get("name"): item for item in describe.get("fields") or []}
    code_entries = _active_entries(fields_by_name.get(code_field))
    codes = frozenset(str(entry["value"]).upper() for entry in code_entries if entry.get("value"))
    if not codes:
        return None

    name_map: dict[str, list[str]] = {}
    code_labels: dict[str, str] = {}
    for entry in code_entries:
        code = str(entry.get("value") or "").upper()
        label = entry.get("label")
        if code and label and label.upper() != code:
            code_labels[code] = label
            name_map.setdefault(code, []).append(label)

    for entry in _active_entries(fields_by_name.get(name_field)):
        country_name = entry.get("value")
        if not country_name:
            continue
        code = _match_code(country_name, codes, code_labels)
        if code is not None and country_name not in name_map.setdefault(code, []):
            name_map[code].append(country_name)

    for code, known_names in KNOWN_COUNTRY_NAMES.items():
        if code not in codes:
            continue
        names = name_map.setdefault(code, [])
        names.extend(known for known in known_names if known not in names)

    return PicklistValues(codes=codes, name_map={code: tuple(names) for code, names in name_map.items()})


def clean_country_name(value: str) -> str:
    cleaned = _NAME_NOISE.sub("", value)
    return _WHITESPACE.sub(" ", cleaned).strip()


class PicklistValidator:
    """Validate and repair constrained-value fields before a transfer."""

    def __init__(
        self,
        client,
        cache: PicklistCache,
        tenant_id: str,
        *,
        object_type: str = "Lead",
        code_field: str = "CountryCode",
        name_field: str = "Country",
    ) -> None:
        self.client = client
        self.cache = cache
        self.tenant_id = tenant_id
        self.object_type = object_type
        self.code_field = code_field
        self.name_field = name_field

    def get_valid_values(self) -> PicklistValues:
        cached = self.cache.get(self.tenant_id, self.object_type)
        if cached is not None:
            record_picklist_lookup("cache")
            return cached

        try:
            describe = self.client.describe(self.object_type)
            values = build_picklist_values(describe, code_field=self.code_field, name_field=self.name_field)
        except Exception as exc:  # any lookup failure falls back to the embedded table
            logger.warning(
                "Picklist lookup failed; using fallback country codes",
                extra={"tenant_id": self.tenant_id, "object_type": self.object_type, "error": str(exc)},
            )
            record_picklist_lookup("fallback")
            return fallback_picklist_values()

        if values is None:
            logger.warning(
                "Picklist field missing or without active values; using fallback country codes",
                extra={"tenant_id": self.tenant_id, "field": self.code_field},
            )
            record_picklist_lookup("fallback")
            return fallback_picklist_values()

        self.cache.put(self.tenant_id, self.object_type, values)
        record_picklist_lookup("remote")
        logger.info(
            "Picklist values refreshed",
            extra={"tenant_id": self.tenant_id, "codes": len(values.codes), "mapped_codes": len(values.name_map)},
        )
        return values

    def validate(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of ``record`` with code/name fields repaired or dropped."""

        repaired = dict(record)
        raw_code = repaired.get(self.code_field)
        raw_name = repaired.get(self.name_field)
        if not raw_code and not raw_name:
            return repaired

        values = self.get_valid_values()

        if raw_code:
            code = str(raw_code).strip().upper()[:CODE_WIDTH]
            if code in values.codes:
                repaired[self.code_field] = code
            else:
                logger.info("Invalid country code removed", extra={"code": raw_code})
                repaired.pop(self.code_field, None)

        if raw_name is not None and not isinstance(raw_name, str):
            raw_name = str(raw_name)
        if raw_name:
            cleaned = clean_country_name(raw_name)
            if cleaned != raw_name:
                logger.info("Cleaned country name", extra={"before": raw_name, "after": cleaned})
            repaired[self.name_field] = cleaned

        code = repaired.get(self.code_field)
        name = repaired.get(self.name_field)
        if code and name:
            expected = values.name_map.get(code, ())
            if not any(candidate.lower() in name.lower() for candidate in expected):
                logger.info(
                    "Country/code mismatch; dropping code",
                    extra={"country": name, "code": code},
                )
                repaired.pop(self.code_field, None)

        return repaired
