"""
Dynamic field classification.

A dynamic field is one of the questionnaire columns a lead may carry
(``Question01``, ``Answers07``, ``Text12`` ...). They are the only fields the
engine is allowed to create in the remote schema, so the matching rule lives in
one place and is kept deliberately strict: one known prefix, exactly two digits,
optionally followed by the custom-field suffix.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

CUSTOM_FIELD_SUFFIX = "__c"
MAX_LABEL_LENGTH = 40


class DynamicFieldPrefix(str, enum.Enum):
    QUESTION = "Question"
    ANSWERS = "Answers"
    TEXT = "Text"


_DYNAMIC_FIELD_PATTERN = re.compile(
    r"^(?P<prefix>" + "|".join(prefix.value for prefix in DynamicFieldPrefix) + r")"
    r"(?P<ordinal>\d{2})"
    r"(?P<suffix>" + re.escape(CUSTOM_FIELD_SUFFIX) + r")?$"
)


@dataclass(frozen=True)
class DynamicFieldName:
    """Parsed dynamic field name."""

    prefix: DynamicFieldPrefix
    ordinal: str
    qualified: bool

    @property
    def bare_name(self) -> str:
        return f"{self.prefix.value}{self.ordinal}"

    @property
    def remote_name(self) -> str:
        return f"{self.bare_name}{CUSTOM_FIELD_SUFFIX}"

    @property
    def default_label(self) -> str:
        return f"{self.prefix.value} {self.ordinal}"


@dataclass(frozen=True)
class CandidateField:
    """A dynamic field selected for transfer."""

    remote_name: str
    source_name: str
    value: Any
    display_label: str


def match_dynamic_field(name: str) -> DynamicFieldName | None:
    """Return the parsed name when ``name`` is a dynamic field, else None."""

    if not isinstance(name, str):
        return None
    match = _DYNAMIC_FIELD_PATTERN.match(name)
    if match is None:
        return None
    return DynamicFieldName(
        prefix=DynamicFieldPrefix(match.group("prefix")),
        ordinal=match.group("ordinal"),
        qualified=match.group("suffix") is not None,
    )


def is_dynamic_field(name: str) -> bool:
    return match_dynamic_field(name) is not None


def is_field_active(name: str, active_fields: Iterable[str] | None) -> bool:
    """
    Check membership against the active set by bare or qualified name.

    ``None`` means no configuration exists and every field is active.
    """

    if active_fields is None:
        return True
    active = active_fields if isinstance(active_fields, (set, frozenset)) else set(active_fields)
    if name in active:
        return True
    parsed = match_dynamic_field(name)
    if parsed is None:
        return False
    return parsed.bare_name in active or parsed.remote_name in active


def classify_fields(
    record: Mapping[str, Any],
    active_fields: Iterable[str] | None = None,
    *,
    custom_labels: Mapping[str, str] | None = None,
) -> list[CandidateField]:
    """
    Extract the active dynamic fields of ``record``.

    Values are kept as-is, ``None`` included: an active field sent as ``None``
    clears the value in the CRM.
    """

    active = None if active_fields is None else frozenset(active_fields)
    labels = custom_labels or {}
    candidates: list[CandidateField] = []
    seen: set[str] = set()

    for field_name, value in record.items():
        parsed = match_dynamic_field(field_name)
        if parsed is None or parsed.remote_name in seen:
            continue
        if not is_field_active(field_name, active):
            logger.debug("Skipping inactive dynamic field", extra={"field": field_name})
            continue
        seen.add(parsed.remote_name)
        label = labels.get(parsed.bare_name) or labels.get(parsed.remote_name) or parsed.default_label
        candidates.append(
            CandidateField(
                remote_name=parsed.remote_name,
                source_name=parsed.bare_name,
                value=value,
                display_label=label.strip()[:MAX_LABEL_LENGTH] or parsed.default_label,
            )
        )

    return candidates
