"""
Remote schema inspection and custom field provisioning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from leadbridge.transfer.metrics import record_field_provisioning
from leadbridge.transfer.pipeline.classify import CandidateField

logger = logging.getLogger(__name__)

DUPLICATE_STATUS_CODES = frozenset({"DUPLICATE_VALUE", "DUPLICATE_DEVELOPER_NAME"})


@dataclass(frozen=True)
class SchemaCheck:
    existing: frozenset[str]
    missing: frozenset[str]
    degraded: bool = False


class SchemaInspector:
    """Partition candidate field names by presence in the remote object schema."""

    def __init__(self, client, object_type: str = "Lead") -> None:
        self.client = client
        self.object_type = object_type

    def check_existence(self, names: Iterable[str]) -> SchemaCheck:
        """
        Describe the object once and split ``names`` into existing and missing.

        When the describe call fails every name is reported as existing; the data
        write then surfaces the real error instead of provisioning blindly.
        """

        requested = frozenset(names)
        if not requested:
            return SchemaCheck(existing=frozenset(), missing=frozenset())

        try:
            describe = self.client.describe(self.object_type)
        except Exception as exc:  # remote failures degrade to "nothing missing"
            logger.warning(
                "Schema describe failed; assuming all fields exist",
                extra={"object_type": self.object_type, "error": str(exc)},
                exc_info=True,
            )
            return SchemaCheck(existing=requested, missing=frozenset(), degraded=True)

        remote_names = {item.get("name") for item in describe.get("fields") or []}
        existing = frozenset(name for name in requested if name in remote_names)
        missing = requested - existing
        logger.debug(
            "Schema existence checked",
            extra={"object_type": self.object_type, "existing": len(existing), "missing": sorted(missing)},
        )
        return SchemaCheck(existing=existing, missing=missing)


@dataclass(frozen=True)
class ProvisionedField:
    """Outcome of one create-field attempt."""

    remote_name: str
    label: str
    message: str | None = None


@dataclass
class ProvisioningResult:
    created: list[ProvisionedField] = field(default_factory=list)
    skipped: list[ProvisionedField] = field(default_factory=list)
    failed: list[ProvisionedField] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def failure_messages(self) -> list[str]:
        return [f"{item.remote_name}: {item.message}" for item in self.failed]


def is_duplicate_error(status_code: str | None, message: str | None) -> bool:
    if status_code and status_code.upper() in DUPLICATE_STATUS_CODES:
        return True
    return bool(message) and "already" in message.lower()


class SchemaProvisioner:
    """Create missing custom text fields through the metadata API."""

    def __init__(self, client, object_type: str = "Lead", *, field_length: int = 255) -> None:
        self.client = client
        self.object_type = object_type
        self.field_length = field_length

    def provision(self, fields: Sequence[CandidateField]) -> ProvisioningResult:
        result = ProvisioningResult()
        for candidate in fields:
            full_name = f"{self.object_type}.{candidate.remote_name}"
            try:
                outcome = self.client.create_custom_field(
                    full_name=full_name,
                    label=candidate.display_label,
                    field_type="Text",
                    length=self.field_length,
                )
            except Exception as exc:  # one bad field must not abort the batch
                logger.error(
                    "Custom field creation raised",
                    extra={"field": full_name, "error": str(exc)},
                    exc_info=True,
                )
                result.failed.append(
                    ProvisionedField(remote_name=candidate.remote_name, label=candidate.display_label, message=str(exc))
                )
                continue

            if outcome.success:
                logger.info("Custom field created", extra={"field": full_name, "label": candidate.display_label})
                result.created.append(ProvisionedField(remote_name=candidate.remote_name, label=candidate.display_label))
                continue

            first_error = outcome.errors[0] if outcome.errors else None
            status_code = first_error.status_code if first_error else None
            message = first_error.message if first_error else "Unknown error"
            if any(is_duplicate_error(error.status_code, error.message) for error in outcome.errors):
                logger.info("Custom field already exists", extra={"field": full_name, "status_code": status_code})
                result.skipped.append(
                    ProvisionedField(remote_name=candidate.remote_name, label=candidate.display_label, message=message)
                )
            else:
                logger.error(
                    "Custom field creation failed",
                    extra={"field": full_name, "status_code": status_code, "error": message},
                )
                result.failed.append(
                    ProvisionedField(remote_name=candidate.remote_name, label=candidate.display_label, message=message)
                )

        record_field_provisioning("created", len(result.created))
        record_field_provisioning("skipped", len(result.skipped))
        record_field_provisioning("failed", len(result.failed))
        return result
