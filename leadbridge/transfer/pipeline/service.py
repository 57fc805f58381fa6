"""
End-to-end lead transfer: schema gate, payload, picklist repair, write, ledger.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

import requests
from simple_salesforce.exceptions import SalesforceError, SalesforceExpiredSession

from leadbridge.models import TransferStatus
from leadbridge.transfer.metrics import record_transfer
from leadbridge.transfer.pipeline.field_config import FieldConfigService
from leadbridge.transfer.pipeline.ledger import LedgerEntry, TransferLedger
from leadbridge.transfer.pipeline.orchestrator import SchemaPlan, SettleDelay, TransferOrchestrator
from leadbridge.transfer.pipeline.payload import DEFAULT_LEAD_SOURCE, build_lead_payload
from leadbridge.transfer.pipeline.picklist import PicklistCache, PicklistValidator
from leadbridge.transfer.pipeline.schema import SchemaInspector, SchemaProvisioner

logger = logging.getLogger(__name__)


class LeadTransferError(RuntimeError):
    """Raised when the CRM rejects the lead write."""

    def __init__(self, message: str, *, source_record_id: str | None = None, plan: SchemaPlan | None = None):
        super().__init__(message)
        self.source_record_id = source_record_id
        self.plan = plan


class DuplicateLeadError(LeadTransferError):
    """Raised when a lead with the same email already exists in the CRM."""

    def __init__(self, email: str, existing_id: str, *, source_record_id: str | None = None):
        super().__init__(
            f"A lead with email {email} already exists (Id {existing_id}).",
            source_record_id=source_record_id,
        )
        self.email = email
        self.existing_id = existing_id


@dataclass(frozen=True)
class AttachmentPayload:
    name: str
    body: str
    content_type: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AttachmentPayload":
        name = data.get("name") or data.get("Name")
        body = data.get("body") or data.get("Body")
        if not name or not body:
            raise ValueError("attachments require a name and a base64 body")
        return cls(name=str(name), body=str(body), content_type=data.get("content_type") or data.get("ContentType"))


@dataclass
class TransferOutcome:
    """Result of a transfer attempt that did not raise."""

    source_record_id: str
    status: str
    plan: SchemaPlan
    ledger_entry: LedgerEntry
    remote_id: str | None = None
    attachment_ids: list[str] = field(default_factory=list)
    attachment_errors: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return self.status == "blocked"

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "source_record_id": self.source_record_id,
            "status": self.status,
            "remote_id": self.remote_id,
            "schema_state": self.plan.state.value,
            "schema_path": [state.value for state in self.plan.path],
            "ledger": self.ledger_entry.to_dict(),
            "attachment_ids": self.attachment_ids,
        }
        if self.plan.provisioning is not None:
            payload["fields_created"] = [item.remote_name for item in self.plan.provisioning.created]
            payload["fields_skipped"] = [item.remote_name for item in self.plan.provisioning.skipped]
        if self.plan.blocked:
            payload["errors"] = self.plan.errors()
        if self.attachment_errors:
            payload["attachment_errors"] = self.attachment_errors
        return payload


def _salesforce_message(exc: Exception) -> str:
    content = getattr(exc, "content", None)
    if isinstance(content, list) and content and isinstance(content[0], Mapping):
        first = content[0]
        code = first.get("errorCode")
        message = first.get("message") or str(exc)
        return f"{code}: {message}" if code else message
    return str(exc)


class LeadTransferService:
    """Transfer one lead into the CRM and record the outcome in the ledger."""

    def __init__(
        self,
        client,
        *,
        ledger: TransferLedger | None = None,
        field_configs: FieldConfigService | None = None,
        picklist_cache: PicklistCache | None = None,
        settle: SettleDelay | None = None,
        object_type: str = "Lead",
        field_length: int = 255,
        check_duplicate_email: bool = True,
        lead_source: str = DEFAULT_LEAD_SOURCE,
        on_session_expired: Callable[[], None] | None = None,
    ) -> None:
        self.client = client
        self.ledger = ledger or TransferLedger()
        self.field_configs = field_configs or FieldConfigService()
        self.picklist_cache = picklist_cache or PicklistCache()
        self.object_type = object_type
        self.check_duplicate_email = check_duplicate_email
        self.lead_source = lead_source
        self.on_session_expired = on_session_expired
        self.orchestrator = TransferOrchestrator(
            client,
            object_type=object_type,
            inspector=SchemaInspector(client, object_type),
            provisioner=SchemaProvisioner(client, object_type, field_length=field_length),
            settle=settle,
        )

    def transfer(
        self,
        tenant_id: str,
        source_record_id: str,
        record: Mapping[str, Any],
        attachments: Sequence[AttachmentPayload] = (),
    ) -> TransferOutcome:
        started = time.perf_counter()
        config = self.field_configs.get_config(tenant_id)

        plan = self.orchestrator.prepare(record, config.active_fields, config.custom_labels)
        if plan.blocked:
            message = "Custom field provisioning failed: " + "; ".join(plan.errors())
            entry = self.ledger.set_status(
                tenant_id,
                source_record_id,
                TransferStatus.FAILED,
                error_message=message,
            )
            record_transfer(outcome="blocked", duration_seconds=time.perf_counter() - started)
            return TransferOutcome(
                source_record_id=source_record_id,
                status="blocked",
                plan=plan,
                ledger_entry=entry,
            )

        payload = build_lead_payload(
            record,
            active_fields=config.active_fields,
            aliases=config.aliases,
            lead_source=self.lead_source,
        )
        validator = PicklistValidator(self.client, self.picklist_cache, tenant_id, object_type=self.object_type)
        payload = validator.validate(payload)

        email = payload.get("Email")
        if self.check_duplicate_email and email:
            existing_id = self._find_existing(email)
            if existing_id:
                error = DuplicateLeadError(email, existing_id, source_record_id=source_record_id)
                self.ledger.set_status(tenant_id, source_record_id, TransferStatus.FAILED, error_message=str(error))
                record_transfer(outcome="duplicate", duration_seconds=time.perf_counter() - started)
                raise error

        try:
            remote_id = self.client.create_record(self.object_type, payload)
        except (SalesforceError, requests.RequestException) as exc:
            self._check_session(exc)
            message = _salesforce_message(exc)
            logger.error(
                "Lead write rejected by Salesforce",
                extra={"tenant_id": tenant_id, "source_record_id": source_record_id, "error": message},
            )
            self.ledger.set_status(tenant_id, source_record_id, TransferStatus.FAILED, error_message=message)
            record_transfer(outcome="failed", duration_seconds=time.perf_counter() - started)
            raise LeadTransferError(message, source_record_id=source_record_id, plan=plan) from exc

        entry = self.ledger.set_status(tenant_id, source_record_id, TransferStatus.SUCCESS, remote_id=remote_id)
        outcome = TransferOutcome(
            source_record_id=source_record_id,
            status="success",
            plan=plan,
            ledger_entry=entry,
            remote_id=remote_id,
        )
        self._upload_attachments(outcome, remote_id, attachments)

        record_transfer(outcome="success", duration_seconds=time.perf_counter() - started)
        logger.info(
            "Lead transferred",
            extra={
                "tenant_id": tenant_id,
                "source_record_id": source_record_id,
                "remote_id": remote_id,
                "schema_state": plan.state.value,
            },
        )
        return outcome

    def _check_session(self, exc: Exception) -> None:
        if isinstance(exc, SalesforceExpiredSession) and self.on_session_expired is not None:
            self.on_session_expired()

    def _find_existing(self, email: str) -> str | None:
        try:
            return self.client.find_by_email(self.object_type, email)
        except (SalesforceError, requests.RequestException) as exc:
            self._check_session(exc)
            logger.warning("Duplicate email check failed; continuing", extra={"error": str(exc)})
            return None

    def _upload_attachments(
        self,
        outcome: TransferOutcome,
        parent_id: str,
        attachments: Sequence[AttachmentPayload],
    ) -> None:
        for attachment in attachments:
            try:
                attachment_id = self.client.create_attachment(
                    parent_id=parent_id,
                    name=attachment.name,
                    body=attachment.body,
                    content_type=attachment.content_type,
                )
            except (SalesforceError, requests.RequestException) as exc:
                logger.warning(
                    "Attachment upload failed",
                    extra={"remote_id": parent_id, "attachment": attachment.name, "error": str(exc)},
                )
                outcome.attachment_errors.append(f"{attachment.name}: {_salesforce_message(exc)}")
                continue
            outcome.attachment_ids.append(attachment_id)
