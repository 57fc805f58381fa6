"""
Transfer blueprint: JSON endpoints for lead transfer, ledger lookups,
verification and per-tenant field configuration.
"""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from simple_salesforce.exceptions import SalesforceAuthenticationFailed

from leadbridge.transfer.adapters.salesforce import SalesforceAdapterError, check_salesforce_adapter_readiness
from leadbridge.transfer.celery_app import DEFAULT_QUEUE_NAME
from leadbridge.transfer.pipeline.field_config import FieldConfigService, InvalidFieldAlias
from leadbridge.transfer.pipeline.ledger import TransferLedger
from leadbridge.transfer.pipeline.service import AttachmentPayload, DuplicateLeadError, LeadTransferError
from leadbridge.transfer.runtime import TRANSFER_EXTENSION_KEY, build_reconciler, build_transfer_service

transfer_blueprint = Blueprint("transfer", __name__, url_prefix="/api/transfer")


def _json_error(message: str, http_status: HTTPStatus, **extra):
    payload = {"error": message}
    payload.update(extra)
    return jsonify(payload), http_status


@transfer_blueprint.before_request
def _ensure_transfer_enabled():
    if request.endpoint == "transfer.transfer_healthcheck":
        return None
    if not current_app.config.get("TRANSFER_ENABLED", True):
        return _json_error("Transfer engine is disabled.", HTTPStatus.NOT_FOUND)
    return None


@transfer_blueprint.errorhandler(SalesforceAdapterError)
def _adapter_not_ready(exc: SalesforceAdapterError):
    current_app.logger.error("Salesforce adapter unavailable", exc_info=exc)
    return _json_error(str(exc), HTTPStatus.SERVICE_UNAVAILABLE)


@transfer_blueprint.errorhandler(SalesforceAuthenticationFailed)
def _salesforce_login_failed(exc: SalesforceAuthenticationFailed):
    current_app.logger.error("Salesforce login failed", exc_info=exc)
    return _json_error(f"Salesforce login failed: {exc}", HTTPStatus.SERVICE_UNAVAILABLE)


@transfer_blueprint.get("/health")
def transfer_healthcheck():
    state = current_app.extensions.get(TRANSFER_EXTENSION_KEY, {})
    readiness = check_salesforce_adapter_readiness()
    return (
        jsonify(
            {
                "status": "ok",
                "enabled": state.get("enabled", False),
                "worker_enabled": state.get("worker_enabled", False),
                "queue": DEFAULT_QUEUE_NAME,
                "salesforce": readiness.as_dict(),
            }
        ),
        200,
    )


@transfer_blueprint.post("/leads")
def transfer_lead():
    payload = request.get_json(silent=True) or {}
    tenant_id = str(payload.get("tenant_id") or "").strip()
    source_record_id = str(payload.get("source_record_id") or "").strip()
    lead = payload.get("lead")
    if not tenant_id or not source_record_id:
        return _json_error("tenant_id and source_record_id are required.", HTTPStatus.BAD_REQUEST)
    if not isinstance(lead, dict):
        return _json_error("lead must be a JSON object.", HTTPStatus.BAD_REQUEST)

    try:
        attachments = [AttachmentPayload.from_mapping(item) for item in payload.get("attachments") or []]
    except (ValueError, TypeError, AttributeError) as exc:
        return _json_error(f"Invalid attachments: {exc}", HTTPStatus.BAD_REQUEST)

    service = build_transfer_service()
    try:
        outcome = service.transfer(tenant_id, source_record_id, lead, attachments)
    except DuplicateLeadError as exc:
        return _json_error(str(exc), HTTPStatus.CONFLICT, existing_id=exc.existing_id, status="duplicate")
    except LeadTransferError as exc:
        current_app.logger.error(
            "Lead transfer failed",
            extra={"tenant_id": tenant_id, "source_record_id": source_record_id},
            exc_info=exc,
        )
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST, status="failed")

    if outcome.blocked:
        return jsonify(outcome.to_dict()), HTTPStatus.UNPROCESSABLE_ENTITY
    return jsonify(outcome.to_dict()), HTTPStatus.OK


@transfer_blueprint.get("/status/<tenant_id>/<record_id>")
def get_transfer_status(tenant_id: str, record_id: str):
    entry = TransferLedger().get_status(tenant_id, record_id)
    if entry is None:
        return _json_error("No transfer recorded for this lead.", HTTPStatus.NOT_FOUND)
    return jsonify(entry.to_dict()), HTTPStatus.OK


@transfer_blueprint.delete("/status/<tenant_id>/<record_id>")
def delete_transfer_status(tenant_id: str, record_id: str):
    deleted = TransferLedger().delete_status(tenant_id, record_id)
    if not deleted:
        return _json_error("No transfer recorded for this lead.", HTTPStatus.NOT_FOUND)
    return jsonify({"deleted": True, "tenant_id": tenant_id, "source_record_id": record_id}), HTTPStatus.OK


@transfer_blueprint.post("/status/<tenant_id>/batch")
def get_transfer_status_batch(tenant_id: str):
    payload = request.get_json(silent=True) or {}
    record_ids = payload.get("record_ids")
    if not isinstance(record_ids, list) or not all(isinstance(item, str) for item in record_ids):
        return _json_error("record_ids must be a list of strings.", HTTPStatus.BAD_REQUEST)
    entries = TransferLedger().get_batch(tenant_id, record_ids)
    return jsonify({record_id: entry.to_dict() for record_id, entry in entries.items()}), HTTPStatus.OK


@transfer_blueprint.get("/verify/<tenant_id>/<record_id>")
def verify_transfer(tenant_id: str, record_id: str):
    result = build_reconciler().verify(tenant_id, record_id)
    return jsonify(result.to_dict()), HTTPStatus.OK


@transfer_blueprint.get("/field-config/<tenant_id>")
def get_field_config(tenant_id: str):
    return jsonify(FieldConfigService().get_config(tenant_id).to_dict()), HTTPStatus.OK


@transfer_blueprint.put("/field-config/<tenant_id>")
def put_field_config(tenant_id: str):
    payload = request.get_json(silent=True) or {}
    active_fields = payload.get("active_fields")
    if not isinstance(active_fields, list):
        return _json_error("active_fields must be a list.", HTTPStatus.BAD_REQUEST)
    custom_labels = payload.get("custom_labels") or {}
    aliases = payload.get("aliases") or {}
    if not isinstance(custom_labels, dict) or not isinstance(aliases, dict):
        return _json_error("custom_labels and aliases must be objects.", HTTPStatus.BAD_REQUEST)

    try:
        config = FieldConfigService().set_config(tenant_id, active_fields, custom_labels, aliases)
    except InvalidFieldAlias as exc:
        return _json_error(str(exc), HTTPStatus.BAD_REQUEST, field=exc.source_name)
    return jsonify(config.to_dict()), HTTPStatus.OK
