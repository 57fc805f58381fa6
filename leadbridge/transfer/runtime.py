"""
Per-app transfer engine state and service factories.

Everything request-scoped is built fresh from ``app.config``; only the CRM
client and the picklist cache live on ``app.extensions['transfer']``.
"""

from __future__ import annotations

from typing import Any, Callable

from flask import Flask, current_app

from leadbridge.transfer.adapters.salesforce.client import create_salesforce_client
from leadbridge.transfer.pipeline.field_config import FieldConfigService
from leadbridge.transfer.pipeline.ledger import TransferLedger
from leadbridge.transfer.pipeline.orchestrator import SettleDelay
from leadbridge.transfer.pipeline.picklist import PicklistCache
from leadbridge.transfer.pipeline.reconcile import TransferReconciler
from leadbridge.transfer.pipeline.service import LeadTransferService

TRANSFER_EXTENSION_KEY = "transfer"

ClientFactory = Callable[[], Any]


def ensure_extension_state(app: Flask) -> dict[str, Any]:
    return app.extensions.setdefault(
        TRANSFER_EXTENSION_KEY,
        {
            "enabled": False,
            "worker_enabled": False,
            "celery_app": None,
            "client_factory": create_salesforce_client,
            "client": None,
            "picklist_cache": None,
        },
    )


def set_client_factory(app: Flask, factory: ClientFactory) -> None:
    """Swap the CRM client factory (tests and alternate credential sources)."""
    state = ensure_extension_state(app)
    state["client_factory"] = factory
    state["client"] = None


def get_transfer_client(app: Flask | None = None):
    app = app or current_app._get_current_object()
    state = ensure_extension_state(app)
    if state["client"] is None:
        state["client"] = state["client_factory"]()
    return state["client"]


def reset_transfer_client(app: Flask | None = None) -> None:
    """Forget the cached client so the next unit of work logs in again."""
    app = app or current_app._get_current_object()
    state = ensure_extension_state(app)
    if state["client"] is not None:
        app.logger.info("Dropping cached Salesforce client after session expiry")
    state["client"] = None


def get_picklist_cache(app: Flask | None = None) -> PicklistCache:
    app = app or current_app._get_current_object()
    state = ensure_extension_state(app)
    if state["picklist_cache"] is None:
        state["picklist_cache"] = PicklistCache(ttl_seconds=app.config.get("TRANSFER_PICKLIST_TTL_SECONDS", 60 * 60))
    return state["picklist_cache"]


def build_transfer_service(app: Flask | None = None) -> LeadTransferService:
    app = app or current_app._get_current_object()
    config = app.config
    return LeadTransferService(
        get_transfer_client(app),
        ledger=TransferLedger(),
        field_configs=FieldConfigService(),
        picklist_cache=get_picklist_cache(app),
        settle=SettleDelay(seconds=config.get("TRANSFER_SETTLE_DELAY_SECONDS", 2.0)),
        object_type=config.get("TRANSFER_OBJECT_TYPE", "Lead"),
        field_length=config.get("TRANSFER_CUSTOM_FIELD_LENGTH", 255),
        check_duplicate_email=config.get("TRANSFER_CHECK_DUPLICATE_EMAIL", True),
        lead_source=config.get("TRANSFER_LEAD_SOURCE", "LeadSuccess API"),
        on_session_expired=lambda: reset_transfer_client(app),
    )


def build_reconciler(app: Flask | None = None) -> TransferReconciler:
    app = app or current_app._get_current_object()
    return TransferReconciler(
        TransferLedger(),
        client_provider=lambda: get_transfer_client(app),
        on_session_expired=lambda: reset_transfer_client(app),
        object_type=app.config.get("TRANSFER_OBJECT_TYPE", "Lead"),
    )
