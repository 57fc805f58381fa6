"""
Lead transfer engine package.

``init_transfer`` mounts the JSON blueprint and CLI group, prepares the Celery
worker and records engine state in ``app.extensions['transfer']``.
"""

from __future__ import annotations

from flask import Flask

from leadbridge.transfer.adapters.salesforce import check_salesforce_adapter_readiness

from .celery_app import ensure_celery_app, get_celery_app
from .cli import get_disabled_transfer_group, transfer_cli
from .runtime import (
    TRANSFER_EXTENSION_KEY,
    build_reconciler,
    build_transfer_service,
    ensure_extension_state,
    get_transfer_client,
    set_client_factory,
)
from .views import transfer_blueprint

__all__ = [
    "init_transfer",
    "TRANSFER_EXTENSION_KEY",
    "build_reconciler",
    "build_transfer_service",
    "get_celery_app",
    "get_transfer_client",
    "set_client_factory",
]


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the CLI group matching the flag state."""
    # Avoid duplicate registrations when running tests
    if transfer_cli.name in app.cli.commands:
        app.cli.commands.pop(transfer_cli.name)

    if enabled:
        app.cli.add_command(transfer_cli)
    else:
        app.cli.add_command(get_disabled_transfer_group())


def init_transfer(app: Flask, *, client_factory=None) -> None:
    """
    Conditionally mount the transfer blueprint, CLI and worker.

    ``client_factory`` overrides how the Salesforce client is built; by default
    credentials come from the ``SF_*`` environment variables.
    """
    enabled = bool(app.config.get("TRANSFER_ENABLED", True))
    state = ensure_extension_state(app)
    state.update(
        {
            "enabled": enabled,
            "worker_enabled": bool(app.config.get("TRANSFER_WORKER_ENABLED", False)),
        }
    )
    if client_factory is not None:
        set_client_factory(app, client_factory)

    if transfer_blueprint.name not in app.blueprints:
        app.register_blueprint(transfer_blueprint)

    if not enabled:
        _set_cli(app, enabled=False)
        app.logger.info("Transfer engine disabled via TRANSFER_ENABLED flag.")
        return

    ensure_celery_app(app, state)
    _set_cli(app, enabled=True)

    if client_factory is None:
        readiness = check_salesforce_adapter_readiness()
        if readiness.status != "ready":
            app.logger.warning(
                "Salesforce adapter not ready (status=%s). %s",
                readiness.status,
                "; ".join(readiness.messages()) or "No additional context provided.",
                extra={"salesforce_status": readiness.status, "missing_env": list(readiness.missing_env_vars)},
            )

    app.logger.info("Transfer engine enabled", extra={"object_type": app.config.get("TRANSFER_OBJECT_TYPE", "Lead")})
