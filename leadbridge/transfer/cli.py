"""
``flask transfer`` commands for ledger inspection, verification and the
reconciliation worker.
"""

from __future__ import annotations

import json
from typing import Optional

import click
from celery import Celery
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask.cli import ScriptInfo, with_appcontext

from leadbridge.models import TransferStatus
from leadbridge.transfer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from leadbridge.transfer.pipeline.ledger import TransferLedger
from leadbridge.transfer.runtime import TRANSFER_EXTENSION_KEY, build_reconciler


@click.group(name="transfer")
@click.pass_context
def transfer_cli(ctx):
    """Lead transfer engine commands."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not app.config.get("TRANSFER_ENABLED", True):
        raise click.ClickException("Transfer engine is disabled via TRANSFER_ENABLED=false.")


def get_disabled_transfer_group() -> click.Group:
    """Command group shown when the transfer engine is switched off."""

    @click.group(name="transfer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Transfer commands are unavailable because TRANSFER_ENABLED=false.")

    return disabled_group


def _resolve_celery(app) -> Celery:
    celery_app = get_celery_app(app)
    if celery_app is None:
        raise click.ClickException(
            "Transfer Celery app is unavailable. Ensure TRANSFER_ENABLED=true and the "
            "transfer package initialises before running worker commands."
        )
    return celery_app


@transfer_cli.command("status")
@click.argument("tenant_id")
@click.argument("record_ids", nargs=-1)
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([status.value for status in TransferStatus]),
    help="Only list entries with this status (ignored when record ids are given).",
)
@click.option("--limit", type=int, default=50, show_default=True)
@with_appcontext
def transfer_status(tenant_id: str, record_ids: tuple[str, ...], status_filter: Optional[str], limit: int):
    """Show ledger entries for a tenant, or for specific source records."""
    ledger = TransferLedger()
    if record_ids:
        entries = list(ledger.get_batch(tenant_id, record_ids).values())
    else:
        status = TransferStatus(status_filter) if status_filter else None
        entries = list(ledger.get_tenant_statuses(tenant_id, status=status, limit=limit))

    if not entries:
        click.echo(f"No transfer entries for tenant {tenant_id}.")
        return
    for entry in entries:
        line = f"{entry.source_record_id}\t{entry.status.value}\t{entry.remote_id or '-'}"
        if entry.error_message:
            line += f"\t{entry.error_message}"
        click.echo(line)


@transfer_cli.command("delete-status")
@click.argument("tenant_id")
@click.argument("record_id")
@with_appcontext
def transfer_delete_status(tenant_id: str, record_id: str):
    """Remove the ledger entry of one source record."""
    if not TransferLedger().delete_status(tenant_id, record_id):
        raise click.ClickException(f"No ledger entry for {record_id} in tenant {tenant_id}.")
    click.echo(f"Deleted ledger entry for {record_id}.")


@transfer_cli.command("verify")
@click.argument("tenant_id")
@click.argument("record_ids", nargs=-1, required=True)
@with_appcontext
def transfer_verify(tenant_id: str, record_ids: tuple[str, ...]):
    """Reconcile specific records against Salesforce and print the result."""
    results = build_reconciler().verify_batch(tenant_id, record_ids)
    click.echo(json.dumps({record_id: result.to_dict() for record_id, result in results.items()}, indent=2))


@transfer_cli.command("reconcile")
@click.argument("tenant_id")
@click.option("--limit", type=int, help="Maximum ledger entries to verify.")
@click.option("--async", "run_async", is_flag=True, help="Queue the reconciliation on the Celery worker.")
@click.option("--timeout", default=30.0, show_default=True, help="Seconds to wait for a queued run.")
@with_appcontext
@click.pass_context
def transfer_reconcile(ctx, tenant_id: str, limit: Optional[int], run_async: bool, timeout: float):
    """Verify every ledger entry of a tenant."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    limit = limit or app.config.get("TRANSFER_RECONCILE_BATCH_SIZE")

    if not run_async:
        counts = build_reconciler(app).reconcile_tenant(tenant_id, limit=limit)
        click.echo(json.dumps({"tenant_id": tenant_id, "counts": counts}, indent=2))
        return

    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("transfer.reconcile_tenant")
    if task is None:
        raise click.ClickException("Task 'transfer.reconcile_tenant' is not registered.")
    result = task.apply_async(kwargs={"tenant_id": tenant_id, "limit": limit})
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError:
        click.echo(json.dumps({"tenant_id": tenant_id, "task_id": result.id, "status": "queued"}, indent=2))
        return
    click.echo(json.dumps(payload, indent=2))


@transfer_cli.group(name="worker")
@click.pass_context
def worker_group(ctx):
    """Manage the reconciliation worker."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    state = app.extensions.get(TRANSFER_EXTENSION_KEY, {})
    if not state.get("worker_enabled") and not app.config.get("TRANSFER_WORKER_ENABLED"):
        click.echo(
            "Warning: TRANSFER_WORKER_ENABLED is false. Commands will still run, "
            "but enable the flag to surface accurate health status.",
            err=True,
        )


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
@click.option("--queues", default=DEFAULT_QUEUE_NAME, show_default=True, help="Comma-separated queue list.")
@click.pass_context
def worker_run(ctx, loglevel: str, concurrency: Optional[int], pool: Optional[str], queues: str):
    """Start the Celery worker in the current process."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)

    argv = ["worker", "--loglevel", loglevel, "-Q", queues]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting transfer worker (queues: {queues}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
@click.pass_context
def worker_ping(ctx, timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    celery_app = _resolve_celery(app)
    task = celery_app.tasks.get("transfer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'transfer.healthcheck' is not registered.")

    result = task.apply_async()
    try:
        payload = result.get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc

    click.echo(json.dumps(payload, indent=2))
