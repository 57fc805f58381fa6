import json
from typing import Any, Dict

from conftest import FakeSalesforceClient, build_test_app

from leadbridge.transfer import get_celery_app
from leadbridge.transfer.celery_app import DEFAULT_QUEUE_NAME


def test_celery_defaults_to_sqlite_transport(tmp_path):
    sqlite_path = tmp_path / "custom.sqlite"
    app = build_test_app(tmp_path / "leadbridge.db", FakeSalesforceClient(), CELERY_SQLITE_PATH=str(sqlite_path))

    celery_app = get_celery_app(app)
    assert celery_app is not None
    assert celery_app.conf.broker_url.startswith("sqla+sqlite:///")
    assert sqlite_path.name in celery_app.conf.broker_url
    assert celery_app.conf.result_backend.startswith("db+sqlite:///")
    assert celery_app.conf.task_default_queue == DEFAULT_QUEUE_NAME
    assert celery_app.conf.worker_prefetch_multiplier == 1
    assert "transfer.reconcile_tenant" in celery_app.tasks


def test_celery_accepts_json_extra_config(tmp_path):
    app = build_test_app(
        tmp_path / "leadbridge.db",
        FakeSalesforceClient(),
        CELERY_CONFIG=json.dumps({"task_always_eager": True, "worker_concurrency": 3}),
    )

    celery_app = get_celery_app(app)
    assert celery_app.conf.worker_concurrency == 3


def test_disabled_engine_has_no_celery_app(tmp_path):
    app = build_test_app(tmp_path / "leadbridge.db", FakeSalesforceClient(), TRANSFER_ENABLED=False)

    assert get_celery_app(app) is None


def test_worker_ping_cli(runner):
    result = runner.invoke(args=["transfer", "worker", "ping"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["status"] == "ok"
    assert "timestamp" in payload
    assert "worker_hostname" in payload


def test_worker_run_invokes_celery(app, runner, monkeypatch):
    celery_app = get_celery_app(app)
    assert celery_app is not None

    calls: Dict[str, Any] = {}

    def fake_worker_main(argv=None):
        calls["argv"] = argv

    monkeypatch.setattr(celery_app, "worker_main", fake_worker_main)

    result = runner.invoke(
        args=[
            "transfer",
            "worker",
            "run",
            "--loglevel",
            "debug",
            "--concurrency",
            "2",
            "--pool",
            "solo",
        ]
    )

    assert result.exit_code == 0, result.output
    assert calls["argv"] == [
        "worker",
        "--loglevel",
        "debug",
        "-Q",
        DEFAULT_QUEUE_NAME,
        "--concurrency",
        "2",
        "--pool",
        "solo",
    ]
