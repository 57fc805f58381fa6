# conftest.py

import os
from datetime import datetime, timezone

import pytest

# Set testing environment BEFORE importing app so the module-level app uses TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from leadbridge.models import db  # noqa: E402
from leadbridge.transfer.adapters.salesforce.client import (  # noqa: E402
    FieldCreateError,
    FieldCreateOutcome,
    RemoteRecordState,
)


class FakeSalesforceClient:
    """
    In-memory stand-in for ``SalesforceLeadClient``.

    Remembers created custom fields so a second provisioning attempt reports
    duplicates the way the metadata API does.
    """

    def __init__(self, fields=("LastName", "Company", "Email", "Country", "CountryCode"), picklists=None):
        self.fields = set(fields)
        self.picklists = dict(picklists or {})
        self.describe_calls = 0
        self.describe_error = None
        self.field_overrides = {}
        self.created_fields = []
        self.records = {}
        self.record_states = {}
        self.query_error = None
        self.create_record_error = None
        self.existing_emails = {}
        self.email_lookup_error = None
        self.attachments = []
        self.attachment_error = None

    def describe(self, object_type):
        self.describe_calls += 1
        if self.describe_error is not None:
            raise self.describe_error
        described = [{"name": name, "type": "string", "picklistValues": []} for name in sorted(self.fields)]
        for name, values in self.picklists.items():
            described = [item for item in described if item["name"] != name]
            described.append({"name": name, "type": "picklist", "picklistValues": values})
        return {"name": object_type, "fields": described}

    def create_custom_field(self, *, full_name, label, field_type="Text", length=255):
        override = self.field_overrides.get(full_name)
        if isinstance(override, Exception):
            raise override
        if override is not None:
            return override
        remote_name = full_name.split(".", 1)[1]
        if remote_name in self.fields:
            return FieldCreateOutcome(
                full_name=full_name,
                success=False,
                errors=(FieldCreateError("DUPLICATE_DEVELOPER_NAME", f"There is already a field named {remote_name}"),),
            )
        self.fields.add(remote_name)
        self.created_fields.append({"full_name": full_name, "label": label, "type": field_type, "length": length})
        return FieldCreateOutcome(full_name=full_name, success=True)

    def create_record(self, object_type, fields):
        if self.create_record_error is not None:
            raise self.create_record_error
        record_id = f"00Q{len(self.records) + 1:015d}"
        self.records[record_id] = dict(fields)
        return record_id

    def query_record(self, object_type, record_id):
        if self.query_error is not None:
            raise self.query_error
        return self.record_states.get(record_id)

    def find_by_email(self, object_type, email):
        if self.email_lookup_error is not None:
            raise self.email_lookup_error
        return self.existing_emails.get(email)

    def create_attachment(self, *, parent_id, name, body, content_type=None):
        if self.attachment_error is not None:
            raise self.attachment_error
        attachment_id = f"00P{len(self.attachments) + 1:015d}"
        self.attachments.append({"id": attachment_id, "parent_id": parent_id, "name": name, "body": body})
        return attachment_id

    def set_remote_state(self, record_id, *, is_deleted=False, last_modified=None):
        self.record_states[record_id] = RemoteRecordState(
            record_id=record_id,
            is_deleted=is_deleted,
            last_modified=last_modified,
        )


def country_picklists():
    """Describe-style picklists for an org with state and country picklists enabled."""
    return {
        "CountryCode": [
            {"value": "DE", "label": "Germany", "active": True},
            {"value": "FR", "label": "France", "active": True},
            {"value": "US", "label": "United States", "active": True},
            {"value": "XK", "label": "Kosovo", "active": False},
        ],
        "Country": [
            {"value": "Germany", "label": "Germany", "active": True},
            {"value": "Deutschland", "label": "Deutschland", "active": True},
            {"value": "France", "label": "France", "active": True},
            {"value": "United States", "label": "United States", "active": True},
        ],
    }


def build_test_app(db_path, fake_client, *, client_factory=None, **overrides):
    """Create an isolated app bound to ``db_path`` and the fake CRM client (or ``client_factory``)."""
    config = {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path.as_posix()}",
        "TRANSFER_ENABLED": True,
        "TRANSFER_SETTLE_DELAY_SECONDS": 0.0,
        "TRANSFER_WORKER_ENABLED": True,
        "CELERY_SQLITE_PATH": str(db_path.parent / "celery.sqlite"),
        "CELERY_CONFIG": {"task_always_eager": True, "task_eager_propagates": True},
        "ENABLE_FILE_LOGGING": False,
        "ENABLE_CONSOLE_LOGGING": False,
    }
    config.update(overrides)
    return create_app(config, client_factory=client_factory or (lambda: fake_client))


@pytest.fixture
def fake_client():
    return FakeSalesforceClient()


@pytest.fixture
def app(tmp_path, fake_client):
    """Create a test app backed by a temporary SQLite file"""
    flask_app = build_test_app(tmp_path / "leadbridge.db", fake_client)
    with flask_app.app_context():
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def fixed_now():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
