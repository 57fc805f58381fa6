from __future__ import annotations

from conftest import FakeSalesforceClient, build_test_app, country_picklists
from simple_salesforce.exceptions import (
    SalesforceAuthenticationFailed,
    SalesforceExpiredSession,
    SalesforceMalformedRequest,
)

from leadbridge.models import TransferStatus, db
from leadbridge.transfer.adapters.salesforce.client import FieldCreateError, FieldCreateOutcome
from leadbridge.transfer.pipeline.ledger import TransferLedger


def _lead_request(**overrides):
    payload = {
        "tenant_id": "org-a",
        "source_record_id": "lead-1",
        "lead": {"LastName": "Doe", "Company": "ACME", "Email": "doe@example.com", "Question01": "Yes"},
    }
    payload.update(overrides)
    return payload


def test_transfer_lead_success(client, fake_client):
    response = client.post("/api/transfer/leads", json=_lead_request())

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "success"
    assert body["remote_id"] in fake_client.records
    assert body["schema_state"] == "ready_for_transfer"
    assert body["fields_created"] == ["Question01__c"]
    assert body["ledger"]["status"] == TransferStatus.SUCCESS.value


def test_transfer_lead_requires_identifiers(client):
    response = client.post("/api/transfer/leads", json={"lead": {"LastName": "Doe"}})

    assert response.status_code == 400
    assert "tenant_id" in response.get_json()["error"]


def test_transfer_lead_rejects_non_object_lead(client):
    response = client.post("/api/transfer/leads", json=_lead_request(lead=["Doe"]))

    assert response.status_code == 400


def test_transfer_lead_rejects_bad_attachments(client):
    response = client.post("/api/transfer/leads", json=_lead_request(attachments=[{"name": "card.jpg"}]))

    assert response.status_code == 400
    assert "attachments" in response.get_json()["error"]


def test_blocked_transfer_returns_422(client, fake_client):
    fake_client.field_overrides["Lead.Question01__c"] = FieldCreateOutcome(
        full_name="Lead.Question01__c",
        success=False,
        errors=(FieldCreateError("FIELD_INTEGRITY_EXCEPTION", "bad length"),),
    )

    response = client.post("/api/transfer/leads", json=_lead_request())

    assert response.status_code == 422
    body = response.get_json()
    assert body["status"] == "blocked"
    assert body["schema_state"] == "blocked_on_schema"
    assert body["errors"] == ["Question01__c: bad length"]
    assert fake_client.records == {}


def test_duplicate_email_returns_409(client, fake_client):
    fake_client.existing_emails["doe@example.com"] = "00Q000000000000099"

    response = client.post("/api/transfer/leads", json=_lead_request())

    assert response.status_code == 409
    body = response.get_json()
    assert body["status"] == "duplicate"
    assert body["existing_id"] == "00Q000000000000099"


def test_status_lookup_and_delete(client, app):
    TransferLedger().set_status("org-a", "lead-1", TransferStatus.SUCCESS, remote_id="00Q000000000000001")

    response = client.get("/api/transfer/status/org-a/lead-1")
    assert response.status_code == 200
    assert response.get_json()["remote_id"] == "00Q000000000000001"

    assert client.get("/api/transfer/status/org-b/lead-1").status_code == 404

    response = client.delete("/api/transfer/status/org-a/lead-1")
    assert response.status_code == 200
    assert response.get_json()["deleted"] is True
    assert client.delete("/api/transfer/status/org-a/lead-1").status_code == 404


def test_batch_status_fills_placeholders(client, app):
    TransferLedger().set_status("org-a", "lead-1", TransferStatus.FAILED, error_message="boom")

    response = client.post("/api/transfer/status/org-a/batch", json={"record_ids": ["lead-1", "lead-2"]})

    assert response.status_code == 200
    body = response.get_json()
    assert list(body) == ["lead-1", "lead-2"]
    assert body["lead-1"]["status"] == TransferStatus.FAILED.value
    assert body["lead-2"]["status"] == TransferStatus.PENDING.value
    assert body["lead-2"]["remote_id"] is None


def test_batch_status_validates_body(client):
    response = client.post("/api/transfer/status/org-a/batch", json={"record_ids": "lead-1"})

    assert response.status_code == 400


def test_verify_endpoint_reports_deleted_lead(client, fake_client):
    client.post("/api/transfer/leads", json=_lead_request())
    remote_id = next(iter(fake_client.records))
    fake_client.set_remote_state(remote_id, is_deleted=True)

    response = client.get("/api/transfer/verify/org-a/lead-1")

    assert response.status_code == 200
    body = response.get_json()
    assert body["code"] == "DELETED"
    assert body["remote_id"] == remote_id


def test_verify_endpoint_for_unknown_lead(client):
    response = client.get("/api/transfer/verify/org-a/never-sent")

    assert response.status_code == 200
    assert response.get_json()["code"] == "NOT_TRANSFERRED"


def test_field_config_round_trip(client):
    assert client.get("/api/transfer/field-config/org-a").get_json()["active_fields"] is None

    response = client.put(
        "/api/transfer/field-config/org-a",
        json={
            "active_fields": ["Question01", "Department"],
            "custom_labels": {"Question01": "Budget"},
            "aliases": {"Department": "Dept__c"},
        },
    )

    assert response.status_code == 200
    stored = client.get("/api/transfer/field-config/org-a").get_json()
    assert stored["active_fields"] == ["Question01", "Department"]
    assert stored["custom_labels"] == {"Question01": "Budget"}
    assert stored["aliases"] == {"Department": "Dept__c"}


def test_field_config_rejects_alias_for_dynamic_field(client):
    response = client.put(
        "/api/transfer/field-config/org-a",
        json={"active_fields": [], "aliases": {"Question01": "Budget__c"}},
    )

    assert response.status_code == 400
    assert response.get_json()["field"] == "Question01"


def test_field_config_requires_list(client):
    response = client.put("/api/transfer/field-config/org-a", json={"active_fields": "Question01"})

    assert response.status_code == 400


def test_health_endpoint_reports_engine_state(client):
    response = client.get("/api/transfer/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["enabled"] is True
    assert body["queue"] == "transfers"
    assert "status" in body["salesforce"]


def test_disabled_engine_hides_endpoints(tmp_path, fake_client):
    disabled_app = build_test_app(tmp_path / "disabled.db", fake_client, TRANSFER_ENABLED=False)
    with disabled_app.app_context():
        db.create_all()
        http = disabled_app.test_client()

        assert http.post("/api/transfer/leads", json=_lead_request()).status_code == 404
        health = http.get("/api/transfer/health")
        assert health.status_code == 200
        assert health.get_json()["enabled"] is False
        db.session.remove()


def test_metrics_endpoint_exposes_transfer_counters(tmp_path, fake_client):
    monitored_app = build_test_app(tmp_path / "metrics.db", fake_client, MONITORING_ENABLED=True)

    response = monitored_app.test_client().get("/metrics")

    assert response.status_code == 200
    assert b"transfer_leads_total" in response.data


def test_rejected_write_returns_400_and_records_failure(client, fake_client):
    fake_client.create_record_error = SalesforceMalformedRequest(
        "https://example.my.salesforce.com/services/data/v59.0/sobjects/Lead/",
        400,
        "Lead",
        [{"errorCode": "STRING_TOO_LONG", "message": "Company: data value too large"}],
    )

    response = client.post("/api/transfer/leads", json=_lead_request())

    assert response.status_code == 400
    body = response.get_json()
    assert body["status"] == "failed"
    assert body["error"] == "STRING_TOO_LONG: Company: data value too large"
    assert TransferLedger().get_status("org-a", "lead-1").status is TransferStatus.FAILED


def test_numeric_country_does_not_break_transfer(client, fake_client):
    fake_client.picklists = country_picklists()
    lead = {"LastName": "Doe", "Company": "ACME", "CountryCode": "DE", "Country": 276}

    response = client.post("/api/transfer/leads", json=_lead_request(lead=lead))

    assert response.status_code == 200
    written = fake_client.records[response.get_json()["remote_id"]]
    assert written["CountryCode"] == "DE"
    assert written["Country"] == ""


def _failing_login():
    raise SalesforceAuthenticationFailed("INVALID_LOGIN", "Invalid username, password, security token")


def test_verify_reports_error_when_login_fails(tmp_path, fake_client):
    broken_app = build_test_app(tmp_path / "broken.db", fake_client, client_factory=_failing_login)
    with broken_app.app_context():
        db.create_all()
        TransferLedger().set_status("org-a", "lead-1", TransferStatus.SUCCESS, remote_id="00Q000000000000001")
        http = broken_app.test_client()

        response = http.get("/api/transfer/verify/org-a/lead-1")
        assert response.status_code == 200
        assert response.get_json()["code"] == "ERROR"
        assert "INVALID_LOGIN" in response.get_json()["detail"]

        assert http.get("/api/transfer/verify/org-a/lead-2").get_json()["code"] == "NOT_TRANSFERRED"
        db.session.remove()


def test_transfer_reports_503_when_login_fails(tmp_path, fake_client):
    broken_app = build_test_app(tmp_path / "broken.db", fake_client, client_factory=_failing_login)
    with broken_app.app_context():
        db.create_all()

        response = broken_app.test_client().post("/api/transfer/leads", json=_lead_request())

        assert response.status_code == 503
        assert "INVALID_LOGIN" in response.get_json()["error"]
        db.session.remove()


def test_expired_session_is_replaced_on_next_request(tmp_path):
    expired = FakeSalesforceClient()
    expired.create_record_error = SalesforceExpiredSession(
        "https://example.my.salesforce.com/services/data/v59.0/sobjects/Lead/",
        401,
        "Lead",
        [{"errorCode": "INVALID_SESSION_ID", "message": "Session expired or invalid"}],
    )
    fresh = FakeSalesforceClient()
    clients = [expired, fresh]
    session_app = build_test_app(tmp_path / "session.db", expired, client_factory=lambda: clients.pop(0))
    with session_app.app_context():
        db.create_all()
        http = session_app.test_client()

        first = http.post("/api/transfer/leads", json=_lead_request())
        assert first.status_code == 400
        assert first.get_json()["error"].startswith("INVALID_SESSION_ID")

        second = http.post("/api/transfer/leads", json=_lead_request())
        assert second.status_code == 200
        assert second.get_json()["remote_id"] in fresh.records
        assert clients == []
        db.session.remove()
