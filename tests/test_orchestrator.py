from __future__ import annotations

from conftest import FakeSalesforceClient

from leadbridge.transfer.adapters.salesforce.client import FieldCreateError, FieldCreateOutcome
from leadbridge.transfer.pipeline.orchestrator import SchemaState, SettleDelay, TransferOrchestrator


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def _orchestrator(client, sleep=None):
    return TransferOrchestrator(client, settle=SettleDelay(seconds=2.0, sleep_fn=sleep or RecordingSleep()))


def test_record_without_dynamic_fields_passes_straight_through():
    client = FakeSalesforceClient()

    plan = _orchestrator(client).prepare({"LastName": "Doe"})

    assert plan.path == [SchemaState.NO_DYNAMIC_FIELDS, SchemaState.READY_FOR_TRANSFER]
    assert plan.ready
    assert client.describe_calls == 0


def test_all_fields_existing_skips_provisioning():
    client = FakeSalesforceClient(fields=("Question01__c",))
    sleep = RecordingSleep()

    plan = _orchestrator(client, sleep).prepare({"Question01": "yes"})

    assert plan.path == [SchemaState.CHECKING_SCHEMA, SchemaState.ALL_EXIST, SchemaState.READY_FOR_TRANSFER]
    assert plan.provisioning is None
    assert sleep.calls == []


def test_missing_fields_are_provisioned_then_settled():
    client = FakeSalesforceClient()
    sleep = RecordingSleep()

    plan = _orchestrator(client, sleep).prepare({"Question01": "yes", "Text02": None})

    assert plan.path == [
        SchemaState.CHECKING_SCHEMA,
        SchemaState.SOME_MISSING,
        SchemaState.PROVISIONING,
        SchemaState.ALL_SUCCEEDED,
        SchemaState.READY_FOR_TRANSFER,
    ]
    assert {item.remote_name for item in plan.provisioning.created} == {"Question01__c", "Text02__c"}
    assert sleep.calls == [2.0]


def test_only_skipped_fields_do_not_trigger_settle_delay():
    client = FakeSalesforceClient()
    client.field_overrides["Lead.Question01__c"] = FieldCreateOutcome(
        full_name="Lead.Question01__c",
        success=False,
        errors=(FieldCreateError("DUPLICATE_VALUE", "duplicate value found"),),
    )
    sleep = RecordingSleep()

    plan = _orchestrator(client, sleep).prepare({"Question01": "yes"})

    assert plan.ready
    assert [item.remote_name for item in plan.provisioning.skipped] == ["Question01__c"]
    assert sleep.calls == []


def test_failed_provisioning_blocks_transfer():
    client = FakeSalesforceClient()
    client.field_overrides["Lead.Answers03__c"] = FieldCreateOutcome(
        full_name="Lead.Answers03__c",
        success=False,
        errors=(FieldCreateError("LIMIT_EXCEEDED", "too many custom fields"),),
    )

    plan = _orchestrator(client).prepare({"Question01": "a", "Answers03": "b"})

    assert plan.blocked
    assert plan.path[-2:] == [SchemaState.ANY_FAILED, SchemaState.BLOCKED_ON_SCHEMA]
    assert plan.errors() == ["Answers03__c: too many custom fields"]


def test_inactive_fields_are_not_provisioned():
    client = FakeSalesforceClient()

    plan = _orchestrator(client).prepare({"Question01": "a", "Question02": "b"}, active_fields=["Question01"])

    assert [c.remote_name for c in plan.candidates] == ["Question01__c"]
    assert [f["full_name"] for f in client.created_fields] == ["Lead.Question01__c"]


def test_orchestrator_keeps_no_state_between_calls():
    client = FakeSalesforceClient()
    orchestrator = _orchestrator(client)

    first = orchestrator.prepare({"Question01": "a"})
    second = orchestrator.prepare({"Question01": "a"})

    assert first.state is SchemaState.READY_FOR_TRANSFER
    assert second.path == [SchemaState.CHECKING_SCHEMA, SchemaState.ALL_EXIST, SchemaState.READY_FOR_TRANSFER]
