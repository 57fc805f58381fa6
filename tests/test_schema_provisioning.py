from __future__ import annotations

from conftest import FakeSalesforceClient

from leadbridge.transfer.adapters.salesforce.client import FieldCreateError, FieldCreateOutcome
from leadbridge.transfer.pipeline.classify import classify_fields
from leadbridge.transfer.pipeline.schema import SchemaInspector, SchemaProvisioner, is_duplicate_error


def test_check_existence_partitions_names_with_one_describe():
    client = FakeSalesforceClient(fields=("LastName", "Question01__c"))
    inspector = SchemaInspector(client)

    check = inspector.check_existence(["Question01__c", "Question02__c"])

    assert check.existing == frozenset({"Question01__c"})
    assert check.missing == frozenset({"Question02__c"})
    assert client.describe_calls == 1


def test_check_existence_is_side_effect_free():
    client = FakeSalesforceClient(fields=("Question01__c",))
    inspector = SchemaInspector(client)

    first = inspector.check_existence(["Question01__c", "Text02__c"])
    second = inspector.check_existence(["Question01__c", "Text02__c"])

    assert first == second
    assert client.created_fields == []


def test_check_existence_degrades_to_nothing_missing_on_describe_failure():
    client = FakeSalesforceClient()
    client.describe_error = RuntimeError("INVALID_SESSION_ID")

    check = SchemaInspector(client).check_existence(["Question01__c"])

    assert check.missing == frozenset()
    assert check.existing == frozenset({"Question01__c"})
    assert check.degraded is True


def test_provision_creates_text_fields_with_labels():
    client = FakeSalesforceClient()
    fields = classify_fields({"Question01": "a"}, custom_labels={"Question01": "Budget"})

    result = SchemaProvisioner(client, field_length=120).provision(fields)

    assert [item.remote_name for item in result.created] == ["Question01__c"]
    assert client.created_fields == [
        {"full_name": "Lead.Question01__c", "label": "Budget", "type": "Text", "length": 120}
    ]


def test_provision_twice_reports_skipped_the_second_time():
    client = FakeSalesforceClient()
    fields = classify_fields({"Question01": "a", "Answers02": "b"})
    provisioner = SchemaProvisioner(client)

    first = provisioner.provision(fields)
    second = provisioner.provision(fields)

    assert {item.remote_name for item in first.created} == {"Question01__c", "Answers02__c"}
    assert first.skipped == [] and first.failed == []
    assert {item.remote_name for item in second.skipped} == {"Question01__c", "Answers02__c"}
    assert second.created == [] and second.failed == []


def test_provision_classifies_other_errors_as_failed():
    client = FakeSalesforceClient()
    client.field_overrides["Lead.Text03__c"] = FieldCreateOutcome(
        full_name="Lead.Text03__c",
        success=False,
        errors=(FieldCreateError("INSUFFICIENT_ACCESS", "insufficient access rights on cross-reference id"),),
    )
    fields = classify_fields({"Question01": "a", "Text03": "c"})

    result = SchemaProvisioner(client).provision(fields)

    assert [item.remote_name for item in result.created] == ["Question01__c"]
    assert [item.remote_name for item in result.failed] == ["Text03__c"]
    assert "insufficient access" in result.failed[0].message
    assert result.ok is False


def test_provision_never_raises_for_a_single_field():
    client = FakeSalesforceClient()
    client.field_overrides["Lead.Question01__c"] = RuntimeError("socket closed")

    result = SchemaProvisioner(client).provision(classify_fields({"Question01": "a"}))

    assert result.failed[0].message == "socket closed"


def test_duplicate_detection_by_code_or_message():
    assert is_duplicate_error("DUPLICATE_VALUE", "")
    assert is_duplicate_error("DUPLICATE_DEVELOPER_NAME", None)
    assert is_duplicate_error("UNKNOWN", "Field Question01__c already exists")
    assert not is_duplicate_error("FIELD_INTEGRITY_EXCEPTION", "bad length")
