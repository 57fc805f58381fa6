from __future__ import annotations

import pytest

from leadbridge.transfer.pipeline.field_config import FieldConfigService, InvalidFieldAlias, validate_aliases


def test_missing_config_means_all_fields_active(app):
    config = FieldConfigService().get_config("org-a")

    assert config.active_fields is None
    assert config.custom_labels == {}
    assert config.aliases == {}


def test_set_config_is_an_upsert(app):
    service = FieldConfigService()

    service.set_config("org-a", ["Question01"], {"Question01": "Budget"})
    updated = service.set_config("org-a", ["Question02", "Question02", " "], {})

    assert updated.active_fields == ["Question02"]
    assert updated.custom_labels == {}
    assert service.get_config("org-b").active_fields is None


def test_explicit_empty_active_list_is_kept(app):
    config = FieldConfigService().set_config("org-a", [])

    assert config.active_fields == []


def test_add_and_remove_active_field(app):
    service = FieldConfigService()

    service.add_active_field("org-a", "Question01")
    service.add_active_field("org-a", "Question01")
    service.add_active_field("org-a", "Text02")
    assert service.get_active_fields("org-a") == ["Question01", "Text02"]

    service.remove_active_field("org-a", "Question01")
    assert service.get_active_fields("org-a") == ["Text02"]


def test_invalid_alias_is_rejected_and_not_saved(app):
    service = FieldConfigService()

    with pytest.raises(InvalidFieldAlias) as exc:
        service.set_config("org-a", ["Department"], aliases={"Department": "1 bad name"})

    assert exc.value.source_name == "Department"
    assert service.get_config("org-a").active_fields is None


@pytest.mark.parametrize(
    "aliases",
    [
        {"Question01": "Budget__c"},
        {"LastName": "Surname__c"},
        {"Department": "Department"},
        {"Department": "Dept-Name"},
    ],
)
def test_validate_aliases_rejects(aliases):
    with pytest.raises(InvalidFieldAlias):
        validate_aliases(aliases)


def test_validate_aliases_accepts_custom_field_names():
    assert validate_aliases({"Department": "Department__c", "Budget": " Budget_Range__c ", "Empty": ""}) == {
        "Department": "Department__c",
        "Budget": "Budget_Range__c",
    }
