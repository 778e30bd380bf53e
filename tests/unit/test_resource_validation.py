"""Tests for parse-time and plan-time resource validation."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from rest_provisioner.core import ProviderDefaults, RestProvider
from rest_provisioner.engine.engine import RestEngine, validate_resource
from rest_provisioner.engine.types import Action
from rest_provisioner.resources.api_object import ApiObjectResource

if TYPE_CHECKING:
    from pathlib import Path

    from conftest import FakeApi

# ---------------------------------------------------------------------------
# Tier 1: Parse-time validation (Pydantic model constraints)
# ---------------------------------------------------------------------------


class TestNameValidation:
    def test_empty_name_rejected(self) -> None:
        with pytest.raises(ValidationError, match="name"):
            ApiObjectResource(name="", path="/w", data="{}")

    def test_name_with_spaces_rejected(self) -> None:
        with pytest.raises(ValidationError, match="name"):
            ApiObjectResource(name="my widget", path="/w", data="{}")

    @pytest.mark.parametrize("name", ["w", "Widget_1", "admin-user", "_leading"])
    def test_valid_names_accepted(self, name: str) -> None:
        r = ApiObjectResource(name=name, path="/w", data="{}")
        assert r.address == f"rest_object.{name}"


class TestFieldValidation:
    def test_path_required(self) -> None:
        with pytest.raises(ValidationError, match="path"):
            ApiObjectResource(name="w", path="", data="{}")

    def test_data_required(self) -> None:
        with pytest.raises(ValidationError, match="data"):
            ApiObjectResource(name="w", path="/w")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError, match="colour"):
            ApiObjectResource(name="w", path="/w", data="{}", colour="red")

    @pytest.mark.parametrize("field", ["data", "update_data", "destroy_data", "drift_fields"])
    def test_malformed_json_rejected(self, field: str) -> None:
        kwargs = {"data": "{}", field: "{oops"}
        with pytest.raises(ValidationError, match=f"{field} attribute is invalid JSON"):
            ApiObjectResource(name="w", path="/w", **kwargs)

    def test_json_array_rejected(self) -> None:
        with pytest.raises(ValidationError, match="data must be a JSON object"):
            ApiObjectResource(name="w", path="/w", data="[1]")

    def test_mapping_accepted_as_json(self) -> None:
        r = ApiObjectResource(name="w", path="/w", data={"b": 1, "a": {"c": True}})
        assert json.loads(r.data) == {"a": {"c": True}, "b": 1}

    def test_read_search_needs_key_and_value(self) -> None:
        with pytest.raises(ValidationError, match="search_key and search_value"):
            ApiObjectResource(name="w", path="/w", data="{}", read_search={"search_key": "n"})

    def test_delete_query_string_alias(self) -> None:
        r = ApiObjectResource.model_validate(
            {"name": "w", "path": "/w", "data": "{}", "delete_query_string": "force=1"}
        )
        assert r.destroy_query_string == "force=1"

    def test_record_drops_unset_and_lifecycle_fields(self) -> None:
        r = ApiObjectResource(
            name="w", path="/w", data='{"a": 1}', depends_on=["rest_object.x"], debug=True
        )
        record = r.record()
        assert record["path"] == "/w"
        assert record["debug"] is True
        assert "name" not in record
        assert "address" not in record
        assert "depends_on" not in record
        assert "read_path" not in record


# ---------------------------------------------------------------------------
# Tier 2: Whole-resource checks run at plan time
# ---------------------------------------------------------------------------


class TestValidateResource:
    def test_valid(self) -> None:
        r = ApiObjectResource(name="w", path="/w", data='{"kind": "a"}', force_new=["kind"])
        assert validate_resource(r) == []

    def test_force_new_field_must_be_in_data(self) -> None:
        r = ApiObjectResource(name="w", path="/w", data='{"kind": "a"}', force_new=["size"])
        errors = validate_resource(r)
        assert len(errors) == 1
        assert "force_new field 'size'" in errors[0]

    def test_force_new_nested_field(self) -> None:
        r = ApiObjectResource(
            name="w", path="/w", data='{"placement": {"zone": "eu"}}', force_new=["placement.zone"]
        )
        assert validate_resource(r) == []

    def test_create_path_placeholder_needs_identifier(self) -> None:
        r = ApiObjectResource(name="w", path="/w", create_path="/w/{id}", data="{}")
        errors = validate_resource(r)
        assert len(errors) == 1
        assert "create_path uses {id}" in errors[0]

    def test_create_path_placeholder_with_data_id(self) -> None:
        r = ApiObjectResource(name="w", path="/w", create_path="/w/{id}", data='{"id": "x"}')
        assert validate_resource(r) == []

    def test_create_path_placeholder_with_object_id(self) -> None:
        r = ApiObjectResource(
            name="w", path="/w", create_path="/w/{id}", object_id="x", data="{}"
        )
        assert validate_resource(r) == []

    def test_provider_id_attribute_default(self) -> None:
        r = ApiObjectResource(
            name="w", path="/w", create_path="/w/{id}", data='{"uuid": "abc"}'
        )
        assert validate_resource(r, ProviderDefaults(id_attribute="uuid")) == []

    def test_resource_id_attribute_beats_provider_default(self) -> None:
        r = ApiObjectResource(
            name="w",
            path="/w",
            create_path="/w/{id}",
            id_attribute="login",
            data='{"uuid": "abc"}',
        )
        errors = validate_resource(r, ProviderDefaults(id_attribute="uuid"))
        assert len(errors) == 1
        assert "data['login']" in errors[0]

    def test_provider_create_path_default_checked(self) -> None:
        r = ApiObjectResource(name="w", path="/w", data='{"name": "x"}')
        errors = validate_resource(r, ProviderDefaults(create_path="/w/{id}"))
        assert len(errors) == 1
        assert "create_path uses {id}" in errors[0]

    def test_plan_honours_provider_id_attribute(
        self, tmp_path: Path, fake_api: FakeApi
    ) -> None:
        provider = RestProvider.from_transport(
            fake_api, defaults=ProviderDefaults(id_attribute="uuid")
        )
        engine = RestEngine(provider=provider, state_path=tmp_path / "state.json")
        r = ApiObjectResource(
            name="w", path="/widgets", create_path="/widgets/{id}", data='{"uuid": "abc"}'
        )

        plan = engine.plan([r])

        assert [c.action for c in plan.changes] == [Action.CREATE]
