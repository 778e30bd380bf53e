"""Tests for operation options layering."""

from __future__ import annotations

import logging

import pytest

from rest_provisioner.core.provider import ProviderDefaults
from rest_provisioner.engine.errors import InvalidPayloadError
from rest_provisioner.engine.options import OperationOptions, ReadSearch, build_options


class TestReadSearchExpand:
    def test_none_and_empty(self) -> None:
        assert ReadSearch.expand(None) is None
        assert ReadSearch.expand({}) is None

    def test_requires_key_and_value(self) -> None:
        assert ReadSearch.expand({"search_key": "name"}) is None
        assert ReadSearch.expand({"search_value": "x"}) is None

    def test_coerces_values_and_ignores_unknown(self) -> None:
        search = ReadSearch.expand(
            {"search_key": "num", "search_value": 5, "results_key": "items", "other": 1}
        )
        assert search == ReadSearch(search_key="num", search_value="5", results_key="items")


class TestBuildOptions:
    def test_defaults(self) -> None:
        options = build_options({"path": "/widgets", "data": "{}"})
        assert options.path == "/widgets"
        assert options.id == ""
        assert options.id_attribute == "id"
        assert (options.create_method, options.read_method) == ("POST", "GET")
        assert (options.update_method, options.destroy_method) == ("PUT", "DELETE")
        assert options.data == {}
        assert options.update_data is None
        assert options.read_search is None

    def test_resource_overrides_provider(self) -> None:
        defaults = ProviderDefaults(update_method="PATCH", read_path="/p/{id}")
        options = build_options(
            {"path": "/w", "data": "{}", "update_method": "POST"}, defaults
        )
        assert options.update_method == "POST"
        assert options.read_path == "/p/{id}"

    def test_empty_resource_value_falls_back(self) -> None:
        defaults = ProviderDefaults(id_attribute="uuid")
        options = build_options({"path": "/w", "data": "{}", "id_attribute": ""}, defaults)
        assert options.id_attribute == "uuid"

    def test_query_string_precedence(self) -> None:
        defaults = ProviderDefaults(query_string="p=1", destroy_query_string="pd=1")
        options = build_options(
            {"path": "/w", "data": "{}", "query_string": "r=1", "read_query_string": "rr=1"},
            defaults,
        )
        assert options.read_query_string == "rr=1"
        assert options.create_query_string == "r=1"
        # A resource-level generic query string beats a provider-level specific one.
        assert options.destroy_query_string == "r=1"

    def test_provider_query_strings(self) -> None:
        defaults = ProviderDefaults(query_string="p=1", destroy_query_string="pd=1")
        options = build_options({"path": "/w", "data": "{}"}, defaults)
        assert options.destroy_query_string == "pd=1"
        assert options.update_query_string == "p=1"

    def test_payload_defaults_from_provider(self) -> None:
        defaults = ProviderDefaults(destroy_data='{"reason": "cleanup"}')
        options = build_options({"path": "/w", "data": "{}"}, defaults)
        assert options.destroy_data == {"reason": "cleanup"}

    def test_copy_keys_from_provider(self) -> None:
        options = build_options(
            {"path": "/w", "data": "{}"}, ProviderDefaults(copy_keys=["etag"])
        )
        assert options.copy_keys == ["etag"]

    def test_identifier_precedence(self) -> None:
        record = {"path": "/w", "data": '{"id": "from-data"}'}
        assert build_options(record).id == "from-data"
        assert build_options(record, known_id="known").id == "known"
        assert build_options({**record, "object_id": "explicit"}, known_id="known").id == (
            "explicit"
        )

    def test_identifier_from_nested_attribute(self) -> None:
        record = {"path": "/w", "data": '{"meta": {"uid": 12}}', "id_attribute": "meta/uid"}
        assert build_options(record).id == "12"

    def test_read_search_expanded(self) -> None:
        record = {
            "path": "/w",
            "data": "{}",
            "read_search": {"search_key": "name", "search_value": "alpha"},
        }
        search = build_options(record).read_search
        assert search is not None
        assert search.search_value == "alpha"

    def test_force_new_and_debug(self) -> None:
        options = build_options(
            {"path": "/w", "data": "{}", "force_new": ["kind"], "debug": True}
        )
        assert options.force_new == ["kind"]
        assert options.debug is True

    def test_invalid_data_carries_partial_options(self) -> None:
        record = {"path": "/w", "data": "{broken", "object_id": "9", "read_method": "POST"}
        with pytest.raises(InvalidPayloadError, match="data attribute is invalid JSON") as exc:
            build_options(record)
        partial = exc.value.options
        assert partial is not None
        assert partial.id == "9"
        assert partial.read_method == "POST"
        assert partial.data == {}
        assert exc.value.field == "data"

    def test_non_object_update_data_rejected(self) -> None:
        with pytest.raises(InvalidPayloadError, match="update_data"):
            build_options({"path": "/w", "data": "{}", "update_data": "[1]"})

    def test_first_error_reported(self) -> None:
        with pytest.raises(InvalidPayloadError) as exc:
            build_options({"path": "/w", "data": "[", "destroy_data": "["})
        assert exc.value.field == "data"

    def test_logs_operation(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="rest_provisioner.engine.options"):
            build_options({"path": "/w", "data": "{}"}, operation="read")
        assert "Constructed options for read" in caplog.text


class TestDescribe:
    def test_sensitive_hides_payloads(self) -> None:
        options = OperationOptions(path="/w", data={"secret": "s3cr3t"})
        assert "s3cr3t" in options.describe()
        hidden = options.describe(sensitive=True)
        assert "s3cr3t" not in hidden
        assert "(sensitive)" in hidden
