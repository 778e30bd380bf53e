"""Tests for the YAML configuration loader."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from rest_provisioner.config.loader import ConfigError, _validate_unique_names, load_config
from rest_provisioner.resources.api_object import ApiObjectResource

if TYPE_CHECKING:
    from collections.abc import Callable

    from rest_provisioner.config.schema import Config

_FULL_YAML = """\
provider:
  uri: https://api.example.com
  username: admin
  headers:
    X-Team: ops
  timeout: 5
  defaults:
    id_attribute: data/uid
    update_method: PATCH
    copy_keys: [etag]

state_path: custom-state.json

objects:
  - name: team
    path: /teams
    data:
      uid: t1
      title: Platform
  - name: member
    path: /teams/t1/members
    create_method: PUT
    delete_query_string: cascade=true
    data: '{"uid": "m1", "role": "owner"}'
    ignore_changes_to: [meta.updated]
    force_new: [role]
    read_search:
      search_key: uid
      search_value: m1
    depends_on: [rest_object.team]
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


@pytest.fixture
def full_config(make_config: Callable[..., Config]) -> Config:
    return make_config(_FULL_YAML)


class TestLoadConfigFull:
    def test_provider_parsed(self, full_config: Config) -> None:
        provider = full_config.provider
        assert provider.uri == "https://api.example.com"
        assert provider.username == "admin"
        assert provider.headers == {"X-Team": "ops"}
        assert provider.timeout == 5.0
        assert provider.defaults.id_attribute == "data/uid"
        assert provider.defaults.update_method == "PATCH"
        assert provider.defaults.copy_keys == ["etag"]

    def test_objects_parsed(self, full_config: Config) -> None:
        assert [r.address for r in full_config.resources] == [
            "rest_object.team",
            "rest_object.member",
        ]
        member = full_config.find("rest_object.member")
        assert member is not None
        assert member.create_method == "PUT"
        assert member.destroy_query_string == "cascade=true"
        assert member.force_new == ["role"]
        assert member.depends_on == ["rest_object.team"]

    def test_mapping_data_serialized(self, full_config: Config) -> None:
        team = full_config.find("rest_object.team")
        assert team is not None
        assert json.loads(team.data) == {"uid": "t1", "title": "Platform"}

    def test_find_unknown_address(self, full_config: Config) -> None:
        assert full_config.find("rest_object.nope") is None

    def test_state_path_relative_to_config(self, full_config: Config, tmp_path: Path) -> None:
        assert full_config.state_path == tmp_path / "custom-state.json"
        assert full_config.config_dir == tmp_path

    def test_default_state_path(self, make_config: Callable[..., Config], tmp_path: Path) -> None:
        config = make_config("provider:\n  uri: https://h\n")
        assert config.state_path == tmp_path / ".rest-state.json"

    def test_absolute_state_path_kept(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere" / "state.json"
        config = load_config(_write(tmp_path, f"provider: {{}}\nstate_path: {target}\n"))
        assert config.state_path == target

    def test_empty_objects_section(self, make_config: Callable[..., Config]) -> None:
        config = make_config("provider:\n  uri: https://h\nobjects:\n")
        assert config.resources == []


class TestProviderResolution:
    def test_env_var_fallback(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REST_URI", "https://from-env")
        monkeypatch.setenv("REST_BEARER_TOKEN", "tok")
        config = make_config("provider: {}\n")
        assert config.provider.uri == "https://from-env"
        assert config.provider.bearer_token == "tok"

    def test_yaml_beats_env(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REST_URI", "https://from-env")
        config = make_config("provider:\n  uri: https://from-yaml\n")
        assert config.provider.uri == "https://from-yaml"

    def test_env_beats_dotenv(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REST_PASSWORD", "from-env")
        config = make_config("provider: {}\n", dotenv="REST_PASSWORD=from-dotenv\n")
        assert config.provider.password == "from-env"

    def test_dotenv_fallback(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "provider: {}\n", dotenv="REST_URI=https://from-dotenv\nREST_TIMEOUT=2.5\n"
        )
        assert config.provider.uri == "https://from-dotenv"
        assert config.provider.timeout == 2.5

    @pytest.mark.parametrize(("raw", "expected"), [("true", True), ("No", False), ("on", True)])
    def test_bool_env_parsed(
        self,
        make_config: Callable[..., Config],
        monkeypatch: pytest.MonkeyPatch,
        raw: str,
        expected: bool,
    ) -> None:
        monkeypatch.setenv("REST_DATA_SENSITIVE", raw)
        config = make_config("provider: {}\n")
        assert config.provider.data_sensitive is expected

    def test_invalid_bool_env(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("REST_INSECURE", "maybe")
        with pytest.raises(ConfigError, match="Invalid boolean for REST_INSECURE"):
            make_config("provider: {}\n")

    def test_missing_provider_section(self, make_config: Callable[..., Config]) -> None:
        config = make_config("objects: []\n")
        assert config.provider.uri is None


class TestConfigErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(_write(tmp_path, "provider: [unclosed\n"))

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping at the top level"):
            load_config(_write(tmp_path, "- just\n- a list\n"))

    def test_validation_error_wrapped(self, tmp_path: Path) -> None:
        text = "provider: {}\nobjects:\n  - name: w\n    path: /w\n    data: '{oops'\n"
        with pytest.raises(ConfigError, match="invalid JSON"):
            load_config(_write(tmp_path, text))

    def test_unknown_object_field(self, tmp_path: Path) -> None:
        text = "provider: {}\nobjects:\n  - name: w\n    path: /w\n    data: {}\n    colour: red\n"
        with pytest.raises(ConfigError, match="colour"):
            load_config(_write(tmp_path, text))

    def test_unknown_default_field(self, tmp_path: Path) -> None:
        text = "provider:\n  defaults:\n    create_verb: POST\n"
        with pytest.raises(ConfigError, match="create_verb"):
            load_config(_write(tmp_path, text))


class TestDuplicateNames:
    def test_duplicates_reported(self) -> None:
        resources = [
            ApiObjectResource(name="w", path="/a", data="{}"),
            ApiObjectResource(name="w", path="/b", data="{}"),
        ]
        errors = _validate_unique_names(resources)
        assert len(errors) == 1
        assert "Duplicate object name 'w' (rest_object.w)" in errors[0]

    def test_no_duplicates(self) -> None:
        resources = [
            ApiObjectResource(name="a", path="/a", data="{}"),
            ApiObjectResource(name="b", path="/b", data="{}"),
        ]
        assert _validate_unique_names(resources) == []

    def test_load_config_duplicate_names(self, tmp_path: Path) -> None:
        text = (
            "provider: {}\n"
            "objects:\n"
            "  - name: w\n    path: /a\n    data: {}\n"
            "  - name: w\n    path: /b\n    data: {}\n"
        )
        with pytest.raises(ConfigError, match="Duplicate object name 'w'"):
            load_config(_write(tmp_path, text))


class TestProviderPayloadDefaults:
    def test_mapping_defaults_serialized(self, make_config: Callable[..., Config]) -> None:
        config = make_config(
            "provider:\n"
            "  defaults:\n"
            "    update_data:\n      a: 1\n"
            "    destroy_data: '{\"reason\": \"cleanup\"}'\n"
        )
        defaults = config.provider.defaults
        assert json.loads(defaults.update_data) == {"a": 1}
        assert json.loads(defaults.destroy_data) == {"reason": "cleanup"}

    def test_malformed_default_rejected_at_load(self, tmp_path: Path) -> None:
        text = "provider:\n  defaults:\n    destroy_data: '{oops'\n"
        with pytest.raises(ConfigError, match="destroy_data attribute is invalid JSON"):
            load_config(_write(tmp_path, text))

    def test_non_object_default_rejected_at_load(self, tmp_path: Path) -> None:
        text = "provider:\n  defaults:\n    update_data: '[1, 2]'\n"
        with pytest.raises(ConfigError, match="update_data must be a JSON object"):
            load_config(_write(tmp_path, text))


class TestBundledExample:
    def test_example_config_loads(self) -> None:
        example = Path(__file__).parents[2] / "examples" / "rest-provisioner.yaml"
        config = load_config(example)

        assert config.provider.defaults.copy_keys == ["revision"]
        team = config.find("rest_object.platform_team")
        assert team is not None
        assert "revision" in team.ignore_changes_to
        job = config.find("rest_object.nightly_export")
        assert job is not None
        assert job.drift_fields_from_data is True
