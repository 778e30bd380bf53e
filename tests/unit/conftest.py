"""Shared fixtures for unit tests."""

from __future__ import annotations

import copy
import itertools
from typing import TYPE_CHECKING, Any

import pytest

from rest_provisioner.config import load
from rest_provisioner.engine.errors import NotFoundError
from rest_provisioner.engine.transport import CreateResult, find_in_results

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from rest_provisioner.config.schema import Config
    from rest_provisioner.engine.options import ReadSearch

_REST_ENV_VARS = (
    "REST_URI",
    "REST_USERNAME",
    "REST_PASSWORD",
    "REST_BEARER_TOKEN",
    "REST_TIMEOUT",
    "REST_INSECURE",
    "REST_DATA_SENSITIVE",
    "REST_LOG",
)


@pytest.fixture(autouse=True)
def _clean_rest_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove REST_* env vars so unit tests don't leak server config."""
    for var in _REST_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


class FakeApi:
    """In-memory API server implementing the ``Transport`` protocol.

    Objects are stored by their full path (``/widgets/1``). Query strings are
    recorded in ``calls`` but ignored for lookup.
    """

    def __init__(self, *, assign_ids: bool = True) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.payloads: list[dict[str, Any] | None] = []
        self.assign_ids = assign_ids
        self._ids = itertools.count(1)

    @staticmethod
    def _key(path: str) -> str:
        return path.split("?", 1)[0].rstrip("/")

    def create(self, path: str, method: str, payload: dict[str, Any]) -> CreateResult:
        self.calls.append(("create", method, path))
        self.payloads.append(copy.deepcopy(payload))
        body = copy.deepcopy(payload)
        if self.assign_ids and "id" not in body:
            body["id"] = str(next(self._ids))
        if "id" in body:
            self.objects[f"{self._key(path)}/{body['id']}"] = body
        else:
            self.objects[self._key(path)] = body
        return CreateResult(body=copy.deepcopy(body))

    def read(self, path: str, method: str, search: ReadSearch | None) -> dict[str, Any]:
        self.calls.append(("read", method, path))
        key = self._key(path)
        if search is not None:
            listing = [obj for p, obj in sorted(self.objects.items()) if p.startswith(f"{key}/")]
            return copy.deepcopy(find_in_results(listing, search))
        if key not in self.objects:
            raise NotFoundError(f"nothing at {key}", status_code=404)
        return copy.deepcopy(self.objects[key])

    def update(self, path: str, method: str, payload: dict[str, Any]) -> None:
        self.calls.append(("update", method, path))
        self.payloads.append(copy.deepcopy(payload))
        key = self._key(path)
        if key not in self.objects:
            raise NotFoundError(f"nothing at {key}", status_code=404)
        self.objects[key] = copy.deepcopy(payload)

    def delete(self, path: str, method: str, payload: dict[str, Any] | None) -> None:
        self.calls.append(("delete", method, path))
        self.payloads.append(copy.deepcopy(payload))
        key = self._key(path)
        if key not in self.objects:
            raise NotFoundError(f"nothing at {key}", status_code=404)
        del self.objects[key]

    def ops(self) -> list[str]:
        return [op for op, _, _ in self.calls]


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()
