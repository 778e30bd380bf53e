"""Transport: how requests reach the API server.

The lifecycle controller only depends on the ``Transport`` protocol.
``RequestsTransport`` implements it over HTTP with a ``requests.Session``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import requests

from rest_provisioner.engine.documents import get_key
from rest_provisioner.engine.errors import NotFoundError, TransportError

if TYPE_CHECKING:
    from rest_provisioner.engine.options import ReadSearch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateResult:
    """Outcome of a create call.

    ``identifier`` is empty when the transport cannot tell; the controller then
    looks it up in ``body``.
    """

    identifier: str = ""
    body: dict[str, Any] = field(default_factory=dict)


class Transport(Protocol):
    def create(self, path: str, method: str, payload: dict[str, Any]) -> CreateResult: ...

    def read(self, path: str, method: str, search: ReadSearch | None) -> dict[str, Any]:
        """Return the object at *path*.

        With a *search*, *path* lists objects and the match is returned.

        Raises:
            NotFoundError: The object does not exist.
        """
        ...

    def update(self, path: str, method: str, payload: dict[str, Any]) -> None: ...

    def delete(self, path: str, method: str, payload: dict[str, Any] | None) -> None: ...


def find_in_results(results: Any, search: ReadSearch) -> dict[str, Any]:
    """Pick the first object whose ``search_key`` equals ``search_value``.

    Raises:
        NotFoundError: Nothing matches.
        TransportError: *results* is not a list of objects.
    """
    if search.results_key:
        results = get_key(results, search.results_key)
    if not isinstance(results, list):
        raise TransportError(
            f"search results are not a list (results_key '{search.results_key}')"
        )
    for item in results:
        if not isinstance(item, dict):
            continue
        value = get_key(item, search.search_key)
        if value is not None and str(value) == search.search_value:
            return item
    raise NotFoundError(
        f"no object found with {search.search_key} = '{search.search_value}'", status_code=404
    )


class RequestsTransport:
    """HTTP transport built on ``requests``.

    Timeouts (``requests.Timeout``) propagate unchanged; other request failures
    are wrapped in ``TransportError``. No retries.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        verify: bool = True,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.setdefault("Content-Type", "application/json")
        if headers:
            self._session.headers.update(headers)
        self._timeout = timeout
        self._verify = verify

    @property
    def session(self) -> requests.Session:
        return self._session

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _send(self, method: str, path: str, payload: dict[str, Any] | None) -> Any:
        url = self._url(path)
        body = json.dumps(payload) if payload is not None else None
        logger.debug("%s %s", method, url)
        try:
            resp = self._session.request(
                method, url, data=body, timeout=self._timeout, verify=self._verify
            )
        except requests.Timeout:
            raise
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        logger.debug("%s %s -> %d", method, url, resp.status_code)
        if resp.status_code == 404:
            raise NotFoundError(
                f"unexpected response code '404' for {method} {url}", status_code=404
            )
        if not 200 <= resp.status_code < 300:
            raise TransportError(
                f"unexpected response code '{resp.status_code}' for {method} {url}: {resp.text}",
                status_code=resp.status_code,
            )
        if not resp.text.strip():
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(f"{method} {url} returned a non-JSON body") from exc

    @staticmethod
    def _as_object(value: Any, what: str) -> dict[str, Any]:
        if not isinstance(value, dict):
            raise TransportError(f"{what} returned {type(value).__name__}, expected a JSON object")
        return value

    def create(self, path: str, method: str, payload: dict[str, Any]) -> CreateResult:
        body = self._send(method, path, payload)
        return CreateResult(body=body if isinstance(body, dict) else {})

    def read(self, path: str, method: str, search: ReadSearch | None) -> dict[str, Any]:
        body = self._send(method, path, None)
        if search is not None:
            return find_in_results(body, search)
        return self._as_object(body, f"{method} {path}")

    def update(self, path: str, method: str, payload: dict[str, Any]) -> None:
        self._send(method, path, payload)

    def delete(self, path: str, method: str, payload: dict[str, Any] | None) -> None:
        self._send(method, path, payload)
