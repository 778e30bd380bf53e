"""Create/read/update/delete/import of one API object.

The controller keeps no state between calls: every call rebuilds the
operation options from the object's record, talks to the transport and
returns. Records are plain mappings of the object's settings (``path``,
``data``, ``ignore_changes_to``, ...) as kept in the state file.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rest_provisioner.engine.documents import dump_object, get_key, id_to_text, set_key
from rest_provisioner.engine.drift import DriftPolicy, detect_drift
from rest_provisioner.engine.errors import (
    InvalidPayloadError,
    MissingIdentifierError,
    NotFoundError,
)
from rest_provisioner.engine.import_id import parse_import_id
from rest_provisioner.engine.options import OperationOptions, build_options
from rest_provisioner.engine.paths import resolve_path, with_query_string
from rest_provisioner.engine.transport import CreateResult

if TYPE_CHECKING:
    from rest_provisioner.core.provider import ProviderDefaults
    from rest_provisioner.engine.transport import Transport

logger = logging.getLogger(__name__)


class ResourceLifecycleController:
    """Runs lifecycle operations for API objects against a transport.

    *data_sensitive* hides payloads in log output.
    """

    def __init__(
        self,
        transport: Transport,
        defaults: ProviderDefaults | None = None,
        *,
        data_sensitive: bool = False,
    ) -> None:
        self._transport = transport
        self._defaults = defaults
        self._data_sensitive = data_sensitive

    def _options(
        self,
        record: Mapping[str, Any],
        *,
        operation: str,
        known_id: str = "",
        tolerate_invalid: bool = False,
    ) -> OperationOptions:
        try:
            options = build_options(
                record, self._defaults, known_id=known_id, operation=operation
            )
        except InvalidPayloadError as exc:
            if not tolerate_invalid or exc.options is None:
                raise
            logger.warning("The recorded data is invalid: %s", exc)
            logger.warning("Continuing %s with partially constructed options", operation)
            options = exc.options

        level = logging.INFO if options.debug else logging.DEBUG
        logger.log(
            level,
            "%s called for '%s'. Options built:\n%s",
            operation.capitalize(),
            options.path,
            options.describe(sensitive=self._data_sensitive),
        )
        return options

    def _fetch(self, options: OperationOptions) -> dict[str, Any] | None:
        """Read the object; ``None`` when the server says it does not exist."""
        search = options.read_search
        if search is None:
            path = resolve_path(options.path, options.read_path, options.id)
            path = with_query_string(path, options.read_query_string)
        else:
            search = search.model_copy(
                update={
                    "search_value": resolve_path(
                        search.search_value, None, options.id, append_id=False
                    )
                }
            )
            # Searches list the collection unless read_path says otherwise.
            path = resolve_path(options.path, options.read_path, options.id, append_id=False)
            path = with_query_string(path, options.read_query_string)
            path = with_query_string(path, search.query_string)

        try:
            return self._transport.read(path, options.read_method, search)
        except NotFoundError as exc:
            logger.info("Object '%s' not found at %s: %s", options.id, path, exc)
            return None

    def create(self, record: Mapping[str, Any]) -> CreateResult:
        """Create the object and return its identifier and the response body.

        Raises:
            InvalidPayloadError: A payload field is malformed.
            MissingIdentifierError: No identifier in the response, the data or
                the record.
            TransportError: The server rejected the request.
        """
        options = self._options(record, operation="create")
        path = resolve_path(options.path, options.create_path, options.id, append_id=False)
        path = with_query_string(path, options.create_query_string)

        result = self._transport.create(path, options.create_method, options.data)
        identifier = (
            result.identifier
            or id_to_text(get_key(result.body, options.id_attribute))
            or options.id
        )
        if not identifier:
            raise MissingIdentifierError(
                f"failed to find id_attribute '{options.id_attribute}' in the data "
                f"returned by {options.create_method} {path}"
            )
        logger.info("Created object '%s' at %s", identifier, path)
        return CreateResult(identifier=identifier, body=result.body)

    def read(self, record: Mapping[str, Any], *, known_id: str = "") -> dict[str, Any] | None:
        """Read the object and reconcile the record with what the server reports.

        Returns a new record carrying ``id`` and, when drift was found, the
        reconciled ``data``; ``None`` when the object no longer exists. A
        malformed recorded payload does not stop the read.

        Raises:
            DriftParseError: ``drift_fields`` is malformed.
            MissingIdentifierError: The read path needs an identifier.
            TransportError: The server failed the request.
        """
        options = self._options(record, operation="read", known_id=known_id, tolerate_invalid=True)
        observed = self._fetch(options)
        if observed is None:
            return None

        identifier = id_to_text(get_key(observed, options.id_attribute)) or options.id
        logger.debug("Read object. Returned id is '%s'", identifier)
        updated = dict(record)
        updated["id"] = identifier

        policy = DriftPolicy.parse(
            ignore_all_server_changes=bool(record.get("ignore_all_server_changes")),
            drift_fields=record.get("drift_fields"),
            drift_fields_from_data=bool(record.get("drift_fields_from_data")),
        )
        reconciled = detect_drift(
            options.data, observed, record.get("ignore_changes_to") or [], policy
        )
        if reconciled.changed:
            logger.info(
                "Found differences in remote object '%s': %s",
                identifier,
                ", ".join(reconciled.changed_paths),
            )
            updated["data"] = dump_object(reconciled.data)
        return updated

    def update(self, record: Mapping[str, Any], *, known_id: str = "") -> None:
        """Send ``update_data`` (or ``data``) to the object's update path.

        With provider ``copy_keys`` configured, the object is read first and
        those keys are copied from the server's copy into the payload.

        Raises:
            InvalidPayloadError: A payload field is malformed.
            MissingIdentifierError: The update path needs an identifier.
            NotFoundError: ``copy_keys`` are set and the object is gone.
            TransportError: The server rejected the request.
        """
        options = self._options(record, operation="update", known_id=known_id)
        payload = copy.deepcopy(
            options.update_data if options.update_data is not None else options.data
        )

        if options.copy_keys:
            observed = self._fetch(options)
            if observed is None:
                raise NotFoundError(f"object '{options.id}' not found for update", status_code=404)
            for key in options.copy_keys:
                value = get_key(observed, key)
                if value is not None:
                    set_key(payload, key, copy.deepcopy(value))

        path = resolve_path(options.path, options.update_path, options.id)
        path = with_query_string(path, options.update_query_string)
        self._transport.update(path, options.update_method, payload)
        logger.info("Updated object '%s' at %s", options.id, path)

    def delete(self, record: Mapping[str, Any], *, known_id: str = "") -> None:
        """Delete the object. An object that is already gone counts as deleted.

        Raises:
            InvalidPayloadError: A payload field is malformed.
            MissingIdentifierError: The destroy path needs an identifier.
            TransportError: The server rejected the request.
        """
        options = self._options(record, operation="delete", known_id=known_id)
        path = resolve_path(options.path, options.destroy_path, options.id)
        path = with_query_string(path, options.destroy_query_string)
        try:
            self._transport.delete(path, options.destroy_method, options.destroy_data)
        except NotFoundError:
            logger.info("Object '%s' already absent at %s", options.id, path)
            return
        logger.info("Deleted object '%s' at %s", options.id, path)

    def import_object(
        self, composite_id: str, settings: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Adopt an existing object addressed as ``/<path>/<id>``.

        *settings* are extra record fields (overrides, drift settings) to use
        while reading. The returned record has ``path`` and ``id`` from
        *composite_id*, ``data`` reconciled from the server, and ``debug`` on.

        Raises:
            InvalidImportFormatError: *composite_id* has no ``/``.
            NotFoundError: No object exists there.
        """
        parsed = parse_import_id(composite_id)
        id_attribute = (settings or {}).get("id_attribute") or (
            self._defaults.id_attribute if self._defaults is not None else "id"
        )
        data: dict[str, Any] = {}
        set_key(data, id_attribute, parsed.id)

        record = dict(settings or {})
        record.update(path=parsed.path, data=dump_object(data), debug=True)
        logger.info("Importing object '%s' from %s", parsed.id, parsed.path)

        imported = self.read(record, known_id=parsed.id)
        if imported is None:
            raise NotFoundError(
                f"object '{parsed.id}' not found under {parsed.path}", status_code=404
            )
        return imported
