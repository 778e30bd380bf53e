"""Operation options: one normalized view of how to reach an object.

Options are rebuilt for every lifecycle call from the object's record
(resource-level settings) layered over the provider defaults.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from rest_provisioner.engine.documents import get_key, id_to_text, parse_object
from rest_provisioner.engine.errors import InvalidPayloadError

if TYPE_CHECKING:
    from rest_provisioner.core.provider import ProviderDefaults

logger = logging.getLogger(__name__)

_SENSITIVE = "(sensitive)"


class ReadSearch(BaseModel):
    """Find an object by listing a collection instead of fetching it by id."""

    search_key: str
    search_value: str
    results_key: str = ""
    query_string: str = ""

    @classmethod
    def expand(cls, raw: Mapping[str, Any] | None) -> ReadSearch | None:
        """Build from a loose string-keyed mapping.

        Unknown keys are ignored and values are coerced to text. Returns
        ``None`` unless both ``search_key`` and ``search_value`` are set.
        """
        if not raw:
            return None
        fields = {
            name: "" if raw.get(name) is None else str(raw.get(name))
            for name in ("search_key", "search_value", "results_key", "query_string")
        }
        if not fields["search_key"] or not fields["search_value"]:
            return None
        return cls(**fields)


class OperationOptions(BaseModel):
    """Everything one lifecycle call needs to know about the object."""

    path: str
    id: str = ""
    id_attribute: str = "id"

    create_path: str | None = None
    read_path: str | None = None
    update_path: str | None = None
    destroy_path: str | None = None

    create_method: str = "POST"
    read_method: str = "GET"
    update_method: str = "PUT"
    destroy_method: str = "DELETE"

    create_query_string: str | None = None
    read_query_string: str | None = None
    update_query_string: str | None = None
    destroy_query_string: str | None = None

    data: dict[str, Any] = Field(default_factory=dict)
    update_data: dict[str, Any] | None = None
    destroy_data: dict[str, Any] | None = None

    read_search: ReadSearch | None = None
    force_new: list[str] = Field(default_factory=list)
    copy_keys: list[str] = Field(default_factory=list)
    debug: bool = False

    def describe(self, *, sensitive: bool = False) -> str:
        """Render the options for log output, hiding payloads when *sensitive*."""
        dump = self.model_dump(exclude_none=True)
        if sensitive:
            for key in ("data", "update_data", "destroy_data"):
                if key in dump:
                    dump[key] = _SENSITIVE
        return "\n".join(f"  {k}: {v}" for k, v in dump.items())


def _coalesce(*values: Any) -> Any:
    """Return the first value that is set (not ``None`` and not empty)."""
    for v in values:
        if v is not None and v != "":
            return v
    return None


def _payload(
    record: Mapping[str, Any], defaults: ProviderDefaults | None, field: str
) -> tuple[dict[str, Any] | None, str | None]:
    """Return ``(document, error)`` for a payload field after layering."""
    raw = _coalesce(record.get(field), getattr(defaults, field, None))
    if raw is None:
        return None, None
    if not isinstance(raw, str):
        return None, f"expected a JSON string, got {type(raw).__name__}"
    try:
        return parse_object(raw), None
    except ValueError as exc:
        return None, str(exc)


def build_options(
    record: Mapping[str, Any],
    defaults: ProviderDefaults | None = None,
    *,
    known_id: str = "",
    operation: str = "unknown",
) -> OperationOptions:
    """Layer an object's record over provider *defaults*.

    *record* holds resource-level settings keyed by field name (``path``,
    ``read_path``, ``data``, ...). *known_id* is the identifier the caller
    already tracks for the object. *operation* is only used for logging.

    Identifier order: ``object_id`` > *known_id* > ``id_attribute`` value in
    ``data`` > empty.

    Raises:
        InvalidPayloadError: ``data``, ``update_data`` or ``destroy_data`` is
            not a JSON object. ``exc.options`` holds the options built from
            everything else (malformed payloads left empty).
    """
    d = defaults

    def pick(field: str) -> Any:
        return _coalesce(record.get(field), getattr(d, field, None))

    def query(op: str) -> str | None:
        return _coalesce(
            record.get(f"{op}_query_string"),
            record.get("query_string"),
            getattr(d, f"{op}_query_string", None),
            getattr(d, "query_string", None),
        )

    errors: list[tuple[str, str]] = []
    payloads: dict[str, dict[str, Any] | None] = {}
    for field in ("data", "update_data", "destroy_data"):
        payloads[field], err = _payload(record, d, field)
        if err is not None:
            errors.append((field, err))

    data = payloads["data"] or {}
    id_attribute = pick("id_attribute") or "id"
    identifier = _coalesce(
        record.get("object_id"),
        known_id,
        id_to_text(get_key(data, id_attribute)),
    )

    options = OperationOptions(
        path=record.get("path") or "",
        id=identifier or "",
        id_attribute=id_attribute,
        create_path=pick("create_path"),
        read_path=pick("read_path"),
        update_path=pick("update_path"),
        destroy_path=pick("destroy_path"),
        create_method=pick("create_method") or "POST",
        read_method=pick("read_method") or "GET",
        update_method=pick("update_method") or "PUT",
        destroy_method=pick("destroy_method") or "DELETE",
        create_query_string=query("create"),
        read_query_string=query("read"),
        update_query_string=query("update"),
        destroy_query_string=query("destroy"),
        data=data,
        update_data=payloads["update_data"],
        destroy_data=payloads["destroy_data"],
        read_search=ReadSearch.expand(record.get("read_search")),
        force_new=list(record.get("force_new") or []),
        copy_keys=list(getattr(d, "copy_keys", None) or []),
        debug=bool(record.get("debug", False)),
    )
    logger.debug("Constructed options for %s (id '%s')", operation, options.id)

    if errors:
        field, message = errors[0]
        raise InvalidPayloadError(field, message, options=options)
    return options
