"""API object resource model."""

from __future__ import annotations

import json
from typing import Annotated, Any, ClassVar, Self

from pydantic import (
    AliasChoices,
    BeforeValidator,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from rest_provisioner.resources.base import Resource
from rest_provisioner.resources.markers import Compare


def _to_json_text(v: Any) -> Any:
    """Accept YAML mappings for JSON fields by serializing them."""
    if isinstance(v, dict):
        return json.dumps(v, sort_keys=True)
    return v


JsonText = Annotated[str, BeforeValidator(_to_json_text), Compare("json")]
OptionalJsonText = Annotated[str | None, BeforeValidator(_to_json_text), Compare("json")]


def check_json_object(v: str | None, field_name: str | None) -> str | None:
    """Validate that JSON text *v* (if set) holds a JSON object."""
    if not v:
        return v
    try:
        parsed = json.loads(v)
    except ValueError as exc:
        raise ValueError(f"{field_name} attribute is invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{field_name} must be a JSON object")
    return v


_JSON_FIELDS = ("data", "update_data", "destroy_data", "drift_fields")


class ApiObjectResource(Resource):
    """An object managed through a REST API.

    ``data`` is the JSON object sent on create and compared against what the
    server reports. Paths default to ``path`` (create) and ``path/{id}``
    (read, update, destroy); ``{id}`` in any path is replaced with the
    object's identifier.
    """

    resource_type: ClassVar[str] = "rest_object"

    path: str = Field(min_length=1)
    create_path: str | None = None
    read_path: str | None = None
    update_path: str | None = None
    destroy_path: str | None = None

    create_method: str | None = None
    read_method: str | None = None
    update_method: str | None = None
    destroy_method: str | None = None

    query_string: str | None = None
    create_query_string: str | None = None
    read_query_string: str | None = None
    update_query_string: str | None = None
    destroy_query_string: str | None = Field(
        default=None,
        validation_alias=AliasChoices("destroy_query_string", "delete_query_string"),
    )

    id_attribute: str | None = None
    object_id: str | None = None

    data: JsonText
    update_data: OptionalJsonText = None
    destroy_data: OptionalJsonText = None

    read_search: dict[str, Any] | None = None

    ignore_changes_to: list[str] = Field(default_factory=list)
    ignore_all_server_changes: bool = False
    drift_fields: OptionalJsonText = None
    drift_fields_from_data: bool = False

    force_new: Annotated[list[str], Compare("set")] = Field(default_factory=list)
    debug: bool = False

    @field_validator(*_JSON_FIELDS)
    @classmethod
    def _must_be_json_object(cls, v: str | None, info: ValidationInfo) -> str | None:
        return check_json_object(v, info.field_name)

    @model_validator(mode="after")
    def _check_read_search(self) -> Self:
        if self.read_search and not (
            self.read_search.get("search_key") and self.read_search.get("search_value")
        ):
            raise ValueError("read_search requires both search_key and search_value")
        return self
