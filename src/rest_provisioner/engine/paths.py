"""Path template resolution.

Object paths are templates in which the literal ``{id}`` stands for the
object's identifier, e.g. ``/widgets/{id}/details``.
"""

from __future__ import annotations

from rest_provisioner.engine.errors import MissingIdentifierError

ID_PLACEHOLDER = "{id}"


def resolve_path(
    default_path: str,
    override: str | None,
    identifier: str,
    *,
    append_id: bool = True,
) -> str:
    """Pick the template for one operation and substitute the identifier.

    *override* wins when non-empty. Otherwise *default_path* is used, with
    ``/{id}`` appended when *append_id* is set and the default does not
    already address a single object.

    Every placeholder is replaced in a single pass; an identifier that itself
    contains ``{id}`` is not expanded again.

    Raises:
        MissingIdentifierError: The template needs an identifier and none is known.
    """
    if override:
        template = override
    elif append_id and ID_PLACEHOLDER not in default_path:
        template = f"{default_path.rstrip('/')}/{ID_PLACEHOLDER}"
    else:
        template = default_path

    if ID_PLACEHOLDER not in template:
        return template
    if not identifier:
        raise MissingIdentifierError(f"cannot resolve path '{template}': missing identifier")
    return template.replace(ID_PLACEHOLDER, identifier)


def with_query_string(path: str, query_string: str | None) -> str:
    """Append *query_string* to *path* when set."""
    if not query_string:
        return path
    sep = "&" if "?" in path else "?"
    return f"{path}{sep}{query_string.lstrip('?')}"
