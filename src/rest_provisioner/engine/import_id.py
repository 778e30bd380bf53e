"""Composite import identifiers (``/<collection path>/<object id>``)."""

from __future__ import annotations

from typing import NamedTuple

from rest_provisioner.engine.errors import InvalidImportFormatError


class ImportId(NamedTuple):
    path: str
    id: str


def parse_import_id(raw: str) -> ImportId:
    """Split *raw* into the collection path and the object id.

    One trailing slash is tolerated: ``/things/abc/`` -> ``("/things", "abc")``.

    Raises:
        InvalidImportFormatError: *raw* contains no ``/``.
    """
    trimmed = raw[:-1] if raw.endswith("/") else raw
    n = trimmed.rfind("/")
    if n == -1:
        raise InvalidImportFormatError(raw)
    return ImportId(path=trimmed[:n], id=trimmed[n + 1 :])
