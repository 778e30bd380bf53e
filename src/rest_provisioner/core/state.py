"""State file: the recorded settings and identity of every managed object."""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's stored attributes."""
    return hashlib.sha256(_canonical_json(attrs).encode("utf-8")).hexdigest()


class ResourceInstance(BaseModel):
    """A tracked object in the state file.

    Attributes:
        address: Unique resource address (e.g., "rest_object.admin_user")
        resource_type: Type of the resource (e.g., "rest_object")
        name: Resource name (e.g., "admin_user")
        attributes: Recorded settings (``path``, ``data``, ...) plus ``id``,
            the identifier the server knows the object by
        attributes_hash: SHA256 hash for change detection
        dependencies: Addresses of dependencies
        created_at: When the resource was created or imported
        updated_at: When the resource was last updated or refreshed
    """

    address: str
    resource_type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def object_id(self) -> str:
        """Identifier of the remote object ("" when unknown)."""
        return str(self.attributes.get("id") or "")


class State(BaseModel):
    """Terraform-style state file.

    Attributes:
        version: State file format version
        endpoint: Base URI of the API server the objects live on
        serial: Bumped on every persisted change
        lineage: Random id fixed when the state is first created
        resources: Mapping of resource addresses to instances
    """

    version: int = 1
    endpoint: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Save state to a JSON file.

        - Writes atomically (temp file + rename)
        - Writes a `.backup` copy of the previous state when overwriting
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("State saved: serial=%d path=%s", self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        """Load state from a JSON file."""
        state = cls.model_validate_json(path.read_text(encoding="utf-8"))
        logger.debug("State loaded from %s", path)
        return state

    @classmethod
    def load_or_create(cls, path: Path, endpoint: str) -> "State":
        """Load existing state or start an empty one bound to *endpoint*."""
        if path.exists():
            return cls.load(path)
        logger.debug("Created new state for endpoint %s", endpoint)
        return cls(endpoint=endpoint)


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content (excluding timestamps).

    Used for stale-plan detection.
    """
    resources = [
        {
            "address": address,
            "resource_type": inst.resource_type,
            "name": inst.name,
            "attributes_hash": inst.attributes_hash,
            "dependencies": sorted(inst.dependencies),
        }
        for address, inst in sorted(state.resources.items(), key=lambda kv: kv[0])
    ]
    digestable = {
        "version": state.version,
        "endpoint": state.endpoint,
        "lineage": state.lineage,
        "serial": state.serial,
        "resources": resources,
    }
    return hashlib.sha256(_canonical_json(digestable).encode("utf-8")).hexdigest()
