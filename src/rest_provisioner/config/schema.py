"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rest_provisioner.core.provider import (
    ProviderDefaults,  # noqa: TC001 - Pydantic needs this at runtime
)
from rest_provisioner.resources.api_object import (
    ApiObjectResource,  # noqa: TC001 - Pydantic needs this at runtime
)


class ProviderConfig(BaseSettings):
    """API server connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``REST_`` prefix.  Constructor kwargs take precedence.

    ``password`` and ``bearer_token`` are typically provided via
    ``REST_PASSWORD`` / ``REST_BEARER_TOKEN`` rather than YAML to avoid
    committing secrets to version control.

    ``data_sensitive`` hides object payloads in logs and plan output.
    """

    model_config = SettingsConfigDict(env_prefix="REST_")

    uri: str | None = None
    username: str | None = None
    password: str | None = None
    bearer_token: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    insecure: bool = False
    data_sensitive: bool = False
    defaults: ProviderDefaults = Field(default_factory=ProviderDefaults)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration, validated directly from YAML."""

    provider: ProviderConfig
    state_path: Path = Path(".rest-state.json")
    objects: Annotated[list[ApiObjectResource], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()

    @property
    def resources(self) -> list[ApiObjectResource]:
        """All declared resources; ordering is not significant."""
        return list(self.objects)

    def find(self, address: str) -> ApiObjectResource | None:
        """Declared resource at *address*, if any."""
        return next((r for r in self.objects if r.address == address), None)
