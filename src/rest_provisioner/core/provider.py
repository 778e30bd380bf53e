"""REST provider - connection settings and provider-level defaults."""

from functools import cached_property
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationInfo, field_validator

from rest_provisioner.engine.transport import RequestsTransport, Transport
from rest_provisioner.resources.api_object import OptionalJsonText, check_json_object

if TYPE_CHECKING:
    from rest_provisioner.engine.lifecycle import ResourceLifecycleController


class ProviderDefaults(BaseModel):
    """Provider-scoped defaults, consulted when an object leaves a field unset."""

    model_config = ConfigDict(extra="forbid")

    create_method: str = "POST"
    read_method: str = "GET"
    update_method: str = "PUT"
    destroy_method: str = "DELETE"

    create_path: str | None = None
    read_path: str | None = None
    update_path: str | None = None
    destroy_path: str | None = None

    query_string: str | None = None
    create_query_string: str | None = None
    read_query_string: str | None = None
    update_query_string: str | None = None
    destroy_query_string: str | None = None

    update_data: OptionalJsonText = None
    destroy_data: OptionalJsonText = None

    id_attribute: str = "id"
    copy_keys: list[str] = Field(default_factory=list)

    @field_validator("update_data", "destroy_data")
    @classmethod
    def _must_be_json_object(cls, v: str | None, info: ValidationInfo) -> str | None:
        return check_json_object(v, info.field_name)


class BasicAuth(BaseModel):
    """HTTP basic authentication."""

    username: str
    password: SecretStr


class BearerAuth(BaseModel):
    """Bearer token authentication."""

    token: SecretStr


class RestProvider(BaseModel):
    """Connection configuration for an API server.

    Provide ``uri`` (plus optional auth) to talk HTTP, or use
    :meth:`from_transport` to inject any ``Transport`` (tests, custom clients).

    Examples:
        provider = RestProvider(
            uri="https://api.example.com",
            auth=BearerAuth(token="..."),
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    uri: str | None = None
    auth: BasicAuth | BearerAuth | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float | None = None
    insecure: bool = False
    defaults: ProviderDefaults = Field(default_factory=ProviderDefaults)
    data_sensitive: bool = False

    # Injected transport (for testing / custom clients)
    _injected_transport: Transport | None = None

    @classmethod
    def from_transport(
        cls,
        transport: Transport,
        *,
        defaults: ProviderDefaults | None = None,
        data_sensitive: bool = False,
    ) -> Self:
        """Create a provider around an already configured transport."""
        provider = cls(defaults=defaults or ProviderDefaults(), data_sensitive=data_sensitive)
        provider._injected_transport = transport
        return provider

    @property
    def endpoint(self) -> str:
        """Identity of the API server this provider talks to (bound into state)."""
        return (self.uri or "").rstrip("/")

    @cached_property
    def transport(self) -> Transport:
        if self._injected_transport is not None:
            return self._injected_transport

        if not self.uri:
            raise ValueError(
                "Either provide uri, or use RestProvider.from_transport() to inject a transport"
            )

        headers = dict(self.headers)
        if isinstance(self.auth, BearerAuth):
            headers["Authorization"] = f"Bearer {self.auth.token.get_secret_value()}"
        transport = RequestsTransport(
            self.uri, headers=headers, timeout=self.timeout, verify=not self.insecure
        )
        if isinstance(self.auth, BasicAuth):
            transport.session.auth = (self.auth.username, self.auth.password.get_secret_value())
        return transport

    @cached_property
    def controller(self) -> "ResourceLifecycleController":
        from rest_provisioner.engine.lifecycle import ResourceLifecycleController

        return ResourceLifecycleController(
            self.transport, self.defaults, data_sensitive=self.data_sensitive
        )
