"""Core infrastructure components: provider settings and state."""

from rest_provisioner.core.provider import BasicAuth, BearerAuth, ProviderDefaults, RestProvider
from rest_provisioner.core.state import ResourceInstance, State

__all__ = [
    "BasicAuth",
    "BearerAuth",
    "ProviderDefaults",
    "ResourceInstance",
    "RestProvider",
    "State",
]
