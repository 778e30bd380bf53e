"""Resource definitions."""

from rest_provisioner.resources.api_object import ApiObjectResource
from rest_provisioner.resources.base import Resource

__all__ = ["ApiObjectResource", "Resource"]
