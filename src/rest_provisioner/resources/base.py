"""Base resource class."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Resource(BaseModel):
    """Base class for all managed resources.

    Resources are pure data - they define the desired state.
    The lifecycle controller knows how to CRUD them.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    resource_type: ClassVar[str]

    name: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")

    # Lifecycle
    depends_on: list[str] = []

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'rest_object.admin_user')."""
        return f"{self.resource_type}.{self.name}"

    def record(self) -> dict[str, object]:
        """Settings as stored in state (unset fields and lifecycle metadata dropped)."""
        return self.model_dump(exclude_none=True, exclude={"address", "name", "depends_on"})
