"""Cluster and scope domain entities."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Cluster(BaseModel):
    """An unsupervised group of faces believed to show one person.

    Membership is not stored on the cluster; it is the set of faces whose
    ``cluster_id`` points here.
    """
    cluster_id: int = Field(..., description="Cluster identifier")
    name: str = Field(..., description="Display name, generated or set from the person name")
    person_name: Optional[str] = Field(None, description="User supplied person label")
    description: Optional[str] = Field(None, description="Free text description")
    created_at: datetime = Field(..., description="Creation timestamp")
    last_updated_at: datetime = Field(..., description="Last membership or metadata change")


class Scope(BaseModel):
    """Face population an operation works on: every face, or one user's faces."""
    user_id: Optional[int] = Field(None, description="Owner user, None for the global scope")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def all_faces(cls) -> "Scope":
        return cls()

    @classmethod
    def for_user(cls, user_id: int) -> "Scope":
        return cls(user_id=user_id)

    @property
    def is_global(self) -> bool:
        return self.user_id is None

    def overlaps(self, other: "Scope") -> bool:
        """Whether two scopes can touch the same faces."""
        if self.is_global or other.is_global:
            return True
        return self.user_id == other.user_id

    def __str__(self) -> str:
        return "global" if self.is_global else f"user:{self.user_id}"


GLOBAL_SCOPE = Scope.all_faces()
