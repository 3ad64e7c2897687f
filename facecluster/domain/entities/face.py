"""Core face domain entities."""
from typing import Optional, Union
from datetime import datetime

import numpy as np
from pydantic import BaseModel, Field, field_validator, ConfigDict


class BoundingBox(BaseModel):
    """Face bounding box in source picture pixels."""
    x: int = Field(..., description="Left coordinate of the bounding box")
    y: int = Field(..., description="Top coordinate of the bounding box")
    width: int = Field(..., description="Width of the bounding box")
    height: int = Field(..., description="Height of the bounding box")


class Face(BaseModel):
    """Detected face with its identity embedding and cluster reference.

    Faces are produced by the upstream detection pipeline; clustering only
    ever changes ``cluster_id``.
    """
    face_id: int = Field(..., description="Face identifier")
    picture_id: int = Field(..., description="Picture the face was detected in")
    owner_user_id: Optional[int] = Field(None, description="Owner of the picture, if any")
    embedding: Optional[np.ndarray] = Field(None, description="Face embedding vector")
    bounding_box: Optional[BoundingBox] = Field(None, description="Bounding box coordinates")
    confidence: float = Field(0.0, ge=0.0, le=1.0, description="Detection confidence score")
    cluster_id: Optional[int] = Field(None, description="Cluster the face is assigned to")
    created_at: Optional[datetime] = Field(None, description="Timestamp when the face was stored")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator('embedding', mode='before')
    @classmethod
    def validate_embedding(cls, v: Optional[Union[np.ndarray, list]]) -> Optional[np.ndarray]:
        """Validate and convert embedding to a float numpy array."""
        if v is None:
            return None
        return np.asarray(v, dtype=np.float64).ravel()

    @property
    def has_embedding(self) -> bool:
        """Whether the face carries a usable (non-empty) embedding."""
        return self.embedding is not None and self.embedding.size > 0
