"""SQLAlchemy models for the face clustering service."""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from facecluster.domain.entities.cluster import Cluster
from facecluster.domain.entities.face import BoundingBox, Face


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ClusterRecord(Base):
    """Identity cluster. Members are the faces referencing it."""

    __tablename__ = "face_clusters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    person_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Person name set by a user"
    )
    description: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    # Relationships
    faces: Mapped[List["FaceRecord"]] = relationship(
        back_populates="cluster",
        passive_deletes=True
    )

    def to_entity(self) -> Cluster:
        return Cluster(
            cluster_id=self.id,
            name=self.name,
            person_name=self.person_name,
            description=self.description,
            created_at=self.created_at,
            last_updated_at=self.last_updated_at,
        )


class FaceRecord(Base):
    """Face detected in a picture by the upstream pipeline."""

    __tablename__ = "faces"
    __table_args__ = (
        Index('idx_faces_cluster_owner', 'cluster_id', 'owner_user_id'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    picture_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    owner_user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="Owner of the picture; NULL for anonymous uploads"
    )
    embedding: Mapped[Optional[List[float]]] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="Face embedding vector"
    )
    confidence: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        comment="Face detection confidence score"
    )
    bbox_x: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bbox_y: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bbox_width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bbox_height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cluster_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("face_clusters.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow
    )

    # Relationships
    cluster: Mapped[Optional[ClusterRecord]] = relationship(
        back_populates="faces"
    )

    def to_entity(self) -> Face:
        bounding_box = None
        if self.bbox_x is not None:
            bounding_box = BoundingBox(
                x=self.bbox_x,
                y=self.bbox_y or 0,
                width=self.bbox_width or 0,
                height=self.bbox_height or 0,
            )
        return Face(
            face_id=self.id,
            picture_id=self.picture_id,
            owner_user_id=self.owner_user_id,
            embedding=self.embedding,
            bounding_box=bounding_box,
            confidence=self.confidence or 0.0,
            cluster_id=self.cluster_id,
            created_at=self.created_at,
        )
