"""API specific cluster models."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from facecluster.domain.entities.cluster import Cluster
from facecluster.domain.value_objects.clustering import (
    AssignmentOutcome,
    AssignmentResult,
    ClusteringRunResult,
    ClusterPage,
)
from facecluster.services.jobs import JobHandle, JobStatus


class ClusteringJobRequest(BaseModel):
    """Request model for triggering a clustering run."""
    user_id: Optional[int] = Field(
        None,
        description="Restrict the run to one user's faces; omit for the whole library"
    )
    deadline_seconds: Optional[float] = Field(
        None,
        description="Stop the run between faces after this many seconds",
        gt=0
    )


class ClusteringRunResponse(BaseModel):
    """Counts of a clustering run."""
    faces_processed: int
    faces_assigned_existing: int
    faces_skipped: int
    faces_failed: int
    clusters_created: int
    created_cluster_ids: List[int]
    completed: bool

    @classmethod
    def from_result(cls, result: ClusteringRunResult) -> "ClusteringRunResponse":
        return cls(
            faces_processed=result.faces_processed,
            faces_assigned_existing=result.faces_assigned_existing,
            faces_skipped=result.faces_skipped,
            faces_failed=result.faces_failed,
            clusters_created=result.clusters_created,
            created_cluster_ids=result.created_cluster_ids,
            completed=result.completed,
        )


class ClusteringJobResponse(BaseModel):
    """State of a clustering job."""
    job_id: str = Field(..., description="Job identifier")
    user_id: Optional[int] = Field(None, description="User scope, None for the whole library")
    status: JobStatus = Field(..., description="Job lifecycle state")
    result: Optional[ClusteringRunResponse] = Field(None, description="Run counts once finished")
    error: Optional[str] = Field(None, description="Failure or stop reason")
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def from_handle(cls, handle: JobHandle) -> "ClusteringJobResponse":
        """Create a response from a job handle."""
        return cls(
            job_id=handle.id,
            user_id=handle.scope.user_id,
            status=handle.status,
            result=ClusteringRunResponse.from_result(handle.result) if handle.result else None,
            error=handle.error,
            created_at=handle.created_at,
            started_at=handle.started_at,
            finished_at=handle.finished_at,
        )


class FaceAssignmentResponse(BaseModel):
    """Result of assigning a single face."""
    face_id: int
    outcome: AssignmentOutcome
    cluster_id: Optional[int] = None
    avg_similarity: Optional[float] = None
    max_similarity: Optional[float] = None

    @classmethod
    def from_result(cls, result: AssignmentResult) -> "FaceAssignmentResponse":
        candidate = result.candidate
        return cls(
            face_id=result.face_id,
            outcome=result.outcome,
            cluster_id=result.cluster_id,
            avg_similarity=candidate.avg_similarity if candidate else None,
            max_similarity=candidate.max_similarity if candidate else None,
        )


class ThresholdResponse(BaseModel):
    """Suggested similarity threshold for a scope."""
    user_id: Optional[int] = None
    threshold: float = Field(..., ge=0.0, le=1.0)


class MergeClustersRequest(BaseModel):
    """Request model for merging two clusters."""
    source_cluster_id: int = Field(..., description="Cluster whose faces are moved")
    target_cluster_id: int = Field(..., description="Cluster receiving the faces")
    user_id: Optional[int] = Field(None, description="Only move this user's faces")


class MergeClustersResponse(BaseModel):
    source_cluster_id: int
    target_cluster_id: int
    faces_moved: int


class DetachFaceResponse(BaseModel):
    face_id: int
    deleted_cluster_id: Optional[int] = Field(
        None,
        description="Cluster removed because the face was its last member"
    )


class DeleteClusterResponse(BaseModel):
    cluster_id: int
    faces_detached: int


class UpdateClusterRequest(BaseModel):
    """Request model for labelling a cluster."""
    person_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=1024)


class ClusterResponse(BaseModel):
    """API model for a cluster."""
    cluster_id: int
    name: str
    person_name: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    last_updated_at: datetime
    face_count: Optional[int] = None

    @classmethod
    def from_cluster(cls, cluster: Cluster, face_count: Optional[int] = None) -> "ClusterResponse":
        return cls(**cluster.model_dump(), face_count=face_count)


class ClusterListResponse(BaseModel):
    """One page of clusters."""
    items: List[ClusterResponse]
    total_count: int
    page: int
    page_size: int

    @classmethod
    def from_page(cls, page: ClusterPage) -> "ClusterListResponse":
        return cls(
            items=[ClusterResponse.from_cluster(s.cluster, s.face_count) for s in page.items],
            total_count=page.total_count,
            page=page.page,
            page_size=page.page_size,
        )
