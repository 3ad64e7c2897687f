"""Face clustering value objects."""
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from facecluster.domain.entities.cluster import Cluster, Scope
from facecluster.domain.entities.face import Face


class ClusterSample(BaseModel):
    """A cluster with a bounded sample of its member faces."""
    cluster: Cluster = Field(..., description="Sampled cluster")
    faces: List[Face] = Field(default_factory=list, description="Representative member faces")


class ClusterCandidate(BaseModel):
    """Similarity summary of one face against one candidate cluster."""
    cluster_id: int = Field(..., description="Candidate cluster identifier")
    avg_similarity: float = Field(..., description="Mean similarity to the sampled members")
    max_similarity: float = Field(..., description="Best similarity to a sampled member")
    sample_count: int = Field(..., description="Number of sampled members compared")
    score: float = Field(0.0, description="Ranking score among eligible candidates")


class AssignmentOutcome(str, Enum):
    """How a face left the evaluating state."""
    ASSIGNED_EXISTING = "assigned_existing"
    ASSIGNED_NEW = "assigned_new"
    ALREADY_ASSIGNED = "already_assigned"
    SKIPPED = "skipped"


class AssignmentResult(BaseModel):
    """Result of evaluating a single face."""
    face_id: int = Field(..., description="Evaluated face")
    outcome: AssignmentOutcome = Field(..., description="Assignment decision")
    cluster_id: Optional[int] = Field(None, description="Cluster the face now belongs to")
    candidate: Optional[ClusterCandidate] = Field(None, description="Accepted candidate, if any")


class ClusteringRunResult(BaseModel):
    """Aggregate counts of a batch clustering run."""
    scope: Scope = Field(..., description="Scope the run covered")
    faces_processed: int = Field(0, description="Faces that received a cluster")
    faces_assigned_existing: int = Field(0, description="Faces joined to an already existing cluster")
    faces_skipped: int = Field(0, description="Faces skipped for a missing embedding")
    faces_failed: int = Field(0, description="Faces whose evaluation raised an error")
    created_cluster_ids: List[int] = Field(default_factory=list, description="Clusters founded in this run")
    completed: bool = Field(True, description="False when the run stopped early or had failures")

    @property
    def clusters_created(self) -> int:
        return len(self.created_cluster_ids)


class ClusterQualityMetrics(BaseModel):
    """Pairwise cohesion of a cluster's member embeddings."""
    is_valid: bool = Field(..., description="Whether the cluster has at least one usable embedding")
    face_count: int = Field(0, description="Members with a usable embedding")
    internal_similarity: float = Field(0.0, description="Mean pairwise similarity")
    min_similarity: float = Field(0.0, description="Lowest pairwise similarity")
    max_similarity: float = Field(0.0, description="Highest pairwise similarity")
    similarity_std: float = Field(0.0, description="Population standard deviation of pairwise similarity")


class ClusterSummary(BaseModel):
    """Cluster with its member count in a scope."""
    cluster: Cluster
    face_count: int


class ClusterPage(BaseModel):
    """One page of cluster summaries."""
    items: List[ClusterSummary] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20


class ClusterPicture(BaseModel):
    """A picture of a cluster with the cluster faces detected in it."""
    picture_id: int
    face_ids: List[int] = Field(default_factory=list, description="Member faces in the picture, newest first")


class ClusterPicturePage(BaseModel):
    """One page of the distinct pictures of a cluster, newest first."""
    cluster_id: int
    items: List[ClusterPicture] = Field(default_factory=list)
    total_count: int = Field(0, description="Distinct pictures in scope")
    page: int = 1
    page_size: int = 20


class ClusterStatistics(BaseModel):
    """Library-wide clustering counters."""
    total_clusters: int = Field(0, description="Number of clusters")
    total_faces: int = Field(0, description="Number of faces")
    unclustered_faces: int = Field(0, description="Faces without a cluster")
    named_clusters: int = Field(0, description="Clusters with a person name")
    clusters_by_user: Dict[int, int] = Field(
        default_factory=dict, description="Distinct clusters per owner user"
    )
