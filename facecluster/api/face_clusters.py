"""Face clustering API endpoints."""
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from facecluster.api.models.cluster import (
    ClusteringJobRequest,
    ClusteringJobResponse,
    ClusterListResponse,
    ClusterResponse,
    DeleteClusterResponse,
    DetachFaceResponse,
    FaceAssignmentResponse,
    MergeClustersRequest,
    MergeClustersResponse,
    ThresholdResponse,
    UpdateClusterRequest,
)
from facecluster.core.exceptions import (
    ClusteringJobError,
    FaceClusteringError,
    InvalidEmbeddingError,
    InvalidMergeError,
    NotFoundError,
)
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import Scope
from facecluster.domain.value_objects.clustering import (
    ClusterPicturePage,
    ClusterQualityMetrics,
    ClusterStatistics,
)
from facecluster.infrastructure.dependencies import (
    get_job_runner,
    get_maintenance_service,
    get_quality_evaluator,
    get_threshold_estimator,
)
from facecluster.services.clustering.maintenance import ClusterMaintenanceService
from facecluster.services.clustering.quality import ClusterQualityEvaluator
from facecluster.services.clustering.threshold import AdaptiveThresholdEstimator
from facecluster.services.jobs import ClusteringJobRunner

logger = get_logger(__name__)
router = APIRouter(
    responses={
        404: {"description": "Face, cluster or job not found"},
        500: {"description": "Internal server error"}
    }
)

USER_ID_QUERY = Query(None, description="Restrict the operation to one user's faces")


def _scope(user_id: Optional[int]) -> Scope:
    return Scope.for_user(user_id) if user_id is not None else Scope.all_faces()


def _raise_http_error(e: Exception, action: str) -> NoReturn:
    """Translate a service error into an HTTP error."""
    if isinstance(e, NotFoundError):
        logger.warning(f"{action} failed: not found", error=str(e), **e.details)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, InvalidMergeError):
        logger.warning(f"{action} failed: invalid merge", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, InvalidEmbeddingError):
        logger.warning(f"{action} failed: invalid embedding", error=str(e))
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if isinstance(e, FaceClusteringError):
        logger.error(f"{action} failed", error=str(e), exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    logger.error(f"Unexpected error: {action}", error=str(e), exc_info=True)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing the request"
    )


@router.post(
    "/jobs",
    response_model=ClusteringJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger a clustering run",
    description="Queues a run that clusters every unclustered face of the scope and returns immediately.",
)
async def trigger_clustering(
    request: ClusteringJobRequest,
    runner: ClusteringJobRunner = Depends(get_job_runner),
) -> ClusteringJobResponse:
    handle = runner.trigger(_scope(request.user_id), deadline=request.deadline_seconds)
    return ClusteringJobResponse.from_handle(handle)


@router.get(
    "/jobs/{job_id}",
    response_model=ClusteringJobResponse,
    summary="Get clustering job status",
)
async def get_clustering_job(
    job_id: str,
    runner: ClusteringJobRunner = Depends(get_job_runner),
) -> ClusteringJobResponse:
    try:
        return ClusteringJobResponse.from_handle(runner.get(job_id))
    except ClusteringJobError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.delete(
    "/jobs/{job_id}",
    response_model=ClusteringJobResponse,
    summary="Cancel a clustering job",
    description="A running job stops before its next face and keeps the assignments already made.",
)
async def cancel_clustering_job(
    job_id: str,
    runner: ClusteringJobRunner = Depends(get_job_runner),
) -> ClusteringJobResponse:
    try:
        handle = runner.get(job_id)
    except ClusteringJobError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    handle.cancel()
    return ClusteringJobResponse.from_handle(handle)


@router.post(
    "/faces/{face_id}/assign",
    response_model=FaceAssignmentResponse,
    summary="Assign one face to a cluster",
)
async def assign_face(
    face_id: int,
    user_id: Optional[int] = USER_ID_QUERY,
    runner: ClusteringJobRunner = Depends(get_job_runner),
) -> FaceAssignmentResponse:
    """Assign a newly detected face to its best cluster, or found a new one.

    Waits while a clustering job over an overlapping scope is running.

    Args:
        face_id: Face to assign
        user_id: Optional user scope
        runner: Job runner holding the scope while the face is assigned

    Returns:
        FaceAssignmentResponse with the decision

    Raises:
        HTTPException: 404 if the face is not visible in the scope
    """
    try:
        result = await runner.assign_face(face_id, _scope(user_id))
        return FaceAssignmentResponse.from_result(result)
    except Exception as e:
        _raise_http_error(e, "Face assignment")


@router.delete(
    "/faces/{face_id}/cluster",
    response_model=DetachFaceResponse,
    summary="Remove a face from its cluster",
)
async def detach_face(
    face_id: int,
    user_id: Optional[int] = USER_ID_QUERY,
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> DetachFaceResponse:
    try:
        deleted = await service.detach_face(face_id, _scope(user_id))
        return DetachFaceResponse(face_id=face_id, deleted_cluster_id=deleted)
    except Exception as e:
        _raise_http_error(e, "Face detach")


@router.get(
    "",
    response_model=ClusterListResponse,
    summary="List clusters",
    description="Clusters with at least one face in scope, largest and most recently updated first.",
)
async def list_clusters(
    user_id: Optional[int] = USER_ID_QUERY,
    page: int = Query(1, description="Page number, starting at 1"),
    page_size: int = Query(20, description="Clusters per page", le=200),
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> ClusterListResponse:
    try:
        result = await service.list_clusters(_scope(user_id), page, page_size)
        return ClusterListResponse.from_page(result)
    except Exception as e:
        _raise_http_error(e, "Cluster listing")


@router.get(
    "/statistics",
    response_model=ClusterStatistics,
    summary="Get clustering statistics",
)
async def get_statistics(
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> ClusterStatistics:
    try:
        return await service.get_statistics()
    except Exception as e:
        _raise_http_error(e, "Statistics")


@router.get(
    "/threshold",
    response_model=ThresholdResponse,
    summary="Estimate a similarity threshold",
    description="Advisory value derived from the current clusters; it is never applied automatically.",
)
async def estimate_threshold(
    user_id: Optional[int] = USER_ID_QUERY,
    estimator: AdaptiveThresholdEstimator = Depends(get_threshold_estimator),
) -> ThresholdResponse:
    try:
        threshold = await estimator.estimate_optimal_threshold(_scope(user_id))
        return ThresholdResponse(user_id=user_id, threshold=threshold)
    except Exception as e:
        _raise_http_error(e, "Threshold estimation")


@router.post(
    "/merge",
    response_model=MergeClustersResponse,
    summary="Merge two clusters",
)
async def merge_clusters(
    request: MergeClustersRequest,
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> MergeClustersResponse:
    try:
        moved = await service.merge(
            request.source_cluster_id,
            request.target_cluster_id,
            _scope(request.user_id),
        )
        return MergeClustersResponse(
            source_cluster_id=request.source_cluster_id,
            target_cluster_id=request.target_cluster_id,
            faces_moved=moved,
        )
    except Exception as e:
        _raise_http_error(e, "Cluster merge")


@router.get(
    "/{cluster_id}/quality",
    response_model=ClusterQualityMetrics,
    summary="Evaluate cluster cohesion",
)
async def evaluate_quality(
    cluster_id: int,
    user_id: Optional[int] = USER_ID_QUERY,
    evaluator: ClusterQualityEvaluator = Depends(get_quality_evaluator),
) -> ClusterQualityMetrics:
    try:
        return await evaluator.evaluate(cluster_id, _scope(user_id))
    except Exception as e:
        _raise_http_error(e, "Quality evaluation")


@router.get(
    "/{cluster_id}/pictures",
    response_model=ClusterPicturePage,
    summary="List the pictures of a cluster",
    description="Distinct pictures containing the cluster's faces, newest first.",
)
async def list_cluster_pictures(
    cluster_id: int,
    user_id: Optional[int] = USER_ID_QUERY,
    page: int = Query(1, description="Page number, starting at 1"),
    page_size: int = Query(20, description="Pictures per page", le=200),
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> ClusterPicturePage:
    try:
        return await service.list_cluster_pictures(cluster_id, _scope(user_id), page, page_size)
    except Exception as e:
        _raise_http_error(e, "Cluster picture listing")


@router.patch(
    "/{cluster_id}",
    response_model=ClusterResponse,
    summary="Label a cluster",
)
async def update_cluster(
    cluster_id: int,
    request: UpdateClusterRequest,
    user_id: Optional[int] = USER_ID_QUERY,
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> ClusterResponse:
    try:
        cluster = await service.update_cluster(
            cluster_id,
            request.person_name,
            request.description,
            scope=_scope(user_id),
        )
        return ClusterResponse.from_cluster(cluster)
    except Exception as e:
        _raise_http_error(e, "Cluster update")


@router.delete(
    "/{cluster_id}",
    response_model=DeleteClusterResponse,
    summary="Delete a cluster",
    description="Detaches every face of the cluster and removes it.",
)
async def delete_cluster(
    cluster_id: int,
    service: ClusterMaintenanceService = Depends(get_maintenance_service),
) -> DeleteClusterResponse:
    try:
        detached = await service.delete_cluster(cluster_id)
        return DeleteClusterResponse(cluster_id=cluster_id, faces_detached=detached)
    except Exception as e:
        _raise_http_error(e, "Cluster deletion")
