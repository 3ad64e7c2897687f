"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from facecluster.core.container import ServiceContainer, container
from facecluster.core.exceptions import ServiceNotInitializedError
from facecluster.services.clustering.maintenance import ClusterMaintenanceService
from facecluster.services.clustering.quality import ClusterQualityEvaluator
from facecluster.services.clustering.threshold import AdaptiveThresholdEstimator
from facecluster.services.jobs import ClusteringJobRunner


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.initialized:
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}") from e
    return container


async def get_quality_evaluator(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ClusterQualityEvaluator, None]:
    if container.quality_evaluator is None:
        raise ServiceNotInitializedError("Cluster quality evaluator not initialized")
    yield container.quality_evaluator


async def get_threshold_estimator(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[AdaptiveThresholdEstimator, None]:
    if container.threshold_estimator is None:
        raise ServiceNotInitializedError("Threshold estimator not initialized")
    yield container.threshold_estimator


async def get_maintenance_service(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ClusterMaintenanceService, None]:
    if container.maintenance_service is None:
        raise ServiceNotInitializedError("Cluster maintenance service not initialized")
    yield container.maintenance_service


async def get_job_runner(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ClusteringJobRunner, None]:
    """Provide the clustering job runner.

    Raises:
        ServiceNotInitializedError: If the runner is not initialized
    """
    if container.job_runner is None:
        raise ServiceNotInitializedError("Clustering job runner not initialized")
    yield container.job_runner
