"""Service container for dependency injection."""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from facecluster.core.config import Settings, settings as default_settings
from facecluster.core.logging import get_logger
from facecluster.domain.interfaces.storage.cluster_store import FaceClusterStore
from facecluster.infrastructure.database.session import (
    create_engine,
    create_session_factory,
    init_models,
)
from facecluster.infrastructure.database.store import SqlAlchemyFaceClusterStore
from facecluster.services.clustering.assignment import ClusterAssignmentEngine
from facecluster.services.clustering.maintenance import ClusterMaintenanceService
from facecluster.services.clustering.quality import ClusterQualityEvaluator
from facecluster.services.clustering.threshold import AdaptiveThresholdEstimator
from facecluster.services.jobs import ClusteringJobRunner

logger = get_logger(__name__)


class ServiceContainer:
    """Container for application services.

    Owns the database engine and wires every clustering service onto one
    cluster store.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        engine = container.assignment_engine
        result = await engine.cluster_scope()
        ```
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize empty container.

        Args:
            settings: Application settings, defaults to the environment settings
        """
        self.settings = settings or default_settings

        # Infrastructure
        self.db_engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.store: Optional[FaceClusterStore] = None

        # Domain services
        self.assignment_engine: Optional[ClusterAssignmentEngine] = None
        self.quality_evaluator: Optional[ClusterQualityEvaluator] = None
        self.threshold_estimator: Optional[AdaptiveThresholdEstimator] = None
        self.maintenance_service: Optional[ClusterMaintenanceService] = None
        self.job_runner: Optional[ClusteringJobRunner] = None

    @property
    def initialized(self) -> bool:
        return self.store is not None

    async def initialize(self, store: Optional[FaceClusterStore] = None) -> None:
        """Initialize all services in the correct order.

        Args:
            store: Use this store instead of opening ``DATABASE_URL``
        """
        if store is None:
            self.db_engine = create_engine(self.settings.DATABASE_URL, self.settings.DATABASE_ECHO)
            await init_models(self.db_engine)
            self.session_factory = create_session_factory(self.db_engine)
            store = SqlAlchemyFaceClusterStore(self.session_factory)
        self.store = store

        clustering = self.settings.CLUSTERING
        self.assignment_engine = ClusterAssignmentEngine(store, clustering)
        self.quality_evaluator = ClusterQualityEvaluator(store, clustering)
        self.threshold_estimator = AdaptiveThresholdEstimator(store, clustering)
        self.maintenance_service = ClusterMaintenanceService(store)
        self.job_runner = ClusteringJobRunner(
            self.assignment_engine,
            default_deadline=self.settings.JOB_DEADLINE_SECONDS,
        )
        logger.info("Initialized service container")

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        if self.job_runner:
            await self.job_runner.shutdown()
            self.job_runner = None

        self.maintenance_service = None
        self.threshold_estimator = None
        self.quality_evaluator = None
        self.assignment_engine = None
        self.store = None

        if self.db_engine:
            await self.db_engine.dispose()
            self.db_engine = None
        self.session_factory = None


# Global container instance
container = ServiceContainer()
