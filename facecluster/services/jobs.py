"""Background clustering jobs with per-scope mutual exclusion."""
import asyncio
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from facecluster.core.exceptions import ClusteringJobError
from facecluster.core.logging import get_logger
from facecluster.domain.entities.cluster import GLOBAL_SCOPE, Scope
from facecluster.domain.value_objects.clustering import AssignmentResult, ClusteringRunResult
from facecluster.services.clustering.assignment import ClusterAssignmentEngine

logger = get_logger(__name__)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


FINISHED_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED})


class JobHandle:
    """Caller side view of a triggered clustering run.

    Attributes:
        id: Job identifier
        scope: Scope the run clusters
        status: Current lifecycle state
        result: Run counts once the engine returned, partial when stopped early
        error: Failure message of a failed job
    """

    def __init__(self, scope: Scope, deadline: Optional[float] = None) -> None:
        self.id = str(uuid.uuid4())
        self.scope = scope
        self.status = JobStatus.QUEUED
        self.result: Optional[ClusteringRunResult] = None
        self.error: Optional[str] = None
        self.created_at = datetime.now(timezone.utc)
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self._deadline_at = time.monotonic() + deadline if deadline is not None else None
        self._cancel_requested = False
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def deadline_passed(self) -> bool:
        return self._deadline_at is not None and time.monotonic() >= self._deadline_at

    def should_stop(self) -> bool:
        """Polled by the engine between faces."""
        return self._cancel_requested or self.deadline_passed

    def cancel(self) -> None:
        """Ask the job to stop.

        A queued job is cancelled right away, even when its task never got
        to run; a running job finishes the face in progress and stops before
        the next one.
        """
        if self.done:
            return
        self._cancel_requested = True
        if self.status == JobStatus.QUEUED:
            self._finish(JobStatus.CANCELLED)
            if self._task is not None:
                self._task.cancel()

    async def wait(self) -> Optional[ClusteringRunResult]:
        """Wait for the job to finish and return its result."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self.result

    def _finish(self, status: JobStatus) -> None:
        if self.done:
            return
        self.status = status
        self.finished_at = datetime.now(timezone.utc)

    def _task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never enters _run
        if not self.done:
            self._finish(JobStatus.CANCELLED)


class ClusteringJobRunner:
    """Runs clustering in background tasks, one run per overlapping scope at a time.

    The global scope overlaps every scope and a user scope overlaps only
    the global scope and itself, so runs for different users proceed in
    parallel while a global run excludes everything else.

    Example:
        ```python
        runner = ClusteringJobRunner(engine)
        job = runner.trigger(Scope.for_user(7), deadline=60)
        result = await job.wait()
        ```
    """

    def __init__(
        self,
        engine: ClusterAssignmentEngine,
        default_deadline: Optional[float] = None,
    ) -> None:
        """Initialize the runner.

        Args:
            engine: Assignment engine executing the runs
            default_deadline: Seconds allowed per job when trigger() gives none
        """
        self._engine = engine
        self._default_deadline = default_deadline
        self._jobs: Dict[str, JobHandle] = {}
        self._running: List[Scope] = []
        self._condition = asyncio.Condition()

    def trigger(self, scope: Scope = GLOBAL_SCOPE, deadline: Optional[float] = None) -> JobHandle:
        """Schedule a clustering run and return without waiting for it.

        Must be called from a running event loop.

        Args:
            scope: Population to cluster
            deadline: Seconds from now after which the run stops between faces

        Returns:
            JobHandle tracking the run
        """
        handle = JobHandle(scope, deadline if deadline is not None else self._default_deadline)
        self._jobs[handle.id] = handle
        handle._task = asyncio.create_task(self._run(handle))
        handle._task.add_done_callback(handle._task_done)
        logger.info("Queued clustering job", job_id=handle.id, scope=str(scope))
        return handle

    def get(self, job_id: str) -> JobHandle:
        """Get a job by identifier.

        Raises:
            ClusteringJobError: If no job has that identifier
        """
        handle = self._jobs.get(job_id)
        if handle is None:
            raise ClusteringJobError(f"Unknown clustering job: {job_id}", details={"job_id": job_id})
        return handle

    def list_jobs(self) -> List[JobHandle]:
        return list(self._jobs.values())

    async def assign_face(self, face_id: int, scope: Scope = GLOBAL_SCOPE) -> AssignmentResult:
        """Assign one face while holding its scope.

        The call waits while a batch run over an overlapping scope holds it,
        so a single assignment never interleaves with one.
        """
        await self._acquire(scope)
        try:
            return await self._engine.assign_face(face_id, scope)
        finally:
            await self._release(scope)

    async def shutdown(self) -> None:
        """Cancel outstanding jobs and wait for them to wind down."""
        pending = [handle for handle in self._jobs.values() if not handle.done]
        for handle in pending:
            handle.cancel()
        for handle in pending:
            await handle.wait()
        logger.info("Clustering job runner stopped", cancelled=len(pending))

    def _overlaps_running(self, scope: Scope) -> bool:
        return any(scope.overlaps(other) for other in self._running)

    async def _acquire(self, scope: Scope, job_id: Optional[str] = None) -> None:
        async with self._condition:
            if self._overlaps_running(scope):
                logger.info("Waiting for overlapping scope", job_id=job_id, scope=str(scope))
            await self._condition.wait_for(lambda: not self._overlaps_running(scope))
            self._running.append(scope)

    async def _release(self, scope: Scope) -> None:
        async with self._condition:
            self._running.remove(scope)
            self._condition.notify_all()

    async def _run(self, handle: JobHandle) -> None:
        try:
            await self._acquire(handle.scope, handle.id)
        except asyncio.CancelledError:
            handle._finish(JobStatus.CANCELLED)
            logger.info("Cancelled queued clustering job", job_id=handle.id)
            raise

        try:
            if handle.should_stop():
                handle._finish(JobStatus.CANCELLED)
                logger.info("Cancelled clustering job before start", job_id=handle.id)
                return

            handle.status = JobStatus.RUNNING
            handle.started_at = datetime.now(timezone.utc)
            logger.info("Started clustering job", job_id=handle.id, scope=str(handle.scope))

            handle.result = await self._engine.cluster_scope(handle.scope, should_stop=handle.should_stop)
            if handle.should_stop() and not handle.result.completed:
                handle.error = "deadline exceeded" if handle.deadline_passed else None
                handle._finish(JobStatus.CANCELLED)
                logger.info(
                    "Clustering job stopped early",
                    job_id=handle.id,
                    faces_processed=handle.result.faces_processed,
                    deadline_exceeded=handle.deadline_passed,
                )
            else:
                handle._finish(JobStatus.COMPLETED)
                logger.info(
                    "Finished clustering job",
                    job_id=handle.id,
                    faces_processed=handle.result.faces_processed,
                    completed=handle.result.completed,
                )
        except asyncio.CancelledError:
            handle._finish(JobStatus.CANCELLED)
            logger.info("Cancelled running clustering job", job_id=handle.id)
            raise
        except Exception as e:
            handle.error = str(e)
            handle._finish(JobStatus.FAILED)
            logger.error("Clustering job failed", job_id=handle.id, error=str(e), exc_info=True)
        finally:
            await self._release(handle.scope)
