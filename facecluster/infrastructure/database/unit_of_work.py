"""Unit of work over the face and cluster tables."""
from types import TracebackType
from typing import Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from facecluster.infrastructure.database.repositories import ClusterRepository, FaceRepository


class UnitOfWork:
    """One transaction with its repositories.

    The session is opened on enter and closed on exit. A clean exit commits;
    an exception rolls back and propagates.

    Example:
        ```python
        async with UnitOfWork(session_factory) as uow:
            face = await uow.faces.get(face_id)
            face.cluster_id = None
        ```
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize unit of work.

        Args:
            session_factory: Factory for the session backing this transaction
        """
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        self.clusters = ClusterRepository(self._session)
        self.faces = FaceRepository(self._session)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        try:
            if exc_type is None:
                await self._session.commit()
            else:
                await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None

    async def flush(self) -> None:
        """Send pending changes so later queries in this transaction see them."""
        await self._session.flush()
