"""Shared fixtures: an in-memory database, the cluster store and embedding helpers."""
from typing import Optional, Sequence

import numpy as np
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from facecluster.infrastructure.database.models import FaceRecord
from facecluster.infrastructure.database.session import (
    create_engine,
    create_session_factory,
    init_models,
)
from facecluster.infrastructure.database.store import SqlAlchemyFaceClusterStore

DIMENSION = 8
IN_MEMORY_URL = "sqlite+aiosqlite://"


def unit(index: int, dimension: int = DIMENSION) -> np.ndarray:
    """Basis vector; distinct basis vectors are orthogonal."""
    vector = np.zeros(dimension)
    vector[index] = 1.0
    return vector


def rotated(index: int, towards: int, cosine: float, dimension: int = DIMENSION) -> np.ndarray:
    """Unit vector whose cosine with ``unit(index)`` is exactly ``cosine``."""
    return cosine * unit(index, dimension) + np.sqrt(1.0 - cosine ** 2) * unit(towards, dimension)


async def insert_face(
    session_factory: async_sessionmaker[AsyncSession],
    embedding: Optional[Sequence[float]],
    owner_user_id: Optional[int] = None,
    cluster_id: Optional[int] = None,
    picture_id: int = 1,
) -> int:
    """Insert a face the way the detection pipeline would and return its id."""
    async with session_factory() as session:
        record = FaceRecord(
            picture_id=picture_id,
            owner_user_id=owner_user_id,
            embedding=[float(v) for v in embedding] if embedding is not None else None,
            confidence=0.99,
            bbox_x=10,
            bbox_y=20,
            bbox_width=64,
            bbox_height=64,
            cluster_id=cluster_id,
        )
        session.add(record)
        await session.commit()
        return record.id


@pytest.fixture
async def db_engine():
    """Provide a fresh in-memory database per test."""
    engine = create_engine(IN_MEMORY_URL, echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def store(session_factory):
    return SqlAlchemyFaceClusterStore(session_factory)


@pytest.fixture
def add_face(session_factory):
    """Insert a face into the test database.

    Example:
        ``face_id = await add_face(unit(0), owner_user_id=7)``
    """
    async def _add(embedding, owner_user_id=None, cluster_id=None, picture_id=1) -> int:
        return await insert_face(session_factory, embedding, owner_user_id, cluster_id, picture_id)
    return _add
