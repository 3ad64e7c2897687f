"""Relational persistence for faces and clusters."""
from .models import Base, ClusterRecord, FaceRecord
from .session import create_engine, create_session_factory, init_models
from .store import SqlAlchemyFaceClusterStore
from .unit_of_work import UnitOfWork

__all__ = [
    "Base",
    "ClusterRecord",
    "FaceRecord",
    "SqlAlchemyFaceClusterStore",
    "UnitOfWork",
    "create_engine",
    "create_session_factory",
    "init_models",
]
