"""API v1 router initialization."""
from fastapi import APIRouter

from .face_clusters import router as face_clusters_router

# Create v1 router
router = APIRouter()

router.include_router(
    face_clusters_router,
    prefix="/clusters",
    tags=["clusters"]
)
