"""
API v1 main router that aggregates all endpoint routers.
"""

from fastapi import APIRouter

from catalog.api.v1.endpoints import datasets, health

# Create main API router
api_router = APIRouter()

# Include health check router
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["Health"]
)

api_router.include_router(
    datasets.router,
    prefix="/datasets",
    tags=["Datasets"]
)
