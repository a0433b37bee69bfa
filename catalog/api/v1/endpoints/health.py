"""
Health check endpoints for monitoring and diagnostics.
"""

from typing import Dict, Any
import time

from fastapi import APIRouter, Depends, status

from catalog.core.config import settings
from catalog.core.dependencies import get_dispatcher
from catalog.core.logging import logger
from catalog.db.session import check_database_connection
from catalog.services.metadata_dispatcher import InProcessMetadataDispatcher, MetadataDispatcher

router = APIRouter()


@router.get(
    "/status",
    response_model=Dict[str, Any],
    status_code=status.HTTP_200_OK,
    summary="Get detailed health status"
)
async def get_health_status(dispatcher: MetadataDispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    """
    Get detailed health status including storage and job dispatch details.

    Returns:
        Detailed health information
    """
    health_data = {
        "status": "healthy",
        "timestamp": time.time(),
        "service": {
            "name": settings.name,
            "version": settings.version,
            "tier": settings.deployment_tier.value,
            "environment": settings.env,
        },
        "database": {
            "connected": await check_database_connection(),
            "url": settings.database_url.split("@")[-1],
        },
        "storage": {
            "upload_dir": str(settings.upload_dir),
            "exists": settings.upload_dir.exists(),
        },
        "metadata": {
            "dispatch_mode": settings.metadata_dispatch_mode.value,
            "ai_configured": settings.ai_configured,
        },
    }

    if isinstance(dispatcher, InProcessMetadataDispatcher):
        health_data["metadata"]["pending_jobs"] = dispatcher.pending

    logger.info("Health check performed", database_connected=health_data["database"]["connected"])

    return health_data


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    summary="Simple ping endpoint"
)
async def ping() -> Dict[str, str]:
    """
    Simple ping endpoint for basic availability check.

    Returns:
        Pong response
    """
    return {"ping": "pong"}
