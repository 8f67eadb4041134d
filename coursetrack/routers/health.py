"""
Health Check Router

Provides health check endpoints for monitoring application status.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from coursetrack.db.config import get_session
from coursetrack.models.hierarchy import HealthCheckResponse
from coursetrack.utils.feature_flags import feature_flags
import time
import os
from datetime import datetime

router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check():
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    """
    return HealthCheckResponse(
        status="healthy",
        version=os.getenv("APP_VERSION", "1.0.0"),
        environment=os.getenv("ENVIRONMENT", "development"),
        timestamp=datetime.utcnow(),
        uptime=time.time() - _start_time
    )


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(session: AsyncSession = Depends(get_session)):
    """
    Kubernetes-style readiness check

    Returns 200 once the database answers, 503 otherwise.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=503,
            detail=f"Application not ready: {e}"
        )
    return {
        "status": "ready",
        "timestamp": datetime.utcnow().isoformat(),
        "features": feature_flags.get_environment_info(),
    }


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "pid": os.getpid()
    }
