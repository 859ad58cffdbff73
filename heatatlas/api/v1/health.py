"""Health Check Endpoints"""

from datetime import datetime

from fastapi import APIRouter

from heatatlas.config import settings
from heatatlas.llm.orchestrator import insight_narrator
from heatatlas.services.gee_service import gee_service

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "earth_engine": gee_service.status(),
        "timestamp": datetime.now().isoformat(),
    }


@router.get("/narration")
async def narration_health():
    """Provider availability, request metrics and the error budget"""
    return {
        "status": "healthy",
        **insight_narrator.status(),
        "timestamp": datetime.now().isoformat(),
    }
