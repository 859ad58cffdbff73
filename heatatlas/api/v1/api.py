"""
HeatAtlas API Router Configuration
Main router that includes all API endpoints.
"""
from fastapi import APIRouter

from heatatlas.api.v1 import health, process, report

api_router = APIRouter()

api_router.include_router(process.router, prefix="/process", tags=["process"])
api_router.include_router(report.router, prefix="/report", tags=["report"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
