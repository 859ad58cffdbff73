"""Raster Analysis Endpoints"""

from fastapi import APIRouter

from heatatlas.schemas.analysis import (
    AdditionalsRequest,
    AdditionalsResponse,
    MetricsRequest,
    MetricsResponse,
)
from heatatlas.services.metric_engine import metric_engine
from heatatlas.services.vulnerability import vulnerability_compositor
from heatatlas.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/data", response_model=MetricsResponse)
async def process_data(request: MetricsRequest):
    """Thermal and spectral metric layers (ndvi, ndbi, lst, uhi, utfvi) for a polygon and date range"""
    logger.info(
        "Metrics requested",
        metrics=request.metrics,
        start=str(request.start_date),
        end=str(request.end_date),
    )
    return await metric_engine.compute_metrics(
        start=request.start_date,
        end=request.end_date,
        geometry=request.geometry.to_geojson(),
        metric_ids=request.metrics,
    )


@router.post("/additionals", response_model=AdditionalsResponse, response_model_exclude_none=True)
async def process_additionals(request: AdditionalsRequest):
    """Land cover and heat vulnerability zones; a failing option is reported under ``errors``"""
    logger.info("Additional layers requested", options=request.options, year=request.effective_year)
    return await vulnerability_compositor.compute_additionals(request)
