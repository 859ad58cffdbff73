"""
HeatAtlas FastAPI Application Entry Point
Main application factory that configures FastAPI with all dependencies.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heatatlas.api.v1.api import api_router
from heatatlas.config import settings
from heatatlas.llm.orchestrator import insight_narrator
from heatatlas.services.artifact_store import artifact_store
from heatatlas.services.gee_service import initialize_gee_service
from heatatlas.utils.exceptions import HeatAtlasError, error_envelope, heatatlas_exception_handler
from heatatlas.utils.logger import get_logger, setup_logging

# Setup logging first
logger = get_logger(__name__)
setup_logging(settings.ENVIRONMENT)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: Earth Engine session (bounded by a timeout) and one-off
    narration provider probe. Shutdown: provider sessions and pending
    report cleanup timers.
    """
    logger.info("Starting HeatAtlas API Server", version=settings.APP_VERSION)

    gee_ready = await initialize_gee_service(
        settings.GEE_SERVICE_ACCOUNT_KEY,
        settings.GEE_PROJECT_ID,
        settings.GEE_INIT_TIMEOUT_SECONDS,
    )
    if gee_ready:
        logger.info("Earth Engine initialized")
    else:
        logger.error("Earth Engine unavailable; analysis endpoints will return 503")

    availability = await insight_narrator.probe()
    if not any(availability.values()):
        logger.warning("No narration provider available; reports will use fallback text")

    yield

    logger.info("Shutting down HeatAtlas API Server")
    await insight_narrator.close()
    artifact_store.cancel_all()


def create_application() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        HeatAtlas API - urban heat island analytics

        - Landsat 9 derived NDVI, NDBI, land surface temperature, UHI and UTFVI layers
        - Land cover and heat vulnerability zones
        - Narrated PDF reports packaged with GeoTIFF rasters
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HeatAtlasError, heatatlas_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed", path=request.url.path, errors=exc.errors())
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_envelope(
                "INPUT_VALIDATION_ERROR",
                "Request validation failed",
                jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_envelope("INTERNAL_ERROR", "An unexpected error occurred"),
        )

    app.include_router(api_router)

    @app.get("/")
    async def root():
        return {
            "message": "Welcome to HeatAtlas API",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    logger.info(
        "FastAPI application configured",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
        cors_origins=settings.BACKEND_CORS_ORIGINS,
    )

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "heatatlas.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info",
    )
