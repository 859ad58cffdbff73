"""
HeatAtlas - Google Earth Engine Service
========================================
Process-wide Earth Engine session plus the small set of calls the
analytics layer needs: evaluate an expression, get a tile URL, get a
GeoTIFF download URL.

The earthengine-api client is blocking, so every call that reaches the
server runs in a worker thread and is awaited.
"""

import asyncio
import json
import os
from typing import Any, Dict, Optional

import ee

from heatatlas.utils.exceptions import ComputeBackendError, ServiceUnavailableError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

DOWNLOAD_CRS = "EPSG:4326"
DOWNLOAD_FORMAT = "GEO_TIFF"
DEFAULT_SCALE = 30
MAX_PIXELS = 1e13


# ============================================================================
# GEE SERVICE CLASS
# ============================================================================

class GEEService:
    """Google Earth Engine session shared by the metric engine and the compositor"""

    def __init__(self):
        self.initialized = False
        self.project_id: Optional[str] = None
        self.init_error: Optional[str] = None

    def initialize(self, key_file: str = "gee-service-account-key.json",
                   project_id: Optional[str] = None) -> bool:
        """Authenticate with a service account key and verify the session with a trivial call."""
        try:
            if self.initialized:
                return True

            if not os.path.exists(key_file):
                self.init_error = f"Service account key not found: {key_file}"
                logger.error("GEE key file missing", key_file=os.path.abspath(key_file))
                return False

            with open(key_file, "r") as f:
                key_data = json.load(f)

            project = project_id or key_data.get("project_id")
            credentials = ee.ServiceAccountCredentials(
                email=key_data["client_email"],
                key_file=key_file,
            )

            ee.Initialize(credentials=credentials, project=project)
            ee.Number(1).getInfo()

            self.initialized = True
            self.project_id = project
            self.init_error = None

            logger.info("✅ Google Earth Engine initialized", project=project)
            return True

        except Exception as e:
            self.init_error = str(e)
            logger.error("Failed to initialize GEE", error=str(e))
            return False

    async def initialize_with_timeout(
        self,
        key_file: str,
        project_id: Optional[str],
        timeout: float,
    ) -> bool:
        """Run ``initialize`` off the event loop; a timeout counts as a failed start."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.initialize, key_file, project_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.init_error = f"Initialization timed out after {timeout}s"
            logger.error("GEE initialization timed out", timeout_seconds=timeout)
            return False

    def ensure_initialized(self):
        if not self.initialized:
            raise ServiceUnavailableError(
                "Earth Engine is not initialized; restart the service once credentials are fixed",
                service_name="Earth Engine",
            )

    # ========================================================================
    # SERVER CALLS
    # ========================================================================

    async def evaluate(self, obj: Any, what: str = "expression") -> Any:
        """Evaluate an ee object (Number, Dictionary, List...) and return plain Python data."""
        self.ensure_initialized()
        try:
            return await asyncio.to_thread(obj.getInfo)
        except ee.EEException as e:
            logger.error("Earth Engine evaluation failed", what=what, error=str(e))
            raise ComputeBackendError(f"Earth Engine failed to evaluate {what}: {e}") from e

    async def map_tile_url(self, image: Any, vis_params: Dict[str, Any]) -> str:
        """XYZ tile URL template for ``image`` rendered with ``vis_params``."""
        self.ensure_initialized()
        try:
            map_id = await asyncio.to_thread(image.getMapId, vis_params)
        except ee.EEException as e:
            logger.error("Earth Engine getMapId failed", error=str(e))
            raise ComputeBackendError(f"Earth Engine failed to create map tiles: {e}") from e
        return map_id["tile_fetcher"].url_format

    async def download_url(self, image: Any, region: Any, scale: int = DEFAULT_SCALE) -> str:
        """Single-file GeoTIFF URL for ``image`` over ``region`` at ``scale`` metres."""
        self.ensure_initialized()
        params = {
            "scale": scale,
            "region": region,
            "format": DOWNLOAD_FORMAT,
            "crs": DOWNLOAD_CRS,
            "filePerBand": False,
        }
        try:
            return await asyncio.to_thread(image.getDownloadURL, params)
        except ee.EEException as e:
            logger.error("Earth Engine getDownloadURL failed", error=str(e))
            raise ComputeBackendError(f"Earth Engine failed to create download URL: {e}") from e

    def status(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "project_id": self.project_id,
            "error": self.init_error,
        }


# Global instance
gee_service = GEEService()


async def initialize_gee_service(key_file: str, project_id: Optional[str], timeout: float) -> bool:
    """Initialize the shared GEE session (called once from the app lifespan)"""
    return await gee_service.initialize_with_timeout(key_file, project_id, timeout)
