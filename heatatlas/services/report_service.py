"""
HeatAtlas Report Assembler
===========================

generate_report(request) runs, in order:

1. enhance      study-area / time metadata and overall statistics
2. narrate      InsightNarrator.narrate_all, deterministic fallback set on failure
3. download     every layer with a download URL, sequentially, each one skippable
4. render       PDF (or plain text) plus HTML
5. package      comprehensive_report.zip, documents at the root, rasters under rasters/
6. expire       directory scheduled for deletion after the retention window

Any unrecoverable failure in 1-5 deletes the partial directory and raises
ReportGenerationError.
"""

import asyncio
import re
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from heatatlas.core.spatial import (
    determine_season,
    duration_days,
    format_coordinates,
    planar_area_km2,
    ring_bounds,
    ring_centroid,
)
from heatatlas.llm.orchestrator import InsightNarrator, build_fallback_insights, insight_narrator
from heatatlas.schemas.report import (
    Bounds,
    Centroid,
    EnhancedReportData,
    InsightSet,
    OverallStatistics,
    ReportMetadataIn,
    ReportRequest,
    StudyArea,
    StudyMetadata,
    TimeRange,
)
from heatatlas.services.artifact_store import RASTER_DIR_NAME, ArtifactStore, artifact_store
from heatatlas.services.document_renderer import DocumentRenderer, document_renderer
from heatatlas.services.raster_downloader import RasterDownloader
from heatatlas.utils.exceptions import HeatAtlasError, ReportGenerationError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

ADDITIONAL_FILE_NAMES = {
    "LULC": "Land_Use_Land_Cover",
    "heatVulnerabilityZones": "Heat_Vulnerability_Zones",
}

DOWNLOAD_ROUTE = "/report/download-report/{report_id}"

ADDITIONALS_ERRORS_KEY = "errors"
LAYER_PAYLOAD_KEYS = frozenset({"tileUrl", "tile_url", "downloadUrl", "download_url"})


# ============================================================================
# ENHANCEMENT
# ============================================================================

def build_study_metadata(meta: ReportMetadataIn) -> StudyMetadata:
    ring = meta.geometry.ring
    bounds = ring_bounds(ring)

    return StudyMetadata(
        study_area=StudyArea(
            geometry=meta.geometry.to_geojson(),
            bounds=Bounds(**bounds),
            area_km2=planar_area_km2(ring),
            centroid=Centroid(**ring_centroid(ring)),
            coordinates_description=format_coordinates(bounds),
        ),
        time_range=TimeRange(
            start=meta.start_date,
            end=meta.end_date,
            year=meta.year or meta.end_date.year,
            season=determine_season(meta.start_date, meta.end_date),
            duration_days=duration_days(meta.start_date, meta.end_date),
        ),
        processing_date=datetime.now().isoformat(timespec="seconds"),
    )


def additional_layer_payloads(additional_data: Optional[Dict[str, Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """
    Keep only entries that carry a layer.

    The /process/additionals response is forwarded as-is, so its ``errors``
    map and empty entries are dropped here.
    """
    return {
        key: data
        for key, data in (additional_data or {}).items()
        if key != ADDITIONALS_ERRORS_KEY and LAYER_PAYLOAD_KEYS.intersection(data or {})
    }


def enhance(request: ReportRequest) -> EnhancedReportData:
    layers = request.analysis_data.layers
    additional = additional_layer_payloads(request.additional_data)

    total_points = sum(
        int(sum(layer.histogram.histogram)) for layer in layers if layer.histogram is not None
    )

    return EnhancedReportData(
        metadata=build_study_metadata(request.metadata),
        layers=layers,
        additional_layers=additional,
        statistics=OverallStatistics(
            layers_processed=len(layers),
            additional_layers_processed=len(additional),
            total_data_points=total_points,
        ),
    )


# ============================================================================
# FILE NAMES
# ============================================================================

def analysis_file_name(layer_name: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]+", "_", layer_name).strip("_") or "layer"
    return f"{safe.upper()}_analysis.tif"


def additional_file_name(key: str) -> str:
    formatted = ADDITIONAL_FILE_NAMES.get(key)
    if formatted is None:
        words = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key)
        formatted = "_".join(part.capitalize() for part in words.split("_") if part)
    return f"{formatted}_additional.tif"


# ============================================================================
# ASSEMBLER
# ============================================================================

class ReportService:
    """Drives one report from request to downloadable archive."""

    def __init__(
        self,
        store: Optional[ArtifactStore] = None,
        narrator: Optional[InsightNarrator] = None,
        renderer: Optional[DocumentRenderer] = None,
        downloader: Optional[RasterDownloader] = None,
    ):
        self.store = store or artifact_store
        self.narrator = narrator or insight_narrator
        self.renderer = renderer or document_renderer
        self.downloader = downloader or RasterDownloader()

    async def narrate(self, enhanced: EnhancedReportData) -> InsightSet:
        try:
            return await self.narrator.narrate_all(enhanced)
        except Exception as e:
            logger.error("Narration failed, using fallback insights", error=str(e), exc_info=True)
            return build_fallback_insights(enhanced)

    async def download_rasters(self, enhanced: EnhancedReportData, raster_dir: Path) -> List[Path]:
        """Sequential; a failed file is logged and left out."""
        targets = []
        for layer in enhanced.layers:
            if layer.download_url:
                targets.append((layer.download_url, analysis_file_name(layer.name)))
        for key, data in enhanced.additional_layers.items():
            url = (data or {}).get("downloadUrl") or (data or {}).get("download_url")
            if url:
                targets.append((url, additional_file_name(key)))

        downloaded = []
        for url, file_name in targets:
            path = await self.downloader.download(url, raster_dir, file_name)
            if path is not None:
                downloaded.append(path)

        logger.info("Raster downloads finished", requested=len(targets), downloaded=len(downloaded))
        return downloaded

    @staticmethod
    def package(archive_path: Path, documents: List[Path], rasters: List[Path]) -> Path:
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
            for document in documents:
                archive.write(document, arcname=document.name)
            for raster in rasters:
                archive.write(raster, arcname=f"{RASTER_DIR_NAME}/{raster.name}")
        return archive_path

    async def generate_report(self, request: ReportRequest) -> Dict[str, Any]:
        """
        Build the report archive.

        Returns:
            ``{"report_id", "download_url"}``

        Raises:
            ReportGenerationError: anything in enhance/render/package failed
        """
        report_id = self.store.new_report_id()
        report_dir = self.store.create_report_dir(report_id)
        logger.info("Report generation started", report_id=report_id, layers=len(request.analysis_data.layers))

        try:
            enhanced = enhance(request)
            insights = await self.narrate(enhanced)
            rasters = await self.download_rasters(enhanced, self.store.raster_dir(report_id))
            documents = await self.renderer.render(enhanced, insights, report_dir)
            archive = await asyncio.to_thread(
                self.package, self.store.archive_path_for(report_id), documents, rasters
            )
        except HeatAtlasError as e:
            self.store.mark_failed(report_id)
            logger.error("Report generation failed", report_id=report_id, error=e.message)
            raise ReportGenerationError(f"Report generation failed: {e.message}", report_id=report_id) from e
        except Exception as e:
            self.store.mark_failed(report_id)
            logger.error("Report generation failed", report_id=report_id, error=str(e), exc_info=True)
            raise ReportGenerationError(f"Report generation failed: {e}", report_id=report_id) from e

        self.store.mark_ready(report_id)
        self.store.schedule_cleanup(report_id)
        logger.info(
            "Report generated",
            report_id=report_id,
            size=archive.stat().st_size,
            documents=[d.name for d in documents],
            rasters=len(rasters),
        )
        return {"report_id": report_id, "download_url": DOWNLOAD_ROUTE.format(report_id=report_id)}

    def status(self, report_id: str) -> Dict[str, Any]:
        status = self.store.status_of(report_id)
        status["download_url"] = DOWNLOAD_ROUTE.format(report_id=report_id) if status["ready"] else None
        return status


_report_service: Optional[ReportService] = None


def get_report_service() -> ReportService:
    """FastAPI dependency; one assembler per process."""
    global _report_service
    if _report_service is None:
        _report_service = ReportService()
    return _report_service
