"""
HeatAtlas - Report Schemas
===========================
Report request/response models plus the enriched data passed between the
report assembler, the narration orchestrator and the document renderer.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from heatatlas.schemas.analysis import MetricLayer, MetricsResponse
from heatatlas.schemas.common import CamelModel, PolygonGeometry, TimeWindow


# ============================================================================
# REQUEST / RESPONSE
# ============================================================================

class ReportMetadataIn(TimeWindow):
    geometry: PolygonGeometry
    year: Optional[int] = None


class ReportRequest(CamelModel):
    """Used by: POST /report/generate-report"""

    analysis_data: MetricsResponse
    additional_data: Optional[Dict[str, Dict[str, Any]]] = None
    metadata: ReportMetadataIn


class ReportResponse(CamelModel):
    success: bool = True
    message: str = "Report generated successfully"
    report_id: str
    download_url: str


class ReportStatusResponse(CamelModel):
    success: bool = True
    report_id: str
    status: str
    ready: bool
    size: Optional[int] = None
    download_url: Optional[str] = None


# ============================================================================
# ENRICHED REPORT DATA
# ============================================================================

class Bounds(BaseModel):
    north: float
    south: float
    east: float
    west: float


class Centroid(BaseModel):
    lat: float
    lng: float


class StudyArea(BaseModel):
    geometry: Dict[str, Any]
    bounds: Bounds
    area_km2: float
    centroid: Centroid
    coordinates_description: str


class TimeRange(BaseModel):
    start: date
    end: date
    year: int
    season: str
    duration_days: int


class StudyMetadata(BaseModel):
    """Computed once per report request; embedded in prompts and the document."""

    study_area: StudyArea
    time_range: TimeRange
    processing_date: str


class OverallStatistics(BaseModel):
    layers_processed: int = 0
    additional_layers_processed: int = 0
    total_data_points: int = 0


class EnhancedReportData(BaseModel):
    metadata: StudyMetadata
    layers: List[MetricLayer] = Field(default_factory=list)
    additional_layers: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    statistics: OverallStatistics = Field(default_factory=OverallStatistics)


class InsightSet(BaseModel):
    """One narrative per report section; each field is produced independently."""

    introduction: str
    statistics_interpretations: Dict[str, str] = Field(default_factory=dict)
    supplementary_analysis: str
    conclusion: str
