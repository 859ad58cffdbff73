"""HeatAtlas Pydantic Schemas"""

from heatatlas.schemas.common import ErrorInfo, ErrorResponse, PolygonGeometry, TimeWindow
from heatatlas.schemas.analysis import (
    AdditionalsRequest,
    AdditionalsResponse,
    HeatVulnerabilityLayer,
    Histogram,
    LandCoverLayer,
    LayerStatistics,
    MetricLayer,
    MetricsRequest,
    MetricsResponse,
)
from heatatlas.schemas.report import (
    EnhancedReportData,
    InsightSet,
    ReportRequest,
    ReportResponse,
    ReportStatusResponse,
    StudyMetadata,
)

__all__ = [
    "ErrorInfo",
    "ErrorResponse",
    "PolygonGeometry",
    "TimeWindow",
    "AdditionalsRequest",
    "AdditionalsResponse",
    "HeatVulnerabilityLayer",
    "Histogram",
    "LandCoverLayer",
    "LayerStatistics",
    "MetricLayer",
    "MetricsRequest",
    "MetricsResponse",
    "EnhancedReportData",
    "InsightSet",
    "ReportRequest",
    "ReportResponse",
    "ReportStatusResponse",
    "StudyMetadata",
]
