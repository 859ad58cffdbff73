"""
HeatAtlas - Analysis Schemas
=============================
Request/response models for POST /process/data and POST /process/additionals.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from heatatlas.schemas.common import CamelModel, ErrorInfo, PolygonGeometry, TimeWindow


ADDITIONAL_OPTIONS = ("LULC", "heatVulnerabilityZones")


# ============================================================================
# METRIC LAYERS
# ============================================================================

class Histogram(CamelModel):
    """Fixed-bucket histogram as returned by the compute backend."""

    histogram: List[float] = Field(default_factory=list, description="Bucket counts")
    bucket_means: List[float] = Field(default_factory=list)
    bucket_min: Optional[float] = None
    bucket_width: Optional[float] = None

    @model_validator(mode="after")
    def validate_buckets(self):
        if len(self.histogram) != len(self.bucket_means):
            raise ValueError(
                f"histogram has {len(self.histogram)} buckets but bucketMeans has {len(self.bucket_means)}"
            )
        return self


class LayerStatistics(CamelModel):
    mean: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    std_dev: Optional[float] = None

    @property
    def is_complete(self) -> bool:
        return all(v is not None for v in (self.mean, self.min, self.max, self.std_dev))


class MetricLayer(CamelModel):
    """One derived raster with its map endpoints and region summary."""

    id: str
    name: str
    tile_url: Optional[str] = None
    download_url: Optional[str] = None
    histogram: Optional[Histogram] = None
    statistics: LayerStatistics = Field(default_factory=LayerStatistics)


# ============================================================================
# /process/data
# ============================================================================

class MetricsRequest(TimeWindow):
    """Used by: POST /process/data"""

    geometry: PolygonGeometry
    metrics: List[str] = Field(..., description="Metric ids: ndvi, ndbi, lst, uhi, utfvi")

    @field_validator("metrics")
    @classmethod
    def validate_metrics(cls, v):
        cleaned = [m.strip() for m in v if m and m.strip()]
        if not cleaned:
            raise ValueError("At least one metric must be requested")
        return cleaned


class MetricsResponse(CamelModel):
    layers: List[MetricLayer] = Field(default_factory=list)


# ============================================================================
# /process/additionals
# ============================================================================

class AdditionalsRequest(TimeWindow):
    """Used by: POST /process/additionals"""

    geometry: PolygonGeometry
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    options: List[str] = Field(..., description="LULC and/or heatVulnerabilityZones")

    @field_validator("options")
    @classmethod
    def validate_options(cls, v):
        unknown = [o for o in v if o not in ADDITIONAL_OPTIONS]
        if unknown:
            raise ValueError(f"Unknown options: {unknown}. Supported: {list(ADDITIONAL_OPTIONS)}")
        if not v:
            raise ValueError("At least one option must be requested")
        return v

    @property
    def effective_year(self) -> int:
        return self.year or self.end_date.year


class LandCoverLayer(CamelModel):
    tile_url: str
    download_url: str
    palette: List[str] = Field(default_factory=list)
    classes: List[str] = Field(default_factory=list)


class HeatVulnerabilityLayer(CamelModel):
    tile_url: str
    download_url: str
    min: float
    max: float
    class_breaks: List[float]
    palette: List[str]


class AdditionalsResponse(CamelModel):
    lulc: Optional[LandCoverLayer] = Field(default=None, alias="LULC")
    heat_vulnerability_zones: Optional[HeatVulnerabilityLayer] = None
    errors: Dict[str, ErrorInfo] = Field(default_factory=dict)

    def layers(self) -> Dict[str, Dict[str, Any]]:
        """Successful layers keyed the way the report request expects them."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"errors"})
