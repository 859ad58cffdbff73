"""
HeatAtlas - Shared Schemas
===========================
Geometry, time window and error envelope models used by every endpoint.
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from heatatlas.core.spatial import validate_ring
from heatatlas.utils.exceptions import InputValidationError


class CamelModel(BaseModel):
    """Accept and emit camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# GEOMETRY
# ============================================================================

class PolygonGeometry(BaseModel):
    """
    GeoJSON Polygon restricted to a single exterior ring.

    The ring is closed during validation, so every downstream consumer
    (compute backend, area/bounds/centroid) sees first == last.
    """

    type: Literal["Polygon"] = "Polygon"
    coordinates: List[List[List[float]]] = Field(..., description="[[ [lng, lat], ... ]]")

    @field_validator("coordinates")
    @classmethod
    def prepare_ring(cls, v):
        if not v or not v[0]:
            raise ValueError("geometry must contain an exterior ring")
        try:
            ring = validate_ring(v[0])
        except InputValidationError as e:
            raise ValueError(e.message) from e
        return [ring]

    @property
    def ring(self) -> List[List[float]]:
        return self.coordinates[0]

    def to_geojson(self) -> Dict[str, Any]:
        return {"type": self.type, "coordinates": self.coordinates}


# ============================================================================
# TIME WINDOW
# ============================================================================

class TimeWindow(CamelModel):
    """Calendar window; start must precede end."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_order(self):
        if self.start_date >= self.end_date:
            raise ValueError("startDate must be before endDate")
        return self


# ============================================================================
# ERRORS
# ============================================================================

class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorInfo
