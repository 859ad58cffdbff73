"""
HeatAtlas Normalization & Weighting
Pure arithmetic behind the Heat Vulnerability Index.

Every helper works on plain floats and on Earth Engine images alike:
images expose ``add``/``subtract``/``multiply``/``divide`` while floats use
the operators, so the same code path is exercised by unit tests and by the
compositor.
"""

import math
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence

from heatatlas.utils.exceptions import NormalizationError


# ============================================================================
# CONSTANTS
# ============================================================================

# Negative weights: more vegetation / higher elevation => lower vulnerability.
# Tunable, not a physical law.
HVI_WEIGHTS: Dict[str, float] = {
    "uhi": 0.25,
    "utfvi": 0.20,
    "ndvi": -0.15,
    "ndbi": 0.15,
    "population": 0.15,
    "elevation": -0.10,
}

HVI_CLASS_COUNT = 5
HVI_PALETTE = ["#313695", "#74add1", "#fdae61", "#f46d43", "#a50026"]

POPULATION_SNAPSHOT_YEARS = (2000, 2005, 2010, 2015, 2020)


# ============================================================================
# GENERIC ARITHMETIC
# ============================================================================

def _is_image(value: Any) -> bool:
    return hasattr(value, "multiply") and hasattr(value, "subtract")


def _scale(value: Any, factor: float) -> Any:
    return value.multiply(factor) if _is_image(value) else value * factor


def _plus(left: Any, right: Any) -> Any:
    return left.add(right) if _is_image(left) else left + right


def _minus(left: Any, right: Any) -> Any:
    return left.subtract(right) if _is_image(left) else left - right


def rescale(value: Any, minimum: float, maximum: float) -> Any:
    """Map ``value`` from [minimum, maximum] onto [0, 1]. Caller guarantees maximum > minimum."""
    span = maximum - minimum
    shifted = _minus(value, minimum)
    return shifted.divide(span) if _is_image(shifted) else shifted / span


def weighted_composite(bands: Mapping[str, Any], weights: Mapping[str, float] = HVI_WEIGHTS) -> Any:
    """
    Sum of ``weight * band`` over every weighted band.

    Args:
        bands: normalized bands keyed like ``weights``
        weights: band key -> weight; defaults to the HVI weights

    Raises:
        KeyError: a weighted band is missing from ``bands``
    """
    composite = None
    for key, weight in weights.items():
        term = _scale(bands[key], weight)
        composite = term if composite is None else _plus(composite, term)
    return composite


# ============================================================================
# MIN / MAX VALIDATION
# ============================================================================

def check_min_max(reduction: Optional[Mapping[str, Any]], band: str) -> tuple:
    """
    Extract ``{band}_min`` / ``{band}_max`` from a minMax reduction.

    Raises:
        NormalizationError: empty reduction, missing or NaN bound, or min == max.
            A uniform raster can never be rescaled without producing NaN or
            a constant 0/1 image, so it is rejected here.
    """
    if not reduction:
        raise NormalizationError("No data available in the region", band=band)

    minimum = reduction.get(f"{band}_min")
    maximum = reduction.get(f"{band}_max")

    if minimum is None or maximum is None:
        raise NormalizationError("Could not compute min/max values", band=band)
    if math.isnan(minimum) or math.isnan(maximum):
        raise NormalizationError("Min/max reduction returned NaN", band=band)
    if minimum == maximum:
        raise NormalizationError(
            f"Cannot normalize {band}: raster is uniform",
            band=band,
            minimum=minimum,
            maximum=maximum,
        )

    return float(minimum), float(maximum)


# ============================================================================
# CLASSIFICATION
# ============================================================================

def class_breaks(minimum: float, maximum: float, classes: int = HVI_CLASS_COUNT) -> List[float]:
    """Equal-width breaks from minimum to maximum; ``classes + 1`` values, last one exactly maximum."""
    interval = (maximum - minimum) / classes
    breaks = [minimum + i * interval for i in range(classes)]
    breaks.append(maximum)
    return breaks


# ============================================================================
# POPULATION SNAPSHOT INTERPOLATION
# ============================================================================

class SnapshotPlan(NamedTuple):
    """Which snapshots to blend: ``lower + (upper - lower) * factor``."""

    lower: int
    upper: int
    factor: float

    @property
    def is_single(self) -> bool:
        return self.lower == self.upper


def plan_population_snapshot(year: int, available: Sequence[int] = POPULATION_SNAPSHOT_YEARS) -> SnapshotPlan:
    """
    Pick snapshot years for ``year``.

    Exact matches use that snapshot, years outside the available range clamp
    to the nearest end (never extrapolated), anything else interpolates
    linearly between the surrounding snapshots.
    """
    years = sorted(available)

    if year in years:
        return SnapshotPlan(year, year, 0.0)
    if year < years[0]:
        return SnapshotPlan(years[0], years[0], 0.0)
    if year > years[-1]:
        return SnapshotPlan(years[-1], years[-1], 0.0)

    lower = max(y for y in years if y < year)
    upper = min(y for y in years if y > year)
    return SnapshotPlan(lower, upper, (year - lower) / (upper - lower))


def interpolate(lower: Any, upper: Any, factor: float) -> Any:
    return _plus(lower, _scale(_minus(upper, lower), factor))
