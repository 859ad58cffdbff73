"""
HeatAtlas - Raster Metric Engine
=================================
Region + time window -> cloud-masked Landsat 9 composite -> metric rasters
(NDVI, NDBI, LST, UHI, UTFVI), each with a tile URL, a GeoTIFF download
URL, region statistics and a 50-bucket histogram.

LST is a simplified NDVI-threshold emissivity retrieval on the Collection 2
surface-temperature band, not a radiative-transfer solver.
"""

import asyncio
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import ee

from heatatlas.core.visualization import vis_params_for
from heatatlas.schemas.analysis import Histogram, LayerStatistics, MetricLayer, MetricsResponse
from heatatlas.services.gee_service import DEFAULT_SCALE, MAX_PIXELS, GEEService, gee_service
from heatatlas.utils.exceptions import ComputeBackendError, NoDataError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

LANDSAT_COLLECTION = "LANDSAT/LC09/C02/T1_L2"

OPTICAL_SCALE, OPTICAL_OFFSET = 0.0000275, -0.2
THERMAL_SCALE, THERMAL_OFFSET = 0.00341802, 149.0

CLOUD_SHADOW_BIT = 1 << 3
CLOUD_BIT = 1 << 5

HISTOGRAM_BUCKETS = 50

SUPPORTED_METRICS = ("ndvi", "ndbi", "lst", "uhi", "utfvi")

# Output band name of each metric image
BAND_NAMES = {
    "ndvi": "NDVI",
    "ndbi": "NDBI",
    "lst": "LST",
    "uhi": "UHI",
    "utfvi": "UTFVI",
}

# metric -> intermediate rasters it needs
DEPENDENCIES = {
    "ndvi": set(),
    "ndbi": set(),
    "lst": {"ndvi"},
    "uhi": {"ndvi", "lst"},
    "utfvi": {"ndvi", "lst"},
}


# ============================================================================
# EXPRESSION BUILDERS
# ============================================================================

def apply_scale_factors(image):
    """Collection 2 Level-2 calibration: reflectance for SR_B*, Kelvin for ST_B*."""
    optical = image.select("SR_B.").multiply(OPTICAL_SCALE).add(OPTICAL_OFFSET)
    thermal = image.select("ST_B.*").multiply(THERMAL_SCALE).add(THERMAL_OFFSET)
    return image.addBands(optical, None, True).addBands(thermal, None, True)


def mask_clouds(image):
    """Keep pixels whose QA_PIXEL cloud-shadow and cloud bits are both clear."""
    qa = image.select("QA_PIXEL")
    mask = qa.bitwiseAnd(CLOUD_SHADOW_BIT).eq(0).And(qa.bitwiseAnd(CLOUD_BIT).eq(0))
    return image.updateMask(mask)


def region_geometry(geometry: Dict[str, Any]):
    return ee.Geometry.Polygon(geometry["coordinates"])


def landsat_collection(start: date, end: date, region):
    return (
        ee.ImageCollection(LANDSAT_COLLECTION)
        .filterDate(start.isoformat(), end.isoformat())
        .filterBounds(region)
        .map(apply_scale_factors)
        .map(mask_clouds)
    )


def calculate_ndvi(composite):
    return composite.normalizedDifference(["SR_B5", "SR_B4"]).rename("NDVI")


def calculate_ndbi(composite):
    return composite.normalizedDifference(["SR_B6", "SR_B5"]).rename("NDBI")


def calculate_lst(composite, ndvi, region):
    """
    Land surface temperature in °C.

        fv  = ((ndvi - min) / (max - min))^2
        em  = 0.004 * fv + 0.986
        LST = tb / (1 + (11.5 * tb / 14380) * ln(em)) - 273.15
    """
    ndvi_stats = ndvi.reduceRegion(
        reducer=ee.Reducer.minMax(),
        geometry=region,
        scale=DEFAULT_SCALE,
        maxPixels=MAX_PIXELS,
    )
    ndvi_min = ee.Number(ndvi_stats.get("NDVI_min"))
    ndvi_max = ee.Number(ndvi_stats.get("NDVI_max"))

    fv = ndvi.subtract(ndvi_min).divide(ndvi_max.subtract(ndvi_min)).pow(ee.Number(2)).rename("FV")
    em = fv.multiply(ee.Number(0.004)).add(ee.Number(0.986)).rename("EM")

    thermal = composite.select("ST_B10").rename("Thermal")
    return thermal.expression(
        "(tb / (1 + ((11.5 * (tb / 14380)) * log(em)))) - 273.15",
        {"tb": thermal.select("Thermal"), "em": em},
    ).rename("LST")


def calculate_uhi(lst, lst_mean: float, lst_std: float):
    return lst.subtract(ee.Image.constant(lst_mean)).divide(ee.Image.constant(lst_std)).rename("UHI")


def calculate_utfvi(lst, lst_mean: float):
    return lst.subtract(ee.Image.constant(lst_mean)).divide(lst).rename("UTFVI")


def summary_reducer():
    return (
        ee.Reducer.mean()
        .combine(reducer2=ee.Reducer.minMax(), sharedInputs=True)
        .combine(reducer2=ee.Reducer.stdDev(), sharedInputs=True)
    )


def normalize_metric_ids(metric_ids: Sequence[str]) -> List[str]:
    """Lower-case, drop duplicates and unknown ids (with a warning), keep request order."""
    selected: List[str] = []
    for metric in metric_ids:
        key = metric.strip().lower()
        if key not in SUPPORTED_METRICS:
            logger.warning("Unknown metric requested, skipping", metric=metric)
            continue
        if key not in selected:
            selected.append(key)
    return selected


def required_rasters(metrics: Sequence[str]) -> set:
    needed = set(metrics)
    for metric in metrics:
        needed |= DEPENDENCIES[metric]
    return needed


# ============================================================================
# METRIC ENGINE
# ============================================================================

class MetricEngine:
    """Builds metric layers for one request; intermediates are shared across dependents."""

    def __init__(self, gee: Optional[GEEService] = None):
        self.gee = gee or gee_service

    async def composite(self, start: date, end: date, region):
        """Median of the cloud-masked collection, clipped. NoDataError when no scene matches."""
        collection = landsat_collection(start, end, region)
        size = await self.gee.evaluate(collection.size(), what="collection size")
        if not size:
            raise NoDataError(
                "No Landsat scenes available for the specified date range and region",
                layer="composite",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )
        logger.info("Landsat composite prepared", scenes=size)
        return collection.median().clip(region)

    async def lst_summary(self, lst, region, require_spread: bool = True) -> Dict[str, Optional[float]]:
        """
        Region mean/stdDev of LST; a hard dependency of UHI and UTFVI.

        ``require_spread`` rejects a missing or zero stdDev (UHI divides by it;
        UTFVI only needs the mean).
        """
        reducer = ee.Reducer.mean().combine(reducer2=ee.Reducer.stdDev(), sharedInputs=True)
        stats = await self.gee.evaluate(
            lst.reduceRegion(reducer=reducer, geometry=region, scale=DEFAULT_SCALE, maxPixels=MAX_PIXELS),
            what="lst summary",
        ) or {}

        mean, std = stats.get("LST_mean"), stats.get("LST_stdDev")
        if mean is None or (require_spread and std is None):
            raise NoDataError("Surface temperature has no valid pixels in the region", layer="lst")
        if require_spread and std == 0:
            raise NoDataError("Surface temperature is uniform in the region; heat-island index undefined", layer="lst")
        return {"mean": mean, "std_dev": std}

    async def build_layer(self, metric: str, image, region) -> MetricLayer:
        """Tile URL, download URL, statistics and histogram for one metric image."""
        band = BAND_NAMES[metric]

        tile_url, download_url, stats, histogram = await asyncio.gather(
            self.gee.map_tile_url(image, vis_params_for(metric)),
            self.gee.download_url(image, region),
            self.gee.evaluate(
                image.reduceRegion(reducer=summary_reducer(), geometry=region,
                                   scale=DEFAULT_SCALE, maxPixels=MAX_PIXELS),
                what=f"{metric} statistics",
            ),
            self.gee.evaluate(
                image.select(band).reduceRegion(
                    reducer=ee.Reducer.histogram(maxBuckets=HISTOGRAM_BUCKETS),
                    geometry=region,
                    scale=DEFAULT_SCALE,
                    maxPixels=MAX_PIXELS,
                ),
                what=f"{metric} histogram",
            ),
        )

        stats = stats or {}
        raw_histogram = (histogram or {}).get(band)

        layer = MetricLayer(
            id=metric,
            name=metric.upper(),
            tile_url=tile_url,
            download_url=download_url,
            histogram=Histogram.model_validate(raw_histogram) if raw_histogram else None,
            statistics=LayerStatistics(
                mean=stats.get(f"{band}_mean"),
                min=stats.get(f"{band}_min"),
                max=stats.get(f"{band}_max"),
                std_dev=stats.get(f"{band}_stdDev"),
            ),
        )
        logger.info("Layer built", layer=metric, mean=layer.statistics.mean)
        return layer

    async def compute_metrics(
        self,
        start: date,
        end: date,
        geometry: Dict[str, Any],
        metric_ids: Sequence[str],
    ) -> MetricsResponse:
        """
        Compute the requested metric layers.

        Raises:
            ServiceUnavailableError: Earth Engine never initialized
            NoDataError: empty composite, or LST unusable while UHI/UTFVI depend on it
            ComputeBackendError: every requested layer failed to build
        """
        self.gee.ensure_initialized()

        metrics = normalize_metric_ids(metric_ids)
        if not metrics:
            logger.warning("No supported metrics in request", requested=list(metric_ids))
            return MetricsResponse(layers=[])

        region = region_geometry(geometry)
        needed = required_rasters(metrics)
        composite = await self.composite(start, end, region)

        images: Dict[str, Any] = {}
        if "ndvi" in needed:
            images["ndvi"] = calculate_ndvi(composite)
        if "ndbi" in needed:
            images["ndbi"] = calculate_ndbi(composite)
        if "lst" in needed:
            images["lst"] = calculate_lst(composite, images["ndvi"], region)
        if "uhi" in needed or "utfvi" in needed:
            summary = await self.lst_summary(images["lst"], region, require_spread="uhi" in needed)
            if "uhi" in needed:
                images["uhi"] = calculate_uhi(images["lst"], summary["mean"], summary["std_dev"])
            if "utfvi" in needed:
                images["utfvi"] = calculate_utfvi(images["lst"], summary["mean"])

        results = await asyncio.gather(
            *(self.build_layer(metric, images[metric], region) for metric in metrics),
            return_exceptions=True,
        )

        layers: List[MetricLayer] = []
        failures: Dict[str, Exception] = {}
        for metric, result in zip(metrics, results):
            if isinstance(result, MetricLayer):
                layers.append(result)
            elif isinstance(result, (NoDataError, ComputeBackendError)):
                failures[metric] = result
                logger.warning("Layer omitted", layer=metric, error=str(result))
            else:
                raise result

        if not layers and failures:
            first = next(iter(failures.values()))
            raise first

        logger.info("Metrics computed", layers=[layer.id for layer in layers], omitted=list(failures))
        return MetricsResponse(layers=layers)


metric_engine = MetricEngine()
