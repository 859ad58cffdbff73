"""
HeatAtlas - Vulnerability Compositor
=====================================
Heat Vulnerability Index (HVI) and the Dynamic World land-cover layer.

HVI = 0.25*UHI + 0.20*UTFVI - 0.15*NDVI + 0.15*NDBI + 0.15*POP - 0.10*ELEV
with every input rescaled to [0, 1] over the region first.
"""

import asyncio
from datetime import date
from typing import Any, Dict, Optional

import ee

from heatatlas.core.normalization import (
    HVI_PALETTE,
    HVI_WEIGHTS,
    check_min_max,
    class_breaks,
    interpolate,
    plan_population_snapshot,
    rescale,
    weighted_composite,
)
from heatatlas.core.visualization import LAND_COVER_CLASSES, LAND_COVER_PALETTE, LAND_COVER_VIS_PARAMS
from heatatlas.schemas.analysis import (
    AdditionalsRequest,
    AdditionalsResponse,
    HeatVulnerabilityLayer,
    LandCoverLayer,
)
from heatatlas.schemas.common import ErrorInfo
from heatatlas.services.gee_service import DEFAULT_SCALE, GEEService, gee_service
from heatatlas.services.metric_engine import (
    MetricEngine,
    calculate_lst,
    calculate_ndbi,
    calculate_ndvi,
    calculate_uhi,
    calculate_utfvi,
    region_geometry,
)
from heatatlas.utils.exceptions import EmptyResultError, HeatAtlasError
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

POPULATION_IMAGE = "CIESIN/GPWv411/GPW_Population_Density/gpw_v4_population_density_rev11_{year}_30_sec"
POPULATION_BAND = "population_density"
ELEVATION_IMAGE = "USGS/SRTMGL1_003"
LAND_COVER_COLLECTION = "GOOGLE/DYNAMICWORLD/V1"
LAND_COVER_SCALE = 10

HVI_BAND = "HVZ_Index"

# Coarse, best-effort reduction used only for min/max during normalization
NORMALIZE_REDUCTION = {"scale": 200, "maxPixels": 1e9, "bestEffort": True, "tileScale": 4}
COUNT_REDUCTION = {"scale": 1000, "maxPixels": 1e9, "bestEffort": True}
CLASSIFY_REDUCTION = {"scale": DEFAULT_SCALE, "maxPixels": 1e9, "bestEffort": True}

# HVI weight key -> band name of the raster before normalization
SOURCE_BANDS = {
    "uhi": "UHI",
    "utfvi": "UTFVI",
    "ndvi": "NDVI",
    "ndbi": "NDBI",
    "population": POPULATION_BAND,
    "elevation": "elevation",
}


# ============================================================================
# AUXILIARY RASTERS
# ============================================================================

def _population_image(year: int):
    return ee.Image(POPULATION_IMAGE.format(year=year)).select(POPULATION_BAND)


def population_density(year: int, region):
    """GPW density for ``year``; clamped outside 2000..2020, interpolated between snapshots."""
    plan = plan_population_snapshot(year)
    if plan.is_single:
        image = _population_image(plan.lower)
    else:
        logger.info("Interpolating population density", year=year, lower=plan.lower,
                    upper=plan.upper, factor=plan.factor)
        image = interpolate(_population_image(plan.lower), _population_image(plan.upper), plan.factor)
    return image.rename(POPULATION_BAND).clip(region)


def elevation(region):
    return ee.Image(ELEVATION_IMAGE).select("elevation").clip(region)


# ============================================================================
# COMPOSITOR
# ============================================================================

class VulnerabilityCompositor:
    """HVI and land-cover layers for /process/additionals"""

    def __init__(self, gee: Optional[GEEService] = None, engine: Optional[MetricEngine] = None):
        self.gee = gee or gee_service
        self.engine = engine or MetricEngine(self.gee)

    async def normalize(self, image, band: str, region):
        """
        Rescale ``image`` to [0, 1] with its region min/max.

        Raises:
            NormalizationError: empty reduction or min == max
        """
        reduction = await self.gee.evaluate(
            image.reduceRegion(reducer=ee.Reducer.minMax(), geometry=region, **NORMALIZE_REDUCTION),
            what=f"{band} min/max",
        )
        minimum, maximum = check_min_max(reduction, band)
        logger.debug("Normalizing band", band=band, min=minimum, max=maximum)
        return rescale(image, minimum, maximum)

    async def source_rasters(self, start: date, end: date, year: int, region) -> Dict[str, Any]:
        composite = await self.engine.composite(start, end, region)
        ndvi = calculate_ndvi(composite)
        lst = calculate_lst(composite, ndvi, region)
        summary = await self.engine.lst_summary(lst, region)

        return {
            "uhi": calculate_uhi(lst, summary["mean"], summary["std_dev"]),
            "utfvi": calculate_utfvi(lst, summary["mean"]),
            "ndvi": ndvi,
            "ndbi": calculate_ndbi(composite),
            "population": population_density(year, region),
            "elevation": elevation(region),
        }

    async def build_vulnerability_index(
        self,
        geometry: Dict[str, Any],
        start: date,
        end: date,
        year: int,
    ) -> HeatVulnerabilityLayer:
        """
        Weighted HVI raster with five equal-width classes.

        Raises:
            NoDataError: no Landsat scenes / unusable LST
            NormalizationError: any input cannot be rescaled
            EmptyResultError: composite has zero valid pixels in the region
        """
        self.gee.ensure_initialized()
        region = region_geometry(geometry)
        sources = await self.source_rasters(start, end, year, region)

        keys = list(HVI_WEIGHTS)
        normalized = await asyncio.gather(
            *(self.normalize(sources[key], SOURCE_BANDS[key], region) for key in keys)
        )
        hvi = weighted_composite(dict(zip(keys, normalized))).rename(HVI_BAND)

        counts = await self.gee.evaluate(
            hvi.reduceRegion(reducer=ee.Reducer.count(), geometry=region, **COUNT_REDUCTION),
            what="HVI pixel count",
        ) or {}
        if not counts.get(HVI_BAND):
            raise EmptyResultError("No data available in HVI layer for the given geometry",
                                   layer="heatVulnerabilityZones")

        min_max = await self.gee.evaluate(
            hvi.reduceRegion(reducer=ee.Reducer.minMax(), geometry=region, **CLASSIFY_REDUCTION),
            what="HVI min/max",
        ) or {}
        hvi_min, hvi_max = min_max.get(f"{HVI_BAND}_min"), min_max.get(f"{HVI_BAND}_max")
        if hvi_min is None or hvi_max is None:
            raise EmptyResultError("HVI min/max could not be computed", layer="heatVulnerabilityZones")

        vis = {"min": hvi_min, "max": hvi_max, "palette": HVI_PALETTE}
        tile_url, download_url = await asyncio.gather(
            self.gee.map_tile_url(hvi, vis),
            self.gee.download_url(hvi, region),
        )

        logger.info("HVI built", year=year, min=hvi_min, max=hvi_max)
        return HeatVulnerabilityLayer(
            tile_url=tile_url,
            download_url=download_url,
            min=hvi_min,
            max=hvi_max,
            class_breaks=class_breaks(hvi_min, hvi_max),
            palette=HVI_PALETTE,
        )

    async def build_land_cover_layer(self, geometry: Dict[str, Any], start: date, end: date) -> LandCoverLayer:
        """Median Dynamic World label composite; categorical, independent of the HVI."""
        self.gee.ensure_initialized()
        region = region_geometry(geometry)
        land_cover = (
            ee.ImageCollection(LAND_COVER_COLLECTION)
            .filterDate(start.isoformat(), end.isoformat())
            .filterBounds(region)
            .median()
            .clip(region)
            .select("label")
        )

        tile_url, download_url = await asyncio.gather(
            self.gee.map_tile_url(land_cover, LAND_COVER_VIS_PARAMS),
            self.gee.download_url(land_cover, region, scale=LAND_COVER_SCALE),
        )
        return LandCoverLayer(
            tile_url=tile_url,
            download_url=download_url,
            palette=LAND_COVER_PALETTE,
            classes=LAND_COVER_CLASSES,
        )

    async def compute_additionals(self, request: AdditionalsRequest) -> AdditionalsResponse:
        """
        Each option is independent: one failing option lands in ``errors``
        while the others still return. Non-domain exceptions propagate.
        """
        self.gee.ensure_initialized()
        geometry = request.geometry.to_geojson()

        jobs = {}
        if "LULC" in request.options:
            jobs["LULC"] = self.build_land_cover_layer(geometry, request.start_date, request.end_date)
        if "heatVulnerabilityZones" in request.options:
            jobs["heatVulnerabilityZones"] = self.build_vulnerability_index(
                geometry, request.start_date, request.end_date, request.effective_year
            )

        results = await asyncio.gather(*jobs.values(), return_exceptions=True)

        response = AdditionalsResponse()
        for option, result in zip(jobs, results):
            if isinstance(result, HeatAtlasError):
                logger.warning("Additional layer failed", option=option, code=result.code, error=result.message)
                response.errors[option] = ErrorInfo(code=result.code, message=result.message, details=result.details)
            elif isinstance(result, BaseException):
                raise result
            elif option == "LULC":
                response.lulc = result
            else:
                response.heat_vulnerability_zones = result

        return response


vulnerability_compositor = VulnerabilityCompositor()
