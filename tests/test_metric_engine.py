"""
HeatAtlas - Metric Engine & Vulnerability Compositor Tests
tests/test_metric_engine.py

The ``ee`` module is replaced with MagicMock so expressions build without a
session; the GEE service is a fake whose ``evaluate`` answers by label.
"""

import unittest
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from heatatlas.core.normalization import HVI_PALETTE
from heatatlas.schemas.analysis import AdditionalsRequest
from heatatlas.services.gee_service import GEEService
from heatatlas.services.metric_engine import MetricEngine, normalize_metric_ids
from heatatlas.services.vulnerability import HVI_BAND, VulnerabilityCompositor
from heatatlas.utils.exceptions import ComputeBackendError, NoDataError, ServiceUnavailableError
from tests.factories import GEOMETRY

START, END = date(2023, 6, 1), date(2023, 8, 31)

LAYER_STATS = {
    "ndvi": (0.21, -0.1, 0.62, 0.11),
    "ndbi": (-0.05, -0.4, 0.3, 0.09),
    "lst": (41.17, 30.5, 52.25, 3.4),
    "uhi": (0.0, -3.1, 3.3, 1.0),
    "utfvi": (0.0, -0.3, 0.2, 0.07),
}

HVI_INPUT_BANDS = ("UHI", "UTFVI", "NDVI", "NDBI", "population_density", "elevation")


class FakeGEE:
    """Answers ``evaluate`` from a dict of label -> value (or exception)."""

    def __init__(self, answers=None):
        self.answers = default_answers()
        self.answers.update(answers or {})
        self.evaluated = []
        self.evaluate = AsyncMock(side_effect=self._evaluate)
        self.map_tile_url = AsyncMock(
            return_value="https://earthengine.googleapis.com/v1/maps/abc/tiles/{z}/{x}/{y}"
        )
        self.download_url = AsyncMock(return_value="https://earthengine.googleapis.com/v1/download/abc")

    def ensure_initialized(self):
        pass

    async def _evaluate(self, obj, what="expression"):
        self.evaluated.append(what)
        answer = self.answers[what]
        if isinstance(answer, Exception):
            raise answer
        return answer


def default_answers():
    answers = {
        "collection size": 4,
        "lst summary": {"LST_mean": 41.17, "LST_stdDev": 3.4},
        "HVI pixel count": {HVI_BAND: 1250},
        "HVI min/max": {f"{HVI_BAND}_min": 0.1, f"{HVI_BAND}_max": 0.6},
    }
    for metric, (mean, minimum, maximum, std) in LAYER_STATS.items():
        band = metric.upper()
        answers[f"{metric} statistics"] = {
            f"{band}_mean": mean, f"{band}_min": minimum,
            f"{band}_max": maximum, f"{band}_stdDev": std,
        }
        answers[f"{metric} histogram"] = {
            band: {"histogram": [2, 5, 3], "bucketMeans": [minimum, mean, maximum],
                   "bucketMin": minimum, "bucketWidth": (maximum - minimum) / 3},
        }
    for band in HVI_INPUT_BANDS:
        answers[f"{band} min/max"] = {f"{band}_min": 0.0, f"{band}_max": 10.0}
    return answers


class EarthEngineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        for target in ("heatatlas.services.metric_engine.ee", "heatatlas.services.vulnerability.ee"):
            patcher = patch(target, MagicMock())
            patcher.start()
            self.addCleanup(patcher.stop)


class TestMetricSelection(unittest.TestCase):

    def test_01_order_case_and_duplicates(self):
        self.assertEqual(normalize_metric_ids(["LST", "ndvi", "lst", " UHI "]), ["lst", "ndvi", "uhi"])

    def test_02_unknown_dropped(self):
        self.assertEqual(normalize_metric_ids(["albedo", "ndbi"]), ["ndbi"])


class TestMetricEngine(EarthEngineTestCase):

    async def test_01_layers_in_request_order(self):
        gee = FakeGEE()
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["lst", "ndvi"])

        self.assertEqual([layer.id for layer in response.layers], ["lst", "ndvi"])
        lst = response.layers[0]
        self.assertEqual(lst.name, "LST")
        self.assertEqual(lst.statistics.mean, 41.17)
        self.assertEqual(lst.statistics.std_dev, 3.4)
        self.assertEqual(lst.histogram.histogram, [2, 5, 3])
        self.assertTrue(lst.tile_url.endswith("{z}/{x}/{y}"))
        self.assertTrue(lst.download_url.startswith("https://"))

    async def test_02_empty_collection(self):
        gee = FakeGEE({"collection size": 0})
        with self.assertRaises(NoDataError) as ctx:
            await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["ndvi"])
        self.assertEqual(ctx.exception.status_code, 404)

    async def test_03_uniform_lst_blocks_heat_island(self):
        gee = FakeGEE({"lst summary": {"LST_mean": 35.0, "LST_stdDev": 0}})
        with self.assertRaises(NoDataError) as ctx:
            await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["uhi"])
        self.assertEqual(ctx.exception.details["layer"], "lst")

    async def test_04_missing_lst_summary(self):
        gee = FakeGEE({"lst summary": {}})
        with self.assertRaises(NoDataError):
            await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["utfvi"])

    async def test_05_lst_summary_shared(self):
        """UHI and UTFVI reuse one LST summary"""
        gee = FakeGEE()
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["uhi", "utfvi"])

        self.assertEqual(len(response.layers), 2)
        self.assertEqual(gee.evaluated.count("lst summary"), 1)
        self.assertNotIn("lst statistics", gee.evaluated)

    async def test_06_failed_layer_omitted(self):
        gee = FakeGEE({"ndbi histogram": ComputeBackendError("Earth Engine failed to evaluate ndbi histogram")})
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["ndvi", "ndbi"])
        self.assertEqual([layer.id for layer in response.layers], ["ndvi"])

    async def test_07_every_layer_failed(self):
        gee = FakeGEE({"ndvi statistics": ComputeBackendError("quota exceeded")})
        with self.assertRaises(ComputeBackendError):
            await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["ndvi"])

    async def test_08_no_supported_metrics(self):
        gee = FakeGEE()
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["albedo"])

        self.assertEqual(response.layers, [])
        self.assertEqual(gee.evaluated, [])

    async def test_09_missing_histogram_tolerated(self):
        gee = FakeGEE({"ndvi histogram": {}})
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["ndvi"])
        self.assertIsNone(response.layers[0].histogram)

    async def test_10_uninitialized_backend(self):
        with self.assertRaises(ServiceUnavailableError) as ctx:
            await MetricEngine(GEEService()).compute_metrics(START, END, GEOMETRY, ["ndvi"])
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_11_uniform_lst_allows_utfvi(self):
        """UTFVI only needs the LST mean"""
        gee = FakeGEE({"lst summary": {"LST_mean": 35.0, "LST_stdDev": 0}})
        response = await MetricEngine(gee).compute_metrics(START, END, GEOMETRY, ["utfvi"])

        self.assertEqual([layer.id for layer in response.layers], ["utfvi"])


class TestVulnerabilityCompositor(EarthEngineTestCase):

    def make_request(self, options, year=None):
        return AdditionalsRequest(
            geometry=GEOMETRY,
            start_date=START,
            end_date=END,
            year=year,
            options=options,
        )

    async def test_01_hvi_layer(self):
        gee = FakeGEE()
        layer = await VulnerabilityCompositor(gee).build_vulnerability_index(GEOMETRY, START, END, 2023)

        self.assertEqual((layer.min, layer.max), (0.1, 0.6))
        self.assertEqual(len(layer.class_breaks), 6)
        self.assertEqual(layer.class_breaks[-1], 0.6)
        self.assertEqual(layer.palette, HVI_PALETTE)
        for band in HVI_INPUT_BANDS:
            self.assertIn(f"{band} min/max", gee.evaluated)

    async def test_02_uniform_input_rejected_per_option(self):
        """Uniform elevation fails the HVI only; land cover still returns"""
        gee = FakeGEE({"elevation min/max": {"elevation_min": 210, "elevation_max": 210}})
        response = await VulnerabilityCompositor(gee).compute_additionals(
            self.make_request(["LULC", "heatVulnerabilityZones"])
        )

        self.assertIsNotNone(response.lulc)
        self.assertIsNone(response.heat_vulnerability_zones)
        self.assertEqual(response.errors["heatVulnerabilityZones"].code, "NORMALIZATION_ERROR")
        self.assertEqual(response.errors["heatVulnerabilityZones"].details["band"], "elevation")

    async def test_03_zero_pixels(self):
        gee = FakeGEE({"HVI pixel count": {HVI_BAND: 0}})
        response = await VulnerabilityCompositor(gee).compute_additionals(
            self.make_request(["heatVulnerabilityZones"])
        )
        self.assertEqual(response.errors["heatVulnerabilityZones"].code, "EMPTY_RESULT")

    async def test_04_land_cover_only(self):
        gee = FakeGEE()
        response = await VulnerabilityCompositor(gee).compute_additionals(self.make_request(["LULC"]))

        self.assertEqual(response.errors, {})
        self.assertEqual(len(response.lulc.palette), len(response.lulc.classes))
        self.assertEqual(list(response.layers()), ["LULC"])
        self.assertEqual(gee.evaluated, [])

    async def test_05_unexpected_error_propagates(self):
        gee = FakeGEE({"collection size": RuntimeError("boom")})
        with self.assertRaises(RuntimeError):
            await VulnerabilityCompositor(gee).compute_additionals(
                self.make_request(["heatVulnerabilityZones"])
            )

    async def test_06_effective_year(self):
        self.assertEqual(self.make_request(["LULC"]).effective_year, 2023)
        self.assertEqual(self.make_request(["LULC"], year=2012).effective_year, 2012)


if __name__ == "__main__":
    unittest.main(verbosity=2)
