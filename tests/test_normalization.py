"""
HeatAtlas - Normalization & Weighting Tests
tests/test_normalization.py

The HVI arithmetic runs on plain floats here; the compositor runs the same
helpers on Earth Engine images.
"""

import math
import unittest

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
from heatatlas.utils.exceptions import NormalizationError


class TestWeightedComposite(unittest.TestCase):

    def test_01_weights_documented(self):
        self.assertEqual(HVI_WEIGHTS, {
            "uhi": 0.25, "utfvi": 0.20, "ndvi": -0.15,
            "ndbi": 0.15, "population": 0.15, "elevation": -0.10,
        })

    def test_02_all_ones(self):
        bands = {key: 1.0 for key in HVI_WEIGHTS}
        self.assertAlmostEqual(weighted_composite(bands), 0.5)

    def test_03_all_zeros(self):
        bands = {key: 0.0 for key in HVI_WEIGHTS}
        self.assertEqual(weighted_composite(bands), 0.0)

    def test_04_thermal_only(self):
        """Only the two thermal inputs at their maximum"""
        bands = {key: 0.0 for key in HVI_WEIGHTS}
        bands.update(uhi=1.0, utfvi=1.0)
        self.assertEqual(weighted_composite(bands), 0.45)

    def test_05_vegetation_lowers_score(self):
        base = {key: 0.5 for key in HVI_WEIGHTS}
        greener = dict(base, ndvi=1.0)
        self.assertLess(weighted_composite(greener), weighted_composite(base))

    def test_06_missing_band(self):
        with self.assertRaises(KeyError):
            weighted_composite({"uhi": 1.0})


class TestRescale(unittest.TestCase):

    def test_01_midpoint(self):
        self.assertAlmostEqual(rescale(5.0, 0.0, 10.0), 0.5)

    def test_02_bounds_map_to_unit_interval(self):
        self.assertAlmostEqual(rescale(-2.0, -2.0, 6.0), 0.0)
        self.assertAlmostEqual(rescale(6.0, -2.0, 6.0), 1.0)


class TestMinMaxValidation(unittest.TestCase):

    def test_01_valid_reduction(self):
        self.assertEqual(check_min_max({"NDVI_min": -0.2, "NDVI_max": 0.8}, "NDVI"), (-0.2, 0.8))

    def test_02_empty_reduction(self):
        with self.assertRaises(NormalizationError):
            check_min_max({}, "NDVI")
        with self.assertRaises(NormalizationError):
            check_min_max(None, "NDVI")

    def test_03_missing_bound(self):
        with self.assertRaises(NormalizationError):
            check_min_max({"NDVI_min": 0.1, "NDVI_max": None}, "NDVI")

    def test_04_nan_bound(self):
        with self.assertRaises(NormalizationError):
            check_min_max({"NDVI_min": math.nan, "NDVI_max": 1.0}, "NDVI")

    def test_05_uniform_raster(self):
        """min == max can never be rescaled"""
        with self.assertRaises(NormalizationError) as ctx:
            check_min_max({"elevation_min": 210, "elevation_max": 210}, "elevation")
        self.assertEqual(ctx.exception.code, "NORMALIZATION_ERROR")
        self.assertEqual(ctx.exception.details["band"], "elevation")


class TestClassBreaks(unittest.TestCase):

    def test_01_five_equal_classes(self):
        breaks = class_breaks(0.0, 1.0)
        self.assertEqual(len(breaks), 6)
        for actual, expected in zip(breaks, [0.0, 0.2, 0.4, 0.6, 0.8, 1.0]):
            self.assertAlmostEqual(actual, expected)

    def test_02_last_break_is_exact_max(self):
        self.assertEqual(class_breaks(0.1, 0.7)[-1], 0.7)

    def test_03_palette_has_one_color_per_class(self):
        self.assertEqual(len(HVI_PALETTE), len(class_breaks(0, 1)) - 1)


class TestPopulationSnapshots(unittest.TestCase):

    def test_01_exact_snapshot(self):
        plan = plan_population_snapshot(2015)
        self.assertTrue(plan.is_single)
        self.assertEqual(plan.lower, 2015)

    def test_02_interpolated_year(self):
        plan = plan_population_snapshot(2012)
        self.assertEqual((plan.lower, plan.upper), (2010, 2015))
        self.assertAlmostEqual(plan.factor, 0.4)

    def test_03_clamped_before_first(self):
        plan = plan_population_snapshot(1995)
        self.assertEqual((plan.lower, plan.upper, plan.factor), (2000, 2000, 0.0))

    def test_04_clamped_after_last(self):
        plan = plan_population_snapshot(2024)
        self.assertEqual((plan.lower, plan.upper, plan.factor), (2020, 2020, 0.0))

    def test_05_interpolate_values(self):
        self.assertAlmostEqual(interpolate(100.0, 200.0, 0.4), 140.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
