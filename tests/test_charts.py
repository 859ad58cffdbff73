"""
HeatAtlas - Chart Markup Tests
tests/test_charts.py
"""

import unittest

from heatatlas.core.charts import (
    format_axis_label,
    histogram_geometry,
    histogram_stats,
    histogram_svg,
    legend_svg,
)
from heatatlas.core.visualization import vis_params_for

COUNTS = [0, 0, 3, 9, 5, 1, 0]
MEANS = [20.0, 25.0, 30.0, 35.0, 40.0, 45.0, 50.0]


class TestHistogramGeometry(unittest.TestCase):

    def test_01_trimmed_to_non_zero_range(self):
        geometry = histogram_geometry(COUNTS, MEANS, "LST")
        self.assertEqual(len(geometry.bars), 4)
        self.assertEqual(geometry.ticks[0][1], "30.0")

    def test_02_tallest_bar_reaches_max_height(self):
        geometry = histogram_geometry(COUNTS, MEANS, "LST")
        tallest = max(bar.height for bar in geometry.bars)
        self.assertAlmostEqual(tallest, geometry.max_bar_height)

    def test_03_nothing_to_draw(self):
        self.assertIsNone(histogram_geometry([], [], "LST"))
        self.assertIsNone(histogram_geometry([0, 0, 0], [1, 2, 3], "LST"))
        self.assertIsNone(histogram_geometry([0, 1, 9, 2], [1.0, 2.0], "LST"))

    def test_04_stats(self):
        stats = histogram_stats([1, 3], [10.0, 20.0])
        self.assertAlmostEqual(stats.mean, 17.5)
        self.assertEqual(stats.mode, 20.0)
        self.assertEqual(stats.total, 4)
        self.assertIsNone(histogram_stats([0, 0], [1.0, 2.0]))
        self.assertIsNone(histogram_stats([0, 1, 9, 2], [1.0, 2.0]))

    def test_05_axis_labels(self):
        self.assertEqual(format_axis_label(123.456), "123")
        self.assertEqual(format_axis_label(41.17), "41.2")
        self.assertEqual(format_axis_label(-1.5), "-1.50")
        self.assertEqual(format_axis_label(0.1234), "0.123")


class TestSvgMarkup(unittest.TestCase):

    def test_01_deterministic(self):
        """Identical input, byte-identical markup"""
        first = histogram_svg(COUNTS, MEANS, "LST")
        second = histogram_svg(list(COUNTS), list(MEANS), "LST")
        self.assertEqual(first, second)
        self.assertTrue(first.startswith("<svg"))
        self.assertIn("LST Distribution", first)

    def test_02_layer_name_escaped(self):
        svg = histogram_svg(COUNTS, MEANS, "A&B <test>")
        self.assertIn("A&amp;B &lt;test&gt;", svg)
        self.assertNotIn("<test>", svg)

    def test_03_empty_histogram(self):
        self.assertIsNone(histogram_svg([0, 0], [1.0, 2.0], "LST"))

    def test_04_legend_gradient(self):
        legend = legend_svg(vis_params_for("uhi"), "UHI")
        self.assertIn("linearGradient", legend)
        self.assertIn("#313695", legend)
        self.assertIn(">-4.00<", legend)

    def test_05_legend_without_palette(self):
        self.assertIsNone(legend_svg({}, "X"))
        self.assertIsNone(legend_svg(vis_params_for("unknown"), "X"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
