import math
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from card_units import (
    MAX_ZOOM,
    MIN_ZOOM,
    ZOOM_MULTIPLIER,
    clamp_zoom,
    convert_to_mm,
    convert_to_points,
    format_length,
    mm_to_points,
    mm_to_screen,
    points_to_mm,
    screen_to_mm,
    zoom_percent,
    zoom_to_scale,
)


class ScaleTests(unittest.TestCase):
    def test_mm_values_scale_linearly(self):
        self.assertEqual(mm_to_screen(10.0, 3.0), 30.0)
        self.assertEqual(mm_to_screen(0.0, 3.0), 0.0)

    def test_screen_to_mm_inverts_mm_to_screen(self):
        scale = zoom_to_scale(7)
        self.assertAlmostEqual(screen_to_mm(mm_to_screen(53.98, scale), scale), 53.98)

    def test_screen_to_mm_rejects_non_positive_scale(self):
        with self.assertRaises(ValueError):
            screen_to_mm(10.0, 0.0)

    def test_zoom_is_clamped_to_range(self):
        self.assertEqual(clamp_zoom(0), MIN_ZOOM)
        self.assertEqual(clamp_zoom(500), MAX_ZOOM)
        self.assertEqual(zoom_to_scale(500), MAX_ZOOM * ZOOM_MULTIPLIER)

    def test_zoom_percent_rounds_to_whole_number(self):
        self.assertEqual(zoom_percent(7), 99)


class LengthConversionTests(unittest.TestCase):
    def test_points_and_mm_round_trip(self):
        self.assertTrue(math.isclose(points_to_mm(72.0), 25.4))
        self.assertTrue(math.isclose(mm_to_points(points_to_mm(7.0)), 7.0))

    def test_convert_to_mm_understands_units(self):
        self.assertAlmostEqual(convert_to_mm("1in"), 25.4)
        self.assertAlmostEqual(convert_to_mm("2cm"), 20.0)
        self.assertAlmostEqual(convert_to_mm("96px"), 25.4)
        self.assertAlmostEqual(convert_to_mm("72"), 25.4)
        self.assertIsNone(convert_to_mm("3em"))
        self.assertIsNone(convert_to_mm("wide"))

    def test_convert_to_points(self):
        self.assertAlmostEqual(convert_to_points("25.4mm"), 72.0)
        self.assertAlmostEqual(convert_to_points("16px"), 12.0)

    def test_format_length_strips_trailing_zeros(self):
        self.assertEqual(format_length(12.5), "12.5")
        self.assertEqual(format_length(3.0), "3")
        self.assertEqual(format_length(0.0), "0")
        self.assertEqual(format_length(1.23456789), "1.2346")


if __name__ == "__main__":
    unittest.main()
