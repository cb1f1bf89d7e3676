import os
import sys
import unittest

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.coordinates import candle_center_x, index_to_x, price_to_y, value_to_y, x_to_index, y_to_price
from engine.models import Candle, PriceRange, Viewport
from engine.ranges import (
    EMPTY_PRICE_RANGE,
    calculate_price_range,
    calculate_time_range,
    calculate_visible_range,
    candles_per_screen,
)


def _candles(n: int, base: float = 100.0):
    return [Candle(i * 60_000, base + i, base + i + 2, base + i - 1, base + i + 1, 10.0) for i in range(n)]


class CoordinateTests(unittest.TestCase):
    def test_index_to_x_uses_pitch(self):
        self.assertEqual(index_to_x(0, 8, 2, 10), 10)
        self.assertEqual(index_to_x(5, 8, 2, 10), 60)
        self.assertEqual(candle_center_x(5, 8, 2, 10), 64)

    def test_x_to_index_floors_inside_slot(self):
        self.assertEqual(x_to_index(60, 8, 2, 10), 5)
        self.assertEqual(x_to_index(69.9, 8, 2, 10), 5)
        self.assertEqual(x_to_index(70, 8, 2, 10), 6)
        self.assertEqual(x_to_index(5, 8, 2, 10), -1)

    def test_index_round_trip_with_fractional_pitch(self):
        cw, cs, origin = 8 * 1.1 ** 3, 2 * 1.1 ** 3, -123.456
        for i in range(0, 500):
            self.assertEqual(x_to_index(index_to_x(i, cw, cs, origin), cw, cs, origin), i)

    def test_price_round_trip(self):
        pr = PriceRange(90.0, 110.0, 20.0)
        for p in (90.0, 95.5, 100.0, 109.99, 110.0):
            y = price_to_y(p, pr, 300, 20)
            self.assertAlmostEqual(y_to_price(y, pr, 300, 20), p, places=9)

    def test_higher_price_is_nearer_the_top(self):
        pr = PriceRange(90.0, 110.0, 20.0)
        self.assertEqual(price_to_y(110.0, pr, 300, 20), 20)
        self.assertEqual(price_to_y(90.0, pr, 300, 20), 320)
        self.assertLess(price_to_y(105.0, pr, 300, 20), price_to_y(95.0, pr, 300, 20))

    def test_zero_range_maps_to_middle(self):
        pr = PriceRange(100.0, 100.0, 0.0)
        self.assertEqual(price_to_y(100.0, pr, 300, 20), 170)
        self.assertEqual(value_to_y(5.0, 5.0, 5.0, 0, 100), 50)

    def test_value_to_y_band(self):
        self.assertEqual(value_to_y(100.0, 0.0, 100.0, 400, 80), 400)
        self.assertEqual(value_to_y(0.0, 0.0, 100.0, 400, 80), 480)


class RangeTests(unittest.TestCase):
    def test_candles_per_screen(self):
        self.assertEqual(candles_per_screen(500, 8, 2), 50)
        self.assertEqual(candles_per_screen(500, 8, 2, 2.0), 25)
        self.assertEqual(candles_per_screen(0, 8, 2), 0)

    def test_visible_range_clamped_to_series(self):
        self.assertEqual(calculate_visible_range(Viewport(1.0, 0.0), 500, 8, 2, 20), (0, 19))
        self.assertEqual(calculate_visible_range(Viewport(1.0, 50.0), 500, 8, 2, 200), (50, 99))
        self.assertEqual(calculate_visible_range(Viewport(1.0, 10.5), 500, 8, 2, 200), (10, 60))

    def test_visible_range_empty_series(self):
        self.assertEqual(calculate_visible_range(Viewport(), 500, 8, 2, 0), (0, 0))

    def test_visible_window_bounded_by_width(self):
        for tx in (0.0, 3.3, 77.7, 150.0):
            start, end = calculate_visible_range(Viewport(1.0, tx), 500, 8, 2, 200)
            self.assertLessEqual(end - start, 50)
            self.assertTrue(0 <= start <= end <= 199)

    def test_price_range_padding(self):
        series = [Candle(0, 10, 12, 9, 11), Candle(1, 11, 13, 10, 12), Candle(2, 12, 12, 11, 11.5)]
        pr = calculate_price_range(series, 0, 2)
        self.assertAlmostEqual(pr.min, 9 - 0.4)
        self.assertAlmostEqual(pr.max, 13 + 0.4)
        self.assertAlmostEqual(pr.range, pr.max - pr.min)

    def test_price_range_only_scans_visible_slice(self):
        series = _candles(10)
        pr = calculate_price_range(series, 5, 6, padding=0.0)
        self.assertEqual(pr.min, series[5].low)
        self.assertEqual(pr.max, series[6].high)

    def test_flat_price_gets_minimum_range(self):
        flat = [Candle(i, 200.0, 200.0, 200.0, 200.0) for i in range(5)]
        pr = calculate_price_range(flat, 0, 4)
        self.assertAlmostEqual(pr.min, 199.0)
        self.assertAlmostEqual(pr.max, 201.0)
        self.assertGreater(pr.range, 0)

    def test_flat_zero_price_uses_unit_range(self):
        flat = [Candle(i, 0.0, 0.0, 0.0, 0.0) for i in range(3)]
        pr = calculate_price_range(flat, 0, 2)
        self.assertEqual((pr.min, pr.max, pr.range), (-1.0, 1.0, 2.0))

    def test_empty_series_price_range(self):
        self.assertEqual(calculate_price_range([], 0, 0), EMPTY_PRICE_RANGE)

    def test_time_range(self):
        series = _candles(10)
        tr = calculate_time_range(series, 2, 7)
        self.assertEqual((tr.start, tr.end), (2 * 60_000, 7 * 60_000))
        tr = calculate_time_range(series, -5, 50)
        self.assertEqual((tr.start, tr.end), (0, 9 * 60_000))
        self.assertEqual(calculate_time_range([], 0, 0).end, 0)


if __name__ == "__main__":
    unittest.main()
