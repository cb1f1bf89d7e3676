import os
import sys
import unittest

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.config import ChartSettings, EngineConfig
from engine.models import Dimensions, Viewport
from engine.viewport import ViewportBounds, ViewportController, pan_viewport, settle, zoom_viewport


def _dims(width: float = 580, height: float = 400) -> Dimensions:
    # Default margins: 10 left, 70 right, so a 580px surface leaves 500px (50 candles at pitch 10).
    config = EngineConfig()
    return Dimensions.from_surface(width, height, config.margin_top, config.margin_bottom, config.margin_left, config.margin_right)


def _controller(n: int = 200) -> ViewportController:
    vc = ViewportController(ChartSettings(), EngineConfig(), _dims())
    vc.reset(n)
    return vc


class ViewportTests(unittest.TestCase):
    def _assert_window_valid(self, vc: ViewportController) -> None:
        vp = vc.viewport
        self.assertTrue(0 <= vp.start_index <= vp.end_index <= max(0, vc.series_length - 1), vp)
        self.assertGreaterEqual(vp.translate_x, 0.0)
        self.assertLessEqual(vp.translate_x, vc.bounds.max_translate_x(vp.scale) + 1e-9)
        self.assertTrue(vc.config.min_scale <= vp.scale <= vc.config.max_scale)

    def test_reset_pins_latest_candles(self):
        vc = _controller()
        vp = vc.viewport
        self.assertEqual(vp.scale, 1.0)
        self.assertEqual(vp.translate_x, 150.0)
        self.assertEqual((vp.start_index, vp.end_index), (150, 199))
        self.assertTrue(vc.is_at_latest)

    def test_short_series_starts_at_zero(self):
        vc = _controller(20)
        self.assertEqual(vc.viewport.translate_x, 0.0)
        self.assertEqual((vc.viewport.start_index, vc.viewport.end_index), (0, 19))

    def test_drag_right_moves_back_in_time(self):
        vc = _controller()
        vc.pan(100)
        self.assertAlmostEqual(vc.viewport.translate_x, 140.0)
        self.assertEqual(vc.viewport.start_index, 140)

    def test_pan_clamps_and_is_idempotent_at_edges(self):
        vc = _controller()
        vc.pan(10_000)
        self.assertEqual(vc.viewport.translate_x, 0.0)
        first = vc.viewport
        vc.pan(500)
        self.assertEqual(vc.viewport, first)
        vc.pan(-100_000)
        self.assertEqual(vc.viewport.translate_x, 150.0)
        last = vc.viewport
        vc.pan(-500)
        self.assertEqual(vc.viewport, last)

    def test_zoom_in_five_notches(self):
        vc = _controller()
        for _ in range(5):
            vc.zoom(1.1, 300)
        self.assertAlmostEqual(vc.viewport.scale, 1.1 ** 5)
        self._assert_window_valid(vc)

    def test_zoom_clamps_scale(self):
        vc = _controller()
        for _ in range(100):
            vc.zoom(1.1, 300)
        self.assertEqual(vc.viewport.scale, vc.config.max_scale)
        for _ in range(200):
            vc.zoom(0.9, 300)
        self.assertEqual(vc.viewport.scale, vc.config.min_scale)
        self._assert_window_valid(vc)

    def test_zoom_keeps_candle_under_cursor(self):
        vc = _controller()
        vc.pan(700)
        anchor_x = 260.0
        offset = anchor_x - vc.dimensions.margin_left
        before = vc.viewport.translate_x + offset / vc.pitch
        vc.zoom(1.1, anchor_x)
        after = vc.viewport.translate_x + offset / vc.pitch
        self.assertAlmostEqual(before, after)

    def test_resize_keeps_window_when_in_bounds(self):
        vc = _controller()
        vc.pan(500)
        tx = vc.viewport.translate_x
        vc.resize(_dims(width=480))
        self.assertEqual(vc.viewport.translate_x, tx)
        self._assert_window_valid(vc)

    def test_resize_wider_than_data_clamps(self):
        vc = _controller(30)
        vc.resize(_dims(width=2000))
        self.assertEqual(vc.viewport.translate_x, 0.0)
        self.assertEqual((vc.viewport.start_index, vc.viewport.end_index), (0, 29))

    def test_zero_width_surface(self):
        vc = _controller()
        vc.resize(_dims(width=50))
        self._assert_window_valid(vc)
        vc.pan(30)
        vc.zoom(1.1, 10)
        self._assert_window_valid(vc)

    def test_follow_latest_on_append(self):
        vc = _controller()
        vc.set_series_length(201, follow_latest=True)
        self.assertEqual(vc.viewport.end_index, 200)
        self.assertEqual(vc.viewport.translate_x, 151.0)

    def test_no_follow_when_scrolled_back(self):
        vc = _controller()
        vc.pan(200)
        tx = vc.viewport.translate_x
        vc.set_series_length(201, follow_latest=True)
        self.assertEqual(vc.viewport.translate_x, tx)

    def test_empty_series(self):
        vc = _controller(0)
        self.assertEqual((vc.viewport.start_index, vc.viewport.end_index), (0, 0))
        vc.pan(100)
        vc.zoom(1.1, 100)
        self.assertEqual(vc.viewport.translate_x, 0.0)

    def test_random_walk_keeps_invariants(self):
        vc = _controller(137)
        steps = [(pan, zoom) for pan, zoom in zip([35, -400, 12.5, 900, -3, -77], [1.1, 0.9, 0.9 ** 3, 1.1 ** 4, 1.0, 0.5])]
        for delta, factor in steps:
            vc.pan(delta)
            self._assert_window_valid(vc)
            vc.zoom(factor, 200)
            self._assert_window_valid(vc)
            vc.resize(_dims(width=300 + delta % 400))
            self._assert_window_valid(vc)


class PureTransitionTests(unittest.TestCase):
    def test_transitions_return_new_viewports(self):
        bounds = ViewportBounds(100, 500, 8, 2, 0.1, 10.0)
        start = settle(Viewport(1.0, 20.0), bounds)
        panned = pan_viewport(start, 50, bounds)
        self.assertEqual(start.translate_x, 20.0)
        self.assertEqual(panned.translate_x, 15.0)
        zoomed = zoom_viewport(start, 2.0, 0.0, bounds)
        self.assertEqual(zoomed.scale, 2.0)
        self.assertEqual(zoomed.translate_x, 20.0)

    def test_settle_is_idempotent(self):
        bounds = ViewportBounds(100, 500, 8, 2, 0.1, 10.0)
        once = settle(Viewport(25.0, 500.0), bounds)
        self.assertEqual(settle(once, bounds), once)
        self.assertEqual(once.scale, 10.0)


if __name__ == "__main__":
    unittest.main()
