from datetime import timezone
import os
import sys
import unittest

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.chart_engine import ChartEngine
from engine.config import EngineConfig
from engine.input_controller import PointerMove
from engine.models import Candle, Dimensions
from engine.render_pipeline import layout_bands, tooltip_lines
from engine.render_target import RecordingTarget
from engine.theme import DARK, LIGHT


def _candles(n: int = 200):
    out = []
    for i in range(n):
        o = 100.0 + (i % 5)
        c = o + 1.0 if i % 2 == 0 else o - 1.0
        out.append(Candle(i * 60_000, o, max(o, c) + 1.0, min(o, c) - 1.0, c, 10.0 + i))
    return out


class _Sink:
    def __init__(self) -> None:
        self.messages = []

    def append_error(self, message: str) -> None:
        self.messages.append(message)


class RenderPipelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sink = _Sink()
        self.engine = ChartEngine("TEST", "1m", error_sink=self.sink, tz=timezone.utc)
        self.static = RecordingTarget()
        self.overlay = RecordingTarget()

    def _load(self, candles=None) -> None:
        self.engine.resize(580, 400)
        token = self.engine.begin_load()
        self.assertTrue(self.engine.complete_load(token, candles if candles is not None else _candles()))

    def _bodies(self, palette=DARK):
        return [c for c in self.static.ops("rect") if c.args["fill"] in (palette.up, palette.down) and c.args["w"] == 8.0]

    def test_zero_area_surface_skips_render(self):
        self.assertEqual(self.engine.render(self.static, self.overlay), (False, False))
        self.assertEqual((self.static.passes, self.overlay.passes), (0, 0))
        self.assertTrue(self.engine.needs_render)
        self.engine.resize(580, 400)
        self.assertEqual(self.engine.render(self.static, self.overlay), (True, True))
        self.assertFalse(self.engine.needs_render)

    def test_empty_series_shows_placeholder(self):
        self.engine.resize(580, 400)
        self.engine.render(self.static, self.overlay)
        self.assertIn("No data", self.static.texts())
        self.assertEqual(self.static.ops("rect"), [])

    def test_candles_draw_wick_and_body_per_visible_index(self):
        self._load()
        self.engine.render(self.static, self.overlay)
        self.assertEqual(self.static.calls[0].op, "clear")
        self.assertEqual(self.static.calls[0].args["color"], DARK.background)
        self.assertEqual(len(self._bodies()), 50)
        wicks = [c for c in self.static.ops("line") if c.args["color"] in (DARK.up, DARK.down)]
        self.assertEqual(len(wicks), 50)
        first = self._bodies()[0]
        self.assertEqual(first.args["x"], 10.0)
        self.assertEqual(first.args["fill"], DARK.up)

    def test_doji_body_is_at_least_one_pixel(self):
        candles = _candles(10) + [Candle(10 * 60_000, 101.0, 103.0, 99.0, 101.0, 5.0)]
        self._load(candles)
        self.engine.render(self.static, self.overlay)
        last_body = self._bodies()[-1]
        self.assertEqual(last_body.args["h"], 1.0)
        self.assertEqual(last_body.args["fill"], DARK.up)

    def test_line_and_area_chart_types(self):
        self._load()
        self.engine.set_chart_type("line")
        self.engine.render(self.static, self.overlay)
        lines = [c for c in self.static.ops("polyline") if c.args["color"] == DARK.line]
        self.assertEqual(len(lines), 1)
        self.assertEqual(len(lines[0].args["points"]), 50)
        self.assertEqual(lines[0].args["width"], 2.0)
        self.assertEqual(self._bodies(), [])

        self.engine.set_chart_type("area")
        self.engine.render(self.static, self.overlay)
        fills = [c for c in self.static.ops("polygon") if c.args["fill"] == DARK.area_fill]
        self.assertEqual(len(fills), 1)
        self.assertEqual(len(fills[0].args["points"]), 52)

    def test_volume_toggle(self):
        self._load()
        self.engine.render(self.static, self.overlay)
        volume = [c for c in self.static.ops("rect") if c.args["fill"] in (DARK.volume_color(True), DARK.volume_color(False))]
        self.assertEqual(len(volume), 50)
        self.assertFalse(self.engine.toggle_volume())
        self.engine.render(self.static, self.overlay)
        volume = [c for c in self.static.ops("rect") if c.args["fill"] in (DARK.volume_color(True), DARK.volume_color(False))]
        self.assertEqual(volume, [])

    def test_grid_toggle(self):
        self._load()
        self.engine.render(self.static, self.overlay)
        with_grid = [c for c in self.static.ops("line") if c.args["color"] == DARK.grid]
        self.engine.toggle_grid(False)
        self.engine.render(self.static, self.overlay)
        without_grid = [c for c in self.static.ops("line") if c.args["color"] == DARK.grid]
        # Only the two axis borders remain.
        self.assertEqual(len(without_grid), 2)
        self.assertGreater(len(with_grid), 2)

    def test_last_price_marker(self):
        candles = _candles()
        self._load(candles)
        self.engine.render(self.static, self.overlay)
        self.assertEqual(len([c for c in self.static.ops("rect") if c.args["fill"] == DARK.last_price]), 1)
        self.assertIn("103.00", self.static.texts())
        self.assertEqual(candles[-1].close, 103.0)

    def test_theme_switch_redraws_both_layers(self):
        self._load()
        self.engine.render(self.static, self.overlay)
        self.engine.set_theme("light")
        self.assertEqual(self.engine.render(self.static, self.overlay), (True, True))
        self.assertEqual(self.static.calls[0].args["color"], LIGHT.background)
        self.assertEqual(len(self._bodies(LIGHT)), 50)

    def test_pointer_move_only_redraws_overlay(self):
        self._load()
        self.engine.render(self.static, self.overlay)
        self.engine.handle_event(PointerMove(104, 190))
        self.assertEqual(self.engine.render(self.static, self.overlay), (False, True))
        self.assertEqual(self.static.passes, 1)
        self.assertEqual(self.overlay.passes, 2)
        dashed = [c for c in self.overlay.ops("line") if c.args["dash"]]
        self.assertEqual(len(dashed), 2)
        self.assertEqual(dashed[0].args["x1"], 104.0)
        self.assertIn("O  104.00", self.overlay.texts())

    def test_hover_over_oscillator_band_has_no_price_readout(self):
        self._load()
        self.engine.add_indicator("RSI")
        self.engine.handle_event(PointerMove(104, 355))
        crosshair = self.engine.crosshair
        self.assertTrue(crosshair.visible)
        self.assertIsNone(crosshair.price)
        self.engine.render(self.static, self.overlay)
        pills = [c for c in self.overlay.ops("rect") if c.args["x"] == 510.0]
        self.assertEqual(pills, [])
        self.assertEqual(len([c for c in self.overlay.ops("line") if c.args["dash"]]), 2)

        self.engine.handle_event(PointerMove(104, 100))
        price_range = self.engine.visible_state().price_range
        self.assertTrue(price_range.min <= self.engine.crosshair.price <= price_range.max)
        self.engine.render(self.static, self.overlay)
        self.assertEqual(len([c for c in self.overlay.ops("rect") if c.args["x"] == 510.0]), 1)

    def test_tooltip_clamped_on_screen(self):
        self._load()
        self.engine.handle_event(PointerMove(505, 350))
        self.engine.render(self.static, self.overlay)
        box = [c for c in self.overlay.ops("rect") if c.args["w"] == 168.0]
        self.assertEqual(len(box), 1)
        self.assertEqual((box[0].args["x"], box[0].args["y"]), (412.0, 280.0))

    def test_unavailable_indicator_in_legend_and_reported_once(self):
        self._load()
        self.engine.add_indicator({"type": "MA", "params": {"length": 500}})
        self.engine.render(self.static, self.overlay)
        self.assertIn("Moving Average (500): unavailable", self.static.texts())
        self.engine.on_tick({"timestamp": 199 * 60_000 + 5, "price": 104.5})
        self.engine.render(self.static, self.overlay)
        reported = [m for m in self.sink.messages if m.startswith("Indicator unavailable")]
        self.assertEqual(len(reported), 1)

    def test_price_overlays_and_oscillator_band(self):
        self._load()
        ma = self.engine.add_indicator({"type": "MA", "params": {"length": 10}})
        bb = self.engine.add_indicator("BOLLINGER")
        rsi = self.engine.add_indicator("RSI")
        self.engine.render(self.static, self.overlay)
        texts = self.static.texts()
        self.assertIn(ma.name, texts)
        self.assertIn(bb.name, texts)
        self.assertIn(rsi.name, texts)
        self.assertTrue([c for c in self.static.ops("polygon") if c.args["fill"] == "#42A5F533"])
        rsi_lines = [c for c in self.static.ops("polyline") if c.args["color"] == rsi.color]
        self.assertEqual(len(rsi_lines), 1)
        band_top = layout_bands(self.engine.viewport.dimensions, EngineConfig(), True, True).oscillator_top
        self.assertTrue(all(y >= band_top for _, y in rsi_lines[0].args["points"]))

        self.engine.toggle_indicator(rsi.id, False)
        self.engine.render(self.static, self.overlay)
        self.assertNotIn(rsi.name, self.static.texts())


class LayoutTests(unittest.TestCase):
    def test_bands(self):
        dims = Dimensions.from_surface(580, 400, 20, 40, 10, 70)
        config = EngineConfig()
        plain = layout_bands(dims, config, show_volume=False, has_oscillator=False)
        self.assertEqual((plain.price_top, plain.price_height, plain.volume_height, plain.oscillator_height), (20, 340, 0, 0))
        full = layout_bands(dims, config, show_volume=True, has_oscillator=True)
        self.assertEqual(full.oscillator_height, 85)
        self.assertEqual(full.price_height, 255)
        self.assertEqual(full.oscillator_top, 275)
        self.assertAlmostEqual(full.volume_height, 38.25)
        self.assertAlmostEqual(full.volume_top + full.volume_height, full.price_bottom)

    def test_tooltip_lines(self):
        lines = tooltip_lines(Candle(0, 100, 110, 95, 105, 1500), timezone.utc)
        self.assertEqual(
            lines,
            ["1970-01-01 00:00", "O  100.00", "H  110.00", "L  95.0000", "C  105.00", "+5.0000 (+5.00%)", "Vol  1.50K"],
        )


if __name__ == "__main__":
    unittest.main()
