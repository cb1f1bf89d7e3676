"""Two-layer chart rendering.

The static layer holds everything that only changes with data, viewport or
display settings: grid, price body, volume, indicators, axes and the last
price marker. The overlay layer holds the crosshair and tooltip and is cheap
to redraw on every pointer move. Each layer has its own dirty flag.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
import math
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from .axes import format_price, format_time, format_timestamp, format_volume, price_ticks, time_tick_indices, time_tick_stride
from .config import ChartSettings, EngineConfig
from .coordinates import index_to_x, price_to_y, value_to_y
from .indicator_manager import IndicatorResult
from .models import HIDDEN_CROSSHAIR, HIDDEN_TOOLTIP, Candle, Crosshair, Dimensions, Indicator, PriceRange, Tooltip, Viewport
from .render_target import Point, RenderTarget
from .theme import Palette, palette_for

_DASH = (4.0, 4.0)
_LEVEL_STYLES = {"dash": _DASH, "dot": (1.0, 3.0)}
_LABEL_SIZE = 11.0
_PILL_HEIGHT = 18.0
_TIME_PILL_WIDTH = 116.0
_TOOLTIP_WIDTH = 168.0
_TOOLTIP_ROW = 16.0
_LEGEND_ROW = 14.0


@dataclass(frozen=True)
class Bands:
    price_top: float
    price_height: float
    volume_top: float
    volume_height: float
    oscillator_top: float
    oscillator_height: float

    @property
    def price_bottom(self) -> float:
        return self.price_top + self.price_height


def layout_bands(dims: Dimensions, config: EngineConfig, show_volume: bool, has_oscillator: bool) -> Bands:
    osc_h = dims.chart_height * config.oscillator_height_ratio if has_oscillator else 0.0
    price_h = dims.chart_height - osc_h
    vol_h = price_h * config.volume_height_ratio if show_volume else 0.0
    return Bands(
        price_top=dims.margin_top,
        price_height=price_h,
        volume_top=dims.margin_top + price_h - vol_h,
        volume_height=vol_h,
        oscillator_top=dims.margin_top + price_h,
        oscillator_height=osc_h,
    )


@dataclass(frozen=True)
class IndicatorLayer:
    indicator: Indicator
    result: IndicatorResult

    @property
    def is_oscillator(self) -> bool:
        return self.result.pane != "price"

    @property
    def drawable(self) -> bool:
        return self.indicator.visible and self.result.available


@dataclass
class Frame:
    """Everything one render pass reads, captured by the engine."""

    candles: Sequence[Candle]
    viewport: Viewport
    dimensions: Dimensions
    settings: ChartSettings
    price_range: PriceRange
    candle_width: float
    candle_spacing: float
    origin_x: float
    timeframe_ms: int = 60_000
    indicators: Sequence[IndicatorLayer] = ()
    crosshair: Crosshair = HIDDEN_CROSSHAIR
    tooltip: Tooltip = HIDDEN_TOOLTIP
    tz: Optional[tzinfo] = None

    @property
    def oscillators(self) -> List[IndicatorLayer]:
        return [layer for layer in self.indicators if layer.drawable and layer.is_oscillator]

    @property
    def price_overlays(self) -> List[IndicatorLayer]:
        return [layer for layer in self.indicators if layer.drawable and not layer.is_oscillator]


def _aligned(values: Any, length: int) -> np.ndarray:
    arr = np.asarray(values if values is not None else [], dtype=np.float64)
    if arr.size < length:
        arr = np.concatenate((np.full(length - arr.size, np.nan, dtype=np.float64), arr))
    elif arr.size > length:
        arr = arr[-length:]
    return arr


def _index_runs(values: np.ndarray, start: int, end: int) -> List[List[int]]:
    """Contiguous stretches of finite values inside [start, end], at least two long."""
    runs: List[List[int]] = []
    current: List[int] = []
    for i in range(start, min(end, values.size - 1) + 1):
        if math.isfinite(values[i]):
            current.append(i)
            continue
        if len(current) > 1:
            runs.append(current)
        current = []
    if len(current) > 1:
        runs.append(current)
    return runs


def _runs(values: np.ndarray, start: int, end: int, x_of: Callable[[int], float], y_of: Callable[[float], float]) -> List[List[Point]]:
    return [[(x_of(i), y_of(float(values[i]))) for i in run] for run in _index_runs(values, start, end)]


def tooltip_lines(candle: Candle, tz: Optional[tzinfo] = None) -> List[str]:
    change = candle.close - candle.open
    pct = (change / candle.open) * 100.0 if candle.open else 0.0
    sign = "+" if change >= 0 else ""
    return [
        format_timestamp(candle.timestamp, tz),
        f"O  {format_price(candle.open)}",
        f"H  {format_price(candle.high)}",
        f"L  {format_price(candle.low)}",
        f"C  {format_price(candle.close)}",
        f"{sign}{format_price(change)} ({sign}{pct:.2f}%)",
        f"Vol  {format_volume(candle.volume)}",
    ]


class RenderPipeline:
    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()
        self.static_dirty = True
        self.overlay_dirty = True

    def invalidate(self, static: bool = True, overlay: bool = True) -> None:
        self.static_dirty = self.static_dirty or static
        self.overlay_dirty = self.overlay_dirty or overlay

    def render(self, frame: Frame, static_target: RenderTarget, overlay_target: RenderTarget) -> Tuple[bool, bool]:
        """Redraw the dirty layers; returns (static_drawn, overlay_drawn).

        A zero-area surface draws nothing and leaves both layers dirty so the
        first real size paints them.
        """
        if frame.dimensions.is_empty:
            return False, False
        static_drawn = overlay_drawn = False
        if self.static_dirty:
            self.draw_static(frame, static_target)
            self.static_dirty = False
            static_drawn = True
        if self.overlay_dirty:
            self.draw_overlay(frame, overlay_target)
            self.overlay_dirty = False
            overlay_drawn = True
        return static_drawn, overlay_drawn

    # -- static layer -------------------------------------------------

    def draw_static(self, frame: Frame, target: RenderTarget) -> None:
        dims = frame.dimensions
        palette = palette_for(frame.settings.theme)
        target.begin(dims.width, dims.height, dims.pixel_ratio)
        target.clear(palette.background)
        if not frame.candles:
            target.text(
                dims.margin_left + dims.chart_width / 2.0,
                dims.margin_top + dims.chart_height / 2.0,
                "No data",
                palette.axis_text,
                align="center",
                size=14.0,
            )
            target.end()
            return

        bands = layout_bands(dims, self.config, frame.settings.show_volume, bool(frame.oscillators))
        start = max(0, frame.viewport.start_index)
        end = min(frame.viewport.end_index, len(frame.candles) - 1)
        pr = frame.price_range

        def py(price: float) -> float:
            return price_to_y(price, pr, bands.price_height, bands.price_top)

        _, levels = price_ticks(pr.min, pr.max, bands.price_height)
        pitch = frame.candle_width + frame.candle_spacing
        time_indices = time_tick_indices(start, end, pitch)

        if frame.settings.grid_lines:
            self._draw_grid(frame, target, palette, bands, [py(v) for v in levels], time_indices)

        target.set_clip((dims.margin_left, dims.margin_top, dims.chart_width, dims.chart_height))
        if frame.settings.show_volume:
            self._draw_volume(frame, target, palette, bands, start, end)
        chart_type = frame.settings.chart_type
        if chart_type == "line":
            self._draw_line(frame, target, palette, py, start, end, bands, filled=False)
        elif chart_type == "area":
            self._draw_line(frame, target, palette, py, start, end, bands, filled=True)
        else:
            self._draw_candles(frame, target, palette, py, start, end)
        for layer in frame.price_overlays:
            self._draw_price_overlay(frame, target, layer, py, start, end)
        oscillators = frame.oscillators
        if oscillators:
            self._draw_oscillators(frame, target, palette, bands, oscillators, start, end)
        target.set_clip(None)

        self._draw_legend(frame, target, palette, bands)
        self._draw_axes(frame, target, palette, bands, py, levels, time_indices, pitch)
        self._draw_last_price(frame, target, palette, bands, py)
        target.end()

    def _x_of(self, frame: Frame) -> Callable[[int], float]:
        cw, cs, origin = frame.candle_width, frame.candle_spacing, frame.origin_x
        return lambda i: index_to_x(i, cw, cs, origin) + cw / 2.0

    def _draw_grid(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands, ys: Sequence[float], time_indices: Sequence[int]) -> None:
        dims = frame.dimensions
        for y in ys:
            if bands.price_top <= y <= bands.price_bottom:
                target.line(dims.margin_left, y, dims.plot_right, y, palette.grid)
        x_of = self._x_of(frame)
        for i in time_indices:
            x = x_of(i)
            if dims.margin_left <= x <= dims.plot_right:
                target.line(x, dims.margin_top, x, dims.plot_bottom, palette.grid)

    def _draw_candles(self, frame: Frame, target: RenderTarget, palette: Palette, py, start: int, end: int) -> None:
        cw, cs, origin = frame.candle_width, frame.candle_spacing, frame.origin_x
        for i in range(start, end + 1):
            candle = frame.candles[i]
            x = index_to_x(i, cw, cs, origin)
            cx = x + cw / 2.0
            color = palette.up if candle.is_bullish else palette.down
            target.line(cx, py(candle.high), cx, py(candle.low), color)
            open_y = py(candle.open)
            close_y = py(candle.close)
            # Doji still get a visible body.
            body_h = max(1.0, abs(close_y - open_y))
            target.rect(x, min(open_y, close_y), cw, body_h, fill=color)

    def _draw_line(self, frame: Frame, target: RenderTarget, palette: Palette, py, start: int, end: int, bands: Bands, filled: bool) -> None:
        x_of = self._x_of(frame)
        points = [(x_of(i), py(frame.candles[i].close)) for i in range(start, end + 1)]
        if filled and len(points) > 1:
            base = bands.price_bottom
            target.polygon(points + [(points[-1][0], base), (points[0][0], base)], palette.area_fill)
        if len(points) > 1:
            target.polyline(points, palette.line, 2.0)

    def _draw_volume(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands, start: int, end: int) -> None:
        if bands.volume_height <= 0:
            return
        visible = frame.candles[start:end + 1]
        max_vol = max((c.volume for c in visible), default=0.0)
        if max_vol <= 0:
            return
        cw, cs, origin = frame.candle_width, frame.candle_spacing, frame.origin_x
        bottom = bands.volume_top + bands.volume_height
        for offset, candle in enumerate(visible):
            if candle.volume <= 0:
                continue
            h = candle.volume / max_vol * bands.volume_height
            x = index_to_x(start + offset, cw, cs, origin)
            target.rect(x, bottom - h, cw, h, fill=palette.volume_color(candle.is_bullish))

    def _draw_price_overlay(self, frame: Frame, target: RenderTarget, layer: IndicatorLayer, py, start: int, end: int) -> None:
        n = len(frame.candles)
        x_of = self._x_of(frame)
        output = layer.result.output
        for band in output.get("bands", []):
            upper = _aligned(band.get("upper"), n)
            lower = _aligned(band.get("lower"), n)
            both = np.where(np.isfinite(upper) & np.isfinite(lower), upper, np.nan)
            for run in _index_runs(both, start, end):
                top = [(x_of(i), py(float(upper[i]))) for i in run]
                bottom = [(x_of(i), py(float(lower[i]))) for i in reversed(run)]
                target.polygon(top + bottom, band.get("fill", "#42A5F533"))
            edge = band.get("edge_color", layer.indicator.color)
            width = float(band.get("edge_width", 1))
            for values in (upper, lower):
                for run in _runs(values, start, end, x_of, py):
                    target.polyline(run, edge, width)
        for series in output.get("series", []):
            values = _aligned(series.get("values"), n)
            for run in _runs(values, start, end, x_of, py):
                target.polyline(run, series.get("color", layer.indicator.color), float(series.get("width", 1)))

    def _oscillator_range(self, output: dict, start: int, end: int, n: int) -> Tuple[float, float]:
        fixed = output.get("range")
        if fixed and len(fixed) == 2:
            return float(fixed[0]), float(fixed[1])
        peak = 0.0
        for spec in list(output.get("series", [])) + list(output.get("hist", [])):
            window = _aligned(spec.get("values"), n)[start:end + 1]
            finite = window[np.isfinite(window)]
            if finite.size:
                peak = max(peak, float(np.max(np.abs(finite))))
        if peak <= 0:
            peak = 1.0
        return -peak, peak

    def _draw_oscillators(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands, layers: Sequence[IndicatorLayer], start: int, end: int) -> None:
        dims = frame.dimensions
        n = len(frame.candles)
        x_of = self._x_of(frame)
        cw, cs, origin = frame.candle_width, frame.candle_spacing, frame.origin_x
        sub_h = bands.oscillator_height / len(layers)
        for slot, layer in enumerate(layers):
            top = bands.oscillator_top + slot * sub_h
            output = layer.result.output
            lo, hi = self._oscillator_range(output, start, end, n)

            def vy(value: float, lo=lo, hi=hi, top=top) -> float:
                return value_to_y(value, lo, hi, top, sub_h)

            target.line(dims.margin_left, top, dims.plot_right, top, palette.grid)
            for level in output.get("levels", []):
                y = vy(float(level.get("value", 0.0)))
                target.line(dims.margin_left, y, dims.plot_right, y, level.get("color", palette.grid), float(level.get("width", 1)), _LEVEL_STYLES.get(level.get("style"), _DASH))
            for hist in output.get("hist", []):
                values = _aligned(hist.get("values"), n)
                zero_y = vy(0.0)
                for i in range(start, min(end, n - 1) + 1):
                    v = values[i]
                    if not math.isfinite(v):
                        continue
                    y = vy(float(v))
                    color = hist.get("color_up", palette.up) if v >= 0 else hist.get("color_down", palette.down)
                    target.rect(index_to_x(i, cw, cs, origin), min(y, zero_y), cw, max(1.0, abs(y - zero_y)), fill=color)
            for series in output.get("series", []):
                values = _aligned(series.get("values"), n)
                for run in _runs(values, start, end, x_of, vy):
                    target.polyline(run, series.get("color", layer.indicator.color), float(series.get("width", 1)))
            target.text(dims.margin_left + 4, top + 9, layer.indicator.name, layer.indicator.color, size=10.0)

    def _draw_legend(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands) -> None:
        row = 0
        for layer in frame.indicators:
            if not layer.indicator.visible or (layer.result.available and layer.is_oscillator):
                continue
            if layer.result.available:
                label, color = layer.indicator.name, layer.indicator.color
            else:
                label, color = f"{layer.indicator.name}: unavailable", palette.axis_text
            target.text(frame.dimensions.margin_left + 4, bands.price_top + 9 + row * _LEGEND_ROW, label, color, size=10.0)
            row += 1

    def _draw_axes(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands, py, levels: Sequence[float], time_indices: Sequence[int], pitch: float) -> None:
        dims = frame.dimensions
        target.line(dims.plot_right, dims.margin_top, dims.plot_right, dims.plot_bottom, palette.grid)
        target.line(dims.margin_left, dims.plot_bottom, dims.plot_right, dims.plot_bottom, palette.grid)
        for level in levels:
            y = py(level)
            if bands.price_top <= y <= bands.price_bottom:
                target.text(dims.plot_right + 6, y, format_price(level), palette.axis_text, size=_LABEL_SIZE)
        step_ms = frame.timeframe_ms * time_tick_stride(pitch)
        x_of = self._x_of(frame)
        for i in time_indices:
            x = x_of(i)
            if dims.margin_left <= x <= dims.plot_right:
                label = format_time(frame.candles[i].timestamp, step_ms, frame.tz)
                target.text(x, dims.plot_bottom + 14, label, palette.axis_text, align="center", size=_LABEL_SIZE)

    def _draw_last_price(self, frame: Frame, target: RenderTarget, palette: Palette, bands: Bands, py) -> None:
        dims = frame.dimensions
        last = frame.candles[-1]
        y = py(last.close)
        if not bands.price_top <= y <= bands.price_bottom:
            return
        target.line(dims.margin_left, y, dims.plot_right, y, palette.last_price, 1.0, _DASH)
        target.rect(dims.plot_right, y - _PILL_HEIGHT / 2.0, dims.margin_right, _PILL_HEIGHT, fill=palette.last_price)
        target.text(dims.plot_right + 6, y, format_price(last.close), palette.background, size=_LABEL_SIZE)

    # -- overlay layer ------------------------------------------------

    def draw_overlay(self, frame: Frame, target: RenderTarget) -> None:
        dims = frame.dimensions
        palette = palette_for(frame.settings.theme)
        target.begin(dims.width, dims.height, dims.pixel_ratio)
        target.clear(None)
        crosshair = frame.crosshair
        if crosshair.visible:
            target.line(crosshair.x, dims.margin_top, crosshair.x, dims.plot_bottom, palette.crosshair, 1.0, _DASH)
            target.line(dims.margin_left, crosshair.y, dims.plot_right, crosshair.y, palette.crosshair, 1.0, _DASH)
            if crosshair.price is not None:
                target.rect(dims.plot_right, crosshair.y - _PILL_HEIGHT / 2.0, dims.margin_right, _PILL_HEIGHT, fill=palette.tooltip_bg, stroke=palette.crosshair)
                target.text(dims.plot_right + 6, crosshair.y, format_price(crosshair.price), palette.tooltip_text, size=_LABEL_SIZE)
            pill_x = crosshair.x - _TIME_PILL_WIDTH / 2.0
            target.rect(pill_x, dims.plot_bottom + 4, _TIME_PILL_WIDTH, _PILL_HEIGHT, fill=palette.tooltip_bg, stroke=palette.crosshair)
            target.text(crosshair.x, dims.plot_bottom + 4 + _PILL_HEIGHT / 2.0, format_timestamp(crosshair.timestamp, frame.tz), palette.tooltip_text, align="center", size=_LABEL_SIZE)
        tooltip = frame.tooltip
        if tooltip.visible and tooltip.ohlc is not None:
            self._draw_tooltip(frame, target, palette, tooltip)
        target.end()

    def _draw_tooltip(self, frame: Frame, target: RenderTarget, palette: Palette, tooltip: Tooltip) -> None:
        dims = frame.dimensions
        candle = tooltip.ohlc
        lines = tooltip_lines(candle, frame.tz)
        height = len(lines) * _TOOLTIP_ROW + 8.0
        # Keep the box on screen near the right and bottom edges.
        x = min(tooltip.x, max(0.0, dims.width - _TOOLTIP_WIDTH))
        y = max(0.0, min(tooltip.y, dims.height - height))
        target.rect(x, y, _TOOLTIP_WIDTH, height, fill=palette.tooltip_bg, stroke=palette.tooltip_border)
        change_color = palette.up if candle.is_bullish else palette.down
        for row, text in enumerate(lines):
            color = change_color if row == 5 else palette.tooltip_text
            target.text(x + 8, y + 4 + _TOOLTIP_ROW * (row + 0.5), text, color, size=_LABEL_SIZE)
