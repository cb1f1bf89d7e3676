from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .config import ChartSettings, EngineConfig
from .models import Dimensions, Viewport
from .ranges import calculate_visible_range, candles_per_screen

# Tolerance for "pinned to the newest candle" after float round trips.
_EDGE_EPS = 1e-6


@dataclass(frozen=True)
class ViewportBounds:
    series_length: int
    chart_width: float
    candle_width: float
    candle_spacing: float
    min_scale: float
    max_scale: float

    def pitch(self, scale: float) -> float:
        return (self.candle_width + self.candle_spacing) * scale

    def max_translate_x(self, scale: float) -> float:
        visible = candles_per_screen(self.chart_width, self.candle_width, self.candle_spacing, scale)
        return max(0.0, self.series_length - visible)


def clamp_scale(scale: float, bounds: ViewportBounds) -> float:
    return max(bounds.min_scale, min(bounds.max_scale, scale))


def settle(viewport: Viewport, bounds: ViewportBounds) -> Viewport:
    """Clamp scale and translate_x, then recompute the visible window from scratch."""
    scale = clamp_scale(viewport.scale, bounds)
    translate_x = max(0.0, min(bounds.max_translate_x(scale), viewport.translate_x))
    candidate = replace(viewport, scale=scale, translate_x=translate_x)
    start, end = calculate_visible_range(
        candidate, bounds.chart_width, bounds.candle_width, bounds.candle_spacing, bounds.series_length
    )
    return replace(candidate, start_index=start, end_index=end)


def pan_viewport(viewport: Viewport, delta_px: float, bounds: ViewportBounds) -> Viewport:
    pitch = bounds.pitch(clamp_scale(viewport.scale, bounds))
    if pitch <= 0:
        return settle(viewport, bounds)
    # Dragging right reveals older candles, so translate_x moves the other way.
    return settle(replace(viewport, translate_x=viewport.translate_x - delta_px / pitch), bounds)


def zoom_viewport(viewport: Viewport, factor: float, anchor_offset: float, bounds: ViewportBounds) -> Viewport:
    """Scale by `factor`, keeping the candle `anchor_offset` pixels into the plot under the cursor."""
    if factor <= 0:
        return settle(viewport, bounds)
    old_scale = clamp_scale(viewport.scale, bounds)
    new_scale = clamp_scale(old_scale * factor, bounds)
    old_pitch = bounds.pitch(old_scale)
    new_pitch = bounds.pitch(new_scale)
    if old_pitch <= 0 or new_pitch <= 0:
        return settle(replace(viewport, scale=new_scale), bounds)
    anchor_pos = viewport.translate_x + anchor_offset / old_pitch
    translate_x = anchor_pos - anchor_offset / new_pitch
    return settle(replace(viewport, scale=new_scale, translate_x=translate_x), bounds)


def default_viewport(bounds: ViewportBounds, scale: float = 1.0) -> Viewport:
    scale = clamp_scale(scale, bounds)
    return settle(Viewport(scale=scale, translate_x=bounds.max_translate_x(scale)), bounds)


class ViewportController:
    def __init__(
        self,
        settings: Optional[ChartSettings] = None,
        config: Optional[EngineConfig] = None,
        dimensions: Optional[Dimensions] = None,
        series_length: int = 0,
    ) -> None:
        self.settings = settings or ChartSettings()
        self.config = config or EngineConfig()
        self.dimensions = dimensions or Dimensions.from_surface(
            0, 0, self.config.margin_top, self.config.margin_bottom, self.config.margin_left, self.config.margin_right
        )
        self.series_length = max(0, int(series_length))
        self._viewport = default_viewport(self.bounds, self.config.default_scale)

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def bounds(self) -> ViewportBounds:
        return ViewportBounds(
            series_length=self.series_length,
            chart_width=self.dimensions.chart_width,
            candle_width=self.settings.candle_width,
            candle_spacing=self.settings.candle_spacing,
            min_scale=self.config.min_scale,
            max_scale=self.config.max_scale,
        )

    @property
    def candle_width(self) -> float:
        return self.settings.candle_width * self._viewport.scale

    @property
    def candle_spacing(self) -> float:
        return self.settings.candle_spacing * self._viewport.scale

    @property
    def pitch(self) -> float:
        return self.candle_width + self.candle_spacing

    @property
    def origin_x(self) -> float:
        """Pixel x where index 0 would start, so index_to_x(i, ..., origin_x) lands on screen."""
        return self.dimensions.margin_left - self._viewport.translate_x * self.pitch

    @property
    def is_at_latest(self) -> bool:
        return self._viewport.translate_x >= self.bounds.max_translate_x(self._viewport.scale) - _EDGE_EPS

    def pan(self, delta_px: float) -> Viewport:
        self._viewport = pan_viewport(self._viewport, delta_px, self.bounds)
        return self._viewport

    def zoom(self, factor: float, anchor_x: Optional[float] = None) -> Viewport:
        if anchor_x is None:
            offset = self.dimensions.chart_width / 2.0
        else:
            offset = max(0.0, min(self.dimensions.chart_width, anchor_x - self.dimensions.margin_left))
        self._viewport = zoom_viewport(self._viewport, factor, offset, self.bounds)
        return self._viewport

    def resize(self, dimensions: Dimensions) -> Viewport:
        # translate_x only moves if the new width puts it out of bounds.
        self.dimensions = dimensions
        self._viewport = settle(self._viewport, self.bounds)
        return self._viewport

    def set_series_length(self, series_length: int, follow_latest: bool = True) -> Viewport:
        follow = follow_latest and self.is_at_latest
        self.series_length = max(0, int(series_length))
        if follow:
            self._viewport = replace(self._viewport, translate_x=self.bounds.max_translate_x(self._viewport.scale))
        self._viewport = settle(self._viewport, self.bounds)
        return self._viewport

    def set_settings(self, settings: ChartSettings) -> Viewport:
        self.settings = settings
        self._viewport = settle(self._viewport, self.bounds)
        return self._viewport

    def reset(self, series_length: Optional[int] = None) -> Viewport:
        if series_length is not None:
            self.series_length = max(0, int(series_length))
        self._viewport = default_viewport(self.bounds, self.config.default_scale)
        return self._viewport
