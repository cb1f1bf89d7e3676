from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple

from .models import CHART_TYPES, THEMES


@dataclass(frozen=True)
class ChartSettings:
    candle_width: float = 8.0
    candle_spacing: float = 2.0
    grid_lines: bool = True
    show_volume: bool = True
    theme: str = 'dark'
    chart_type: str = 'candlestick'

    @property
    def candle_pitch(self) -> float:
        return self.candle_width + self.candle_spacing

    def validate(self) -> "ChartSettings":
        if self.candle_width <= 0 or self.candle_spacing < 0:
            raise ValueError(f'Invalid candle geometry: width={self.candle_width} spacing={self.candle_spacing}')
        if self.theme not in THEMES:
            raise ValueError(f'Unsupported theme: {self.theme!r}')
        if self.chart_type not in CHART_TYPES:
            raise ValueError(f'Unsupported chart type: {self.chart_type!r}')
        return self


@dataclass(frozen=True)
class EngineConfig:
    min_scale: float = 0.1
    max_scale: float = 10.0
    default_scale: float = 1.0
    zoom_in_factor: float = 1.1
    zoom_out_factor: float = 0.9
    wheel_notch: float = 120.0
    price_padding: float = 0.1
    flat_range_fraction: float = 0.005
    flat_range_unit: float = 1.0
    margin_top: float = 20.0
    margin_bottom: float = 40.0
    margin_left: float = 10.0
    margin_right: float = 70.0
    tooltip_offset: Tuple[float, float] = (10.0, -10.0)
    volume_height_ratio: float = 0.15
    oscillator_height_ratio: float = 0.25
    history_limit: int = 1000

    def __post_init__(self) -> None:
        if self.min_scale <= 0 or self.max_scale < self.min_scale:
            raise ValueError(f'Invalid scale bounds: [{self.min_scale}, {self.max_scale}]')
        if not self.min_scale <= self.default_scale <= self.max_scale:
            raise ValueError(f'default_scale {self.default_scale} outside [{self.min_scale}, {self.max_scale}]')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in (data or {}).items() if k in known}
        if 'tooltip_offset' in kwargs:
            kwargs['tooltip_offset'] = tuple(float(v) for v in kwargs['tooltip_offset'])
        return cls(**kwargs)
