import math
from typing import Sequence, Tuple

from .models import Candle, PriceRange, TimeRange, Viewport

EMPTY_PRICE_RANGE = PriceRange(0.0, 100.0, 100.0)


def candles_per_screen(chart_width: float, candle_width: float, candle_spacing: float, scale: float = 1.0) -> float:
    pitch = (candle_width + candle_spacing) * scale
    if pitch <= 0 or chart_width <= 0:
        return 0.0
    return chart_width / pitch


def calculate_visible_range(
    viewport: Viewport,
    chart_width: float,
    candle_width: float,
    candle_spacing: float,
    series_length: int,
) -> Tuple[int, int]:
    if series_length <= 0:
        return 0, 0
    last = series_length - 1
    count = candles_per_screen(chart_width, candle_width, candle_spacing, viewport.scale)
    start = min(last, max(0, int(math.floor(viewport.translate_x))))
    if count <= 0:
        return start, start
    end = int(math.ceil(viewport.translate_x + count)) - 1
    end = min(last, max(start, end))
    return start, end


def calculate_price_range(
    series: Sequence[Candle],
    start_index: int,
    end_index: int,
    padding: float = 0.1,
    flat_fraction: float = 0.005,
    flat_unit: float = 1.0,
) -> PriceRange:
    if not series:
        return EMPTY_PRICE_RANGE
    start = max(0, start_index)
    end = min(len(series) - 1, end_index)
    if end < start:
        return EMPTY_PRICE_RANGE
    low = series[start].low
    high = series[start].high
    for idx in range(start + 1, end + 1):
        candle = series[idx]
        if candle.low < low:
            low = candle.low
        if candle.high > high:
            high = candle.high
    if high == low:
        half = abs(high) * flat_fraction if high != 0 else flat_unit
        if half <= 0:
            half = flat_unit
        return PriceRange(low - half, high + half, half * 2.0)
    pad = (high - low) * padding
    lo = low - pad
    hi = high + pad
    return PriceRange(lo, hi, hi - lo)


def calculate_time_range(series: Sequence[Candle], start_index: int, end_index: int) -> TimeRange:
    if not series:
        return TimeRange(0, 0)
    last = len(series) - 1
    start = series[min(last, max(0, start_index))].timestamp
    end = series[min(last, max(0, end_index))].timestamp
    return TimeRange(start, end)
