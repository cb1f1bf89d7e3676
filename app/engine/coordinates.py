"""Pixel <-> data-space mapping.

Candle indices map onto a fixed pitch of ``candle_width + candle_spacing``
starting at ``margin_left``; prices map linearly onto the plot height with
higher prices nearer the top. All functions are pure.
"""

import math

from .models import PriceRange

# Absorbs float error in (x - margin) / pitch so exact slot edges floor to their own index.
_INDEX_EPS = 1e-9


def index_to_x(index: float, candle_width: float, candle_spacing: float, margin_left: float) -> float:
    return margin_left + index * (candle_width + candle_spacing)


def x_to_index(x: float, candle_width: float, candle_spacing: float, margin_left: float) -> int:
    pitch = candle_width + candle_spacing
    if pitch <= 0:
        return 0
    return int(math.floor((x - margin_left) / pitch + _INDEX_EPS))


def candle_center_x(index: float, candle_width: float, candle_spacing: float, margin_left: float) -> float:
    return index_to_x(index, candle_width, candle_spacing, margin_left) + candle_width / 2.0


def price_to_y(price: float, price_range: PriceRange, chart_height: float, margin_top: float) -> float:
    if price_range.range == 0:
        return margin_top + chart_height / 2.0
    ratio = (price_range.max - price) / price_range.range
    return margin_top + ratio * chart_height


def y_to_price(y: float, price_range: PriceRange, chart_height: float, margin_top: float) -> float:
    if chart_height <= 0:
        return price_range.max
    ratio = (y - margin_top) / chart_height
    return price_range.max - ratio * price_range.range


def value_to_y(value: float, low: float, high: float, band_top: float, band_height: float) -> float:
    """Map a value onto an arbitrary vertical band, used for the volume and oscillator bands."""
    span = high - low
    if span == 0:
        return band_top + band_height / 2.0
    return band_top + (high - value) / span * band_height
