from __future__ import annotations

from dataclasses import dataclass, field, replace
import math
from typing import Any, Dict, List, Optional

from .errors import InvalidCandleError


CHART_TYPES = ("candlestick", "line", "area")
THEMES = ("light", "dark")
INDICATOR_TYPES = ("MA", "RSI", "BOLLINGER", "MACD")


def _finite(value: Any, name: str) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise InvalidCandleError(f"{name} is not a number: {value!r}")
    if not math.isfinite(out):
        raise InvalidCandleError(f"{name} is not finite: {value!r}")
    return out


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class Candle:
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        return self.close >= self.open

    def validate(self) -> "Candle":
        """Return a normalized copy, raising InvalidCandleError on any OHLC violation."""
        if isinstance(self.timestamp, int) and not isinstance(self.timestamp, bool):
            ts = self.timestamp
        else:
            ts_f = _finite(self.timestamp, "timestamp")
            if not ts_f.is_integer():
                raise InvalidCandleError(f"timestamp is not a whole number of ms: {self.timestamp!r}")
            ts = int(ts_f)
        o = _finite(self.open, "open")
        h = _finite(self.high, "high")
        l = _finite(self.low, "low")
        c = _finite(self.close, "close")
        v = _finite(self.volume, "volume")
        if h < l:
            raise InvalidCandleError(f"high < low at {ts}: {h} < {l}")
        if l > min(o, c):
            raise InvalidCandleError(f"low above body at {ts}: {l} > {min(o, c)}")
        if h < max(o, c):
            raise InvalidCandleError(f"high below body at {ts}: {h} < {max(o, c)}")
        if v < 0:
            raise InvalidCandleError(f"negative volume at {ts}: {v}")
        return Candle(ts, o, h, l, c, v)

    def merge_tick(self, tick: "Tick") -> "Candle":
        return replace(
            self,
            high=max(self.high, tick.price),
            low=min(self.low, tick.price),
            close=tick.price,
            volume=self.volume + tick.volume,
        )

    def as_row(self) -> List[float]:
        return [float(self.timestamp), self.open, self.high, self.low, self.close, self.volume]

    @classmethod
    def from_tick(cls, timestamp: int, tick: "Tick") -> "Candle":
        return cls(int(timestamp), tick.price, tick.price, tick.price, tick.price, tick.volume)

    @classmethod
    def from_any(cls, value: Any) -> "Candle":
        """Build a validated candle from a Candle, a dict or a [ts, o, h, l, c, v] row."""
        if isinstance(value, Candle):
            return value.validate()
        if isinstance(value, dict):
            ts = _pick(value, "timestamp", "ts_ms", "time")
            if ts is None:
                raise InvalidCandleError(f"candle without timestamp: {value!r}")
            return cls(
                ts,
                _pick(value, "open"),
                _pick(value, "high"),
                _pick(value, "low"),
                _pick(value, "close"),
                _pick(value, "volume", default=0.0),
            ).validate()
        try:
            row = list(value)
        except TypeError:
            raise InvalidCandleError(f"unsupported candle value: {value!r}")
        if len(row) < 5:
            raise InvalidCandleError(f"candle row too short: {row!r}")
        vol = row[5] if len(row) > 5 else 0.0
        return cls(row[0], row[1], row[2], row[3], row[4], vol).validate()


@dataclass(frozen=True)
class Tick:
    timestamp: float
    price: float
    volume: float = 0.0

    def validate(self) -> "Tick":
        ts = _finite(self.timestamp, "tick timestamp")
        price = _finite(self.price, "tick price")
        vol = _finite(self.volume, "tick volume")
        if vol < 0:
            raise InvalidCandleError(f"negative tick volume: {vol}")
        return Tick(ts, price, vol)

    @classmethod
    def from_any(cls, value: Any) -> "Tick":
        if isinstance(value, Tick):
            return value.validate()
        if isinstance(value, dict):
            return cls(
                _pick(value, "timestamp", "ts_ms", "time"),
                _pick(value, "price"),
                _pick(value, "volume", "qty", default=0.0),
            ).validate()
        try:
            row = list(value)
        except TypeError:
            raise InvalidCandleError(f"unsupported tick value: {value!r}")
        if len(row) < 2:
            raise InvalidCandleError(f"tick row too short: {row!r}")
        return cls(row[0], row[1], row[2] if len(row) > 2 else 0.0).validate()


@dataclass(frozen=True)
class Viewport:
    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0
    start_index: int = 0
    end_index: int = 0


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float
    chart_width: float
    chart_height: float
    margin_top: float
    margin_bottom: float
    margin_left: float
    margin_right: float
    pixel_ratio: float = 1.0

    @classmethod
    def from_surface(
        cls,
        width: float,
        height: float,
        margin_top: float,
        margin_bottom: float,
        margin_left: float,
        margin_right: float,
        pixel_ratio: float = 1.0,
    ) -> "Dimensions":
        width = max(0.0, float(width))
        height = max(0.0, float(height))
        return cls(
            width=width,
            height=height,
            chart_width=max(0.0, width - margin_left - margin_right),
            chart_height=max(0.0, height - margin_top - margin_bottom),
            margin_top=float(margin_top),
            margin_bottom=float(margin_bottom),
            margin_left=float(margin_left),
            margin_right=float(margin_right),
            pixel_ratio=float(pixel_ratio) if pixel_ratio and pixel_ratio > 0 else 1.0,
        )

    @property
    def is_empty(self) -> bool:
        return self.chart_width <= 0 or self.chart_height <= 0

    @property
    def plot_right(self) -> float:
        return self.margin_left + self.chart_width

    @property
    def plot_bottom(self) -> float:
        return self.margin_top + self.chart_height

    def contains(self, x: float, y: float) -> bool:
        return self.margin_left <= x <= self.plot_right and self.margin_top <= y <= self.plot_bottom


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float
    range: float


@dataclass(frozen=True)
class TimeRange:
    start: int
    end: int


@dataclass(frozen=True)
class Crosshair:
    x: float = 0.0
    y: float = 0.0
    timestamp: int = 0
    # None while the pointer is below the price pane, over the oscillator band.
    price: Optional[float] = None
    index: int = -1
    visible: bool = False


@dataclass(frozen=True)
class Tooltip:
    x: float = 0.0
    y: float = 0.0
    ohlc: Optional[Candle] = None
    visible: bool = False


HIDDEN_CROSSHAIR = Crosshair()
HIDDEN_TOOLTIP = Tooltip()


@dataclass
class Indicator:
    id: str
    type: str
    params: Dict[str, Any] = field(default_factory=dict)
    visible: bool = True
    color: str = "#42A5F5"
    name: str = ""


@dataclass(frozen=True)
class VisibleState:
    start_index: int
    end_index: int
    price_range: PriceRange
    time_range: TimeRange


@dataclass(frozen=True)
class LoadState:
    status: str = "idle"
    message: str = ""
    can_retry: bool = False
