from datetime import datetime, tzinfo
import math
from typing import List, Optional, Tuple


def format_price(price: float) -> str:
    magnitude = abs(price)
    if magnitude >= 100:
        return f'{price:,.2f}'
    if magnitude >= 1:
        return f'{price:,.4f}'
    if magnitude >= 0.01:
        return f'{price:,.6f}'
    if magnitude >= 0.0001:
        return f'{price:,.8f}'
    if magnitude == 0:
        return '0.00'
    return f'{price:,.10f}'


def format_volume(volume: float) -> str:
    if volume >= 1_000_000_000:
        return f'{volume / 1_000_000_000:.2f}B'
    if volume >= 1_000_000:
        return f'{volume / 1_000_000:.2f}M'
    if volume >= 1_000:
        return f'{volume / 1_000:.2f}K'
    return f'{volume:.2f}'


def price_ticks(min_val: float, max_val: float, size: float, spacing: float = 50.0) -> Tuple[float, List[float]]:
    """Round-number price levels (1/2/5 x 10^n steps) inside [min_val, max_val]."""
    span = float(max_val) - float(min_val)
    if span <= 0 or size <= 0:
        return 0.0, []
    target_ticks = max(2, int(size / spacing))
    raw_step = span / target_ticks
    exp = math.floor(math.log10(raw_step))
    base = 10 ** exp
    step = base * 10
    for mult in (1, 2, 5, 10):
        if base * mult >= raw_step:
            step = base * mult
            break
    values = []
    k = math.ceil(float(min_val) / step)
    current = k * step
    while current <= max_val + step * 1e-9:
        values.append(round(current, 12))
        k += 1
        current = k * step
    return step, values


def time_tick_stride(pitch: float, min_spacing: float = 100.0) -> int:
    if pitch <= 0:
        return 1
    return max(1, int(math.ceil(min_spacing / pitch)))


def time_tick_indices(start_index: int, end_index: int, pitch: float, min_spacing: float = 100.0) -> List[int]:
    """Candle indices to label, on a fixed stride so labels do not shimmer while panning."""
    if end_index < start_index:
        return []
    stride = time_tick_stride(pitch, min_spacing)
    first = int(math.ceil(start_index / stride)) * stride
    return list(range(first, end_index + 1, stride))


def time_format_for(step_ms: float) -> str:
    if step_ms < 60_000:
        return '%H:%M:%S'
    if step_ms < 86_400_000:
        return '%H:%M'
    if step_ms < 2_592_000_000:
        return '%b %d'
    return '%Y-%m'


def format_time(ts_ms: int, step_ms: float, tz: Optional[tzinfo] = None) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=tz)
    if time_format_for(step_ms) == '%H:%M' and dt.hour == 0 and dt.minute == 0:
        # Day boundary on an intraday axis.
        return dt.strftime('%b %d')
    return dt.strftime(time_format_for(step_ms))


def format_timestamp(ts_ms: int, tz: Optional[tzinfo] = None) -> str:
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=tz).strftime('%Y-%m-%d %H:%M')
