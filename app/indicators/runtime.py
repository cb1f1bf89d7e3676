from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

import numpy as np

from . import helpers


def normalize_bars(bars: Iterable) -> List[List[float]]:
    """Rows of [time, open, high, low, close, volume] from candles, dicts or rows."""
    normalized: List[List[float]] = []
    for bar in bars:
        as_row = getattr(bar, "as_row", None)
        if as_row is not None:
            normalized.append(as_row())
            continue
        if isinstance(bar, dict):
            try:
                ts = float(bar.get("timestamp", bar.get("time", bar.get("ts_ms", 0))))
                row = [ts] + [float(bar.get(k, 0)) for k in ("open", "high", "low", "close", "volume")]
            except (TypeError, ValueError):
                continue
            normalized.append(row)
            continue
        row = list(bar)
        if len(row) < 5:
            continue
        if len(row) < 6:
            row = row + [0.0]
        normalized.append([float(v) for v in row[:6]])
    return normalized


class IndicatorContext:
    """Handed to an indicator's compute(); tracks the lookback it asks for."""

    def __init__(self, bars_np: np.ndarray) -> None:
        self._bars_np = bars_np
        self._bundle = helpers.series_bundle(bars_np)
        self._required_lookback = 0

    @property
    def required_lookback(self) -> int:
        return self._required_lookback

    @property
    def size(self) -> int:
        return len(self._bundle.time)

    def lookback(self, n: int) -> None:
        n = int(n)
        if n > self._required_lookback:
            self._required_lookback = n

    def series(self, bars: Iterable, field: str) -> np.ndarray:
        source = getattr(self._bundle, field, None)
        if field == "time" or source is None:
            source = self._bundle.close
        return source.copy()

    def sma(self, values: Iterable[float], length: int) -> np.ndarray:
        return helpers.sma(values, length)

    def ema(self, values: Iterable[float], length: int) -> np.ndarray:
        return helpers.ema(values, length)

    def rma(self, values: Iterable[float], length: int) -> np.ndarray:
        return helpers.rma(values, length)

    def rsi(self, values: Iterable[float], length: int) -> np.ndarray:
        return helpers.rsi(values, length)

    def macd(self, values: Iterable[float], fast: int, slow: int, signal: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return helpers.macd(values, fast, slow, signal)

    def stdev(self, values: Iterable[float], length: int) -> np.ndarray:
        return helpers.stdev(values, length)

    def bb(self, values: Iterable[float], length: int, mult: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return helpers.bb(values, length, mult)


def run_compute(
    bars: Iterable,
    params: Dict[str, Any],
    compute_fn,
) -> Tuple[Dict[str, Any], int, int]:
    """Run one indicator; returns (result, required_lookback, sample_count).

    `bars` is either an (N, 6) array, used as is, or anything `normalize_bars` accepts.
    """
    if isinstance(bars, np.ndarray):
        bars_np = helpers.bars_to_numpy(bars)
    else:
        bars_np = helpers.bars_to_numpy(normalize_bars(bars))
    ctx = IndicatorContext(bars_np)
    result = compute_fn(bars_np, params, ctx)
    return result, ctx.required_lookback, ctx.size
