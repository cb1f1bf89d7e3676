from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

import numpy as np


@dataclass
class SeriesBundle:
    time: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray


def bars_to_numpy(bars: List[Iterable[float]]) -> np.ndarray:
    if bars is None or len(bars) == 0:
        return np.empty((0, 6), dtype=np.float64)
    arr = np.asarray(bars, dtype=np.float64)
    if arr.ndim == 1:
        arr = np.expand_dims(arr, 0)
    if arr.shape[1] < 6:
        pad = np.zeros((arr.shape[0], 6 - arr.shape[1]), dtype=np.float64)
        arr = np.hstack((arr, pad))
    return arr[:, :6]


def series_bundle(bars_np: np.ndarray) -> SeriesBundle:
    if bars_np.size == 0:
        empty = np.empty(0, dtype=np.float64)
        return SeriesBundle(empty, empty, empty, empty, empty, empty)
    return SeriesBundle(
        time=bars_np[:, 0],
        open=bars_np[:, 1],
        high=bars_np[:, 2],
        low=bars_np[:, 3],
        close=bars_np[:, 4],
        volume=bars_np[:, 5],
    )


def sma(values: Iterable[float], length: int) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    n = arr.size
    out = np.full(n, np.nan, dtype=np.float64)
    if length <= 0 or n < length:
        return out
    csum = np.cumsum(np.nan_to_num(arr), dtype=np.float64)
    csum[length:] = csum[length:] - csum[:-length]
    out[length - 1:] = csum[length - 1:] / float(length)
    return out


def _smooth(arr: np.ndarray, alpha: float) -> np.ndarray:
    out = np.full(arr.size, np.nan, dtype=np.float64)
    acc = np.nan
    for i in range(arr.size):
        v = arr[i]
        if np.isnan(v):
            out[i] = acc
            continue
        acc = v if np.isnan(acc) else alpha * v + (1 - alpha) * acc
        out[i] = acc
    return out


def ema(values: Iterable[float], length: int) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if length <= 0 or arr.size == 0:
        return np.full(arr.size, np.nan, dtype=np.float64)
    return _smooth(arr, 2.0 / (length + 1.0))


def rma(values: Iterable[float], length: int) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if length <= 0 or arr.size == 0:
        return np.full(arr.size, np.nan, dtype=np.float64)
    return _smooth(arr, 1.0 / float(length))


def rsi(values: Iterable[float], length: int) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    n = arr.size
    out = np.full(n, np.nan, dtype=np.float64)
    if length <= 0 or n < 2:
        return out
    diffs = np.diff(arr)
    gains = np.where(diffs > 0, diffs, 0.0)
    losses = np.where(diffs < 0, -diffs, 0.0)
    avg_gain = rma(gains, length)
    avg_loss = rma(losses, length)
    rs = np.divide(avg_gain, avg_loss, out=np.full_like(avg_gain, np.nan), where=avg_loss != 0)
    rsi_vals = 100 - (100 / (1 + rs))
    # Only gains in the window: fully overbought.
    rsi_vals = np.where((avg_loss == 0) & (avg_gain > 0), 100.0, rsi_vals)
    out[1:] = rsi_vals
    # The first `length` values are still warming up.
    out[:length] = np.nan
    return out


def macd(values: Iterable[float], fast: int, slow: int, signal: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    fast_ema = ema(values, fast)
    slow_ema = ema(values, slow)
    macd_line = fast_ema - slow_ema
    signal_line = ema(macd_line, signal)
    hist = macd_line - signal_line
    return macd_line, signal_line, hist


def stdev(values: Iterable[float], length: int) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    n = arr.size
    out = np.full(n, np.nan, dtype=np.float64)
    if length <= 0:
        return out
    for i in range(length - 1, n):
        window = arr[i + 1 - length: i + 1]
        if np.any(np.isnan(window)):
            continue
        out[i] = np.std(window)
    return out


def bb(values: Iterable[float], length: int, mult: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    basis = sma(values, length)
    dev = stdev(values, length) * mult
    upper = basis + dev
    lower = basis - dev
    return upper, basis, lower
