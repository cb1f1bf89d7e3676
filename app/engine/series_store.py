from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from .errors import EmptySeriesError, InvalidCandleError, InvalidSeriesError, OutOfOrderError
from .models import Candle, Tick
from .timeframes import bucket_start, timeframe_to_ms

logger = logging.getLogger(__name__)

Listener = Callable[[str, int], None]


class SeriesStore:
    """Ordered candle sequence for one (symbol, timeframe).

    Every mutation bumps ``revision`` and notifies listeners with the change
    kind (``append``, ``update``, ``replace``) and the first index it touched.
    Candles are immutable, so a mutation is a single list write or swap.
    """

    def __init__(self, symbol: str, timeframe: str, timeframe_ms: Optional[int] = None) -> None:
        self.symbol = symbol
        self.timeframe = timeframe
        self.timeframe_ms = int(timeframe_ms) if timeframe_ms else timeframe_to_ms(timeframe)
        self._candles: List[Candle] = []
        self._revision = 0
        self._listeners: List[Listener] = []
        self._array_cache: Optional[Tuple[int, np.ndarray]] = None
        # First row the cached array no longer matches.
        self._stale_from = 0

    @property
    def key(self) -> Tuple[str, str]:
        return self.symbol, self.timeframe

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def candles(self) -> List[Candle]:
        # Read-only view; mutate through append/update_last/replace.
        return self._candles

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def __len__(self) -> int:
        return len(self._candles)

    def __getitem__(self, index: int) -> Candle:
        return self._candles[index]

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def append(self, candle: Any) -> Candle:
        candle = Candle.from_any(candle)
        last = self.last
        if last is not None and candle.timestamp <= last.timestamp:
            raise OutOfOrderError(
                f'{self.symbol} {self.timeframe}: candle {candle.timestamp} not after last {last.timestamp}; use update_last'
            )
        self._candles.append(candle)
        self._changed('append', len(self._candles) - 1)
        return candle

    def update_last(self, tick: Any) -> Candle:
        if not self._candles:
            raise EmptySeriesError(f'{self.symbol} {self.timeframe}: no candle to update')
        tick = Tick.from_any(tick)
        merged = self._candles[-1].merge_tick(tick)
        self._candles[-1] = merged
        self._changed('update', len(self._candles) - 1)
        return merged

    def apply_tick(self, tick: Any) -> str:
        """Route a tick into the current bucket or open a new one. Returns 'update' or 'append'."""
        tick = Tick.from_any(tick)
        last = self.last
        if last is None:
            raise EmptySeriesError(f'{self.symbol} {self.timeframe}: tick before any history')
        if tick.timestamp < last.timestamp:
            raise OutOfOrderError(f'{self.symbol} {self.timeframe}: tick {tick.timestamp} older than last candle {last.timestamp}')
        if tick.timestamp < last.timestamp + self.timeframe_ms:
            self.update_last(tick)
            return 'update'
        start = bucket_start(tick.timestamp, last.timestamp, self.timeframe_ms)
        self.append(Candle.from_tick(start, tick))
        return 'append'

    def replace(self, candles: Iterable[Any]) -> None:
        loaded: List[Candle] = []
        for idx, raw in enumerate(candles):
            try:
                candle = Candle.from_any(raw)
            except InvalidCandleError as exc:
                raise InvalidSeriesError(f'candle {idx}: {exc}', idx) from exc
            if loaded and candle.timestamp <= loaded[-1].timestamp:
                raise InvalidSeriesError(
                    f'candle {idx}: timestamp {candle.timestamp} not after {loaded[-1].timestamp}', idx
                )
            loaded.append(candle)
        self._candles = loaded
        logger.info('%s %s: loaded %d candles', self.symbol, self.timeframe, len(loaded))
        self._changed('replace', 0)

    def clear(self) -> None:
        self._candles = []
        self._changed('replace', 0)

    def to_numpy(self) -> np.ndarray:
        """(N, 6) float64 array of time, open, high, low, close, volume; cached per revision.

        A tick only rebuilds the rows from the last candle on, so the indicator
        pass per frame stays a numpy copy plus one or two Python rows.
        """
        cached = self._array_cache
        if cached is not None and cached[0] == self._revision:
            return cached[1]
        n = len(self._candles)
        keep = min(self._stale_from, n, len(cached[1])) if cached is not None else 0
        arr = np.empty((n, 6), dtype=np.float64)
        if keep:
            arr[:keep] = cached[1][:keep]
        if n > keep:
            arr[keep:] = [c.as_row() for c in self._candles[keep:]]
        arr.setflags(write=False)
        self._array_cache = (self._revision, arr)
        self._stale_from = n
        return arr

    def _changed(self, kind: str, index: int) -> None:
        self._revision += 1
        self._stale_from = min(self._stale_from, index)
        for listener in list(self._listeners):
            listener(kind, index)
