import os
import sys
import unittest

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.errors import EmptySeriesError, InvalidCandleError, InvalidSeriesError, OutOfOrderError
from engine.models import Candle, Tick
from engine.series_store import SeriesStore


def _three_candles():
    return [
        Candle(1, 10, 12, 9, 11, 5),
        Candle(2, 11, 13, 10, 12, 5),
        Candle(3, 12, 12, 11, 11.5, 5),
    ]


class CandleValidationTests(unittest.TestCase):
    def test_rejects_high_below_low(self):
        with self.assertRaises(InvalidCandleError):
            Candle(1, 10, 9, 11, 10).validate()

    def test_rejects_body_outside_wicks(self):
        with self.assertRaises(InvalidCandleError):
            Candle(1, 10, 11, 9.5, 12).validate()
        with self.assertRaises(InvalidCandleError):
            Candle(1, 10, 12, 10.5, 11).validate()

    def test_rejects_negative_volume_and_nan(self):
        with self.assertRaises(InvalidCandleError):
            Candle(1, 10, 12, 9, 11, -1).validate()
        with self.assertRaises(InvalidCandleError):
            Candle.from_any([1, float("nan"), 12, 9, 11])

    def test_rejects_fractional_timestamp(self):
        with self.assertRaises(InvalidCandleError):
            Candle(3.9, 10, 12, 9, 11).validate()
        store = SeriesStore("TEST", "1m", timeframe_ms=1)
        store.replace(_three_candles())
        with self.assertRaises(InvalidCandleError):
            store.append(Candle(3.9, 10, 12, 9, 11))
        self.assertEqual(Candle(4.0, 10, 12, 9, 11).validate().timestamp, 4)

    def test_from_any_accepts_rows_and_dicts(self):
        row = Candle.from_any(["60000", "10", "12", "9", "11", "3"])
        self.assertEqual(row, Candle(60000, 10.0, 12.0, 9.0, 11.0, 3.0))
        as_dict = Candle.from_any({"time": 60000, "open": 10, "high": 12, "low": 9, "close": 11})
        self.assertEqual(as_dict.volume, 0.0)
        with self.assertRaises(InvalidCandleError):
            Candle.from_any([1, 2, 3])
        with self.assertRaises(InvalidCandleError):
            Candle.from_any(42)

    def test_tick_from_any(self):
        self.assertEqual(Tick.from_any({"timestamp": 5, "price": "1.5", "qty": 2}), Tick(5.0, 1.5, 2.0))
        self.assertEqual(Tick.from_any((5, 1.5)), Tick(5.0, 1.5, 0.0))
        with self.assertRaises(InvalidCandleError):
            Tick.from_any({"timestamp": 5, "price": None})
        with self.assertRaises(InvalidCandleError):
            Tick.from_any(None)


class SeriesStoreTests(unittest.TestCase):
    def _store(self) -> SeriesStore:
        store = SeriesStore("TEST", "1m", timeframe_ms=1)
        store.replace(_three_candles())
        return store

    def test_tick_inside_bucket_updates_last(self):
        store = self._store()
        kind = store.apply_tick({"timestamp": 3.5, "price": 13})
        self.assertEqual(kind, "update")
        self.assertEqual(len(store), 3)
        self.assertEqual(store.last.high, 13)
        self.assertEqual(store.last.close, 13)
        self.assertEqual(store.last.low, 11)
        self.assertEqual(store.last.open, 12)

    def test_tick_across_boundary_appends(self):
        store = self._store()
        kind = store.apply_tick({"timestamp": 4, "price": 14, "volume": 0.75})
        self.assertEqual(kind, "append")
        self.assertEqual(len(store), 4)
        self.assertEqual(store.last, Candle(4, 14, 14, 14, 14, 0.75))

    def test_tick_after_gap_opens_aligned_bucket(self):
        store = SeriesStore("TEST", "1m")
        store.replace([Candle(0, 10, 11, 9, 10)])
        store.apply_tick(Tick(3 * 60_000 + 1_500, 10.5))
        self.assertEqual(store.last.timestamp, 3 * 60_000)

    def test_update_last_merges_volume(self):
        store = self._store()
        store.update_last(Tick(3.2, 10.0, 2.5))
        self.assertEqual(store.last.low, 10.0)
        self.assertEqual(store.last.volume, 7.5)

    def test_update_last_on_empty_series(self):
        store = SeriesStore("TEST", "1m")
        with self.assertRaises(EmptySeriesError):
            store.update_last(Tick(1, 10))
        with self.assertRaises(EmptySeriesError):
            store.apply_tick(Tick(1, 10))

    def test_append_requires_increasing_timestamp(self):
        store = self._store()
        with self.assertRaises(OutOfOrderError):
            store.append(Candle(3, 12, 12, 11, 11.5))
        with self.assertRaises(OutOfOrderError):
            store.append(Candle(2, 12, 12, 11, 11.5))
        store.append(Candle(10, 12, 12, 11, 11.5))
        self.assertEqual(len(store), 4)

    def test_stale_tick_is_rejected(self):
        store = self._store()
        with self.assertRaises(OutOfOrderError):
            store.apply_tick(Tick(2.5, 99))
        self.assertEqual(store.last.close, 11.5)

    def test_malformed_tick_leaves_series_untouched(self):
        store = self._store()
        before = list(store.candles)
        revision = store.revision
        with self.assertRaises(InvalidCandleError):
            store.apply_tick({"timestamp": 3.5, "price": float("inf")})
        self.assertEqual(store.candles, before)
        self.assertEqual(store.revision, revision)

    def test_replace_is_atomic_on_bad_batch(self):
        store = self._store()
        before = list(store.candles)
        with self.assertRaises(InvalidSeriesError) as ctx:
            store.replace([Candle(10, 1, 2, 0.5, 1.5), Candle(10, 1, 2, 0.5, 1.5)])
        self.assertEqual(ctx.exception.index, 1)
        self.assertEqual(store.candles, before)
        with self.assertRaises(InvalidSeriesError):
            store.replace([[20, 1, 0.5, 2, 1]])
        self.assertEqual(store.candles, before)

    def test_listeners_see_each_mutation(self):
        store = SeriesStore("TEST", "1m", timeframe_ms=1)
        events = []
        store.add_listener(lambda kind, index: events.append((kind, index)))
        store.replace(_three_candles())
        store.apply_tick(Tick(3.5, 12.5))
        store.apply_tick(Tick(4, 12.5))
        self.assertEqual(events, [("replace", 0), ("update", 2), ("append", 3)])
        self.assertEqual(store.revision, 3)

    def test_to_numpy_cached_per_revision(self):
        store = self._store()
        arr = store.to_numpy()
        self.assertEqual(arr.shape, (3, 6))
        self.assertIs(store.to_numpy(), arr)
        store.apply_tick(Tick(3.5, 13))
        refreshed = store.to_numpy()
        self.assertIsNot(refreshed, arr)
        self.assertEqual(refreshed[-1, 4], 13)

    def test_to_numpy_reuses_rows_before_the_touched_candle(self):
        store = self._store()
        arr = store.to_numpy()
        self.assertFalse(arr.flags.writeable)
        store.apply_tick(Tick(4, 14, 2))
        grown = store.to_numpy()
        self.assertEqual(grown.shape, (4, 6))
        self.assertEqual(grown[:3].tolist(), arr.tolist())
        self.assertEqual(grown[3].tolist(), [4.0, 14.0, 14.0, 14.0, 14.0, 2.0])
        store.replace([Candle(10, 1, 2, 0.5, 1.5, 3)])
        self.assertEqual(store.to_numpy().tolist(), [[10.0, 1.0, 2.0, 0.5, 1.5, 3.0]])


if __name__ == "__main__":
    unittest.main()
