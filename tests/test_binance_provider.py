import json
import os
import sys
import unittest

import requests

# Allow `import engine.*` like the app does when running `python app/main.py`.
REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
APP_DIR = os.path.join(REPO_ROOT, "app")
if APP_DIR not in sys.path:
    sys.path.insert(0, APP_DIR)

from engine.data_providers import binance
from engine.errors import InvalidCandleError
from engine.models import Tick

MINUTE = 60_000


class _Response:
    def __init__(self, payload, status: int = 200) -> None:
        self._payload = payload
        self.status_code = status

    def json(self):
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class _KlineSession:
    """Serves `total` one-minute klines ending at `last_ts`, honouring limit/endTime."""

    def __init__(self, total: int, last_ts: int) -> None:
        self.rows = [
            [last_ts - (total - 1 - i) * MINUTE, "1.0", "2.0", "0.5", "1.5", "10", last_ts + 59_999]
            for i in range(total)
        ]
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(dict(params or {}))
        end = params.get("endTime")
        rows = [r for r in self.rows if end is None or r[0] <= end]
        return _Response(rows[-params["limit"]:])


class BinanceProviderTests(unittest.TestCase):
    def test_parse_klines_skips_bad_rows(self):
        rows = binance.parse_klines([[0, "1", "2", "0.5", "1.5", "3", 59_999], [1, "x", "2", "0.5", "1.5", "3"], [2, "1"]])
        self.assertEqual(rows, [[0, 1.0, 2.0, 0.5, 1.5, 3.0]])

    def test_fetch_historical_single_page(self):
        session = _KlineSession(50, 100 * MINUTE)
        bars = binance.fetch_historical("btcusdt", "1m", limit=30, session=session)
        self.assertEqual(len(bars), 30)
        self.assertEqual(bars[-1][0], 100 * MINUTE)
        self.assertEqual(session.calls[0]["symbol"], "BTCUSDT")
        self.assertEqual(session.calls[0]["interval"], "1m")
        self.assertNotIn("endTime", session.calls[0])

    def test_fetch_historical_pages_backwards(self):
        session = _KlineSession(2500, 3000 * MINUTE)
        bars = binance.fetch_historical("BTCUSDT", "1m", limit=2200, session=session)
        self.assertEqual(len(bars), 2200)
        self.assertEqual(len(session.calls), 3)
        self.assertEqual([c["limit"] for c in session.calls], [1000, 1000, 200])
        timestamps = [b[0] for b in bars]
        self.assertEqual(timestamps, sorted(set(timestamps)))
        self.assertEqual(timestamps[-1], 3000 * MINUTE)

    def test_fetch_historical_stops_when_history_runs_out(self):
        session = _KlineSession(1200, 3000 * MINUTE)
        bars = binance.fetch_historical("BTCUSDT", "1m", limit=5000, session=session)
        self.assertEqual(len(bars), 1200)

    def test_fetch_historical_http_error(self):
        class Failing:
            def get(self, url, params=None, timeout=None):
                return _Response({"msg": "Invalid symbol."}, status=400)

        with self.assertRaises(requests.HTTPError):
            binance.fetch_historical("NOPE", "1m", session=Failing())

    def test_fetch_historical_rejects_unknown_timeframe(self):
        with self.assertRaises(ValueError):
            binance.fetch_historical("BTCUSDT", "2m", session=_KlineSession(1, 0))

    def test_fetch_symbols(self):
        class Session:
            def get(self, url, params=None, timeout=None):
                return _Response({"symbols": [
                    {"symbol": "ETHUSDT", "status": "TRADING"},
                    {"symbol": "OLDUSDT", "status": "BREAK"},
                    {"symbol": "BTCUSDT", "status": "TRADING"},
                ]})

        self.assertEqual(binance.fetch_symbols(Session()), ["BTCUSDT", "ETHUSDT"])

    def test_parse_trade_message(self):
        msg = json.dumps({"e": "aggTrade", "E": 1_700_000_000_100, "s": "BTCUSDT", "p": "43000.5", "q": "0.25", "T": 1_700_000_000_050})
        self.assertEqual(binance.parse_trade_message(msg), Tick(1_700_000_000_050, 43000.5, 0.25))
        wrapped = {"stream": "btcusdt@trade", "data": {"e": "trade", "p": "1.5", "q": "2", "T": 5}}
        self.assertEqual(binance.parse_trade_message(wrapped), Tick(5, 1.5, 2.0))
        self.assertIsNone(binance.parse_trade_message({"result": None, "id": 1}))
        with self.assertRaises(InvalidCandleError):
            binance.parse_trade_message("{not json")
        with self.assertRaises(InvalidCandleError):
            binance.parse_trade_message({"e": "trade", "p": "abc", "T": 5})

    def test_trade_stream_url(self):
        self.assertEqual(binance.trade_stream_url("BTCUSDT"), "wss://stream.binance.com:9443/ws/btcusdt@aggTrade")


if __name__ == "__main__":
    unittest.main()
