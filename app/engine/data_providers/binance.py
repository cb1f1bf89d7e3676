from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

import requests

from ..errors import InvalidCandleError
from ..models import Tick
from ..timeframes import timeframe_to_ms, validate_timeframe

logger = logging.getLogger(__name__)

BASE_URL = "https://api.binance.com"
STREAM_URL = "wss://stream.binance.com:9443/ws"
MAX_KLINES_PER_REQUEST = 1000


def trade_stream_url(symbol: str) -> str:
    return f"{STREAM_URL}/{symbol.lower()}@aggTrade"


def parse_klines(rows: List[List[Any]]) -> List[List[float]]:
    """[open_time, o, h, l, c, v, ...] kline rows into [ts, o, h, l, c, v] floats."""
    out: List[List[float]] = []
    for row in rows:
        if not row or len(row) < 6:
            continue
        try:
            out.append([int(row[0]), float(row[1]), float(row[2]), float(row[3]), float(row[4]), float(row[5])])
        except (TypeError, ValueError):
            logger.warning("Skipping malformed kline row: %r", row)
    return out


def fetch_historical(
    symbol: str,
    timeframe: str,
    limit: int = 1000,
    end_ms: Optional[int] = None,
    session: Optional[requests.Session] = None,
    timeout: float = 10.0,
) -> List[List[float]]:
    """Most recent `limit` candles ending at `end_ms` (or now), oldest first.

    Pages backwards in chunks of 1000, the exchange maximum per request.
    """
    validate_timeframe(timeframe)
    http = session or requests.Session()
    interval_ms = timeframe_to_ms(timeframe)
    remaining = max(1, int(limit))
    cursor_end = end_ms
    pages: List[List[List[float]]] = []
    while remaining > 0:
        params = {"symbol": symbol.upper(), "interval": timeframe, "limit": min(remaining, MAX_KLINES_PER_REQUEST)}
        if cursor_end is not None:
            params["endTime"] = int(cursor_end)
        resp = http.get(f"{BASE_URL}/api/v3/klines", params=params, timeout=timeout)
        resp.raise_for_status()
        rows = parse_klines(resp.json())
        if not rows:
            break
        pages.append(rows)
        remaining -= len(rows)
        if len(rows) < params["limit"]:
            break
        cursor_end = int(rows[0][0]) - interval_ms
    bars: List[List[float]] = []
    for page in reversed(pages):
        bars.extend(page)
    logger.info("Fetched %d %s %s candles", len(bars), symbol, timeframe)
    return bars


def fetch_symbols(session: Optional[requests.Session] = None, timeout: float = 10.0) -> List[str]:
    http = session or requests.Session()
    resp = http.get(f"{BASE_URL}/api/v3/exchangeInfo", timeout=timeout)
    resp.raise_for_status()
    symbols = [s.get("symbol") for s in resp.json().get("symbols", []) if s.get("status") == "TRADING"]
    return sorted(s for s in symbols if s)


def parse_trade_message(message: Any) -> Optional[Tick]:
    """Trade or aggTrade stream payload to a Tick; None for non-trade frames."""
    if isinstance(message, (str, bytes)):
        try:
            payload = json.loads(message)
        except ValueError as exc:
            raise InvalidCandleError(f"trade message is not JSON: {exc}") from exc
    else:
        payload = message
    if not isinstance(payload, dict):
        raise InvalidCandleError(f"unexpected trade payload: {payload!r}")
    if "data" in payload and isinstance(payload["data"], dict):
        payload = payload["data"]
    if payload.get("e") not in ("trade", "aggTrade") and "p" not in payload:
        return None
    return Tick.from_any({
        "timestamp": payload.get("T", payload.get("E")),
        "price": payload.get("p"),
        "volume": payload.get("q", 0.0),
    })
