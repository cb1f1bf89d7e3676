import math

TIMEFRAMES = ('1m', '5m', '15m', '1h', '4h', '1d', '1w')


def timeframe_to_ms(timeframe: str) -> int:
    if not timeframe:
        return 60_000
    unit = timeframe[-1]
    try:
        mult = int(timeframe[:-1])
    except (ValueError, TypeError):
        return 60_000
    if unit == 'm':
        return mult * 60_000
    if unit == 'h':
        return mult * 3_600_000
    if unit == 'd':
        return mult * 86_400_000
    if unit == 'w':
        return mult * 7 * 86_400_000
    return 60_000


def validate_timeframe(timeframe: str) -> str:
    if timeframe not in TIMEFRAMES:
        raise ValueError(f'Unsupported timeframe: {timeframe!r} (expected one of {", ".join(TIMEFRAMES)})')
    return timeframe


def bucket_start(ts: float, anchor_ts: int, interval_ms: int) -> int:
    """Start of the bucket holding `ts` on the grid anchored at `anchor_ts`."""
    if interval_ms <= 0:
        return int(ts)
    steps = math.floor((float(ts) - anchor_ts) / interval_ms)
    return int(anchor_ts + steps * interval_ms)
