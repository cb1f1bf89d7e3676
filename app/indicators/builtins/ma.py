def schema():
    return {
        "id": "ma",
        "type": "MA",
        "name": "Moving Average",
        "pane": "price",
        "inputs": {
            "length": {"type": "int", "default": 20, "min": 1, "max": 500},
            "source": {"type": "select", "default": "close", "options": ["open", "high", "low", "close"]},
            "kind": {"type": "select", "default": "sma", "options": ["sma", "ema"]},
            "color": {"type": "color", "default": "#42A5F5"},
        },
    }


def compute(bars, params, ctx):
    length = int(params.get("length", 20))
    ctx.lookback(length)
    src = ctx.series(bars, params.get("source", "close"))
    if params.get("kind", "sma") == "ema":
        values = ctx.ema(src, length)
    else:
        values = ctx.sma(src, length)
    return {
        "pane": "price",
        "series": [
            {"type": "line", "id": "ma", "values": values, "color": params.get("color", "#42A5F5"), "width": 1}
        ],
    }
