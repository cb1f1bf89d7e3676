from __future__ import annotations

from dataclasses import dataclass, field
import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from indicators.runtime import run_compute

from .indicator_registry import IndicatorInfo, registry_by_type
from .models import Candle, Indicator

logger = logging.getLogger(__name__)


@dataclass
class IndicatorResult:
    indicator_id: str
    available: bool
    output: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    pane: str = "price"


class IndicatorManager:
    """Owns the indicator list and computes each one from the candle series.

    Computation never raises: an indicator that fails or lacks enough candles
    comes back unavailable and the others are unaffected.
    """

    def __init__(self, registry: Optional[Dict[str, IndicatorInfo]] = None) -> None:
        self.registry = registry if registry is not None else registry_by_type()
        self._indicators: Dict[str, Indicator] = {}
        self._counter = itertools.count(1)

    @property
    def indicators(self) -> List[Indicator]:
        return list(self._indicators.values())

    def get(self, indicator_id: str) -> Indicator:
        try:
            return self._indicators[indicator_id]
        except KeyError:
            raise KeyError(f"Unknown indicator id: {indicator_id!r}") from None

    def add(self, spec: Any) -> Indicator:
        """Register an indicator from an Indicator, a dict, or a bare type name."""
        if isinstance(spec, str):
            spec = {"type": spec}
        elif isinstance(spec, Indicator):
            spec = {"type": spec.type, "params": spec.params, "visible": spec.visible, "color": spec.color, "name": spec.name}
        ind_type = str(spec.get("type", "")).upper()
        info = self.registry.get(ind_type)
        if info is None:
            raise ValueError(f"Unsupported indicator type: {spec.get('type')!r} (available: {', '.join(sorted(self.registry))})")
        params = info.default_params()
        params.update(spec.get("params") or {})
        color = spec.get("color") or params.get("color") or params.get("macd_color") or "#42A5F5"
        if "color" in params:
            params["color"] = color
        indicator_id = f"{info.indicator_id}-{next(self._counter)}"
        indicator = Indicator(
            id=indicator_id,
            type=ind_type,
            params=params,
            visible=bool(spec.get("visible", True)),
            color=color,
            name=spec.get("name") or self._label(info, params),
        )
        self._indicators[indicator_id] = indicator
        return indicator

    def remove(self, indicator_id: str) -> None:
        self.get(indicator_id)
        del self._indicators[indicator_id]

    def toggle(self, indicator_id: str, visible: Optional[bool] = None) -> bool:
        indicator = self.get(indicator_id)
        indicator.visible = (not indicator.visible) if visible is None else bool(visible)
        return indicator.visible

    def compute_all(self, series: Union[np.ndarray, Sequence[Candle]]) -> Dict[str, IndicatorResult]:
        results: Dict[str, IndicatorResult] = {}
        for indicator in self._indicators.values():
            results[indicator.id] = self.compute(indicator, series)
        return results

    def compute(self, indicator: Indicator, series: Union[np.ndarray, Sequence[Candle]]) -> IndicatorResult:
        info = self.registry.get(indicator.type)
        if info is None:
            return IndicatorResult(indicator.id, False, error=f"{indicator.type} is not registered")
        try:
            output, lookback, samples = run_compute(series, dict(indicator.params), info.module.compute)
        except Exception as exc:
            logger.warning("Indicator %s failed: %s", indicator.id, exc)
            return IndicatorResult(indicator.id, False, error=f"{type(exc).__name__}: {exc}", pane=info.pane)
        if samples < lookback:
            return IndicatorResult(
                indicator.id,
                False,
                error=f"{indicator.name} needs {lookback} candles, have {samples}",
                pane=info.pane,
            )
        if not isinstance(output, dict):
            return IndicatorResult(indicator.id, False, error="compute() did not return a dict", pane=info.pane)
        return IndicatorResult(indicator.id, True, output=output, pane=str(output.get("pane") or info.pane))

    @staticmethod
    def _label(info: IndicatorInfo, params: Dict[str, Any]) -> str:
        lengths = [str(params[k]) for k in ("length", "fast", "slow", "signal") if k in params]
        if not lengths:
            return info.name
        return f"{info.name} ({', '.join(lengths)})"
