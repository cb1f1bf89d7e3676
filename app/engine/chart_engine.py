from __future__ import annotations

from dataclasses import replace
from datetime import tzinfo
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import ChartSettings, EngineConfig
from .errors import ChartEngineError, InvalidSeriesError
from .indicator_manager import IndicatorManager, IndicatorResult
from .indicator_registry import IndicatorInfo
from .input_controller import InputController, InputEvent, InputResult
from .models import (
    CHART_TYPES,
    THEMES,
    Crosshair,
    Dimensions,
    Indicator,
    LoadState,
    PriceRange,
    Tick,
    Tooltip,
    VisibleState,
)
from .ranges import EMPTY_PRICE_RANGE, calculate_price_range, calculate_time_range
from .render_pipeline import Frame, IndicatorLayer, RenderPipeline, layout_bands
from .render_target import RenderTarget
from .series_store import SeriesStore
from .timeframes import validate_timeframe
from .viewport import ViewportController

logger = logging.getLogger(__name__)


class ChartEngine:
    """One chart: a single (symbol, timeframe) series, its viewport and both render layers.

    The host feeds it surface sizes, input events, historical batches and live
    ticks, then calls ``render`` whenever ``needs_render`` is set. Nothing here
    touches a GUI toolkit.
    """

    def __init__(
        self,
        symbol: str,
        timeframe: str = "1m",
        settings: Optional[ChartSettings] = None,
        config: Optional[EngineConfig] = None,
        error_sink=None,
        registry: Optional[Dict[str, IndicatorInfo]] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.settings = (settings or ChartSettings()).validate()
        self.error_sink = error_sink
        self.tz = tz
        self.store = self._make_store(symbol, validate_timeframe(timeframe))
        self.viewport = ViewportController(self.settings, self.config)
        self.indicators = IndicatorManager(registry)
        self.pipeline = RenderPipeline(self.config)
        self.input = InputController(
            self.viewport,
            lambda: self.store.candles,
            lambda: self._price_range,
            self.config,
            price_band=self._price_band,
        )
        self.load_state = LoadState()
        self._request_seq = 0
        self._active_request: Optional[int] = None
        self._pending_ticks: List[Any] = []
        self._pending_size: Optional[Tuple[float, float, float]] = None
        self._price_range: PriceRange = EMPTY_PRICE_RANGE
        self._results: Dict[str, IndicatorResult] = {}
        self._indicators_stale = True
        self._reported_unavailable: Dict[str, str] = {}

    # -- identity -----------------------------------------------------

    @property
    def symbol(self) -> str:
        return self.store.symbol

    @property
    def timeframe(self) -> str:
        return self.store.timeframe

    @property
    def key(self) -> Tuple[str, str]:
        return self.store.key

    @property
    def needs_render(self) -> bool:
        return self.pipeline.static_dirty or self.pipeline.overlay_dirty

    @property
    def crosshair(self) -> Crosshair:
        return self.input.crosshair

    @property
    def tooltip(self) -> Tooltip:
        return self.input.tooltip

    @property
    def price_range(self) -> PriceRange:
        return self._price_range

    # -- configuration surface -----------------------------------------

    def set_chart_type(self, chart_type: str) -> None:
        if chart_type not in CHART_TYPES:
            raise ValueError(f"Unsupported chart type: {chart_type!r} (expected one of {', '.join(CHART_TYPES)})")
        self._apply_settings(replace(self.settings, chart_type=chart_type))

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unsupported theme: {theme!r} (expected one of {', '.join(THEMES)})")
        self._apply_settings(replace(self.settings, theme=theme), overlay=True)

    def toggle_volume(self, show: Optional[bool] = None) -> bool:
        show = (not self.settings.show_volume) if show is None else bool(show)
        self._apply_settings(replace(self.settings, show_volume=show))
        return show

    def toggle_grid(self, show: Optional[bool] = None) -> bool:
        show = (not self.settings.grid_lines) if show is None else bool(show)
        self._apply_settings(replace(self.settings, grid_lines=show))
        return show

    def set_timeframe(self, timeframe: str) -> None:
        """Switch to another timeframe; the series starts empty until the next load completes."""
        validate_timeframe(timeframe)
        if timeframe == self.timeframe:
            return
        self._switch_series(self.symbol, timeframe)

    def set_symbol(self, symbol: str) -> None:
        if not symbol or symbol == self.symbol:
            return
        self._switch_series(symbol, self.timeframe)

    def add_indicator(self, spec: Any) -> Indicator:
        indicator = self.indicators.add(spec)
        self._indicators_stale = True
        self.pipeline.invalidate(static=True, overlay=False)
        return indicator

    def remove_indicator(self, indicator_id: str) -> None:
        self.indicators.remove(indicator_id)
        self._results.pop(indicator_id, None)
        self._reported_unavailable.pop(indicator_id, None)
        self.pipeline.invalidate(static=True, overlay=False)

    def toggle_indicator(self, indicator_id: str, visible: Optional[bool] = None) -> bool:
        # Visibility only changes what is drawn; the series and results stay as they are.
        shown = self.indicators.toggle(indicator_id, visible)
        self.pipeline.invalidate(static=True, overlay=False)
        return shown

    # -- surface ----------------------------------------------------------

    def resize(self, width: float, height: float, pixel_ratio: float = 1.0) -> None:
        dims = Dimensions.from_surface(
            width,
            height,
            self.config.margin_top,
            self.config.margin_bottom,
            self.config.margin_left,
            self.config.margin_right,
            pixel_ratio,
        )
        if dims == self.viewport.dimensions:
            return
        self.viewport.resize(dims)
        self._update_price_range()
        self.input.refresh()
        self.pipeline.invalidate()

    def request_resize(self, width: float, height: float, pixel_ratio: float = 1.0) -> None:
        """Record a new surface size; applied once by ``apply_pending_resize``."""
        self._pending_size = (width, height, pixel_ratio)

    def apply_pending_resize(self) -> bool:
        if self._pending_size is None:
            return False
        width, height, pixel_ratio = self._pending_size
        self._pending_size = None
        self.resize(width, height, pixel_ratio)
        return True

    # -- historical loads -------------------------------------------------

    def begin_load(self) -> int:
        self._request_seq += 1
        self._active_request = self._request_seq
        self.load_state = LoadState("loading")
        logger.info("%s %s: load #%d started", self.symbol, self.timeframe, self._request_seq)
        return self._request_seq

    def retry(self) -> int:
        return self.begin_load()

    def is_current(self, token: int) -> bool:
        return token is not None and token == self._active_request

    def complete_load(self, token: int, candles: Iterable[Any]) -> bool:
        """Install a historical batch; False if the token is stale or the batch is invalid."""
        if not self.is_current(token):
            logger.info("%s %s: discarding stale load #%s", self.symbol, self.timeframe, token)
            return False
        rows = list(candles)
        limit = self.config.history_limit
        if limit and len(rows) > limit:
            rows = rows[-limit:]
        try:
            self.store.replace(rows)
        except InvalidSeriesError as exc:
            self.fail_load(token, f"{self.symbol} {self.timeframe}: invalid history ({exc})")
            return False
        self._active_request = None
        self.load_state = LoadState("ready")
        self.viewport.reset(len(self.store))
        self._drop_covered_ticks()
        self._update_price_range()
        self.input.refresh()
        self.pipeline.invalidate()
        return True

    def fail_load(self, token: int, message: str) -> bool:
        if not self.is_current(token):
            logger.info("%s %s: ignoring failure of stale load #%s", self.symbol, self.timeframe, token)
            return False
        self._active_request = None
        self.load_state = LoadState("error", message, can_retry=True)
        logger.warning("%s", message)
        self._report_error(message)
        self.pipeline.invalidate(static=True, overlay=False)
        return True

    # -- live data --------------------------------------------------------

    def on_tick(self, tick: Any, symbol: Optional[str] = None) -> Optional[str]:
        """Apply one tick now. Returns 'update', 'append' or None when it was ignored or dropped."""
        if symbol is not None and symbol != self.symbol:
            return None
        try:
            return self.store.apply_tick(tick)
        except ChartEngineError as exc:
            message = f"{self.symbol} {self.timeframe}: dropped tick ({exc})"
            logger.warning("%s", message)
            self._report_error(message)
            return None

    def push_tick(self, tick: Any, symbol: Optional[str] = None) -> bool:
        """Queue a tick for the next ``flush``; ticks for other symbols are ignored."""
        if symbol is not None and symbol != self.symbol:
            return False
        self._pending_ticks.append(tick)
        return True

    @property
    def pending_ticks(self) -> int:
        return len(self._pending_ticks)

    def flush(self) -> int:
        """Apply queued ticks in arrival order; returns how many were applied."""
        if not self._pending_ticks:
            return 0
        if not len(self.store):
            # Nothing to merge into until history arrives.
            return 0
        pending, self._pending_ticks = self._pending_ticks, []
        applied = 0
        for tick in pending:
            if self.on_tick(tick) is not None:
                applied += 1
        return applied

    # -- input ------------------------------------------------------------

    def handle_event(self, event: InputEvent) -> InputResult:
        result = self.input.handle(event)
        if result.viewport_changed:
            self._update_price_range()
            self.pipeline.invalidate(static=True, overlay=False)
        if result.overlay_changed:
            self.pipeline.invalidate(static=False, overlay=True)
        return result

    # -- snapshots ----------------------------------------------------------

    def visible_state(self) -> VisibleState:
        vp = self.viewport.viewport
        return VisibleState(
            start_index=vp.start_index,
            end_index=vp.end_index,
            price_range=self._price_range,
            time_range=calculate_time_range(self.store.candles, vp.start_index, vp.end_index),
        )

    def indicator_results(self) -> Dict[str, IndicatorResult]:
        self._ensure_indicators()
        return dict(self._results)

    def summary(self) -> Dict[str, Any]:
        """Header readout: last price and change against the previous close."""
        candles = self.store.candles
        out: Dict[str, Any] = {
            "symbol": self.symbol,
            "timeframe": self.timeframe,
            "count": len(candles),
            "last": None,
            "change": None,
            "change_pct": None,
            "status": self.load_state.status,
        }
        if not candles:
            return out
        last = candles[-1]
        reference = candles[-2].close if len(candles) > 1 else last.open
        change = last.close - reference
        out["last"] = last.close
        out["change"] = change
        out["change_pct"] = (change / reference * 100.0) if reference else 0.0
        return out

    # -- rendering ----------------------------------------------------------

    def frame(self) -> Frame:
        self._ensure_indicators()
        layers = [
            IndicatorLayer(ind, self._results.get(ind.id) or IndicatorResult(ind.id, False, error="not computed"))
            for ind in self.indicators.indicators
        ]
        return Frame(
            candles=self.store.candles,
            viewport=self.viewport.viewport,
            dimensions=self.viewport.dimensions,
            settings=self.settings,
            price_range=self._price_range,
            candle_width=self.viewport.candle_width,
            candle_spacing=self.viewport.candle_spacing,
            origin_x=self.viewport.origin_x,
            timeframe_ms=self.store.timeframe_ms,
            indicators=layers,
            crosshair=self.input.crosshair,
            tooltip=self.input.tooltip,
            tz=self.tz,
        )

    def render(self, static_target: RenderTarget, overlay_target: RenderTarget) -> Tuple[bool, bool]:
        return self.pipeline.render(self.frame(), static_target, overlay_target)

    # -- internals ------------------------------------------------------------

    def _make_store(self, symbol: str, timeframe: str) -> SeriesStore:
        store = SeriesStore(symbol, timeframe)
        store.add_listener(self._on_series_changed)
        return store

    def _switch_series(self, symbol: str, timeframe: str) -> None:
        self.store.remove_listener(self._on_series_changed)
        self.store = self._make_store(symbol, timeframe)
        self._active_request = None
        self._pending_ticks = []
        self.load_state = LoadState()
        self.input.cancel()
        self.viewport.reset(0)
        self._indicators_stale = True
        self._reported_unavailable.clear()
        self._update_price_range()
        self.pipeline.invalidate()
        logger.info("Switched chart to %s %s", symbol, timeframe)

    def _apply_settings(self, settings: ChartSettings, overlay: bool = False) -> None:
        if settings == self.settings:
            return
        self.settings = settings.validate()
        self.viewport.set_settings(self.settings)
        self._update_price_range()
        self.pipeline.invalidate(static=True, overlay=overlay)

    def _on_series_changed(self, kind: str, index: int) -> None:
        if kind == "append":
            self.viewport.set_series_length(len(self.store), follow_latest=True)
        elif kind == "replace":
            self.viewport.set_series_length(len(self.store), follow_latest=False)
        self._indicators_stale = True
        self._update_price_range()
        if self.input.refresh():
            self.pipeline.invalidate(static=False, overlay=True)
        self.pipeline.invalidate(static=True, overlay=False)

    def _drop_covered_ticks(self) -> None:
        last = self.store.last
        if last is None or not self._pending_ticks:
            return
        kept = []
        for tick in self._pending_ticks:
            try:
                ts = Tick.from_any(tick).timestamp
            except ChartEngineError:
                kept.append(tick)
                continue
            if ts >= last.timestamp:
                kept.append(tick)
        skipped = len(self._pending_ticks) - len(kept)
        if skipped:
            logger.debug("%s %s: %d queued ticks already covered by history", self.symbol, self.timeframe, skipped)
        self._pending_ticks = kept

    def _update_price_range(self) -> None:
        vp = self.viewport.viewport
        self._price_range = calculate_price_range(
            self.store.candles,
            vp.start_index,
            vp.end_index,
            self.config.price_padding,
            self.config.flat_range_fraction,
            self.config.flat_range_unit,
        )

    def _price_band(self) -> Tuple[float, float]:
        self._ensure_indicators()
        has_oscillator = any(
            ind.visible and self._results.get(ind.id) is not None and self._results[ind.id].available and self._results[ind.id].pane != "price"
            for ind in self.indicators.indicators
        )
        bands = layout_bands(self.viewport.dimensions, self.config, self.settings.show_volume, has_oscillator)
        return bands.price_top, bands.price_height

    def _ensure_indicators(self) -> None:
        if not self._indicators_stale:
            return
        self._indicators_stale = False
        self._results = self.indicators.compute_all(self.store.to_numpy())
        for indicator_id, result in self._results.items():
            if result.available:
                self._reported_unavailable.pop(indicator_id, None)
                continue
            if not len(self.store) or self._reported_unavailable.get(indicator_id) == result.error:
                continue
            self._reported_unavailable[indicator_id] = result.error
            logger.info("Indicator %s unavailable: %s", indicator_id, result.error)
            self._report_error(f"Indicator unavailable: {result.error}")

    def _report_error(self, message: str) -> None:
        if self.error_sink is None:
            return
        try:
            self.error_sink.append_error(message)
        except Exception:
            logger.exception("Error sink rejected message: %s", message)
