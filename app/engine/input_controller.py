from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

from .config import EngineConfig
from .coordinates import candle_center_x, x_to_index, y_to_price
from .models import HIDDEN_CROSSHAIR, HIDDEN_TOOLTIP, Candle, Crosshair, PriceRange, Tooltip
from .viewport import ViewportController


@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float
    button: str = 'left'


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: float
    y: float


@dataclass(frozen=True)
class PointerLeave:
    pass


@dataclass(frozen=True)
class WindowPointerUp:
    """Button released anywhere in the window, possibly outside the plot."""


@dataclass(frozen=True)
class Wheel:
    x: float
    y: float
    delta: float


InputEvent = Union[PointerDown, PointerMove, PointerUp, PointerLeave, WindowPointerUp, Wheel]


@dataclass(frozen=True)
class InputResult:
    viewport_changed: bool = False
    overlay_changed: bool = False
    prevent_default: bool = False


NO_CHANGE = InputResult()


class InputController:
    """Turns pointer and wheel events into viewport transitions and crosshair state.

    Only one gesture is live at a time: while a drag holds the capture, wheel
    events are swallowed without zooming.
    """

    def __init__(
        self,
        viewport: ViewportController,
        candles: Callable[[], Sequence[Candle]],
        price_range: Callable[[], PriceRange],
        config: Optional[EngineConfig] = None,
        price_band: Optional[Callable[[], Tuple[float, float]]] = None,
    ) -> None:
        self.viewport = viewport
        self._candles = candles
        self._price_range = price_range
        self._price_band = price_band
        self.config = config or viewport.config
        self._dragging = False
        self._last_x = 0.0
        self.crosshair: Crosshair = HIDDEN_CROSSHAIR
        self.tooltip: Tooltip = HIDDEN_TOOLTIP

    @property
    def is_dragging(self) -> bool:
        return self._dragging

    @property
    def active_gesture(self) -> Optional[str]:
        return 'drag' if self._dragging else None

    def handle(self, event: InputEvent) -> InputResult:
        if isinstance(event, PointerMove):
            return self._on_move(event.x, event.y)
        if isinstance(event, Wheel):
            return self._on_wheel(event)
        if isinstance(event, PointerDown):
            return self._on_down(event)
        if isinstance(event, PointerUp):
            released = self._release()
            moved = self._hover(event.x, event.y)
            return InputResult(overlay_changed=released or moved)
        if isinstance(event, WindowPointerUp):
            self._release()
            return NO_CHANGE
        if isinstance(event, PointerLeave):
            return InputResult(overlay_changed=self._hide())
        raise TypeError(f'Unsupported input event: {event!r}')

    def cancel(self) -> bool:
        """Drop any live gesture and hide the crosshair (symbol/timeframe change)."""
        self._dragging = False
        return self._hide()

    def refresh(self) -> bool:
        """Re-resolve the crosshair after the data or viewport moved under a resting pointer."""
        if not self.crosshair.visible:
            return False
        return self._hover(self.crosshair.x, self.crosshair.y)

    def _on_down(self, event: PointerDown) -> InputResult:
        if event.button != 'left' or not self.viewport.dimensions.contains(event.x, event.y):
            return NO_CHANGE
        self._dragging = True
        self._last_x = event.x
        return InputResult(overlay_changed=self._hide())

    def _on_move(self, x: float, y: float) -> InputResult:
        if self._dragging:
            delta = x - self._last_x
            self._last_x = x
            if delta == 0:
                return NO_CHANGE
            before = self.viewport.viewport
            after = self.viewport.pan(delta)
            return InputResult(viewport_changed=after != before)
        return InputResult(overlay_changed=self._hover(x, y))

    def _on_wheel(self, event: Wheel) -> InputResult:
        if self._dragging or event.delta == 0:
            return InputResult(prevent_default=True)
        notches = max(1, int(round(abs(event.delta) / self.config.wheel_notch)))
        step = self.config.zoom_in_factor if event.delta > 0 else self.config.zoom_out_factor
        before = self.viewport.viewport
        after = self.viewport.zoom(step ** notches, event.x)
        changed = after != before
        overlay = self._hover(event.x, event.y) if changed else False
        return InputResult(viewport_changed=changed, overlay_changed=overlay, prevent_default=True)

    def _release(self) -> bool:
        was_dragging = self._dragging
        self._dragging = False
        return was_dragging

    def _hide(self) -> bool:
        changed = self.crosshair.visible or self.tooltip.visible
        self.crosshair = HIDDEN_CROSSHAIR
        self.tooltip = HIDDEN_TOOLTIP
        return changed

    def _hover(self, x: float, y: float) -> bool:
        dims = self.viewport.dimensions
        candles = self._candles()
        if dims.is_empty or not candles or not dims.contains(x, y):
            return self._hide()
        vp = self.viewport.viewport
        cw = self.viewport.candle_width
        cs = self.viewport.candle_spacing
        origin = self.viewport.origin_x
        index = x_to_index(x, cw, cs, origin)
        if index < vp.start_index or index > vp.end_index or index >= len(candles):
            return self._hide()
        candle = candles[index]
        band_top, band_height = self._price_band() if self._price_band else (dims.margin_top, dims.chart_height)
        price: Optional[float] = None
        if band_top <= y <= band_top + band_height:
            price = y_to_price(y, self._price_range(), band_height, band_top)
        off_x, off_y = self.config.tooltip_offset
        crosshair = Crosshair(
            x=candle_center_x(index, cw, cs, origin),
            y=y,
            timestamp=candle.timestamp,
            price=price,
            index=index,
            visible=True,
        )
        tooltip = Tooltip(x=x + off_x, y=y + off_y, ohlc=candle, visible=True)
        changed = crosshair != self.crosshair or tooltip != self.tooltip
        self.crosshair = crosshair
        self.tooltip = tooltip
        return changed
