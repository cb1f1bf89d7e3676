from typing import Optional

from PyQt6.QtCore import QPointF, Qt, QTimer, pyqtSignal
from PyQt6.QtGui import QPainter
from PyQt6.QtWidgets import QSizePolicy, QWidget

from engine.chart_engine import ChartEngine
from engine.input_controller import PointerDown, PointerLeave, PointerMove, PointerUp, Wheel, WindowPointerUp
from .qt_target import QtRenderTarget

FRAME_INTERVAL_MS = 16


class ChartWidget(QWidget):
    """Hosts a ChartEngine: two cached image layers plus Qt event translation.

    Resizes and live ticks are coalesced onto one frame timer so a burst of
    either costs a single repaint.
    """

    state_changed = pyqtSignal()

    def __init__(self, engine: ChartEngine, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.engine = engine
        self.static_layer = QtRenderTarget()
        self.overlay_layer = QtRenderTarget()
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setMinimumSize(200, 150)
        self._frame_timer = QTimer(self)
        self._frame_timer.setSingleShot(True)
        self._frame_timer.setInterval(FRAME_INTERVAL_MS)
        self._frame_timer.timeout.connect(self._on_frame)

    def schedule_frame(self) -> None:
        if not self._frame_timer.isActive():
            self._frame_timer.start()

    def push_tick(self, tick, symbol: Optional[str] = None) -> None:
        if self.engine.push_tick(tick, symbol):
            self.schedule_frame()

    def _on_frame(self) -> None:
        self.engine.apply_pending_resize()
        applied = self.engine.flush()
        if self.engine.needs_render:
            self.update()
        if applied:
            self.state_changed.emit()

    def refresh(self) -> None:
        """Repaint after a configuration change made directly on the engine."""
        if self.engine.needs_render:
            self.update()
        self.state_changed.emit()

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        self.engine.request_resize(self.width(), self.height(), self.devicePixelRatioF())
        self.schedule_frame()

    def showEvent(self, event) -> None:
        super().showEvent(event)
        self.engine.resize(self.width(), self.height(), self.devicePixelRatioF())
        self.update()

    def paintEvent(self, event) -> None:
        self.engine.apply_pending_resize()
        self.engine.render(self.static_layer, self.overlay_layer)
        painter = QPainter(self)
        painter.drawImage(QPointF(0, 0), self.static_layer.image)
        painter.drawImage(QPointF(0, 0), self.overlay_layer.image)
        painter.end()

    def _dispatch(self, event) -> bool:
        result = self.engine.handle_event(event)
        if result.viewport_changed or result.overlay_changed:
            self.update()
        return result.prevent_default

    def mousePressEvent(self, event) -> None:
        pos = event.position()
        button = 'left' if event.button() == Qt.MouseButton.LeftButton else 'other'
        self._dispatch(PointerDown(pos.x(), pos.y(), button))
        event.accept()

    def mouseMoveEvent(self, event) -> None:
        pos = event.position()
        self._dispatch(PointerMove(pos.x(), pos.y()))
        event.accept()

    def mouseReleaseEvent(self, event) -> None:
        pos = event.position()
        # Qt keeps delivering to the pressed widget, so a release outside it is the window-level release.
        if self.rect().contains(pos.toPoint()):
            self._dispatch(PointerUp(pos.x(), pos.y()))
        else:
            self._dispatch(WindowPointerUp())
        event.accept()

    def leaveEvent(self, event) -> None:
        self._dispatch(PointerLeave())
        super().leaveEvent(event)

    def wheelEvent(self, event) -> None:
        pos = event.position()
        delta = event.angleDelta().y()
        if self._dispatch(Wheel(pos.x(), pos.y(), float(delta))):
            event.accept()
        else:
            event.ignore()

    def grab_image(self):
        self.engine.render(self.static_layer, self.overlay_layer)
        image = self.static_layer.image.copy()
        painter = QPainter(image)
        painter.drawImage(QPointF(0, 0), self.overlay_layer.image)
        painter.end()
        return image
