from typing import Dict, Optional, Sequence, Tuple

import pyqtgraph as pg
from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QColor, QFont, QImage, QPainter, QPolygonF

from engine.render_target import RenderTarget


class QtRenderTarget(RenderTarget):
    """Paints one chart layer into a QImage sized to the widget (device pixels)."""

    def __init__(self, font_family: str = '') -> None:
        self.image = QImage(1, 1, QImage.Format.Format_ARGB32_Premultiplied)
        self.image.fill(Qt.GlobalColor.transparent)
        self._painter: Optional[QPainter] = None
        self._font_family = font_family
        self._pen_cache: Dict[Tuple[str, float, Optional[Tuple[float, ...]]], pg.QtGui.QPen] = {}
        self._brush_cache: Dict[str, pg.QtGui.QBrush] = {}
        self._font_cache: Dict[float, QFont] = {}

    def begin(self, width: float, height: float, pixel_ratio: float = 1.0) -> None:
        w = max(1, int(round(width * pixel_ratio)))
        h = max(1, int(round(height * pixel_ratio)))
        if self.image.width() != w or self.image.height() != h:
            self.image = QImage(w, h, QImage.Format.Format_ARGB32_Premultiplied)
        self.image.setDevicePixelRatio(pixel_ratio)
        self._painter = QPainter(self.image)
        self._painter.setRenderHint(QPainter.RenderHint.Antialiasing, True)
        self._painter.setRenderHint(QPainter.RenderHint.TextAntialiasing, True)

    def end(self) -> None:
        if self._painter is not None:
            self._painter.end()
            self._painter = None

    def _pen(self, color: str, width: float = 1.0, dash: Optional[Sequence[float]] = None) -> pg.QtGui.QPen:
        key = (color, float(width), tuple(dash) if dash else None)
        pen = self._pen_cache.get(key)
        if pen is None:
            pen = pg.mkPen(pg.mkColor(color), width=width)
            if dash:
                pen.setDashPattern([float(d) / max(width, 1.0) for d in dash])
            self._pen_cache[key] = pen
        return pen

    def _brush(self, color: str) -> pg.QtGui.QBrush:
        brush = self._brush_cache.get(color)
        if brush is None:
            brush = pg.mkBrush(pg.mkColor(color))
            self._brush_cache[color] = brush
        return brush

    def _font(self, size: float) -> QFont:
        font = self._font_cache.get(size)
        if font is None:
            font = QFont(self._font_family) if self._font_family else QFont()
            font.setPointSizeF(size * 0.75)
            self._font_cache[size] = font
        return font

    def clear(self, color: Optional[str] = None) -> None:
        painter = self._painter
        painter.save()
        painter.setClipping(False)
        painter.setCompositionMode(QPainter.CompositionMode.CompositionMode_Source)
        size = self.image.deviceIndependentSize()
        painter.fillRect(QRectF(0, 0, size.width(), size.height()), pg.mkColor(color) if color else QColor(0, 0, 0, 0))
        painter.restore()

    def set_clip(self, rect) -> None:
        if rect is None:
            self._painter.setClipping(False)
            return
        x, y, w, h = rect
        self._painter.setClipRect(QRectF(x, y, w, h))

    def line(self, x1, y1, x2, y2, color, width=1.0, dash=None) -> None:
        self._painter.setPen(self._pen(color, width, dash))
        self._painter.drawLine(QPointF(x1, y1), QPointF(x2, y2))

    def rect(self, x, y, w, h, fill=None, stroke=None) -> None:
        self._painter.setPen(self._pen(stroke) if stroke else Qt.PenStyle.NoPen)
        self._painter.setBrush(self._brush(fill) if fill else Qt.BrushStyle.NoBrush)
        self._painter.drawRect(QRectF(x, y, w, h))

    def polyline(self, points, color, width=1.0) -> None:
        if len(points) < 2:
            return
        self._painter.setPen(self._pen(color, width))
        self._painter.setBrush(Qt.BrushStyle.NoBrush)
        self._painter.drawPolyline(QPolygonF([QPointF(x, y) for x, y in points]))

    def polygon(self, points, fill) -> None:
        if len(points) < 3:
            return
        self._painter.setPen(Qt.PenStyle.NoPen)
        self._painter.setBrush(self._brush(fill))
        self._painter.drawPolygon(QPolygonF([QPointF(x, y) for x, y in points]))

    def text(self, x, y, text, color, align='left', size=11.0) -> None:
        self._painter.setPen(self._pen(color))
        self._painter.setFont(self._font(size))
        height = size * 2.0
        width = 400.0
        if align == 'center':
            box = QRectF(x - width / 2.0, y - height / 2.0, width, height)
            flags = Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignVCenter
        elif align == 'right':
            box = QRectF(x - width, y - height / 2.0, width, height)
            flags = Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter
        else:
            box = QRectF(x, y - height / 2.0, width, height)
            flags = Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter
        self._painter.drawText(box, flags, text)
