"""Drawing surface abstraction.

The render pipeline only talks to a ``RenderTarget``. The Qt widget backs it
with a QPainter drawing into one QImage per layer; tests use
``RecordingTarget`` to inspect what would have been drawn. Colors are
'#RRGGBB' or '#RRGGBBAA' strings; text is anchored on the vertical
centre of its line.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

Point = Tuple[float, float]


class RenderTarget:
    def begin(self, width: float, height: float, pixel_ratio: float = 1.0) -> None:
        pass

    def end(self) -> None:
        pass

    def clear(self, color: Optional[str] = None) -> None:
        raise NotImplementedError

    def set_clip(self, rect: Optional[Tuple[float, float, float, float]]) -> None:
        pass

    def line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float = 1.0, dash: Optional[Sequence[float]] = None) -> None:
        raise NotImplementedError

    def rect(self, x: float, y: float, w: float, h: float, fill: Optional[str] = None, stroke: Optional[str] = None) -> None:
        raise NotImplementedError

    def polyline(self, points: Sequence[Point], color: str, width: float = 1.0) -> None:
        raise NotImplementedError

    def polygon(self, points: Sequence[Point], fill: str) -> None:
        raise NotImplementedError

    def text(self, x: float, y: float, text: str, color: str, align: str = 'left', size: float = 11.0) -> None:
        raise NotImplementedError


@dataclass
class DrawCall:
    op: str
    args: Dict[str, Any] = field(default_factory=dict)


class RecordingTarget(RenderTarget):
    """Keeps every draw call of the last pass; used headless and in tests."""

    def __init__(self) -> None:
        self.calls: List[DrawCall] = []
        self.passes = 0
        self.size: Tuple[float, float] = (0.0, 0.0)

    def begin(self, width: float, height: float, pixel_ratio: float = 1.0) -> None:
        self.calls = []
        self.passes += 1
        self.size = (width, height)

    def clear(self, color: Optional[str] = None) -> None:
        self.calls.append(DrawCall('clear', {'color': color}))

    def set_clip(self, rect) -> None:
        self.calls.append(DrawCall('clip', {'rect': rect}))

    def line(self, x1, y1, x2, y2, color, width=1.0, dash=None) -> None:
        self.calls.append(DrawCall('line', {'x1': x1, 'y1': y1, 'x2': x2, 'y2': y2, 'color': color, 'width': width, 'dash': dash}))

    def rect(self, x, y, w, h, fill=None, stroke=None) -> None:
        self.calls.append(DrawCall('rect', {'x': x, 'y': y, 'w': w, 'h': h, 'fill': fill, 'stroke': stroke}))

    def polyline(self, points, color, width=1.0) -> None:
        self.calls.append(DrawCall('polyline', {'points': list(points), 'color': color, 'width': width}))

    def polygon(self, points, fill) -> None:
        self.calls.append(DrawCall('polygon', {'points': list(points), 'fill': fill}))

    def text(self, x, y, text, color, align='left', size=11.0) -> None:
        self.calls.append(DrawCall('text', {'x': x, 'y': y, 'text': text, 'color': color, 'align': align, 'size': size}))

    def ops(self, name: str) -> List[DrawCall]:
        return [c for c in self.calls if c.op == name]

    def texts(self) -> List[str]:
        return [c.args['text'] for c in self.calls if c.op == 'text']
