"""
Value types shared by the capture engine.

Three coordinate spaces are in play:
- content space: relative to the full content extent of a scroll surface, stable under scrolling
- viewport space: relative to the visible window, content minus scroll offset (plus the container origin)
- device-pixel space: viewport space multiplied by the device pixel ratio, used to crop rasters
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Point:
    x: float = 0
    y: float = 0


@dataclass(frozen=True)
class Size:
    w: float = 0
    h: float = 0


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self):
        return self.x + self.width

    @property
    def bottom(self):
        return self.y + self.height

    def contains(self, point: Point) -> bool:
        return self.x <= point.x <= self.right and self.y <= point.y <= self.bottom

    def intersects(self, other: 'Rect') -> bool:
        return (self.x < other.right and other.x < self.right
                and self.y < other.bottom and other.y < self.bottom)

    def as_box(self):
        """Pillow style (left, upper, right, lower) box."""
        return (int(self.x), int(self.y), int(self.right), int(self.bottom))

    @classmethod
    def from_dict(cls, d):
        return cls(x=d.get('x', 0), y=d.get('y', 0), width=d.get('width', 0), height=d.get('height', 0))


@dataclass(frozen=True)
class ScrollMetrics:
    """
    Fresh geometry of one scroll surface, read at the start of every operation.

    `origin` is where the surface's visible box sits inside the outer window (always 0,0 for the
    window itself), `viewport_extent` excludes scrollbars, `window_extent` is the outer window size.
    """
    content_extent: Size
    viewport_extent: Size
    scroll_offset: Point
    device_pixel_ratio: float = 1.0
    origin: Point = field(default_factory=Point)
    window_extent: Optional[Size] = None

    @property
    def max_scroll(self) -> Point:
        return Point(x=max(0, self.content_extent.w - self.viewport_extent.w),
                     y=max(0, self.content_extent.h - self.viewport_extent.h))

    @property
    def content_rect(self) -> Rect:
        return Rect(0, 0, self.content_extent.w, self.content_extent.h)

    @classmethod
    def from_dict(cls, d):
        window = d.get('window')
        return cls(
            content_extent=Size(w=d['contentWidth'], h=d['contentHeight']),
            viewport_extent=Size(w=d['viewportWidth'], h=d['viewportHeight']),
            scroll_offset=Point(x=d.get('scrollX', 0), y=d.get('scrollY', 0)),
            device_pixel_ratio=d.get('devicePixelRatio') or 1.0,
            origin=Point(x=d.get('originX', 0), y=d.get('originY', 0)),
            window_extent=Size(w=window['width'], h=window['height']) if window else None,
        )


@dataclass(frozen=True)
class RasterTile:
    # image is the encoded raster as returned by the host, document_y and height are device pixels
    image: bytes
    document_y: int = 0
    height: int = 0
    is_last: bool = False


@dataclass(frozen=True)
class TilePlan:
    """One planned full-page capture step."""
    index: int
    scroll_y: float
    document_y: int
    height: int
    is_last: bool


@dataclass
class CaptureResult:
    success: bool
    image: Optional[bytes] = None
    width: int = 0
    height: int = 0
    format: str = 'png'
    error: Optional[str] = None
    message: str = ''
    cancelled: bool = False

    @property
    def dimensions(self):
        return Size(w=self.width, h=self.height)

    @classmethod
    def ok(cls, image, width, height, format='png'):
        return cls(success=True, image=image, width=int(width), height=int(height), format=format)

    @classmethod
    def failed(cls, kind, message='', cancelled=False):
        return cls(success=False, error=kind, message=message, cancelled=cancelled)
