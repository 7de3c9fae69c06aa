"""
Scroll surfaces, the thing that actually moves when we capture.

A surface is either the top-level document (WindowSurface) or an internally-scrolling element
(ContainerSurface). It is decided once per interaction and never re-derived mid-operation, the
orchestrator only ever talks to it through measure(), scroll_to(), scroll_by() and viewport_offset().
"""

from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.exceptions import Unmeasurable
from scrollcaptureio.geometry import Point
from scrollcaptureio.hosts.base import bounded


class ScrollSurface():
    kind = None
    ref = None

    def __init__(self, host, timeout=None):
        self.host = host
        self.timeout = settings.HOST_CALL_TIMEOUT if timeout is None else timeout

    def _unmeasurable(self):
        return Unmeasurable(message=f"Host did not answer within {self.timeout}s", surface=self)

    async def measure(self):
        """Fresh ScrollMetrics, never cached since the page may have reflowed."""
        return await bounded(self.host.measure_scroll(self.ref), self.timeout, self._unmeasurable)

    async def scroll_to(self, x, y):
        await bounded(self.host.scroll_to(self.ref, x, y), self.timeout, self._unmeasurable)

    async def scroll_by(self, dx, dy):
        metrics = await self.measure()
        await self.scroll_to(metrics.scroll_offset.x + dx, metrics.scroll_offset.y + dy)

    async def viewport_offset(self):
        """Where this surface's visible box starts inside the outer viewport."""
        return Point(0, 0)

    def __eq__(self, other):
        return isinstance(other, ScrollSurface) and (self.kind, self.ref, self.host) == (other.kind, other.ref, other.host)

    def __hash__(self):
        return hash((self.kind, self.ref, id(self.host)))

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.ref or ''}>".replace(' >', '>')


class WindowSurface(ScrollSurface):
    kind = 'window'


class ContainerSurface(ScrollSurface):
    kind = 'container'

    def __init__(self, host, ref, timeout=None):
        super().__init__(host, timeout=timeout)
        self.ref = ref

    async def viewport_offset(self):
        metrics = await self.measure()
        logger.trace(f"Container {self.ref} sits at {metrics.origin.x},{metrics.origin.y} in the viewport")
        return metrics.origin
