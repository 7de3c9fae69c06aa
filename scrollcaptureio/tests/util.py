#!/usr/bin/env python3
import asyncio
import io
from dataclasses import dataclass

from scrollcaptureio.exceptions import DetachedTarget, RestrictedSurface, Unmeasurable
from scrollcaptureio.geometry import Point, Rect, ScrollMetrics, Size
from scrollcaptureio.hosts.base import Host
from scrollcaptureio.mapper import px_round

# Pixels painted inside a scroll container carry this flag so they can be told apart from window content
CONTAINER_FLAG = 0x800000


def encode_row(value):
    return ((value >> 16) & 0xff, (value >> 8) & 0xff, value & 0xff)


def row_png(first_row, height, width=4):
    """PNG whose pixel row r encodes the value first_row + r"""
    from PIL import Image

    img = Image.new('RGB', (width, height))
    for r in range(height):
        img.paste(encode_row(first_row + r), (0, r, width, r + 1))
    with io.BytesIO() as output:
        img.save(output, format='PNG')
        return output.getvalue()


def row_values(image_bytes, x=0):
    """The encoded content row of every pixel row in column x"""
    from PIL import Image

    with Image.open(io.BytesIO(image_bytes)) as img:
        img = img.convert('RGB')
        values = []
        for y in range(img.height):
            r, g, b = img.getpixel((x, y))
            values.append((r << 16) | (g << 8) | b)
        return values


def image_dimensions(image_bytes):
    from PIL import Image

    with Image.open(io.BytesIO(image_bytes)) as img:
        return img.width, img.height


class FakeClock():
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start=1000.0):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.current += seconds
        # Still hand control back to the loop like a real sleep would
        await asyncio.sleep(0)


@dataclass
class FakeContainer:
    ref: str
    # Where the container sits in the viewport, CSS px
    rect: Rect
    content_height: float
    scrollbar_width: float = 15
    overflow_y: str = 'auto'
    scroll_y: float = 0

    @property
    def client_width(self):
        return self.rect.width - self.scrollbar_width

    @property
    def client_height(self):
        return self.rect.height

    @property
    def max_scroll(self):
        return max(0, self.content_height - self.client_height)

    def as_candidate(self, selector=None):
        return {'ref': self.ref, 'overflowY': self.overflow_y, 'scrollHeight': self.content_height,
                'clientHeight': self.client_height, 'selector': selector,
                'rect': {'x': self.rect.x, 'y': self.rect.y, 'width': self.rect.width, 'height': self.rect.height}}


class FakeHost(Host):
    """
    In memory document with clamped scrolling.

    Every pixel row of a capture encodes which device pixel row of the content it shows
    (see encode_row()), so tests can check exactly what ended up where in a composite.
    """

    def __init__(self, content_height=400, viewport_width=100, viewport_height=150, dpr=1.0,
                 url='https://example.com/', target_id='1', fixed_elements=('fixed-0', 'fixed-1'),
                 container=None, candidates=None, scroll_y=0, scroll_x=0, content_width=None):
        self.url = url
        self.target_id = target_id
        self.content_width = viewport_width if content_width is None else content_width
        self.content_height = content_height
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.dpr = dpr
        self.fixed_elements = list(fixed_elements)
        self.container = container
        self.candidates = candidates
        self.scroll_x = scroll_x
        self.scroll_y = scroll_y

        self.hidden = set()
        self.scrollbar_hidden = False
        self.captures = []
        self.scrolls = []
        self.progress = []
        self.progress_cleared = 0
        self.activated = 0
        # Shared between hosts to check the order captures happened in
        self.journal = None

        self.fail_capture_at = None
        self.detach_at = None
        self.hang_capture = False
        self.hang_measure = False
        self.hang_candidates = False
        self.fail_measure = False
        self.fail_restore_visibility = False

    # Host capabilities

    async def measure_scroll(self, surface_ref=None):
        if self.hang_measure:
            await asyncio.Event().wait()
        if self.fail_measure:
            raise Unmeasurable(message="Document refused geometry query", surface=surface_ref)

        window = Size(w=self.viewport_width, h=self.viewport_height)
        if surface_ref is None:
            return ScrollMetrics(content_extent=Size(w=self.content_width, h=self.content_height),
                                 viewport_extent=window,
                                 scroll_offset=Point(self.scroll_x, self.scroll_y),
                                 device_pixel_ratio=self.dpr,
                                 window_extent=window)

        c = self._container(surface_ref)
        return ScrollMetrics(content_extent=Size(w=c.client_width, h=c.content_height),
                             viewport_extent=Size(w=c.client_width, h=c.client_height),
                             scroll_offset=Point(0, c.scroll_y),
                             device_pixel_ratio=self.dpr,
                             origin=Point(c.rect.x, c.rect.y),
                             window_extent=window)

    async def scroll_to(self, surface_ref, x, y):
        self.scrolls.append((surface_ref, x, y))
        if surface_ref is None:
            self.scroll_x = max(0, min(x, max(0, self.content_width - self.viewport_width)))
            self.scroll_y = max(0, min(y, max(0, self.content_height - self.viewport_height)))
        else:
            c = self._container(surface_ref)
            c.scroll_y = max(0, min(y, c.max_scroll))

    async def capture_viewport(self, format, quality):
        from PIL import Image

        index = len(self.captures)
        if self.journal is not None:
            self.journal.append(self.target_id)
        self.captures.append({'scroll_y': self.scroll_y,
                              'container_scroll_y': self.container.scroll_y if self.container else None,
                              'fixed_hidden': bool(self.fixed_elements) and set(self.fixed_elements) <= self.hidden,
                              'format': format,
                              'quality': quality})
        if self.hang_capture:
            await asyncio.Event().wait()
        if self.fail_capture_at is not None and index >= self.fail_capture_at:
            raise RestrictedSurface(message="Capture denied", url=self.url)
        if self.detach_at is not None and index >= self.detach_at:
            raise DetachedTarget(message="Tab closed", url=self.url)

        width = px_round(self.viewport_width * self.dpr)
        height = px_round(self.viewport_height * self.dpr)
        img = Image.new('RGB', (width, height))
        top = px_round(self.scroll_y * self.dpr)
        for r in range(height):
            img.paste(encode_row(top + r), (0, r, width, r + 1))

        c = self.container
        if c:
            x0, y0 = px_round(c.rect.x * self.dpr), px_round(c.rect.y * self.dpr)
            x1, y1 = px_round(c.rect.right * self.dpr), px_round(c.rect.bottom * self.dpr)
            c_top = px_round(c.scroll_y * self.dpr)
            for r in range(y0, min(y1, height)):
                img.paste(encode_row(CONTAINER_FLAG | (c_top + r - y0)), (x0, r, min(x1, width), r + 1))

        with io.BytesIO() as output:
            img.save(output, format='JPEG' if format == 'jpeg' else 'PNG')
            return output.getvalue()

    async def set_element_visibility(self, element_refs, hidden):
        if hidden:
            self.hidden.update(element_refs)
        else:
            if self.fail_restore_visibility:
                raise Unmeasurable(message="Document went away while restoring", surface=None)
            self.hidden.difference_update(element_refs)

    async def query_fixed_elements(self):
        return list(self.fixed_elements)

    async def query_scroll_candidates(self, selectors):
        if self.hang_candidates:
            await asyncio.Event().wait()
        if self.candidates is not None:
            return self.candidates
        return {'structural': [],
                'scanned': [self.container.as_candidate()] if self.container else [],
                'viewport': {'width': self.viewport_width, 'height': self.viewport_height}}

    async def set_scrollbar_hidden(self, hidden):
        self.scrollbar_hidden = hidden

    async def activate(self):
        self.activated += 1

    async def send_progress(self, percent):
        self.progress.append(percent)

    async def clear_progress(self):
        self.progress_cleared += 1

    def _container(self, ref):
        if not self.container or self.container.ref != ref:
            raise Unmeasurable(message=f"Scroll container '{ref}' is no longer in the document", surface=ref)
        return self.container

