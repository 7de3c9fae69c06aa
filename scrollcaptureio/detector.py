"""
Decide whether an interaction happens inside an internally-scrolling region.

Single page apps very often keep the document body still and scroll a "main content" element
instead, capturing the window there gives the same first screen over and over.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.exceptions import Unmeasurable
from scrollcaptureio.geometry import Point, Rect, Size
from scrollcaptureio.hosts.base import bounded
from scrollcaptureio.surfaces import ContainerSurface, WindowSurface

# Ordered, cheap structural guesses. First match wins over the scored scan.
CONTAINER_SELECTORS = [
    '[data-is-streaming]',
    'main[class*="overflow"]',
    'div[class*="overflow-y-auto"]',
    'div[class*="overflow-auto"]',
    '[role="main"]',
    'main',
    '.main-content',
    '#main-content',
    '.chat-messages',
    '.messages-container',
    '.conversation',
]

# Scrollable height has to exceed client height by more than this to absorb rounding
SCROLLABLE_MARGIN = 10
MIN_VISIBLE_AREA_RATIO = 0.3
MIN_SCROLLABLE_HEIGHT = 100


@dataclass(frozen=True)
class ContainerCandidate:
    ref: str
    overflow_y: str
    scroll_height: float
    client_height: float
    rect: Rect
    selector: Optional[str] = None

    @property
    def scrollable_height(self):
        return self.scroll_height - self.client_height

    @classmethod
    def from_dict(cls, d):
        return cls(ref=str(d['ref']),
                   overflow_y=d.get('overflowY') or '',
                   scroll_height=d.get('scrollHeight', 0),
                   client_height=d.get('clientHeight', 0),
                   rect=Rect.from_dict(d.get('rect') or {}),
                   selector=d.get('selector'))


def is_scrollable(candidate):
    return (candidate.overflow_y in ('auto', 'scroll')
            and candidate.scroll_height > candidate.client_height + SCROLLABLE_MARGIN)


def score(candidate, viewport):
    """scrollable height weighted by how much of the viewport the candidate covers, None when it doesnt qualify"""
    viewport_area = viewport.w * viewport.h
    if not viewport_area or not is_scrollable(candidate):
        return None
    area_ratio = (candidate.rect.width * candidate.rect.height) / viewport_area
    if area_ratio <= MIN_VISIBLE_AREA_RATIO or candidate.scrollable_height <= MIN_SCROLLABLE_HEIGHT:
        return None
    return candidate.scrollable_height * area_ratio


def select_container(structural, scanned, viewport: Size) -> Optional[ContainerCandidate]:
    # Structural heuristics are trusted over the exhaustive search
    for candidate in structural:
        if is_scrollable(candidate):
            logger.debug(f"Found scrollable container via selector '{candidate.selector}' ref {candidate.ref}")
            return candidate

    best = None
    best_score = 0
    for candidate in scanned:
        s = score(candidate, viewport)
        # Strictly greater keeps the first of equally scored candidates
        if s is not None and s > best_score:
            best, best_score = candidate, s

    if best:
        logger.debug(f"Found scrollable container via scan ref {best.ref} score {best_score:.1f}")
    return best


class ContainerDetector():
    """
    One detector per host. Call begin_interaction() when a new user interaction starts,
    the container search then runs at most once until the next begin_interaction().
    """

    def __init__(self, host, selectors=None, timeout=None):
        self.host = host
        self.selectors = list(selectors) if selectors is not None else list(CONTAINER_SELECTORS)
        self.timeout = settings.HOST_CALL_TIMEOUT if timeout is None else timeout
        self._searched = False
        self._container = None

    def begin_interaction(self):
        self._searched = False
        self._container = None

    async def find_container(self) -> Optional[ContainerCandidate]:
        if self._searched:
            return self._container

        data = await bounded(self.host.query_scroll_candidates(self.selectors), self.timeout,
                             lambda: Unmeasurable(message=f"Container search did not answer within {self.timeout}s")) or {}
        structural = [ContainerCandidate.from_dict(d) for d in data.get('structural', [])]
        scanned = [ContainerCandidate.from_dict(d) for d in data.get('scanned', [])]
        viewport = data.get('viewport') or {}

        self._container = select_container(structural, scanned, Size(w=viewport.get('width', 0), h=viewport.get('height', 0)))
        self._searched = True
        if not self._container:
            logger.debug("No scrollable container found, using window scrolling")
        return self._container

    async def detect(self, interaction_point: Optional[Point] = None):
        """
        :param interaction_point: viewport coordinates of where the user started interacting
        :return: ContainerSurface when the point falls inside the detected container, WindowSurface otherwise
        """
        container = await self.find_container()
        if container and interaction_point is not None and container.rect.contains(interaction_point):
            return ContainerSurface(self.host, container.ref, timeout=self.timeout)
        return WindowSurface(self.host, timeout=self.timeout)
