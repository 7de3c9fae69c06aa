import os

from loguru import logger

from scrollcaptureio.exceptions import DetachedTarget, RestrictedSurface, Unmeasurable
from scrollcaptureio.geometry import ScrollMetrics
from scrollcaptureio.hosts import GEOMETRY_JS, SCROLL_TO_JS, SCROLL_CANDIDATES_JS, FIXED_ELEMENTS_JS, \
    ELEMENT_VISIBILITY_JS, SCROLLBAR_JS
from scrollcaptureio.hosts.base import Host

# Substrings Playwright uses when the page/context/browser underneath us has gone away
CLOSED_TARGET_MESSAGES = ('Target closed', 'has been closed', 'Target page, context or browser has been closed')


def _is_closed_error(e):
    return any(m in str(e) for m in CLOSED_TARGET_MESSAGES)


class host(Host):
    """Host backed by an async Playwright Page, one instance per browsing context."""

    host_description = "Playwright {}/Javascript".format(
        os.getenv("PLAYWRIGHT_BROWSER_TYPE", 'chromium').capitalize()
    )
    if os.getenv("PLAYWRIGHT_DRIVER_URL"):
        host_description += " via '{}'".format(os.getenv("PLAYWRIGHT_DRIVER_URL"))

    def __init__(self, page, target_id=None):
        self.page = page
        self.target_id = target_id or str(id(page))

    @property
    def url(self):
        return self.page.url

    async def _evaluate(self, script, arg=None):
        from playwright.async_api import Error

        if self.page.is_closed():
            raise DetachedTarget(message="Page is closed", url=self.url)
        try:
            return await self.page.evaluate(script, arg)
        except Error as e:
            if _is_closed_error(e):
                raise DetachedTarget(message=str(e), url=self.url)
            raise Unmeasurable(message=str(e), surface=self.url)

    async def measure_scroll(self, surface_ref=None):
        data = await self._evaluate(GEOMETRY_JS, surface_ref)
        if not data:
            raise Unmeasurable(message=f"Scroll container '{surface_ref}' is no longer in the document", surface=surface_ref)
        logger.trace(f"Measured {surface_ref or 'window'} {data}")
        return ScrollMetrics.from_dict(data)

    async def scroll_to(self, surface_ref, x, y):
        logger.trace(f"Scrolling {surface_ref or 'window'} to {x},{y}")
        found = await self._evaluate(SCROLL_TO_JS, {'ref': surface_ref, 'x': x, 'y': y})
        if not found:
            raise Unmeasurable(message=f"Scroll container '{surface_ref}' is no longer in the document", surface=surface_ref)

    async def capture_viewport(self, format, quality):
        from playwright.async_api import Error

        if self.page.is_closed():
            raise DetachedTarget(message="Page is closed", url=self.url)

        kwargs = {'type': format, 'full_page': False}
        if format == 'jpeg':
            kwargs['quality'] = int(quality)
        try:
            return await self.page.screenshot(**kwargs)
        except Error as e:
            if _is_closed_error(e):
                raise DetachedTarget(message=str(e), url=self.url)
            raise RestrictedSurface(message=str(e), url=self.url)

    async def set_element_visibility(self, element_refs, hidden):
        if not element_refs:
            return
        changed = await self._evaluate(ELEMENT_VISIBILITY_JS, {'refs': list(element_refs), 'hidden': bool(hidden)})
        logger.debug(f"{'Hid' if hidden else 'Restored'} {changed} fixed/sticky elements")

    async def query_fixed_elements(self):
        return await self._evaluate(FIXED_ELEMENTS_JS) or []

    async def query_scroll_candidates(self, selectors):
        return await self._evaluate(SCROLL_CANDIDATES_JS, list(selectors))

    async def set_scrollbar_hidden(self, hidden):
        await self._evaluate(SCROLLBAR_JS, bool(hidden))

    async def activate(self):
        if self.page.is_closed():
            raise DetachedTarget(message="Page is closed", url=self.url)
        await self.page.bring_to_front()

    async def send_progress(self, percent):
        # No in-page progress UI, it would end up in the next capture
        logger.trace(f"{self.url} capture progress {percent}%")


async def connect_browser(playwright, browser_type=None, driver_url=None):
    """
    Connect to PLAYWRIGHT_DRIVER_URL over CDP when set, otherwise launch a local browser.
    """
    browser_type = (browser_type or os.getenv("PLAYWRIGHT_BROWSER_TYPE", 'chromium')).strip('"')
    driver_url = driver_url or os.getenv("PLAYWRIGHT_DRIVER_URL")
    launcher = getattr(playwright, browser_type)

    if driver_url:
        driver_url = driver_url.strip('"')
        logger.debug(f"Connecting to {browser_type} over CDP at {driver_url}")
        # 60,000 connection timeout only
        return await launcher.connect_over_cdp(driver_url, timeout=60000)

    logger.debug(f"Launching local {browser_type}")
    return await launcher.launch()
