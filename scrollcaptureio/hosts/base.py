import asyncio
from abc import abstractmethod

from loguru import logger

# Hosts refuse to capture privileged documents, no point in even trying
RESTRICTED_URL_PREFIXES = (
    'chrome://',
    'chrome-extension://',
    'edge://',
    'about:',
    'file://',
)


def is_restricted_url(url):
    if not url:
        return True
    return url.startswith(RESTRICTED_URL_PREFIXES)


async def bounded(awaitable, timeout, on_timeout):
    """
    Await a host call but never longer than `timeout` seconds.

    :param awaitable: the host call
    :param timeout: seconds, None or 0 waits forever
    :param on_timeout: callable returning the exception to raise when the host hangs
    :return: whatever the host call returned
    """
    if not timeout:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Host call did not return within {timeout}s")
        raise on_timeout()


class Host():
    """
    The capabilities the capture engine needs from whatever renders the document.

    `surface_ref` is None for the top-level document, otherwise the reference of an
    internally-scrolling element as returned by query_scroll_candidates()
    """
    target_id = None
    url = None

    @abstractmethod
    async def measure_scroll(self, surface_ref=None):
        # Should return ScrollMetrics or raise Unmeasurable/DetachedTarget
        pass

    @abstractmethod
    async def scroll_to(self, surface_ref, x, y):
        # Instant jump, never animated
        pass

    @abstractmethod
    async def capture_viewport(self, format, quality):
        # Should return the encoded raster bytes of the visible viewport in device pixels
        pass

    @abstractmethod
    async def set_element_visibility(self, element_refs, hidden):
        pass

    @abstractmethod
    async def query_fixed_elements(self):
        # References of every fixed/sticky positioned element currently in the document
        return []

    @abstractmethod
    async def query_scroll_candidates(self, selectors):
        """
        Candidate containers for the detector.

        :param selectors: ordered structural selectors
        :return: dict with 'structural' (in selector order) and 'scanned' lists of candidate dicts
        """
        return {'structural': [], 'scanned': []}

    async def set_scrollbar_hidden(self, hidden):
        return

    async def activate(self):
        # Bring the target to the front so the viewport capture sees it
        return

    async def send_progress(self, percent):
        return

    async def clear_progress(self):
        return

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.target_id or ''} {self.url or ''}>"
