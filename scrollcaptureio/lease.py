from loguru import logger

from scrollcaptureio.hosts.base import bounded
from scrollcaptureio.exceptions import Unmeasurable


class PageStateLease():
    """
    Scoped lease over the page state a capture temporarily owns.

    That is the scroll offset of the active surface, the visibility of fixed/sticky elements and
    optionally the document scrollbar. Whatever was taken is handed back in __aexit__, on success,
    failure and cancellation alike.

        async with PageStateLease(host, surface) as lease:
            await lease.suppress_fixed_elements()
            ...
    """

    def __init__(self, host, surface, hide_scrollbar=False, timeout=None):
        self.host = host
        self.surface = surface
        self.hide_scrollbar = hide_scrollbar
        self.timeout = surface.timeout if timeout is None else timeout
        self.original_scroll = None
        self.hidden_elements = []
        self.scrollbar_hidden = False
        self.released = False

    def _unmeasurable(self):
        return Unmeasurable(message=f"Host did not answer within {self.timeout}s", surface=self.surface)

    async def __aenter__(self):
        metrics = await self.surface.measure()
        self.original_scroll = metrics.scroll_offset
        logger.trace(f"Lease taken on {self.surface}, original scroll {self.original_scroll.x},{self.original_scroll.y}")

        if self.hide_scrollbar:
            # Flag first, a half applied style still has to be removed again
            self.scrollbar_hidden = True
            try:
                await bounded(self.host.set_scrollbar_hidden(True), self.timeout, self._unmeasurable)
            except BaseException:
                # __aexit__ never runs when __aenter__ fails
                await self.release()
                raise
        return self

    async def suppress_fixed_elements(self):
        """Hide every fixed/sticky element (visibility only, layout untouched) until release."""
        if self.hidden_elements:
            return self.hidden_elements
        refs = await bounded(self.host.query_fixed_elements(), self.timeout, self._unmeasurable)
        if refs:
            self.hidden_elements = list(refs)
            await bounded(self.host.set_element_visibility(self.hidden_elements, True), self.timeout, self._unmeasurable)
            logger.debug(f"Suppressed {len(self.hidden_elements)} fixed/sticky elements")
        return self.hidden_elements

    async def restore_fixed_elements(self):
        if not self.hidden_elements:
            return
        refs, self.hidden_elements = self.hidden_elements, []
        await bounded(self.host.set_element_visibility(refs, False), self.timeout, self._unmeasurable)

    async def release(self):
        """
        Run every compensating action, each one independently of the others failing.

        :return: list of exceptions raised by compensating actions
        """
        if self.released:
            return []

        errors = []
        steps = [('fixed elements', self.restore_fixed_elements)]
        if self.scrollbar_hidden:
            steps.append(('scrollbar', self._restore_scrollbar))
        if self.original_scroll is not None:
            steps.append(('scroll position', self._restore_scroll))
        steps.append(('progress', self.host.clear_progress))

        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.warning(f"Could not restore {name} on {self.surface} - {e}")
                errors.append(e)

        self.released = True
        return errors

    async def _restore_scrollbar(self):
        self.scrollbar_hidden = False
        await bounded(self.host.set_scrollbar_hidden(False), self.timeout, self._unmeasurable)

    async def _restore_scroll(self):
        await self.surface.scroll_to(self.original_scroll.x, self.original_scroll.y)

    async def __aexit__(self, exc_type, exc, tb):
        errors = await self.release()
        # Never mask the exception that got us here, only report cleanup failures on a clean exit
        if exc_type is None and errors:
            raise errors[0]
        return False
