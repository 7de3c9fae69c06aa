import asyncio
import io
import time

from loguru import logger
from PIL import Image

from scrollcaptureio import settings
from scrollcaptureio.exceptions import RestrictedSurface
from scrollcaptureio.geometry import RasterTile
from scrollcaptureio.hosts.base import bounded


class CaptureThrottle():
    """
    Fixed-interval gate in front of the host's rate limited capture primitive.

    Shared by every operation of one orchestrator, the host limit is global and does not care
    which document asked. The clock and sleep are injectable so tests can run on a fake clock.
    """

    def __init__(self, min_interval=None, clock=time.monotonic, sleep=asyncio.sleep, timeout=None):
        self.min_interval = settings.CAPTURE_MIN_INTERVAL_MS / 1000 if min_interval is None else min_interval
        self.clock = clock
        self.sleep = sleep
        self.timeout = settings.HOST_CALL_TIMEOUT if timeout is None else timeout
        self.last_call = None
        self.calls = 0

    def wait_needed(self):
        if self.last_call is None:
            return 0
        return max(0, self.min_interval - (self.clock() - self.last_call))

    async def shoot(self, host, format, quality) -> RasterTile:
        wait = self.wait_needed()
        if wait > 0:
            logger.trace(f"Capture throttle waiting {wait:.3f}s")
            await self.sleep(wait)

        # Stamp before the call, the host counts the request not the reply
        self.last_call = self.clock()
        self.calls += 1

        image = await bounded(host.capture_viewport(format, quality), self.timeout,
                              lambda: RestrictedSurface(message=f"Capture did not return within {self.timeout}s", url=host.url))
        if not image:
            raise RestrictedSurface(message="Host returned an empty capture", url=host.url)

        with Image.open(io.BytesIO(image)) as img:
            height = img.height

        return RasterTile(image=image, document_y=0, height=height)
