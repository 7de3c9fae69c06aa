import asyncio
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from scrollcaptureio.exceptions import CaptureError
from scrollcaptureio.geometry import CaptureResult

CAPTURE_MODES = ('visible', 'full', 'selection')


@dataclass
class CaptureJob:
    host: object
    mode: str = 'full'
    format: Optional[str] = None
    quality: Optional[int] = None
    rect: Optional[object] = None
    container_hint: Optional[object] = None
    on_progress: Optional[object] = field(default=None, repr=False)


class BatchCapture():
    """
    Capture several targets one after the other through one shared orchestrator.

    Jobs go on an asyncio.Queue drained by a single worker, concurrent scrolling of the same
    browsing context would corrupt geometry and the capture rate limit is global anyway.
    A failing target never aborts the batch, its failure is simply its result.
    """

    def __init__(self, orchestrator, activate=True):
        self.orchestrator = orchestrator
        self.activate = activate
        self.queue = asyncio.Queue()
        self.results = {}

    def add(self, host, mode='full', format=None, quality=None, rect=None, container_hint=None, on_progress=None):
        if mode not in CAPTURE_MODES:
            raise ValueError(f"Unknown capture mode '{mode}', expected one of {', '.join(CAPTURE_MODES)}")
        if mode == 'selection' and rect is None:
            raise ValueError("Selection mode needs a rect")
        self.queue.put_nowait(CaptureJob(host=host, mode=mode, format=format, quality=quality, rect=rect,
                                         container_hint=container_hint, on_progress=on_progress))

    async def _capture(self, job):
        o = self.orchestrator
        if self.activate:
            try:
                await job.host.activate()
            except CaptureError as e:
                return CaptureResult.failed(e.kind, e.message, cancelled=e.cancelled)
            # Freshly activated targets need a moment to paint
            await o.sleep(o.settle_delay_first)

        if job.mode == 'visible':
            return await o.capture_visible(job.host, format=job.format, quality=job.quality)
        if job.mode == 'selection':
            return await o.capture_selection(job.host, job.rect, format=job.format, quality=job.quality,
                                             container_hint=job.container_hint, on_progress=job.on_progress)
        return await o.capture_full_page(job.host, format=job.format, quality=job.quality, on_progress=job.on_progress)

    async def worker(self, total):
        task = asyncio.current_task()
        if task:
            task.set_name("batch-capture-worker")

        current = 0
        while not self.queue.empty():
            job = self.queue.get_nowait()
            current += 1
            logger.info(f"Batch capture {current}/{total} - {job.mode} of {job.host.url}")
            try:
                self.results[job.host.target_id] = await self._capture(job)
            finally:
                self.queue.task_done()

    async def run(self):
        """
        Drain the queue.

        :return: dict of target_id -> CaptureResult, in the order the jobs were added
        """
        total = self.queue.qsize()
        await asyncio.create_task(self.worker(total))
        failed = [k for k, r in self.results.items() if not r.success]
        logger.info(f"Batch capture finished, {len(self.results) - len(failed)}/{len(self.results)} succeeded")
        return self.results
