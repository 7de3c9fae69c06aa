"""
Capture orchestration, the state machine sequencing measure -> scroll -> capture -> crop -> composite.

    Idle -> Measuring -> Capturing[i] ... -> Compositing -> Done
                                  \\-> Failed (from anywhere)

One orchestrator serializes every operation it is asked to run, the viewport is a shared resource
(only one scroll position can exist at a time) and the capture primitive is rate limited globally.
"""

import asyncio
import math
import time
from dataclasses import replace
from enum import Enum

from blinker import signal
from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.compositor import composite_tiles, crop_tile, image_size
from scrollcaptureio.detector import ContainerDetector
from scrollcaptureio.exceptions import CaptureCancelled, CaptureError, DegenerateSelection, RestrictedSurface, \
    SelectionOutOfBounds, Unmeasurable
from scrollcaptureio.geometry import CaptureResult, Point, RasterTile, Rect
from scrollcaptureio.hosts.base import is_restricted_url
from scrollcaptureio.lease import PageStateLease
from scrollcaptureio.mapper import corrective_scroll_target, device_span, horizontal_scroll_target, \
    is_fully_visible, plan_full_page, plan_selection, px_round, selection_crop, to_device_pixels
from scrollcaptureio.surfaces import ScrollSurface, WindowSurface
from scrollcaptureio.throttle import CaptureThrottle

capture_progress = signal('capture_progress', doc='Signal sent with the percentage of a running capture')
capture_state = signal('capture_state', doc='Signal sent when a capture operation changes state')


class CaptureState(str, Enum):
    IDLE = 'idle'
    MEASURING = 'measuring'
    CAPTURING = 'capturing'
    COMPOSITING = 'compositing'
    DONE = 'done'
    FAILED = 'failed'


class CaptureOrchestrator():

    def __init__(self,
                 throttle=None,
                 sleep=asyncio.sleep,
                 settle_delay_first=None,
                 settle_delay=None,
                 timeout=None,
                 min_selection_size=None,
                 max_height=None,
                 hide_scrollbar=None,
                 stitch_threshold=None):
        first, subsequent = settings.settle_delays()
        self.throttle = throttle or CaptureThrottle()
        self.sleep = sleep
        self.settle_delay_first = first if settle_delay_first is None else settle_delay_first
        self.settle_delay = subsequent if settle_delay is None else settle_delay
        self.timeout = settings.HOST_CALL_TIMEOUT if timeout is None else timeout
        self.min_selection_size = settings.SELECTION_MIN_SIZE if min_selection_size is None else min_selection_size
        self.max_height = settings.SCREENSHOT_MAX_HEIGHT if max_height is None else max_height
        self.hide_scrollbar = settings.SCREENSHOT_HIDE_SCROLLBAR if hide_scrollbar is None else hide_scrollbar
        self.stitch_threshold = stitch_threshold

        self.lock = asyncio.Lock()
        self.state = CaptureState.IDLE
        self.tile_index = None
        self._target = None
        self._cancel_requested = False
        self._progress_tasks = set()

    # State and notifications

    def _set_state(self, state, tile_index=None):
        self.state = state
        self.tile_index = tile_index
        label = f"{state.value}[{tile_index}]" if tile_index is not None else state.value
        logger.debug(f"Capture {self._target or ''} -> {label}")
        try:
            capture_state.send(state=state, target=self._target, tile_index=tile_index)
        except Exception as e:
            logger.error(f"Exception emitting capture_state signal: {e}")

    def _report_progress(self, host, percent, on_progress=None):
        percent = int(max(0, min(100, percent)))
        if on_progress:
            try:
                on_progress(percent)
            except Exception as e:
                logger.error(f"Progress callback failed: {e}")
        try:
            capture_progress.send(percent=percent, target=host.target_id)
        except Exception as e:
            logger.error(f"Exception emitting capture_progress signal: {e}")

        # Fire and forget, a slow progress UI must never hold up the capture
        task = asyncio.ensure_future(host.send_progress(percent))
        self._progress_tasks.add(task)
        task.add_done_callback(self._progress_done)

    def _progress_done(self, task):
        self._progress_tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.debug(f"Progress delivery failed: {task.exception()}")

    def cancel(self):
        """Ask the running operation to stop at the next scroll/capture step."""
        if self.state not in (CaptureState.IDLE, CaptureState.DONE, CaptureState.FAILED):
            logger.info(f"Cancellation requested for capture {self._target or ''}")
            self._cancel_requested = True

    def _check_cancelled(self):
        if self._cancel_requested:
            raise CaptureCancelled("Capture cancelled")

    async def _settle(self, first=False):
        await self.sleep(self.settle_delay_first if first else self.settle_delay)

    async def _shoot(self, host, format, quality, tile_index):
        self._check_cancelled()
        self._set_state(CaptureState.CAPTURING, tile_index)
        return await self.throttle.shoot(host, format, quality)

    # Public operations

    async def _run(self, host, name, operation):
        async with self.lock:
            self._target = host.target_id
            self._cancel_requested = False
            start = time.time()
            logger.info(f"Starting {name} capture of {host.url}")
            try:
                if is_restricted_url(host.url):
                    raise RestrictedSurface(message="Privileged document", url=host.url)
                result = await operation()
            except CaptureError as e:
                self._set_state(CaptureState.FAILED)
                if e.cancelled:
                    logger.debug(f"{name} capture of {host.url} cancelled - {e.message}")
                else:
                    logger.error(f"{name} capture of {host.url} failed - {e.kind} {e.message}")
                return CaptureResult.failed(e.kind, e.message, cancelled=e.cancelled)
            except asyncio.CancelledError:
                self._set_state(CaptureState.FAILED)
                raise
            finally:
                self._cancel_requested = False

            self._set_state(CaptureState.DONE)
            logger.info(f"{name} capture of {host.url} done {result.width}x{result.height} in {time.time() - start:.2f}s")
            return result

    async def capture_visible(self, host, format=None, quality=None) -> CaptureResult:
        format = settings.normalise_format(format)
        quality = settings.SCREENSHOT_QUALITY if quality is None else quality

        async def operation():
            self._set_state(CaptureState.MEASURING)
            await WindowSurface(host, timeout=self.timeout).measure()
            shot = await self._shoot(host, format, quality, 0)
            width, height = image_size(shot.image)
            return CaptureResult.ok(image=shot.image, width=width, height=height, format=format)

        return await self._run(host, 'visible', operation)

    async def capture_full_page(self, host, format=None, quality=None, on_progress=None) -> CaptureResult:
        format = settings.normalise_format(format)
        quality = settings.SCREENSHOT_QUALITY if quality is None else quality

        async def operation():
            surface = WindowSurface(host, timeout=self.timeout)
            self._set_state(CaptureState.MEASURING)
            metrics = await surface.measure()
            dpr = metrics.device_pixel_ratio
            content_height = metrics.content_extent.h
            viewport_height = metrics.viewport_extent.h
            if viewport_height <= 0 or content_height <= 0:
                raise Unmeasurable(message=f"Degenerate geometry {metrics}", surface=surface)

            tiles = []
            async with PageStateLease(host, surface, hide_scrollbar=self.hide_scrollbar, timeout=self.timeout) as lease:
                self._report_progress(host, 0, on_progress)
                self._check_cancelled()
                await surface.scroll_to(0, 0)
                await self._settle(first=True)

                first = await self._shoot(host, format, quality, 0)
                tile_width, tile_height = image_size(first.image)
                total_height, plans = plan_full_page(content_height, viewport_height, tile_height, dpr,
                                                     max_height_px=self.max_height,
                                                     max_scroll_y=metrics.max_scroll.y)
                logger.debug(f"Full page plan: content {content_height}px viewport {viewport_height}px dpr {dpr} "
                             f"-> {len(plans)} tiles of {tile_width}x{tile_height} total {total_height}px")

                tiles.append(replace(first, document_y=plans[0].document_y, height=plans[0].height, is_last=plans[0].is_last))
                self._report_progress(host, round(100 / len(plans)), on_progress)

                # The first tile keeps the page chrome, every later one would repeat it
                if len(plans) > 1:
                    await lease.suppress_fixed_elements()

                for plan in plans[1:]:
                    self._check_cancelled()
                    await surface.scroll_to(0, plan.scroll_y)
                    await self._settle()
                    shot = await self._shoot(host, format, quality, plan.index)
                    tiles.append(replace(shot, document_y=plan.document_y, height=plan.height, is_last=plan.is_last))
                    self._report_progress(host, round((plan.index + 1) / len(plans) * 100), on_progress)

            self._set_state(CaptureState.COMPOSITING)
            uncapped_height = int(math.ceil(content_height * dpr))
            result = composite_tiles(tiles, tile_width, total_height, tile_step_height=tile_height,
                                     format=format, quality=quality,
                                     original_height=uncapped_height if total_height < uncapped_height else None,
                                     stitch_threshold=self.stitch_threshold)
            tiles.clear()

            reported_height = content_height if total_height >= uncapped_height else total_height / dpr
            return replace(result, width=px_round(tile_width / dpr), height=px_round(reported_height))

        return await self._run(host, 'full page', operation)

    async def _resolve_surface(self, host, container_hint):
        if isinstance(container_hint, ScrollSurface):
            return container_hint
        if isinstance(container_hint, Point):
            detector = ContainerDetector(host, timeout=self.timeout)
            detector.begin_interaction()
            return await detector.detect(container_hint)
        return WindowSurface(host, timeout=self.timeout)

    async def capture_selection(self, host, rect, format=None, quality=None, container_hint=None,
                                initial_scroll=None, on_progress=None) -> CaptureResult:
        """
        Capture a rectangle given in content space of the active surface.

        :param rect: Rect (or dict with x, y, width, height) in content coordinates
        :param container_hint: the ScrollSurface fixed for this interaction, or the interaction Point to detect it from
        :param initial_scroll: scroll offset the selection was made at, saves a measurement for single viewport selections
        """
        format = settings.normalise_format(format)
        quality = settings.SCREENSHOT_QUALITY if quality is None else quality
        rect = rect if isinstance(rect, Rect) else Rect.from_dict(rect)

        async def operation():
            if rect.width < self.min_selection_size or rect.height < self.min_selection_size:
                raise DegenerateSelection(rect.width, rect.height, self.min_selection_size)

            self._set_state(CaptureState.MEASURING)
            surface = await self._resolve_surface(host, container_hint)
            metrics = await surface.measure()
            if not rect.intersects(metrics.content_rect):
                raise SelectionOutOfBounds(rect, metrics.content_extent)

            logger.debug(f"Selection {rect} on {surface} viewport {metrics.viewport_extent} origin {metrics.origin} "
                         f"dpr {metrics.device_pixel_ratio}")

            async with PageStateLease(host, surface, timeout=self.timeout) as lease:
                if rect.height <= metrics.viewport_extent.h:
                    tiles, total_width, total_height, crop_width = await self._selection_single(
                        host, surface, metrics, rect, format, quality, initial_scroll)
                else:
                    tiles, total_width, total_height, crop_width = await self._selection_scrolling(
                        host, surface, metrics, rect, format, quality, lease, on_progress)

            self._set_state(CaptureState.COMPOSITING)
            result = composite_tiles(tiles, total_width, total_height, format=format, quality=quality,
                                     stitch_threshold=self.stitch_threshold)
            return replace(result, width=px_round(crop_width), height=px_round(rect.height))

        return await self._run(host, 'selection', operation)

    async def _selection_single(self, host, surface, metrics, rect, format, quality, initial_scroll):
        dpr = metrics.device_pixel_ratio
        origin = metrics.origin
        viewport = metrics.viewport_extent

        scroll = initial_scroll or metrics.scroll_offset
        crop = selection_crop(rect, 0, viewport.h, scroll, origin)
        if not is_fully_visible(crop, origin, viewport.w, viewport.h):
            target = corrective_scroll_target(rect)
            logger.debug(f"Selection not fully in view at {scroll.x},{scroll.y}, scrolling to {target.x},{target.y}")
            self._check_cancelled()
            await surface.scroll_to(target.x, target.y)
            await self._settle(first=True)
            scroll = (await surface.measure()).scroll_offset

        crop = selection_crop(rect, 0, viewport.h, scroll, origin, visible_width=viewport.w)
        shot = await self._shoot(host, format, quality, 0)

        image, box = crop_tile(shot.image, to_device_pixels(crop, dpr))
        tile = RasterTile(image=image, document_y=0, height=int(box.height), is_last=True)
        return [tile], box.width, box.height, crop.width

    async def _selection_scrolling(self, host, surface, metrics, rect, format, quality, lease, on_progress):
        dpr = metrics.device_pixel_ratio
        origin = metrics.origin
        viewport = metrics.viewport_extent

        self._report_progress(host, 0, on_progress)
        # Page chrome has no business inside a selection, hide it for every tile
        await lease.suppress_fixed_elements()

        # Same width for every tile, never wider than what the surface shows without its scrollbar
        crop_width = min(rect.width, viewport.w)
        total_width = px_round(crop_width * dpr)
        total_height = px_round(rect.height * dpr)

        scroll_x = horizontal_scroll_target(rect, metrics.scroll_offset.x, viewport.w, width=crop_width)
        steps = plan_selection(rect.height, viewport.h)
        tiles = []
        for i, (captured, height) in enumerate(steps):
            self._check_cancelled()
            await surface.scroll_to(scroll_x, rect.y + captured)
            await self._settle()
            scroll = (await surface.measure()).scroll_offset

            shot = await self._shoot(host, format, quality, i)
            crop = selection_crop(rect, captured, viewport.h, scroll, origin, visible_width=viewport.w, width=crop_width)
            document_y, height_px = device_span(captured, height, dpr)
            logger.debug(f"Selection tile {i}: captured {captured} scroll {scroll.x},{scroll.y} crop {crop}")

            image, box = crop_tile(shot.image, Rect(px_round(crop.x * dpr), px_round(crop.y * dpr),
                                                    px_round(crop.width * dpr), height_px))
            tiles.append(RasterTile(image=image, document_y=document_y, height=height_px, is_last=i == len(steps) - 1))
            self._report_progress(host, round((captured + height) / rect.height * 100), on_progress)

        return tiles, total_width, total_height, crop_width
