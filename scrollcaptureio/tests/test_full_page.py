#!/usr/bin/env python3

import asyncio

from scrollcaptureio.orchestrator import CaptureState, capture_state
from scrollcaptureio.tests.util import FakeHost, image_dimensions, row_values


def test_full_page_rows_line_up(orchestrator):
    host = FakeHost(content_height=400, viewport_height=150, scroll_y=120)
    progress = []

    result = asyncio.run(orchestrator.capture_full_page(host, format='png', on_progress=progress.append))

    assert result.success, result.message
    assert image_dimensions(result.image) == (100, 400)
    assert (result.width, result.height) == (100, 400)
    # The last capture was clamped against the bottom, only its unseen rows may be drawn
    assert row_values(result.image) == list(range(400))
    assert [c['scroll_y'] for c in host.captures] == [0, 150, 250]
    assert progress == [0, 33, 67, 100]
    assert orchestrator.state == CaptureState.DONE


def test_full_page_high_dpr(orchestrator):
    host = FakeHost(content_height=400, viewport_height=150, dpr=2)

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.success
    assert image_dimensions(result.image) == (200, 800)
    # Reported in CSS pixels
    assert (result.width, result.height) == (100, 400)
    assert row_values(result.image) == list(range(800))


def test_full_page_fractional_dpr_tile_sum(orchestrator):
    host = FakeHost(content_height=401, viewport_height=150, dpr=1.5)

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.success
    # ceil(401 * 1.5)
    assert image_dimensions(result.image)[1] == 602
    assert result.height == 401


def test_single_viewport_page(orchestrator):
    host = FakeHost(content_height=100, viewport_height=150)

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.success
    assert image_dimensions(result.image) == (100, 100)
    assert row_values(result.image) == list(range(100))
    assert len(host.captures) == 1
    # Nothing to duplicate, fixed elements are left alone
    assert not host.captures[0]['fixed_hidden']


def test_fixed_elements_only_in_first_tile(orchestrator):
    host = FakeHost(content_height=400, viewport_height=150)

    asyncio.run(orchestrator.capture_full_page(host))

    assert [c['fixed_hidden'] for c in host.captures] == [False, True, True]
    assert host.hidden == set()


def test_restoration_on_failure(orchestrator):
    host = FakeHost(content_height=1000, viewport_height=150, scroll_y=320)
    host.fail_capture_at = 2

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert not result.success
    assert result.error == 'restricted_surface'
    assert result.image is None
    assert not result.cancelled
    assert orchestrator.state == CaptureState.FAILED
    # Original scroll offset back and no fixed elements left hidden
    assert host.scroll_y == 320
    assert host.hidden == set()
    assert not host.scrollbar_hidden
    assert host.progress_cleared == 1


def test_detached_target(orchestrator):
    host = FakeHost(content_height=1000)
    host.detach_at = 1

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.error == 'detached_target'
    assert host.scroll_y == 0
    assert host.hidden == set()


def test_unmeasurable(orchestrator):
    host = FakeHost()
    host.fail_measure = True

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.error == 'unmeasurable'
    assert host.captures == []


def test_restricted_document_never_touched(orchestrator):
    host = FakeHost(url='chrome://settings/')

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.error == 'restricted_surface'
    assert host.captures == []
    assert host.scrolls == []


def test_cancel_mid_capture(orchestrator):
    host = FakeHost(content_height=1000, scroll_y=60)

    def on_progress(percent):
        if percent > 0:
            orchestrator.cancel()

    result = asyncio.run(orchestrator.capture_full_page(host, on_progress=on_progress))

    assert not result.success
    assert result.cancelled
    assert result.error == 'cancelled'
    # Partial tiles are never surfaced
    assert result.image is None
    assert len(host.captures) == 1
    assert host.scroll_y == 60
    assert host.hidden == set()


def test_cancel_when_idle_is_ignored(orchestrator):
    orchestrator.cancel()
    result = asyncio.run(orchestrator.capture_full_page(FakeHost()))
    assert result.success


def test_task_cancellation_restores_page(orchestrator):
    host = FakeHost(content_height=1000, scroll_y=90)

    async def run_test():
        task = asyncio.create_task(orchestrator.capture_full_page(host))
        # Let it get as far as the first capture, which never returns
        host.hang_capture = True
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(run_test())
    assert orchestrator.state == CaptureState.FAILED
    assert host.scroll_y == 90
    assert not host.scrollbar_hidden


def test_state_signal_sequence(orchestrator):
    host = FakeHost(content_height=400, viewport_height=150)
    states = []

    def on_state(sender, state=None, tile_index=None, **kwargs):
        states.append((state, tile_index))

    capture_state.connect(on_state)
    try:
        asyncio.run(orchestrator.capture_full_page(host))
    finally:
        capture_state.disconnect(on_state)

    assert states == [
        (CaptureState.MEASURING, None),
        (CaptureState.CAPTURING, 0),
        (CaptureState.CAPTURING, 1),
        (CaptureState.CAPTURING, 2),
        (CaptureState.COMPOSITING, None),
        (CaptureState.DONE, None),
    ]


def test_height_cap(make_orchestrator):
    orchestrator = make_orchestrator(max_height=250)
    host = FakeHost(content_height=1000, viewport_height=150)

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.success
    assert image_dimensions(result.image) == (100, 250)
    assert len(host.captures) == 2
    # Below the warning caption every row is still where it belongs
    assert row_values(result.image)[21:] == list(range(21, 250))


def test_height_cap_inside_last_viewport(make_orchestrator):
    orchestrator = make_orchestrator(max_height=950)
    host = FakeHost(content_height=1000, viewport_height=150)

    result = asyncio.run(orchestrator.capture_full_page(host))

    assert result.success
    assert image_dimensions(result.image) == (100, 950)
    assert [c['scroll_y'] for c in host.captures] == [0, 150, 300, 450, 600, 750, 850]
    # The last capture landed at 850, its rows must not be drawn again further down
    assert row_values(result.image)[21:] == list(range(21, 950))


def test_throttle_never_exceeded(orchestrator, clock):
    host = FakeHost(content_height=2000, viewport_height=150)

    asyncio.run(orchestrator.capture_full_page(host))

    # Settle delays alone keep the captures far enough apart
    assert orchestrator.throttle.calls == len(host.captures) == 14
    assert all(s >= 0.3 for s in clock.sleeps)


def test_operations_are_serialized(orchestrator):
    journal = []
    a = FakeHost(content_height=400, target_id='a')
    b = FakeHost(content_height=400, target_id='b')
    a.journal = b.journal = journal

    async def run_test():
        return await asyncio.gather(orchestrator.capture_full_page(a), orchestrator.capture_full_page(b))

    results = asyncio.run(run_test())

    assert all(r.success for r in results)
    assert journal in (['a'] * 3 + ['b'] * 3, ['b'] * 3 + ['a'] * 3)


def test_visible_capture(orchestrator):
    host = FakeHost(content_height=1000, viewport_height=150, scroll_y=200, dpr=2)

    result = asyncio.run(orchestrator.capture_visible(host, format='jpg', quality=70))

    assert result.success
    assert result.format == 'jpeg'
    # Raster dimensions, no scrolling involved at all
    assert (result.width, result.height) == (200, 300)
    assert host.scrolls == []
    assert host.captures[0]['quality'] == 70
