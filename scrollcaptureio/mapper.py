"""
Coordinate mapping between content space, viewport space and device-pixel space.

Everything here is pure arithmetic, the orchestrator feeds it fresh ScrollMetrics and the actual
scroll offset the host reports after every move (which can differ from the requested one because
the renderer clamps at the content edges and rounds sub-pixel offsets).

    viewport = origin + (content - scroll)     origin is (0, 0) for the window
    device   = round(viewport * dpr)
"""

import math

from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.geometry import Point, Rect, TilePlan


def px_round(value):
    # Half up like the renderer does it, Python's round() would round half to even
    return int(math.floor(value + 0.5))


def content_to_viewport(point: Point, scroll: Point, origin: Point = Point()) -> Point:
    return Point(x=origin.x + (point.x - scroll.x), y=origin.y + (point.y - scroll.y))


def viewport_to_content(point: Point, scroll: Point, origin: Point = Point()) -> Point:
    return Point(x=point.x - origin.x + scroll.x, y=point.y - origin.y + scroll.y)


def to_device_pixels(rect: Rect, dpr: float) -> Rect:
    return Rect(x=px_round(rect.x * dpr),
                y=px_round(rect.y * dpr),
                width=px_round(rect.width * dpr),
                height=px_round(rect.height * dpr))


def device_span(start, length, dpr):
    """
    Device pixel (offset, length) of a CSS span.

    Both edges are rounded rather than the length, so consecutive spans always add up to the
    rounded total and never overlap or leave a gap.
    """
    start_px = px_round(start * dpr)
    return start_px, px_round((start + length) * dpr) - start_px


def clamp_to_tile(rect: Rect, tile_width, tile_height) -> Rect:
    """
    Shrink/move a device pixel crop rectangle until it is fully inside [0, 0, tile_width, tile_height].

    Never produces an out-of-bounds read and never a degenerate (zero sized) rectangle.
    """
    x, y = int(rect.x), int(rect.y)
    w, h = int(rect.width), int(rect.height)

    # Starting point is completely off the tile, pull it back so we keep as much as possible
    if x >= tile_width:
        x = max(0, tile_width - w)
    if y >= tile_height:
        y = max(0, tile_height - h)

    if x < 0:
        w += x
        x = 0
    if y < 0:
        h += y
        y = 0

    if x + w > tile_width:
        w = tile_width - x
    if y + h > tile_height:
        h = tile_height - y

    w = max(1, w)
    h = max(1, h)
    x = max(0, min(x, tile_width - 1))
    y = max(0, min(y, tile_height - 1))

    if (x, y, w, h) != (rect.x, rect.y, rect.width, rect.height):
        logger.debug(f"Crop {rect} clamped to {x},{y} {w}x{h} inside tile {tile_width}x{tile_height}")

    return Rect(x, y, w, h)


def visible_crop_width(selection: Rect, scroll: Point, visible_width, width=None):
    """
    Width of the crop so its right edge does not run past the surface's visible width.

    For a container the visible width is its client width, which excludes its own scrollbar.
    """
    width = selection.width if width is None else width
    left = selection.x - scroll.x
    if left + width > visible_width:
        width = visible_width - left
    return width


def selection_crop(selection: Rect, captured_height, step_height, scroll: Point, origin: Point = Point(),
                   visible_width=None, width=None) -> Rect:
    """
    Viewport space crop window for the slice of `selection` starting `captured_height` into it.

    :param selection: selection in content space of the active surface
    :param captured_height: how much of the selection is already captured (CSS px)
    :param step_height: visible height of the surface, the most one capture can contribute
    :param scroll: actual scroll offset of the surface after the move
    :param origin: where the surface sits inside the outer viewport
    :param visible_width: clamp the crop to this visible width of the surface when given
    :param width: crop width to start from, defaults to the selection width
    """
    top_left = content_to_viewport(Point(selection.x, selection.y + captured_height), scroll, origin)
    crop_x, crop_y = top_left.x, top_left.y
    crop_height = min(step_height, selection.height - captured_height)

    crop_width = selection.width if width is None else width
    if visible_width is not None:
        crop_width = visible_crop_width(selection, scroll, visible_width, width=crop_width)

    # Sub-pixel scroll rounding can leave us slightly above the viewport
    if crop_y < 0:
        if crop_y < -settings.CROP_ROUNDING_TOLERANCE:
            logger.warning(f"Crop for selection {selection} starts {-crop_y:.1f}px above the viewport "
                           f"(scroll {scroll.x},{scroll.y} captured {captured_height}), clamping to 0")
        crop_y = 0

    return Rect(crop_x, crop_y, crop_width, crop_height)


def is_fully_visible(crop: Rect, origin: Point, viewport_width, viewport_height) -> bool:
    """
    True when a viewport space crop lies inside the surface's visible box.

    The horizontal check only applies when the crop could fit at all, wider selections get
    clamped to the visible width later anyway.
    """
    if crop.y < origin.y or crop.bottom > origin.y + viewport_height:
        return False
    if crop.width <= viewport_width and (crop.x < origin.x or crop.right > origin.x + viewport_width):
        return False
    return True


def corrective_scroll_target(selection: Rect, margin=None) -> Point:
    margin = settings.SELECTION_SCROLL_MARGIN if margin is None else margin
    return Point(x=max(0, selection.x - margin), y=max(0, selection.y - margin))


def horizontal_scroll_target(selection: Rect, scroll_x, visible_width, width=None, margin=None):
    """
    Horizontal scroll offset that shows `width` (default the selection width) of the selection,
    the current offset when it already does.
    """
    margin = settings.SELECTION_SCROLL_MARGIN if margin is None else margin
    width = min(selection.width if width is None else width, visible_width)
    if selection.x >= scroll_x and selection.x + width <= scroll_x + visible_width:
        return scroll_x
    # Leave some margin on the left, but never so much that the right edge falls out of view
    return max(0, selection.x + width - visible_width, selection.x - margin)


def plan_full_page(content_height, viewport_height, tile_height_px, dpr, max_height_px=None, max_scroll_y=None):
    """
    Plan the sequence of viewport captures covering the whole content height.

    :param content_height: CSS px
    :param viewport_height: CSS px, only used when the tile pixel height is not known yet
    :param tile_height_px: device pixel height of one viewport capture
    :param dpr: device pixel ratio
    :param max_height_px: optional cap on the output height
    :param max_scroll_y: CSS px, furthest the surface can scroll, defaults to content minus viewport height
    :return: (total_height_px, [TilePlan, ...]) the plan heights sum to total_height_px unless a capped
             plan had to pull its last scroll back to max_scroll_y, that tile then overlaps the previous one
    """
    total_height = int(math.ceil(content_height * dpr))
    trimmed = False
    if max_height_px and total_height > max_height_px:
        total_height = int(max_height_px)
        trimmed = True

    tile_height_px = int(tile_height_px or px_round(viewport_height * dpr))
    if tile_height_px <= 0:
        raise ValueError(f"Tile height must be positive, got {tile_height_px}")

    if max_scroll_y is None:
        max_scroll_y = max(0, content_height - viewport_height)

    count = max(1, int(math.ceil(total_height / tile_height_px)))
    plans = []
    for i in range(count):
        document_y = i * tile_height_px
        scroll_y = document_y / dpr
        if trimmed and scroll_y > max_scroll_y:
            # The renderer would clamp this scroll anyway, draw the tile where it really lands
            scroll_y = max_scroll_y
            document_y = px_round(scroll_y * dpr)
        height = min(tile_height_px, total_height - document_y)
        # When trimmed every tile is drawn at the offset it was scrolled to and the canvas edge
        # does the cutting
        is_last = i == count - 1 and not trimmed
        plans.append(TilePlan(index=i,
                              scroll_y=scroll_y,
                              document_y=document_y,
                              height=height,
                              is_last=is_last))

    return total_height, plans


def plan_selection(selection_height, step_height):
    """CSS (captured_height, crop_height) pairs for a scrolling selection capture."""
    if step_height <= 0:
        raise ValueError(f"Step height must be positive, got {step_height}")
    steps = []
    captured = 0
    while captured < selection_height:
        h = min(step_height, selection_height - captured)
        steps.append((captured, h))
        captured += h
    return steps
