# Tiles are composited onto one surface in device pixels.
#
# - Very tall outputs are composited in a child process, a 16000px high RGB surface at 1400px wide is
#   already ~64MB before any PIL buffers, and the memory is only reliably handed back when the process exits.

import io
import time

from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.geometry import CaptureResult, RasterTile, Rect
from scrollcaptureio.mapper import clamp_to_tile

WARNING_TEXT_HEIGHT = 20


def image_size(image_bytes):
    from PIL import Image

    with Image.open(io.BytesIO(image_bytes)) as img:
        return img.width, img.height


def encode(img, format='png', quality=None):
    quality = settings.SCREENSHOT_QUALITY if quality is None else quality
    with io.BytesIO() as output:
        if format == 'jpeg':
            img.convert('RGB').save(output, format="JPEG", quality=int(quality))
        else:
            # Deterministic output, no timestamps or other chunks in the PNG
            img.save(output, format="PNG", optimize=False)
        return output.getvalue()


def crop_tile(image_bytes, rect_px: Rect):
    """
    Crop a raw viewport capture to a device pixel rectangle, clamped to the capture bounds.

    :return: (lossless PNG bytes of the crop, the rectangle actually used)
    """
    from PIL import Image

    with Image.open(io.BytesIO(image_bytes)) as img:
        img.load()
        box = clamp_to_tile(rect_px, img.width, img.height)
        cropped = img.crop(box.as_box())
        try:
            return encode(cropped, 'png'), box
        finally:
            cropped.close()


def draw_trim_caption(img, original_height, capture_height):
    from PIL import ImageDraw, ImageFont

    draw = ImageDraw.Draw(img)
    warning_text = f"WARNING: Screenshot was {original_height}px but trimmed to {capture_height}px because it was too long"

    # Load font (default system font if Arial is unavailable)
    try:
        font = ImageFont.truetype("arial.ttf", WARNING_TEXT_HEIGHT)
    except IOError:
        font = ImageFont.load_default()

    text_bbox = draw.textbbox((0, 0), warning_text, font=font)
    text_width = text_bbox[2] - text_bbox[0]
    text_height = text_bbox[3] - text_bbox[1]

    draw.rectangle([(0, 0), (img.width, WARNING_TEXT_HEIGHT)], fill="white")
    draw.text(((img.width - text_width) // 2, (WARNING_TEXT_HEIGHT - text_height) // 2), warning_text, fill="red", font=font)


def _draw_order(tiles):
    # Independent of the order tiles were handed in, only the last tile has to go last
    return sorted(tiles, key=lambda t: (t.is_last, t.document_y))


def composite(tiles, total_width, total_height, tile_step_height=None, format='png', quality=None,
              original_height=None) -> CaptureResult:
    """
    Assemble raster tiles into one image of total_width x total_height device pixels.

    Every tile is drawn unmodified at its document_y, except the tile flagged is_last (when there is
    more than one tile) of which only the bottom `height` pixels are drawn at total_height - height.
    The rest of that last capture was already covered by the previous tile.

    :param tiles: list of RasterTile
    :param tile_step_height: expected device pixel height of a full tile, used to spot gaps
    :param original_height: when given and larger than total_height, a trim warning is drawn on top
    """
    from PIL import Image

    start = time.time()
    total_width = int(total_width)
    total_height = int(total_height)
    if total_width <= 0 or total_height <= 0:
        raise ValueError(f"Cannot composite onto a {total_width}x{total_height} surface")

    stitched = Image.new('RGB', (total_width, total_height))
    try:
        multiple = len(tiles) > 1
        for tile in _draw_order(tiles):
            with Image.open(io.BytesIO(tile.image)) as img:
                img.load()
                if img.mode != 'RGB':
                    img = img.convert('RGB')

                if tile.is_last and multiple:
                    slice_height = min(int(tile.height), img.height)
                    region = img.crop((0, img.height - slice_height, img.width, img.height))
                    stitched.paste(region, (0, total_height - slice_height))
                    region.close()
                else:
                    if tile_step_height and not tile.is_last and img.height < tile_step_height:
                        logger.warning(f"Tile at {tile.document_y} is only {img.height}px high, expected {tile_step_height}px")
                    stitched.paste(img, (0, int(tile.document_y)))

        if original_height and original_height > total_height:
            draw_trim_caption(stitched, original_height, total_height)

        image = encode(stitched, format, quality)
    finally:
        stitched.close()

    logger.debug(f"Composited {len(tiles)} tiles into {total_width}x{total_height} in {time.time() - start:.2f}s")
    return CaptureResult.ok(image=image, width=total_width, height=total_height, format=format)


def composite_worker(pipe_conn, tiles, total_width, total_height, tile_step_height, format, quality, original_height):
    try:
        result = composite(tiles, total_width, total_height, tile_step_height=tile_step_height,
                           format=format, quality=quality, original_height=original_height)
        pipe_conn.send_bytes(result.image)
    except Exception as e:
        pipe_conn.send_bytes(f"error:{e}".encode('utf-8'))
    finally:
        pipe_conn.close()


def composite_isolated(tiles, total_width, total_height, tile_step_height=None, format='png', quality=None,
                       original_height=None) -> CaptureResult:
    """Same as composite() but run in a child process, used for very tall outputs."""
    from multiprocessing import Process, Pipe

    start = time.time()
    tiles = [RasterTile(image=t.image, document_y=t.document_y, height=t.height, is_last=t.is_last) for t in tiles]

    parent_conn, child_conn = Pipe()
    p = Process(target=composite_worker,
                args=(child_conn, tiles, total_width, total_height, tile_step_height, format, quality, original_height))
    p.start()
    try:
        image = parent_conn.recv_bytes()
    finally:
        p.join()
        parent_conn.close()

    if image.startswith(b"error:"):
        raise RuntimeError(f"Compositing in child process failed - {image[6:].decode('utf-8', 'replace')}")

    logger.debug(f"Composited {len(tiles)} tiles in child process into {total_width}x{total_height} in {time.time() - start:.2f}s")
    return CaptureResult.ok(image=image, width=int(total_width), height=int(total_height), format=format)


def composite_tiles(tiles, total_width, total_height, tile_step_height=None, format='png', quality=None,
                    original_height=None, stitch_threshold=None) -> CaptureResult:
    stitch_threshold = settings.SCREENSHOT_SIZE_STITCH_THRESHOLD if stitch_threshold is None else stitch_threshold
    if stitch_threshold and total_height > stitch_threshold:
        logger.debug(f"Output height {total_height}px exceeds {stitch_threshold}px, compositing in a child process")
        return composite_isolated(tiles, total_width, total_height, tile_step_height=tile_step_height,
                                  format=format, quality=quality, original_height=original_height)
    return composite(tiles, total_width, total_height, tile_step_height=tile_step_height,
                     format=format, quality=quality, original_height=original_height)
