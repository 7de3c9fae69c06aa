#!/usr/bin/env python3

# Capture documents taller than the viewport and stitch them into one seamless image

__version__ = '0.1.0'

import asyncio
import getopt
import os
import sys

from loguru import logger

from scrollcaptureio import settings
from scrollcaptureio.geometry import Point, Rect

USAGE = ('scrollcapture.io [-m visible|full|selection] [-f png|jpeg] [-q quality] [-o output dir] '
         '[-s x,y,w,h selection] [-p x,y interaction point] [-l debug level - TRACE, DEBUG(default), INFO, SUCCESS, WARNING, ERROR, CRITICAL] '
         'URL [URL ...]')


def get_version():
    return __version__


def generate_filename(format='png', index=None):
    import arrow
    stamp = arrow.now().format('YYYYMMDD_HHmmss')
    suffix = f"_{index}" if index is not None else ''
    return f"screenshot_{stamp}{suffix}.{format}"


def _parse_numbers(value, count, opt):
    try:
        numbers = [float(v) for v in value.split(',')]
    except ValueError:
        numbers = []
    if len(numbers) != count:
        print(f"{opt} expects {count} comma separated numbers, got '{value}'")
        sys.exit(2)
    return numbers


def save_result(result, output_dir, index=None):
    path = os.path.join(output_dir, generate_filename(result.format, index=index))
    with open(path, 'wb') as f:
        f.write(result.image)
    logger.success(f"Saved {result.width}x{result.height} capture to {path}")
    return path


async def capture_urls(urls, mode='full', format=None, quality=None, rect=None, point=None):
    """Open every URL in its own page and capture them all as one serialized batch."""
    from playwright.async_api import async_playwright, Error

    from scrollcaptureio.batch import BatchCapture
    from scrollcaptureio.hosts.playwright import host as playwright_host, connect_browser
    from scrollcaptureio.orchestrator import CaptureOrchestrator

    logger.info(f"Using {playwright_host.host_description}")
    async with async_playwright() as p:
        browser = await connect_browser(p)
        context = await browser.new_context()
        batch = BatchCapture(CaptureOrchestrator())
        try:
            for n, url in enumerate(urls):
                page = await context.new_page()
                try:
                    await page.goto(url, wait_until='load')
                except Error as e:
                    logger.error(f"Could not load {url} - {e}")
                    continue
                extra_wait = int(os.getenv("WEBDRIVER_DELAY_BEFORE_CONTENT_READY", 0))
                if extra_wait:
                    await page.wait_for_timeout(extra_wait * 1000)
                h = playwright_host(page, target_id=str(n))
                batch.add(h, mode=mode, format=format, quality=quality, rect=rect, container_hint=point)

            results = await batch.run()
        finally:
            await context.close()
            await browser.close()

    return [results.get(str(n)) for n in range(len(urls))]


def main():
    mode = 'full'
    format = settings.SCREENSHOT_FORMAT
    quality = settings.SCREENSHOT_QUALITY
    output_dir = os.getcwd()
    rect = None
    point = None

    try:
        opts, args = getopt.getopt(sys.argv[1:], "m:f:q:o:s:p:l:")
    except getopt.GetoptError:
        print(USAGE)
        sys.exit(2)

    # Set a default logger level
    logger_level = 'DEBUG'
    # Set a logger level via shell env variable
    if os.getenv("LOGGER_LEVEL"):
        level = os.getenv("LOGGER_LEVEL")
        logger_level = int(level) if level.isdigit() else level.upper()

    for opt, arg in opts:
        if opt == '-m':
            mode = arg

        if opt == '-f':
            format = arg

        if opt == '-q':
            if not arg.isdigit() or int(arg) > 100:
                print(f"-q expects a JPEG quality between 0 and 100, got '{arg}'")
                sys.exit(2)
            quality = int(arg)

        if opt == '-o':
            output_dir = arg

        if opt == '-s':
            x, y, w, h = _parse_numbers(arg, 4, opt)
            rect = Rect(x, y, w, h)

        if opt == '-p':
            x, y = _parse_numbers(arg, 2, opt)
            point = Point(x, y)

        if opt == '-l':
            logger_level = int(arg) if arg.isdigit() else arg.upper()

    # Without this, a logger will be duplicated
    logger.remove()
    try:
        log_level_for_stdout = {'TRACE', 'DEBUG', 'INFO', 'SUCCESS'}
        logger.configure(handlers=[
            {"sink": sys.stdout, "level": logger_level,
             "filter": lambda record: record['level'].name in log_level_for_stdout},
            {"sink": sys.stderr, "level": logger_level,
             "filter": lambda record: record['level'].name not in log_level_for_stdout},
        ])
    # Catch negative number or wrong log level name
    except ValueError:
        print("Available log level names: TRACE, DEBUG(default), INFO, SUCCESS,"
              " WARNING, ERROR, CRITICAL")
        sys.exit(2)

    if not args:
        print(USAGE)
        sys.exit(2)

    if mode not in ('visible', 'full', 'selection'):
        print(f"Unknown mode '{mode}'\n{USAGE}")
        sys.exit(2)

    if mode == 'selection' and rect is None:
        print(f"Selection mode needs -s x,y,w,h\n{USAGE}")
        sys.exit(2)

    try:
        format = settings.normalise_format(format)
    except ValueError as e:
        print(str(e))
        sys.exit(2)

    if not os.path.isdir(output_dir):
        logger.critical(f"ERROR: Output directory '{output_dir}' does not exist")
        sys.exit(2)

    logger.info(f"scrollcapture.io v{get_version()} capturing {len(args)} URL(s) in {mode} mode")
    results = asyncio.run(capture_urls(args, mode=mode, format=format, quality=quality, rect=rect, point=point))

    all_ok = True
    for n, (url, result) in enumerate(zip(args, results)):
        if result is None:
            all_ok = False
            continue
        if result.success:
            save_result(result, output_dir, index=n if len(args) > 1 else None)
        else:
            all_ok = False
            logger.error(f"{url} - {result.error} {result.message}")

    sys.exit(0 if all_ok else 1)
