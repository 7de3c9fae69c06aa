import os

# Because strtobool was removed in python 3.12 distutils
_BOOL_MAP = {
    'y': True, 'yes': True, 't': True, 'true': True, 'on': True, '1': True,
    'n': False, 'no': False, 'f': False, 'false': False, 'off': False, '0': False,
}


def strtobool(value):
    try:
        return _BOOL_MAP[str(value).lower()]
    except KeyError:
        raise ValueError('"{}" is not a valid bool value'.format(value))


def _env(name, default):
    # .strip('"') is going to save someone a lot of time when they accidently wrap the env value
    v = os.getenv(name)
    return v.strip('"') if v is not None else default


def _env_int(name, default):
    v = _env(name, None)
    return int(v) if v not in (None, '') else default


SCREENSHOT_FORMATS = ('png', 'jpeg')
SCREENSHOT_FORMAT_DEFAULT = 'png'
SCREENSHOT_DEFAULT_QUALITY = 92

SCREENSHOT_FORMAT = _env('SCREENSHOT_FORMAT', SCREENSHOT_FORMAT_DEFAULT).lower()
SCREENSHOT_QUALITY = _env_int('SCREENSHOT_QUALITY', SCREENSHOT_DEFAULT_QUALITY)

# The renderer needs time to paint freshly scrolled content, there is no reliable "paint complete" event
SCROLL_SETTLE_DELAY_FIRST_MS = _env_int('SCROLL_SETTLE_DELAY_FIRST_MS', 300)
SCROLL_SETTLE_DELAY_MS = _env_int('SCROLL_SETTLE_DELAY_MS', 550)

# The host capture primitive allows roughly two calls per second
CAPTURE_MIN_INTERVAL_MS = _env_int('CAPTURE_MIN_INTERVAL_MS', 500)

HOST_CALL_TIMEOUT = _env_int('HOST_CALL_TIMEOUT', 30)

SELECTION_MIN_SIZE = _env_int('SELECTION_MIN_SIZE', 10)

# Corrective scroll keeps this much context above/left of a selection that was out of view
SELECTION_SCROLL_MARGIN = 50

# Negative crop offsets smaller than this (CSS px) are just scroll rounding noise
CROP_ROUNDING_TOLERANCE = 2

# Optional cap on full-page output height (device px), unset means no cap
SCREENSHOT_MAX_HEIGHT = _env_int('SCREENSHOT_MAX_HEIGHT', None)

# Outputs taller than this are composited in a child process so the large surface is freed with it
SCREENSHOT_SIZE_STITCH_THRESHOLD = _env_int('SCREENSHOT_SIZE_STITCH_THRESHOLD', 8000)

SCREENSHOT_HIDE_SCROLLBAR = strtobool(_env('SCREENSHOT_HIDE_SCROLLBAR', 'true'))


def settle_delays():
    """First and subsequent settlement delays in seconds."""
    return SCROLL_SETTLE_DELAY_FIRST_MS / 1000, SCROLL_SETTLE_DELAY_MS / 1000


def normalise_format(format):
    format = (format or SCREENSHOT_FORMAT).lower()
    if format == 'jpg':
        format = 'jpeg'
    if format not in SCREENSHOT_FORMATS:
        raise ValueError(f"Unsupported screenshot format '{format}', expected one of {', '.join(SCREENSHOT_FORMATS)}")
    return format
