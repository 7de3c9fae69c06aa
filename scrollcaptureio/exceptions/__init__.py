from loguru import logger


class CaptureError(Exception):
    """Terminal failure of one capture operation, never retried internally."""
    kind = 'capture_error'
    cancelled = False

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message


class Unmeasurable(CaptureError):
    kind = 'unmeasurable'

    def __init__(self, message='', surface=None):
        super().__init__(message)
        self.surface = surface
        logger.error(f"Could not read scroll geometry {surface or ''} - {message}")


class RestrictedSurface(CaptureError):
    kind = 'restricted_surface'

    def __init__(self, message='', url=''):
        super().__init__(message)
        self.url = url
        logger.error(f"Capture refused by host for '{url}' - {message}")


class DetachedTarget(CaptureError):
    kind = 'detached_target'

    def __init__(self, message='', url=''):
        super().__init__(message)
        self.url = url
        logger.error(f"Capture target went away '{url}' - {message}")


# Not an error as such, the caller treats it as the user changing their mind
class DegenerateSelection(CaptureError):
    kind = 'degenerate_selection'
    cancelled = True

    def __init__(self, width, height, min_size):
        super().__init__(f"Selection {width}x{height} is below the {min_size}px minimum")
        self.width = width
        self.height = height
        self.min_size = min_size


class CaptureCancelled(CaptureError):
    kind = 'cancelled'
    cancelled = True


class SelectionOutOfBounds(CaptureError):
    kind = 'selection_out_of_bounds'

    def __init__(self, selection, content_extent):
        super().__init__(f"Selection {selection} does not intersect content {content_extent.w}x{content_extent.h}")
        self.selection = selection
        self.content_extent = content_extent
        logger.warning(f"Selection {selection} lies outside the content extent {content_extent}")
