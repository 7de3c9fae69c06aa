import importlib.resources

from scrollcaptureio.hosts.base import Host, bounded, is_restricted_url, RESTRICTED_URL_PREFIXES


def _read_js(name):
    return importlib.resources.files("scrollcaptureio.hosts.res").joinpath(name).read_text(encoding='utf-8')


GEOMETRY_JS = _read_js('geometry.js')
SCROLL_TO_JS = _read_js('scroll_to.js')
SCROLL_CANDIDATES_JS = _read_js('scroll_candidates.js')
FIXED_ELEMENTS_JS = _read_js('fixed_elements.js')
ELEMENT_VISIBILITY_JS = _read_js('element_visibility.js')
SCROLLBAR_JS = _read_js('scrollbar.js')
