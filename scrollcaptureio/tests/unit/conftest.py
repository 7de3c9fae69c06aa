"""
Conftest for unit tests - pure geometry, compositing and component tests against an in memory host.
No browser needed.
"""
import pytest

from scrollcaptureio.tests.util import FakeHost


@pytest.fixture
def host():
    return FakeHost()
