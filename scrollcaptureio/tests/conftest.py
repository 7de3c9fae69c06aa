#!/usr/bin/env python3
import pytest
from loguru import logger

from scrollcaptureio.orchestrator import CaptureOrchestrator
from scrollcaptureio.throttle import CaptureThrottle
from scrollcaptureio.tests.util import FakeClock


# https://loguru.readthedocs.io/en/latest/resources/migration.html#replacing-caplog-fixture-from-pytest-library
# Show loguru logs only if CICD pytest fails.
@pytest.fixture
def reportlog(pytestconfig):
    logging_plugin = pytestconfig.pluginmanager.getplugin("logging-plugin")
    handler_id = logger.add(logging_plugin.report_handler, format="{message}")
    yield
    logger.remove(handler_id)


@pytest.fixture
def log_messages():
    """Every loguru message at WARNING or above emitted during the test"""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record['message']), level='WARNING')
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_orchestrator(clock):
    def _make(**kwargs):
        throttle = kwargs.pop('throttle', None) or CaptureThrottle(clock=clock.now, sleep=clock.sleep, timeout=5)
        kwargs.setdefault('hide_scrollbar', True)
        kwargs.setdefault('stitch_threshold', 0)
        kwargs.setdefault('timeout', 5)
        kwargs.setdefault('max_height', 0)
        return CaptureOrchestrator(throttle=throttle, sleep=clock.sleep, **kwargs)
    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
