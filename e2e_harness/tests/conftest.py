"""Shared fixtures: a fake Appium server on a background thread plus session configs."""
import threading

import pytest
from werkzeug.serving import make_server

from e2e_harness.mobile.config import SessionConfig
from e2e_harness.mobile.session import SessionManager
from fake_appium import FakeDevice, create_app

DEMO_CAPABILITIES = {
    "iOS": {"deviceName": "iPhone 15", "app": "/builds/TestForE2E.app", "automationName": "XCUITest"},
    "Android": {"deviceName": "Pixel 7", "app": "/builds/app-debug.apk", "automationName": "UiAutomator2"},
}


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def appium_server(device):
    server = make_server("127.0.0.1", 0, create_app(device))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        thread.join(timeout=5)


def make_config(port, platform="iOS", **overrides):
    values = {
        "platform": platform,
        "capabilities": DEMO_CAPABILITIES[platform],
        "server_port": port,
        "find_timeout_ms": 600,
        "poll_interval_ms": 50,
        "request_timeout_s": 5.0,
    }
    values.update(overrides)
    return SessionConfig(**values)


@pytest.fixture
def ios_config(appium_server):
    return make_config(appium_server.server_port, "iOS")


@pytest.fixture
def android_config(appium_server):
    return make_config(appium_server.server_port, "Android")


@pytest.fixture(params=["iOS", "Android"])
def platform_config(request, appium_server):
    return make_config(appium_server.server_port, request.param)


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def session(manager, ios_config):
    with manager.session(ios_config) as s:
        yield s
