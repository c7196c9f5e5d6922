"""Shared fixtures: a fast-timing config and a session on the mock port."""

import pytest
import pytest_asyncio

from usb_screen.config import ProtocolTiming, ScreenConfig, SerialConfig
from usb_screen.serial_port import MockSerialPort
from usb_screen.session import ScreenSession


FAST_TIMING = ProtocolTiming(
    ack_timeout=0.05, poll_interval=0.001, handshake_settle=0.001, max_draw_attempts=2
)


@pytest.fixture
def screen_config() -> ScreenConfig:
    return ScreenConfig(
        serial=SerialConfig(port="/dev/ttyACM0", mock=True), timing=FAST_TIMING
    )


@pytest.fixture
def mock_port(screen_config) -> MockSerialPort:
    return MockSerialPort(screen_config.serial)


@pytest_asyncio.fixture
async def session(screen_config, mock_port):
    """Open session with the opening handshake already cleared from the log."""
    s = ScreenSession(screen_config, serial_port=mock_port)
    await s.open()
    mock_port.written.clear()
    yield s
    await s.close()
