# usb_screen/config.py
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from .protocol_config import SCREEN_HEIGHT, SCREEN_WIDTH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Size:
    w: int
    h: int

    def __post_init__(self) -> None:
        if self.w <= 0 or self.h <= 0:
            raise ValueError(f"Size must be positive, got ({self.w}x{self.h})")


@dataclass(frozen=True)
class SerialConfig:
    port: str = "/dev/ttyACM0"
    baudrate: int = 19200
    timeout: float = 0.5
    mock: bool = True

    def __post_init__(self) -> None:
        if self.baudrate <= 0:
            raise ValueError("Serial baudrate must be > 0")
        if self.timeout <= 0:
            raise ValueError("Serial timeout must be > 0")


@dataclass(frozen=True)
class ProtocolTiming:
    """Protocol-level waits, in seconds."""

    ack_timeout: float = 2.0
    poll_interval: float = 0.001
    handshake_settle: float = 0.25
    max_draw_attempts: int = 2

    def __post_init__(self) -> None:
        for name in ("ack_timeout", "poll_interval", "handshake_settle"):
            if getattr(self, name) <= 0:
                raise ValueError(f"Timing '{name}' must be > 0")
        if self.max_draw_attempts < 1:
            raise ValueError("max_draw_attempts must be >= 1")


@dataclass(frozen=True)
class ScreenConfig:
    size: Size = field(default_factory=lambda: Size(SCREEN_WIDTH, SCREEN_HEIGHT))
    serial: SerialConfig = field(default_factory=SerialConfig)
    timing: ProtocolTiming = field(default_factory=ProtocolTiming)

    @property
    def frame_bytes(self) -> int:
        """Wire frame length for a full-screen frame (2 bytes per pixel)."""
        return self.size.w * self.size.h * 2


def load_from_toml(config_path: str | Path) -> ScreenConfig:
    """
    Load a ScreenConfig from a TOML file.

    Expected TOML structure (every table and key is optional):

    [screen]
    w = 160
    h = 80

    [serial]
    port = "/dev/ttyACM0"
    baudrate = 19200
    timeout = 0.5
    mock = false

    [timing]
    ack_timeout = 2.0
    poll_interval = 0.001
    handshake_settle = 0.25
    max_draw_attempts = 2
    """
    p = Path(config_path)
    if not p.exists():
        raise FileNotFoundError(f"Configuration file not found: {p}")

    with p.open("rb") as f:
        data = tomllib.load(f)

    screen = data.get("screen") or {}
    serial = data.get("serial") or {}
    timing = data.get("timing") or {}

    cfg = ScreenConfig(
        size=Size(int(screen.get("w", SCREEN_WIDTH)), int(screen.get("h", SCREEN_HEIGHT))),
        serial=SerialConfig(
            port=str(serial.get("port", "/dev/ttyACM0")),
            baudrate=int(serial.get("baudrate", 19200)),
            timeout=float(serial.get("timeout", 0.5)),
            mock=bool(serial.get("mock", True)),
        ),
        timing=ProtocolTiming(
            ack_timeout=float(timing.get("ack_timeout", 2.0)),
            poll_interval=float(timing.get("poll_interval", 0.001)),
            handshake_settle=float(timing.get("handshake_settle", 0.25)),
            max_draw_attempts=int(timing.get("max_draw_attempts", 2)),
        ),
    )

    logger.info(
        "Loaded ScreenConfig: screen=%dx%d, serial=%s@%d (mock=%s)",
        cfg.size.w,
        cfg.size.h,
        cfg.serial.port,
        cfg.serial.baudrate,
        cfg.serial.mock,
    )
    return cfg


def default_config() -> ScreenConfig:
    """A sensible local default: the 160x80 panel at 19200 baud, mocked."""
    return ScreenConfig(
        size=Size(SCREEN_WIDTH, SCREEN_HEIGHT),
        serial=SerialConfig(port="/dev/ttyACM0", baudrate=19200, timeout=0.5, mock=True),
        timing=ProtocolTiming(),
    )
