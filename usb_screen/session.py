"""
Device session: the single owner of one serial channel.

A session is constructed explicitly and handed to each component (draw,
flash, playback). It carries the connection, the handshake flag and the
operation lock that keeps one high-level operation in flight per channel.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .config import ScreenConfig, default_config
from .serial_port import SerialPort, create_serial_port
from .command_transport import CommandTransport

logger = logging.getLogger(__name__)


class ScreenSession:
    """
    Owns the serial port and per-connection state for one screen.

    Usage::

        async with ScreenSession(config) as session:
            await DrawEngine(session).draw_image(image)
    """

    def __init__(
        self,
        config: Optional[ScreenConfig] = None,
        serial_port: Optional[SerialPort] = None,
        use_hardware: Optional[bool] = None,
    ):
        self.config = config or default_config()
        self.port = serial_port or create_serial_port(self.config.serial, use_hardware)
        self.handshake_done = False
        self._operation_lock = asyncio.Lock()
        self.transport = CommandTransport(self)

    def is_connected(self) -> bool:
        return self.port.is_connected()

    async def open(self) -> None:
        """
        Connect the port and wake the device.

        Raises:
            SerialConnectionError: If the port cannot be opened or written
        """
        await self.port.connect()
        await self.transport.handshake()
        logger.info("Screen session opened on %s", self.config.serial.port)

    async def close(self) -> None:
        self.handshake_done = False
        await self.port.disconnect()
        logger.info("Screen session closed")

    @asynccontextmanager
    async def operation(self, name: str) -> AsyncIterator[CommandTransport]:
        """Hold the channel exclusively for one high-level operation."""
        if self._operation_lock.locked():
            logger.debug("Operation '%s' waiting for channel", name)
        async with self._operation_lock:
            yield self.transport

    async def __aenter__(self) -> "ScreenSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_value, tb) -> None:
        await self.close()
