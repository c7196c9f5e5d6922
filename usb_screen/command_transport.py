"""
Command transport: fixed 6-byte commands, the wake-up handshake and
2-byte echo acknowledgments.

Every exchange polls the channel (1 ms interval, 2000 ms window by default);
the outcome is returned as an AckStatus instead of raised, so callers decide
whether a missing reply is retryable, tolerable or fatal.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .protocol_config import HANDSHAKE, PACKET_SIZE, TRANSFER_BUFFER_SIZE
from .protocol_encoder import ProtocolEncoder

if TYPE_CHECKING:
    from .session import ScreenSession

logger = logging.getLogger(__name__)


class AckStatus(Enum):
    """Outcome of waiting for a device reply."""

    ACKED = "acked"  # Echo matched (or, for consume-only waits, any reply)
    MISMATCH = "mismatch"  # First reply did not echo the command
    TIMEOUT = "timeout"  # Nothing arrived within the window

    def __str__(self) -> str:
        return self.value

    @property
    def ok(self) -> bool:
        return self is AckStatus.ACKED


class CommandTransport:
    """
    Sends commands over the session's serial port and collects replies.

    The transport holds no state of its own beyond timing; the session owns
    the port and the handshake flag.
    """

    def __init__(self, session: "ScreenSession"):
        self.session = session
        self.timing = session.config.timing
        self.encoder = ProtocolEncoder()

    @property
    def port(self):
        return self.session.port

    async def send_no_wait(self, packet: bytes) -> None:
        """Write one 6-byte command; no response is expected."""
        if len(packet) != PACKET_SIZE:
            raise ValueError(f"Command packet must be {PACKET_SIZE} bytes, got {len(packet)}")
        await self.port.write(packet)
        logger.debug("-> %s", packet.hex(" "))

    async def send_buffer(self, buffer: bytes) -> None:
        """Write one 390-byte transfer buffer in a single call."""
        if len(buffer) != TRANSFER_BUFFER_SIZE:
            raise ValueError(
                f"Transfer buffer must be {TRANSFER_BUFFER_SIZE} bytes, got {len(buffer)}"
            )
        await self.port.write(buffer)

    async def send_and_wait_ack(self, packet: bytes) -> AckStatus:
        """
        Write a command and wait for the device to echo its first two bytes.

        The first non-empty read decides: a matching echo is ACKED, anything
        else is an immediate MISMATCH. No reply within the window is TIMEOUT.
        """
        await self.send_no_wait(packet)
        reply = await self._poll(self.timing.ack_timeout)
        if reply is None:
            logger.debug("No ack for %s within %.0fms", packet[:2].hex(" "), self.timing.ack_timeout * 1e3)
            return AckStatus.TIMEOUT
        if len(reply) >= 2 and reply[:2] == packet[:2]:
            return AckStatus.ACKED
        logger.debug("Ack mismatch: sent %s, got %s", packet[:2].hex(" "), reply.hex(" "))
        return AckStatus.MISMATCH

    async def wait_for_reply(self, timeout: Optional[float] = None) -> AckStatus:
        """Consume whatever the device sends next; the content is not checked."""
        reply = await self._poll(self.timing.ack_timeout if timeout is None else timeout)
        return AckStatus.TIMEOUT if reply is None else AckStatus.ACKED

    async def handshake(self) -> None:
        """
        Wake the device: discard buffers, send NUL 'MSNCN', settle, consume reply.

        Used when the session opens and as the recovery step before a retry.
        """
        self.port.discard_buffers()
        await self.port.write(HANDSHAKE)
        await asyncio.sleep(self.timing.handshake_settle)
        reply = await self.port.read_available()
        self.session.handshake_done = True
        logger.debug("Handshake sent, %d reply bytes consumed", len(reply))

    async def _poll(self, timeout: float) -> Optional[bytes]:
        deadline = time.monotonic() + timeout
        while True:
            if self.port.in_waiting() > 0:
                data = await self.port.read_available()
                if data:
                    return data
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(self.timing.poll_interval)
