"""
Draw Engine - paints a rectangular region of the screen.

Sequence per attempt:
1. Area-set: position (x, y) and size (w, h), no ack
2. Init-write, waits for the echo ack
3. Frame data in 256-byte chunks, one 390-byte transfer buffer per chunk

A failed attempt is followed by a handshake and one more attempt. A draw
never raises: the caller gets False back and playback keeps running.
"""

import logging
from enum import Enum
from typing import Union

from .command_transport import AckStatus, CommandTransport
from .pixel_codec import PixelSource, WireFrame, encode_frame
from .protocol_encoder import iter_chunks
from .session import ScreenSession

logger = logging.getLogger(__name__)

FrameData = Union[WireFrame, bytes, bytearray, memoryview]


class DrawState(Enum):
    """States of one draw call's retry cycle."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    RECOVERING = "recovering"
    FAILED = "failed"
    DONE = "done"

    def __str__(self) -> str:
        return self.value


class DrawAttempts:
    """
    Retry bookkeeping for a single draw call, independent of any I/O.

    ``advance()`` moves to the next attempt: the first is ATTEMPTING, later
    ones start in RECOVERING (handshake first). Once the ceiling is hit,
    ``advance()`` returns FAILED. ``succeeded()`` ends the cycle in DONE.
    """

    def __init__(self, max_attempts: int = 2):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.attempt = 0
        self.state = DrawState.IDLE

    @property
    def finished(self) -> bool:
        return self.state in (DrawState.DONE, DrawState.FAILED)

    def advance(self) -> DrawState:
        if self.finished:
            return self.state
        if self.attempt >= self.max_attempts:
            self.state = DrawState.FAILED
            return self.state
        self.attempt += 1
        self.state = DrawState.RECOVERING if self.attempt > 1 else DrawState.ATTEMPTING
        return self.state

    def recovered(self) -> None:
        if self.state is not DrawState.RECOVERING:
            raise RuntimeError(f"Cannot finish recovery from state {self.state}")
        self.state = DrawState.ATTEMPTING

    def succeeded(self) -> None:
        if self.state is not DrawState.ATTEMPTING:
            raise RuntimeError(f"Cannot succeed from state {self.state}")
        self.state = DrawState.DONE


class DrawEngine:
    """Streams wire frames to a screen region over a session."""

    def __init__(self, session: ScreenSession):
        self.session = session
        self.max_attempts = session.config.timing.max_draw_attempts

    async def draw_call(
        self, x: int, y: int, width: int, height: int, frame: FrameData
    ) -> bool:
        """
        Paint ``frame`` into the (x, y, width, height) region.

        Returns:
            bool: True if the whole frame was streamed, False once every
            attempt has failed (the failure is logged, never raised)
        """
        data = frame.data if isinstance(frame, WireFrame) else bytes(frame)
        if len(data) % 2:
            logger.error(f"Wire frame length {len(data)} is odd, draw skipped")
            return False

        attempts = DrawAttempts(self.max_attempts)
        async with self.session.operation("draw") as transport:
            while True:
                state = attempts.advance()
                if state is DrawState.FAILED:
                    logger.warning(
                        f"Draw {width}x{height}@({x},{y}) abandoned after {attempts.attempt} attempts"
                    )
                    return False

                try:
                    if state is DrawState.RECOVERING:
                        logger.info(f"Draw retry {attempts.attempt}: waking device")
                        await transport.handshake()
                        attempts.recovered()

                    status = await self._attempt(transport, x, y, width, height, data)
                except Exception as e:
                    logger.error(f"Draw attempt {attempts.attempt} failed: {e}")
                    continue

                if status.ok:
                    attempts.succeeded()
                    return True
                logger.warning(f"Draw attempt {attempts.attempt}: init-write {status}")

    async def _attempt(
        self,
        transport: CommandTransport,
        x: int,
        y: int,
        width: int,
        height: int,
        data: bytes,
    ) -> AckStatus:
        encoder = transport.encoder
        await transport.send_no_wait(encoder.encode_set_position(x, y))
        await transport.send_no_wait(encoder.encode_set_size(width, height))

        status = await transport.send_and_wait_ack(encoder.encode_init_write())
        if not status.ok:
            return status

        chunks = 0
        for chunk, valid in iter_chunks(data):
            await transport.send_buffer(encoder.encode_draw_chunk(chunk, valid))
            chunks += 1
        logger.debug(f"Drew {width}x{height}@({x},{y}) in {chunks} chunks")
        return status

    async def draw_frame(self, frame: WireFrame, x: int = 0, y: int = 0) -> bool:
        return await self.draw_call(x, y, frame.width, frame.height, frame)

    async def draw_image(self, image: PixelSource, x: int = 0, y: int = 0) -> bool:
        """Encode a Pillow image or RGB array and paint it at (x, y)."""
        return await self.draw_frame(encode_frame(image), x, y)
