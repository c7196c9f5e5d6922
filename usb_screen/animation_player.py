"""
Animation Player - parallel frame decode and paced, looping playback.

Decode fans frames out to a small thread pool. Every frame owns a slot in a
preallocated list, so output order is input order no matter which worker
finishes first. Playback draws each frame, sleeps off the rest of its delay
and loops until cancelled; cancellation is only observed between frames.
"""

import asyncio
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, MutableSequence, Optional, Sequence

from .draw_engine import DrawEngine
from .imaging import ResizeSpec, SourceFrame, as_image, fit_image
from .pixel_codec import WireFrame, encode_frame
from .session import ScreenSession

logger = logging.getLogger(__name__)

DEFAULT_FRAME_DELAY_MS = 100
MAX_DECODE_WORKERS = 4

ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class AnimationFrame:
    """A decoded frame and how long it stays on screen."""

    frame: WireFrame
    delay_ms: int


def normalize_delay(delay_ms: int) -> int:
    """Zero (or negative) delays fall back to the 100ms default."""
    return delay_ms if delay_ms > 0 else DEFAULT_FRAME_DELAY_MS


def decode_workers() -> int:
    return max(1, min(MAX_DECODE_WORKERS, os.cpu_count() or 1))


def decode_frames(
    sources: Sequence[SourceFrame],
    resize: Optional[ResizeSpec] = None,
    cancel: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
) -> List[AnimationFrame]:
    """
    Convert source frames to wire frames in parallel, preserving order.

    Args:
        sources: Ordered source frames
        resize: Optional fitting applied to each cloned frame
        cancel: When set, remaining frames are skipped and [] is returned
        max_workers: Worker ceiling (default: min(4, cpu count))

    Returns:
        List[AnimationFrame]: One entry per source, in source order
    """
    slots: List[Optional[AnimationFrame]] = [None] * len(sources)

    def work(index: int) -> None:
        if cancel is not None and cancel.is_set():
            return
        source = sources[index]
        image = as_image(source.image).copy()
        if resize is not None:
            image = fit_image(image, resize)
        slots[index] = AnimationFrame(encode_frame(image), normalize_delay(source.delay_ms))

    workers = max_workers or decode_workers()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="frame-decode") as pool:
        futures = [pool.submit(work, i) for i in range(len(sources))]
        for future in futures:
            future.result()

    if cancel is not None and cancel.is_set():
        logger.info("Frame decode cancelled")
        return []

    logger.debug(f"Decoded {len(slots)} frames with {workers} workers")
    return slots  # type: ignore[return-value]


class AnimationPlayer:
    """
    Decodes animations and plays them on a session in a background task.

    Usage::

        player = AnimationPlayer(session)
        frames = await player.load(source_frames(gif), ResizeSpec(mode="crop"))
        player.start(frames)
        ...
        await player.stop()
    """

    def __init__(
        self,
        session: ScreenSession,
        draw_engine: Optional[DrawEngine] = None,
        on_ready: Optional[Callable[[], None]] = None,
    ):
        self.session = session
        self.draw = draw_engine or DrawEngine(session)
        self.on_ready = on_ready
        self._decode_cancel = threading.Event()
        self._cancel: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self.cycles = 0

    @property
    def default_resize(self) -> ResizeSpec:
        """Pad frames to the configured panel size."""
        size = self.session.config.size
        return ResizeSpec(size=(size.w, size.h))

    def decode(
        self, sources: Sequence[SourceFrame], resize: Optional[ResizeSpec] = None
    ) -> List[AnimationFrame]:
        """Decode ``sources``; a ``cancel_decode`` call only stops the decode in flight."""
        return self._decode(sources, resize, self._new_decode_cancel())

    def _new_decode_cancel(self) -> threading.Event:
        self._decode_cancel = threading.Event()
        return self._decode_cancel

    def _decode(
        self,
        sources: Sequence[SourceFrame],
        resize: Optional[ResizeSpec],
        cancel: threading.Event,
    ) -> List[AnimationFrame]:
        return decode_frames(sources, resize or self.default_resize, cancel)

    async def load(
        self,
        sources: MutableSequence[SourceFrame],
        resize: Optional[ResizeSpec] = None,
        progress: Optional[ProgressCallback] = None,
        release_sources: bool = False,
    ) -> List[AnimationFrame]:
        """
        Decode off the event loop, then fire the ready callback.

        With ``release_sources`` the caller's source list is emptied once
        decoding completes, so large source images can be freed before
        playback begins.
        """
        total = len(sources)
        if progress:
            progress(0, total, f"Decoding {total} frames...")

        cancel = self._new_decode_cancel()
        frames = await asyncio.to_thread(self._decode, sources, resize, cancel)

        if release_sources:
            del sources[:]
        if frames and self.on_ready:
            self.on_ready()
        return frames

    def cancel_decode(self) -> None:
        self._decode_cancel.set()

    async def play(self, frames: Sequence[AnimationFrame], cancel: asyncio.Event) -> None:
        """
        Loop over ``frames`` until ``cancel`` is set.

        Each frame is drawn, then the remainder of its delay is slept off.
        The sleep wakes early on cancellation; a draw in progress is always
        completed first.
        """
        if not frames:
            logger.warning("No frames to play")
            return

        logger.info(f"Playback started: {len(frames)} frames")
        self.cycles = 0
        while not cancel.is_set():
            for item in frames:
                if cancel.is_set():
                    break

                started = time.monotonic()
                await self.draw.draw_frame(item.frame)
                elapsed_ms = (time.monotonic() - started) * 1e3

                remaining_ms = item.delay_ms - elapsed_ms
                if remaining_ms > 0:
                    try:
                        await asyncio.wait_for(cancel.wait(), remaining_ms / 1e3)
                    except asyncio.TimeoutError:
                        pass
            else:
                self.cycles += 1
        logger.info(f"Playback stopped after {self.cycles} full cycles")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, frames: Sequence[AnimationFrame]) -> asyncio.Task:
        """Run ``play`` as a background task; returns the task."""
        if self.running:
            logger.warning("Playback already running")
            return self._task  # type: ignore[return-value]

        self._cancel = asyncio.Event()
        self._task = asyncio.create_task(self.play(frames, self._cancel))
        return self._task

    async def stop(self) -> None:
        """Signal the playback loop and wait for it to finish its current frame."""
        self.cancel_decode()
        if self._cancel is not None:
            self._cancel.set()
        if self._task is not None:
            await self._task
            self._task = None
