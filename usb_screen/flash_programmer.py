"""
Flash Programmer - erases and writes the screen's paged flash memory.

The flash is 4096 pages of 256 bytes. Content types own fixed base pages
(firmware/animation 0, background 3826, album 3926). A write erases the
target run of pages, then sends one 390-byte transfer buffer per page.

Writes are not transactional: if a job is interrupted or the device stops
responding, the region may be left partially erased or written. Recovery is
to run the same write again.

Some firmware does not always answer erase or page commits. A missing
reply is logged and recorded in the FlashReport, never treated as success.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .animation_player import decode_frames
from .command_transport import AckStatus, CommandTransport
from .errors import CapacityError, ProtocolTimeoutError
from .imaging import ResizeSpec, SourceFrame, fit_image
from .pixel_codec import PixelSource, encode_frame
from .protocol_config import FLASH_CAPACITY_PAGES, ContentType
from .protocol_encoder import chunk_at, page_count
from .session import ScreenSession

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


@dataclass
class FlashReport:
    """Outcome of one flash write job."""

    address: int
    pages: int
    pages_written: int = 0
    truncated: bool = False
    cancelled: bool = False
    erase_confirmed: bool = True
    unconfirmed: List[int] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        """True only if the erase and every page commit were answered."""
        return self.erase_confirmed and not self.unconfirmed and not self.cancelled

    def raise_for_unconfirmed(self) -> None:
        """
        Raises:
            ProtocolTimeoutError: If the erase or any page commit went unanswered
        """
        if not self.erase_confirmed or self.unconfirmed:
            raise ProtocolTimeoutError(
                f"Flash write at page {self.address}: erase confirmed={self.erase_confirmed}, "
                f"{len(self.unconfirmed)} unconfirmed pages"
            )


def plan_pages(address: int, length: int) -> Tuple[int, bool]:
    """
    Work out how many pages a write of ``length`` bytes at ``address`` takes.

    Returns:
        (pages, truncated): the page count clamped to the remaining capacity

    Raises:
        CapacityError: If no page is left at ``address``
    """
    if address < 0:
        raise ValueError(f"Flash address must be non-negative, got {address}")

    pages = page_count(length)
    if address + pages <= FLASH_CAPACITY_PAGES:
        return pages, False

    pages = max(0, FLASH_CAPACITY_PAGES - address)
    if pages == 0:
        raise CapacityError(
            f"Flash address {address} out of range or no space left "
            f"(capacity {FLASH_CAPACITY_PAGES} pages)"
        )
    return pages, True


class FlashProgrammer:
    """Writes firmware, images and animations into the screen's flash."""

    def __init__(self, session: ScreenSession):
        self.session = session

    @property
    def transport(self) -> CommandTransport:
        return self.session.transport

    @property
    def default_resize(self) -> ResizeSpec:
        size = self.session.config.size
        return ResizeSpec(size=(size.w, size.h), mode="crop")

    # Primitives. These do not take the session lock; callers outside a
    # write job should wrap them in ``session.operation(...)``.

    async def erase(self, address: int, length_pages: int) -> AckStatus:
        """Erase ``length_pages`` pages from ``address``; a silent device is tolerated."""
        transport = self.transport
        await transport.send_no_wait(transport.encoder.encode_erase(address, length_pages))
        status = await transport.wait_for_reply()
        if not status.ok:
            logger.warning(
                f"No completion reply for erase of {length_pages} pages at {address} (tolerated)"
            )
        return status

    async def write_page(
        self, page: bytes, page_address: int, count: int = 1, fast_mode: bool = True
    ) -> AckStatus:
        """Send one 256-byte page and its commit packet, then consume the reply."""
        transport = self.transport
        await transport.send_buffer(
            transport.encoder.encode_flash_page(page, page_address, count, fast_mode)
        )
        status = await transport.wait_for_reply()
        if not status.ok:
            logger.warning(f"No completion reply for page {page_address} (tolerated)")
        return status

    # Write jobs

    async def write_pages(
        self,
        data: bytes,
        address: int,
        fast_mode: bool = True,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> FlashReport:
        """
        Erase and write ``data`` page by page starting at page ``address``.

        Raises:
            CapacityError: If there is no room at ``address`` (before any I/O)
            SerialConnectionError: If the channel fails mid-write
        """
        pages, truncated = self._plan(data, address)
        async with self.session.operation("flash"):
            return await self._write(data, address, pages, truncated, fast_mode, progress, cancel)

    async def write_image(
        self,
        data: bytes,
        content_type: Union[ContentType, str],
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> FlashReport:
        """
        Write raw content bytes at the base page of ``content_type``.

        Raises:
            UnsupportedFormatError: If the content type is unknown
            CapacityError: If the base page leaves no room
            SerialConnectionError: If the channel fails
        """
        if not isinstance(content_type, ContentType):
            content_type = ContentType.parse(content_type)
        address = content_type.base_address
        pages, truncated = self._plan(data, address)

        async with self.session.operation("flash") as transport:
            logger.info(
                f"Flashing {len(data)} bytes as {content_type} at page {address} ({pages} pages)"
            )
            if progress:
                progress(0, 0, "Waking up device...")
            await transport.handshake()
            return await self._write(data, address, pages, truncated, True, progress, cancel)

    async def write_image_pixels(
        self,
        image: PixelSource,
        content_type: Union[ContentType, str],
        resize: Optional[ResizeSpec] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> FlashReport:
        """Fit an image to the panel (centre crop by default), encode it and flash it."""
        image = fit_image(image, resize or self.default_resize)
        frame = encode_frame(image)
        return await self.write_image(frame.data, content_type, progress)

    async def write_animation(
        self,
        sources: Sequence[SourceFrame],
        resize: Optional[ResizeSpec] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> FlashReport:
        """
        Flash every frame, back to back, from the animation base page.

        The firmware reads the region as consecutive fixed-size frames, so
        the frames are simply concatenated; any frame count is accepted.
        """
        if progress:
            progress(0, len(sources), f"Decoding {len(sources)} frames...")
        frames = await asyncio.to_thread(
            decode_frames, sources, resize or self.default_resize
        )
        data = b"".join(item.frame.data for item in frames)
        return await self.write_image(data, ContentType.ANIMATION, progress)

    def _plan(self, data: bytes, address: int) -> Tuple[int, bool]:
        pages, truncated = plan_pages(address, len(data))
        if truncated:
            logger.warning(
                f"Data truncated to {pages} pages to fit the {FLASH_CAPACITY_PAGES} page limit"
            )
        return pages, truncated

    async def _write(
        self,
        data: bytes,
        address: int,
        pages: int,
        truncated: bool,
        fast_mode: bool,
        progress: Optional[ProgressCallback],
        cancel: Optional[asyncio.Event],
    ) -> FlashReport:
        report = FlashReport(address=address, pages=pages, truncated=truncated)

        if truncated and progress:
            progress(
                0, pages, f"Warning: Data truncated to fit {FLASH_CAPACITY_PAGES} pages limit."
            )
        if progress:
            progress(0, pages, f"Erasing {pages} pages...")
        report.erase_confirmed = (await self.erase(address, pages)).ok

        for i in range(pages):
            if cancel is not None and cancel.is_set():
                report.cancelled = True
                logger.warning(
                    f"Flash write cancelled after {i}/{pages} pages; region left partially written"
                )
                return report

            if progress:
                progress(i + 1, pages, f"Writing page {i + 1}/{pages}")
            page, _ = chunk_at(data, i)
            status = await self.write_page(page, address + i, 1, fast_mode)
            if not status.ok:
                report.unconfirmed.append(address + i)
            report.pages_written += 1

        if progress:
            progress(pages, pages, "Flash complete!")
        logger.info(
            f"Flash write done: {pages} pages at {address}, {len(report.unconfirmed)} unconfirmed"
        )
        return report
