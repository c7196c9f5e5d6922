"""Tests for flash page planning, erase/write sequencing and capacity rules."""

import asyncio
import dataclasses

import numpy as np
import pytest

from usb_screen.config import Size
from usb_screen.errors import CapacityError, ProtocolTimeoutError, UnsupportedFormatError
from usb_screen.flash_programmer import FlashProgrammer, plan_pages
from usb_screen.imaging import SourceFrame
from usb_screen.protocol_config import ContentType, HANDSHAKE
from usb_screen.serial_port import MockSerialPort
from usb_screen.session import ScreenSession

from .helpers import handshake_count, transfer_buffers


def commit_address(buffer: bytes) -> int:
    commit = buffer[-6:]
    return (commit[2] << 16) | (commit[3] << 8) | commit[4]


def test_plan_pages_clamps_to_capacity():
    assert plan_pages(0, 2000) == (8, False)
    assert plan_pages(4090, 10 * 256) == (6, True)
    assert plan_pages(4095, 1) == (1, False)


def test_plan_pages_without_room_raises():
    with pytest.raises(CapacityError):
        plan_pages(4096, 1)
    with pytest.raises(ValueError):
        plan_pages(-1, 1)


@pytest.mark.asyncio
async def test_background_write_scenario(session, mock_port):
    data = bytes(i % 251 for i in range(2000))
    messages = []

    report = await FlashProgrammer(session).write_image(
        data, ContentType.BACKGROUND, progress=lambda c, t, m: messages.append((c, t, m))
    )

    assert mock_port.written[0] == HANDSHAKE
    assert mock_port.written[1] == bytes([0x03, 0x02, 0x0E, 0xF2, 0x00, 0x08])

    pages = transfer_buffers(mock_port)
    assert len(pages) == 8
    assert [commit_address(p) for p in pages] == list(range(3826, 3834))
    assert all(p[-6:-4] == bytes([0x03, 0x03]) and p[-1] == 1 for p in pages)

    # Final page: 2000 - 7 * 256 = 208 data bytes then 0xFF padding
    last_payload = b"".join(pages[-1][i * 6 + 2 : i * 6 + 6] for i in range(64))
    assert last_payload[:208] == data[7 * 256 :]
    assert last_payload[208:] == b"\xff" * 48

    assert report.address == 3826
    assert report.pages == report.pages_written == 8
    assert report.confirmed
    assert messages[0] == (0, 0, "Waking up device...")
    assert (0, 8, "Erasing 8 pages...") in messages
    assert (3, 8, "Writing page 3/8") in messages
    assert messages[-1] == (8, 8, "Flash complete!")


@pytest.mark.asyncio
async def test_content_type_by_name(session, mock_port):
    report = await FlashProgrammer(session).write_image(b"\x01" * 10, "album")
    assert report.address == 3926
    assert commit_address(transfer_buffers(mock_port)[0]) == 3926


@pytest.mark.asyncio
async def test_unknown_content_type_fails_before_io(session, mock_port):
    with pytest.raises(UnsupportedFormatError):
        await FlashProgrammer(session).write_image(b"\x00" * 10, "splash")
    assert mock_port.written == []


@pytest.mark.asyncio
async def test_no_room_fails_before_erase(session, mock_port):
    with pytest.raises(CapacityError):
        await FlashProgrammer(session).write_pages(b"\x00" * 256, 4096)
    assert mock_port.written == []


@pytest.mark.asyncio
async def test_oversized_write_is_truncated(session, mock_port):
    report = await FlashProgrammer(session).write_pages(b"\x00" * (10 * 256), 4090)

    assert report.truncated
    assert report.pages == 6
    assert mock_port.written[0] == bytes([0x03, 0x02, 0x0F, 0xFA, 0x00, 0x06])
    assert [commit_address(p) for p in transfer_buffers(mock_port)] == list(range(4090, 4096))


@pytest.mark.asyncio
async def test_normal_mode_uses_slow_commit(session, mock_port):
    await FlashProgrammer(session).write_pages(b"\x00" * 300, 100, fast_mode=False)
    pages = transfer_buffers(mock_port)
    assert len(pages) == 2
    assert all(p[-5] == 0x01 for p in pages)


@pytest.mark.asyncio
async def test_silent_device_is_tolerated_but_reported(session, mock_port):
    mock_port.responder = lambda data: b""

    report = await FlashProgrammer(session).write_image(b"\x00" * 600, ContentType.FIRMWARE)

    assert report.pages_written == 3
    assert not report.erase_confirmed
    assert report.unconfirmed == [0, 1, 2]
    assert not report.confirmed
    with pytest.raises(ProtocolTimeoutError):
        report.raise_for_unconfirmed()


@pytest.mark.asyncio
async def test_cancel_stops_between_pages(session, mock_port):
    cancel = asyncio.Event()

    def progress(current, total, message):
        if current == 2:
            cancel.set()

    report = await FlashProgrammer(session).write_pages(
        b"\x00" * (5 * 256), 0, progress=progress, cancel=cancel
    )

    assert report.cancelled
    assert report.pages_written == 2
    assert len(transfer_buffers(mock_port)) == 2


@pytest.mark.asyncio
async def test_empty_data_erases_nothing_and_completes(session, mock_port):
    messages = []

    report = await FlashProgrammer(session).write_image(
        b"", ContentType.FIRMWARE, progress=lambda c, t, m: messages.append(m)
    )

    assert report.pages == 0
    assert report.confirmed
    assert mock_port.written == [HANDSHAKE, bytes([0x03, 0x02, 0, 0, 0, 0])]
    assert transfer_buffers(mock_port) == []
    assert messages[-1] == "Flash complete!"


@pytest.mark.asyncio
async def test_animation_frames_are_concatenated_from_page_zero(session, mock_port):
    colours = [(255, 0, 0), (0, 255, 0), (0, 0, 255)]
    sources = [
        SourceFrame(np.full((80, 160, 3), c, dtype=np.uint8), delay_ms=50) for c in colours
    ]

    report = await FlashProgrammer(session).write_animation(sources)

    # 3 frames x 160 x 80 x 2 bytes = 76800 bytes = 300 pages
    assert report.address == 0
    assert report.pages == 300
    pages = transfer_buffers(mock_port)
    assert commit_address(pages[0]) == 0
    assert commit_address(pages[-1]) == 299
    # Page 100 starts frame 2 (green -> 0x07E0)
    assert pages[100][2:4] == b"\x07\xe0"
    assert handshake_count(mock_port) == 1


@pytest.mark.asyncio
async def test_image_pixels_are_fitted_and_encoded(session, mock_port):
    image = np.full((40, 40, 3), 255, dtype=np.uint8)

    report = await FlashProgrammer(session).write_image_pixels(image, ContentType.BACKGROUND)

    assert report.pages == 100  # 160 x 80 x 2 bytes
    assert transfer_buffers(mock_port)[0][2:6] == b"\xff\xff\xff\xff"


@pytest.mark.asyncio
async def test_image_pixels_follow_configured_panel_size(screen_config):
    config = dataclasses.replace(screen_config, size=Size(16, 8))
    port = MockSerialPort(config.serial)
    session = ScreenSession(config, serial_port=port)
    await session.open()
    image = np.full((40, 40, 3), 255, dtype=np.uint8)

    report = await FlashProgrammer(session).write_image_pixels(image, ContentType.ALBUM)
    await session.close()

    assert report.pages == 1  # 16 x 8 x 2 bytes
    assert report.address == ContentType.ALBUM.base_address
