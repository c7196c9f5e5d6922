"""Tests for command/ack exchange and the wake-up handshake."""

import time

import pytest

from usb_screen.command_transport import AckStatus
from usb_screen.protocol_config import HANDSHAKE
from usb_screen.session import ScreenSession

from .helpers import INIT_WRITE, handshake_count



@pytest.mark.asyncio
async def test_matching_echo_is_acked(session, mock_port):
    status = await session.transport.send_and_wait_ack(INIT_WRITE)

    assert status is AckStatus.ACKED
    assert status.ok
    assert mock_port.written == [INIT_WRITE]


@pytest.mark.asyncio
async def test_mismatched_reply_fails_immediately(session, mock_port):
    mock_port.responder = lambda data: b"\x02\x99"

    started = time.monotonic()
    status = await session.transport.send_and_wait_ack(INIT_WRITE)

    assert status is AckStatus.MISMATCH
    assert time.monotonic() - started < session.config.timing.ack_timeout


@pytest.mark.asyncio
async def test_single_byte_reply_is_a_mismatch(session, mock_port):
    mock_port.responder = lambda data: b"\x02"
    assert await session.transport.send_and_wait_ack(INIT_WRITE) is AckStatus.MISMATCH


@pytest.mark.asyncio
async def test_silent_device_times_out(session, mock_port):
    mock_port.responder = lambda data: b""

    started = time.monotonic()
    status = await session.transport.send_and_wait_ack(INIT_WRITE)

    assert status is AckStatus.TIMEOUT
    assert time.monotonic() - started >= session.config.timing.ack_timeout


@pytest.mark.asyncio
async def test_wait_for_reply_does_not_validate_content(session, mock_port):
    mock_port.feed(b"\xde\xad")
    assert await session.transport.wait_for_reply() is AckStatus.ACKED
    assert mock_port.in_waiting() == 0
    assert await session.transport.wait_for_reply(timeout=0.01) is AckStatus.TIMEOUT


@pytest.mark.asyncio
async def test_send_no_wait_rejects_wrong_length(session):
    with pytest.raises(ValueError):
        await session.transport.send_no_wait(b"\x02\x03\x07")


@pytest.mark.asyncio
async def test_handshake_discards_then_writes_sequence(session, mock_port):
    mock_port.feed(b"stale")
    discards_before = mock_port.discards
    session.handshake_done = False

    await session.transport.handshake()

    assert mock_port.discards == discards_before + 1
    assert mock_port.written == [HANDSHAKE]
    assert mock_port.in_waiting() == 0  # reply consumed
    assert session.handshake_done is True


@pytest.mark.asyncio
async def test_session_open_performs_handshake(screen_config, mock_port):
    session = ScreenSession(screen_config, serial_port=mock_port)
    assert not session.is_connected()

    async with session:
        assert session.is_connected()
        assert session.handshake_done
        assert handshake_count(mock_port) == 1

    assert not session.is_connected()
    assert not session.handshake_done
