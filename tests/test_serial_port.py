"""Tests for the serial I/O boundary."""

from types import SimpleNamespace

import pytest

import usb_screen.serial_port as serial_port
from usb_screen.config import SerialConfig
from usb_screen.errors import SerialConnectionError
from usb_screen.protocol_config import HANDSHAKE
from usb_screen.serial_port import (
    HardwareSerialPort,
    MockSerialPort,
    create_serial_port,
    device_echo,
    list_candidate_ports,
)


def test_factory_follows_mock_flag():
    assert isinstance(create_serial_port(SerialConfig(mock=True)), MockSerialPort)
    assert isinstance(create_serial_port(SerialConfig(mock=False)), HardwareSerialPort)
    assert isinstance(
        create_serial_port(SerialConfig(mock=True), use_hardware=True), HardwareSerialPort
    )


def test_device_echo_rules():
    assert device_echo(HANDSHAKE) == b"OK"
    assert device_echo(bytes([0x02, 0x03, 0x07, 0, 0, 0])) == b"\x02\x03"
    assert device_echo(bytes([0x02, 0x00, 0, 0, 0, 0])) == b""
    assert device_echo(bytes([0x03, 0x02, 0, 1, 0, 1])) == b"\x03\x02"
    draw_chunk = b"\x04\x00\x00\x00\x00\x00" * 64 + bytes([0x02, 0x03, 0x08, 1, 0, 0])
    assert device_echo(draw_chunk) == b""
    flash_page = b"\x04\x00\x00\x00\x00\x00" * 64 + bytes([0x03, 0x03, 0, 0, 1, 1])
    assert device_echo(flash_page) == b"\x03\x03"


@pytest.mark.asyncio
async def test_mock_port_records_and_replies():
    port = MockSerialPort(SerialConfig())
    with pytest.raises(SerialConnectionError):
        await port.write(b"\x00")

    await port.connect()
    await port.write(HANDSHAKE)
    assert port.written == [HANDSHAKE]
    assert port.in_waiting() == 2
    assert await port.read_available() == b"OK"
    assert await port.read_available() == b""

    port.feed(b"xyz")
    port.discard_buffers()
    assert port.in_waiting() == 0

    await port.disconnect()
    assert not port.is_connected()


@pytest.mark.asyncio
async def test_hardware_port_requires_connection():
    port = HardwareSerialPort(SerialConfig(port="/dev/does-not-exist", mock=False))
    assert not port.is_connected()
    with pytest.raises(SerialConnectionError):
        await port.write(b"\x00" * 6)
    with pytest.raises(SerialConnectionError):
        await port.connect()
    assert not port.is_connected()


def test_list_candidate_ports_filters_usb_adapters(monkeypatch):
    ports = [
        SimpleNamespace(device="/dev/ttyACM0", description="USB Screen"),
        SimpleNamespace(device="/dev/ttyS0", description="ttyS0"),
        SimpleNamespace(device="COM7", description="USB-SERIAL CH340 (COM7)"),
        SimpleNamespace(device="/dev/cu.usbmodem1101", description=None),
    ]
    monkeypatch.setattr(serial_port.list_ports, "comports", lambda: ports)

    candidates, all_ports = list_candidate_ports()

    assert candidates == ["/dev/ttyACM0", "COM7", "/dev/cu.usbmodem1101"]
    assert all_ports == ["/dev/ttyACM0", "/dev/ttyS0", "COM7", "/dev/cu.usbmodem1101"]
