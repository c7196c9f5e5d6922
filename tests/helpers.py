"""Helpers for inspecting traffic recorded by the mock port."""

from usb_screen.protocol_config import HANDSHAKE, TRANSFER_BUFFER_SIZE
from usb_screen.serial_port import MockSerialPort, device_echo

INIT_WRITE = bytes([0x02, 0x03, 0x07, 0x00, 0x00, 0x00])


def handshake_count(port: MockSerialPort) -> int:
    return sum(1 for w in port.written if w == HANDSHAKE)


def transfer_buffers(port: MockSerialPort) -> list:
    return [w for w in port.written if len(w) == TRANSFER_BUFFER_SIZE]


def init_write_count(port: MockSerialPort) -> int:
    return sum(1 for w in port.written if w == INIT_WRITE)


def refusing_init(refusals: int):
    """Responder that answers the first ``refusals`` init-writes with garbage."""
    remaining = [refusals]

    def respond(data: bytes) -> bytes:
        if data == INIT_WRITE and remaining[0] > 0:
            remaining[0] -= 1
            return b"\xee\xee"
        return device_echo(data)

    return respond
