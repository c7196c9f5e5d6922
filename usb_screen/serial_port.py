"""
Serial Port I/O Boundary

This module provides the SerialPort class, which handles all serial I/O for the
USB screen. It abstracts away the hardware/mock distinction and exposes the
duplex byte transport the protocol layer needs: write, read what is pending,
and discard buffers.

I/O boundary class - handles all hardware interaction and connection management.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import serial
from serial import SerialException
from serial.tools import list_ports
from aioserial import AioSerial

from .config import SerialConfig
from .errors import SerialConnectionError
from .protocol_config import (
    CLASS_DRAW,
    CLASS_FLASH,
    HANDSHAKE,
    OP_WRITE,
    PACKET_SIZE,
    WRITE_INIT,
)


logger = logging.getLogger(__name__)

Responder = Callable[[bytes], bytes]


class SerialPort(ABC):
    """
    Abstract base class for serial port communication.

    Defines the I/O boundary interface for the USB screen. Implementations
    handle hardware vs mock communication.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Connect to the serial port.

        Raises:
            SerialConnectionError: If connection fails
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Disconnect from the serial port.

        Raises:
            SerialConnectionError: If disconnection fails
        """
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if serial port is connected."""
        pass

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write bytes to the serial port in one call.

        Raises:
            SerialConnectionError: If the write fails or is short
        """
        pass

    @abstractmethod
    def in_waiting(self) -> int:
        """Number of received bytes ready to be read."""
        pass

    @abstractmethod
    async def read_available(self) -> bytes:
        """Read every byte currently pending; empty if nothing arrived."""
        pass

    @abstractmethod
    def discard_buffers(self) -> None:
        """Drop pending input and output bytes."""
        pass


class HardwareSerialPort(SerialPort):
    """
    Hardware serial port implementation using aioserial.

    Talks to the screen's USB CDC serial interface at 8N1.
    """

    def __init__(self, config: SerialConfig):
        self.config = config
        self._serial: Optional[AioSerial] = None
        self._io_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to hardware serial port."""
        async with self._io_lock:
            if self._serial is not None:
                return
            try:
                self._serial = AioSerial(
                    port=self.config.port,
                    baudrate=self.config.baudrate,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                    timeout=self.config.timeout,
                )
                logger.info(f"Connected to hardware serial port {self.config.port}")

            except (SerialException, OSError, ValueError) as e:
                self._serial = None
                raise SerialConnectionError(
                    f"Hardware serial connect failed: {e}"
                ) from e

    async def disconnect(self) -> None:
        """Disconnect from hardware serial port."""
        async with self._io_lock:
            if self._serial:
                try:
                    self._serial.close()
                    logger.info("Disconnected from hardware serial port")
                except Exception as e:
                    raise SerialConnectionError(
                        f"Hardware serial disconnect failed: {e}"
                    ) from e
                finally:
                    self._serial = None

    def is_connected(self) -> bool:
        """Check if hardware serial port is connected."""
        return self._serial is not None

    def _require(self) -> AioSerial:
        if not self._serial:
            raise SerialConnectionError("Not connected to hardware")
        return self._serial

    async def write(self, data: bytes) -> None:
        """Write bytes to hardware serial port."""
        port = self._require()
        try:
            bytes_written = await port.write_async(data)
        except (SerialException, OSError) as e:
            raise SerialConnectionError(f"Hardware write failed: {e}") from e
        if bytes_written != len(data):
            raise SerialConnectionError(
                f"Short write: {bytes_written}/{len(data)} bytes"
            )

    def in_waiting(self) -> int:
        try:
            return self._require().in_waiting
        except (SerialException, OSError) as e:
            raise SerialConnectionError(f"Hardware status read failed: {e}") from e

    async def read_available(self) -> bytes:
        """Read pending bytes from hardware serial port."""
        port = self._require()
        try:
            pending = port.in_waiting
            if not pending:
                return b""
            return bytes(await port.read_async(pending))
        except (SerialException, OSError) as e:
            raise SerialConnectionError(f"Hardware read failed: {e}") from e

    def discard_buffers(self) -> None:
        port = self._require()
        try:
            port.reset_input_buffer()
            port.reset_output_buffer()
        except (SerialException, OSError) as e:
            raise SerialConnectionError(f"Hardware buffer reset failed: {e}") from e


def device_echo(data: bytes) -> bytes:
    """
    Reply the way the screen firmware does for commands that expect one.

    The init-write command, flash erase and flash page commits are echoed
    with their class/op bytes; the handshake gets a short status reply.
    Everything else is silent.
    """
    if data == HANDSHAKE:
        return b"OK"
    if len(data) < PACKET_SIZE:
        return b""
    last = data[-PACKET_SIZE:]
    if len(data) == PACKET_SIZE and last[:3] == bytes([CLASS_DRAW, OP_WRITE, WRITE_INIT]):
        return last[:2]
    if last[0] == CLASS_FLASH:
        return last[:2]
    return b""


class MockSerialPort(SerialPort):
    """
    Mock serial port implementation for testing and development.

    Simulates the screen in memory: every write is recorded and answered by
    a responder function (``device_echo`` unless one is given).
    """

    def __init__(self, config: SerialConfig, responder: Optional[Responder] = None):
        self.config = config
        self.responder: Responder = responder or device_echo
        self.written: List[bytes] = []
        self.discards = 0
        self._rx = bytearray()
        self._connected = False

    async def connect(self) -> None:
        """Simulate connecting to serial port."""
        await asyncio.sleep(0)
        self._connected = True
        logger.info(f"[MOCK] Connected to serial port {self.config.port}")

    async def disconnect(self) -> None:
        """Simulate disconnecting from serial port."""
        await asyncio.sleep(0)
        self._connected = False
        logger.info("[MOCK] Disconnected from serial port")

    def is_connected(self) -> bool:
        """Check if mock serial port is connected."""
        return self._connected

    async def write(self, data: bytes) -> None:
        """Record a write and queue the simulated reply."""
        if not self._connected:
            raise SerialConnectionError("Not connected to mock serial")
        data = bytes(data)
        self.written.append(data)
        self._rx += self.responder(data)
        logger.debug(f"[MOCK] Wrote {len(data)} bytes")
        await asyncio.sleep(0)

    def in_waiting(self) -> int:
        return len(self._rx)

    async def read_available(self) -> bytes:
        if not self._connected:
            raise SerialConnectionError("Not connected to mock serial")
        data = bytes(self._rx)
        self._rx.clear()
        return data

    def discard_buffers(self) -> None:
        self.discards += 1
        self._rx.clear()

    def feed(self, data: bytes) -> None:
        """Inject bytes as if the device had sent them."""
        self._rx += data


def create_serial_port(
    config: SerialConfig, use_hardware: Optional[bool] = None
) -> SerialPort:
    """
    Factory function to create appropriate serial port implementation.

    Args:
        config: Serial configuration
        use_hardware: Force hardware (True) or mock (False). If None, uses config.mock

    Returns:
        SerialPort: Hardware or mock implementation
    """
    if use_hardware is None:
        use_hardware = not config.mock

    if use_hardware:
        logger.info("Creating hardware serial port")
        return HardwareSerialPort(config)
    else:
        logger.info("Creating mock serial port")
        return MockSerialPort(config)


def list_candidate_ports():
    """
    Return (candidate_devices, all_ports), where:
      - candidate_devices: ports that look like USB CDC/serial adapters
      - all_ports: every discovered port device string
    """
    candidate_devices, all_ports = [], []
    for port_info in list_ports.comports():
        dev = (port_info.device or "").lower()
        desc = (port_info.description or "").lower()
        all_ports.append(port_info.device)
        if (
            "ttyacm" in dev
            or "ttyusb" in dev
            or "cu.usbmodem" in dev
            or "cu.usbserial" in dev
            or "usb serial" in desc
            or "ch340" in desc
            or "cp210x" in desc
        ):
            candidate_devices.append(port_info.device)
    return candidate_devices, all_ports
