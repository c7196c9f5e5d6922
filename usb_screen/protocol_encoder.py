"""
Pure Protocol Encoding Logic

This module contains the ProtocolEncoder class, which builds the fixed-size
packets of the USB screen protocol. It has no I/O dependencies.

Command packet:  [class, op, p0, p1, p2, p3]
Transfer buffer: 64 x [0x04, index, b0, b1, b2, b3] + commit packet (390 bytes)
"""

from typing import Iterator, Tuple

from .protocol_config import (
    CHUNK_SIZE,
    CLASS_DATA,
    CLASS_DRAW,
    CLASS_FLASH,
    OP_ERASE,
    OP_PAGE_COMMIT,
    OP_PAGE_COMMIT_FAST,
    OP_SET_POSITION,
    OP_SET_SIZE,
    OP_WRITE,
    PACKET_SIZE,
    PAD_BYTE,
    SUBPACKET_PAYLOAD,
    SUBPACKETS_PER_CHUNK,
    WRITE_CHUNK,
    WRITE_INIT,
)


def page_count(length: int) -> int:
    """Number of 256-byte chunks needed to hold ``length`` bytes."""
    if length < 0:
        raise ValueError(f"Length must be non-negative, got {length}")
    return (length + CHUNK_SIZE - 1) // CHUNK_SIZE


def chunk_at(data: bytes, index: int) -> Tuple[bytes, int]:
    """
    Slice the ``index``-th 256-byte chunk out of ``data``.

    Returns:
        (chunk, valid) where chunk is always 256 bytes, padded with 0xFF
        past the ``valid`` bytes taken from ``data``.
    """
    start = index * CHUNK_SIZE
    piece = bytes(data[start : start + CHUNK_SIZE])
    return piece + bytes([PAD_BYTE]) * (CHUNK_SIZE - len(piece)), len(piece)


def iter_chunks(data: bytes) -> Iterator[Tuple[bytes, int]]:
    """Yield every padded chunk of ``data`` with its valid byte count."""
    for i in range(page_count(len(data))):
        yield chunk_at(data, i)


class ProtocolEncoder:
    """
    Pure protocol encoder for USB screen packets.

    All methods take inputs and return encoded bytes; nothing is sent here.
    """

    def encode_command(
        self, cls: int, op: int, p0: int = 0, p1: int = 0, p2: int = 0, p3: int = 0
    ) -> bytes:
        """Encode a 6-byte command packet (each field truncated to a byte)."""
        return bytes(v & 0xFF for v in (cls, op, p0, p1, p2, p3))

    def encode_pair(self, cls: int, op: int, first: int, second: int) -> bytes:
        """Encode two big-endian 16-bit parameters split hi/lo across p0..p3."""
        return self.encode_command(
            cls, op, first >> 8, first & 0xFF, second >> 8, second & 0xFF
        )

    # Draw commands

    def encode_set_position(self, x: int, y: int) -> bytes:
        return self.encode_pair(CLASS_DRAW, OP_SET_POSITION, x, y)

    def encode_set_size(self, width: int, height: int) -> bytes:
        return self.encode_pair(CLASS_DRAW, OP_SET_SIZE, width, height)

    def encode_init_write(self) -> bytes:
        return self.encode_command(CLASS_DRAW, OP_WRITE, WRITE_INIT)

    def encode_draw_commit(self, valid_size: int) -> bytes:
        """Commit packet closing one draw chunk of ``valid_size`` bytes."""
        return self.encode_command(
            CLASS_DRAW, OP_WRITE, WRITE_CHUNK, valid_size >> 8, valid_size & 0xFF, 0x00
        )

    # Flash commands

    def encode_erase(self, address: int, length: int) -> bytes:
        """Erase ``length`` pages starting at page ``address``."""
        return self.encode_pair(CLASS_FLASH, OP_ERASE, address, length)

    def encode_flash_commit(self, address: int, count: int, fast_mode: bool) -> bytes:
        """Commit packet storing the preceding chunk at a 24-bit page address."""
        op = OP_PAGE_COMMIT_FAST if fast_mode else OP_PAGE_COMMIT
        return self.encode_command(
            CLASS_FLASH,
            op,
            (address >> 16) & 0xFF,
            (address >> 8) & 0xFF,
            address & 0xFF,
            count,
        )

    # Transfer buffers

    def encode_transfer_buffer(self, chunk: bytes, commit: bytes) -> bytes:
        """
        Encode one 256-byte chunk and its commit packet as a 390-byte buffer.

        Args:
            chunk: Exactly 256 data bytes (already padded)
            commit: 6-byte commit packet appended after the data sub-packets

        Returns:
            bytes: Transfer buffer to be written in a single call
        """
        if len(chunk) != CHUNK_SIZE:
            raise ValueError(f"Chunk must be {CHUNK_SIZE} bytes, got {len(chunk)}")
        if len(commit) != PACKET_SIZE:
            raise ValueError(
                f"Commit packet must be {PACKET_SIZE} bytes, got {len(commit)}"
            )

        buf = bytearray()
        for i in range(SUBPACKETS_PER_CHUNK):
            start = i * SUBPACKET_PAYLOAD
            buf += bytes([CLASS_DATA, i])
            buf += chunk[start : start + SUBPACKET_PAYLOAD]
        buf += commit

        return bytes(buf)

    def encode_draw_chunk(self, chunk: bytes, valid_size: int) -> bytes:
        return self.encode_transfer_buffer(chunk, self.encode_draw_commit(valid_size))

    def encode_flash_page(
        self, page: bytes, address: int, count: int = 1, fast_mode: bool = True
    ) -> bytes:
        return self.encode_transfer_buffer(
            page, self.encode_flash_commit(address, count, fast_mode)
        )
