"""
USB screen protocol configuration.

Every command is a 6-byte packet: [class, op, p0, p1, p2, p3].
Bulk data travels in 390-byte transfer buffers: 64 data sub-packets
[0x04, index, b0, b1, b2, b3] followed by one 6-byte commit packet.
"""

from enum import Enum

from .errors import UnsupportedFormatError


# Packet geometry
PACKET_SIZE = 6
CHUNK_SIZE = 256  # bytes carried by one transfer buffer (one flash page)
SUBPACKET_PAYLOAD = 4
SUBPACKETS_PER_CHUNK = CHUNK_SIZE // SUBPACKET_PAYLOAD  # 64
TRANSFER_BUFFER_SIZE = (SUBPACKETS_PER_CHUNK + 1) * PACKET_SIZE  # 390
PAD_BYTE = 0xFF

# Command classes
CLASS_DRAW = 0x02
CLASS_FLASH = 0x03
CLASS_DATA = 0x04

# Draw ops
OP_SET_POSITION = 0x00
OP_SET_SIZE = 0x01
OP_WRITE = 0x03
WRITE_INIT = 0x07  # first parameter of the init-write command
WRITE_CHUNK = 0x08  # first parameter of a draw chunk commit

# Flash ops
OP_PAGE_COMMIT = 0x01
OP_ERASE = 0x02
OP_PAGE_COMMIT_FAST = 0x03

# Wake-up / handshake sequence: NUL 'M' 'S' 'N' 'C' 'N'
HANDSHAKE = bytes([0x00, 0x4D, 0x53, 0x4E, 0x43, 0x4E])

# Flash address space, in pages
FLASH_PAGE_SIZE = CHUNK_SIZE
FLASH_CAPACITY_PAGES = 4096
ADDR_FIRMWARE = 0
ADDR_ANIMATION = 0
ADDR_BACKGROUND = 3826
ADDR_ALBUM = 3926

# Native panel geometry
SCREEN_WIDTH = 160
SCREEN_HEIGHT = 80


class ContentType(Enum):
    """Kinds of content that can be written to flash."""

    FIRMWARE = "firmware"
    BACKGROUND = "background"
    ALBUM = "album"
    ANIMATION = "animation"

    def __str__(self) -> str:
        return self.value

    @property
    def base_address(self) -> int:
        """First flash page reserved for this content type."""
        return CONTENT_BASE_ADDRESS[self]

    @classmethod
    def parse(cls, name: str) -> "ContentType":
        """Resolve a content type by (case-insensitive) name.

        Raises:
            UnsupportedFormatError: If the name is not a known content type
        """
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise UnsupportedFormatError(
                f"Unsupported content type '{name}'. "
                f"Supported: {', '.join(t.value for t in cls)}"
            ) from None


CONTENT_BASE_ADDRESS = {
    ContentType.FIRMWARE: ADDR_FIRMWARE,
    ContentType.ANIMATION: ADDR_ANIMATION,
    ContentType.BACKGROUND: ADDR_BACKGROUND,
    ContentType.ALBUM: ADDR_ALBUM,
}
