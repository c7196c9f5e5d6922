"""
Pure RGB565 encoding.

Converts RGB pixels to the device's 2-byte big-endian RGB565 wire format:

    byte0: RRRRRGGG  (R7-R3, G7-G5)
    byte1: GGGBBBBB  (G4-G2, B7-B3)

Low bits are truncated, never rounded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np
from PIL import Image

from .errors import UnsupportedFormatError

Array = np.ndarray
PixelSource = Union[Image.Image, Array]


@dataclass(frozen=True)
class WireFrame:
    """RGB565 big-endian frame ready for transmission."""

    width: int
    height: int
    data: bytes

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Frame size must be positive, got ({self.width}x{self.height})"
            )
        expected = self.width * self.height * 2
        if len(self.data) != expected:
            raise ValueError(
                f"Wire frame data size {len(self.data)} doesn't match expected {expected} "
                f"for {self.width}x{self.height}"
            )

    def __len__(self) -> int:
        return len(self.data)


def encode(r: int, g: int, b: int) -> Tuple[int, int]:
    """Encode one RGB pixel as its two RGB565 wire bytes."""
    r, g, b = r & 0xFF, g & 0xFF, b & 0xFF
    return (r & 0xF8) | (g >> 5), ((g & 0x1C) << 3) | (b >> 3)


def _ensure_uint8(arr: Array) -> Array:
    a = np.asarray(arr)
    if a.dtype != np.uint8:
        a = np.clip(a, 0, 255).astype(np.uint8, copy=False)
    return a


def encode_array(pixels: Array) -> bytes:
    """Encode an (H, W, 3) RGB array row-major into wire bytes."""
    a = np.asarray(pixels)
    if a.ndim != 3 or a.shape[2] < 3:
        raise UnsupportedFormatError(
            f"Expected an (H, W, 3) RGB array, got shape {a.shape}"
        )
    a = _ensure_uint8(a[..., :3])
    r, g, b = a[..., 0], a[..., 1], a[..., 2]

    out = np.empty(a.shape[:2] + (2,), dtype=np.uint8)
    out[..., 0] = (r & 0xF8) | (g >> 5)
    out[..., 1] = ((g & 0x1C) << 3) | (b >> 3)
    return out.tobytes()


def to_rgb_array(source: PixelSource) -> Array:
    """Coerce a Pillow image or ndarray into an (H, W, 3) uint8 array."""
    if isinstance(source, Image.Image):
        if source.mode != "RGB":
            source = source.convert("RGB")
        return np.asarray(source, dtype=np.uint8)
    if isinstance(source, np.ndarray):
        return source
    raise UnsupportedFormatError(
        f"Unsupported pixel source type: {type(source).__name__}"
    )


def encode_frame(source: PixelSource) -> WireFrame:
    """Encode a whole image into a WireFrame."""
    a = to_rgb_array(source)
    data = encode_array(a)
    return WireFrame(width=a.shape[1], height=a.shape[0], data=data)
