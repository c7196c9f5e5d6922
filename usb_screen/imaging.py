"""
Image preparation with Pillow: fitting sources to the panel, splitting
multi-frame images into source frames and rendering text lines.

Container decoding (opening GIF/PNG/JPEG files) stays with the caller; these
helpers only work on already-opened Pillow images.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np
from PIL import Image, ImageDraw, ImageFont, ImageOps, ImageSequence

from .errors import UnsupportedFormatError
from .protocol_config import SCREEN_HEIGHT, SCREEN_WIDTH

RESIZE_MODES = ("pad", "box", "stretch", "crop")

ANCHORS = {
    "center": (0.5, 0.5),
    "top": (0.5, 0.0),
    "bottom": (0.5, 1.0),
    "left": (0.0, 0.5),
    "right": (1.0, 0.5),
    "top-left": (0.0, 0.0),
    "top-right": (1.0, 0.0),
    "bottom-left": (0.0, 1.0),
    "bottom-right": (1.0, 1.0),
}

Color = Union[str, Tuple[int, int, int]]


@dataclass(frozen=True)
class ResizeSpec:
    """How a source image is fitted to the target size."""

    size: Tuple[int, int] = (SCREEN_WIDTH, SCREEN_HEIGHT)
    mode: str = "pad"
    anchor: str = "center"
    background: Color = "black"

    def __post_init__(self) -> None:
        if self.size[0] <= 0 or self.size[1] <= 0:
            raise ValueError(f"Resize size must be positive, got {self.size}")
        if self.mode not in RESIZE_MODES:
            raise ValueError(
                f"Invalid resize mode '{self.mode}', expected one of {', '.join(RESIZE_MODES)}"
            )
        if self.anchor not in ANCHORS:
            raise ValueError(f"Invalid anchor '{self.anchor}'")

    @property
    def centering(self) -> Tuple[float, float]:
        return ANCHORS[self.anchor]


def as_image(source: Union[Image.Image, np.ndarray]) -> Image.Image:
    """Return an RGB Pillow image for a Pillow image or (H, W, 3) array."""
    if isinstance(source, Image.Image):
        return source if source.mode == "RGB" else source.convert("RGB")
    if isinstance(source, np.ndarray):
        a = np.asarray(source)
        if a.ndim != 3 or a.shape[2] < 3:
            raise UnsupportedFormatError(f"Expected an (H, W, 3) array, got shape {a.shape}")
        return Image.fromarray(np.clip(a[..., :3], 0, 255).astype(np.uint8), "RGB")
    raise UnsupportedFormatError(f"Unsupported image source: {type(source).__name__}")


def fit_image(source: Union[Image.Image, np.ndarray], resize: ResizeSpec) -> Image.Image:
    """Resize ``source`` to ``resize.size`` using its mode and anchor."""
    img = as_image(source)
    size = resize.size
    resample = Image.Resampling.LANCZOS

    if resize.mode == "stretch":
        return img.resize(size, resample)
    if resize.mode == "crop":
        return ImageOps.fit(img, size, resample, centering=resize.centering)
    if resize.mode == "box" and img.width <= size[0] and img.height <= size[1]:
        # Box never upscales: place as-is on the background
        canvas = Image.new("RGB", size, resize.background)
        cx, cy = resize.centering
        canvas.paste(img, (round((size[0] - img.width) * cx), round((size[1] - img.height) * cy)))
        return canvas
    return ImageOps.pad(img, size, resample, color=resize.background, centering=resize.centering)


@dataclass
class SourceFrame:
    """One frame of an animation source with its display delay in milliseconds."""

    image: Union[Image.Image, np.ndarray]
    delay_ms: int = 0

    @classmethod
    def from_centiseconds(
        cls, image: Union[Image.Image, np.ndarray], delay: int
    ) -> "SourceFrame":
        """Build a frame from raw GIF metadata, which counts in 1/100 s."""
        return cls(image, int(delay) * 10)


def source_frames(image: Image.Image) -> List[SourceFrame]:
    """Split an opened multi-frame Pillow image into SourceFrames."""
    frames: List[SourceFrame] = []
    for frame in ImageSequence.Iterator(image):
        # Pillow reports every format's frame duration in milliseconds
        duration_ms = int(round(frame.info.get("duration", 0) or 0))
        frames.append(SourceFrame(frame.convert("RGB"), duration_ms))
    return frames


@dataclass(frozen=True)
class TextLine:
    text: str
    size: int = 16
    color: Color = "white"
    font_path: Optional[str] = None


def _load_font(line: TextLine) -> ImageFont.ImageFont:
    if line.font_path:
        return ImageFont.truetype(line.font_path, line.size)
    return ImageFont.load_default(line.size)


def render_text(
    lines: Iterable[TextLine],
    background: Color = "black",
    size: Tuple[int, int] = (SCREEN_WIDTH, SCREEN_HEIGHT),
) -> Image.Image:
    """
    Draw text lines top to bottom, 1px apart, onto a blank canvas.

    Lines that would start below the bottom edge are dropped.
    """
    canvas = Image.new("RGB", size, background)
    draw = ImageDraw.Draw(canvas)

    y = 0
    for line in lines:
        font = _load_font(line)
        draw.text((0, y), line.text, font=font, fill=line.color)
        left, top, right, bottom = draw.textbbox((0, 0), line.text, font=font)
        y += (bottom - top) + 1
        if y >= size[1]:
            break
    return canvas
