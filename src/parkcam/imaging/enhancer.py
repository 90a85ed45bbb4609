"""
Image Enhancer
==============

Deterministic grayscale + contrast stretch + sharpening boost.

Per-pixel transform (no neighbourhood kernel):

    gray     = 0.299*r + 0.587*g + 0.114*b          (ITU-R 601 luma)
    factor   = (259 * (C + 255)) / (255 * (259 - C))
    enhanced = factor * (gray - 128) + 128
    final    = clamp(enhanced + (enhanced - gray) * S, 0, 255)

`final` is written to R, G and B, so the output is achromatic.
Extra channels (alpha) are copied through unchanged.

Design Rules:
    - Pure and order-independent; evaluated over the whole raster at once
    - Stored as uint8 with round-half-to-even, like a clamped 8-bit canvas
    - Re-applying the transform is NOT the identity for C=1.5, S=0.5
"""

import logging
from dataclasses import dataclass

import numpy as np

from parkcam.capture.frame import Frame


logger = logging.getLogger(__name__)


DEFAULT_CONTRAST = 1.5
DEFAULT_SHARPNESS = 0.5

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
MID_GRAY = 128.0


def contrast_factor(contrast: float) -> float:
    """Contrast stretch factor for a contrast constant C."""
    return (259.0 * (contrast + 255.0)) / (255.0 * (259.0 - contrast))


def enhance_pixel(
    r: float,
    g: float,
    b: float,
    contrast: float = DEFAULT_CONTRAST,
    sharpness: float = DEFAULT_SHARPNESS,
) -> float:
    """
    Apply the enhancement formula to a single pixel.

    Returns:
        Enhanced luminance in [0, 255], before 8-bit rounding
    """
    gray = LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b
    enhanced = contrast_factor(contrast) * (gray - MID_GRAY) + MID_GRAY
    return min(255.0, max(0.0, enhanced + (enhanced - gray) * sharpness))


@dataclass(frozen=True, eq=False)
class EnhancedImage:
    """
    Achromatic raster derived from exactly one Frame.

    Attributes:
        pixels: uint8 raster, same shape as the source frame
        frame_id: Source frame counter
        timestamp: Source acquisition timestamp
    """

    pixels: np.ndarray
    frame_id: int
    timestamp: float

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def __repr__(self) -> str:
        return (
            f"EnhancedImage(frame_id={self.frame_id}, "
            f"size={self.width}x{self.height}x{self.pixels.shape[2]})"
        )


class ImageEnhancer:
    """
    Vectorized implementation of the enhancement transform.

    Attributes:
        contrast: Contrast constant C
        sharpness: Sharpness constant S
    """

    def __init__(
        self,
        contrast: float = DEFAULT_CONTRAST,
        sharpness: float = DEFAULT_SHARPNESS,
    ) -> None:
        if contrast >= 259.0:
            raise ValueError("contrast must be < 259")

        self.contrast = contrast
        self.sharpness = sharpness
        self.factor = contrast_factor(contrast)

        logger.debug(
            f"ImageEnhancer initialized: C={contrast}, S={sharpness}, "
            f"factor={self.factor:.6f}"
        )

    def enhance(self, frame: Frame) -> EnhancedImage:
        """
        Enhance a frame.

        Args:
            frame: Source frame (RGB or RGBA)

        Returns:
            EnhancedImage with identical dimensions
        """
        rgb = frame.pixels[..., :3].astype(np.float64)

        gray = (
            LUMA_WEIGHTS[0] * rgb[..., 0]
            + LUMA_WEIGHTS[1] * rgb[..., 1]
            + LUMA_WEIGHTS[2] * rgb[..., 2]
        )
        enhanced = self.factor * (gray - MID_GRAY) + MID_GRAY
        final = np.clip(enhanced + (enhanced - gray) * self.sharpness, 0.0, 255.0)
        luminance = np.rint(final).astype(np.uint8)

        out = np.array(frame.pixels, copy=True)
        out[..., 0] = luminance
        out[..., 1] = luminance
        out[..., 2] = luminance
        out.setflags(write=False)

        return EnhancedImage(
            pixels=out,
            frame_id=frame.frame_id,
            timestamp=frame.timestamp,
        )
