"""
Frame Data Model
=================

Internal frame representation for the capture pipeline.

This module defines the typed Frame class that is passed from a FrameSource
to the FrameSampler, and from the sampler to the ImageEnhancer.

Design Rules:
    - Pixels are RGB(A), uint8, shape (H, W, C) with C >= 3
    - Sources convert from OpenCV's BGR order before building a Frame
    - The pixel array is made read-only on construction
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class Frame:
    """
    Raw still sampled from a live video source.

    Immutable: the dataclass is frozen and the pixel buffer is
    flagged read-only, so no stage can modify a captured frame.

    Attributes:
        pixels: RGB(A) raster, shape (H, W, C), dtype uint8
        timestamp: UNIX timestamp when the frame was read
        frame_id: Monotonically increasing counter from the source
    """

    pixels: np.ndarray
    timestamp: float = field(default_factory=time.time)
    frame_id: int = 0

    def __post_init__(self) -> None:
        """Validate raster shape and dtype."""
        if self.pixels.ndim != 3 or self.pixels.shape[2] < 3:
            raise ValueError(
                f"Frame pixels must be (H, W, C>=3), got {self.pixels.shape}"
            )
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Frame pixels must be uint8, got {self.pixels.dtype}")
        if self.pixels.shape[0] == 0 or self.pixels.shape[1] == 0:
            raise ValueError("Frame must have at least one pixel")

        # Own a private read-only copy so callers cannot mutate it later
        pixels = np.array(self.pixels, dtype=np.uint8, copy=True)
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @classmethod
    def from_bgr(
        cls,
        bgr: np.ndarray,
        frame_id: int = 0,
        timestamp: Optional[float] = None,
    ) -> "Frame":
        """
        Build a Frame from an OpenCV BGR(A) image.

        Args:
            bgr: Image as returned by cv2.VideoCapture.read()
            frame_id: Source frame counter
            timestamp: Acquisition time (defaults to now)
        """
        rgb = np.array(bgr, copy=True)
        rgb[..., [0, 2]] = rgb[..., [2, 0]]
        return cls(
            pixels=rgb,
            timestamp=time.time() if timestamp is None else timestamp,
            frame_id=frame_id,
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full raster."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height}x{self.channels})"
        )
