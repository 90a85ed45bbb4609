"""
Imaging Module
==============

Enhancement and encoding of the selected frame.

Components:
    - ImageEnhancer / EnhancedImage: grayscale + contrast + sharpen
    - StillEncoder / EncodedStill: JPEG (quality 92) serialization
    - decode_still: raster decoding for pixel-based detectors
"""

from parkcam.imaging.enhancer import (
    EnhancedImage,
    ImageEnhancer,
    enhance_pixel,
)
from parkcam.imaging.codec import (
    EncodedStill,
    EncodeError,
    ImageDecodeError,
    StillEncoder,
    decode_still,
)


__all__ = [
    "EnhancedImage",
    "ImageEnhancer",
    "enhance_pixel",
    "EncodedStill",
    "EncodeError",
    "ImageDecodeError",
    "StillEncoder",
    "decode_still",
]
