"""
Still Codec
===========

Encoding of enhanced images into compressed stills, and decoding of
stills back into rasters for detectors that need pixels.

Design Rules:
    - This is the ONLY place in the codebase that encodes or decodes images
    - Encoding is JPEG at quality 92 unless configured otherwise
    - Byte-exact output is NOT guaranteed across OpenCV builds
    - Fails fast on corrupt data
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from parkcam.imaging.enhancer import EnhancedImage


logger = logging.getLogger(__name__)


DEFAULT_JPEG_QUALITY = 92

_MIME_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "bmp": "image/bmp",
}


class ImageDecodeError(Exception):
    """Raised when still decoding fails."""
    pass


class EncodeError(Exception):
    """Raised when the encoder rejects an image."""
    pass


def sniff_format(data: bytes) -> Optional[str]:
    """
    Identify an image format from its magic bytes.

    Returns:
        Format tag ("jpeg", "png", "webp", "bmp") or None if unknown
    """
    if data[:3] == b"\xff\xd8\xff":
        return "jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data[:2] == b"BM":
        return "bmp"
    return None


@dataclass(frozen=True)
class EncodedStill:
    """
    Compressed image buffer submitted to detectors.

    Attributes:
        format: Format tag ("jpeg", "png", ...)
        data: Encoded bytes
        quality: Encoder quality (0-100) for lossy formats
        width: Pixel width, when known
        height: Pixel height, when known
    """

    format: str
    data: bytes
    quality: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self.format, "application/octet-stream")

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncodedStill":
        """
        Wrap an uploaded payload. The format is sniffed from its header.

        Raises:
            ImageDecodeError: If the payload is empty
        """
        if not data:
            raise ImageDecodeError("Empty image payload")
        return cls(format=sniff_format(data) or "unknown", data=bytes(data))

    @classmethod
    def from_base64(cls, text: str) -> "EncodedStill":
        """
        Wrap a base64 payload, with or without a data-URL header.

        Line breaks and other whitespace are ignored; any other character
        outside the base64 alphabet is rejected.

        Raises:
            ImageDecodeError: If the text is not valid base64
        """
        text = text.strip()
        if text.startswith("data:") and "," in text:
            text = text.split(",", 1)[1]
        text = "".join(text.split())
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageDecodeError(f"Base64 decode failed: {e}") from e
        return cls.from_bytes(data)

    def to_data_url(self) -> str:
        """Render as a data URL for clients that display the still."""
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    def __repr__(self) -> str:
        return (
            f"EncodedStill(format={self.format}, bytes={self.size}, "
            f"quality={self.quality}, size={self.width}x{self.height})"
        )


class StillEncoder:
    """
    Serializes EnhancedImages with OpenCV.

    Attributes:
        format: "jpeg" or "png"
        quality: JPEG quality 0-100 (ignored for png)
    """

    def __init__(self, format: str = "jpeg", quality: int = DEFAULT_JPEG_QUALITY) -> None:
        if format not in ("jpeg", "png"):
            raise ValueError(f"Unsupported still format: {format}")
        if not 0 <= quality <= 100:
            raise ValueError("quality must be within 0-100")

        self.format = format
        self.quality = quality

    def encode(self, image: EnhancedImage) -> EncodedStill:
        """
        Encode an enhanced image.

        Args:
            image: Enhanced raster (RGB or RGBA)

        Returns:
            EncodedStill

        Raises:
            EncodeError: If OpenCV fails to encode
        """
        # Alpha is dropped; OpenCV expects BGR order
        bgr = cv2.cvtColor(np.ascontiguousarray(image.pixels[..., :3]), cv2.COLOR_RGB2BGR)

        if self.format == "jpeg":
            ext, params = ".jpg", [int(cv2.IMWRITE_JPEG_QUALITY), self.quality]
        else:
            ext, params = ".png", []

        try:
            ok, buffer = cv2.imencode(ext, bgr, params)
        except cv2.error as e:
            raise EncodeError(f"OpenCV failed to encode frame {image.frame_id}: {e}") from e

        if not ok:
            raise EncodeError(f"OpenCV failed to encode frame {image.frame_id}")

        data = buffer.tobytes()
        logger.debug(f"Encoded frame {image.frame_id}: {len(data)} bytes as {self.format}")

        return EncodedStill(
            format=self.format,
            data=data,
            quality=self.quality if self.format == "jpeg" else None,
            width=image.width,
            height=image.height,
        )


def decode_still(still: EncodedStill) -> np.ndarray:
    """
    Decode an EncodedStill to an RGB numpy array.

    Args:
        still: Encoded image

    Returns:
        RGB image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    nparr = np.frombuffer(still.data, np.uint8)
    if nparr.size == 0:
        raise ImageDecodeError("Cannot decode an empty still")

    try:
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"OpenCV error decoding still: {e}") from e

    if bgr is None:
        raise ImageDecodeError("Failed to decode still: cv2.imdecode returned None")

    if bgr.ndim != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid still shape: {bgr.shape}")

    return cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
