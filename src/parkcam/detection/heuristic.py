"""
Heuristic Vehicle Detector
==========================

Fallback classifier that needs no model and no network.

It finds the dominant object in the still (largest external contour of
the Canny edge map) and classifies it by the shape of its bounding box:

    aspect = box_width / box_height
    fill   = box_area / image_area

    aspect < 0.8                     -> motorcycle  (taller than wide)
    fill >= 0.5 and aspect >= 2.0    -> bus         (long, frame-filling)
    fill >= 0.5                      -> truck       (frame-filling)
    otherwise                        -> car

Confidence is capped below MAX_CONFIDENCE so fallback answers never
outrank a learned model's.
"""

import logging
from typing import Optional, Tuple

import cv2
import numpy as np

from parkcam.detection.detector import MalformedInput, NativeDetection, vehicle_class_for
from parkcam.imaging.codec import EncodedStill, ImageDecodeError, decode_still


logger = logging.getLogger(__name__)


MIN_FILL = 0.02
MAX_CONFIDENCE = 0.75
NO_OBJECT_CONFIDENCE = 0.3


class HeuristicDetector:
    """
    Shape-based fallback classifier.

    Attributes:
        canny_low: Lower Canny hysteresis threshold
        canny_high: Upper Canny hysteresis threshold
        max_side: Stills are downscaled so the longest side is at most this
    """

    name = "heuristic"

    def __init__(
        self,
        canny_low: int = 50,
        canny_high: int = 150,
        max_side: int = 640,
    ) -> None:
        self.canny_low = canny_low
        self.canny_high = canny_high
        self.max_side = max_side

    def run(self, still: EncodedStill) -> NativeDetection:
        """Classify the dominant object in the still."""
        try:
            rgb = decode_still(still)
        except ImageDecodeError as e:
            raise MalformedInput(str(e)) from e

        gray = cv2.cvtColor(self._downscale(rgb), cv2.COLOR_RGB2GRAY)
        edges = self._edges(gray)
        edge_density = float(np.count_nonzero(edges)) / edges.size

        box = self._dominant_box(edges)
        height, width = gray.shape

        if box is None:
            return NativeDetection(
                vehicle_type="car",
                confidence=NO_OBJECT_CONFIDENCE,
                vehicle_class=vehicle_class_for("car"),
                metadata={
                    "detector": self.name,
                    "reason": "no_dominant_object",
                    "edge_density": round(edge_density, 4),
                },
            )

        x, y, w, h = box
        aspect = w / float(h)
        fill = (w * h) / float(width * height)
        vehicle_type = classify_shape(aspect, fill)

        # More edge structure -> more confident, capped for the fallback tier
        confidence = min(MAX_CONFIDENCE, 0.45 + 2.0 * edge_density)

        logger.debug(
            f"Heuristic: type={vehicle_type}, aspect={aspect:.2f}, "
            f"fill={fill:.2f}, edges={edge_density:.3f}"
        )

        return NativeDetection(
            vehicle_type=vehicle_type,
            confidence=round(confidence, 4),
            vehicle_class=vehicle_class_for(vehicle_type),
            metadata={
                "detector": self.name,
                "bbox": [int(x), int(y), int(x + w), int(y + h)],
                "aspect_ratio": round(aspect, 3),
                "fill_ratio": round(fill, 3),
                "edge_density": round(edge_density, 4),
            },
        )

    def _downscale(self, rgb: np.ndarray) -> np.ndarray:
        h, w = rgb.shape[:2]
        longest = max(h, w)
        if longest <= self.max_side:
            return rgb
        scale = self.max_side / float(longest)
        return cv2.resize(rgb, (max(1, int(w * scale)), max(1, int(h * scale))), interpolation=cv2.INTER_AREA)

    def _edges(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)
        # Close small gaps so a vehicle outline becomes one contour
        return cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=2)

    def _dominant_box(self, edges: np.ndarray) -> Optional[Tuple[int, int, int, int]]:
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return None

        boxes = [cv2.boundingRect(c) for c in contours]
        x, y, w, h = max(boxes, key=lambda b: b[2] * b[3])

        if w == 0 or h == 0:
            return None
        if (w * h) / float(edges.shape[0] * edges.shape[1]) < MIN_FILL:
            return None
        return x, y, w, h


def classify_shape(aspect: float, fill: float) -> str:
    """Map bounding-box aspect ratio and fill ratio to a vehicle type."""
    if aspect < 0.8:
        return "motorcycle"
    if fill >= 0.5 and aspect >= 2.0:
        return "bus"
    if fill >= 0.5:
        return "truck"
    return "car"
