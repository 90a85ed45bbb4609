"""
Vision Vehicle Detector
=======================

Primary detector using Google Cloud Vision object localization.

This detector:
    - Sends the encoded still as-is (no re-encoding)
    - Keeps only vehicle labels above the confidence threshold
    - Reports the most confident vehicle

Design Rules:
    - Fail fast on misconfiguration (missing library or credentials)
    - API errors surface as DetectorError subclasses for the fallback hop
"""

import logging
from typing import Optional

from parkcam.detection.detector import (
    DetectorUnavailable,
    InternalError,
    MalformedInput,
    NativeDetection,
    vehicle_class_for,
)
from parkcam.imaging.codec import EncodedStill


logger = logging.getLogger(__name__)


# Vision API object names -> our vehicle type labels
VISION_LABELS = {
    "car": "car",
    "taxi": "car",
    "van": "van",
    "truck": "truck",
    "bus": "bus",
    "motorcycle": "motorcycle",
    "bicycle": "bicycle",
}


class VisionAPIError(Exception):
    """Raised when the Vision client cannot be initialized."""
    pass


class VisionVehicleDetector:
    """
    Vehicle detector using Google Cloud Vision.

    Attributes:
        confidence_threshold: Minimum score for a vehicle annotation
        credentials_path: Path to service account JSON
    """

    name = "vision"

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        confidence_threshold: float = 0.5,
    ) -> None:
        """
        Initialize Vision detector.

        Args:
            credentials_path: Path to service account JSON (optional)
            confidence_threshold: Minimum confidence for vehicle annotations

        Raises:
            ImportError: If google-cloud-vision is not installed
            VisionAPIError: If the client cannot be created
        """
        self.confidence_threshold = confidence_threshold
        self._api_call_count: int = 0
        self._api_error_count: int = 0

        self._client = None
        self._init_client(credentials_path)

        logger.info(
            f"VisionVehicleDetector initialized: threshold={confidence_threshold}"
        )

    def _init_client(self, credentials_path: Optional[str]) -> None:
        """Initialize Google Cloud Vision client."""
        try:
            from google.cloud import vision

            if credentials_path:
                self._client = vision.ImageAnnotatorClient.from_service_account_json(
                    credentials_path
                )
                logger.info(f"Vision client initialized from: {credentials_path}")
            else:
                # Use default credentials (ADC)
                self._client = vision.ImageAnnotatorClient()
                logger.info("Vision client initialized with default credentials")

        except ImportError:
            raise ImportError(
                "google-cloud-vision is required for VisionVehicleDetector. "
                "Install with: pip install 'parkcam-capture-agent[vision]'"
            )
        except Exception as e:
            raise VisionAPIError(f"Failed to initialize Vision client: {e}")

    def run(self, still: EncodedStill) -> NativeDetection:
        """Localize objects and report the most confident vehicle."""
        from google.api_core import exceptions as gexc
        from google.cloud import vision

        if still.format not in ("jpeg", "png", "webp", "bmp"):
            raise MalformedInput(f"Unsupported still format for Vision API: {still.format}")

        self._api_call_count += 1
        image = vision.Image(content=still.data)

        try:
            response = self._client.object_localization(image=image)
        except gexc.InvalidArgument as e:
            self._api_error_count += 1
            raise MalformedInput(f"Vision API rejected image: {e}") from e
        except (gexc.ServiceUnavailable, gexc.DeadlineExceeded, gexc.Unauthenticated) as e:
            self._api_error_count += 1
            raise DetectorUnavailable(f"Vision API unavailable: {e}") from e
        except gexc.GoogleAPIError as e:
            self._api_error_count += 1
            raise InternalError(f"Vision API error: {e}") from e

        if response.error.message:
            self._api_error_count += 1
            raise InternalError(f"Vision API: {response.error.message}")

        best_label: Optional[str] = None
        best_score = -1.0
        for obj in response.localized_object_annotations:
            label = VISION_LABELS.get(obj.name.lower())
            if label is None or obj.score < self.confidence_threshold:
                continue
            if obj.score > best_score:
                best_label = label
                best_score = obj.score

        if best_label is None:
            raise InternalError("Vision API found no vehicle above threshold")

        logger.debug(f"Vision API: vehicle={best_label}, score={best_score:.3f}")

        return NativeDetection(
            vehicle_type=best_label,
            confidence=min(1.0, max(0.0, float(best_score))),
            vehicle_class=vehicle_class_for(best_label),
            metadata={
                "detector": self.name,
                "annotations": len(response.localized_object_annotations),
            },
        )

    def get_metrics(self) -> dict:
        """Get detector metrics for observability."""
        return {
            "api_call_count": self._api_call_count,
            "api_error_count": self._api_error_count,
        }
