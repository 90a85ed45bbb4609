"""
YOLO Model Detector
===================

Primary detector backed by a YOLO inference service reached over HTTP.

The model itself is hosted elsewhere; this client uploads the still as a
multipart `image` part and normalizes the service's reply.

Accepted reply shapes:
    {"success": true, "vehicleType": "car", "confidence": 0.91,
     "vehicleClass": "...", "metadata": {...}}

    {"detections": [{"class": "car", "confidence": 0.91,
                     "bbox": [x1, y1, x2, y2]}, ...]}

Error Mapping:
    - connection refused / DNS failure -> DetectorUnavailable
    - request timeout                  -> DetectorTimeout
    - HTTP 400, 413, 415, 422          -> MalformedInput
    - HTTP 503                         -> DetectorUnavailable
    - other non-2xx, bad JSON, no vehicle -> InternalError
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from parkcam.detection.detector import (
    DetectorTimeout,
    DetectorUnavailable,
    InternalError,
    MalformedInput,
    NativeDetection,
    VEHICLE_CLASSES,
    vehicle_class_for,
)
from parkcam.imaging.codec import EncodedStill


logger = logging.getLogger(__name__)


_MALFORMED_STATUS = {400, 413, 415, 422}


class MLModelDetector:
    """
    Client for a YOLO vehicle-detection service.

    Attributes:
        url: Inference endpoint URL
        confidence_threshold: Minimum confidence for a detection to count
        request_timeout: Per-request HTTP timeout in seconds
    """

    name = "yolo_http"

    def __init__(
        self,
        url: str,
        confidence_threshold: float = 0.25,
        request_timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the detector.

        Args:
            url: Inference endpoint (e.g. http://localhost:8500/detect)
            confidence_threshold: Minimum confidence to accept a detection
            request_timeout: HTTP timeout in seconds
            session: Optional requests session (connection reuse, tests)
        """
        if not url:
            raise ValueError("MLModelDetector requires an inference url")

        self.url = url
        self.confidence_threshold = confidence_threshold
        self.request_timeout = request_timeout
        self._session = session or requests.Session()

        self._call_count: int = 0
        self._error_count: int = 0

        logger.info(
            f"MLModelDetector initialized: url={url}, "
            f"threshold={confidence_threshold}"
        )

    def run(self, still: EncodedStill) -> NativeDetection:
        """Upload the still and parse the service reply."""
        self._call_count += 1
        try:
            return self._run(still)
        except Exception:
            self._error_count += 1
            raise

    def _run(self, still: EncodedStill) -> NativeDetection:
        files = {"image": (f"capture.{_extension(still)}", still.data, still.mime_type)}

        try:
            response = self._session.post(
                self.url,
                files=files,
                timeout=self.request_timeout,
            )
        except requests.Timeout as e:
            raise DetectorTimeout(f"YOLO service timed out: {e}") from e
        except requests.RequestException as e:
            raise DetectorUnavailable(f"YOLO service unreachable: {e}") from e

        if response.status_code in _MALFORMED_STATUS:
            raise MalformedInput(
                f"YOLO service rejected image (HTTP {response.status_code}): "
                f"{_error_text(response)}"
            )
        if response.status_code == 503:
            raise DetectorUnavailable("YOLO service unavailable (HTTP 503)")
        if not response.ok:
            raise InternalError(
                f"YOLO service error (HTTP {response.status_code}): "
                f"{_error_text(response)}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise InternalError(f"YOLO service returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise InternalError("YOLO service returned a non-object reply")

        if "detections" in body:
            return self._from_detections(body["detections"])
        return self._from_summary(body)

    def _from_summary(self, body: Dict[str, Any]) -> NativeDetection:
        if not body.get("success", False):
            message = body.get("message") or body.get("error") or "no vehicle detected"
            raise InternalError(f"YOLO detection unsuccessful: {message}")

        vehicle_type = body.get("vehicleType")
        confidence = body.get("confidence")
        if not vehicle_type or confidence is None:
            raise InternalError("YOLO reply missing vehicleType or confidence")

        return NativeDetection(
            vehicle_type=str(vehicle_type),
            confidence=_clamp_confidence(confidence),
            vehicle_class=body.get("vehicleClass") or vehicle_class_for(vehicle_type),
            metadata=dict(body.get("metadata") or {}),
        )

    def _from_detections(self, detections: List[Dict[str, Any]]) -> NativeDetection:
        best: Optional[Dict[str, Any]] = None
        best_confidence = -1.0

        for det in detections or []:
            label = str(det.get("class") or det.get("label") or det.get("name") or "").lower()
            confidence = float(det.get("confidence", 0.0))

            if label not in VEHICLE_CLASSES:
                continue
            if confidence < self.confidence_threshold:
                continue
            if confidence > best_confidence:
                best = {**det, "label": label}
                best_confidence = confidence

        if best is None:
            raise InternalError(
                f"No vehicle above threshold {self.confidence_threshold} "
                f"in {len(detections or [])} detections"
            )

        metadata: Dict[str, Any] = {
            "detector": self.name,
            "candidates": len(detections),
        }
        if "bbox" in best:
            metadata["bbox"] = best["bbox"]

        return NativeDetection(
            vehicle_type=best["label"],
            confidence=_clamp_confidence(best_confidence),
            vehicle_class=vehicle_class_for(best["label"]),
            metadata=metadata,
        )

    def get_metrics(self) -> dict:
        """Get detector metrics for observability."""
        return {
            "call_count": self._call_count,
            "error_count": self._error_count,
        }


def _extension(still: EncodedStill) -> str:
    return "jpg" if still.format in ("jpeg", "unknown") else still.format


def _clamp_confidence(value: Any) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError) as e:
        raise InternalError(f"Invalid confidence value: {value!r}") from e


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]
