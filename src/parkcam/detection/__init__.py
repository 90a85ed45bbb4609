"""
Detection Module
================

Vehicle classification of encoded stills.

Detectors are treated as pluggable black boxes. The pipeline consumes
ONLY the normalized DetectionResult produced by the orchestrator.

Components:
    - VehicleDetector: Protocol for detector backends
    - MLModelDetector: YOLO inference service over HTTP (primary)
    - VisionVehicleDetector: Google Cloud Vision (alternative primary)
    - HeuristicDetector: Shape heuristics, no model needed (fallback)
    - FakeDetector: Scripted detector for tests
    - DetectionOrchestrator: primary → fallback state machine

The Vision detector is imported from its own module, since it needs
the optional google-cloud-vision dependency at construction time.
"""

from parkcam.detection.detector import (
    DetectorError,
    DetectorTimeout,
    DetectorUnavailable,
    FakeDetector,
    InternalError,
    MalformedInput,
    NativeDetection,
    VehicleDetector,
)
from parkcam.detection.heuristic import HeuristicDetector
from parkcam.detection.orchestrator import (
    DetectionFailed,
    DetectionOrchestrator,
    DetectionOutcome,
)
from parkcam.detection.yolo_detector import MLModelDetector


__all__ = [
    "VehicleDetector",
    "NativeDetection",
    "DetectorError",
    "DetectorUnavailable",
    "DetectorTimeout",
    "MalformedInput",
    "InternalError",
    "FakeDetector",
    "HeuristicDetector",
    "MLModelDetector",
    "DetectionOrchestrator",
    "DetectionOutcome",
    "DetectionFailed",
]
