"""
Detector Capability
===================

Protocol, native result type and error taxonomy shared by every
vehicle detector.

A detector is treated as an opaque black box behind a request/response
boundary. The orchestrator consumes ONLY this interface.

Components:
    - VehicleDetector: Protocol with a single `run(still)` method
    - NativeDetection: What a detector returns before normalization
    - DetectorError hierarchy: DetectorUnavailable, MalformedInput, InternalError
    - FakeDetector: Scripted detector for tests
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from parkcam.imaging.codec import EncodedStill


logger = logging.getLogger(__name__)


# Vehicle type -> coarse class used for parking tariffs
VEHICLE_CLASSES: Dict[str, str] = {
    "bicycle": "two_wheeler",
    "motorcycle": "two_wheeler",
    "car": "light_vehicle",
    "van": "light_vehicle",
    "truck": "heavy_vehicle",
    "bus": "heavy_vehicle",
}


def vehicle_class_for(vehicle_type: Optional[str]) -> Optional[str]:
    """Coarse class for a vehicle type label, or None if unknown."""
    if vehicle_type is None:
        return None
    return VEHICLE_CLASSES.get(vehicle_type.lower())


class DetectorError(Exception):
    """Base class for detector failures."""
    pass


class DetectorUnavailable(DetectorError):
    """Model or service cannot be reached."""
    pass


class DetectorTimeout(DetectorUnavailable):
    """Detector call exceeded its time budget."""
    pass


class MalformedInput(DetectorError):
    """Detector rejected the still (corrupt, unsupported format, ...)."""
    pass


class InternalError(DetectorError):
    """Detector failed while processing a valid still."""
    pass


@dataclass(frozen=True)
class NativeDetection:
    """
    Detector output before normalization.

    Attributes:
        vehicle_type: Vehicle type label
        confidence: Confidence in [0, 1]
        vehicle_class: Coarser class, when the detector knows it
        metadata: Free-form detector details
    """

    vehicle_type: str
    confidence: float
    vehicle_class: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.vehicle_type:
            raise ValueError("vehicle_type must be non-empty")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")


class VehicleDetector(Protocol):
    """
    Protocol for detector backends.

    This interface is implemented by:
        - MLModelDetector (YOLO inference service)
        - VisionVehicleDetector (Google Cloud Vision)
        - HeuristicDetector (pixel heuristics, always available)
        - FakeDetector (tests)
    """

    name: str

    def run(self, still: EncodedStill) -> NativeDetection:
        """
        Classify the vehicle in a still.

        Raises:
            DetectorUnavailable: Model/service unreachable
            MalformedInput: Still rejected
            InternalError: Detector failure on valid input
        """
        ...


class FakeDetector:
    """
    Scripted detector for testing.

    Either returns a fixed detection or raises a fixed error, and
    records every still it receives.

    Attributes:
        calls: Stills received, in order
    """

    def __init__(
        self,
        result: Optional[NativeDetection] = None,
        error: Optional[Exception] = None,
        name: str = "fake",
        delay: float = 0.0,
    ) -> None:
        if result is None and error is None:
            result = NativeDetection(
                vehicle_type="car",
                confidence=0.9,
                vehicle_class="light_vehicle",
            )

        self.result = result
        self.error = error
        self.name = name
        self.delay = delay
        self.calls: List[EncodedStill] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def run(self, still: EncodedStill) -> NativeDetection:
        self.calls.append(still)

        if self.delay:
            time.sleep(self.delay)

        if self.error is not None:
            raise self.error
        return self.result
