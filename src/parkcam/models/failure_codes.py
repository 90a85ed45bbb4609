"""
Failure Codes
=============

Fixed set of machine-readable codes for error payloads.

Capture problems and model problems use distinct codes so operators
can tell a camera fault from a detector fault at a glance.
"""

from enum import Enum


class FailureCode(str, Enum):
    """
    Machine-readable failure codes.

    Attributes:
        CAPTURE_FAILED: Camera/stream problem (not ready, disconnected)
        SOURCE_BUSY: Another capture is in flight on the same source
        INVALID_IMAGE: Upload missing, malformed or of the wrong type
        PAYLOAD_TOO_LARGE: Upload exceeds the configured size limit
        DETECTION_FAILED: Both primary and fallback detectors failed
    """

    CAPTURE_FAILED = "CAPTURE_FAILED"
    SOURCE_BUSY = "SOURCE_BUSY"
    INVALID_IMAGE = "INVALID_IMAGE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    DETECTION_FAILED = "DETECTION_FAILED"
