"""
Data Models
===========

Pydantic models for the detection request/response boundary.

Models:
    - DetectionSource: Which detector tier answered (primary, fallback)
    - DetectionResult: Normalized success payload
    - ErrorPayload: Capture/detection failure payload
    - FailureCode: Machine-readable failure codes
"""

from parkcam.models.failure_codes import FailureCode
from parkcam.models.result import DetectionResult, DetectionSource, ErrorPayload

__all__ = [
    "DetectionSource",
    "DetectionResult",
    "ErrorPayload",
    "FailureCode",
]
