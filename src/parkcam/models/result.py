"""
Detection Result Models
=======================

This module defines the response contract of the detection boundary.

Success Contract:
    {
        "success": true,
        "vehicleType": "car",
        "confidence": 0.91,
        "vehicleClass": "light_vehicle",
        "metadata": {"bbox": [12, 40, 610, 388]},
        "source": "primary"
    }

Failure Contract:
    {
        "success": false,
        "code": "DETECTION_FAILED",
        "message": "Vehicle detection failed: ...",
        "causes": {"primary": "...", "fallback": "..."}
    }

Design Rules:
    - The same field set is exposed whichever detector answered
    - Callers never need to branch on `source` to read a result
    - Failure payloads never carry vehicleType or confidence
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from parkcam.models.failure_codes import FailureCode


class DetectionSource(str, Enum):
    """
    Which tier of the two-tier strategy produced a result.

    Attributes:
        PRIMARY: Learned object-detection model
        FALLBACK: Lightweight heuristic classifier
    """

    PRIMARY = "primary"
    FALLBACK = "fallback"


class DetectionResult(BaseModel):
    """
    Normalized vehicle detection result.

    Produced once per detection request and never mutated (frozen).
    Serialize with `model_dump(by_alias=True)` for the camelCase wire form.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool = Field(
        default=True,
        description="Whether a vehicle classification was produced",
    )

    vehicle_type: Optional[str] = Field(
        default=None,
        alias="vehicleType",
        description="Vehicle type label (car, motorcycle, truck, bus, ...)",
    )

    confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Classification confidence [0, 1]",
    )

    vehicle_class: Optional[str] = Field(
        default=None,
        alias="vehicleClass",
        description="Coarser vehicle class, when known",
    )

    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form detector metadata",
    )

    source: DetectionSource = Field(
        ...,
        description="Detector tier that produced this result",
    )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready camelCase payload."""
        return self.model_dump(mode="json", by_alias=True)


class ErrorPayload(BaseModel):
    """
    Error response for capture or detection failures.

    Attributes:
        success: Always False
        code: Machine-readable failure code
        message: Human-readable message
        causes: Underlying causes keyed by stage, for diagnosis
    """

    model_config = ConfigDict(frozen=True)

    success: bool = Field(default=False)
    code: FailureCode = Field(..., description="Failure code")
    message: str = Field(..., description="Human-readable message")
    causes: Dict[str, str] = Field(
        default_factory=dict,
        description="Underlying error causes",
    )

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        if not payload["causes"]:
            del payload["causes"]
        return payload
