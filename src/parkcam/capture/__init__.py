"""
Capture Module
==============

Live-source frame acquisition and best-of-N selection.

This module provides the front half of the capture-quality pipeline:
    - Frame: Immutable RGB raster with acquisition metadata
    - FrameSource: Protocol for camera/stream sources (+ concrete variants)
    - FrameScorer: Contrast score for a single frame
    - FrameSampler: Reads a burst of frames and keeps the best

Example:
    from parkcam.capture import FrameSampler, LiveCameraSource

    with LiveCameraSource(device_index=0) as source:
        best = FrameSampler().capture_best(source, ready_timeout=10.0)
"""

from parkcam.capture.frame import Frame
from parkcam.capture.scorer import FrameScorer
from parkcam.capture.sampler import FrameSampler
from parkcam.capture.source import (
    CaptureError,
    FakeFrameSource,
    FrameSource,
    LiveCameraSource,
    NoFrameAvailable,
    SourceBusy,
    SourceUnavailable,
    StreamURLSource,
)


__all__ = [
    "Frame",
    "FrameScorer",
    "FrameSampler",
    "FrameSource",
    "LiveCameraSource",
    "StreamURLSource",
    "FakeFrameSource",
    "CaptureError",
    "NoFrameAvailable",
    "SourceUnavailable",
    "SourceBusy",
]
