"""
Capture Pipeline
================

The synchronous capture-and-detect flow, plus factories that build
its collaborators from settings.

Flow (strictly sequential per request):
    FrameSource → FrameSampler(+FrameScorer) → ImageEnhancer
                → StillEncoder → DetectionOrchestrator → DetectionOutcome

Error Policy:
    - Capture and encoding errors propagate and abort before detection
    - Detection failures come back inside the DetectionOutcome

The pipeline has no event-loop dependency; HTTP handlers run it in a
worker thread, the CLI and tests call it directly.
"""

import logging

import numpy as np

from parkcam.capture import (
    FakeFrameSource,
    FrameSampler,
    FrameSource,
    LiveCameraSource,
    StreamURLSource,
)
from parkcam.config import Settings
from parkcam.detection import (
    DetectionOrchestrator,
    DetectionOutcome,
    FakeDetector,
    HeuristicDetector,
    MLModelDetector,
    VehicleDetector,
)
from parkcam.imaging import EncodedStill, ImageEnhancer, StillEncoder


logger = logging.getLogger(__name__)


class CapturePipeline:
    """
    Capture-quality pipeline followed by two-tier detection.

    Attributes:
        sampler: Best-of-N frame sampler
        enhancer: Grayscale/contrast/sharpen transform
        encoder: Still encoder
        orchestrator: Primary → fallback detection
        ready_timeout: Bound on waiting for source readiness (seconds)
    """

    def __init__(
        self,
        sampler: FrameSampler,
        enhancer: ImageEnhancer,
        encoder: StillEncoder,
        orchestrator: DetectionOrchestrator,
        ready_timeout: float = 10.0,
    ) -> None:
        self.sampler = sampler
        self.enhancer = enhancer
        self.encoder = encoder
        self.orchestrator = orchestrator
        self.ready_timeout = ready_timeout

    def capture(self, source: FrameSource) -> EncodedStill:
        """
        Capture, enhance and encode one still.

        Raises:
            CaptureError: NoFrameAvailable, SourceUnavailable or SourceBusy
            EncodeError: If the encoder fails
        """
        frame = self.sampler.capture_best(source, ready_timeout=self.ready_timeout)
        enhanced = self.enhancer.enhance(frame)
        still = self.encoder.encode(enhanced)

        logger.info(
            f"Captured still from frame {frame.frame_id}: "
            f"{still.width}x{still.height}, {still.size} bytes"
        )
        return still

    def detect(self, still: EncodedStill) -> DetectionOutcome:
        """Classify an already-encoded still (uploads skip the capture stage)."""
        return self.orchestrator.detect(still)

    def capture_and_detect(self, source: FrameSource) -> DetectionOutcome:
        """
        Run the full flow against a source.

        Raises:
            CaptureError: Capture failed; no detection was attempted
            EncodeError: Encoding failed; no detection was attempted

        Returns:
            DetectionOutcome (ok result or DetectionFailed)
        """
        still = self.capture(source)
        return self.orchestrator.detect(still)

    def get_metrics(self) -> dict:
        """Combined sampler and orchestrator metrics."""
        return {
            "capture": self.sampler.get_metrics(),
            "detection": self.orchestrator.get_metrics(),
        }


# =============================================================================
# Factories
# =============================================================================

def create_frame_source(settings: Settings) -> FrameSource:
    """
    Create the frame source selected by config.

    Fails fast on unknown backends or a missing stream URL.
    """
    cfg = settings.source
    backend = cfg.backend

    if backend == "camera":
        logger.info(f"Using LiveCameraSource: device={cfg.device_index}")
        return LiveCameraSource(
            device_index=cfg.device_index,
            width=cfg.width,
            height=cfg.height,
            fps=cfg.fps,
            buffer_size=cfg.buffer_size,
        )

    elif backend == "stream":
        if not cfg.url:
            raise ValueError("source.url is required for the 'stream' backend")
        logger.info("Using StreamURLSource")
        return StreamURLSource(cfg.url, buffer_size=cfg.buffer_size)

    elif backend == "fake":
        logger.info("Using FakeFrameSource (mid-gray test pattern)")
        pattern = np.full((cfg.height, cfg.width, 3), 128, dtype=np.uint8)
        return FakeFrameSource([pattern])

    else:
        raise ValueError(f"Unknown source backend: {backend}")


def create_detector(backend: str, settings: Settings) -> VehicleDetector:
    """Create a detector by backend name."""
    cfg = settings.detection

    if backend == "yolo_http":
        return MLModelDetector(
            url=cfg.yolo.url,
            confidence_threshold=cfg.yolo.confidence_threshold,
            request_timeout=cfg.primary_timeout_seconds,
        )

    elif backend == "vision":
        from parkcam.detection.vision_detector import VisionVehicleDetector

        return VisionVehicleDetector(
            credentials_path=cfg.vision.credentials_path,
            confidence_threshold=cfg.vision.confidence_threshold,
        )

    elif backend == "heuristic":
        return HeuristicDetector()

    elif backend == "fake":
        return FakeDetector()

    else:
        raise ValueError(f"Unknown detector backend: {backend}")


def create_orchestrator(settings: Settings) -> DetectionOrchestrator:
    """Create the orchestrator with the configured primary and fallback."""
    cfg = settings.detection
    return DetectionOrchestrator(
        primary=create_detector(cfg.primary_backend, settings),
        fallback=create_detector(cfg.fallback_backend, settings),
        primary_timeout=cfg.primary_timeout_seconds,
        fallback_timeout=cfg.fallback_timeout_seconds,
    )


def build_pipeline(settings: Settings) -> CapturePipeline:
    """Build a CapturePipeline from settings."""
    sampler = FrameSampler(
        frame_count=settings.capture.frame_count,
        frame_delay=settings.capture.frame_delay_ms / 1000.0,
        ready_poll_interval=settings.capture.ready_poll_interval_ms / 1000.0,
    )
    enhancer = ImageEnhancer(
        contrast=settings.enhancement.contrast,
        sharpness=settings.enhancement.sharpness,
    )
    encoder = StillEncoder(
        format=settings.encoding.format,
        quality=settings.encoding.quality,
    )

    return CapturePipeline(
        sampler=sampler,
        enhancer=enhancer,
        encoder=encoder,
        orchestrator=create_orchestrator(settings),
        ready_timeout=settings.capture.ready_timeout_seconds,
    )
