"""
Capture Pipeline Tests
======================

End-to-end capture → enhance → encode → detect against fake sources.
"""

import numpy as np
import pytest

from parkcam.capture import FakeFrameSource, FrameSampler, NoFrameAvailable, SourceUnavailable
from parkcam.config import Settings
from parkcam.detection import DetectorUnavailable, FakeDetector, HeuristicDetector
from parkcam.imaging import ImageEnhancer, StillEncoder, decode_still
from parkcam.models import DetectionSource
from parkcam.pipeline import (
    CapturePipeline,
    build_pipeline,
    create_detector,
    create_frame_source,
)


@pytest.fixture
def pipeline(make_orchestrator, primary_detector, fallback_detector):
    """Pipeline with fake detectors and a non-sleeping sampler."""
    return CapturePipeline(
        sampler=FrameSampler(sleep=lambda _: None),
        enhancer=ImageEnhancer(),
        encoder=StillEncoder(),
        orchestrator=make_orchestrator(primary_detector, fallback_detector),
        ready_timeout=0.0,
    )


def _burst():
    """Three 16x16 frames; the second has the most contrast."""
    flat = np.full((16, 16, 3), 128, dtype=np.uint8)
    sharp = flat.copy()
    sharp[:, :8] = 20
    sharp[:, 8:] = 235
    soft = flat.copy()
    soft[:, :8] = 100
    return [flat, sharp, soft]


class TestCapturePipeline:
    """Tests for CapturePipeline."""

    def test_capture_and_detect(self, pipeline, primary_detector):
        """A ready source yields a primary result from one encoded still."""
        source = FakeFrameSource(_burst())

        outcome = pipeline.capture_and_detect(source)

        assert outcome.ok
        assert outcome.source is DetectionSource.PRIMARY
        assert source.read_count == 3
        assert primary_detector.call_count == 1

    def test_detector_receives_enhanced_best_frame(self, pipeline, primary_detector):
        """The still handed to the detector is the enhanced sharpest frame."""
        pipeline.capture_and_detect(FakeFrameSource(_burst()))

        still = primary_detector.calls[0]
        assert still.format == "jpeg"
        assert still.quality == 92
        assert (still.width, still.height) == (16, 16)

        rgb = decode_still(still).astype(int)
        # Left half was dark, right half bright; enhancement keeps them apart
        assert rgb[:, :6].mean() < 40
        assert rgb[:, 10:].mean() > 215

    def test_capture_failure_skips_detection(self, pipeline, primary_detector):
        """A source that never becomes ready aborts before any detector call."""
        source = FakeFrameSource(_burst(), never_ready=True)

        with pytest.raises(NoFrameAvailable):
            pipeline.capture_and_detect(source)

        assert primary_detector.call_count == 0

    def test_disconnect_skips_detection(self, pipeline, primary_detector):
        """A mid-capture disconnect aborts before any detector call."""
        source = FakeFrameSource(_burst(), disconnect_after=2)

        with pytest.raises(SourceUnavailable):
            pipeline.capture_and_detect(source)

        assert primary_detector.call_count == 0

    def test_fallback_through_pipeline(self, make_orchestrator, fallback_detector):
        """Primary outage surfaces as a fallback-sourced result."""
        pipeline = CapturePipeline(
            sampler=FrameSampler(sleep=lambda _: None),
            enhancer=ImageEnhancer(),
            encoder=StillEncoder(),
            orchestrator=make_orchestrator(
                FakeDetector(error=DetectorUnavailable("down")), fallback_detector
            ),
        )

        outcome = pipeline.capture_and_detect(FakeFrameSource(_burst()))

        assert outcome.source is DetectionSource.FALLBACK
        assert outcome.result.vehicle_type == "motorcycle"

    def test_metrics(self, pipeline):
        """Capture and detection metrics are combined."""
        pipeline.capture_and_detect(FakeFrameSource(_burst()))

        metrics = pipeline.get_metrics()

        assert metrics["capture"]["capture_count"] == 1
        assert metrics["detection"]["requests"] == 1


class TestFactories:
    """Tests for settings-driven construction."""

    def test_fake_source(self):
        """The fake backend produces a mid-gray pattern of the configured size."""
        settings = Settings.model_validate({"source": {"backend": "fake", "width": 32, "height": 24}})

        source = create_frame_source(settings)

        assert source.is_ready()
        assert source.read_frame().pixels.shape == (24, 32, 3)

    def test_stream_requires_url(self):
        """The stream backend fails fast without a URL."""
        settings = Settings.model_validate({"source": {"backend": "stream"}})
        with pytest.raises(ValueError):
            create_frame_source(settings)

    def test_unknown_backends(self):
        settings = Settings.model_validate({"source": {"backend": "floppy"}})
        with pytest.raises(ValueError):
            create_frame_source(settings)
        with pytest.raises(ValueError):
            create_detector("oracle", settings)

    def test_heuristic_detector(self):
        assert isinstance(create_detector("heuristic", Settings()), HeuristicDetector)

    def test_build_pipeline_from_settings(self):
        """Settings flow into every stage."""
        settings = Settings.model_validate({
            "capture": {"frame_count": 5, "frame_delay_ms": 40, "ready_timeout_seconds": 2},
            "encoding": {"quality": 80},
            "detection": {"primary_backend": "fake", "fallback_backend": "heuristic"},
        })

        pipeline = build_pipeline(settings)
        try:
            assert pipeline.sampler.frame_count == 5
            assert pipeline.sampler.frame_delay == pytest.approx(0.04)
            assert pipeline.encoder.quality == 80
            assert pipeline.ready_timeout == 2
            assert isinstance(pipeline.orchestrator.fallback, HeuristicDetector)
        finally:
            pipeline.orchestrator.shutdown()

    def test_fake_end_to_end(self):
        """Fake source and fake primary run the whole flow from settings."""
        settings = Settings.model_validate({
            "source": {"backend": "fake", "width": 32, "height": 24},
            "capture": {"frame_delay_ms": 0},
            "detection": {"primary_backend": "fake"},
        })
        pipeline = build_pipeline(settings)
        try:
            outcome = pipeline.capture_and_detect(create_frame_source(settings))
        finally:
            pipeline.orchestrator.shutdown()

        assert outcome.ok
        assert outcome.result.to_payload()["vehicleType"] == "car"
