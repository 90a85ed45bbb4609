"""
HTTP API Tests
==============

FastAPI endpoints with an injected fake pipeline (no lifespan, no camera).
"""

import base64

import numpy as np
import pytest
from fastapi.testclient import TestClient

from parkcam import main
from parkcam.capture import FakeFrameSource, FrameSampler
from parkcam.detection import DetectorUnavailable, FakeDetector, InternalError
from parkcam.imaging import ImageEnhancer, StillEncoder
from parkcam.pipeline import CapturePipeline


DETECT_URL = "/api/vehicle-detection/detect"
TEST_CAMERA_URL = "/api/vehicle-detection/test-camera"
CAPTURE_URL = "/api/vehicle-detection/capture"


@pytest.fixture
def client():
    """TestClient without lifespan, so no real camera is opened."""
    return TestClient(main.app)


@pytest.fixture
def install_pipeline(monkeypatch, make_orchestrator):
    """Inject a pipeline with the given detectors and an optional source."""

    def _install(primary=None, fallback=None, source=None):
        pipeline = CapturePipeline(
            sampler=FrameSampler(sleep=lambda _: None),
            enhancer=ImageEnhancer(),
            encoder=StillEncoder(),
            orchestrator=make_orchestrator(
                primary or FakeDetector(name="fake_primary"),
                fallback or FakeDetector(name="fake_fallback"),
            ),
            ready_timeout=0.0,
        )
        monkeypatch.setattr(main, "_pipeline", pipeline)
        monkeypatch.setattr(main, "_frame_source", source)
        return pipeline

    return _install


def _failing_detectors():
    return (
        FakeDetector(error=DetectorUnavailable("model offline")),
        FakeDetector(error=InternalError("heuristic failed")),
    )


class TestServiceEndpoints:
    """Tests for info and probe endpoints."""

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "parkcam-capture-agent"
        assert body["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready_without_pipeline(self, client, monkeypatch):
        monkeypatch.setattr(main, "_pipeline", None)
        monkeypatch.setattr(main, "_frame_source", None)
        assert client.get("/ready").status_code == 503

    def test_ready_with_source(self, client, install_pipeline, mid_gray_image):
        install_pipeline(source=FakeFrameSource([mid_gray_image]))
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["source_ready"] is True

    def test_metrics(self, client, install_pipeline):
        install_pipeline()
        body = client.get("/metrics").json()
        assert body["detection"]["requests"] == 0
        assert "capture_errors" in body


class TestDetectEndpoint:
    """Tests for POST /api/vehicle-detection/detect."""

    def test_success(self, client, install_pipeline, jpeg_still):
        install_pipeline()

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["vehicleType"] == "car"
        assert body["confidence"] == pytest.approx(0.9)
        assert body["vehicleClass"] == "light_vehicle"
        assert body["source"] == "primary"

    def test_fallback_source_reported(self, client, install_pipeline, jpeg_still):
        install_pipeline(primary=FakeDetector(error=DetectorUnavailable("down")))

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.json()["source"] == "fallback"

    def test_base64_upload(self, client, install_pipeline, jpeg_still):
        """isBase64 uploads carry a base64 text body."""
        pipeline = install_pipeline()
        encoded = base64.b64encode(jpeg_still.data)

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.txt", encoded, "application/octet-stream")},
            data={"isBase64": "true"},
        )

        assert response.status_code == 200
        assert pipeline.orchestrator.primary.calls[0].data == jpeg_still.data

    @pytest.mark.parametrize("body", [b"%%%% not base64 %%%%", "café".encode("utf-8")])
    def test_malformed_base64_rejected(self, client, install_pipeline, body):
        """A bad base64 body is a 400 and never reaches a detector."""
        pipeline = install_pipeline()

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.txt", body, "application/octet-stream")},
            data={"isBase64": "true"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_IMAGE"
        assert pipeline.orchestrator.primary.calls == []

    def test_missing_image(self, client, install_pipeline):
        install_pipeline()

        response = client.post(DETECT_URL, data={"isBase64": "false"})

        assert response.status_code == 400
        assert response.json()["message"] == "No image data provided"
        assert response.json()["code"] == "INVALID_IMAGE"

    def test_wrong_content_type(self, client, install_pipeline):
        install_pipeline()

        response = client.post(
            DETECT_URL,
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 400

    def test_too_large(self, client, install_pipeline, monkeypatch, jpeg_still):
        install_pipeline()
        monkeypatch.setattr(main.settings.upload, "max_bytes", 16)

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"

    def test_exactly_at_limit_accepted(self, client, install_pipeline, monkeypatch, jpeg_still):
        """The size limit is inclusive."""
        install_pipeline()
        monkeypatch.setattr(main.settings.upload, "max_bytes", jpeg_still.size)

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.status_code == 200

    def test_both_detectors_fail(self, client, install_pipeline, jpeg_still):
        """Failure payload carries both causes and no classification."""
        primary, fallback = _failing_detectors()
        install_pipeline(primary=primary, fallback=fallback)

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "DETECTION_FAILED"
        assert "vehicleType" not in body
        assert "confidence" not in body
        assert "model offline" in body["causes"]["primary"]
        assert "heuristic failed" in body["causes"]["fallback"]

    def test_not_initialized(self, client, monkeypatch, jpeg_still):
        monkeypatch.setattr(main, "_pipeline", None)

        response = client.post(
            DETECT_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        assert response.status_code == 503


class TestTestCameraEndpoint:
    """Tests for POST /api/vehicle-detection/test-camera."""

    def test_debug_info(self, client, install_pipeline, jpeg_still):
        install_pipeline()

        response = client.post(
            TEST_CAMERA_URL,
            files={"image": ("frame.jpg", jpeg_still.data, "image/jpeg")},
        )

        body = response.json()
        assert body["success"] is True
        assert body["detectionResult"]["vehicleType"] == "car"
        assert body["debug"]["receivedDataSize"] == jpeg_still.size
        assert body["debug"]["mimeType"] == "image/jpeg"


class TestCaptureEndpoint:
    """Tests for POST /api/vehicle-detection/capture."""

    def test_success(self, client, install_pipeline, contrast_image):
        source = FakeFrameSource([contrast_image])
        install_pipeline(source=source)

        response = client.post(CAPTURE_URL)

        assert response.status_code == 200
        assert response.json()["vehicleType"] == "car"
        assert source.read_count == 3

    def test_source_not_ready(self, client, install_pipeline, contrast_image):
        """Capture problems use their own code, distinct from detection failures."""
        install_pipeline(source=FakeFrameSource([contrast_image], never_ready=True))

        response = client.post(CAPTURE_URL)

        assert response.status_code == 503
        body = response.json()
        assert body["code"] == "CAPTURE_FAILED"
        assert body["message"] == "Failed to capture image. Please try again."
        assert "NoFrameAvailable" in body["causes"]["capture"]

    def test_source_busy(self, client, install_pipeline, contrast_image):
        """A held source lock yields 409 SOURCE_BUSY."""
        from parkcam.capture.sampler import _lock_for

        source = FakeFrameSource([contrast_image])
        install_pipeline(source=source)
        lock = _lock_for(source)
        lock.acquire()
        try:
            response = client.post(CAPTURE_URL)
        finally:
            lock.release()

        assert response.status_code == 409
        assert response.json()["code"] == "SOURCE_BUSY"
        assert source.read_count == 0

    def test_detection_failure(self, client, install_pipeline, contrast_image):
        primary, fallback = _failing_detectors()
        install_pipeline(primary=primary, fallback=fallback, source=FakeFrameSource([contrast_image]))

        response = client.post(CAPTURE_URL)

        assert response.status_code == 502
        assert response.json()["code"] == "DETECTION_FAILED"
