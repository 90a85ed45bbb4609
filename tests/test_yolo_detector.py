"""
YOLO Detector Tests
===================

HTTP client reply parsing and error mapping, against a fake session.
"""

import pytest
import requests

from parkcam.detection import (
    DetectorTimeout,
    DetectorUnavailable,
    InternalError,
    MalformedInput,
    MLModelDetector,
)


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Records posts and replies with a scripted response or exception."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, files=None, timeout=None):
        self.posts.append({"url": url, "files": files, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _detector(session, **kwargs):
    return MLModelDetector("http://yolo.test/detect", session=session, **kwargs)


class TestReplyParsing:
    """Tests for the accepted reply shapes."""

    def test_summary_reply(self, jpeg_still):
        """The summary shape is passed through."""
        session = FakeSession(FakeResponse(body={
            "success": True,
            "vehicleType": "truck",
            "confidence": 0.88,
            "metadata": {"model": "yolov8n"},
        }))

        native = _detector(session).run(jpeg_still)

        assert native.vehicle_type == "truck"
        assert native.confidence == pytest.approx(0.88)
        assert native.vehicle_class == "heavy_vehicle"
        assert native.metadata == {"model": "yolov8n"}

    def test_uploads_multipart_image(self, jpeg_still):
        """The still is uploaded as the `image` part with its MIME type."""
        session = FakeSession(FakeResponse(body={"success": True, "vehicleType": "car", "confidence": 0.9}))

        _detector(session, request_timeout=7.0).run(jpeg_still)

        post = session.posts[0]
        name, data, mime = post["files"]["image"]
        assert name == "capture.jpg"
        assert data == jpeg_still.data
        assert mime == "image/jpeg"
        assert post["timeout"] == 7.0

    def test_detections_reply_picks_best_vehicle(self, jpeg_still):
        """Non-vehicles and low-confidence boxes are ignored."""
        session = FakeSession(FakeResponse(body={"detections": [
            {"class": "person", "confidence": 0.99, "bbox": [0, 0, 5, 5]},
            {"class": "car", "confidence": 0.61, "bbox": [1, 2, 3, 4]},
            {"class": "bus", "confidence": 0.2, "bbox": [0, 0, 9, 9]},
            {"label": "Motorcycle", "confidence": 0.7, "bbox": [5, 5, 8, 9]},
        ]}))

        native = _detector(session).run(jpeg_still)

        assert native.vehicle_type == "motorcycle"
        assert native.confidence == pytest.approx(0.7)
        assert native.metadata["bbox"] == [5, 5, 8, 9]
        assert native.metadata["candidates"] == 4

    def test_no_vehicle_is_internal_error(self, jpeg_still):
        """A reply with no qualifying vehicle fails the tier."""
        session = FakeSession(FakeResponse(body={"detections": [{"class": "dog", "confidence": 0.9}]}))

        with pytest.raises(InternalError):
            _detector(session).run(jpeg_still)

    def test_unsuccessful_summary(self, jpeg_still):
        """success: false is a detector failure."""
        session = FakeSession(FakeResponse(body={"success": False, "message": "no vehicle"}))

        with pytest.raises(InternalError, match="no vehicle"):
            _detector(session).run(jpeg_still)

    def test_invalid_json(self, jpeg_still):
        """Non-JSON bodies are internal errors."""
        with pytest.raises(InternalError):
            _detector(FakeSession(FakeResponse(body=None, text="<html>"))).run(jpeg_still)


class TestErrorMapping:
    """Tests for transport and status-code mapping."""

    def test_connection_error(self, jpeg_still):
        session = FakeSession(error=requests.ConnectionError("refused"))
        with pytest.raises(DetectorUnavailable):
            _detector(session).run(jpeg_still)

    def test_timeout(self, jpeg_still):
        session = FakeSession(error=requests.Timeout("slow"))
        with pytest.raises(DetectorTimeout):
            _detector(session).run(jpeg_still)

    @pytest.mark.parametrize("status", [400, 413, 415, 422])
    def test_rejected_image(self, jpeg_still, status):
        session = FakeSession(FakeResponse(status_code=status, body={"message": "bad"}))
        with pytest.raises(MalformedInput):
            _detector(session).run(jpeg_still)

    def test_service_unavailable(self, jpeg_still):
        session = FakeSession(FakeResponse(status_code=503))
        with pytest.raises(DetectorUnavailable):
            _detector(session).run(jpeg_still)

    def test_server_error(self, jpeg_still):
        session = FakeSession(FakeResponse(status_code=500, text="Traceback"))
        with pytest.raises(InternalError):
            _detector(session).run(jpeg_still)

    def test_errors_counted(self, jpeg_still):
        """Failed calls show up in metrics."""
        detector = _detector(FakeSession(error=requests.ConnectionError("refused")))
        with pytest.raises(DetectorUnavailable):
            detector.run(jpeg_still)

        assert detector.get_metrics() == {"call_count": 1, "error_count": 1}

    def test_requires_url(self):
        with pytest.raises(ValueError):
            MLModelDetector("")
