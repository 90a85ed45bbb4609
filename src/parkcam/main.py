"""
ParkCam Capture Agent Main Application
======================================

FastAPI entry point exposing the detection request/response boundary.

The capture pipeline is synchronous; handlers run it in a worker thread
via asyncio.to_thread so the event loop is never blocked.

Endpoints:
    GET  /                                   - Service information
    GET  /health                             - Liveness probe
    GET  /ready                              - Readiness probe (source ready?)
    GET  /metrics                            - Capture/detection counters
    POST /api/vehicle-detection/detect       - Classify an uploaded image
    POST /api/vehicle-detection/test-camera  - Same, wrapped with debug info
    POST /api/vehicle-detection/capture      - Capture from the camera and classify
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse

from parkcam.capture import CaptureError, FrameSource, SourceBusy
from parkcam.config import settings
from parkcam.detection import DetectionOutcome
from parkcam.imaging import EncodedStill, EncodeError, ImageDecodeError
from parkcam.models import ErrorPayload, FailureCode
from parkcam.pipeline import CapturePipeline, build_pipeline, create_frame_source


logger = logging.getLogger(__name__)


CAPTURE_FAILED_MESSAGE = "Failed to capture image. Please try again."


# =============================================================================
# Global State
# =============================================================================

_pipeline: Optional[CapturePipeline] = None
_frame_source: Optional[FrameSource] = None
_startup_time: float = time.time()

# Error counters
_capture_error_count: int = 0
_upload_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_pipeline() -> Optional[CapturePipeline]:
    return _pipeline

def get_frame_source() -> Optional[FrameSource]:
    return _frame_source


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _pipeline, _frame_source, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _pipeline = build_pipeline(settings)
    _frame_source = create_frame_source(settings)

    logger.info(
        f"Pipeline ready: source={settings.source.backend}, "
        f"primary={settings.detection.primary_backend}, "
        f"fallback={settings.detection.fallback_backend}"
    )

    yield

    logger.info("Shutting down...")
    if _frame_source is not None:
        _frame_source.release()
    if _pipeline is not None:
        _pipeline.orchestrator.shutdown()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ParkCam Capture Agent",
    description="Best-of-N capture, enhancement and two-tier vehicle detection",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# Helpers
# =============================================================================

def _error(code: FailureCode, message: str, status_code: int, causes: Optional[dict] = None) -> JSONResponse:
    payload = ErrorPayload(code=code, message=message, causes=causes or {})
    return JSONResponse(payload.to_payload(), status_code=status_code)


def _not_ready() -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": "Pipeline not initialized"},
        status_code=503,
    )


def _is_truthy(flag: Optional[str]) -> bool:
    return bool(flag) and flag.strip().lower() not in ("0", "false", "no", "")


async def _read_upload(
    image: Optional[UploadFile],
    is_base64: Optional[str],
) -> Tuple[Optional[EncodedStill], Optional[JSONResponse], int]:
    """
    Validate and wrap an uploaded image.

    Returns:
        (still, error_response, received_size); exactly one of still and
        error_response is set
    """
    global _upload_error_count

    if image is None:
        _upload_error_count += 1
        return None, _error(FailureCode.INVALID_IMAGE, "No image data provided", 400), 0

    content_type = image.content_type or "application/octet-stream"
    if not (content_type.startswith("image/") or content_type == "application/octet-stream"):
        _upload_error_count += 1
        return None, _error(
            FailureCode.INVALID_IMAGE,
            "Invalid file type. Only images and camera data are allowed",
            400,
        ), 0

    limit = settings.upload.max_bytes
    # At most limit + 1 bytes are buffered
    data = await image.read(limit + 1)
    if len(data) > limit:
        _upload_error_count += 1
        return None, _error(
            FailureCode.PAYLOAD_TOO_LARGE,
            f"Image exceeds {limit} bytes",
            413,
        ), len(data)

    try:
        if _is_truthy(is_base64):
            still = EncodedStill.from_base64(_ascii_text(data))
        else:
            still = EncodedStill.from_bytes(data)
    except ImageDecodeError as e:
        _upload_error_count += 1
        return None, _error(FailureCode.INVALID_IMAGE, str(e), 400), len(data)

    return still, None, len(data)


def _ascii_text(data: bytes) -> str:
    try:
        return data.decode("ascii")
    except UnicodeDecodeError as e:
        raise ImageDecodeError(f"Base64 payload is not ASCII text: {e.reason}") from e


def _detection_failed(outcome: DetectionOutcome) -> JSONResponse:
    return _error(
        FailureCode.DETECTION_FAILED,
        str(outcome.error),
        502,
        causes=outcome.error.causes,
    )


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "source_backend": settings.source.backend,
        "primary_backend": settings.detection.primary_backend,
        "fallback_backend": settings.detection.fallback_backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - can the service capture right now?

    Returns 503 if the pipeline is not built or the source is not ready.
    """
    source = get_frame_source()
    pipeline_ready = get_pipeline() is not None
    source_ready = await asyncio.to_thread(source.is_ready) if source else False

    body = {
        "status": "ready" if (pipeline_ready and source_ready) else "not_ready",
        "pipeline_initialized": pipeline_ready,
        "source_ready": source_ready,
    }
    return JSONResponse(body, status_code=200 if body["status"] == "ready" else 503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    pipeline = get_pipeline()
    pipeline_metrics = pipeline.get_metrics() if pipeline else {}

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "capture_errors": _capture_error_count,
        "upload_errors": _upload_error_count,
        **pipeline_metrics,
    })


@app.post("/api/vehicle-detection/detect")
async def detect(
    image: Optional[UploadFile] = File(None),
    isBase64: Optional[str] = Form(None),
) -> JSONResponse:
    """Classify an uploaded image (primary detector, heuristic fallback)."""
    pipeline = get_pipeline()
    if pipeline is None:
        return _not_ready()

    still, error_response, _ = await _read_upload(image, isBase64)
    if error_response is not None:
        return error_response

    outcome = await asyncio.to_thread(pipeline.detect, still)
    if not outcome.ok:
        return _detection_failed(outcome)

    return JSONResponse(outcome.result.to_payload())


@app.post("/api/vehicle-detection/test-camera")
async def test_camera(
    image: Optional[UploadFile] = File(None),
    isBase64: Optional[str] = Form(None),
) -> JSONResponse:
    """Camera test endpoint: detection result plus upload debug info."""
    pipeline = get_pipeline()
    if pipeline is None:
        return _not_ready()

    still, error_response, size = await _read_upload(image, isBase64)
    if error_response is not None:
        return error_response

    outcome = await asyncio.to_thread(pipeline.detect, still)
    if not outcome.ok:
        return _detection_failed(outcome)

    return JSONResponse({
        "success": True,
        "detectionResult": outcome.result.to_payload(),
        "debug": {
            "receivedDataSize": size,
            "mimeType": image.content_type,
            "detectedFormat": still.format,
        },
    })


@app.post("/api/vehicle-detection/capture")
async def capture() -> JSONResponse:
    """Capture the best of a burst from the configured source and classify it."""
    global _capture_error_count

    pipeline = get_pipeline()
    source = get_frame_source()
    if pipeline is None or source is None:
        return _not_ready()

    try:
        outcome = await asyncio.to_thread(pipeline.capture_and_detect, source)
    except SourceBusy as e:
        _capture_error_count += 1
        logger.warning(f"Capture rejected: {e}")
        return _error(FailureCode.SOURCE_BUSY, str(e), 409)
    except (CaptureError, EncodeError) as e:
        _capture_error_count += 1
        logger.error(f"Capture failed: {e}")
        return _error(
            FailureCode.CAPTURE_FAILED,
            CAPTURE_FAILED_MESSAGE,
            503,
            causes={"capture": f"{type(e).__name__}: {e}"},
        )

    if not outcome.ok:
        return _detection_failed(outcome)

    return JSONResponse(outcome.result.to_payload())


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    # Container platforms use PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "parkcam.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
