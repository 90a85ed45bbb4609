"""
ParkCam Capture Agent
=====================

Capture-quality pipeline and two-tier vehicle detection for parking
entry cameras.

A request captures a short burst from a live camera or CCTV stream,
keeps the highest-contrast frame, enhances it, encodes it as a JPEG
still and classifies the vehicle with a learned model, falling back to
a model-free heuristic when the model is unavailable.

Components:
    - capture: Frame sources, frame scoring, best-of-N sampling
    - imaging: Enhancement and still encoding
    - detection: Detector backends and the primary → fallback orchestrator
    - models: Wire-level result and error payloads
    - pipeline: End-to-end flow and settings-driven factories

Example:
    from parkcam.config import settings
    from parkcam.pipeline import build_pipeline, create_frame_source

    pipeline = build_pipeline(settings)
    outcome = pipeline.capture_and_detect(create_frame_source(settings))

    # The HTTP service is started via main.py
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
