#!/usr/bin/env python3
"""
One-Shot Capture Script
=======================

Standalone script to exercise the full capture → detect flow once.

This script:
    1. Builds the pipeline from config (with CLI overrides)
    2. Captures the best of a short burst from the source
    3. Runs primary → fallback detection
    4. Prints the result payload as JSON (optionally saving the still)

Usage:
    python scripts/capture_once.py --backend camera --device 0
    python scripts/capture_once.py --backend stream --url rtsp://cam/1 --out still.jpg
    python scripts/capture_once.py --backend fake --primary fake

Exit codes:
    0 - vehicle detected
    1 - capture failed (no detection attempted)
    2 - both detectors failed
"""

import argparse
import json
import logging
import os
import sys

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from parkcam.capture import CaptureError
from parkcam.config import load_config
from parkcam.imaging import EncodeError
from parkcam.models import ErrorPayload, FailureCode
from parkcam.pipeline import build_pipeline, create_frame_source


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_CAPTURE_FAILED = 1
EXIT_DETECTION_FAILED = 2


def run_once(args: argparse.Namespace) -> int:
    """
    Run a single capture and detection.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    settings = load_config(args.config)

    if args.backend:
        settings.source.backend = args.backend
    if args.url:
        settings.source.url = args.url
    if args.device is not None:
        settings.source.device_index = args.device
    if args.primary:
        settings.detection.primary_backend = args.primary
    if args.fallback:
        settings.detection.fallback_backend = args.fallback

    logger.info("=" * 60)
    logger.info(f"Source: {settings.source.backend}")
    logger.info(f"Primary: {settings.detection.primary_backend}")
    logger.info(f"Fallback: {settings.detection.fallback_backend}")
    logger.info("=" * 60)

    pipeline = build_pipeline(settings)
    source = create_frame_source(settings)

    try:
        try:
            still = pipeline.capture(source)
        except (CaptureError, EncodeError) as e:
            logger.error(f"Capture failed: {e}")
            payload = ErrorPayload(
                code=FailureCode.CAPTURE_FAILED,
                message="Failed to capture image. Please try again.",
                causes={"capture": f"{type(e).__name__}: {e}"},
            )
            print(json.dumps(payload.to_payload(), indent=2))
            return EXIT_CAPTURE_FAILED

        if args.out:
            with open(args.out, "wb") as f:
                f.write(still.data)
            logger.info(f"Saved still to {args.out} ({still.size} bytes)")

        outcome = pipeline.detect(still)
    finally:
        source.release()
        pipeline.orchestrator.shutdown()

    if not outcome.ok:
        payload = ErrorPayload(
            code=FailureCode.DETECTION_FAILED,
            message=str(outcome.error),
            causes=outcome.error.causes,
        )
        print(json.dumps(payload.to_payload(), indent=2))
        return EXIT_DETECTION_FAILED

    print(json.dumps(outcome.result.to_payload(), indent=2))
    return EXIT_OK


def main():
    parser = argparse.ArgumentParser(
        description="Capture one still and classify the vehicle"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: search common locations)",
    )
    parser.add_argument(
        "--backend",
        choices=["camera", "stream", "fake"],
        default=None,
        help="Frame source backend",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help="Stream URL for the 'stream' backend",
    )
    parser.add_argument(
        "--device",
        type=int,
        default=None,
        help="Camera device index for the 'camera' backend",
    )
    parser.add_argument(
        "--primary",
        choices=["yolo_http", "vision", "heuristic", "fake"],
        default=None,
        help="Primary detector backend",
    )
    parser.add_argument(
        "--fallback",
        choices=["heuristic", "fake"],
        default=None,
        help="Fallback detector backend",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="Write the encoded still to this path",
    )

    args = parser.parse_args()
    sys.exit(run_once(args))


if __name__ == "__main__":
    main()
