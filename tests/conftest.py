"""
Test Configuration
==================

Pytest fixtures and test configuration for the ParkCam capture agent.
"""

import numpy as np
import pytest

from parkcam.capture import FrameSampler
from parkcam.detection import DetectionOrchestrator, FakeDetector
from parkcam.imaging import EnhancedImage, StillEncoder


@pytest.fixture
def mid_gray_image():
    """Provide an 8x8 RGB raster where every pixel is (128, 128, 128)."""
    return np.full((8, 8, 3), 128, dtype=np.uint8)


@pytest.fixture
def contrast_image():
    """Provide a 4x4 mid-gray raster where every 4th pixel is (200, 50, 50)."""
    image = np.full((4, 4, 3), 128, dtype=np.uint8)
    flat = image.reshape(-1, 3)
    flat[::4] = (200, 50, 50)
    return image


@pytest.fixture
def sleeps():
    """Record of sleep durations requested by a sampler."""
    return []


@pytest.fixture
def sampler(sleeps):
    """Provide a FrameSampler that records sleeps instead of sleeping."""
    return FrameSampler(sleep=sleeps.append)


@pytest.fixture
def jpeg_still():
    """Provide a real JPEG still encoded from a 64x48 gradient."""
    gradient = np.tile(np.linspace(0, 255, 64, dtype=np.uint8), (48, 1))
    pixels = np.stack([gradient] * 3, axis=2)
    image = EnhancedImage(pixels=pixels, frame_id=1, timestamp=0.0)
    return StillEncoder().encode(image)


@pytest.fixture
def primary_detector():
    """Provide a primary FakeDetector that always succeeds."""
    return FakeDetector(name="fake_primary")


@pytest.fixture
def fallback_detector():
    """Provide a fallback FakeDetector answering 'motorcycle'."""
    from parkcam.detection import NativeDetection

    return FakeDetector(
        result=NativeDetection(vehicle_type="motorcycle", confidence=0.5),
        name="fake_fallback",
    )


@pytest.fixture
def make_orchestrator():
    """Factory for orchestrators that are shut down after the test."""
    created = []

    def _make(primary, fallback, **kwargs):
        orchestrator = DetectionOrchestrator(primary, fallback, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.shutdown()
