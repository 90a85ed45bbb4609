"""
Frame Sources
=============

Capability interface and concrete variants for live video sources.

The capture pipeline consumes ONLY this interface. Transport details
(device drivers, RTSP/HTTP negotiation) are delegated to OpenCV's
VideoCapture and never leak past this module.

Components:
    - FrameSource: Protocol (is_ready, read_frame, release)
    - LiveCameraSource: Local camera device
    - StreamURLSource: CCTV stream URL (RTSP/HTTP)
    - FakeFrameSource: Scripted frames for tests and demos

Design Rules:
    - Sources open lazily on the first readiness check and reopen on a
      later check after a failed open or a failed read
    - read_frame() raises SourceUnavailable on disconnect, never returns None
    - Frames leave this module in RGB order
"""

import logging
import threading
from typing import List, Optional, Protocol, Sequence, Union

import cv2
import numpy as np

from parkcam.capture.frame import Frame


logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Base class for capture-stage failures."""
    pass


class NoFrameAvailable(CaptureError):
    """Raised when the source never becomes ready to deliver frames."""
    pass


class SourceUnavailable(CaptureError):
    """Raised when the camera or stream disconnects mid-capture."""
    pass


class SourceBusy(CaptureError):
    """Raised when another capture already holds the source."""
    pass


class FrameSource(Protocol):
    """
    Protocol for live video sources.

    This interface is implemented by:
        - LiveCameraSource (local device)
        - StreamURLSource (CCTV URL)
        - FakeFrameSource (tests)
    """

    def is_ready(self) -> bool:
        """Whether the source can deliver pixel data right now."""
        ...

    def read_frame(self) -> Frame:
        """
        Read the current frame.

        Raises:
            SourceUnavailable: If the camera/stream is disconnected
        """
        ...

    def release(self) -> None:
        """Release the underlying device or connection."""
        ...


class OpenCVFrameSource:
    """
    Shared VideoCapture plumbing for camera and stream sources.

    Subclasses provide the capture target and any device properties.
    """

    def __init__(self, target: Union[int, str], buffer_size: int = 1) -> None:
        self.target = target
        self.buffer_size = buffer_size

        self._cap: Optional[cv2.VideoCapture] = None
        self._frame_counter: int = 0
        self._lock = threading.Lock()

    def _open(self) -> None:
        """
        (Re)open the capture device, discarding any dead handle.

        Raises:
            SourceUnavailable: If OpenCV cannot open the target
        """
        if self._cap is not None and self._cap.isOpened():
            return
        self._drop()

        logger.info(f"Opening video source: {self.describe()}")
        try:
            cap = cv2.VideoCapture(self.target)
        except cv2.error as e:
            raise SourceUnavailable(f"OpenCV error opening {self.describe()}: {e}") from e

        # VideoCapture reports failure through isOpened(), not exceptions
        if not cap.isOpened():
            cap.release()
            raise SourceUnavailable(f"Could not open video source: {self.describe()}")

        if self.buffer_size:
            cap.set(cv2.CAP_PROP_BUFFERSIZE, self.buffer_size)
        self._configure(cap)
        self._cap = cap

    def _drop(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def _configure(self, cap: cv2.VideoCapture) -> None:
        """Hook for device-specific properties."""
        pass

    def describe(self) -> str:
        return str(self.target)

    def is_ready(self) -> bool:
        with self._lock:
            try:
                self._open()
            except SourceUnavailable as e:
                logger.warning(f"Source not ready: {e}")
                return False
            return True

    def read_frame(self) -> Frame:
        with self._lock:
            if self._cap is None or not self._cap.isOpened():
                raise SourceUnavailable(f"Video source is not open: {self.describe()}")

            ok, image = self._cap.read()
            if not ok or image is None:
                # Next readiness check reconnects
                self._drop()
                raise SourceUnavailable(
                    f"Video source disconnected: {self.describe()}"
                )

            self._frame_counter += 1

            if image.ndim == 2:
                image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)

            return Frame.from_bgr(image, frame_id=self._frame_counter)

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info(f"Released video source: {self.describe()}")

    def __enter__(self) -> "OpenCVFrameSource":
        return self

    def __exit__(self, *args) -> None:
        self.release()


class LiveCameraSource(OpenCVFrameSource):
    """
    Local camera (laptop webcam or USB device).

    Requests HD resolution and continuous autofocus. Backends that
    do not support a property silently ignore it.

    Attributes:
        device_index: OpenCV device index
        width: Requested frame width
        height: Requested frame height
        fps: Requested frame rate
    """

    def __init__(
        self,
        device_index: int = 0,
        width: int = 1920,
        height: int = 1080,
        fps: int = 30,
        buffer_size: int = 1,
    ) -> None:
        super().__init__(device_index, buffer_size=buffer_size)
        self.width = width
        self.height = height
        self.fps = fps

    def _configure(self, cap: cv2.VideoCapture) -> None:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        cap.set(cv2.CAP_PROP_AUTOFOCUS, 1)

    def describe(self) -> str:
        return f"camera:{self.target}"


class StreamURLSource(OpenCVFrameSource):
    """
    CCTV stream reached by URL (rtsp://, http:// MJPEG, ...).

    Attributes:
        url: Stream URL handed to OpenCV
    """

    def __init__(self, url: str, buffer_size: int = 1) -> None:
        if not url:
            raise ValueError("StreamURLSource requires a non-empty url")
        super().__init__(url, buffer_size=buffer_size)

    @property
    def url(self) -> str:
        return str(self.target)

    def describe(self) -> str:
        # Credentials embedded in CCTV URLs stay out of the logs
        if "@" in self.url and "://" in self.url:
            scheme, rest = self.url.split("://", 1)
            return f"{scheme}://***@{rest.split('@', 1)[1]}"
        return self.url


class FakeFrameSource:
    """
    Deterministic scripted source for testing.

    Returns the given rasters in order, cycling when exhausted.

    Attributes:
        ready_after: Number of is_ready() calls that report not-ready first
        disconnect_after: Raise SourceUnavailable after this many reads
        read_count: Frames read so far
    """

    def __init__(
        self,
        images: Sequence[np.ndarray],
        ready_after: int = 0,
        disconnect_after: Optional[int] = None,
        never_ready: bool = False,
    ) -> None:
        if not images:
            raise ValueError("FakeFrameSource needs at least one image")

        self._images: List[np.ndarray] = [np.asarray(img, dtype=np.uint8) for img in images]
        self.ready_after = ready_after
        self.disconnect_after = disconnect_after
        self.never_ready = never_ready

        self.ready_checks: int = 0
        self.read_count: int = 0
        self.released: bool = False

    def is_ready(self) -> bool:
        self.ready_checks += 1
        if self.never_ready:
            return False
        return self.ready_checks > self.ready_after

    def read_frame(self) -> Frame:
        if self.disconnect_after is not None and self.read_count >= self.disconnect_after:
            raise SourceUnavailable("Fake source disconnected")

        image = self._images[self.read_count % len(self._images)]
        self.read_count += 1
        return Frame(pixels=image, frame_id=self.read_count)

    def release(self) -> None:
        self.released = True
