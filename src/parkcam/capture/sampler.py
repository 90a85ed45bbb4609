"""
Frame Sampler
=============

Best-of-N frame selection from a live source.

Protocol:
    1. Wait until the source reports ready (bounded only if the caller
       passes ready_timeout)
    2. Read N candidates sequentially, sleeping a fixed delay between them
    3. Keep the candidate with the strictly greatest contrast score
       (ties keep the earlier frame)

Source Exclusivity:
    A source is a single shared handle. While one capture is in flight
    against it, a second capture is rejected with SourceBusy rather than
    queued.
"""

import logging
import threading
import time
import weakref
from typing import Callable, List, Optional

from parkcam.capture.frame import Frame
from parkcam.capture.scorer import FrameScorer
from parkcam.capture.source import FrameSource, NoFrameAvailable, SourceBusy


logger = logging.getLogger(__name__)


# One lock per live source object, shared by every sampler
_source_locks: "weakref.WeakKeyDictionary[object, threading.Lock]" = weakref.WeakKeyDictionary()
_registry_lock = threading.Lock()


def _lock_for(source: FrameSource) -> threading.Lock:
    with _registry_lock:
        lock = _source_locks.get(source)
        if lock is None:
            lock = threading.Lock()
            _source_locks[source] = lock
        return lock


class FrameSampler:
    """
    Acquires a burst of frames and returns the best one.

    Attributes:
        frame_count: Candidates per capture (N)
        frame_delay: Seconds between successive candidates
        ready_poll_interval: Seconds between readiness checks

    Example:
        sampler = FrameSampler()
        best = sampler.capture_best(source, ready_timeout=10.0)
    """

    def __init__(
        self,
        scorer: Optional[FrameScorer] = None,
        frame_count: int = 3,
        frame_delay: float = 0.1,
        ready_poll_interval: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize frame sampler.

        Args:
            scorer: Contrast scorer (default FrameScorer)
            frame_count: Number of candidates to read, must be >= 1
            frame_delay: Delay between candidates in seconds
            ready_poll_interval: Readiness polling interval in seconds
            sleep: Sleep function (injectable for tests)
        """
        if frame_count < 1:
            raise ValueError("frame_count must be >= 1")

        self.scorer = scorer or FrameScorer()
        self.frame_count = frame_count
        self.frame_delay = frame_delay
        self.ready_poll_interval = ready_poll_interval
        self._sleep = sleep

        self._capture_count: int = 0
        self._busy_rejections: int = 0
        self._last_scores: List[float] = []

    def capture_best(
        self,
        source: FrameSource,
        ready_timeout: Optional[float] = None,
    ) -> Frame:
        """
        Capture N candidates and return the highest-scoring one.

        Args:
            source: Frame source to read from
            ready_timeout: Max seconds to wait for readiness (None = no limit)

        Returns:
            The best Frame

        Raises:
            SourceBusy: Another capture holds this source
            NoFrameAvailable: Source did not become ready in time
            SourceUnavailable: Source disconnected mid-capture
        """
        lock = _lock_for(source)
        if not lock.acquire(blocking=False):
            self._busy_rejections += 1
            raise SourceBusy("A capture is already in progress on this source")

        try:
            self._wait_until_ready(source, ready_timeout)
            return self._sample(source)
        finally:
            lock.release()

    def _wait_until_ready(
        self,
        source: FrameSource,
        ready_timeout: Optional[float],
    ) -> None:
        if source.is_ready():
            return

        logger.debug("Source not ready, waiting")
        deadline = None if ready_timeout is None else time.monotonic() + ready_timeout

        while not source.is_ready():
            if deadline is not None and time.monotonic() >= deadline:
                raise NoFrameAvailable(
                    f"Source did not become ready within {ready_timeout:.1f}s"
                )
            self._sleep(self.ready_poll_interval)

    def _sample(self, source: FrameSource) -> Frame:
        best_frame: Optional[Frame] = None
        best_score = -1.0
        scores: List[float] = []

        for i in range(self.frame_count):
            frame = source.read_frame()
            score = self.scorer.score(frame)
            scores.append(score)

            if score > best_score:
                best_score = score
                best_frame = frame

            if i < self.frame_count - 1:
                self._sleep(self.frame_delay)

        self._capture_count += 1
        self._last_scores = scores

        logger.debug(
            f"Captured {len(scores)} candidates, scores={[round(s, 1) for s in scores]}, "
            f"best frame_id={best_frame.frame_id}"
        )
        return best_frame

    def get_metrics(self) -> dict:
        """Get sampler metrics for observability."""
        return {
            "capture_count": self._capture_count,
            "busy_rejections": self._busy_rejections,
            "last_scores": [round(s, 2) for s in self._last_scores],
        }
