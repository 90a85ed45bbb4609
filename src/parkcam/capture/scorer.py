"""
Frame Scorer
============

Contrast score used to pick the most usable frame from a burst.

For every pixel, brightness is the unweighted mean of R, G and B; the
score is the summed absolute deviation of that brightness from mid-gray.
Frames with a visible plate or vehicle edge against the background
deviate from 128 more than blurry or washed-out frames do.

    score = sum(|(r + g + b) / 3 - 128|)
"""

import numpy as np

from parkcam.capture.frame import Frame


MID_GRAY = 128.0


class FrameScorer:
    """Pure contrast scorer. Holds no state."""

    def score(self, frame: Frame) -> float:
        """
        Compute the contrast score of a frame.

        Args:
            frame: Candidate frame (extra channels beyond RGB ignored)

        Returns:
            Non-negative score; higher is more usable
        """
        rgb = frame.pixels[..., :3].astype(np.float64)
        brightness = rgb.sum(axis=2) / 3.0
        return float(np.abs(brightness - MID_GRAY).sum())
