"""Frame throttling for the odometry pipeline."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_INTERVAL_MS = 500


class TrackingState(Enum):
    """Lifecycle state of the odometry analyzer."""

    IDLE = "IDLE"  # Never started
    TRACKING = "TRACKING"  # Frames are processed
    PAUSED = "PAUSED"  # Frames are received but dropped


class FrameGate:
    """Leaky time gate that admits at most one frame per sample interval.

    Bursts of frames faster than the interval collapse to a single admitted
    frame; long gaps do not cause catch-up processing. Timestamps are expected
    to be monotonically non-decreasing.
    """

    def __init__(self, sample_interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS) -> None:
        """Initialize gate.

        Args:
            sample_interval_ms: Minimum time between admitted frames (ms)
        """
        if sample_interval_ms <= 0:
            raise ValueError(
                f"Sample interval must be positive, got {sample_interval_ms}"
            )
        self._sample_interval_ms = sample_interval_ms
        self._last_processed_ms: float | None = None
        self.state = TrackingState.IDLE

    def admit(self, now_ms: float) -> bool:
        """Decide whether a frame arriving at ``now_ms`` should be processed.

        Returns True (and records ``now_ms``) iff the gate is tracking and at
        least one sample interval has elapsed since the last admitted frame.
        A False return has no side effects.
        """
        if self.state is not TrackingState.TRACKING:
            return False

        if (
            self._last_processed_ms is not None
            and now_ms - self._last_processed_ms < self._sample_interval_ms
        ):
            logger.debug("Dropped frame at %.1f ms (throttled)", now_ms)
            return False

        logger.debug("Admitted frame at %.1f ms", now_ms)
        self._last_processed_ms = now_ms
        return True

    @property
    def is_tracking(self) -> bool:
        return self.state is TrackingState.TRACKING

    @property
    def last_processed_ms(self) -> float | None:
        """Timestamp of the last admitted frame, or None if none yet."""
        return self._last_processed_ms

    @property
    def sample_interval_ms(self) -> float:
        return self._sample_interval_ms
