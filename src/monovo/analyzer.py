"""Incremental monocular visual odometry analyzer."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from .config import VOConfig
from .frontend.camera import CalibrationMissingError, CameraIntrinsics
from .frontend.correspondence import CorrespondenceFinder
from .frontend.feature_detector import FeatureExtractor, FeatureSet
from .frontend.frame_gate import FrameGate, TrackingState
from .frontend.pose_composer import PoseComposer
from .frontend.pose_recoverer import PoseRecoverer, RecoveryFailure
from .io.frame_source import Frame

logger = logging.getLogger(__name__)


class PositionListener(Protocol):
    """Receives the camera position after every recovered pose."""

    def __call__(self, x: float, y: float, z: float) -> None: ...


class QueuePositionListener:
    """Position listener that pushes (x, y, z) tuples onto a queue.

    Lets a consumer on another thread (e.g. a UI loop) pick up positions
    in the order they were produced.

    The listener runs under the analyzer lock, so it never blocks: when a
    bounded queue is full the oldest position is discarded to make room.
    """

    def __init__(self, maxsize: int = 0) -> None:
        """Initialize listener.

        Args:
            maxsize: Queue capacity. 0 means unbounded.
        """
        self.queue: queue.Queue[tuple[float, float, float]] = queue.Queue(maxsize)
        self.dropped = 0

    def __call__(self, x: float, y: float, z: float) -> None:
        while True:
            try:
                self.queue.put_nowait((x, y, z))
                return
            except queue.Full:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    # Consumer took it first; retry the put
                    continue

    def get(self, timeout: float | None = None) -> tuple[float, float, float]:
        """Block until the next position is available."""
        return self.queue.get(timeout=timeout)

    def drain(self) -> list[tuple[float, float, float]]:
        """Return all queued positions without blocking."""
        positions = []
        while True:
            try:
                positions.append(self.queue.get_nowait())
            except queue.Empty:
                return positions


@dataclass
class AnalyzerState:
    """Per-session state carried from one processed frame to the next.

    Attributes:
        previous_features: Features of the last processed frame (one frame,
            not a history). None until the first frame is processed.
        frames_processed: Frames that passed the gate
        poses_recovered: Frames that produced a position update
        last_failure: Why the most recent pose recovery failed, if it did
    """

    previous_features: FeatureSet | None = None
    frames_processed: int = 0
    poses_recovered: int = 0
    last_failure: RecoveryFailure | None = None


class OdometryAnalyzer:
    """Single-stream monocular visual odometry.

    Per admitted frame:
    1. Extract features
    2. Match against the previous frame's features (ratio test)
    3. Recover relative pose from the essential matrix
    4. Chain the relative pose onto the world pose
    5. Cache current features as "previous" and report the position

    Steps 2-4 are skipped on the first frame. A failed recovery leaves the
    world pose untouched and emits nothing, but the feature cache is still
    replaced so tracking resumes on the next frame pair.

    All public entry points are serialized by one re-entrant lock, so
    control calls may come from a different thread than frames. The
    listener runs synchronously on the frame thread while the lock is held.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics | None,
        listener: PositionListener | None = None,
        config: VOConfig | None = None,
        extractor: FeatureExtractor | None = None,
        finder: CorrespondenceFinder | None = None,
        recoverer: PoseRecoverer | None = None,
    ) -> None:
        """Initialize analyzer.

        Args:
            intrinsics: Camera intrinsics at the resolution frames are delivered at
            listener: Called with (x, y, z) after each recovered pose
            config: Pipeline parameters (defaults if None)
            extractor: Feature extractor (built from config if None)
            finder: Correspondence finder (built from config if None)
            recoverer: Pose recoverer (built from config if None)

        Raises:
            CalibrationMissingError: If intrinsics is None
        """
        if intrinsics is None:
            raise CalibrationMissingError(
                "Camera intrinsics are required to start visual odometry"
            )

        config = config or VOConfig()
        config.validate()

        self._intrinsics = intrinsics
        self._listener = listener
        self._config = config

        self._gate = FrameGate(config.sample_interval_ms)
        self._extractor = extractor or FeatureExtractor(
            detector=config.detector, n_features=config.n_features
        )
        self._finder = finder or CorrespondenceFinder(
            ratio_threshold=config.ratio_threshold
        )
        self._recoverer = recoverer or PoseRecoverer(
            min_correspondences=config.min_correspondences,
            ransac_prob=config.ransac_prob,
            ransac_threshold_px=config.ransac_threshold_px,
            min_parallax_px=config.min_parallax_px,
        )
        self._composer = PoseComposer()
        self._state = AnalyzerState()

        self._lock = threading.RLock()

        logger.debug("Camera matrix K=%s", intrinsics.to_matrix().tolist())

    @classmethod
    def from_config(
        cls,
        config: VOConfig,
        listener: PositionListener | None = None,
    ) -> OdometryAnalyzer:
        """Create an analyzer from a config carrying intrinsics."""
        return cls(intrinsics=config.intrinsics, listener=listener, config=config)

    def start(self, reset_position: bool = True) -> None:
        """Begin (or resume) processing frames.

        Args:
            reset_position: If True, the world pose returns to identity.
                Cached features are kept either way.
        """
        with self._lock:
            previous = self._gate.state
            self._gate.state = TrackingState.TRACKING
            if reset_position:
                self._composer.reset()
            logger.info(
                "Tracking started from %s (reset_position=%s)",
                previous.value,
                reset_position,
            )

    def pause(self) -> None:
        """Stop processing frames without clearing any state."""
        with self._lock:
            if not self._gate.is_tracking:
                logger.info("pause() ignored in state %s", self._gate.state.value)
                return
            self._gate.state = TrackingState.PAUSED
            logger.info("Tracking paused")

    def reset(self) -> None:
        """Return the world pose to identity. State and cached features are kept."""
        with self._lock:
            self._composer.reset()
            logger.info("World pose reset")

    def on_frame(self, frame: Frame) -> bool:
        """Process one captured frame and release it.

        The frame is closed on every path, including when the gate drops it.

        Args:
            frame: Captured frame

        Returns:
            True if a new position was reported to the listener
        """
        try:
            with self._lock:
                if not self._gate.admit(frame.timestamp_ms):
                    return False
                return self._process(self._state, frame.to_image())
        finally:
            frame.close()

    def process_image(self, image: np.ndarray, timestamp_ms: float) -> bool:
        """Process an upright image the caller owns.

        Args:
            image: Grayscale or colour image
            timestamp_ms: Capture timestamp in milliseconds

        Returns:
            True if a new position was reported to the listener
        """
        with self._lock:
            if not self._gate.admit(timestamp_ms):
                return False
            return self._process(self._state, image)

    def _process(self, state: AnalyzerState, image: np.ndarray) -> bool:
        features = self._extractor.extract(image)
        state.frames_processed += 1

        previous = state.previous_features
        state.previous_features = features

        if previous is None:
            logger.debug("First frame: cached %d features", len(features))
            return False

        correspondences = self._finder.match(previous, features)
        result = self._recoverer.recover(correspondences, self._intrinsics)

        if not result.success:
            state.last_failure = result.failure
            logger.debug(
                "No pose update (%s, %d correspondences)",
                result.failure.value,
                len(correspondences),
            )
            return False

        state.last_failure = None
        if not self._composer.update(result.pose):
            return False

        state.poses_recovered += 1
        x, y, z = self._composer.position
        logger.debug("Position [%.3f, %.3f, %.3f]", x, y, z)
        if self._listener is not None:
            self._listener(x, y, z)
        return True

    @property
    def state(self) -> TrackingState:
        return self._gate.state

    @property
    def position(self) -> tuple[float, float, float]:
        """Return the current (x, y, z) position."""
        with self._lock:
            return self._composer.position

    @property
    def world_pose(self) -> np.ndarray:
        """Return a copy of the 4x4 world pose."""
        with self._lock:
            return self._composer.world

    @property
    def has_previous_features(self) -> bool:
        return self._state.previous_features is not None

    @property
    def frames_processed(self) -> int:
        return self._state.frames_processed

    @property
    def poses_recovered(self) -> int:
        return self._state.poses_recovered

    @property
    def last_failure(self) -> RecoveryFailure | None:
        return self._state.last_failure

    @property
    def intrinsics(self) -> CameraIntrinsics:
        return self._intrinsics
