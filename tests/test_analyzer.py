"""Tests for the OdometryAnalyzer state machine and per-frame pipeline."""

import threading

import cv2
import numpy as np
import pytest

from monovo.analyzer import OdometryAnalyzer, QueuePositionListener
from monovo.config import VOConfig
from monovo.frontend.camera import CalibrationMissingError
from monovo.frontend.correspondence import CorrespondenceFinder
from monovo.frontend.feature_detector import FeatureSet
from monovo.frontend.frame_gate import TrackingState
from monovo.frontend.pose_recoverer import PoseRecoverer, RecoveryFailure, RecoveryResult
from monovo.io.frame_source import Frame

from conftest import (
    RecordingListener,
    ScriptedExtractor,
    make_feature_set,
    random_descriptors,
)


def build_analyzer(intrinsics, feature_sets, listener=None, **kwargs):
    extractor = ScriptedExtractor(feature_sets)
    analyzer = OdometryAnalyzer(
        intrinsics,
        listener=listener,
        extractor=extractor,
        finder=CorrespondenceFinder(matcher=cv2.BFMatcher(cv2.NORM_L2)),
        **kwargs,
    )
    return analyzer, extractor


def frame_at(timestamp_ms: float, released: list | None = None) -> Frame:
    release = None if released is None else (lambda: released.append(timestamp_ms))
    return Frame(np.zeros((8, 8), dtype=np.uint8), timestamp_ms, release=release)


class FailingRecoverer:
    """Recoverer stand-in that fails a fixed number of times, then succeeds."""

    def __init__(self, delegate, failures: int) -> None:
        self._delegate = delegate
        self._failures = failures
        self.calls = 0

    def recover(self, correspondences, intrinsics):
        self.calls += 1
        if self.calls <= self._failures:
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE)
        return self._delegate.recover(correspondences, intrinsics)


class TestConstruction:
    def test_requires_intrinsics(self):
        with pytest.raises(CalibrationMissingError):
            OdometryAnalyzer(None)

    def test_from_config_without_intrinsics(self):
        with pytest.raises(CalibrationMissingError):
            OdometryAnalyzer.from_config(VOConfig())

    def test_from_config(self, intrinsics):
        config = VOConfig(intrinsics=intrinsics, sample_interval_ms=100, detector="orb")
        analyzer = OdometryAnalyzer.from_config(config)
        assert analyzer.intrinsics == intrinsics
        assert analyzer.state is TrackingState.IDLE

    def test_invalid_config(self, intrinsics):
        with pytest.raises(ValueError, match="ratio_threshold"):
            OdometryAnalyzer(intrinsics, config=VOConfig(ratio_threshold=2.0))


class TestStateMachine:
    """Test suite for start/pause/reset transitions."""

    def test_idle_drops_frames(self, intrinsics):
        analyzer, extractor = build_analyzer(intrinsics, [])
        assert not analyzer.on_frame(frame_at(0))
        assert extractor.calls == 0
        assert analyzer.frames_processed == 0

    def test_start_and_pause(self, intrinsics):
        analyzer, _ = build_analyzer(intrinsics, [])
        analyzer.start()
        assert analyzer.state is TrackingState.TRACKING
        analyzer.pause()
        assert analyzer.state is TrackingState.PAUSED
        analyzer.start(reset_position=False)
        assert analyzer.state is TrackingState.TRACKING

    def test_pause_from_idle_is_ignored(self, intrinsics):
        analyzer, _ = build_analyzer(intrinsics, [])
        analyzer.pause()
        assert analyzer.state is TrackingState.IDLE

    def test_reset_keeps_state_and_features(self, intrinsics, scene):
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, _ = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
        )
        analyzer.start()
        analyzer.process_image(np.zeros((8, 8), np.uint8), 0)
        assert analyzer.process_image(np.zeros((8, 8), np.uint8), 500)
        assert np.linalg.norm(analyzer.position) == pytest.approx(1.0, abs=1e-3)

        analyzer.reset()

        assert analyzer.position == (0.0, 0.0, 0.0)
        np.testing.assert_array_equal(analyzer.world_pose, np.eye(4))
        assert analyzer.state is TrackingState.TRACKING
        assert analyzer.has_previous_features

    def test_start_with_reset_clears_position_only(self, intrinsics, scene):
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, _ = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
        )
        analyzer.start()
        analyzer.process_image(np.zeros((8, 8), np.uint8), 0)
        analyzer.process_image(np.zeros((8, 8), np.uint8), 500)
        analyzer.pause()

        analyzer.start(reset_position=False)
        assert analyzer.position != (0.0, 0.0, 0.0)

        analyzer.start(reset_position=True)
        assert analyzer.position == (0.0, 0.0, 0.0)
        assert analyzer.has_previous_features


class TestPipeline:
    """End-to-end scenarios with scripted features."""

    def test_first_frame_only_does_not_notify(self, intrinsics, scene):
        listener = RecordingListener()
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, extractor = build_analyzer(
            intrinsics, [make_feature_set(scene.prev_points, descriptors)], listener
        )
        analyzer.start()

        assert not analyzer.on_frame(frame_at(0))
        assert listener.positions == []
        assert extractor.calls == 1
        assert analyzer.has_previous_features
        assert analyzer.frames_processed == 1

    def test_zero_motion_reports_origin(self, intrinsics, scene):
        """Test two identical views with many matches report ~(0, 0, 0)."""
        listener = RecordingListener()
        points = scene.prev_points[:12]
        descriptors = random_descriptors(12)
        analyzer, _ = build_analyzer(
            intrinsics,
            [make_feature_set(points, descriptors), make_feature_set(points, descriptors)],
            listener,
        )
        analyzer.start()

        analyzer.on_frame(frame_at(0))
        assert analyzer.on_frame(frame_at(500))

        assert len(listener.positions) == 1
        np.testing.assert_allclose(listener.positions[0], (0.0, 0.0, 0.0), atol=1e-6)

    def test_known_motion_reports_translation(self, intrinsics, scene):
        listener = RecordingListener()
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, _ = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
            listener,
        )
        analyzer.start()
        analyzer.on_frame(frame_at(0))
        analyzer.on_frame(frame_at(500))

        expected = scene.rotation.T @ scene.translation_unit
        assert len(listener.positions) == 1
        np.testing.assert_allclose(listener.positions[0], expected, atol=1e-2)
        assert analyzer.poses_recovered == 1

    def test_too_few_matches_skips_update_but_caches(self, intrinsics, scene):
        """Test that a 3-match frame emits nothing yet still becomes "previous"."""
        listener = RecordingListener()
        n = len(scene.prev_points)
        frame1_desc = random_descriptors(n, seed=1)
        frame2_desc = random_descriptors(n, seed=2)
        frame2_desc[:3] = frame1_desc[:3]

        analyzer, extractor = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, frame1_desc),
                make_feature_set(scene.prev_points, frame2_desc),
                make_feature_set(scene.curr_points, frame2_desc),
            ],
            listener,
        )
        analyzer.start()

        analyzer.on_frame(frame_at(0))
        assert not analyzer.on_frame(frame_at(500))
        assert listener.positions == []
        assert analyzer.last_failure is RecoveryFailure.INSUFFICIENT_CORRESPONDENCES
        np.testing.assert_array_equal(analyzer.world_pose, np.eye(4))

        assert analyzer.on_frame(frame_at(1000))
        assert extractor.calls == 3
        assert analyzer.last_failure is None
        expected = scene.rotation.T @ scene.translation_unit
        np.testing.assert_allclose(listener.positions[0], expected, atol=1e-2)

    def test_solver_failure_keeps_world_and_resumes(self, intrinsics, scene):
        listener = RecordingListener()
        descriptors = random_descriptors(len(scene.prev_points))
        recoverer = FailingRecoverer(PoseRecoverer(), failures=1)
        analyzer, _ = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
            listener,
            recoverer=recoverer,
        )
        analyzer.start()

        analyzer.on_frame(frame_at(0))
        assert not analyzer.on_frame(frame_at(500))
        assert analyzer.last_failure is RecoveryFailure.SOLVER_FAILURE
        np.testing.assert_array_equal(analyzer.world_pose, np.eye(4))

        # Frame 3 matches frame 2 exactly: no parallax, identity step
        assert analyzer.on_frame(frame_at(1000))
        assert listener.positions == [(0.0, 0.0, 0.0)]
        assert recoverer.calls == 2

    def test_pause_suppresses_frames_and_keeps_cache(self, intrinsics, scene):
        """Test that the pre-pause features are matched after resuming."""
        listener = RecordingListener()
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, extractor = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
            listener,
        )
        analyzer.start()
        analyzer.on_frame(frame_at(0))

        analyzer.pause()
        for t in (500, 1000, 1500):
            assert not analyzer.on_frame(frame_at(t))
        assert extractor.calls == 1

        analyzer.start(reset_position=False)
        assert analyzer.on_frame(frame_at(2000))
        assert extractor.calls == 2
        expected = scene.rotation.T @ scene.translation_unit
        np.testing.assert_allclose(listener.positions[0], expected, atol=1e-2)

    def test_throttled_frames_are_not_extracted(self, intrinsics):
        feature_sets = [FeatureSet.empty()] * 3
        analyzer, extractor = build_analyzer(intrinsics, feature_sets)
        analyzer.start()

        for t in range(0, 1001, 50):
            analyzer.on_frame(frame_at(t))

        assert extractor.calls == 3  # t = 0, 500, 1000
        assert analyzer.frames_processed == 3

    def test_empty_features_do_not_fail(self, intrinsics):
        listener = RecordingListener()
        analyzer, _ = build_analyzer(
            intrinsics, [FeatureSet.empty(), FeatureSet.empty()], listener
        )
        analyzer.start()
        analyzer.on_frame(frame_at(0))
        assert not analyzer.on_frame(frame_at(500))
        assert analyzer.last_failure is RecoveryFailure.INSUFFICIENT_CORRESPONDENCES


class TestFrameRelease:
    def test_dropped_and_processed_frames_are_released(self, intrinsics):
        released = []
        analyzer, _ = build_analyzer(intrinsics, [FeatureSet.empty()])

        analyzer.on_frame(frame_at(0, released))  # idle
        analyzer.start()
        analyzer.on_frame(frame_at(100, released))  # processed
        analyzer.on_frame(frame_at(200, released))  # throttled

        assert released == [0, 100, 200]

    def test_released_when_extraction_raises(self, intrinsics):
        class BrokenExtractor:
            def extract(self, image):
                raise RuntimeError("boom")

        released = []
        analyzer = OdometryAnalyzer(intrinsics, extractor=BrokenExtractor())
        analyzer.start()

        with pytest.raises(RuntimeError, match="boom"):
            analyzer.on_frame(frame_at(0, released))
        assert released == [0]


class TestListeners:
    def test_queue_listener_across_threads(self, intrinsics, scene):
        listener = QueuePositionListener()
        descriptors = random_descriptors(len(scene.prev_points))
        analyzer, _ = build_analyzer(
            intrinsics,
            [
                make_feature_set(scene.prev_points, descriptors),
                make_feature_set(scene.curr_points, descriptors),
            ],
            listener,
        )
        analyzer.start()

        def produce():
            analyzer.on_frame(frame_at(0))
            analyzer.on_frame(frame_at(500))

        worker = threading.Thread(target=produce)
        worker.start()
        position = listener.get(timeout=10)
        worker.join()

        np.testing.assert_allclose(
            position, scene.rotation.T @ scene.translation_unit, atol=1e-2
        )
        assert listener.drain() == []

    def test_full_bounded_queue_does_not_block_control_calls(self, intrinsics, scene):
        """Test that a consumer-less bounded queue keeps the newest position."""
        listener = QueuePositionListener(maxsize=1)
        points = scene.prev_points[:10]
        descriptors = random_descriptors(10)
        analyzer, _ = build_analyzer(
            intrinsics, [make_feature_set(points, descriptors)] * 4, listener
        )
        analyzer.start()

        def produce():
            for t in (0, 500, 1000, 1500):
                analyzer.on_frame(frame_at(t))

        producer = threading.Thread(target=produce, daemon=True)
        producer.start()
        producer.join(timeout=5)
        assert not producer.is_alive()

        paused = threading.Event()

        def control():
            analyzer.pause()
            paused.set()

        threading.Thread(target=control, daemon=True).start()
        assert paused.wait(timeout=5)
        assert analyzer.state is TrackingState.PAUSED

        assert analyzer.poses_recovered == 3
        assert listener.dropped == 2
        assert listener.drain() == [(0.0, 0.0, 0.0)]

    def test_unbounded_queue_keeps_every_position(self):
        listener = QueuePositionListener()
        for i in range(3):
            listener(float(i), 0.0, 0.0)
        assert listener.dropped == 0
        assert [p[0] for p in listener.drain()] == [0.0, 1.0, 2.0]

    def test_listener_may_call_back_into_analyzer(self, intrinsics, scene):
        """Test that control calls from inside the listener do not deadlock."""
        points = scene.prev_points[:10]
        descriptors = random_descriptors(10)
        holder = {}

        def pause_on_first_position(x, y, z):
            holder["analyzer"].pause()

        analyzer, _ = build_analyzer(
            intrinsics,
            [make_feature_set(points, descriptors)] * 2,
            pause_on_first_position,
        )
        holder["analyzer"] = analyzer
        analyzer.start()
        analyzer.on_frame(frame_at(0))
        assert analyzer.on_frame(frame_at(500))
        assert analyzer.state is TrackingState.PAUSED
