"""Shared fixtures: synthetic two-view scenes and scripted feature sets."""

from dataclasses import dataclass

import cv2
import numpy as np
import pytest

from monovo.frontend.camera import CameraIntrinsics
from monovo.frontend.feature_detector import FeatureSet


@dataclass
class TwoViewScene:
    """Noise-free projections of one point cloud seen from two cameras."""

    prev_points: np.ndarray  # (N, 2)
    curr_points: np.ndarray  # (N, 2)
    rotation: np.ndarray  # x_curr = R @ x_prev + t
    translation_unit: np.ndarray  # t / |t|


def make_two_view_scene(
    intrinsics: CameraIntrinsics,
    n_points: int = 80,
    rotation_deg: tuple[float, float, float] = (0.0, 4.0, 0.0),
    translation: tuple[float, float, float] = (1.0, 0.0, 0.2),
    seed: int = 0,
) -> TwoViewScene:
    rng = np.random.default_rng(seed)
    points_3d = np.column_stack(
        [
            rng.uniform(-2.0, 2.0, n_points),
            rng.uniform(-2.0, 2.0, n_points),
            rng.uniform(4.0, 10.0, n_points),
        ]
    )

    R, _ = cv2.Rodrigues(np.deg2rad(np.array(rotation_deg, dtype=np.float64)))
    t = np.array(translation, dtype=np.float64)
    K = intrinsics.to_matrix()

    def project(points: np.ndarray) -> np.ndarray:
        homogeneous = (K @ points.T).T
        return homogeneous[:, :2] / homogeneous[:, 2:3]

    return TwoViewScene(
        prev_points=project(points_3d),
        curr_points=project((R @ points_3d.T).T + t),
        rotation=R,
        translation_unit=t / np.linalg.norm(t),
    )


def make_feature_set(points: np.ndarray, descriptors: np.ndarray) -> FeatureSet:
    """Build a FeatureSet from pixel coordinates and descriptors."""
    keypoints = tuple(cv2.KeyPoint(float(x), float(y), 1.0) for x, y in points)
    return FeatureSet(keypoints=keypoints, descriptors=descriptors)


def random_descriptors(n: int, dim: int = 32, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform(0.0, 100.0, (n, dim)).astype(np.float32)


class ScriptedExtractor:
    """Extractor stand-in returning prepared FeatureSets in order."""

    def __init__(self, feature_sets: list[FeatureSet]) -> None:
        self._feature_sets = list(feature_sets)
        self.calls = 0

    def extract(self, image: np.ndarray) -> FeatureSet:
        features = self._feature_sets[self.calls]
        self.calls += 1
        return features


class RecordingListener:
    """Position listener that remembers every call."""

    def __init__(self) -> None:
        self.positions: list[tuple[float, float, float]] = []

    def __call__(self, x: float, y: float, z: float) -> None:
        self.positions.append((x, y, z))


@pytest.fixture
def intrinsics() -> CameraIntrinsics:
    return CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0)


@pytest.fixture
def scene(intrinsics: CameraIntrinsics) -> TwoViewScene:
    return make_two_view_scene(intrinsics)


@pytest.fixture
def blank_image() -> np.ndarray:
    return np.zeros((8, 8), dtype=np.uint8)
