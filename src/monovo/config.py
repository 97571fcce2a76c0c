"""Pipeline configuration loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from .frontend.camera import CalibrationMissingError, CameraIntrinsics
from .frontend.feature_detector import SUPPORTED_DETECTORS
from .frontend.pose_recoverer import MIN_CORRESPONDENCES


@dataclass
class VOConfig:
    """Monocular visual odometry parameters.

    Attributes:
        sample_interval_ms: Minimum time between processed frames
        ratio_threshold: Nearest/second-nearest descriptor distance ratio
        min_correspondences: Pairs required before solving for pose
        detector: "sift" or "orb"
        n_features: Feature cap, 0 = detector default
        ransac_prob: RANSAC confidence for the essential matrix
        ransac_threshold_px: RANSAC inlier threshold in pixels
        min_parallax_px: Median displacement below which views count as identical
        intrinsics: Camera intrinsics at delivery resolution, if known
    """

    sample_interval_ms: float = 500.0
    ratio_threshold: float = 0.2
    min_correspondences: int = MIN_CORRESPONDENCES
    detector: str = "sift"
    n_features: int = 0
    ransac_prob: float = 0.999
    ransac_threshold_px: float = 1.0
    min_parallax_px: float = 0.5
    intrinsics: CameraIntrinsics | None = None

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of range."""
        if self.sample_interval_ms <= 0:
            raise ValueError(
                f"sample_interval_ms must be positive, got {self.sample_interval_ms}"
            )
        if not 0.0 <= self.ratio_threshold <= 1.0:
            raise ValueError(
                f"ratio_threshold must be in [0, 1], got {self.ratio_threshold}"
            )
        if self.min_correspondences < MIN_CORRESPONDENCES:
            raise ValueError(
                f"min_correspondences must be >= {MIN_CORRESPONDENCES}, "
                f"got {self.min_correspondences}"
            )
        if self.detector.lower() not in SUPPORTED_DETECTORS:
            raise ValueError(
                f"detector must be one of {SUPPORTED_DETECTORS}, got '{self.detector}'"
            )
        if not 0.0 < self.ransac_prob < 1.0:
            raise ValueError(f"ransac_prob must be in (0, 1), got {self.ransac_prob}")


def _parse_resolution(value, key: str, path: Path) -> tuple[int, int]:
    if value is None or len(value) != 2:
        raise ValueError(f"Invalid camera.{key} in {path}: expected [width, height]")
    return int(value[0]), int(value[1])


def load_config(path: str | Path) -> VOConfig:
    """Load a VOConfig from YAML.

    Example file:
        vo:
          sample_interval_ms: 500
          ratio_threshold: 0.2
        camera:
          intrinsics: [1450.0, 1450.0, 960.0, 540.0, 0.0]
          resolution: [1920, 1080]
          target_resolution: [640, 360]

    Args:
        path: Path to the YAML file

    Returns:
        Validated VOConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file contains unknown or invalid parameters
        CalibrationMissingError: If the camera block has unusable intrinsics
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    vo_data = dict(data.get("vo") or {})
    known = {f.name for f in fields(VOConfig)} - {"intrinsics"}
    unknown = set(vo_data) - known
    if unknown:
        raise ValueError(f"Unknown vo parameters in {path}: {sorted(unknown)}")

    config = VOConfig(**vo_data)

    camera = data.get("camera")
    if camera is not None:
        values = camera.get("intrinsics")
        if values is None:
            raise CalibrationMissingError(f"camera block without intrinsics in {path}")
        try:
            intrinsics = CameraIntrinsics.from_array(values)
        except (TypeError, ValueError) as e:
            raise CalibrationMissingError(f"Invalid intrinsics in {path}: {e}") from e

        if camera.get("target_resolution") is not None:
            intrinsics = intrinsics.rescale(
                _parse_resolution(camera.get("resolution"), "resolution", path),
                _parse_resolution(camera["target_resolution"], "target_resolution", path),
            )
        config.intrinsics = intrinsics

    config.validate()
    return config
