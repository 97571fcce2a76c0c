"""Monocular camera calibration (pinhole intrinsics with skew)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import yaml


class CalibrationMissingError(RuntimeError):
    """Raised when camera intrinsics are unavailable or unusable.

    This is the one failure that stops the pipeline from starting; every
    per-frame failure is handled inside the analyzer.
    """


@dataclass(frozen=True)
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model with skew).

    Attributes:
        fx: Focal length x (pixels)
        fy: Focal length y (pixels)
        cx: Principal point x (pixels)
        cy: Principal point y (pixels)
        skew: Axis skew coefficient (usually 0)
    """

    fx: float
    fy: float
    cx: float
    cy: float
    skew: float = 0.0

    def __post_init__(self) -> None:
        values = (self.fx, self.fy, self.cx, self.cy, self.skew)
        if not np.isfinite(values).all():
            raise ValueError(f"Intrinsics must be finite, got {values}")
        if self.fx <= 0 or self.fy <= 0:
            raise ValueError(
                f"Focal lengths must be positive, got fx={self.fx}, fy={self.fy}"
            )

    @classmethod
    def from_array(cls, values: Sequence[float]) -> CameraIntrinsics:
        """Create intrinsics from a lens calibration array.

        Args:
            values: [fx, fy, cx, cy] or [fx, fy, cx, cy, skew]

        Returns:
            CameraIntrinsics

        Raises:
            ValueError: If the array does not have 4 or 5 entries
        """
        values = [float(v) for v in values]
        if len(values) not in (4, 5):
            raise ValueError(
                f"Expected 4 or 5 calibration values [fx, fy, cx, cy, skew], "
                f"got {len(values)}"
            )
        return cls(*values)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [
                [self.fx, self.skew, self.cx],
                [0.0, self.fy, self.cy],
                [0.0, 0.0, 1.0],
            ],
            dtype=np.float64,
        )

    def scaled(self, factor: float) -> CameraIntrinsics:
        """Return intrinsics with every term multiplied by ``factor``."""
        return self._scaled_xy(factor, factor)

    def rescale(
        self,
        from_resolution: tuple[int, int],
        to_resolution: tuple[int, int],
    ) -> CameraIntrinsics:
        """Rescale intrinsics to the resolution frames are delivered at.

        Calibration is usually reported for the full sensor array, while
        frames arrive downsampled. Solving the essential matrix with the
        unscaled K silently corrupts the recovered pose.

        Args:
            from_resolution: (width, height) the calibration refers to
            to_resolution: (width, height) of delivered frames

        Returns:
            Rescaled CameraIntrinsics
        """
        from_w, from_h = from_resolution
        to_w, to_h = to_resolution
        if min(from_w, from_h, to_w, to_h) <= 0:
            raise ValueError(
                f"Resolutions must be positive, got {from_resolution} -> {to_resolution}"
            )

        scale_y = to_h / from_h
        scale_x = to_w / from_w
        # Same aspect ratio: scale everything by the height ratio
        if np.isclose(scale_x, scale_y):
            return self.scaled(scale_y)
        return self._scaled_xy(scale_x, scale_y)

    def _scaled_xy(self, scale_x: float, scale_y: float) -> CameraIntrinsics:
        return CameraIntrinsics(
            fx=self.fx * scale_x,
            fy=self.fy * scale_y,
            cx=self.cx * scale_x,
            cy=self.cy * scale_y,
            skew=self.skew * scale_x,
        )


def load_intrinsics(
    yaml_path: str | Path,
    target_resolution: tuple[int, int] | None = None,
) -> CameraIntrinsics:
    """Load intrinsics from an EuRoC-style sensor.yaml file.

    Expected keys:
        intrinsics: [fu, fv, cu, cv] (an optional 5th value is the skew)
        resolution: [width, height] the calibration refers to

    Args:
        yaml_path: Path to sensor.yaml
        target_resolution: Optional (width, height) of delivered frames.
            When given, intrinsics are rescaled from the calibration resolution.

    Returns:
        CameraIntrinsics

    Raises:
        CalibrationMissingError: If the file or its intrinsics are missing or invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise CalibrationMissingError(f"Calibration file not found: {yaml_path}")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    intrinsics_list = data.get("intrinsics")
    if intrinsics_list is None:
        raise CalibrationMissingError(f"No intrinsics in {yaml_path}")

    try:
        intrinsics = CameraIntrinsics.from_array(intrinsics_list)
    except (TypeError, ValueError) as e:
        raise CalibrationMissingError(f"Invalid intrinsics in {yaml_path}: {e}") from e

    if target_resolution is not None:
        resolution = data.get("resolution")
        if resolution is None or len(resolution) != 2:
            raise CalibrationMissingError(
                f"Cannot rescale intrinsics: no resolution in {yaml_path}"
            )
        intrinsics = intrinsics.rescale(
            (int(resolution[0]), int(resolution[1])),
            (int(target_resolution[0]), int(target_resolution[1])),
        )

    return intrinsics
