"""Two-view relative pose recovery from the essential matrix."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import cv2
import numpy as np

from .camera import CameraIntrinsics
from .correspondence import CorrespondenceSet
from .pose import SE3

logger = logging.getLogger(__name__)

# Five-point algorithm minimum
MIN_CORRESPONDENCES = 5


class RecoveryFailure(Enum):
    """Why a relative pose could not be recovered."""

    INSUFFICIENT_CORRESPONDENCES = "INSUFFICIENT_CORRESPONDENCES"
    SOLVER_FAILURE = "SOLVER_FAILURE"


@dataclass
class RelativePose:
    """Relative motion between two views (previous -> current).

    The translation is unit-norm: monocular geometry does not observe scale.

    Attributes:
        rotation: 3x3 rotation matrix R
        translation: (3,) translation t with x_curr = R @ x_prev + t
        num_inliers: Correspondences that passed the cheirality check
    """

    rotation: np.ndarray
    translation: np.ndarray
    num_inliers: int = 0

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

    @classmethod
    def identity(cls, num_inliers: int = 0) -> RelativePose:
        return cls(rotation=np.eye(3), translation=np.zeros(3), num_inliers=num_inliers)

    def inverse(self) -> RelativePose:
        """Return the relative pose whose world increment undoes this one's."""
        inverse = SE3.from_Rt(self.rotation, self.translation).inverse()
        return RelativePose(
            rotation=inverse.rotation,
            translation=inverse.translation,
            num_inliers=self.num_inliers,
        )

    def is_finite(self) -> bool:
        return bool(
            np.isfinite(self.rotation).all() and np.isfinite(self.translation).all()
        )


@dataclass
class RecoveryResult:
    """Result of relative pose recovery.

    Attributes:
        success: True if a relative pose was recovered
        pose: Recovered RelativePose, None if failed
        failure: Failure kind, None on success
        num_inliers: Correspondences consistent with the recovered pose
    """

    success: bool
    pose: RelativePose | None
    failure: RecoveryFailure | None = None
    num_inliers: int = 0

    @classmethod
    def failed(cls, failure: RecoveryFailure, num_inliers: int = 0) -> RecoveryResult:
        return cls(success=False, pose=None, failure=failure, num_inliers=num_inliers)


class PoseRecoverer:
    """Recovers (R, t) between two calibrated views.

    Estimates the essential matrix with RANSAC and decomposes it with
    OpenCV's cheirality check, which picks the (R, t) placing most
    triangulated points in front of both cameras.
    """

    def __init__(
        self,
        min_correspondences: int = MIN_CORRESPONDENCES,
        ransac_prob: float = 0.999,
        ransac_threshold_px: float = 1.0,
        min_parallax_px: float = 0.5,
    ) -> None:
        """Initialize pose recoverer.

        Args:
            min_correspondences: Fewer pairs than this are rejected without
                running the solver. Cannot be below 5.
            ransac_prob: RANSAC confidence for the essential matrix.
            ransac_threshold_px: RANSAC inlier threshold (pixels).
            min_parallax_px: Below this median pixel displacement the views
                are treated as identical and the identity pose is returned.
        """
        if min_correspondences < MIN_CORRESPONDENCES:
            raise ValueError(
                f"min_correspondences must be >= {MIN_CORRESPONDENCES}, "
                f"got {min_correspondences}"
            )
        self._min_correspondences = min_correspondences
        self._ransac_prob = ransac_prob
        self._ransac_threshold_px = ransac_threshold_px
        self._min_parallax_px = min_parallax_px

    def recover(
        self, correspondences: CorrespondenceSet, intrinsics: CameraIntrinsics
    ) -> RecoveryResult:
        """Recover the relative pose for a set of correspondences.

        Args:
            correspondences: Matched (previous, current) pixel pairs
            intrinsics: Intrinsics at the resolution the points were detected at

        Returns:
            RecoveryResult; ``pose`` is None on failure
        """
        n_points = len(correspondences)
        if n_points < self._min_correspondences:
            logger.debug(
                "Skipping pose recovery: %d correspondences (< %d)",
                n_points,
                self._min_correspondences,
            )
            return RecoveryResult.failed(RecoveryFailure.INSUFFICIENT_CORRESPONDENCES)

        p0 = np.asarray(correspondences.prev_points, dtype=np.float64).reshape(-1, 2)
        p1 = np.asarray(correspondences.curr_points, dtype=np.float64).reshape(-1, 2)
        K = intrinsics.to_matrix()

        # Without parallax E is undefined and recoverPose would invent a unit t
        parallax = float(np.median(np.linalg.norm(p1 - p0, axis=1)))
        if parallax < self._min_parallax_px:
            logger.debug("No parallax (median %.3f px), assuming no motion", parallax)
            return RecoveryResult(
                success=True,
                pose=RelativePose.identity(num_inliers=n_points),
                num_inliers=n_points,
            )

        try:
            E, mask = cv2.findEssentialMat(
                p0,
                p1,
                cameraMatrix=K,
                method=cv2.RANSAC,
                prob=self._ransac_prob,
                threshold=self._ransac_threshold_px,
            )
        except cv2.error as e:
            logger.warning("findEssentialMat failed: %s", e)
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE)

        if E is None or E.ndim != 2 or E.shape[1] != 3 or E.shape[0] < 3:
            logger.warning("findEssentialMat returned no usable solution")
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE)

        # Multiple solutions come stacked as 3k x 3; take the first
        E = E[:3, :3]

        try:
            if mask is not None:
                retval, R, t, _ = cv2.recoverPose(E, p0, p1, cameraMatrix=K, mask=mask)
            else:
                retval, R, t, _ = cv2.recoverPose(E, p0, p1, cameraMatrix=K)
        except cv2.error as e:
            logger.warning("recoverPose failed: %s", e)
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE)

        num_inliers = int(retval) if retval is not None else 0
        if num_inliers <= 0:
            logger.warning("recoverPose found no points in front of both cameras")
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE)

        pose = RelativePose(rotation=R, translation=t, num_inliers=num_inliers)
        if not pose.is_finite():
            logger.warning("recoverPose returned non-finite R or t")
            return RecoveryResult.failed(RecoveryFailure.SOLVER_FAILURE, num_inliers)

        return RecoveryResult(success=True, pose=pose, num_inliers=num_inliers)

    @property
    def min_correspondences(self) -> int:
        return self._min_correspondences
