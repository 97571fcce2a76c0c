"""Chaining relative poses into a persistent world-frame pose."""

from __future__ import annotations

import logging

import numpy as np

from .pose import SE3
from .pose_recoverer import RelativePose

logger = logging.getLogger(__name__)

_HOMOGENEOUS_ROW = np.array([0.0, 0.0, 0.0, 1.0])


def increment_transform(rel: RelativePose) -> np.ndarray:
    """Build the 4x4 increment chained onto the world pose.

    Convention:
        R_inc = R^T
        t_inc = -(R * -1)^T @ t = R^T @ t
        T_inc = [[R_inc, t_inc], [0, 1]]

    Args:
        rel: Relative pose from the two-view solve (previous -> current)

    Returns:
        4x4 homogeneous increment
    """
    R = np.asarray(rel.rotation, dtype=np.float64)
    t = np.asarray(rel.translation, dtype=np.float64).reshape(3)
    R_inc = R.T
    t_inc = -((R * -1.0).T @ t)
    return SE3.from_Rt(R_inc, t_inc).to_matrix()


def _is_homogeneous(T: np.ndarray) -> bool:
    return (
        T.shape == (4, 4)
        and bool(np.isfinite(T).all())
        and bool(np.allclose(T[3], _HOMOGENEOUS_ROW))
    )


def compose(world: np.ndarray, rel: RelativePose) -> np.ndarray | None:
    """Fold a relative pose into the world pose: world_new = world @ T_inc.

    Args:
        world: Current 4x4 world pose
        rel: Relative pose to chain on the right

    Returns:
        Updated 4x4 world pose, or None if either operand is malformed
    """
    world = np.asarray(world, dtype=np.float64)
    if not _is_homogeneous(world):
        return None

    rotation = np.asarray(rel.rotation)
    translation = np.asarray(rel.translation)
    if rotation.shape != (3, 3) or translation.size != 3:
        return None

    T_inc = increment_transform(rel)
    if not _is_homogeneous(T_inc):
        return None

    updated = (SE3.from_matrix(world) @ SE3.from_matrix(T_inc)).to_matrix()
    if not _is_homogeneous(updated):
        return None
    return updated


class PoseComposer:
    """Owns the accumulated 4x4 world pose (identity at start and after reset)."""

    def __init__(self) -> None:
        self._world = np.eye(4, dtype=np.float64)

    def update(self, rel: RelativePose) -> bool:
        """Chain ``rel`` onto the world pose.

        On failure the world pose keeps its prior value.

        Returns:
            True if the world pose was updated
        """
        updated = compose(self._world, rel)
        if updated is None:
            logger.warning("Discarding malformed pose increment; world pose unchanged")
            return False
        self._world = updated
        return True

    def reset(self) -> None:
        """Reinitialize the world pose to identity."""
        self._world = np.eye(4, dtype=np.float64)

    @property
    def world(self) -> np.ndarray:
        """Return a copy of the 4x4 world pose."""
        return self._world.copy()

    @property
    def position(self) -> tuple[float, float, float]:
        """Return the translation column cast to single precision."""
        x, y, z = self._world[:3, 3].astype(np.float32)
        return float(x), float(y), float(z)

    def as_se3(self) -> SE3:
        return SE3.from_matrix(self._world)
