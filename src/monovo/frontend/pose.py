"""Rigid transforms for chaining camera motion."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class SE3:
    """Rigid transform T = [[R, t], [0, 1]].

    As a world pose it maps camera coordinates into the world frame,
    p_world = R @ p_camera + t. Monocular translations carry no metric
    scale, so ``position`` is in units of the first recovered step.

    Attributes:
        rotation: 3x3 rotation matrix
        translation: (3,) translation vector
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.translation = np.asarray(self.translation, dtype=np.float64).flatten()

        if self.rotation.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got {self.rotation.shape}")
        if self.translation.shape != (3,):
            raise ValueError(f"Translation must be (3,), got {self.translation.shape}")

    @classmethod
    def from_Rt(cls, R: np.ndarray, t: np.ndarray) -> SE3:
        """Build a transform from a rotation and a translation.

        Args:
            R: 3x3 rotation matrix
            t: Translation, any shape holding 3 values (e.g. OpenCV's 3x1)

        Returns:
            SE3 transform
        """
        return cls(rotation=R, translation=t)

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> SE3:
        """Split a 4x4 homogeneous matrix into (R, t).

        Args:
            T: 4x4 matrix [[R, t], [0, 1]]. The bottom row is not checked.

        Returns:
            SE3 transform
        """
        T = np.asarray(T)
        if T.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {T.shape}")
        return cls(rotation=T[:3, :3], translation=T[:3, 3])

    def to_matrix(self) -> np.ndarray:
        """Return the 4x4 homogeneous matrix [[R, t], [0, 1]]."""
        T = np.eye(4, dtype=np.float64)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def inverse(self) -> SE3:
        """Return [R^T, -R^T @ t]."""
        R_inv = self.rotation.T
        return SE3(rotation=R_inv, translation=-R_inv @ self.translation)

    def compose(self, other: SE3) -> SE3:
        """Chain ``other`` on the right: self @ other.

        Example:
            world.compose(T_prev_curr) is the world pose of the current camera

        Args:
            other: Transform expressed in this transform's frame

        Returns:
            Composed SE3 transform
        """
        return SE3(
            rotation=self.rotation @ other.rotation,
            translation=self.rotation @ other.translation + self.translation,
        )

    @property
    def position(self) -> np.ndarray:
        """Return a copy of the translation, the camera position in the world frame."""
        return self.translation.copy()

    def __repr__(self) -> str:
        x, y, z = self.translation
        return f"SE3(position=[{x:.3f}, {y:.3f}, {z:.3f}])"

    def __matmul__(self, other: SE3) -> SE3:
        """Composition operator: T1 @ T2 == T1.compose(T2)."""
        return self.compose(other)
