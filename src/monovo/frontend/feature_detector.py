"""Sparse feature extraction for monocular odometry."""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

SUPPORTED_DETECTORS = ("sift", "orb")


@dataclass
class FeatureSet:
    """Keypoints paired 1:1 (by index) with their descriptors.

    Attributes:
        keypoints: Tuple of OpenCV KeyPoint objects
        descriptors: NxD descriptor array (float32 for SIFT, uint8 for ORB),
            or None if no features
    """

    keypoints: tuple[cv2.KeyPoint, ...]
    descriptors: np.ndarray | None

    @classmethod
    def empty(cls) -> FeatureSet:
        return cls(keypoints=(), descriptors=None)

    @property
    def points(self) -> np.ndarray:
        """Return Nx2 array of keypoint (x, y) coordinates."""
        if len(self.keypoints) == 0:
            return np.empty((0, 2), dtype=np.float32)
        return np.array([kp.pt for kp in self.keypoints], dtype=np.float32)

    @property
    def is_empty(self) -> bool:
        return len(self.keypoints) == 0 or self.descriptors is None

    def __len__(self) -> int:
        """Return number of features."""
        return len(self.keypoints)


class FeatureExtractor:
    """Keypoint detector/descriptor for sparse feature extraction.

    SIFT is the default: its float descriptors pair with FLANN matching and
    hold up well under the viewpoint changes of a handheld camera. ORB is
    available when speed matters more than repeatability.
    """

    def __init__(self, detector: str = "sift", n_features: int = 0) -> None:
        """Initialize extractor.

        Args:
            detector: "sift" or "orb"
            n_features: Maximum number of features to retain. 0 keeps the
                detector's default (all features for SIFT, 1000 for ORB).
        """
        detector = detector.lower()
        if detector not in SUPPORTED_DETECTORS:
            raise ValueError(
                f"Unknown detector '{detector}', expected one of {SUPPORTED_DETECTORS}"
            )

        if detector == "sift":
            self._detector = cv2.SIFT_create(nfeatures=n_features)
        else:
            self._detector = cv2.ORB_create(nfeatures=n_features or 1000)
        self._name = detector
        self._n_features = n_features

    def extract(self, image: np.ndarray, mask: np.ndarray | None = None) -> FeatureSet:
        """Detect keypoints and compute descriptors.

        Args:
            image: Grayscale (uint8) image. Colour images are converted.
            mask: Optional binary mask where 255 = detect, 0 = ignore.

        Returns:
            FeatureSet (empty if nothing was detected)
        """
        if image.ndim == 3:
            code = cv2.COLOR_RGBA2GRAY if image.shape[2] == 4 else cv2.COLOR_BGR2GRAY
            image = cv2.cvtColor(image, code)

        keypoints, descriptors = self._detector.detectAndCompute(image, mask)

        if keypoints is None or len(keypoints) == 0 or descriptors is None:
            return FeatureSet.empty()

        return FeatureSet(keypoints=tuple(keypoints), descriptors=descriptors)

    @property
    def name(self) -> str:
        return self._name

    @property
    def n_features(self) -> int:
        """Return maximum number of features to detect."""
        return self._n_features
