"""Cross-frame feature correspondences with a nearest-neighbor ratio test."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

import cv2
import numpy as np

from .feature_detector import FeatureSet

logger = logging.getLogger(__name__)

DEFAULT_RATIO_THRESHOLD = 0.2


@dataclass
class CorrespondenceSet:
    """Ordered point pairs between the previous and current frame.

    Attributes:
        prev_points: Nx2 pixel coordinates in the previous frame
        curr_points: Nx2 pixel coordinates in the current frame
        prev_indices: Indices into the previous frame's keypoints
        curr_indices: Indices into the current frame's keypoints
        distances: Descriptor distance of each accepted match
    """

    prev_points: np.ndarray  # (N, 2) float64
    curr_points: np.ndarray  # (N, 2) float64
    prev_indices: np.ndarray  # (N,) int
    curr_indices: np.ndarray  # (N,) int
    distances: np.ndarray  # (N,) float32

    @classmethod
    def empty(cls) -> CorrespondenceSet:
        return cls(
            prev_points=np.empty((0, 2), dtype=np.float64),
            curr_points=np.empty((0, 2), dtype=np.float64),
            prev_indices=np.empty(0, dtype=np.int32),
            curr_indices=np.empty(0, dtype=np.int32),
            distances=np.empty(0, dtype=np.float32),
        )

    def __len__(self) -> int:
        """Return number of point pairs."""
        return len(self.prev_indices)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def pairs(self) -> Iterator[tuple[np.ndarray, np.ndarray]]:
        """Iterate over (p_prev, p_curr) pairs in match order."""
        return zip(self.prev_points, self.curr_points)

    @property
    def many_to_one_count(self) -> int:
        """Number of matches whose current keypoint was already claimed.

        Such matches are kept as-is; this count only reports them.
        """
        return len(self) - len(np.unique(self.curr_indices))


class CorrespondenceFinder:
    """Matches previous-frame features to current-frame features.

    For each previous descriptor, the two nearest current descriptors are
    retrieved. The best one is accepted only if

        best.distance < ratio_threshold * second_best.distance

    The default threshold of 0.2 is much stricter than the usual 0.7-0.8,
    trading recall for precision. Several previous keypoints may map to the
    same current keypoint; those matches pass through unmodified.
    """

    def __init__(
        self,
        ratio_threshold: float = DEFAULT_RATIO_THRESHOLD,
        matcher: Any | None = None,
    ) -> None:
        """Initialize correspondence finder.

        Args:
            ratio_threshold: Ratio test threshold in [0, 1]. Lower values =
                stricter matching.
            matcher: Optional object with OpenCV's ``knnMatch(query, train, k)``.
                If None, FLANN is used for float descriptors and brute-force
                Hamming for binary descriptors.
        """
        if not 0.0 <= ratio_threshold <= 1.0:
            raise ValueError(
                f"Ratio threshold must be in [0, 1], got {ratio_threshold}"
            )
        self._ratio_threshold = ratio_threshold
        self._matcher = matcher
        self._flann_matcher: cv2.FlannBasedMatcher | None = None
        self._hamming_matcher: cv2.BFMatcher | None = None

    def match(self, prev: FeatureSet, curr: FeatureSet) -> CorrespondenceSet:
        """Find ratio-test-filtered correspondences from ``prev`` to ``curr``.

        Args:
            prev: Features from the previous processed frame
            curr: Features from the current frame

        Returns:
            CorrespondenceSet in match order (empty if either side has
            fewer than two features)
        """
        # knn with k=2 needs at least two candidates on the train side
        if prev.is_empty or curr.is_empty or len(curr) < 2:
            return CorrespondenceSet.empty()

        query, train = self._prepare_descriptors(prev.descriptors, curr.descriptors)
        knn_matches = self._matcher_for(query).knnMatch(query, train, k=2)

        prev_indices = []
        curr_indices = []
        distances = []

        for match_pair in knn_matches:
            if len(match_pair) < 2:
                continue

            best, second_best = match_pair[0], match_pair[1]
            if not best.distance < self._ratio_threshold * second_best.distance:
                continue

            prev_indices.append(best.queryIdx)
            curr_indices.append(best.trainIdx)
            distances.append(best.distance)

        if len(prev_indices) == 0:
            logger.debug("No correspondences passed the ratio test")
            return CorrespondenceSet.empty()

        prev_indices = np.array(prev_indices, dtype=np.int32)
        curr_indices = np.array(curr_indices, dtype=np.int32)
        correspondences = CorrespondenceSet(
            prev_points=prev.points[prev_indices].astype(np.float64),
            curr_points=curr.points[curr_indices].astype(np.float64),
            prev_indices=prev_indices,
            curr_indices=curr_indices,
            distances=np.array(distances, dtype=np.float32),
        )

        logger.debug(
            "Matched %d of %d features (%d many-to-one)",
            len(correspondences),
            len(prev),
            correspondences.many_to_one_count,
        )
        return correspondences

    @staticmethod
    def _prepare_descriptors(
        query: np.ndarray, train: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        # FLANN's KD-tree index only accepts float32
        if query.dtype != np.uint8:
            query = np.asarray(query, dtype=np.float32)
            train = np.asarray(train, dtype=np.float32)
        return query, train

    def _matcher_for(self, descriptors: np.ndarray) -> Any:
        if self._matcher is not None:
            return self._matcher

        if descriptors.dtype == np.uint8:
            if self._hamming_matcher is None:
                self._hamming_matcher = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)
            return self._hamming_matcher

        if self._flann_matcher is None:
            self._flann_matcher = cv2.FlannBasedMatcher()
        return self._flann_matcher

    @property
    def ratio_threshold(self) -> float:
        """Return the ratio test threshold."""
        return self._ratio_threshold
