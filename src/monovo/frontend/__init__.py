"""Frontend components for monocular visual odometry.

Components:
- FrameGate: Throttles incoming frames to the sample interval
- FeatureExtractor: SIFT/ORB keypoints and descriptors
- CorrespondenceFinder: Nearest-neighbor matching with a ratio test
- PoseRecoverer: Essential matrix + cheirality-based pose recovery
- PoseComposer: Chains relative poses into the world pose
- CameraIntrinsics: Pinhole calibration with skew
"""

from .camera import CalibrationMissingError, CameraIntrinsics, load_intrinsics
from .correspondence import CorrespondenceFinder, CorrespondenceSet
from .feature_detector import FeatureExtractor, FeatureSet
from .frame_gate import FrameGate, TrackingState
from .pose import SE3
from .pose_composer import PoseComposer, compose, increment_transform
from .pose_recoverer import (
    PoseRecoverer,
    RecoveryFailure,
    RecoveryResult,
    RelativePose,
)

__all__ = [
    # Camera
    "CameraIntrinsics",
    "CalibrationMissingError",
    "load_intrinsics",
    # Gate
    "FrameGate",
    "TrackingState",
    # Features
    "FeatureExtractor",
    "FeatureSet",
    # Matching
    "CorrespondenceFinder",
    "CorrespondenceSet",
    # Pose recovery
    "PoseRecoverer",
    "RecoveryFailure",
    "RecoveryResult",
    "RelativePose",
    # Composition
    "PoseComposer",
    "compose",
    "increment_transform",
    "SE3",
]
