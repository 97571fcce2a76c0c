"""monovo - incremental monocular visual odometry in Python."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .analyzer import (
    AnalyzerState,
    OdometryAnalyzer,
    PositionListener,
    QueuePositionListener,
)
from .config import VOConfig, load_config
from .frontend import (
    SE3,
    CalibrationMissingError,
    CameraIntrinsics,
    CorrespondenceFinder,
    CorrespondenceSet,
    FeatureExtractor,
    FeatureSet,
    FrameGate,
    PoseComposer,
    PoseRecoverer,
    RecoveryFailure,
    RecoveryResult,
    RelativePose,
    TrackingState,
    load_intrinsics,
)
from .io import DatasetReader, Frame

__all__ = [
    "__version__",
    # Analyzer
    "OdometryAnalyzer",
    "AnalyzerState",
    "PositionListener",
    "QueuePositionListener",
    # Config
    "VOConfig",
    "load_config",
    # Camera
    "CameraIntrinsics",
    "CalibrationMissingError",
    "load_intrinsics",
    # Pipeline stages
    "FrameGate",
    "TrackingState",
    "FeatureExtractor",
    "FeatureSet",
    "CorrespondenceFinder",
    "CorrespondenceSet",
    "PoseRecoverer",
    "RecoveryFailure",
    "RecoveryResult",
    "RelativePose",
    "PoseComposer",
    # Pose
    "SE3",
    # I/O
    "DatasetReader",
    "Frame",
]
