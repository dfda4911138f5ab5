"""
Camera Position Estimation Package

Estimates a camera's extrinsic pose relative to an object of known
geometry from a single image, the object's 3D points and the camera's
intrinsic calibration.

Pipeline:
    object points + camera parameters → marked image points → PnP pose
    → reprojection review → pose file (rotation, translation)

Conventions:
    - Image point i corresponds to object point i (positional matching)
    - Rotation is an axis-angle (Rodrigues) vector, object to camera
    - Translation is in the units of the object points

Supported Formats:
    - Object points: text, one "x,y,z" per line
    - Camera parameters and pose: OpenCV FileStorage (XML, YAML, JSON)
"""

from .errors import (
    CameraPositionError,
    InputNotFoundError,
    MalformedInputError,
    InsufficientCorrespondencesError,
    DegenerateGeometryError,
    WriteFailureError,
)
from .config import PipelineConfig, DisplaySettings, SolverSettings, OutputSettings
from .data_loader import (
    ObjectPoint,
    ImagePoint,
    CameraParameters,
    load_object_points,
    load_image_points,
    load_camera_parameters,
    save_camera_parameters,
    load_image,
)
from .camera import CameraModel
from .collector import (
    CollectorState,
    CollectionContext,
    CorrespondenceSource,
    InteractiveCorrespondenceSource,
    ScriptedCorrespondenceSource,
    FileCorrespondenceSource,
)
from .solver import Pose, PoseSolution, PoseSolver
from .evaluator import ReprojectionEvaluator, ReprojectionReport
from .writer import write_camera_position, read_camera_position
from .estimator import CameraPositionEstimator, EstimationResult, run_estimation

__version__ = "1.0.0"
__all__ = [
    "CameraPositionError",
    "InputNotFoundError",
    "MalformedInputError",
    "InsufficientCorrespondencesError",
    "DegenerateGeometryError",
    "WriteFailureError",
    "PipelineConfig",
    "DisplaySettings",
    "SolverSettings",
    "OutputSettings",
    "ObjectPoint",
    "ImagePoint",
    "CameraParameters",
    "load_object_points",
    "load_image_points",
    "load_camera_parameters",
    "save_camera_parameters",
    "load_image",
    "CameraModel",
    "CollectorState",
    "CollectionContext",
    "CorrespondenceSource",
    "InteractiveCorrespondenceSource",
    "ScriptedCorrespondenceSource",
    "FileCorrespondenceSource",
    "Pose",
    "PoseSolution",
    "PoseSolver",
    "ReprojectionEvaluator",
    "ReprojectionReport",
    "write_camera_position",
    "read_camera_position",
    "CameraPositionEstimator",
    "EstimationResult",
    "run_estimation",
]
