"""
Data loader module for reading object points, camera parameters and images.

Object Point Format:
    One comma-separated triple per line, in the object's own frame:
        0,0,0
        100,0,0
        0,100,0
    Blank lines and lines starting with '#' are skipped. Any other line
    that is not exactly three numbers is rejected.

Camera Parameter Format:
    An OpenCV FileStorage document (.xml, .yml/.yaml or .json) with two
    matrix nodes:
        intrinsic   3x3 camera matrix
        distortion  4, 5 or 8 coefficients (k1, k2, p1, p2[, k3[, k4, k5, k6]])
"""

import cv2
import numpy as np
import re
from pathlib import Path
from typing import List, Sequence, Tuple
from dataclasses import dataclass
import logging

from .errors import InputNotFoundError, MalformedInputError, WriteFailureError

logger = logging.getLogger(__name__)

SUPPORTED_DISTORTION_SIZES = (4, 5, 8)

# Plain signed decimal, optionally with an exponent
_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class ObjectPoint:
    """A known point in the object's coordinate frame."""
    x: float
    y: float
    z: float

    def as_array(self) -> np.ndarray:
        """Return coordinates as numpy array."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)


@dataclass(frozen=True)
class ImagePoint:
    """A pixel location in the image (origin top-left, v down)."""
    u: float
    v: float

    def as_array(self) -> np.ndarray:
        """Return coordinates as numpy array."""
        return np.array([self.u, self.v], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class CameraParameters:
    """Intrinsic matrix and distortion coefficients of a calibrated camera."""
    intrinsic: np.ndarray  # 3x3
    distortion: np.ndarray  # flat, 4/5/8 coefficients


def object_points_array(points: Sequence[ObjectPoint]) -> np.ndarray:
    """Stack object points into an Nx3 float64 array."""
    return np.array([[p.x, p.y, p.z] for p in points], dtype=np.float64).reshape(-1, 3)


def image_points_array(points: Sequence[ImagePoint]) -> np.ndarray:
    """Stack image points into an Nx2 float64 array."""
    return np.array([[p.u, p.v] for p in points], dtype=np.float64).reshape(-1, 2)


def _parse_numeric_lines(path: Path, expected: int, kind: str) -> List[Tuple[float, ...]]:
    """Parse comma-separated numeric rows with exactly `expected` fields."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            lines = f.readlines()
    except UnicodeDecodeError as e:
        raise MalformedInputError(f"{path}: not valid UTF-8 text") from e

    rows = []
    for line_no, line in enumerate(lines, start=1):
        text = line.strip()
        if not text or text.startswith('#'):
            continue
        fields = [v.strip() for v in text.split(',')]
        if len(fields) != expected:
            raise MalformedInputError(
                f"{path}:{line_no}: expected {expected} comma-separated values "
                f"for {kind}, got {text!r}"
            )
        if not all(_NUMBER.fullmatch(v) for v in fields):
            raise MalformedInputError(f"{path}:{line_no}: non-numeric {kind} {text!r}")
        values = tuple(float(v) for v in fields)
        if not all(np.isfinite(values)):
            raise MalformedInputError(f"{path}:{line_no}: non-finite {kind} {text!r}")
        rows.append(values)

    if not rows:
        raise MalformedInputError(f"No {kind}s found in {path}")
    return rows


def load_object_points(path: str) -> Tuple[ObjectPoint, ...]:
    """
    Load object-frame points from a comma-separated text file.

    Args:
        path: Path to the object point file

    Returns:
        Object points in line order
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise InputNotFoundError(f"Object point file not found: {path}")

    rows = _parse_numeric_lines(file_path, 3, 'object point')
    points = tuple(ObjectPoint(x, y, z) for x, y, z in rows)

    logger.info(f"Loaded {len(points)} object points from {path}")
    return points


def load_image_points(path: str) -> Tuple[ImagePoint, ...]:
    """
    Load pre-marked pixel coordinates ("u,v" per line) from a text file.

    Args:
        path: Path to the image point file

    Returns:
        Image points in line order
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise InputNotFoundError(f"Image point file not found: {path}")

    rows = _parse_numeric_lines(file_path, 2, 'image point')
    points = tuple(ImagePoint(u, v) for u, v in rows)

    logger.info(f"Loaded {len(points)} image points from {path}")
    return points


def _read_matrix(fs: "cv2.FileStorage", name: str, path: str) -> np.ndarray:
    node = fs.getNode(name)
    if node.empty() or node.isNone():
        raise MalformedInputError(f"Field '{name}' missing from {path}")
    mat = node.mat()
    if mat is None or mat.size == 0:
        raise MalformedInputError(f"Field '{name}' in {path} is not a non-empty matrix")
    return np.asarray(mat, dtype=np.float64)


def load_camera_parameters(path: str) -> CameraParameters:
    """
    Load the intrinsic matrix and distortion coefficients.

    Args:
        path: Path to an OpenCV FileStorage document

    Returns:
        CameraParameters
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise InputNotFoundError(f"Camera parameter file not found: {path}")

    try:
        fs = cv2.FileStorage(str(file_path), cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        raise MalformedInputError(f"Cannot parse camera parameter file {path}: {e}") from e
    if not fs.isOpened():
        raise MalformedInputError(f"Cannot open camera parameter file: {path}")

    try:
        intrinsic = _read_matrix(fs, 'intrinsic', path)
        distortion = _read_matrix(fs, 'distortion', path).ravel()
    finally:
        fs.release()

    if intrinsic.shape != (3, 3):
        raise MalformedInputError(
            f"Intrinsic matrix in {path} must be 3x3, got {intrinsic.shape}"
        )
    if distortion.size not in SUPPORTED_DISTORTION_SIZES:
        raise MalformedInputError(
            f"Distortion in {path} must have {SUPPORTED_DISTORTION_SIZES} coefficients, "
            f"got {distortion.size}"
        )
    if not (np.all(np.isfinite(intrinsic)) and np.all(np.isfinite(distortion))):
        raise MalformedInputError(f"Non-finite camera parameters in {path}")

    logger.info(f"Loaded camera parameters from {path}")
    logger.debug(f"Intrinsic matrix:\n{intrinsic}")
    logger.debug(f"Distortion coefficients: {distortion}")
    return CameraParameters(intrinsic=intrinsic, distortion=distortion)


def save_camera_parameters(params: CameraParameters, path: str) -> None:
    """Write camera parameters in the format read by load_camera_parameters."""
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    except cv2.error as e:
        raise WriteFailureError(f"Failed to open {path} for writing: {e}") from e
    if not fs.isOpened():
        raise WriteFailureError(f"Failed to open {path} for writing")

    try:
        fs.write('intrinsic', np.asarray(params.intrinsic, dtype=np.float64))
        fs.write('distortion', np.asarray(params.distortion, dtype=np.float64).reshape(1, -1))
    except cv2.error as e:
        raise WriteFailureError(f"Failed to write camera parameters to {path}: {e}") from e
    finally:
        fs.release()
    logger.info(f"Camera parameters saved to {path}")


def load_image(path: str) -> np.ndarray:
    """
    Load the image of the object as a BGR array.

    Args:
        path: Path to an image file readable by OpenCV

    Returns:
        HxWx3 uint8 array
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise InputNotFoundError(f"Image file not found: {path}")

    image = cv2.imread(str(file_path), cv2.IMREAD_COLOR)
    if image is None:
        raise MalformedInputError(f"Failed to decode image: {path}")

    logger.info(f"Loaded image {path} ({image.shape[1]}x{image.shape[0]})")
    return image
