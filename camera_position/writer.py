"""
Pose file output.

The pose is stored as an OpenCV FileStorage document with two 3x1
matrices, `rotation` (axis-angle vector) and `translation`.
"""

import cv2
import numpy as np
from pathlib import Path
import logging

from .errors import InputNotFoundError, MalformedInputError, WriteFailureError
from .solver import Pose

logger = logging.getLogger(__name__)


def write_camera_position(pose: Pose, path: str) -> None:
    """
    Write the camera pose.

    Args:
        pose: Estimated pose
        path: Destination; the extension selects XML, YAML or JSON

    Raises:
        WriteFailureError: if the destination cannot be opened for writing
    """
    try:
        fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_WRITE)
    except cv2.error as e:
        raise WriteFailureError(f"Failed to open {path} for writing: {e}") from e
    if not fs.isOpened():
        raise WriteFailureError(f"Failed to open {path} for writing")

    try:
        fs.write('rotation', pose.rotation.reshape(3, 1))
        fs.write('translation', pose.translation.reshape(3, 1))
    except cv2.error as e:
        raise WriteFailureError(f"Failed to write camera position to {path}: {e}") from e
    finally:
        fs.release()

    logger.info(f"Camera position written to {path}")


def read_camera_position(path: str) -> Pose:
    """
    Read a pose written by write_camera_position.

    Args:
        path: Pose file

    Returns:
        Pose
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise InputNotFoundError(f"Camera position file not found: {path}")

    try:
        fs = cv2.FileStorage(str(file_path), cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        raise MalformedInputError(f"Cannot parse camera position file {path}: {e}") from e

    try:
        rotation = fs.getNode('rotation').mat()
        translation = fs.getNode('translation').mat()
    finally:
        fs.release()

    if rotation is None or translation is None or rotation.size != 3 or translation.size != 3:
        raise MalformedInputError(f"{path} must hold 3-element 'rotation' and 'translation'")

    return Pose(np.asarray(rotation, dtype=np.float64), np.asarray(translation, dtype=np.float64))
