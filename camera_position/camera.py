"""
Camera model module for projecting object points to image coordinates.

Implements the pinhole camera model with OpenCV-convention lens distortion.

Coordinate System:
    - Object frame: the frame of the object point file
    - Camera frame: X-right, Y-down, Z-forward (looking along +Z)
    - Image frame: u-right, v-down (origin at top-left corner)

Projection Model:
    1. Rigid transform: X_cam = R @ X_obj + t
    2. Perspective projection: x' = X/Z, y' = Y/Z
    3. Distortion: apply radial and tangential distortion
    4. Pixel mapping: u = fx*x'' + cx, v = fy*y'' + cy
"""

import numpy as np
from typing import Tuple
from scipy.spatial.transform import Rotation
import logging

from .data_loader import CameraParameters

logger = logging.getLogger(__name__)


def rotation_matrix_from_vector(rvec: np.ndarray) -> np.ndarray:
    """Convert an axis-angle (Rodrigues) vector to a 3x3 rotation matrix."""
    return Rotation.from_rotvec(np.asarray(rvec, dtype=np.float64).ravel()).as_matrix()


class CameraModel:
    """
    Camera projection model implementing pinhole projection with distortion.

    The distortion model follows OpenCV conventions, with the coefficient
    vector ordered (k1, k2, p1, p2[, k3[, k4, k5, k6]]):
        - Radial distortion: k1, k2, k3 (numerator), k4, k5, k6 (denominator)
        - Tangential distortion: p1, p2

    Distortion equations (applied to normalized coordinates x', y'):
        r² = x'² + y'²
        radial = (1 + k1*r² + k2*r⁴ + k3*r⁶) / (1 + k4*r² + k5*r⁴ + k6*r⁶)
        x'' = x'*radial + 2*p1*x'*y' + p2*(r² + 2*x'²)
        y'' = y'*radial + p1*(r² + 2*y'²) + 2*p2*x'*y'
    """

    def __init__(self, params: CameraParameters):
        """
        Initialize camera model with intrinsic parameters.

        Args:
            params: Intrinsic matrix and distortion coefficients
        """
        self.K = np.asarray(params.intrinsic, dtype=np.float64).reshape(3, 3)
        self.distortion = np.asarray(params.distortion, dtype=np.float64).ravel()

        self.fx = self.K[0, 0]
        self.fy = self.K[1, 1]
        self.cx = self.K[0, 2]
        self.cy = self.K[1, 2]

        coeffs = np.zeros(8)
        coeffs[:self.distortion.size] = self.distortion
        self.k1, self.k2, self.p1, self.p2, self.k3, self.k4, self.k5, self.k6 = coeffs

        self.has_distortion = not np.allclose(self.distortion, 0)

        logger.debug(f"Camera model initialized: fx={self.fx}, fy={self.fy}")
        logger.debug(f"Principal point: ({self.cx}, {self.cy})")
        logger.debug(f"Distortion enabled: {self.has_distortion}")

    def to_camera_frame(
        self,
        object_points: np.ndarray,
        rvec: np.ndarray,
        tvec: np.ndarray,
    ) -> np.ndarray:
        """
        Transform Nx3 object points into the camera frame.

        Args:
            object_points: Nx3 object-frame coordinates
            rvec: Rotation vector (axis-angle)
            tvec: Translation vector

        Returns:
            Nx3 camera-frame coordinates
        """
        R = rotation_matrix_from_vector(rvec)
        t = np.asarray(tvec, dtype=np.float64).ravel()
        return np.asarray(object_points, dtype=np.float64).reshape(-1, 3) @ R.T + t

    def project_points(
        self,
        object_points: np.ndarray,
        rvec: np.ndarray,
        tvec: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Project object points through a pose to pixel coordinates.

        Args:
            object_points: Nx3 object-frame coordinates
            rvec: Rotation vector (axis-angle)
            tvec: Translation vector

        Returns:
            Tuple of:
                - Nx2 array of (u, v) pixel coordinates
                - N-element boolean array, True where the point is in front of the camera
        """
        points_camera = self.to_camera_frame(object_points, rvec, tvec)
        Z = points_camera[:, 2]
        in_front = Z > 0

        # Points on the image plane are projected as if at unit depth.
        safe_Z = np.where(Z == 0, 1.0, Z)
        x_norm = points_camera[:, 0] / safe_Z
        y_norm = points_camera[:, 1] / safe_Z

        if self.has_distortion:
            x_dist, y_dist = self._apply_distortion(x_norm, y_norm)
        else:
            x_dist, y_dist = x_norm, y_norm

        u = self.fx * x_dist + self.cx
        v = self.fy * y_dist + self.cy

        return np.column_stack([u, v]), in_front

    def _apply_distortion(
        self, x_norm: np.ndarray, y_norm: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Apply lens distortion to normalized coordinates.

        Args:
            x_norm: Normalized x coordinates (X/Z)
            y_norm: Normalized y coordinates (Y/Z)

        Returns:
            Distorted (x, y) normalized coordinates
        """
        r2 = x_norm ** 2 + y_norm ** 2
        r4 = r2 ** 2
        r6 = r2 ** 3

        radial = (1 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6) / (
            1 + self.k4 * r2 + self.k5 * r4 + self.k6 * r6
        )

        x_tangential = 2 * self.p1 * x_norm * y_norm + self.p2 * (r2 + 2 * x_norm ** 2)
        y_tangential = self.p1 * (r2 + 2 * y_norm ** 2) + 2 * self.p2 * x_norm * y_norm

        x_dist = x_norm * radial + x_tangential
        y_dist = y_norm * radial + y_tangential

        return x_dist, y_dist

    def reprojection_residuals(
        self,
        object_points: np.ndarray,
        image_points: np.ndarray,
        rvec: np.ndarray,
        tvec: np.ndarray,
    ) -> np.ndarray:
        """Flat (u, v) differences between projected and observed points."""
        projected, _ = self.project_points(object_points, rvec, tvec)
        return (projected - np.asarray(image_points, dtype=np.float64).reshape(-1, 2)).ravel()

    def compute_reprojection_errors(
        self,
        object_points: np.ndarray,
        image_points: np.ndarray,
        rvec: np.ndarray,
        tvec: np.ndarray,
    ) -> np.ndarray:
        """
        Compute the reprojection error of every correspondence.

        Returns:
            N-element array of Euclidean distances in pixels
        """
        residuals = self.reprojection_residuals(object_points, image_points, rvec, tvec)
        return np.linalg.norm(residuals.reshape(-1, 2), axis=1)
