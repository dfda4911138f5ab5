"""
Pose solver module.

Estimates the camera pose from N >= 4 object/image correspondences:
    1. Reject configurations that cannot constrain a pose
    2. Closed-form initial estimates (OpenCV SQPnP, EPnP, DLT or IPPE)
    3. Levenberg-Marquardt refinement of the reprojection error (scipy)
    4. Reject non-finite, rank-deficient or behind-the-camera solutions

The pose maps object coordinates into the camera frame:
    X_cam = R(rotation) @ X_obj + translation
"""

import cv2
import numpy as np
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass
from scipy.optimize import least_squares
from scipy.spatial.transform import Rotation
import logging

from .camera import CameraModel, rotation_matrix_from_vector
from .config import SolverSettings
from .data_loader import ImagePoint, ObjectPoint, image_points_array, object_points_array
from .errors import DegenerateGeometryError, InsufficientCorrespondencesError

logger = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4
POSE_PARAMETERS = 6


@dataclass(frozen=True, eq=False)
class Pose:
    """
    Camera pose relative to the object.

    Attributes:
        rotation: Axis-angle (Rodrigues) rotation vector, object to camera
        translation: Translation vector in object units, object to camera
    """
    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'rotation', np.asarray(self.rotation, dtype=np.float64).reshape(3))
        object.__setattr__(self, 'translation', np.asarray(self.translation, dtype=np.float64).reshape(3))

    def rotation_matrix(self) -> np.ndarray:
        return rotation_matrix_from_vector(self.rotation)

    def camera_center(self) -> np.ndarray:
        """Camera position in the object frame: -R^T t."""
        return -self.rotation_matrix().T @ self.translation

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.rotation)) and np.all(np.isfinite(self.translation)))


@dataclass(frozen=True, eq=False)
class PoseSolution:
    """Result of a pose solve."""
    pose: Pose
    initial_pose: Pose
    method: str  # Closed-form method that seeded the refinement
    errors: np.ndarray  # Per-point reprojection error in pixels
    rms_error: float
    evaluations: int  # Residual evaluations during refinement

    @property
    def max_error(self) -> float:
        return float(np.max(self.errors))


def _initial_methods(num_points: int, planar: bool) -> List[Tuple[str, int]]:
    methods = []
    if planar:
        methods.append(('IPPE', cv2.SOLVEPNP_IPPE))
    if hasattr(cv2, 'SOLVEPNP_SQPNP'):
        methods.append(('SQPNP', cv2.SOLVEPNP_SQPNP))
    methods.append(('EPNP', cv2.SOLVEPNP_EPNP))
    if not planar and num_points >= 6:
        methods.append(('DLT', cv2.SOLVEPNP_ITERATIVE))
    return methods


class PoseSolver:
    """
    Perspective-n-point solver with closed-form initialisation and LM refinement.

    Example usage:
        solver = PoseSolver()
        solution = solver.solve(object_points, image_points, camera)
        print(solution.pose.rotation, solution.pose.translation)
    """

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()

    def solve(
        self,
        object_points: Sequence[ObjectPoint],
        image_points: Sequence[ImagePoint],
        camera: CameraModel,
    ) -> PoseSolution:
        """
        Estimate the camera pose.

        Args:
            object_points: Object-frame points
            image_points: Pixel observations, image_points[i] <-> object_points[i]
            camera: Intrinsics and distortion

        Returns:
            PoseSolution

        Raises:
            InsufficientCorrespondencesError: if the two sequences differ in length
            DegenerateGeometryError: if the configuration cannot determine a pose
        """
        if len(object_points) != len(image_points):
            raise InsufficientCorrespondencesError(
                f"{len(object_points)} object points but {len(image_points)} image points"
            )

        obj = object_points_array(object_points)
        img = image_points_array(image_points)
        planar = self._check_configuration(obj, img)

        candidates = []
        for name, flag in _initial_methods(len(obj), planar):
            initial = self._initial_estimate(obj, img, camera, name, flag)
            if initial is None:
                continue
            refined = self._refine(obj, img, camera, initial, name)
            if refined is not None:
                candidates.append(refined)

        if not candidates:
            raise DegenerateGeometryError(
                "No valid pose found: the correspondences do not constrain the camera"
            )

        solution = min(candidates, key=lambda s: s.rms_error)

        logger.info(f"Solved pose from {len(obj)} correspondences ({solution.method} + LM)")
        logger.info(f"Rotation vector: {solution.pose.rotation}")
        logger.info(f"Translation vector: {solution.pose.translation}")
        logger.info(f"RMS reprojection error: {solution.rms_error:.4f} pixels")
        logger.debug(f"Per-point errors: {solution.errors}")

        if solution.rms_error > self.settings.reprojection_threshold:
            logger.warning(
                f"RMS reprojection error {solution.rms_error:.3f} px exceeds "
                f"{self.settings.reprojection_threshold} px; check the point order"
            )
        return solution

    def _check_configuration(self, obj: np.ndarray, img: np.ndarray) -> bool:
        """
        Reject point sets that cannot determine a pose.

        Returns:
            True if the object points are coplanar (and planar targets are allowed)
        """
        n = len(obj)
        tol = self.settings.degeneracy_tolerance

        if n < MIN_CORRESPONDENCES:
            raise DegenerateGeometryError(
                f"At least {MIN_CORRESPONDENCES} correspondences are required, got {n}"
            )
        if len(np.unique(obj, axis=0)) < n:
            raise DegenerateGeometryError("Object points contain duplicates")

        s_obj = np.linalg.svd(obj - obj.mean(axis=0), compute_uv=False)
        if s_obj[1] <= tol * s_obj[0]:
            raise DegenerateGeometryError("Object points are collinear")

        planar = s_obj[2] <= tol * s_obj[0]
        if planar and not self.settings.allow_planar:
            raise DegenerateGeometryError(
                "Object points are coplanar; enable solver.allow_planar for planar targets"
            )

        s_img = np.linalg.svd(img - img.mean(axis=0), compute_uv=False)
        if s_img[0] == 0 or s_img[1] <= tol * s_img[0]:
            raise DegenerateGeometryError("Image points are collinear")

        return bool(planar)

    def _initial_estimate(
        self,
        obj: np.ndarray,
        img: np.ndarray,
        camera: CameraModel,
        name: str,
        flag: int,
    ) -> Optional[Pose]:
        try:
            ok, rvec, tvec = cv2.solvePnP(
                obj.reshape(-1, 1, 3),
                img.reshape(-1, 1, 2),
                camera.K,
                camera.distortion,
                flags=flag,
            )
        except cv2.error as e:
            logger.debug(f"{name} initialisation failed: {e}")
            return None

        if not ok or rvec is None or tvec is None:
            logger.debug(f"{name} initialisation returned no solution")
            return None

        pose = Pose(rvec, tvec)
        if not pose.is_finite():
            logger.debug(f"{name} initialisation is not finite")
            return None
        return pose

    def _refine(
        self,
        obj: np.ndarray,
        img: np.ndarray,
        camera: CameraModel,
        initial: Pose,
        method: str,
    ) -> Optional[PoseSolution]:
        def residuals(params):
            return camera.reprojection_residuals(obj, img, params[:3], params[3:])

        x0 = np.concatenate([initial.rotation, initial.translation])
        tol = self.settings.tolerance
        try:
            result = least_squares(
                residuals,
                x0,
                method='lm',
                ftol=tol,
                xtol=tol,
                gtol=tol,
                max_nfev=self.settings.max_iterations,
            )
        except ValueError as e:
            # Raised for non-finite residuals at the initial estimate
            logger.debug(f"{method}: refinement rejected the initial estimate: {e}")
            return None

        pose = Pose(Rotation.from_rotvec(result.x[:3]).as_rotvec(), result.x[3:])
        if not pose.is_finite():
            logger.debug(f"{method}: refinement diverged")
            return None

        rank = np.linalg.matrix_rank(result.jac)
        if rank < POSE_PARAMETERS:
            logger.debug(f"{method}: Jacobian rank {rank} < {POSE_PARAMETERS}")
            return None

        depths = camera.to_camera_frame(obj, pose.rotation, pose.translation)[:, 2]
        if np.any(depths <= 0):
            logger.debug(f"{method}: {int(np.sum(depths <= 0))} points behind the camera")
            return None

        errors = camera.compute_reprojection_errors(obj, img, pose.rotation, pose.translation)
        rms = float(np.sqrt(np.mean(errors ** 2)))
        logger.debug(f"{method}: rms={rms:.6f} px after {result.nfev} evaluations")

        return PoseSolution(
            pose=pose,
            initial_pose=initial,
            method=method,
            errors=errors,
            rms_error=rms,
            evaluations=int(result.nfev),
        )
