"""
Reprojection evaluator module.

Projects the object points through the estimated pose, compares them with
the manually marked points and overlays both on the image:
    - marked points in `marked_color` (red by default)
    - reprojected points in `reprojected_color` (blue by default)

The report is diagnostic only and is never written to the pose file.
"""

import numpy as np
from typing import List, Optional, Sequence
from dataclasses import dataclass, field
import logging

from .camera import CameraModel
from .config import DisplaySettings
from .data_loader import ImagePoint, ObjectPoint, image_points_array, object_points_array
from .display import Display, draw_cross, wait_for_operator
from .solver import Pose

logger = logging.getLogger(__name__)


@dataclass
class ReprojectionReport:
    """Comparison of marked and reprojected image points."""
    reprojected_points: List[ImagePoint] = field(default_factory=list)
    errors: List[float] = field(default_factory=list)  # Per-point distance in pixels
    in_front: List[bool] = field(default_factory=list)

    # Error statistics (pixels)
    mean_error: float = 0.0
    std_error: float = 0.0
    min_error: float = 0.0
    max_error: float = 0.0
    median_error: float = 0.0
    rmse: float = 0.0

    # Thresholded results
    threshold: float = 2.0
    points_within_threshold: int = 0
    points_outside_threshold: int = 0


class ReprojectionEvaluator:
    """
    Reprojects object points and shows them next to the marked points.

    Example usage:
        evaluator = ReprojectionEvaluator(display, settings)
        report = evaluator.evaluate(image, object_points, image_points, pose, camera)
    """

    def __init__(
        self,
        display: Optional[Display] = None,
        settings: Optional[DisplaySettings] = None,
        window_name: str = "reprojection",
        threshold: float = 2.0,
    ):
        """
        Initialize the evaluator.

        Args:
            display: Surface for the overlay; None computes the report only
            settings: Marker appearance and polling interval
            window_name: Window used for the overlay
            threshold: Error in pixels counted as acceptable in the report
        """
        self.display = display
        self.settings = settings or DisplaySettings()
        self.window_name = window_name
        self.threshold = threshold

    def evaluate(
        self,
        image: Optional[np.ndarray],
        object_points: Sequence[ObjectPoint],
        image_points: Sequence[ImagePoint],
        pose: Pose,
        camera: CameraModel,
    ) -> ReprojectionReport:
        """
        Reproject, compute statistics and, with a display, wait for the operator.

        Returns:
            ReprojectionReport
        """
        obj = object_points_array(object_points)
        marked = image_points_array(image_points)

        projected, in_front = camera.project_points(obj, pose.rotation, pose.translation)
        errors = np.linalg.norm(projected - marked, axis=1)

        report = ReprojectionReport(threshold=self.threshold)
        report.reprojected_points = [ImagePoint(float(u), float(v)) for u, v in projected]
        report.errors = [float(e) for e in errors]
        report.in_front = [bool(f) for f in in_front]
        self._compute_statistics(report, errors)

        logger.info(f"Reprojected image points:\n{projected}")
        logger.info(
            f"Reprojection error: mean={report.mean_error:.3f} max={report.max_error:.3f} "
            f"rmse={report.rmse:.3f} pixels"
        )

        if self.display is not None and image is not None:
            self._review(image, marked, projected)

        return report

    def _compute_statistics(self, report: ReprojectionReport, errors: np.ndarray) -> None:
        """Compute statistics from per-point errors."""
        if errors.size == 0:
            return

        report.mean_error = float(np.mean(errors))
        report.std_error = float(np.std(errors))
        report.min_error = float(np.min(errors))
        report.max_error = float(np.max(errors))
        report.median_error = float(np.median(errors))
        report.rmse = float(np.sqrt(np.mean(errors ** 2)))

        within_threshold = errors <= report.threshold
        report.points_within_threshold = int(np.sum(within_threshold))
        report.points_outside_threshold = len(errors) - report.points_within_threshold

    def render(
        self, image: np.ndarray, marked: np.ndarray, projected: np.ndarray
    ) -> np.ndarray:
        """Return a copy of image with both marker sets drawn."""
        overlay = image.copy()
        s = self.settings
        for point in marked:
            draw_cross(overlay, point, s.marked_color, s.marker_length, s.marker_thickness)
        for point in projected:
            if np.all(np.isfinite(point)):
                draw_cross(overlay, point, s.reprojected_color, s.marker_length, s.marker_thickness)
        return overlay

    def _review(self, image: np.ndarray, marked: np.ndarray, projected: np.ndarray) -> None:
        overlay = self.render(image, marked, projected)
        logger.info("Red: marked points, blue: reprojected points. Press any key to continue")
        self.display.open(self.window_name, overlay)
        try:
            wait_for_operator(self.display, self.window_name, self.settings.poll_interval_ms)
        finally:
            self.display.close(self.window_name)
