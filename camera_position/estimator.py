"""
Camera position estimation pipeline.

This is the main module that orchestrates the workflow:
    1. Load object points and camera parameters
    2. Collect the matching image points (interactive or scripted)
    3. Solve the camera pose (PnP)
    4. Reproject and review the result
    5. Write the pose file

Every stage raises on failure and nothing is written unless all stages
before the writer succeed.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
import logging

from .camera import CameraModel
from .collector import CorrespondenceSource, InteractiveCorrespondenceSource
from .config import PipelineConfig
from .data_loader import (
    CameraParameters,
    ImagePoint,
    ObjectPoint,
    image_points_array,
    load_camera_parameters,
    load_image,
    load_object_points,
)
from .display import Display, OpenCVDisplay
from .evaluator import ReprojectionEvaluator, ReprojectionReport
from .solver import PoseSolution, PoseSolver
from .writer import write_camera_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class EstimationResult:
    """Everything produced by one pipeline run."""
    object_points: Tuple[ObjectPoint, ...]
    image_points: Tuple[ImagePoint, ...]
    camera: CameraParameters
    solution: PoseSolution
    report: ReprojectionReport
    output_path: str


class CameraPositionEstimator:
    """
    Runs the estimation pipeline once.

    Example usage:
        estimator = CameraPositionEstimator(PipelineConfig())
        result = estimator.run("object_points.txt", "image.png", "camera.xml")
        print(result.solution.pose.camera_center())
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        display: Optional[Display] = None,
        source: Optional[CorrespondenceSource] = None,
    ):
        """
        Initialize the estimator.

        Args:
            config: Pipeline configuration
            display: Display surface; an OpenCV window is created when needed and omitted
            source: Correspondence source; defaults to interactive clicking on the image
        """
        self.config = config or PipelineConfig()
        self._display = display
        self.source = source
        self.solver = PoseSolver(self.config.solver)

    @property
    def display(self) -> Display:
        if self._display is None:
            self._display = OpenCVDisplay()
        return self._display

    def _window_name(self, image_path: str) -> str:
        return self.config.display.window_name or image_path

    def run(
        self,
        object_points_path: str,
        image_path: str,
        camera_params_path: str,
    ) -> EstimationResult:
        """
        Run all stages and write the pose file.

        Args:
            object_points_path: Text file with one "x,y,z" per line
            image_path: Image of the object
            camera_params_path: FileStorage document with intrinsic and distortion

        Returns:
            EstimationResult
        """
        object_points = load_object_points(object_points_path)
        params = load_camera_parameters(camera_params_path)
        camera = CameraModel(params)
        image = load_image(image_path)

        source = self.source or InteractiveCorrespondenceSource(
            image,
            self.display,
            self._window_name(image_path),
            self.config.display,
        )
        image_points = source.collect(len(object_points))
        logger.info(f"Collected image points:\n{image_points_array(image_points)}")

        solution = self.solver.solve(object_points, image_points, camera)

        logger.debug(
            f"Initial {solution.method} estimate: rvec={solution.initial_pose.rotation}, "
            f"tvec={solution.initial_pose.translation}; refined in {solution.evaluations} evaluations"
        )

        center = solution.pose.camera_center()
        logger.info(f"Camera centre in object frame: {center}")

        evaluator = ReprojectionEvaluator(
            display=self.display if self.config.display.review else None,
            settings=self.config.display,
            window_name=self._window_name(image_path),
            threshold=self.config.solver.reprojection_threshold,
        )
        report = evaluator.evaluate(image, object_points, image_points, solution.pose, camera)

        output_path = self.config.output.path
        write_camera_position(solution.pose, output_path)

        return EstimationResult(
            object_points=object_points,
            image_points=image_points,
            camera=params,
            solution=solution,
            report=report,
            output_path=output_path,
        )


def run_estimation(
    object_points_path: str,
    image_path: str,
    camera_params_path: str,
    config: Optional[PipelineConfig] = None,
    source: Optional[CorrespondenceSource] = None,
    display: Optional[Display] = None,
) -> EstimationResult:
    """
    Convenience function to run the pipeline once.

    Args:
        object_points_path: Object point file
        image_path: Image file
        camera_params_path: Camera parameter file
        config: Optional configuration (defaults if omitted)
        source: Optional correspondence source (interactive if omitted)
        display: Optional display surface

    Returns:
        EstimationResult
    """
    estimator = CameraPositionEstimator(config, display=display, source=source)
    return estimator.run(object_points_path, image_path, camera_params_path)
