"""
Configuration module for camera position estimation.

Built-in defaults can be overridden from a YAML file.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple
import logging

from .errors import InputNotFoundError, MalformedInputError

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_PATH = "camera_position.xml"


@dataclass
class OutputSettings:
    """Where the estimated pose is written."""
    path: str = DEFAULT_OUTPUT_PATH


@dataclass
class DisplaySettings:
    """Window and marker appearance for the interactive stages."""
    window_name: Optional[str] = None  # None: use the image path
    marker_length: int = 7  # Half-length of a cross arm in pixels
    marker_thickness: int = 2
    marked_color: Tuple[int, int, int] = (0, 0, 255)  # BGR, clicked points
    reprojected_color: Tuple[int, int, int] = (255, 0, 0)  # BGR, reprojected points
    poll_interval_ms: int = 50
    review: bool = True  # Show the reprojection overlay and wait for the operator


@dataclass
class SolverSettings:
    """
    Pose solver settings.

    Attributes:
        allow_planar: Accept coplanar object points (solved with IPPE)
        degeneracy_tolerance: Singular value ratio below which a point set
            counts as collinear or coplanar
        max_iterations: Maximum residual evaluations in the LM refinement
        tolerance: Convergence tolerance for the LM refinement
        reprojection_threshold: RMS error in pixels above which a warning is logged
    """
    allow_planar: bool = False
    degeneracy_tolerance: float = 1e-3
    max_iterations: int = 200
    tolerance: float = 1e-12
    reprojection_threshold: float = 2.0


@dataclass
class PipelineConfig:
    """Main configuration for a camera position estimation run."""
    output: OutputSettings = field(default_factory=OutputSettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)
    solver: SolverSettings = field(default_factory=SolverSettings)

    @classmethod
    def from_yaml(cls, config_path: str) -> "PipelineConfig":
        """
        Load configuration from a YAML file.

        Missing sections and keys keep their defaults.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            PipelineConfig with loaded parameters

        Example YAML structure:
            output:
              path: camera_position.xml
            display:
              marker_length: 7
              marker_thickness: 2
              marked_color: [0, 0, 255]
              reprojected_color: [255, 0, 0]
              review: true
            solver:
              allow_planar: false
              reprojection_threshold: 2.0
        """
        path = Path(config_path)
        if not path.exists():
            raise InputNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'rb') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise MalformedInputError(f"Invalid YAML in {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise MalformedInputError(f"Configuration must be a mapping: {config_path}")

        logger.info(f"Loading configuration from {config_path}")

        out_data = _section(data, 'output', config_path)
        output = OutputSettings(
            path=str(out_data.get('path', DEFAULT_OUTPUT_PATH)),
        )

        disp_data = _section(data, 'display', config_path)
        defaults = DisplaySettings()
        display = DisplaySettings(
            window_name=disp_data.get('window_name'),
            marker_length=_number(disp_data, 'display', 'marker_length', defaults.marker_length, int),
            marker_thickness=_number(
                disp_data, 'display', 'marker_thickness', defaults.marker_thickness, int
            ),
            marked_color=_parse_color(disp_data.get('marked_color', defaults.marked_color)),
            reprojected_color=_parse_color(
                disp_data.get('reprojected_color', defaults.reprojected_color)
            ),
            poll_interval_ms=_number(
                disp_data, 'display', 'poll_interval_ms', defaults.poll_interval_ms, int
            ),
            review=bool(disp_data.get('review', defaults.review)),
        )

        solver_data = _section(data, 'solver', config_path)
        solver_defaults = SolverSettings()
        solver = SolverSettings(
            allow_planar=bool(solver_data.get('allow_planar', solver_defaults.allow_planar)),
            degeneracy_tolerance=_number(
                solver_data, 'solver', 'degeneracy_tolerance',
                solver_defaults.degeneracy_tolerance, float,
            ),
            max_iterations=_number(
                solver_data, 'solver', 'max_iterations', solver_defaults.max_iterations, int
            ),
            tolerance=_number(solver_data, 'solver', 'tolerance', solver_defaults.tolerance, float),
            reprojection_threshold=_number(
                solver_data, 'solver', 'reprojection_threshold',
                solver_defaults.reprojection_threshold, float,
            ),
        )

        return cls(output=output, display=display, solver=solver)

    def to_yaml(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        data = {
            'output': {
                'path': self.output.path,
            },
            'display': {
                'window_name': self.display.window_name,
                'marker_length': self.display.marker_length,
                'marker_thickness': self.display.marker_thickness,
                'marked_color': list(self.display.marked_color),
                'reprojected_color': list(self.display.reprojected_color),
                'poll_interval_ms': self.display.poll_interval_ms,
                'review': self.display.review,
            },
            'solver': {
                'allow_planar': self.solver.allow_planar,
                'degeneracy_tolerance': self.solver.degeneracy_tolerance,
                'max_iterations': self.solver.max_iterations,
                'tolerance': self.solver.tolerance,
                'reprojection_threshold': self.solver.reprojection_threshold,
            },
        }

        with open(config_path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")


def _parse_color(value) -> Tuple[int, int, int]:
    try:
        b, g, r = (int(c) for c in value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(f"Colour must be three integers (B, G, R), got {value!r}") from e
    return (b, g, r)


def _section(data: dict, name: str, config_path: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise MalformedInputError(f"Section '{name}' in {config_path} must be a mapping")
    return section


def _number(section: dict, section_name: str, key: str, default, cast):
    value = section.get(key, default)
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise MalformedInputError(
            f"{section_name}.{key} must be a number, got {value!r}"
        ) from e
