"""
Command-line interface for camera position estimation.

Usage:
    camera-position <object points file> <image file> <camera parameters file>
                    [--config CONFIG] [--output OUTPUT] [--image-points FILE]
                    [--no-review] [-v]
"""

import argparse
import logging
import sys
from typing import List, Optional

from .collector import FileCorrespondenceSource
from .config import PipelineConfig
from .errors import CameraPositionError
from .estimator import CameraPositionEstimator


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog='camera-position',
        description='Estimate the camera pose relative to an object of known geometry',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
    # Click the object points on the image, in file order
    camera-position object_points.txt image.png camera.xml

    # Reuse previously marked image points and skip the review window
    camera-position object_points.txt image.png camera.xml --image-points clicks.txt --no-review
'''
    )

    parser.add_argument('object_points', help='Object point file, one "x,y,z" per line')
    parser.add_argument('image', help='Image of the object')
    parser.add_argument(
        'camera_parameters',
        help='Camera parameter file (OpenCV FileStorage with intrinsic and distortion)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='Path to YAML configuration file'
    )

    parser.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Pose output file (default: camera_position.xml)'
    )

    parser.add_argument(
        '--image-points',
        type=str,
        default=None,
        help='Read image points ("u,v" per line) from a file instead of clicking'
    )

    parser.add_argument(
        '--no-review',
        action='store_true',
        help='Do not show the reprojection overlay'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
        if args.output:
            config.output.path = args.output
        if args.no_review:
            config.display.review = False

        source = FileCorrespondenceSource(args.image_points) if args.image_points else None

        estimator = CameraPositionEstimator(config, source=source)
        result = estimator.run(args.object_points, args.image, args.camera_parameters)

    except CameraPositionError as e:
        logger.error(f"Failed to estimate camera position: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1

    pose = result.solution.pose
    print(f"rvec:\n{pose.rotation.reshape(3, 1)}")
    print(f"tvec:\n{pose.translation.reshape(3, 1)}")
    print(f"camera centre: {pose.camera_center()}")
    print(f"RMS reprojection error: {result.report.rmse:.3f} pixels")
    print(f"Max reprojection error: {result.solution.max_error:.3f} pixels")
    print(f"Initial estimate: {result.solution.method}")
    print(f"Write the camera position to {result.output_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
