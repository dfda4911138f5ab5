"""
End-to-end tests for the estimation pipeline and the CLI.
"""

from pathlib import Path

import cv2
import numpy as np
import pytest
from numpy.testing import assert_allclose

from camera_position.cli import main
from camera_position.collector import ScriptedCorrespondenceSource
from camera_position.config import DisplaySettings, OutputSettings, PipelineConfig
from camera_position.data_loader import object_points_array, save_camera_parameters
from camera_position.errors import (
    DegenerateGeometryError,
    InputNotFoundError,
    InsufficientCorrespondencesError,
)
from camera_position.estimator import CameraPositionEstimator, run_estimation
from camera_position.writer import read_camera_position

TRUE_RVEC = np.array([0.1, -0.2, 0.05])
TRUE_TVEC = np.array([-10.0, -5.0, 80.0])


@pytest.fixture
def scene(tmp_path, camera, camera_params, box_points, blank_image):
    """Input files for a box seen from a known pose, plus the exact clicks."""
    object_path = tmp_path / "object_points.txt"
    object_path.write_text(
        "".join(f"{int(p.x)},{int(p.y)},{int(p.z)}\n" for p in box_points)
    )

    camera_path = tmp_path / "camera.xml"
    save_camera_parameters(camera_params, str(camera_path))

    image_path = tmp_path / "image.png"
    cv2.imwrite(str(image_path), blank_image)

    clicks, _ = camera.project_points(object_points_array(box_points), TRUE_RVEC, TRUE_TVEC)
    clicks_path = tmp_path / "clicks.txt"
    clicks_path.write_text("".join(f"{float(u)!r},{float(v)!r}\n" for u, v in clicks))

    return {
        "object_points": str(object_path),
        "camera": str(camera_path),
        "image": str(image_path),
        "clicks": [(float(u), float(v)) for u, v in clicks],
        "clicks_path": str(clicks_path),
        "output": str(tmp_path / "camera_position.xml"),
    }


def no_review_config(output):
    return PipelineConfig(output=OutputSettings(path=output), display=DisplaySettings(review=False))


class TestEstimator:
    """Pipeline orchestration."""

    def test_scripted_run_writes_pose(self, scene):
        """A scripted run should recover the true pose and write it."""
        source = ScriptedCorrespondenceSource(scene["clicks"])

        result = run_estimation(
            scene["object_points"], scene["image"], scene["camera"],
            config=no_review_config(scene["output"]), source=source,
        )

        assert_allclose(result.solution.pose.rotation, TRUE_RVEC, atol=1e-6)
        assert_allclose(result.solution.pose.translation, TRUE_TVEC, atol=1e-5)
        assert len(result.report.reprojected_points) == 8

        written = read_camera_position(scene["output"])
        assert_allclose(written.rotation, result.solution.pose.rotation)
        assert_allclose(written.translation, result.solution.pose.translation)

    def test_interactive_run_with_review(self, scene, scripted_display):
        """Interactive collection and review should each open one window."""
        events = [("click", u, v) for u, v in scene["clicks"]] + [("key", 13), ("key", 13)]
        display = scripted_display(events)
        config = PipelineConfig(
            output=OutputSettings(path=scene["output"]),
            display=DisplaySettings(poll_interval_ms=1),
        )

        result = CameraPositionEstimator(config, display=display).run(
            scene["object_points"], scene["image"], scene["camera"],
        )

        assert display.opened == [scene["image"], scene["image"]]
        assert display.events == []
        assert result.solution.rms_error < 1.0

    def test_dismissed_collection_writes_nothing(self, scene, scripted_display):
        """A dismissed collection should fail without writing the pose file."""
        display = scripted_display([("click", 10, 10), ("close",)])
        config = PipelineConfig(output=OutputSettings(path=scene["output"]))

        with pytest.raises(InsufficientCorrespondencesError):
            CameraPositionEstimator(config, display=display).run(
                scene["object_points"], scene["image"], scene["camera"],
            )
        assert not Path(scene["output"]).exists()

    def test_missing_camera_file_fails_before_collection(self, scene, scripted_display):
        """A missing camera file should fail before any window opens."""
        display = scripted_display()

        with pytest.raises(InputNotFoundError):
            CameraPositionEstimator(no_review_config(scene["output"]), display=display).run(
                scene["object_points"], scene["image"], scene["camera"] + ".missing",
            )
        assert display.opened == []

    def test_collinear_clicks_are_degenerate(self, scene):
        """Collinear clicks should be reported as degenerate geometry."""
        source = ScriptedCorrespondenceSource([(10 * i, 10 * i) for i in range(8)])

        with pytest.raises(DegenerateGeometryError):
            run_estimation(
                scene["object_points"], scene["image"], scene["camera"],
                config=no_review_config(scene["output"]), source=source,
            )


class TestCli:
    """Command-line behaviour and exit codes."""

    def test_missing_arguments(self, capsys):
        """Two positional arguments should be a usage error with exit code 1."""
        with pytest.raises(SystemExit) as exc:
            main(["object_points.txt", "image.png"])

        assert exc.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_no_arguments(self, capsys):
        """No arguments should be a usage error with exit code 1."""
        with pytest.raises(SystemExit) as exc:
            main([])

        assert exc.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_successful_run(self, scene, capsys):
        """A successful run should print the pose and exit 0."""
        code = main([
            scene["object_points"], scene["image"], scene["camera"],
            "--image-points", scene["clicks_path"],
            "--output", scene["output"],
            "--no-review",
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert "rvec" in out and "tvec" in out
        written = read_camera_position(scene["output"])
        assert_allclose(written.translation, TRUE_TVEC, atol=1e-4)

    def test_summary_reports_max_error(self, scene, capsys):
        """The summary should include the maximum error and seeding method."""
        code = main([
            scene["object_points"], scene["image"], scene["camera"],
            "--image-points", scene["clicks_path"],
            "--output", scene["output"],
            "--no-review",
        ])

        out = capsys.readouterr().out
        assert code == 0
        assert "Max reprojection error:" in out
        assert "Initial estimate:" in out

    def test_malformed_points_file_is_reported(self, scene, tmp_path, caplog):
        """Undecodable object points should fail through the handled error path."""
        bad = tmp_path / "bad_points.txt"
        bad.write_bytes(b"0,0,0\n\xff\xfe,1,1\n")

        code = main([
            str(bad), scene["image"], scene["camera"],
            "--image-points", scene["clicks_path"],
            "--no-review",
        ])

        assert code == 1
        assert "Failed to estimate camera position" in caplog.text
        assert "Unexpected error" not in caplog.text

    def test_stage_failure_exits_1(self, scene, tmp_path, caplog):
        """A failed stage should be logged and exit 1."""
        short = tmp_path / "short.txt"
        short.write_text("1,2\n3,4\n")

        code = main([
            scene["object_points"], scene["image"], scene["camera"],
            "--image-points", str(short),
            "--output", scene["output"],
            "--no-review",
        ])

        assert code == 1
        assert "Failed to estimate camera position" in caplog.text

    def test_missing_input_exits_1(self, scene, tmp_path):
        """A missing input file should exit 1."""
        code = main([
            str(tmp_path / "nope.txt"), scene["image"], scene["camera"],
            "--image-points", scene["clicks_path"],
            "--no-review",
        ])

        assert code == 1
