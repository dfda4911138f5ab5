"""
Tests for YAML configuration loading.
"""

import pytest

from camera_position.config import PipelineConfig, DEFAULT_OUTPUT_PATH
from camera_position.errors import InputNotFoundError, MalformedInputError


class TestPipelineConfig:
    """Tests for defaults, overrides and round trip."""

    def test_defaults(self):
        """Defaults should match the documented values."""
        config = PipelineConfig()

        assert config.output.path == DEFAULT_OUTPUT_PATH == "camera_position.xml"
        assert config.display.marked_color == (0, 0, 255)
        assert config.display.reprojected_color == (255, 0, 0)
        assert config.solver.allow_planar is False

    def test_partial_override(self, tmp_path):
        """Keys present in the file should override only those defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(
            "output:\n"
            "  path: pose.yml\n"
            "solver:\n"
            "  allow_planar: true\n"
            "  reprojection_threshold: 0.5\n"
        )

        config = PipelineConfig.from_yaml(str(path))

        assert config.output.path == "pose.yml"
        assert config.solver.allow_planar is True
        assert config.solver.reprojection_threshold == pytest.approx(0.5)
        assert config.solver.max_iterations == 200
        assert config.display.marker_length == 7

    def test_round_trip(self, tmp_path):
        """A saved configuration should load back equal."""
        config = PipelineConfig()
        config.display.window_name = "target"
        config.display.marked_color = (0, 255, 0)
        config.solver.degeneracy_tolerance = 1e-4
        path = tmp_path / "config.yaml"

        config.to_yaml(str(path))
        loaded = PipelineConfig.from_yaml(str(path))

        assert loaded == config

    def test_empty_file_uses_defaults(self, tmp_path):
        """An empty file should give the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert PipelineConfig.from_yaml(str(path)) == PipelineConfig()

    def test_missing_file(self, tmp_path):
        """A missing file should raise InputNotFoundError."""
        with pytest.raises(InputNotFoundError):
            PipelineConfig.from_yaml(str(tmp_path / "config.yaml"))

    def test_not_a_mapping(self, tmp_path):
        """A top-level list is malformed."""
        path = tmp_path / "config.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(MalformedInputError):
            PipelineConfig.from_yaml(str(path))

    def test_bad_colour(self, tmp_path):
        """A colour without three components is malformed."""
        path = tmp_path / "config.yaml"
        path.write_text("display:\n  marked_color: [1, 2]\n")

        with pytest.raises(MalformedInputError):
            PipelineConfig.from_yaml(str(path))

    @pytest.mark.parametrize("section", ["output", "display", "solver"])
    def test_section_not_a_mapping(self, tmp_path, section):
        """A section that is not a mapping is malformed."""
        path = tmp_path / "config.yaml"
        path.write_text(f"{section}: 5\n")

        with pytest.raises(MalformedInputError, match=section):
            PipelineConfig.from_yaml(str(path))

    @pytest.mark.parametrize("text, key", [
        ("display:\n  marker_length: abc\n", "display.marker_length"),
        ("display:\n  poll_interval_ms: [1]\n", "display.poll_interval_ms"),
        ("solver:\n  reprojection_threshold: high\n", "solver.reprojection_threshold"),
        ("solver:\n  max_iterations: null\n", "solver.max_iterations"),
    ])
    def test_non_numeric_value(self, tmp_path, text, key):
        """A non-numeric setting should be malformed and name its key."""
        path = tmp_path / "config.yaml"
        path.write_text(text)

        with pytest.raises(MalformedInputError, match=key):
            PipelineConfig.from_yaml(str(path))

    def test_invalid_utf8(self, tmp_path):
        """A configuration file that is not UTF-8 is malformed."""
        path = tmp_path / "config.yaml"
        path.write_bytes(b"output:\n  path: \xff\xfe.xml\n")

        with pytest.raises(MalformedInputError):
            PipelineConfig.from_yaml(str(path))
