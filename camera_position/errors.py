"""
Error types raised by the camera position pipeline.

Every stage raises one of these on failure; the CLI catches the base
class once and turns it into a diagnostic and a nonzero exit code.
"""


class CameraPositionError(Exception):
    """Base class for all pipeline failures."""


class InputNotFoundError(CameraPositionError, FileNotFoundError):
    """An input file (object points, image, camera parameters, config) is missing."""


class MalformedInputError(CameraPositionError, ValueError):
    """An input file exists but its content cannot be used."""


class InsufficientCorrespondencesError(CameraPositionError):
    """Fewer image points than object points were collected."""


class DegenerateGeometryError(CameraPositionError):
    """The correspondences do not constrain a unique camera pose."""


class WriteFailureError(CameraPositionError, OSError):
    """The pose file could not be written."""
