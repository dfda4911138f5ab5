"""
Shared fixtures: a scripted display and a synthetic camera/object setup.
"""

import cv2
import numpy as np
import pytest

from camera_position.camera import CameraModel
from camera_position.data_loader import CameraParameters, ObjectPoint
from camera_position.display import Display, NO_KEY


class ScriptedDisplay(Display):
    """
    Display that replays a fixed event script instead of a live window.

    Events:
        ("click", x, y)  left button press delivered to the mouse callback
        ("key", code)    key press returned from wait_key
        ("close",)       operator closes the window

    When the script runs out the window is treated as closed.
    """

    def __init__(self, events=()):
        self.events = list(events)
        self.opened = []
        self.closed = []
        self.shown = []
        self.callbacks = {}
        self._open = set()

    def open(self, window_name, image):
        self.opened.append(window_name)
        self._open.add(window_name)
        self.shown.append((window_name, image.copy()))

    def show(self, window_name, image):
        self.shown.append((window_name, image.copy()))

    def set_mouse_callback(self, window_name, callback, param=None):
        self.callbacks[window_name] = (callback, param)

    def wait_key(self, delay_ms):
        if not self.events:
            self._open.clear()
            return NO_KEY
        event = self.events.pop(0)
        if event[0] == "click":
            for callback, param in self.callbacks.values():
                callback(cv2.EVENT_LBUTTONDOWN, event[1], event[2], 0, param)
            return NO_KEY
        if event[0] == "key":
            return event[1]
        if event[0] == "close":
            self._open.clear()
        return NO_KEY

    def is_open(self, window_name):
        return window_name in self._open

    def close(self, window_name):
        self.closed.append(window_name)
        self._open.discard(window_name)


@pytest.fixture
def scripted_display():
    """Factory for scripted displays."""
    return ScriptedDisplay


@pytest.fixture
def camera_params():
    """fx = fy = 500, cx = cy = 320, no distortion."""
    K = np.array([
        [500.0, 0.0, 320.0],
        [0.0, 500.0, 320.0],
        [0.0, 0.0, 1.0],
    ])
    return CameraParameters(intrinsic=K, distortion=np.zeros(5))


@pytest.fixture
def camera(camera_params):
    return CameraModel(camera_params)


@pytest.fixture
def tetra_points():
    """Origin and the three unit-10 axis points."""
    return (
        ObjectPoint(0, 0, 0),
        ObjectPoint(10, 0, 0),
        ObjectPoint(0, 10, 0),
        ObjectPoint(0, 0, 10),
    )


@pytest.fixture
def box_points():
    """Corners of a 20 x 10 x 15 box."""
    return tuple(
        ObjectPoint(x, y, z)
        for x in (0, 20)
        for y in (0, 10)
        for z in (0, 15)
    )


@pytest.fixture
def blank_image():
    return np.zeros((640, 640, 3), dtype=np.uint8)
