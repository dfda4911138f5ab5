"""
Display surfaces for the interactive stages.

`Display` is the window/event abstraction used by the correspondence
collector and the reprojection evaluator. `OpenCVDisplay` implements it
with OpenCV HighGUI; tests substitute a scripted implementation.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Tuple
import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)

KEY_ESCAPE = 27
DISMISS_KEYS = (KEY_ESCAPE, ord('q'))
NO_KEY = -1

MouseCallback = Callable[[int, int, int, int, Any], None]


class Display(ABC):
    """A set of named windows that show images and deliver mouse/key events."""

    @abstractmethod
    def open(self, window_name: str, image: np.ndarray) -> None:
        """Create the window and show the image in it."""

    @abstractmethod
    def show(self, window_name: str, image: np.ndarray) -> None:
        """Replace the window content."""

    @abstractmethod
    def set_mouse_callback(
        self, window_name: str, callback: MouseCallback, param: Any = None
    ) -> None:
        """Register callback(event, x, y, flags, param) for pointer events."""

    @abstractmethod
    def wait_key(self, delay_ms: int) -> int:
        """Pump events for up to delay_ms; return the key code or NO_KEY."""

    @abstractmethod
    def is_open(self, window_name: str) -> bool:
        """False once the operator has closed the window."""

    @abstractmethod
    def close(self, window_name: str) -> None:
        """Destroy the window."""


class OpenCVDisplay(Display):
    """HighGUI windows (cv2.namedWindow / cv2.imshow / cv2.waitKey)."""

    def open(self, window_name: str, image: np.ndarray) -> None:
        cv2.namedWindow(window_name, cv2.WINDOW_AUTOSIZE)
        cv2.imshow(window_name, image)

    def show(self, window_name: str, image: np.ndarray) -> None:
        cv2.imshow(window_name, image)

    def set_mouse_callback(
        self, window_name: str, callback: MouseCallback, param: Any = None
    ) -> None:
        cv2.setMouseCallback(window_name, callback, param)

    def wait_key(self, delay_ms: int) -> int:
        return cv2.waitKey(delay_ms)

    def is_open(self, window_name: str) -> bool:
        try:
            return cv2.getWindowProperty(window_name, cv2.WND_PROP_VISIBLE) >= 1
        except cv2.error:
            return False

    def close(self, window_name: str) -> None:
        try:
            cv2.destroyWindow(window_name)
        except cv2.error:
            # Already destroyed by the window manager
            logger.debug(f"Window {window_name!r} already closed")


def draw_cross(
    image: np.ndarray,
    point: Tuple[float, float],
    color: Tuple[int, int, int],
    length: int,
    thickness: int = 1,
) -> None:
    """Draw an axis-aligned cross centred on point, in place."""
    x, y = int(round(point[0])), int(round(point[1]))
    cv2.line(image, (x - length, y), (x + length, y), color, thickness)
    cv2.line(image, (x, y - length), (x, y + length), color, thickness)


def wait_for_operator(
    display: Display,
    window_name: str,
    poll_interval_ms: int,
    ready: Optional[Callable[[], bool]] = None,
) -> bool:
    """
    Block until the operator continues or dismisses the window.

    Esc, 'q' or closing the window dismisses. Any other key continues,
    but only once ready() is true; earlier key presses are ignored.

    Returns:
        True if the operator continued, False if the window was dismissed
    """
    while True:
        key = display.wait_key(poll_interval_ms)
        if not display.is_open(window_name):
            logger.debug(f"Window {window_name!r} closed by operator")
            return False
        if key == NO_KEY:
            continue

        key &= 0xFF
        if key in DISMISS_KEYS:
            logger.debug(f"Window {window_name!r} dismissed with key {key}")
            return False
        if ready is None or ready():
            return True
        logger.warning("Not all points have been marked yet; keep clicking or press Esc to abort")
