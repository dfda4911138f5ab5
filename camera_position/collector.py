"""
Correspondence collection.

The operator marks, in order, the pixel location of every object point.
Point i in the returned sequence corresponds to object point i; there is
no other matching between the two sets.

Collection is a two-state machine:
    COLLECTING (count < N) --left click--> append point, draw marker
    COMPLETE   (count == N) --left click--> ignored

All state lives in a CollectionContext that is handed to the mouse
callback as its user parameter, so several collections can coexist.

Sources:
    - InteractiveCorrespondenceSource: clicks on a display surface
    - ScriptedCorrespondenceSource: programmatic clicks, same state machine
    - FileCorrespondenceSource: pre-marked points from a text file
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple
import logging

import cv2
import numpy as np

from .config import DisplaySettings
from .data_loader import ImagePoint, load_image_points
from .display import Display, draw_cross, wait_for_operator
from .errors import InsufficientCorrespondencesError, MalformedInputError

logger = logging.getLogger(__name__)


class CollectorState(enum.Enum):
    COLLECTING = "collecting"
    COMPLETE = "complete"


@dataclass
class CollectionContext:
    """
    State of one correspondence collection.

    Attributes:
        target_count: Number of points to collect (the object point count)
        window_name: Display surface identity, None when no display is attached
        image: Working image buffer that accumulates the markers
        display: Surface that is redrawn after each accepted click
        settings: Marker appearance
        points: Accepted points in click order
    """
    target_count: int
    window_name: Optional[str] = None
    image: Optional[np.ndarray] = None
    display: Optional[Display] = None
    settings: DisplaySettings = field(default_factory=DisplaySettings)
    points: List[ImagePoint] = field(default_factory=list)

    def __post_init__(self):
        if self.target_count < 1:
            raise ValueError(f"target_count must be positive, got {self.target_count}")

    @property
    def state(self) -> CollectorState:
        if len(self.points) >= self.target_count:
            return CollectorState.COMPLETE
        return CollectorState.COLLECTING

    @property
    def is_complete(self) -> bool:
        return self.state is CollectorState.COMPLETE

    @property
    def remaining(self) -> int:
        return self.target_count - len(self.points)

    def accept(self, u: float, v: float) -> bool:
        """
        Handle one click at (u, v).

        Returns:
            True if the click was appended, False if collection was already complete
        """
        if self.is_complete:
            logger.debug(f"Ignoring click at ({u}, {v}): all points collected")
            return False

        point = ImagePoint(float(u), float(v))
        self.points.append(point)
        logger.info(f"count={len(self.points)}, clicked=({point.u:g}, {point.v:g})")

        if self.image is not None:
            draw_cross(
                self.image,
                (point.u, point.v),
                self.settings.marked_color,
                self.settings.marker_length,
                self.settings.marker_thickness,
            )
            if self.display is not None and self.window_name is not None:
                self.display.show(self.window_name, self.image)
        return True

    def freeze(self) -> Tuple[ImagePoint, ...]:
        """Return the collected points, failing unless collection is complete."""
        if not self.is_complete:
            raise InsufficientCorrespondencesError(
                f"Collected {len(self.points)} of {self.target_count} image points"
            )
        return tuple(self.points)


def on_mouse(event: int, x: int, y: int, flags: int, context: CollectionContext) -> None:
    """Mouse callback; the context arrives as the callback's user parameter."""
    if event == cv2.EVENT_LBUTTONDOWN:
        context.accept(x, y)


class CorrespondenceSource(ABC):
    """Supplies image points matching object points by position."""

    @abstractmethod
    def collect(self, target_count: int) -> Tuple[ImagePoint, ...]:
        """
        Return exactly target_count image points.

        Raises:
            InsufficientCorrespondencesError: if fewer points are available
        """


class InteractiveCorrespondenceSource(CorrespondenceSource):
    """
    Lets the operator click the points on the displayed image.

    Blocks until all points are marked and the operator presses a key,
    or until the window is dismissed (Esc, 'q' or closing it). There is
    no timeout.
    """

    def __init__(
        self,
        image: np.ndarray,
        display: Display,
        window_name: str,
        settings: Optional[DisplaySettings] = None,
    ):
        self.image = image
        self.display = display
        self.window_name = window_name
        self.settings = settings or DisplaySettings()

    def collect(self, target_count: int) -> Tuple[ImagePoint, ...]:
        context = CollectionContext(
            target_count=target_count,
            window_name=self.window_name,
            image=self.image.copy(),
            display=self.display,
            settings=self.settings,
        )

        logger.info(
            f"Click the {target_count} object points in order, then press any key "
            f"(Esc or q to abort)"
        )
        self.display.open(self.window_name, context.image)
        self.display.set_mouse_callback(self.window_name, on_mouse, context)
        try:
            continued = wait_for_operator(
                self.display,
                self.window_name,
                self.settings.poll_interval_ms,
                ready=lambda: context.is_complete,
            )
        finally:
            self.display.close(self.window_name)

        if not continued:
            logger.info(f"Collection dismissed with {len(context.points)} of {target_count} points")
        return context.freeze()


class ScriptedCorrespondenceSource(CorrespondenceSource):
    """Feeds a fixed click sequence through the collection state machine."""

    def __init__(self, clicks: Iterable[Tuple[float, float]]):
        self.clicks = [tuple(c) for c in clicks]

    def collect(self, target_count: int) -> Tuple[ImagePoint, ...]:
        context = CollectionContext(target_count=target_count)
        for u, v in self.clicks:
            context.accept(u, v)
        return context.freeze()


class FileCorrespondenceSource(CorrespondenceSource):
    """Reads pre-marked image points ("u,v" per line) from a text file."""

    def __init__(self, path: str):
        self.path = path

    def collect(self, target_count: int) -> Tuple[ImagePoint, ...]:
        points = load_image_points(self.path)
        if len(points) < target_count:
            raise InsufficientCorrespondencesError(
                f"{self.path} holds {len(points)} image points, {target_count} required"
            )
        if len(points) > target_count:
            raise MalformedInputError(
                f"{self.path} holds {len(points)} image points, expected {target_count}"
            )
        return points

