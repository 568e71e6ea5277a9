"""Data models for Palm Annotator annotations."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional

from PyQt6.QtCore import QPointF, QRectF

from .errors import DegenerateBoxError
from .geometry import Rect, round_half_up

logger = logging.getLogger(__name__)

# Classes every session starts with
PREDEFINED_CLASSES = ["palma", "tenar", "hipotenar", "infradigital", "lateral"]


def normalize_label(label: Optional[str]) -> str:
    """Trim and case-fold a class label."""
    if label is None:
        return ""
    return label.strip().casefold()


@dataclass(frozen=True)
class Box:
    """
    A labeled axis-aligned rectangle in image pixel coordinates.

    Corners are stored ordered (x1 < x2, y1 < y2). Construction fails
    with DegenerateBoxError for NaN/infinite coordinates or zero area.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    label: str = ""

    def __post_init__(self) -> None:
        """Validate coordinates and order the corners."""
        coords = (self.x1, self.y1, self.x2, self.y2)
        if not all(isinstance(c, (int, float)) and math.isfinite(c) for c in coords):
            raise DegenerateBoxError(f"Box '{self.label}' has non-finite coordinates {coords}")

        x1, x2 = sorted((float(self.x1), float(self.x2)))
        y1, y2 = sorted((float(self.y1), float(self.y2)))
        if not (x2 > x1 and y2 > y1):
            raise DegenerateBoxError(
                f"Box '{self.label}' has no area ({x1}, {y1})-({x2}, {y2})"
            )

        # Frozen dataclass: assign through object.__setattr__
        object.__setattr__(self, "x1", x1)
        object.__setattr__(self, "y1", y1)
        object.__setattr__(self, "x2", x2)
        object.__setattr__(self, "y2", y2)

    @classmethod
    def from_rect(cls, rect: Rect, label: str) -> Box:
        """Create a box from working geometry."""
        return cls(rect.x1, rect.y1, rect.x2, rect.y2, label)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def rect(self) -> Rect:
        """Geometry as a mutable working rectangle."""
        return Rect(self.x1, self.y1, self.x2, self.y2)

    def to_qrectf(self) -> QRectF:
        return QRectF(QPointF(self.x1, self.y1), QPointF(self.x2, self.y2))

    def contains(self, point: QPointF) -> bool:
        """Check if an image-space point lies inside or on the border."""
        return self.x1 <= point.x() <= self.x2 and self.y1 <= point.y() <= self.y2

    def with_label(self, label: str) -> Box:
        return replace(self, label=label)

    def with_rect(self, rect: Rect) -> Box:
        return Box(rect.x1, rect.y1, rect.x2, rect.y2, self.label)

    def rounded(self) -> tuple[int, int, int, int]:
        """Integer pixel bounds (xmin, ymin, xmax, ymax)."""
        return (
            round_half_up(self.x1),
            round_half_up(self.y1),
            round_half_up(self.x2),
            round_half_up(self.y2),
        )

    def describe(self, index: int) -> str:
        """One-line summary as shown in the annotation list."""
        xmin, ymin, xmax, ymax = self.rounded()
        return f"{index}: {self.label} ({xmin},{ymin})-({xmax},{ymax})"


@dataclass
class ImageAnnotations:
    """
    Boxes for a single image, in insertion order.

    Order only matters for stable indexing (selection, display).
    """

    image_id: str
    boxes: List[Box] = field(default_factory=list)

    def labels(self) -> List[str]:
        return [box.label for box in self.boxes]

    def has_label(self, label: str, ignore_index: Optional[int] = None) -> bool:
        """Check whether a label is used, optionally ignoring one index."""
        return any(
            box.label == label
            for i, box in enumerate(self.boxes)
            if i != ignore_index
        )

    def box_at(self, point: QPointF) -> Optional[int]:
        """Index of the topmost (last inserted) box containing an image point."""
        for i in range(len(self.boxes) - 1, -1, -1):
            if self.boxes[i].contains(point):
                return i
        return None

    def __len__(self) -> int:
        return len(self.boxes)
