"""Coordinate transforms between viewport and image space."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from PyQt6.QtCore import QPointF, QRectF, QSizeF

logger = logging.getLogger(__name__)

MIN_ZOOM = 0.1
MAX_ZOOM = 10.0
ZOOM_EPSILON = 1e-6


class Handle(str, Enum):
    """Corner resize handle of a box."""

    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer pixel, halves going up (0.5 -> 1)."""
    return int(math.floor(value + 0.5))


@dataclass
class Rect:
    """
    Axis-aligned rectangle given by two unordered corners.

    Used as working geometry while a box is being drawn, moved or
    resized. Unlike a committed box it may be inverted or degenerate.
    """

    x1: float
    y1: float
    x2: float
    y2: float

    @classmethod
    def from_points(cls, a: QPointF, b: QPointF) -> Rect:
        """Create a rectangle from two corner points."""
        return cls(a.x(), a.y(), b.x(), b.y())

    @property
    def width(self) -> float:
        return abs(self.x2 - self.x1)

    @property
    def height(self) -> float:
        return abs(self.y2 - self.y1)

    def normalized(self) -> Rect:
        """Return a copy with x1 <= x2 and y1 <= y2."""
        return Rect(
            min(self.x1, self.x2),
            min(self.y1, self.y2),
            max(self.x1, self.x2),
            max(self.y1, self.y2),
        )

    def clamped(self, width: float, height: float) -> Rect:
        """Return the normalized rectangle clipped to [0, width] x [0, height]."""
        r = self.normalized()
        return Rect(
            clamp(r.x1, 0.0, width),
            clamp(r.y1, 0.0, height),
            clamp(r.x2, 0.0, width),
            clamp(r.y2, 0.0, height),
        )

    def shifted_inside(self, width: float, height: float) -> Rect:
        """
        Move the rectangle back inside [0, width] x [0, height].

        The size is preserved unless it exceeds the bounds, in which
        case the rectangle is clipped.
        """
        r = self.normalized()
        w = min(r.width, width)
        h = min(r.height, height)
        x1 = clamp(r.x1, 0.0, width - w)
        y1 = clamp(r.y1, 0.0, height - h)
        return Rect(x1, y1, x1 + w, y1 + h)

    def translated(self, dx: float, dy: float) -> Rect:
        return Rect(self.x1 + dx, self.y1 + dy, self.x2 + dx, self.y2 + dy)

    def with_corner(self, handle: Handle, point: QPointF) -> Rect:
        """
        Return a copy with the coordinates of one corner replaced.

        The opposite corner stays fixed. The result is not normalized,
        so dragging a corner past its opposite yields an inverted rect.
        """
        x, y = point.x(), point.y()
        if handle == Handle.NW:
            return Rect(x, y, self.x2, self.y2)
        if handle == Handle.NE:
            return Rect(self.x1, y, x, self.y2)
        if handle == Handle.SW:
            return Rect(x, self.y1, self.x2, y)
        return Rect(self.x1, self.y1, x, y)

    def is_degenerate(self) -> bool:
        """True if the rect has no positive area or has non-finite coordinates."""
        coords = (self.x1, self.y1, self.x2, self.y2)
        if not all(math.isfinite(c) for c in coords):
            return True
        return not (self.x2 > self.x1 and self.y2 > self.y1)

    def contains(self, point: QPointF) -> bool:
        """Check if a point lies inside or on the border."""
        r = self.normalized()
        return r.x1 <= point.x() <= r.x2 and r.y1 <= point.y() <= r.y2

    def to_qrectf(self) -> QRectF:
        r = self.normalized()
        return QRectF(QPointF(r.x1, r.y1), QPointF(r.x2, r.y2))


@dataclass
class Transform:
    """
    Viewport transform: viewport = image * scale + pan.

    All values are in logical (device independent) pixels. Device pixel
    ratio is applied by Qt when painting and delivering input events.
    """

    scale: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    min_zoom: float = MIN_ZOOM
    max_zoom: float = MAX_ZOOM

    def reset(self) -> None:
        """Reset to identity."""
        self.scale = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def to_image(self, point: QPointF) -> QPointF:
        """Map a viewport point to image coordinates."""
        if self.scale == 0:
            return QPointF(0.0, 0.0)
        return QPointF(
            (point.x() - self.pan_x) / self.scale,
            (point.y() - self.pan_y) / self.scale,
        )

    def to_viewport(self, point: QPointF) -> QPointF:
        """Map an image point to viewport coordinates."""
        return QPointF(
            point.x() * self.scale + self.pan_x,
            point.y() * self.scale + self.pan_y,
        )

    def rect_to_viewport(self, rect: Rect) -> Rect:
        """Map an image-space rectangle to viewport space."""
        a = self.to_viewport(QPointF(rect.x1, rect.y1))
        b = self.to_viewport(QPointF(rect.x2, rect.y2))
        return Rect.from_points(a, b).normalized()

    def clamp_scale(self, scale: float) -> float:
        return clamp(scale, self.min_zoom, self.max_zoom)

    def zoom_at(self, factor: float, pivot: QPointF) -> bool:
        """
        Zoom by a factor keeping the image point under pivot fixed.

        Args:
            factor: Multiplicative zoom factor
            pivot: Viewport point that must not move

        Returns:
            True if the scale changed
        """
        new_scale = self.clamp_scale(self.scale * factor)
        if abs(new_scale - self.scale) <= ZOOM_EPSILON:
            return False

        anchor = self.to_image(pivot)
        self.scale = new_scale
        self.pan_x = pivot.x() - anchor.x() * new_scale
        self.pan_y = pivot.y() - anchor.y() * new_scale
        return True

    def fit_to_viewport(self, image_size: QSizeF, viewport_size: QSizeF) -> bool:
        """
        Fit the image into the viewport and center it.

        Returns:
            False if either size is empty and the transform was left unchanged
        """
        iw, ih = image_size.width(), image_size.height()
        vw, vh = viewport_size.width(), viewport_size.height()
        if iw <= 0 or ih <= 0 or vw <= 0 or vh <= 0:
            logger.debug(f"Cannot fit image {iw}x{ih} into viewport {vw}x{vh}")
            return False

        self.scale = self.clamp_scale(min(vw / iw, vh / ih))
        self.pan_x = (vw - iw * self.scale) / 2
        self.pan_y = (vh - ih * self.scale) / 2
        return True

    def pan_by(self, dx: float, dy: float) -> None:
        """Translate the pan offset by a viewport delta."""
        self.pan_x += dx
        self.pan_y += dy

    def can_zoom_in(self) -> bool:
        return self.scale < self.max_zoom

    def can_zoom_out(self) -> bool:
        return self.scale > self.min_zoom


def handle_positions(rect: Rect) -> Tuple[Tuple[Handle, QPointF], ...]:
    """Corner positions of a rectangle, keyed by handle."""
    r = rect.normalized()
    return (
        (Handle.NW, QPointF(r.x1, r.y1)),
        (Handle.NE, QPointF(r.x2, r.y1)),
        (Handle.SW, QPointF(r.x1, r.y2)),
        (Handle.SE, QPointF(r.x2, r.y2)),
    )


def handle_at(viewport_rect: Rect, point: QPointF, hit_radius: float) -> Optional[Handle]:
    """
    Find the corner handle of a viewport-space rect under a point.

    Corners are tested in NW, NE, SW, SE order; the first within
    hit_radius on both axes wins.
    """
    for handle, corner in handle_positions(viewport_rect):
        if abs(point.x() - corner.x()) < hit_radius and abs(point.y() - corner.y()) < hit_radius:
            return handle
    return None
