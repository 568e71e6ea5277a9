"""Tests for viewport transforms and rectangle helpers."""

import math

import pytest
from PyQt6.QtCore import QPointF, QSizeF

from palm_annotator.core.geometry import (
    MAX_ZOOM,
    MIN_ZOOM,
    Handle,
    Rect,
    Transform,
    handle_at,
    round_half_up,
)


class TestTransform:
    """Tests for Transform."""

    def test_round_trip(self):
        """Viewport to image and back returns the original point."""
        transform = Transform(scale=2.5, pan_x=-37.0, pan_y=12.25)
        for x, y in [(0, 0), (10.5, 3.25), (-40, 900), (1234.5, 0.125)]:
            point = QPointF(x, y)
            back = transform.to_viewport(transform.to_image(point))
            assert math.isclose(back.x(), x, abs_tol=1e-9)
            assert math.isclose(back.y(), y, abs_tol=1e-9)

    def test_zoom_keeps_pivot_fixed(self):
        """The image point under the pivot does not move when zooming."""
        transform = Transform(scale=1.0, pan_x=20, pan_y=30)
        pivot = QPointF(150, 90)
        before = transform.to_image(pivot)

        assert transform.zoom_at(1.2, pivot)

        after = transform.to_image(pivot)
        assert math.isclose(before.x(), after.x(), abs_tol=1e-9)
        assert math.isclose(before.y(), after.y(), abs_tol=1e-9)
        assert transform.scale == pytest.approx(1.2)

    def test_zoom_is_clamped(self):
        """Scale stays within the zoom limits."""
        transform = Transform(scale=9.0)
        transform.zoom_at(5, QPointF(0, 0))
        assert transform.scale == MAX_ZOOM

        transform = Transform(scale=0.15)
        transform.zoom_at(0.1, QPointF(0, 0))
        assert transform.scale == MIN_ZOOM

    def test_zoom_at_limit_reports_no_change(self):
        """Zooming past the limit leaves the pan untouched."""
        transform = Transform(scale=MAX_ZOOM, pan_x=5, pan_y=6)
        assert transform.zoom_at(1.2, QPointF(100, 100)) is False
        assert (transform.pan_x, transform.pan_y) == (5, 6)
        assert not transform.can_zoom_in()
        assert transform.can_zoom_out()

    def test_fit_to_viewport_centers_image(self):
        """Fitting uses the smaller ratio and centers the image."""
        transform = Transform()
        assert transform.fit_to_viewport(QSizeF(400, 200), QSizeF(800, 800))
        assert transform.scale == pytest.approx(2.0)
        assert transform.pan_x == pytest.approx(0.0)
        assert transform.pan_y == pytest.approx(200.0)

    def test_fit_with_empty_size_is_noop(self):
        """An empty image or viewport leaves the transform unchanged."""
        transform = Transform(scale=3.0, pan_x=1, pan_y=2)
        assert transform.fit_to_viewport(QSizeF(0, 100), QSizeF(800, 600)) is False
        assert transform.fit_to_viewport(QSizeF(100, 100), QSizeF(800, 0)) is False
        assert (transform.scale, transform.pan_x, transform.pan_y) == (3.0, 1, 2)

    def test_rect_to_viewport(self):
        """Image rectangles map through scale and pan."""
        transform = Transform(scale=2.0, pan_x=10, pan_y=20)
        rect = transform.rect_to_viewport(Rect(5, 5, 15, 25))
        assert (rect.x1, rect.y1, rect.x2, rect.y2) == (20, 30, 40, 70)

    def test_pan_and_reset(self):
        """pan_by moves the offset; reset restores identity."""
        transform = Transform()
        transform.pan_by(12, -4)
        assert (transform.pan_x, transform.pan_y) == (12, -4)
        transform.scale = 4.0
        transform.reset()
        assert (transform.scale, transform.pan_x, transform.pan_y) == (1.0, 0.0, 0.0)


class TestRect:
    """Tests for Rect."""

    def test_normalized(self):
        """Normalization orders the corners."""
        rect = Rect(30, 40, 10, 5).normalized()
        assert (rect.x1, rect.y1, rect.x2, rect.y2) == (10, 5, 30, 40)

    def test_clamped(self):
        """Clamping clips to the image bounds."""
        rect = Rect(-10, 50, 120, -5).clamped(100, 80)
        assert (rect.x1, rect.y1, rect.x2, rect.y2) == (0, 0, 100, 50)

    def test_shifted_inside_preserves_size(self):
        """A rectangle pushed past the edge is moved back, not clipped."""
        rect = Rect(90, 70, 120, 100).shifted_inside(100, 80)
        assert (rect.x1, rect.y1, rect.x2, rect.y2) == (70, 50, 100, 80)

    def test_with_corner_keeps_opposite_fixed(self):
        """Moving one corner leaves the opposite corner in place."""
        rect = Rect(10, 10, 50, 50)
        nw = rect.with_corner(Handle.NW, QPointF(0, 5))
        assert (nw.x1, nw.y1, nw.x2, nw.y2) == (0, 5, 50, 50)
        ne = rect.with_corner(Handle.NE, QPointF(60, 0))
        assert (ne.x1, ne.y1, ne.x2, ne.y2) == (10, 0, 60, 50)
        sw = rect.with_corner(Handle.SW, QPointF(0, 70))
        assert (sw.x1, sw.y1, sw.x2, sw.y2) == (0, 10, 50, 70)

    def test_with_corner_can_invert(self):
        """Dragging a corner past the opposite one yields a degenerate rect."""
        rect = Rect(10, 10, 50, 50).with_corner(Handle.NW, QPointF(80, 80))
        assert rect.is_degenerate()

    def test_degenerate(self):
        """Zero area and non-finite coordinates are degenerate."""
        assert Rect(0, 0, 0, 10).is_degenerate()
        assert Rect(0, 0, math.nan, 10).is_degenerate()
        assert Rect(0, 0, math.inf, 10).is_degenerate()
        assert not Rect(0, 0, 1, 1).is_degenerate()

    def test_round_half_up(self):
        """Halves round up rather than to the nearest even integer."""
        assert [round_half_up(v) for v in (0.5, 1.5, 2.5, 10.49, 10.51, 3.0)] == [1, 2, 3, 10, 11, 3]


class TestHandleAt:
    """Tests for handle hit testing."""

    def test_hit_inside_radius(self):
        """A point within the radius of a corner hits it."""
        rect = Rect(100, 100, 200, 200)
        assert handle_at(rect, QPointF(103, 98), 10) == Handle.NW
        assert handle_at(rect, QPointF(195, 205), 10) == Handle.SE

    def test_miss_outside_radius(self):
        """Both axes must be within the radius."""
        rect = Rect(100, 100, 200, 200)
        assert handle_at(rect, QPointF(112, 100), 10) is None
        assert handle_at(rect, QPointF(150, 150), 10) is None

    def test_nw_wins_on_overlap(self):
        """Overlapping handles of a tiny box resolve in NW, NE, SW, SE order."""
        rect = Rect(100, 100, 102, 102)
        assert handle_at(rect, QPointF(101, 101), 10) == Handle.NW
