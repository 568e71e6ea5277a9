"""Tests for draw list construction and painting."""

import pytest
from PyQt6.QtCore import QPointF
from PyQt6.QtGui import QImage, QPainter

from palm_annotator.core.geometry import Rect, Transform
from palm_annotator.core.models import Box
from palm_annotator.ui.renderer import (
    DrawBox,
    DrawHandle,
    DrawImage,
    DrawLabel,
    DrawPreview,
    PainterBackend,
    RenderState,
    build_draw_list,
)


@pytest.fixture
def image(qapp):
    image = QImage(400, 300, QImage.Format.Format_RGB32)
    image.fill(0)
    return image


def make_state(image, **kwargs):
    defaults = dict(
        image=image,
        transform=Transform(scale=2.0, pan_x=10, pan_y=20),
        boxes=[Box(10, 10, 50, 50, "palma"), Box(100, 100, 150, 150, "tenar")],
    )
    defaults.update(kwargs)
    return RenderState(**defaults)


class TestBuildDrawList:
    """Tests for build_draw_list."""

    def test_no_image_draws_nothing(self):
        """Without an image the list is empty."""
        assert build_draw_list(RenderState()) == []

    def test_order(self, image):
        """Image, boxes, labels, preview, then handles."""
        state = make_state(image, selected_index=1, preview=Rect(0, 0, 40, 40))
        kinds = [type(c) for c in build_draw_list(state)]
        assert kinds == [
            DrawImage,
            DrawBox, DrawBox,
            DrawLabel, DrawLabel,
            DrawPreview,
            DrawHandle, DrawHandle, DrawHandle, DrawHandle,
        ]

    def test_selected_box_is_thicker(self, image):
        """The selected box gets one more unit of line width, scaled to image space."""
        commands = build_draw_list(make_state(image, selected_index=0, line_thickness=2))
        boxes = [c for c in commands if isinstance(c, DrawBox)]
        assert boxes[0].selected and boxes[0].line_width == pytest.approx(1.5)
        assert not boxes[1].selected and boxes[1].line_width == pytest.approx(1.0)

    def test_handles_at_viewport_corners(self, image):
        """Handles sit on the selected box corners in viewport space."""
        commands = build_draw_list(make_state(image, selected_index=0, handle_size=8))
        handles = [c for c in commands if isinstance(c, DrawHandle)]
        centers = [(h.center.x(), h.center.y()) for h in handles]
        assert centers == [(30, 40), (110, 40), (30, 120), (110, 120)]
        assert all(h.size == 8 for h in handles)

    def test_working_geometry_replaces_selected(self, image):
        """During a move the selected box is drawn at its working position."""
        state = make_state(image, selected_index=0, working=Rect(20, 20, 60, 60))
        commands = build_draw_list(state)
        first_box = next(c for c in commands if isinstance(c, DrawBox))
        assert first_box.rect.left() == 20
        label = next(c for c in commands if isinstance(c, DrawLabel))
        assert label.anchor == QPointF(20, 20)

    def test_smoothing_disabled_when_zoomed(self, image):
        """High zoom draws the bitmap without smoothing."""
        zoomed = build_draw_list(make_state(image, transform=Transform(scale=4.0)))
        assert zoomed[0].smooth is False
        normal = build_draw_list(make_state(image, transform=Transform(scale=1.0)))
        assert normal[0].smooth is True

    def test_no_handles_without_selection(self, image):
        """Handles only appear for a selected box."""
        commands = build_draw_list(make_state(image))
        assert not any(isinstance(c, DrawHandle) for c in commands)


class TestPainterBackend:
    """Tests for PainterBackend."""

    def test_paint_onto_image(self, image):
        """Painting a frame draws box outlines onto the target."""
        target = QImage(400, 300, QImage.Format.Format_RGB32)
        target.fill(0)
        state = make_state(image, transform=Transform(), selected_index=0)

        painter = QPainter(target)
        PainterBackend().paint(painter, build_draw_list(state), state.image)
        painter.end()

        # Left edge of the unselected box is red
        color = target.pixelColor(100, 125)
        assert color.red() > 200
        assert color.green() < 50
