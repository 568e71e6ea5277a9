"""Renderer: turns the session state into draw commands and paints them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from PyQt6.QtCore import QPointF, QRectF, Qt
from PyQt6.QtGui import QColor, QFont, QFontMetricsF, QImage, QPainter, QPen, QTransform

from ..core.config import AppConfig
from ..core.geometry import Rect, Transform, handle_positions
from ..core.interaction import InteractionMode, InteractionState
from ..core.models import Box
from ..core.session import Session

logger = logging.getLogger(__name__)

# Above this zoom the bitmap is drawn without smoothing so pixels stay crisp
SMOOTHING_MAX_SCALE = 3.0

BOX_COLOR = QColor(255, 0, 0)
BOX_FILL = QColor(255, 0, 0, 25)
SELECTED_COLOR = QColor(0, 255, 255)
SELECTED_FILL = QColor(0, 255, 255, 38)
LABEL_BACKGROUND = QColor(200, 0, 0, 230)
SELECTED_LABEL_BACKGROUND = QColor(0, 200, 200, 230)
PREVIEW_COLOR = QColor(0, 0, 255, 204)
HANDLE_FILL = QColor(0, 255, 255, 204)


@dataclass
class RenderState:
    """
    Everything needed to draw one frame.

    working replaces the committed geometry of the selected box while it
    is being moved or resized; preview is the viewport rectangle of a
    box being drawn.
    """

    image: Optional[QImage] = None
    transform: Transform = field(default_factory=Transform)
    boxes: List[Box] = field(default_factory=list)
    selected_index: Optional[int] = None
    working: Optional[Rect] = None
    preview: Optional[Rect] = None
    line_thickness: float = 2
    font_size: float = 14
    handle_size: float = 8

    @classmethod
    def from_session(
        cls,
        session: Session,
        state: InteractionState,
        config: AppConfig
    ) -> RenderState:
        """Snapshot the session and gesture state for drawing."""
        working = None
        if state.dragging and state.mode in (InteractionMode.MOVE, InteractionMode.RESIZE):
            working = state.working

        preview = None
        if (
            state.dragging
            and state.mode == InteractionMode.DRAW
            and state.anchor is not None
            and state.last is not None
        ):
            preview = Rect.from_points(state.anchor, state.last)

        return cls(
            image=session.image,
            transform=session.transform,
            boxes=session.store.boxes(session.current_image_id),
            selected_index=session.selected_index,
            working=working,
            preview=preview,
            line_thickness=config.line_thickness,
            font_size=config.font_size,
            handle_size=config.handle_size,
        )


@dataclass(frozen=True)
class DrawImage:
    """Draw the bitmap and set the image-to-viewport transform for what follows."""

    scale: float
    pan_x: float
    pan_y: float
    smooth: bool


@dataclass(frozen=True)
class DrawBox:
    """Box outline in image space."""

    rect: QRectF
    selected: bool
    line_width: float


@dataclass(frozen=True)
class DrawLabel:
    """Label tag anchored at the top-left corner of a box, image space."""

    text: str
    anchor: QPointF
    selected: bool
    font_size: float
    padding: float


@dataclass(frozen=True)
class DrawPreview:
    """Dashed rectangle of a box being drawn, viewport space."""

    rect: QRectF


@dataclass(frozen=True)
class DrawHandle:
    """Square resize handle of fixed screen size, viewport space."""

    center: QPointF
    size: float


DrawCommand = Union[DrawImage, DrawBox, DrawLabel, DrawPreview, DrawHandle]


def _displayed_rect(state: RenderState, index: int) -> Rect:
    if index == state.selected_index and state.working is not None:
        return state.working.normalized()
    return state.boxes[index].rect


def build_draw_list(state: RenderState) -> List[DrawCommand]:
    """
    Build the draw commands for one frame.

    Order: image, boxes, labels, draw preview, handles. Nothing is drawn
    without an image.
    """
    if state.image is None:
        return []

    transform = state.transform
    scale = transform.scale if transform.scale > 0 else 1.0
    commands: List[DrawCommand] = [
        DrawImage(scale, transform.pan_x, transform.pan_y, scale < SMOOTHING_MAX_SCALE)
    ]

    rects = [_displayed_rect(state, i) for i in range(len(state.boxes))]

    for i, rect in enumerate(rects):
        selected = i == state.selected_index
        width = (state.line_thickness + (1 if selected else 0)) / scale
        commands.append(DrawBox(rect.to_qrectf(), selected, width))

    for i, (box, rect) in enumerate(zip(state.boxes, rects)):
        commands.append(
            DrawLabel(
                box.label,
                QPointF(rect.x1, rect.y1),
                i == state.selected_index,
                state.font_size / scale,
                2 / scale,
            )
        )

    if state.preview is not None:
        commands.append(DrawPreview(state.preview.to_qrectf()))

    if state.selected_index is not None and 0 <= state.selected_index < len(rects):
        viewport_rect = transform.rect_to_viewport(rects[state.selected_index])
        for _, corner in handle_positions(viewport_rect):
            commands.append(DrawHandle(corner, state.handle_size))

    return commands


class PainterBackend:
    """Executes draw commands on a QPainter."""

    def paint(self, painter: QPainter, commands: List[DrawCommand], image: Optional[QImage]) -> None:
        """Paint a command list built by build_draw_list."""
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        for command in commands:
            if isinstance(command, DrawImage):
                self._draw_image(painter, command, image)
            elif isinstance(command, DrawBox):
                self._draw_box(painter, command)
            elif isinstance(command, DrawLabel):
                self._draw_label(painter, command)
            elif isinstance(command, DrawPreview):
                self._draw_preview(painter, command)
            elif isinstance(command, DrawHandle):
                self._draw_handle(painter, command)
        painter.resetTransform()

    def _draw_image(self, painter: QPainter, command: DrawImage, image: Optional[QImage]) -> None:
        painter.setTransform(QTransform(command.scale, 0, 0, command.scale, command.pan_x, command.pan_y))
        if image is None or image.isNull():
            return
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, command.smooth)
        painter.drawImage(QPointF(0, 0), image)
        painter.setRenderHint(QPainter.RenderHint.SmoothPixmapTransform, True)

    def _draw_box(self, painter: QPainter, command: DrawBox) -> None:
        color = SELECTED_COLOR if command.selected else BOX_COLOR
        painter.setPen(QPen(color, command.line_width))
        painter.setBrush(SELECTED_FILL if command.selected else BOX_FILL)
        painter.drawRect(command.rect)

    def _draw_label(self, painter: QPainter, command: DrawLabel) -> None:
        """Draw a label with background inside the top-left corner of its box."""
        font = QFont("Arial")
        font.setBold(True)
        font.setPixelSize(max(1, round(command.font_size)))
        metrics = QFontMetricsF(font)
        text_width = metrics.horizontalAdvance(command.text)
        text_height = metrics.height()

        background_rect = QRectF(
            command.anchor.x(),
            command.anchor.y(),
            text_width + 2 * command.padding,
            text_height + command.padding
        )

        painter.setPen(Qt.PenStyle.NoPen)
        painter.setBrush(SELECTED_LABEL_BACKGROUND if command.selected else LABEL_BACKGROUND)
        painter.drawRect(background_rect)

        painter.setFont(font)
        painter.setPen(Qt.GlobalColor.white)
        painter.drawText(background_rect, Qt.AlignmentFlag.AlignCenter, command.text)

    def _draw_preview(self, painter: QPainter, command: DrawPreview) -> None:
        painter.resetTransform()
        pen = QPen(PREVIEW_COLOR, 1, Qt.PenStyle.DashLine)
        painter.setPen(pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawRect(command.rect)

    def _draw_handle(self, painter: QPainter, command: DrawHandle) -> None:
        painter.resetTransform()
        half = command.size / 2
        painter.setPen(QPen(Qt.GlobalColor.black, 1))
        painter.setBrush(HANDLE_FILL)
        painter.drawRect(QRectF(command.center.x() - half, command.center.y() - half, command.size, command.size))
