"""Annotation canvas widget: forwards Qt input to the controller and paints."""

from __future__ import annotations

import logging
from typing import Optional

from PyQt6.QtCore import QEvent, QPointF, QSizeF, Qt
from PyQt6.QtGui import (
    QColor, QKeyEvent, QMouseEvent, QPainter, QPaintEvent, QResizeEvent, QWheelEvent
)
from PyQt6.QtWidgets import QWidget

from ..core.config import AppConfig
from ..core.interaction import InteractionController, KeyEvent, PointerEvent, WheelEvent
from .renderer import PainterBackend, RenderState, build_draw_list

logger = logging.getLogger(__name__)

# Named keys understood by the controller
_KEY_NAMES = {
    Qt.Key.Key_Left.value: "left",
    Qt.Key.Key_Right.value: "right",
    Qt.Key.Key_Delete.value: "delete",
    Qt.Key.Key_Backspace.value: "backspace",
    Qt.Key.Key_Escape.value: "escape",
}


def key_event_from_qt(event: QKeyEvent) -> Optional[KeyEvent]:
    """Translate a QKeyEvent, or None for keys the controller ignores."""
    code = event.key()
    name = _KEY_NAMES.get(code)
    if name is None:
        text = event.text()
        if len(text) == 1 and text.isprintable():
            name = text
        elif Qt.Key.Key_A.value <= code <= Qt.Key.Key_Z.value:
            # Ctrl combinations deliver control characters as text
            name = chr(code).lower()
        else:
            return None

    modifiers = event.modifiers()
    return KeyEvent(
        name,
        ctrl=bool(modifiers & Qt.KeyboardModifier.ControlModifier),
        alt=bool(modifiers & Qt.KeyboardModifier.AltModifier),
        meta=bool(modifiers & Qt.KeyboardModifier.MetaModifier),
    )


class AnnotationCanvas(QWidget):
    """
    Viewport widget showing the current image and its boxes.

    Coordinates are logical pixels; Qt applies the device pixel ratio
    both to painting and to input positions.
    """

    def __init__(
        self,
        controller: InteractionController,
        config: Optional[AppConfig] = None,
        parent: Optional[QWidget] = None
    ) -> None:
        super().__init__(parent)
        self.controller = controller
        self.config = config if config is not None else controller.config
        self.backend = PainterBackend()

        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setMinimumSize(200, 200)
        self.setAutoFillBackground(True)

        controller.repaint_requested.connect(self.update)
        controller.cursor_changed.connect(self._set_cursor_shape)

    def _set_cursor_shape(self, shape: Qt.CursorShape) -> None:
        self.setCursor(shape)

    def render_state(self) -> RenderState:
        return RenderState.from_session(self.controller.session, self.controller.state, self.config)

    # === Qt events ===

    def paintEvent(self, event: QPaintEvent) -> None:
        """Paint the current frame."""
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(64, 64, 64))
        state = self.render_state()
        self.backend.paint(painter, build_draw_list(state), state.image)
        painter.end()

    def resizeEvent(self, event: QResizeEvent) -> None:
        """Refit the image to the new size."""
        super().resizeEvent(event)
        self.controller.set_viewport_size(QSizeF(event.size()))

    def mousePressEvent(self, event: QMouseEvent) -> None:
        self.setFocus()
        self.controller.on_pointer_down(PointerEvent(event.position(), event.button()))

    def mouseMoveEvent(self, event: QMouseEvent) -> None:
        self.controller.on_pointer_move(PointerEvent(event.position(), Qt.MouseButton.NoButton))

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        self.controller.on_pointer_up(PointerEvent(event.position(), event.button()))

    def mouseDoubleClickEvent(self, event: QMouseEvent) -> None:
        self.controller.on_double_click(PointerEvent(event.position(), event.button()))

    def leaveEvent(self, event: QEvent) -> None:
        state = self.controller.state
        position = state.last if state.last is not None else QPointF()
        self.controller.on_pointer_leave(PointerEvent(position, Qt.MouseButton.NoButton))
        super().leaveEvent(event)

    def wheelEvent(self, event: QWheelEvent) -> None:
        """Zoom around the cursor."""
        self.controller.on_wheel(WheelEvent(event.position(), event.angleDelta().y()))
        event.accept()

    def keyPressEvent(self, event: QKeyEvent) -> None:
        key_event = key_event_from_qt(event)
        if key_event is not None and self.controller.on_key_down(key_event):
            event.accept()
            return
        super().keyPressEvent(event)
