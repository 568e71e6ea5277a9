"""UI components for Palm Annotator."""

from .canvas import AnnotationCanvas
from .main_window import MainWindow
from .renderer import PainterBackend, RenderState, build_draw_list

__all__ = [
    "AnnotationCanvas",
    "MainWindow",
    "PainterBackend",
    "RenderState",
    "build_draw_list",
]
