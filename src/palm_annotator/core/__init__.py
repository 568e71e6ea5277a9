"""Core business logic modules for Palm Annotator."""

from .models import PREDEFINED_CLASSES, Box, ImageAnnotations
from .config import AppConfig, ConfigManager
from .store import AnnotationStore, MergeReport
from .session import Session
from .interaction import InteractionController
from .yolo_format import YOLOAnnotationFormat
from .pascal_voc_format import PascalVOCAnnotationFormat

__all__ = [
    "PREDEFINED_CLASSES",
    "Box",
    "ImageAnnotations",
    "AppConfig",
    "ConfigManager",
    "AnnotationStore",
    "MergeReport",
    "Session",
    "InteractionController",
    "YOLOAnnotationFormat",
    "PascalVOCAnnotationFormat",
]
