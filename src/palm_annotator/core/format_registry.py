"""Format registry for annotation export handlers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, Union

from .annotation_format import AnnotationFormat
from .pascal_voc_format import PascalVOCAnnotationFormat
from .yolo_format import YOLOAnnotationFormat

logger = logging.getLogger(__name__)


# Format display names
FORMAT_DISPLAY_NAMES = {
    "yolo": "YOLO",
    "pascal_voc": "Pascal VOC",
}

# Format descriptions
FORMAT_DESCRIPTIONS = {
    "yolo": "One .txt file per image with normalized coordinates, plus classes.txt",
    "pascal_voc": "One .xml file per image (ImageNet/VOC format)",
}


class FormatRegistry:
    """
    Registry for annotation format handlers.

    Export writes every registered format side by side.
    """

    # Map format names to handler classes
    _formats: Dict[str, Type[AnnotationFormat]] = {
        "yolo": YOLOAnnotationFormat,
        "pascal_voc": PascalVOCAnnotationFormat,
    }

    @classmethod
    def get_format_names(cls) -> List[str]:
        """Get list of available format names."""
        return list(cls._formats.keys())

    @classmethod
    def get_display_name(cls, format_name: str) -> str:
        """Get the display name for a format."""
        return FORMAT_DISPLAY_NAMES.get(format_name, format_name)

    @classmethod
    def get_description(cls, format_name: str) -> str:
        """Get the description for a format."""
        return FORMAT_DESCRIPTIONS.get(format_name, "")

    @classmethod
    def get_handler(
        cls,
        format_name: str,
        classes: Optional[Sequence[str]] = None
    ) -> AnnotationFormat:
        """
        Get an instance of a format handler.

        Args:
            format_name: Name of the format (yolo, pascal_voc)
            classes: Ordered class names to initialize the handler with

        Returns:
            AnnotationFormat instance

        Raises:
            ValueError: If format name is unknown
        """
        if format_name not in cls._formats:
            raise ValueError(f"Unknown format: {format_name}")

        handler_class = cls._formats[format_name]
        return handler_class(classes)

    @classmethod
    def get_handlers(cls, classes: Optional[Sequence[str]] = None) -> List[AnnotationFormat]:
        """Instantiate every registered handler with the same class list."""
        return [cls.get_handler(name, classes) for name in cls._formats]

    @classmethod
    def format_for_file(cls, path: Union[str, Path]) -> Optional[str]:
        """
        Find the format whose annotation extension matches a file.

        Returns:
            Format name, or None if no handler reads this extension
        """
        suffix = Path(path).suffix.lower()
        for name in cls._formats:
            if cls.get_handler(name).file_extension == suffix:
                return name
        logger.debug(f"No annotation format for {path}")
        return None
