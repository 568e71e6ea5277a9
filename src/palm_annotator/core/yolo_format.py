"""YOLO annotation format encoding and decoding."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from .annotation_format import AnnotationFormat, EncodeResult
from .errors import (
    AnnotationError,
    DecodeFailureError,
    DegenerateBoxError,
    InvalidDimensionsError,
    UnknownClassError,
)
from .geometry import clamp
from .models import Box

logger = logging.getLogger(__name__)

CLASSES_FILENAME = "classes.txt"


def format_yolo_line(
    img_width: float,
    img_height: float,
    box: Box,
    class_list: Sequence[str]
) -> str:
    """
    Format a single box as a YOLO annotation line.

    Args:
        img_width: Image width in pixels
        img_height: Image height in pixels
        box: Box to format
        class_list: Ordered class names; the index is the class ID

    Returns:
        "<class_id> <x_center> <y_center> <width> <height>" with values
        normalized to [0, 1] and 6 decimals

    Raises:
        UnknownClassError: If the label is not in class_list
        InvalidDimensionsError: If either image dimension is not positive
    """
    if box.label not in class_list:
        raise UnknownClassError(box.label)
    class_id = list(class_list).index(box.label)

    if img_width <= 0 or img_height <= 0:
        raise InvalidDimensionsError(img_width, img_height)

    x_center = clamp((box.x1 + box.x2) / 2.0 / img_width, 0.0, 1.0)
    y_center = clamp((box.y1 + box.y2) / 2.0 / img_height, 0.0, 1.0)
    width = clamp(box.width / img_width, 0.0, 1.0)
    height = clamp(box.height / img_height, 0.0, 1.0)

    if width <= 1e-6 or height <= 1e-6:
        logger.warning(f"YOLO: normalized size of '{box.label}' is very small, line written anyway")

    return f"{class_id} {x_center:.6f} {y_center:.6f} {width:.6f} {height:.6f}"


def encode_yolo(
    img_width: float,
    img_height: float,
    boxes: Sequence[Box],
    class_list: Sequence[str]
) -> Tuple[List[str], List[AnnotationError]]:
    """
    Encode boxes as YOLO lines.

    Boxes that cannot be encoded are skipped with a warning and returned
    in the second element instead of failing the whole image.

    Returns:
        Tuple of (lines, skipped errors)
    """
    lines: List[str] = []
    skipped: List[AnnotationError] = []

    for box in boxes:
        try:
            lines.append(format_yolo_line(img_width, img_height, box, class_list))
        except (UnknownClassError, InvalidDimensionsError) as e:
            logger.warning(f"YOLO: skipping box '{box.label}': {e}")
            skipped.append(e)

    return lines, skipped


def decode_yolo_line(
    line: str,
    img_width: float,
    img_height: float,
    class_list: Sequence[str]
) -> Box:
    """
    Parse one YOLO line back into a pixel-space box.

    Raises:
        DecodeFailureError: If the line is malformed or the box is empty
        InvalidDimensionsError: If either image dimension is not positive
    """
    if img_width <= 0 or img_height <= 0:
        raise InvalidDimensionsError(img_width, img_height)

    data = line.split()
    if len(data) != 5:
        raise DecodeFailureError(f"Expected 5 values, got {len(data)}: {line!r}")

    try:
        class_id = int(data[0])
        x_center, y_center, width, height = map(float, data[1:])
    except ValueError as e:
        raise DecodeFailureError(f"Invalid YOLO line {line!r}: {e}") from e

    if 0 <= class_id < len(class_list):
        label = class_list[class_id]
    else:
        label = str(class_id)

    try:
        return Box(
            (x_center - width / 2) * img_width,
            (y_center - height / 2) * img_height,
            (x_center + width / 2) * img_width,
            (y_center + height / 2) * img_height,
            label,
        )
    except DegenerateBoxError as e:
        raise DecodeFailureError(str(e)) from e


def decode_yolo(
    content: str,
    img_width: float,
    img_height: float,
    class_list: Sequence[str]
) -> List[Box]:
    """Parse YOLO text, skipping malformed lines."""
    boxes: List[Box] = []
    for line_num, line in enumerate(content.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            boxes.append(decode_yolo_line(line, img_width, img_height, class_list))
        except DecodeFailureError as e:
            logger.warning(f"Error parsing line {line_num}: {e}")
    return boxes


class YOLOAnnotationFormat(AnnotationFormat):
    """
    YOLO annotation codec.

    One .txt file per image, each line
    "class_id x_center y_center width height" normalized to [0, 1],
    plus a classes.txt listing the class names in ID order.
    """

    @property
    def format_name(self) -> str:
        """Return the format name."""
        return "yolo"

    @property
    def file_extension(self) -> str:
        """YOLO uses .txt files."""
        return ".txt"

    @property
    def folder_name(self) -> str:
        return "yolo_annotations"

    def dataset_files(self) -> Dict[str, str]:
        """classes.txt with one class name per line."""
        return {CLASSES_FILENAME: "\n".join(self.classes)}

    def encode_image(
        self,
        image_filename: str,
        img_width: int,
        img_height: int,
        boxes: Sequence[Box]
    ) -> EncodeResult:
        """Encode all boxes of an image as YOLO lines."""
        lines, skipped = encode_yolo(img_width, img_height, boxes, self.classes)
        content: Optional[str] = "\n".join(lines) if lines else None
        if content is None:
            logger.warning(f"No valid YOLO lines generated for {image_filename}")
        return EncodeResult(self.get_annotation_name(image_filename), content, skipped)

    def decode(
        self,
        content: str,
        img_width: int,
        img_height: int
    ) -> List[Box]:
        """Decode YOLO text using the current class list."""
        return decode_yolo(content, img_width, img_height, self.classes)
