"""Pascal VOC annotation format encoding and decoding."""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union
from xml.sax.saxutils import escape

from .annotation_format import AnnotationFormat, EncodeResult
from .errors import AnnotationError, DecodeFailureError, DegenerateBoxError
from .models import Box, normalize_label

logger = logging.getLogger(__name__)

DEFAULT_FOLDER = "unknown"

# ElementTree only escapes <, > and & in text nodes
_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}

_HEADER = """<?xml version="1.0" encoding="UTF-8"?>
<annotation>
    <folder>{folder}</folder>
    <filename>{filename}</filename>
    <source>
        <database>Unknown</database>
    </source>
    <size>
        <width>{width}</width>
        <height>{height}</height>
        <depth>3</depth>
    </size>
    <segmented>0</segmented>
"""

_OBJECT = """    <object>
        <name>{name}</name>
        <pose>Unspecified</pose>
        <truncated>0</truncated>
        <difficult>0</difficult>
        <bndbox>
            <xmin>{xmin}</xmin>
            <ymin>{ymin}</ymin>
            <xmax>{xmax}</xmax>
            <ymax>{ymax}</ymax>
        </bndbox>
    </object>
"""

_FOOTER = "</annotation>\n"


def escape_xml(text: str) -> str:
    """Escape text for XML element content, quotes included."""
    return escape(str(text), _XML_ENTITIES)


def encode_voc(
    filename: str,
    img_width: int,
    img_height: int,
    boxes: Sequence[Box],
    folder: str = DEFAULT_FOLDER
) -> Tuple[str, List[AnnotationError]]:
    """
    Encode the boxes of one image as a Pascal VOC document.

    Bounds are rounded to integer pixels. A box that collapses after
    rounding is skipped with a warning.

    Args:
        filename: Image filename stored in <filename>
        img_width: Image width in pixels
        img_height: Image height in pixels
        boxes: Boxes to encode
        folder: Value of <folder>

    Returns:
        Tuple of (xml text, skipped errors)
    """
    parts = [
        _HEADER.format(
            folder=escape_xml(folder),
            filename=escape_xml(filename),
            width=int(img_width),
            height=int(img_height),
        )
    ]
    skipped: List[AnnotationError] = []

    for box in boxes:
        xmin, ymin, xmax, ymax = box.rounded()
        if xmax <= xmin or ymax <= ymin:
            error = DegenerateBoxError(
                f"Box '{box.label}' on {filename} collapses to ({xmin},{ymin})-({xmax},{ymax})"
            )
            logger.warning(f"VOC: skipping box: {error}")
            skipped.append(error)
            continue

        parts.append(
            _OBJECT.format(
                name=escape_xml(box.label),
                xmin=xmin,
                ymin=ymin,
                xmax=xmax,
                ymax=ymax,
            )
        )

    parts.append(_FOOTER)
    return "".join(parts), skipped


@dataclass
class VOCDocument:
    """A parsed Pascal VOC annotation file."""

    filename: Optional[str]
    width: Optional[int] = None
    height: Optional[int] = None
    boxes: List[Box] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _child_text(element: ET.Element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    return child.text.strip()


def _parse_int(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _parse_object(obj: ET.Element) -> Box:
    """Parse one <object> element, raising DecodeFailureError when malformed."""
    label = normalize_label(_child_text(obj, "name"))
    if not label:
        raise DecodeFailureError("object without <name>")

    bndbox = obj.find("bndbox")
    if bndbox is None:
        raise DecodeFailureError(f"object '{label}' without <bndbox>")

    coords = []
    for tag in ("xmin", "ymin", "xmax", "ymax"):
        text = _child_text(bndbox, tag)
        try:
            value = float(text) if text is not None else math.nan
        except ValueError:
            value = math.nan
        if not math.isfinite(value):
            raise DecodeFailureError(f"object '{label}' has invalid <{tag}>: {text!r}")
        coords.append(value)

    try:
        return Box(coords[0], coords[1], coords[2], coords[3], label)
    except DegenerateBoxError as e:
        raise DecodeFailureError(str(e)) from e


def decode_voc(content: Union[str, bytes]) -> VOCDocument:
    """
    Parse a Pascal VOC document.

    Malformed objects are skipped and listed in the result; corners are
    normalized and labels trimmed and case-folded.

    Raises:
        DecodeFailureError: If the text is not well-formed XML
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise DecodeFailureError(f"Invalid XML: {e}") from e

    size = root.find("size")
    document = VOCDocument(
        filename=_child_text(root, "filename") or None,
        width=_parse_int(_child_text(size, "width")) if size is not None else None,
        height=_parse_int(_child_text(size, "height")) if size is not None else None,
    )

    for obj in root.iter("object"):
        try:
            document.boxes.append(_parse_object(obj))
        except DecodeFailureError as e:
            logger.warning(f"VOC: skipping object: {e}")
            document.skipped.append(str(e))

    return document


class PascalVOCAnnotationFormat(AnnotationFormat):
    """
    Pascal VOC annotation codec.

    Pascal VOC stores annotations in XML with one file per image:

    <annotation>
        <folder>unknown</folder>
        <filename>image.jpg</filename>
        <source><database>Unknown</database></source>
        <size>
            <width>1920</width>
            <height>1080</height>
            <depth>3</depth>
        </size>
        <segmented>0</segmented>
        <object>
            <name>palma</name>
            <pose>Unspecified</pose>
            <truncated>0</truncated>
            <difficult>0</difficult>
            <bndbox>
                <xmin>100</xmin>
                <ymin>100</ymin>
                <xmax>200</xmax>
                <ymax>200</ymax>
            </bndbox>
        </object>
    </annotation>
    """

    def __init__(
        self,
        classes: Optional[Sequence[str]] = None,
        folder: str = DEFAULT_FOLDER
    ) -> None:
        """Initialize the Pascal VOC codec."""
        super().__init__(classes)
        self.folder = folder

    @property
    def format_name(self) -> str:
        """Return the format name."""
        return "pascal_voc"

    @property
    def file_extension(self) -> str:
        """Pascal VOC uses .xml files."""
        return ".xml"

    @property
    def folder_name(self) -> str:
        return "voc_annotations"

    def encode_image(
        self,
        image_filename: str,
        img_width: int,
        img_height: int,
        boxes: Sequence[Box]
    ) -> EncodeResult:
        """Encode one image as a VOC document."""
        xml, skipped = encode_voc(image_filename, img_width, img_height, boxes, self.folder)
        content: Optional[str] = xml
        if len(skipped) == len(boxes):
            logger.warning(f"No valid VOC objects generated for {image_filename}")
            content = None
        return EncodeResult(self.get_annotation_name(image_filename), content, skipped)

    def decode(
        self,
        content: str,
        img_width: int,
        img_height: int
    ) -> List[Box]:
        """Decode VOC text; the image size is taken from the document."""
        return decode_voc(content).boxes
