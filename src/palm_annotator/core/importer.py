"""Import of Pascal VOC annotation files into the annotation store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .annotation_format import base_name
from .errors import DecodeFailureError
from .format_registry import FormatRegistry
from .pascal_voc_format import decode_voc
from .store import AnnotationStore

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    """Per-file outcome of a VOC import batch."""

    updated_images: List[str] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    not_xml: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    conflicts: Dict[str, List[str]] = field(default_factory=dict)
    new_classes: Set[str] = field(default_factory=set)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        """One-line status text for the batch."""
        text = f"XML files loaded. {len(self.updated_images)} images updated. Errors: {self.error_count}."
        if self.unmatched:
            text += f" Unmatched: {len(self.unmatched)}."
        if self.conflicts:
            text += " Duplicate classes were ignored."
        return text


def match_image(
    xml_name: str,
    document_filename: Optional[str],
    image_names: Sequence[str]
) -> Optional[str]:
    """
    Find the loaded image an annotation file belongs to.

    The <filename> element wins when it names a loaded image exactly;
    otherwise the XML file's base name is compared with image base names.
    """
    if document_filename and document_filename in image_names:
        return document_filename

    stem = base_name(xml_name)
    for name in image_names:
        if base_name(name) == stem:
            return name
    return None


def import_voc_texts(
    store: AnnotationStore,
    image_names: Sequence[str],
    files: Iterable[Tuple[str, str]]
) -> ImportReport:
    """
    Merge VOC documents given as (file name, text) pairs.

    Each file is handled on its own: unparseable or unmatched files are
    reported and skipped, the rest are merged first occurrence wins.
    """
    report = ImportReport()
    known_before = set(store.known_classes)

    for xml_name, text in files:
        try:
            document = decode_voc(text)
        except DecodeFailureError as e:
            logger.error(f"Error processing {xml_name}: {e}")
            report.errors[xml_name] = str(e)
            continue

        target = match_image(xml_name, document.filename, image_names)
        if target is None:
            logger.warning(f"No matching image for annotation file {xml_name}")
            report.unmatched.append(xml_name)
            continue

        merge = store.merge(target, document.boxes)
        if merge.conflicts:
            logger.warning(f"Duplicate classes ignored while loading {xml_name}: {merge.conflicts}")
            report.conflicts.setdefault(target, []).extend(merge.conflicts)
        if merge.added or not (document.boxes or merge.conflicts):
            if target not in report.updated_images:
                report.updated_images.append(target)

    report.new_classes = set(store.known_classes) - known_before
    logger.info(report.summary())
    return report


def import_voc_files(
    store: AnnotationStore,
    image_names: Sequence[str],
    paths: Iterable[Path]
) -> ImportReport:
    """
    Read and merge VOC files from disk.

    Files without a .xml extension are skipped; unreadable files are
    reported as errors.
    """
    texts: List[Tuple[str, str]] = []
    read_errors: Dict[str, str] = {}
    not_xml: List[str] = []

    for path in paths:
        path = Path(path)
        if FormatRegistry.format_for_file(path) != "pascal_voc":
            logger.warning(f"Skipping non-XML file: {path.name}")
            not_xml.append(path.name)
            continue
        try:
            texts.append((path.name, path.read_text(encoding="utf-8")))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading {path}: {e}")
            read_errors[path.name] = str(e)

    report = import_voc_texts(store, image_names, texts)
    report.not_xml.extend(not_xml)
    report.errors.update(read_errors)
    return report
