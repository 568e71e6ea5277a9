"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Widgets and QImage work without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication for tests that need it."""
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])

    yield app


@pytest.fixture
def store():
    """Annotation store with the predefined classes."""
    from palm_annotator.core.store import AnnotationStore

    return AnnotationStore()


@pytest.fixture
def sample_voc_xml():
    """Pascal VOC document for hand.jpg with two objects."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<annotation>\n"
        "    <folder>unknown</folder>\n"
        "    <filename>hand.jpg</filename>\n"
        "    <size><width>640</width><height>480</height><depth>3</depth></size>\n"
        "    <object>\n"
        "        <name>Palma</name>\n"
        "        <bndbox><xmin>10</xmin><ymin>20</ymin><xmax>110</xmax><ymax>220</ymax></bndbox>\n"
        "    </object>\n"
        "    <object>\n"
        "        <name>tenar</name>\n"
        "        <bndbox><xmin>300</xmin><ymin>200</ymin><xmax>250</xmax><ymax>100</ymax></bndbox>\n"
        "    </object>\n"
        "</annotation>\n"
    )


@pytest.fixture
def sample_yolo_text():
    """YOLO lines for a 200x100 image with the predefined classes sorted."""
    return (
        "3 0.500000 0.500000 0.200000 0.100000\n"
        "4 0.250000 0.300000 0.100000 0.200000\n"
    )
