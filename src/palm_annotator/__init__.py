"""
Palm Annotator - A desktop bounding box annotation tool for hand region datasets.

Built with PyQt6. Exports YOLO and Pascal VOC annotations plus per-box image crops.
"""

__version__ = "1.0.0"
__author__ = "Palm Annotator Team"
