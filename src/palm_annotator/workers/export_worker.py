"""Background export worker thread."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from ..core.exporter import ExportResult, package

logger = logging.getLogger(__name__)


class ExportWorker(QThread):
    """
    Background thread running an export job and packaging its files.

    The job builds an ExportResult (encoding may fan out further); the
    worker then writes the files as one archive or individually. There is
    no cancellation: the job runs to completion or failure.
    """

    # Signal emitted when files were written (result, written paths)
    export_finished = pyqtSignal(object, list)

    # Signal emitted when nothing could be exported or writing failed
    export_failed = pyqtSignal(str)

    def __init__(
        self,
        job: Callable[[], ExportResult],
        directory: Path,
        archive_name: Optional[str] = None
    ) -> None:
        """
        Initialize the export worker.

        Args:
            job: Callable producing the files to write
            directory: Target directory
            archive_name: Zip file name, or None to write individual files
        """
        super().__init__()
        self.job = job
        self.directory = Path(directory)
        self.archive_name = archive_name

    def run(self) -> None:
        """Run the export job in the background thread."""
        # Every run ends with exactly one of the two signals
        try:
            result = self.job()
        except Exception as e:
            logger.error(f"Export job failed: {e}", exc_info=True)
            self.export_failed.emit(f"Export failed: {e}")
            return

        if not result.ok:
            self.export_failed.emit("No valid annotations found to save in any format.")
            return

        try:
            written: List[Path] = package(result.files, self.directory, self.archive_name)
        except OSError as e:
            logger.error(f"Error writing export to {self.directory}: {e}")
            self.export_failed.emit(f"Error writing export: {e}")
            return

        self.export_finished.emit(result, written)
