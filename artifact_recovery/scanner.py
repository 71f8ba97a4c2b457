"""
Scanner Module for ArtifactRecovery

Drives a FileCarver over a buffer while tracking progress and owning the
cancellation event.
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass, replace
from typing import Callable, Iterator, List, Optional

from .file_carver import CarvedFile, FileCarver


logger = logging.getLogger(__name__)


@dataclass
class ScanProgress:
    """Scanning progress information."""
    total_bytes: int
    scanned_bytes: int = 0
    files_found: int = 0
    elapsed_time: float = 0.0
    cursor: int = 0
    cancelled: bool = False

    @property
    def percent_complete(self) -> float:
        if self.total_bytes == 0:
            return 100.0
        return (self.scanned_bytes / self.total_bytes) * 100

    @property
    def bytes_per_second(self) -> float:
        if self.elapsed_time == 0:
            return 0.0
        return self.scanned_bytes / self.elapsed_time

    @property
    def eta_seconds(self) -> float:
        if self.bytes_per_second == 0:
            return 0.0
        remaining = self.total_bytes - self.scanned_bytes
        return remaining / self.bytes_per_second

    def as_dict(self) -> dict:
        result = asdict(self)
        result['percent_complete'] = round(self.percent_complete, 2)
        return result


class CarveScanner:
    """
    Cooperative carving scan with progress tracking.

    ``cancel()`` may be called from another thread or a signal handler; the
    running scan stops at the next window boundary or carve and the files
    found so far remain valid.
    """

    def __init__(
        self,
        carver: Optional[FileCarver] = None,
        progress_callback: Optional[Callable[[ScanProgress], None]] = None
    ):
        """
        Initialize scanner.

        Args:
            carver: File carver instance (default: all carving signatures)
            progress_callback: Receives a ScanProgress snapshot on every update
        """
        self.carver = carver or FileCarver()
        self.progress_callback = progress_callback

        self._cancelled = threading.Event()
        self._progress_lock = threading.Lock()
        self._progress = ScanProgress(total_bytes=0)
        self._start_time = 0.0
        self._start_offset = 0
        self._end_offset = 0

    def _notify(self):
        if self.progress_callback:
            self.progress_callback(self.get_progress())

    def _on_cursor(self, cursor: int):
        with self._progress_lock:
            position = min(cursor, self._end_offset)
            self._progress.cursor = position
            self._progress.scanned_bytes = max(0, position - self._start_offset)
            self._progress.elapsed_time = time.time() - self._start_time
        self._notify()

    def scan(
        self,
        data,
        start_offset: int = 0,
        end_offset: Optional[int] = None
    ) -> Iterator[CarvedFile]:
        """
        Scan ``data`` for carvable files.

        Args:
            data: Buffer to scan
            start_offset: Resume position
            end_offset: Headers must start before this offset (None = end of data)

        Yields:
            Carved files as they are found, in ascending offset order
        """
        self._cancelled.clear()
        self._start_time = time.time()
        self._start_offset = max(0, start_offset)
        self._end_offset = len(data) if end_offset is None else min(end_offset, len(data))

        with self._progress_lock:
            self._progress = ScanProgress(
                total_bytes=max(0, self._end_offset - self._start_offset),
                cursor=self._start_offset,
            )

        for carved in self.carver.scan_buffer(
            data,
            start_offset=self._start_offset,
            end_offset=self._end_offset,
            progress_callback=self._on_cursor,
            cancel_event=self._cancelled,
        ):
            with self._progress_lock:
                self._progress.files_found += 1
            yield carved

        with self._progress_lock:
            self._progress.cancelled = self._cancelled.is_set()
            if not self._progress.cancelled:
                self._progress.cursor = max(self._progress.cursor, self._end_offset)
                self._progress.scanned_bytes = self._progress.total_bytes
            self._progress.elapsed_time = time.time() - self._start_time
        if self._progress.cancelled:
            logger.info("Scan cancelled at offset %d", self._progress.cursor)
        self._notify()

    def scan_collect(
        self,
        data,
        start_offset: int = 0,
        end_offset: Optional[int] = None
    ) -> List[CarvedFile]:
        """Scan and collect all results (blocking)."""
        return list(self.scan(data, start_offset, end_offset))

    def cancel(self):
        """Cancel ongoing scan."""
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        """Check if scan was cancelled."""
        return self._cancelled.is_set()

    def get_progress(self) -> ScanProgress:
        """Get a snapshot of the current progress."""
        with self._progress_lock:
            return replace(self._progress)


def format_progress(progress: ScanProgress) -> str:
    """Format progress for display."""
    percent = progress.percent_complete
    speed_mb = progress.bytes_per_second / (1024 * 1024)
    eta = progress.eta_seconds

    if eta < 60:
        eta_str = f"{eta:.0f}s"
    elif eta < 3600:
        eta_str = f"{eta / 60:.1f}m"
    else:
        eta_str = f"{eta / 3600:.1f}h"

    return (
        f"Progress: {percent:.1f}% | "
        f"Files: {progress.files_found} | "
        f"Offset: {progress.cursor:#x} | "
        f"Speed: {speed_mb:.1f} MB/s | "
        f"ETA: {eta_str}"
    )
