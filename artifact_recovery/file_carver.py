"""
File Carver Module for ArtifactRecovery

Header/footer carving over raw buffers. The scan is ascending and greedy: the
first signature (catalog order) that yields an acceptable region at an offset
wins, and the cursor then jumps past that region.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Union

from .signatures import FileCategory, FileSignature, SignatureDB


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

# Confidence scores
CONFIDENCE_FOOTER_FOUND = 95
CONFIDENCE_NO_FOOTER = 60
CONFIDENCE_FOOTER_MISSING = 50


@dataclass
class CarvedFile:
    """Information about a carved byte range."""
    signature_name: str
    extension: str
    start_offset: int
    length: int
    confidence: int
    category: FileCategory
    data: Optional[bytes] = field(default=None, repr=False)  # Only populated if requested

    @property
    def end_offset(self) -> int:
        return self.start_offset + self.length

    @property
    def footer_found(self) -> bool:
        return self.confidence == CONFIDENCE_FOOTER_FOUND

    def as_dict(self) -> dict:
        return {
            'signature_name': self.signature_name,
            'extension': self.extension,
            'category': self.category.value,
            'start_offset': self.start_offset,
            'end_offset': self.end_offset,
            'length': self.length,
            'confidence': self.confidence,
        }


def _resolve_categories(
    categories: Iterable[Union[FileCategory, str]]
) -> List[FileCategory]:
    return [c if isinstance(c, FileCategory) else FileCategory.parse(c) for c in categories]


def _searchable(data):
    # memoryview has no find(); bytes, bytearray and mmap do
    if isinstance(data, memoryview):
        return data.tobytes()
    return data


class FileCarver:
    """
    Signature-based file carver.

    Scans a buffer for carving-catalog headers and reports the byte range each
    recovered file occupies. The buffer is never modified.
    """

    # Headers are located window by window; progress and cancellation are
    # checked between windows and after every carve.
    WINDOW_SIZE = 1024 * 1024

    # The footer search starts this many bytes past the header offset
    MIN_BODY = 10

    # Regions of this length or shorter are discarded
    MIN_CARVE_SIZE = 100

    def __init__(
        self,
        signature_db: Optional[SignatureDB] = None,
        enabled_categories: Optional[Iterable[Union[FileCategory, str]]] = None,
        window_size: Optional[int] = None,
        min_carve_size: Optional[int] = None,
        include_data: bool = False
    ):
        """
        Initialize file carver.

        Args:
            signature_db: Signature database (default: carving catalog)
            enabled_categories: Restrict carving to these categories (None = all)
            window_size: Bytes scanned between progress/cancellation checks
            min_carve_size: Override MIN_CARVE_SIZE
            include_data: Copy the carved bytes into CarvedFile.data
        """
        db = signature_db or SignatureDB.for_carving()
        if enabled_categories is not None:
            db = db.filter_by_categories(_resolve_categories(enabled_categories))
        self.signature_db = db
        self.window_size = window_size or self.WINDOW_SIZE
        self.min_carve_size = self.MIN_CARVE_SIZE if min_carve_size is None else min_carve_size
        self.include_data = include_data

        if self.window_size <= 0:
            raise ValueError("window_size must be positive")

        self.stats = {}
        self.reset_stats()

    def find_footer(
        self,
        data,
        signature: FileSignature,
        offset: int,
        limit: int
    ) -> Optional[int]:
        """
        Find the end of the footer for a file starting at ``offset``.

        Args:
            data: Buffer being carved
            signature: Signature with footer info
            offset: Header offset
            limit: Exclusive bound; the footer must end at or before it

        Returns:
            Position just past the footer, or None if not found
        """
        if signature.footer is None:
            return None

        pos = data.find(signature.footer, offset + self.MIN_BODY, limit)
        if pos == -1:
            return None
        return pos + len(signature.footer)

    def carve_at_offset(
        self,
        data,
        signature: FileSignature,
        offset: int
    ) -> Optional[CarvedFile]:
        """
        Attempt to carve a file whose header sits at ``offset``.

        Returns:
            CarvedFile if the region passes the size checks, None otherwise
        """
        limit = min(offset + signature.max_size, len(data))

        if signature.footer is None:
            length = limit - offset
            confidence = CONFIDENCE_NO_FOOTER
        else:
            footer_end = self.find_footer(data, signature, offset, limit)
            if footer_end is None:
                length = limit - offset
                confidence = CONFIDENCE_FOOTER_MISSING
            else:
                length = footer_end - offset
                confidence = CONFIDENCE_FOOTER_FOUND

        if length <= self.min_carve_size or length >= signature.max_size:
            self.stats['rejected'] += 1
            return None

        return CarvedFile(
            signature_name=signature.name,
            extension=signature.extension,
            start_offset=offset,
            length=length,
            confidence=confidence,
            category=signature.category,
            data=bytes(data[offset:offset + length]) if self.include_data else None,
        )

    def _carve_first(self, data, offset: int) -> Optional[CarvedFile]:
        for sig in self.signature_db.match_all(data, offset):
            self.stats['headers_found'] += 1
            carved = self.carve_at_offset(data, sig, offset)
            if carved is not None:
                return carved
        return None

    def _next_candidate(
        self,
        data,
        next_hit: Dict[int, int],
        cursor: int,
        window_end: int
    ) -> Optional[int]:
        """Smallest header position in [cursor, window_end), or None."""
        best = None
        for index, sig in enumerate(self.signature_db):
            pos = next_hit.get(index)
            if pos is None or (pos != -1 and pos < cursor):
                pos = data.find(sig.header, cursor)
                next_hit[index] = pos
            if pos != -1 and pos < window_end and (best is None or pos < best):
                best = pos
        return best

    def scan_buffer(
        self,
        data,
        start_offset: int = 0,
        end_offset: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event=None
    ) -> Iterator[CarvedFile]:
        """
        Scan a buffer for all recoverable files.

        Args:
            data: Buffer to scan (bytes, bytearray, memoryview or mmap)
            start_offset: First offset at which a header may start
            end_offset: Headers must start before this offset (None = end of data)
            progress_callback: Called with the cursor position
            cancel_event: Object with ``is_set()``; scanning stops once it is set

        Yields:
            CarvedFile for each recovered file, in ascending offset order
        """
        data = _searchable(data)
        end = len(data) if end_offset is None else min(end_offset, len(data))
        cursor = max(0, start_offset)
        next_hit: Dict[int, int] = {}

        while cursor < end:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Carving cancelled at offset %d", cursor)
                return

            window_end = min(cursor + self.window_size, end)
            while cursor < window_end:
                offset = self._next_candidate(data, next_hit, cursor, window_end)
                if offset is None:
                    cursor = window_end
                    break

                carved = self._carve_first(data, offset)
                if carved is None:
                    cursor = offset + 1
                    continue

                self.stats['files_carved'] += 1
                self.stats['bytes_carved'] += carved.length
                cursor = carved.end_offset
                logger.debug(
                    "Carved %s at %d (%d bytes, confidence %d)",
                    carved.signature_name, carved.start_offset,
                    carved.length, carved.confidence
                )
                yield carved

                if progress_callback:
                    progress_callback(cursor)
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Carving cancelled at offset %d", cursor)
                    return

            if progress_callback:
                progress_callback(min(cursor, end))

    def carve(self, data, **kwargs) -> List[CarvedFile]:
        """Scan ``data`` and collect every carved file (blocking)."""
        return list(self.scan_buffer(data, **kwargs))

    def reset_stats(self):
        """Reset statistics."""
        self.stats = {
            'headers_found': 0,
            'files_carved': 0,
            'bytes_carved': 0,
            'rejected': 0,
        }


def carve(
    buffer,
    enabled_categories: Optional[Iterable[Union[FileCategory, str]]] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event=None
) -> List[CarvedFile]:
    """
    Carve every recoverable file out of ``buffer``.

    Args:
        buffer: Raw image content
        enabled_categories: Categories to carve (None = all)
        progress_callback: Called with the cursor position
        cancel_event: ``threading.Event``-like; when set, results so far are returned

    Returns:
        Carved files in ascending offset order
    """
    carver = FileCarver(enabled_categories=enabled_categories)
    return carver.carve(
        buffer,
        progress_callback=progress_callback,
        cancel_event=cancel_event,
    )
