"""
Carver Engine Module for ArtifactRecovery

Orchestrates a carving run: maps the image, scans it, writes every accepted
range to the output directory, hashes it and tracks duplicates.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from .block_reader import BlockReader
from .file_carver import CarvedFile, FileCarver
from .hasher import FileHash, HashAlgorithm, HashValidator
from .scanner import CarveScanner, ScanProgress
from .signatures import FileCategory


logger = logging.getLogger(__name__)


@dataclass
class RecoveredFile:
    """Complete information about a recovered file."""
    carved: CarvedFile
    file_hash: FileHash
    output_path: str
    is_duplicate: bool = False
    duplicate_of: Optional[str] = None

    @property
    def filename(self) -> str:
        return Path(self.output_path).name if self.output_path else ""

    @property
    def file_type(self) -> str:
        return self.carved.signature_name

    @property
    def size(self) -> int:
        return self.carved.length

    def as_dict(self) -> dict:
        result = self.carved.as_dict()
        result.update({
            'filename': self.filename,
            'output_path': self.output_path,
            'hashes': self.file_hash.as_dict(),
            'is_duplicate': self.is_duplicate,
            'duplicate_of': self.duplicate_of,
        })
        return result


@dataclass
class CarveSession:
    """Information about a carving session."""
    source_path: str
    source_size: int
    output_dir: str
    start_time: datetime
    end_time: Optional[datetime] = None

    # Settings
    categories: List[str] = field(default_factory=list)
    start_offset: int = 0

    # Results
    files_recovered: List[RecoveredFile] = field(default_factory=list)
    total_bytes_carved: int = 0
    duplicates_skipped: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False
    last_offset: int = 0  # Resume point when cancelled

    @property
    def duration(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    @property
    def unique_files(self) -> int:
        return len([f for f in self.files_recovered if not f.is_duplicate])

    @property
    def saved_files(self) -> List[RecoveredFile]:
        return [f for f in self.files_recovered if f.output_path]

    def as_dict(self) -> dict:
        return {
            'source_path': self.source_path,
            'source_size': self.source_size,
            'output_dir': self.output_dir,
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': round(self.duration, 3),
            'categories': self.categories,
            'start_offset': self.start_offset,
            'total_files': len(self.files_recovered),
            'unique_files': self.unique_files,
            'duplicates_skipped': self.duplicates_skipped,
            'total_bytes_carved': self.total_bytes_carved,
            'cancelled': self.cancelled,
            'last_offset': self.last_offset,
            'files': [f.as_dict() for f in self.files_recovered],
            'errors': self.errors,
        }


class CarverEngine:
    """
    Main carving engine.

    Combines the FileCarver, the CarveScanner (progress and cancellation) and
    the HashValidator (digests and deduplication).
    """

    def __init__(
        self,
        output_dir: str,
        categories: Optional[Iterable[Union[FileCategory, str]]] = None,
        hash_algorithms: Optional[List[HashAlgorithm]] = None,
        skip_duplicates: bool = True,
        window_size: Optional[int] = None,
        progress_callback: Optional[Callable[[ScanProgress], None]] = None
    ):
        """
        Initialize carver engine.

        Args:
            output_dir: Directory for recovered files
            categories: Categories to recover (None = all)
            hash_algorithms: Hash algorithms to use (default: MD5, SHA256)
            skip_duplicates: Do not write content already recovered in this session
            window_size: Bytes scanned between progress/cancellation checks
            progress_callback: Progress update callback
        """
        self.output_dir = str(output_dir)
        self.skip_duplicates = skip_duplicates

        self.file_carver = FileCarver(
            enabled_categories=categories,
            window_size=window_size,
        )
        self.categories = [c.value for c in self.file_carver.signature_db.categories()]

        self.hash_validator = HashValidator(algorithms=hash_algorithms)
        algorithms = self.hash_validator.algorithms
        self.dedup_algorithm = (
            HashAlgorithm.SHA256 if HashAlgorithm.SHA256 in algorithms else algorithms[0]
        )

        self.scanner = CarveScanner(self.file_carver, progress_callback)

    def carve(
        self,
        source_path: str,
        start_offset: int = 0,
        end_offset: Optional[int] = None
    ) -> CarveSession:
        """
        Carve an image file.

        Args:
            source_path: Path to the image
            start_offset: Resume position
            end_offset: Headers must start before this offset (None = end of image)

        Returns:
            CarveSession with results
        """
        with BlockReader(source_path) as reader:
            return self.carve_buffer(reader.data, str(source_path), start_offset, end_offset)

    def carve_buffer(
        self,
        data,
        source_name: str = "<buffer>",
        start_offset: int = 0,
        end_offset: Optional[int] = None
    ) -> CarveSession:
        """Carve an in-memory buffer (or an already mapped image)."""
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)
        session = CarveSession(
            source_path=source_name,
            source_size=len(data),
            output_dir=self.output_dir,
            start_time=datetime.now(),
            categories=self.categories,
            start_offset=start_offset,
        )
        self.hash_validator.reset_tracking()
        logger.info("Carving %s (%d bytes) from offset %d", source_name, len(data), start_offset)

        for carved in self.scanner.scan(data, start_offset, end_offset):
            try:
                recovered = self._process_carved_file(data, carved, len(session.files_recovered) + 1)
            except OSError as e:
                message = f"Offset {carved.start_offset}: {e}"
                logger.warning("Could not write carved file: %s", message)
                session.errors.append(message)
                continue

            session.files_recovered.append(recovered)
            if recovered.is_duplicate and not recovered.output_path:
                session.duplicates_skipped += 1
            else:
                session.total_bytes_carved += recovered.size

        progress = self.scanner.get_progress()
        session.cancelled = progress.cancelled
        session.last_offset = progress.cursor
        session.end_time = datetime.now()
        logger.info(
            "Carving %s: %d files, %d duplicates skipped",
            "cancelled" if session.cancelled else "finished",
            session.unique_files, session.duplicates_skipped
        )
        return session

    def _output_path(self, carved: CarvedFile, sequence: int) -> Path:
        directory = Path(self.output_dir) / carved.category.value
        return directory / f"carved_{sequence}_offset_{carved.start_offset}.{carved.extension}"

    def _process_carved_file(self, data, carved: CarvedFile, sequence: int) -> RecoveredFile:
        """Hash, dedupe and save one carved range."""
        content = carved.data
        if content is None:
            content = bytes(data[carved.start_offset:carved.end_offset])

        file_hash = self.hash_validator.hash_bytes(content)
        output_path = self._output_path(carved, sequence)
        is_duplicate, duplicate_of = self.hash_validator.check_duplicate(
            file_hash, str(output_path), self.dedup_algorithm
        )

        if is_duplicate and self.skip_duplicates:
            logger.debug("Offset %d duplicates %s", carved.start_offset, duplicate_of)
            return RecoveredFile(
                carved=carved,
                file_hash=file_hash,
                output_path="",
                is_duplicate=True,
                duplicate_of=duplicate_of,
            )

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'wb') as f:
                f.write(content)
        except OSError:
            # Content that never reached disk cannot be the original of a duplicate
            if not is_duplicate:
                self.hash_validator.forget(file_hash, self.dedup_algorithm)
            raise

        return RecoveredFile(
            carved=carved,
            file_hash=file_hash,
            output_path=str(output_path),
            is_duplicate=is_duplicate,
            duplicate_of=duplicate_of,
        )

    def cancel(self):
        """Cancel ongoing operation."""
        self.scanner.cancel()
