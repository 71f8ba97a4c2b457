"""
Block Reader Module for ArtifactRecovery

Read-only, memory-mapped access to disk images and evidence files.
"""

import logging
import mmap
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


@dataclass
class SourceInfo:
    """Information about the source being read."""
    path: str
    size: int
    is_mapped: bool


class BlockReader:
    """
    Read-only reader for image files.

    The whole file is mapped with ``ACCESS_READ`` so analyzers can treat it
    as one bytes-like buffer without loading it into memory. Empty files
    cannot be mapped and are exposed as ``b""``.
    """

    def __init__(self, source_path: str):
        """
        Initialize the block reader.

        Args:
            source_path: Path to an image file
        """
        self.source_path = str(source_path)

        self._handle: Optional[BinaryIO] = None
        self._mmap: Optional[mmap.mmap] = None
        self._source_info: Optional[SourceInfo] = None

        self._open()

    def _open(self):
        """Open the source in read-only mode."""
        path = Path(self.source_path)
        if not path.exists():
            raise FileNotFoundError(f"Source not found: {self.source_path}")
        if not path.is_file():
            raise ValueError(f"Source is not a regular file: {self.source_path}")

        self._handle = open(path, 'rb')
        size = path.stat().st_size
        if size > 0:
            try:
                self._mmap = mmap.mmap(self._handle.fileno(), 0, access=mmap.ACCESS_READ)
            except (OSError, ValueError):
                self._handle.close()
                self._handle = None
                raise

        self._source_info = SourceInfo(
            path=self.source_path,
            size=size,
            is_mapped=self._mmap is not None,
        )
        logger.debug("Opened %s (%d bytes)", self.source_path, size)

    @property
    def info(self) -> SourceInfo:
        """Get source information."""
        if self._source_info is None:
            raise RuntimeError("Block reader not initialized")
        return self._source_info

    @property
    def size(self) -> int:
        """Get total size in bytes."""
        return self.info.size

    @property
    def data(self):
        """The mapped image as a read-only bytes-like object."""
        if self._handle is None:
            raise ValueError("Block reader is closed")
        if self._mmap is None:
            return b""
        return self._mmap

    def read_at(self, offset: int, size: int) -> bytes:
        """
        Read bytes at a specific offset.

        Returns:
            Bytes read (may be less than requested at end of source)
        """
        if offset < 0:
            raise ValueError("Offset cannot be negative")
        if offset >= self.size:
            return b""
        size = min(size, self.size - offset)
        return bytes(self.data[offset:offset + size])

    def close(self):
        """Close the source and release resources."""
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self):
        return f"BlockReader(source='{self.source_path}', size={self.size})"
