"""
Exception Types for ArtifactRecovery

Format and bounds problems are recovered inside the analyzers; only
NotAJpegError is part of a public contract.
"""


class ArtifactError(Exception):
    """Base class for all analyzer errors."""


class NotAJpegError(ArtifactError, ValueError):
    """Buffer does not start with the JPEG start-of-image marker."""


class BoundsError(ArtifactError, IndexError):
    """A structural read would fall outside the buffer."""

    def __init__(self, offset: int, size: int, limit: int):
        super().__init__(
            f"read of {size} byte(s) at offset {offset} exceeds limit {limit}"
        )
        self.offset = offset
        self.size = size
        self.limit = limit
