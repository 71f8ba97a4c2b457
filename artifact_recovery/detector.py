"""
Signature Detector Module for ArtifactRecovery

Identifies a buffer by its magic number and flags declared extensions that
disagree with the content.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .signatures import FileSignature, SignatureDB


logger = logging.getLogger(__name__)

# Only this many leading bytes are ever inspected.
HEADER_WINDOW = 8

_DETECTION_DB = SignatureDB.for_detection()


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of a single detection call."""
    matched_signature: Optional[FileSignature]
    header_bytes: bytes
    declared_extension: str
    is_extension_mismatch: bool

    @property
    def header_hex(self) -> str:
        return self.header_bytes.hex().upper()

    @property
    def is_match(self) -> bool:
        """A signature was found and the declared extension agrees with it."""
        return self.matched_signature is not None and not self.is_extension_mismatch

    def as_dict(self) -> dict:
        sig = self.matched_signature
        return {
            'header_hex': self.header_hex,
            'declared_extension': self.declared_extension,
            'detected_type': sig.name if sig else None,
            'description': sig.description if sig else None,
            'category': sig.category.value if sig else None,
            'is_extension_mismatch': self.is_extension_mismatch,
        }


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip('.').upper()


def detect(
    buffer,
    declared_extension: str = "",
    signature_db: Optional[SignatureDB] = None
) -> DetectionResult:
    """
    Match the leading bytes of ``buffer`` against the detection catalog.

    Args:
        buffer: Bytes-like file content (only the first 8 bytes are read)
        declared_extension: Extension the file claims, with or without a dot
        signature_db: Alternative catalog (default: built-in detection catalog)

    Returns:
        DetectionResult; an unknown header is a valid result, not an error
    """
    db = signature_db if signature_db is not None else _DETECTION_DB
    header = bytes(buffer[:HEADER_WINDOW])
    extension = normalize_extension(declared_extension)

    matched = db.match_header(header)

    mismatch = matched is not None and not matched.accepts_extension(extension)
    if mismatch:
        logger.debug(
            "Header %s identifies %s but extension is %r",
            header.hex(), matched.name, extension
        )

    return DetectionResult(
        matched_signature=matched,
        header_bytes=header,
        declared_extension=extension,
        is_extension_mismatch=mismatch,
    )
