"""
ArtifactRecovery - Binary Artifact Recovery Engine

Deterministic analyzers for forensic byte streams: signature detection,
EXIF/GPS extraction, header/footer carving and FAT/NTFS structure reading.
"""

import logging

__version__ = "1.0.0"
__author__ = "ArtifactRecovery Team"

from .carver_engine import CarverEngine
from .detector import DetectionResult, detect
from .errors import ArtifactError, BoundsError, NotAJpegError
from .exif import ExifRecord, GPSCoordinate, GPSData, extract_exif
from .file_carver import CarvedFile, FileCarver, carve
from .filesystem import (
    DirectoryEntry, DirectoryListing, FileAttribute, FileSystemType, MFTRecord,
    analyze_file_system, identify_file_system, parse_fat_directory, parse_ntfs_mft,
    parse_partition_table,
)
from .hasher import HashValidator
from .scanner import CarveScanner, ScanProgress
from .signatures import FileCategory, FileSignature, SignatureDB

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ArtifactError",
    "BoundsError",
    "CarveScanner",
    "CarvedFile",
    "CarverEngine",
    "DetectionResult",
    "DirectoryEntry",
    "DirectoryListing",
    "ExifRecord",
    "FileAttribute",
    "FileCarver",
    "FileCategory",
    "FileSignature",
    "FileSystemType",
    "GPSCoordinate",
    "GPSData",
    "HashValidator",
    "MFTRecord",
    "NotAJpegError",
    "ScanProgress",
    "SignatureDB",
    "analyze_file_system",
    "carve",
    "detect",
    "extract_exif",
    "identify_file_system",
    "parse_fat_directory",
    "parse_ntfs_mft",
    "parse_partition_table",
]
