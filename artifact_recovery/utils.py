"""
Utility Functions for ArtifactRecovery
"""

import os
import re
from pathlib import PurePath
from typing import Tuple


DEFAULT_HEX_WINDOW = 1024
HEX_ROW_WIDTH = 16


def format_size(size: int) -> str:
    """Format size in human-readable format."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024:
            return f"{size:.2f} {unit}" if unit != 'B' else f"{size} {unit}"
        size /= 1024
    return f"{size:.2f} PB"


_SIZE_UNITS = {
    'B': 1,
    'K': 1024,
    'KB': 1024,
    'M': 1024 ** 2,
    'MB': 1024 ** 2,
    'G': 1024 ** 3,
    'GB': 1024 ** 3,
    'T': 1024 ** 4,
    'TB': 1024 ** 4,
}


def parse_size(size_str: str) -> int:
    """
    Parse size or offset string to bytes.

    Examples: "100", "0x1F0", "10KB", "5MB", "1.5G"
    """
    text = size_str.strip().upper()
    if text.startswith('0X'):
        return int(text, 16)

    match = re.fullmatch(r'([0-9]*\.?[0-9]+)\s*([KMGT]?B?)', text)
    if not match:
        raise ValueError(f"Invalid size: {size_str!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS.get(unit, 1))


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds / 60)
        secs = int(seconds % 60)
        return f"{mins}m {secs}s"
    else:
        hours = int(seconds / 3600)
        mins = int((seconds % 3600) / 60)
        return f"{hours}h {mins}m"


def validate_source(path: str) -> Tuple[bool, str]:
    """
    Validate an input file path.

    Returns:
        Tuple of (is_valid, message)
    """
    if not os.path.exists(path):
        return False, f"Path does not exist: {path}"
    if not os.path.isfile(path):
        return False, f"Not a regular file: {path}"
    if not os.access(path, os.R_OK):
        return False, f"No read permission on file: {path}"
    return True, "File"


def validate_output_dir(path: str) -> Tuple[bool, str]:
    """
    Validate output directory.

    Returns:
        Tuple of (is_valid, message)
    """
    if os.path.exists(path):
        if not os.path.isdir(path):
            return False, f"Output path exists but is not a directory: {path}"
        if not os.access(path, os.W_OK):
            return False, f"No write permission on directory: {path}"
        return True, "Existing directory"
    return True, "Will create directory"


def _hex_row(chunk: bytes) -> str:
    left = ' '.join(f'{b:02X}' for b in chunk[:8])
    right = ' '.join(f'{b:02X}' for b in chunk[8:])
    return f'{left}  {right}' if right else left


def hex_dump(data, offset: int = 0, length: int = DEFAULT_HEX_WINDOW) -> str:
    """
    Create hex dump of part of a buffer.

    Rows hold 16 bytes: an 8-digit offset, the bytes in upper-case hex with a
    gap after the eighth, then the printable ASCII rendering.

    Args:
        data: Bytes-like object to dump
        offset: First byte to show (also the first displayed address)
        length: Number of bytes to show

    Returns:
        Formatted hex dump string
    """
    if offset < 0 or length < 0:
        raise ValueError("offset and length must be non-negative")
    window = bytes(data[offset:offset + length])
    hex_width = HEX_ROW_WIDTH * 3

    lines = []
    for i in range(0, len(window), HEX_ROW_WIDTH):
        chunk = window[i:i + HEX_ROW_WIDTH]
        ascii_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in chunk)
        lines.append(f'{offset + i:08X}  {_hex_row(chunk).ljust(hex_width)} |{ascii_part}|')
    return '\n'.join(lines)


def extension_of(path: str) -> str:
    """Declared extension of a path, upper case, without the dot."""
    return PurePath(path).suffix.lstrip('.').upper()
