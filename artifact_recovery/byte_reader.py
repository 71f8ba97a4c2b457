"""
Byte Reader Module for ArtifactRecovery

Bounds-checked integer and string reads over an immutable buffer, shared by the
EXIF, FAT and NTFS parsers.
"""

import struct
from typing import Optional

from .errors import BoundsError


LITTLE_ENDIAN = '<'
BIG_ENDIAN = '>'


class ByteReader:
    """
    Read fixed-width fields from a bytes-like object.

    Offsets passed to the read methods are relative to ``base``. Every read is
    checked against ``limit`` (absolute, default: end of data) before the
    buffer is touched, so a corrupt offset raises BoundsError instead of
    returning garbage or a short slice.
    """

    def __init__(
        self,
        data,
        byte_order: str = LITTLE_ENDIAN,
        base: int = 0,
        limit: Optional[int] = None
    ):
        if byte_order not in (LITTLE_ENDIAN, BIG_ENDIAN):
            raise ValueError(f"Unknown byte order: {byte_order!r}")
        self.data = data
        self.byte_order = byte_order
        self.base = base
        self.limit = len(data) if limit is None else min(limit, len(data))

    @property
    def size(self) -> int:
        """Number of bytes addressable through this reader."""
        return max(0, self.limit - self.base)

    def with_byte_order(self, byte_order: str) -> "ByteReader":
        return ByteReader(self.data, byte_order, self.base, self.limit)

    def check(self, offset: int, size: int) -> int:
        """Return the absolute position of a read, or raise BoundsError."""
        position = self.base + offset
        if offset < 0 or size < 0 or position + size > self.limit:
            raise BoundsError(offset, size, self.size)
        return position

    def contains(self, offset: int, size: int = 1) -> bool:
        return offset >= 0 and self.base + offset + size <= self.limit

    def _unpack(self, fmt: str, offset: int):
        position = self.check(offset, struct.calcsize(fmt))
        return struct.unpack_from(self.byte_order + fmt, self.data, position)[0]

    def u8(self, offset: int) -> int:
        return self._unpack('B', offset)

    def u16(self, offset: int) -> int:
        return self._unpack('H', offset)

    def u32(self, offset: int) -> int:
        return self._unpack('I', offset)

    def u64(self, offset: int) -> int:
        return self._unpack('Q', offset)

    def i64(self, offset: int) -> int:
        return self._unpack('q', offset)

    def bytes_at(self, offset: int, length: int) -> bytes:
        position = self.check(offset, length)
        return bytes(self.data[position:position + length])

    def ascii(self, offset: int, length: int) -> str:
        """Read ``length`` bytes as text, stopping at the first NUL."""
        raw = self.bytes_at(offset, length)
        return raw.split(b'\x00', 1)[0].decode('latin-1')

    def rational(self, offset: int) -> Optional[float]:
        """
        Read an unsigned TIFF RATIONAL (two u32 values).

        Returns:
            numerator / denominator, or None when the denominator is zero
        """
        numerator = self.u32(offset)
        denominator = self.u32(offset + 4)
        if denominator == 0:
            return None
        return numerator / denominator

    def __repr__(self):
        order = 'LE' if self.byte_order == LITTLE_ENDIAN else 'BE'
        return f"ByteReader(base={self.base}, size={self.size}, order={order})"
