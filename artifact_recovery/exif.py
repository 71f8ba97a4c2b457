"""
EXIF/GPS Extractor Module for ArtifactRecovery

Walks JPEG marker segments to the EXIF APP1 block, then the TIFF IFD0, EXIF
and GPS sub-IFDs. Any out-of-bounds read aborts only the affected field or
directory; the rest of the record is still returned.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Tuple

from .byte_reader import BIG_ENDIAN, LITTLE_ENDIAN, ByteReader
from .errors import BoundsError, NotAJpegError


logger = logging.getLogger(__name__)

JPEG_SOI = b'\xff\xd8'
EXIF_HEADER = b'Exif\x00\x00'

MARKER_APP1 = 0xFFE1
MARKER_SOS = 0xFFDA
MARKER_EOI = 0xFFD9
MARKER_FILL = 0xFFFF

MAX_STRING_LENGTH = 100

# IFD0
TAG_MAKE = 0x010F
TAG_MODEL = 0x0110
TAG_SOFTWARE = 0x0131
TAG_DATETIME = 0x0132
TAG_EXIF_IFD = 0x8769
TAG_GPS_IFD = 0x8825

# EXIF sub-IFD
TAG_DATETIME_ORIGINAL = 0x9003

# GPS sub-IFD
GPS_LATITUDE_REF = 0x0001
GPS_LATITUDE = 0x0002
GPS_LONGITUDE_REF = 0x0003
GPS_LONGITUDE = 0x0004
GPS_ALTITUDE_REF = 0x0005
GPS_ALTITUDE = 0x0006
GPS_TIMESTAMP = 0x0007
GPS_IMG_DIRECTION = 0x0011
GPS_DATESTAMP = 0x001D

# Byte width of each TIFF field type
TYPE_SIZES: Dict[int, int] = {
    1: 1,   # BYTE
    2: 1,   # ASCII
    3: 2,   # SHORT
    4: 4,   # LONG
    5: 8,   # RATIONAL
    6: 1,   # SBYTE
    7: 1,   # UNDEFINED
    8: 2,   # SSHORT
    9: 4,   # SLONG
    10: 8,  # SRATIONAL
    11: 4,  # FLOAT
    12: 8,  # DOUBLE
}

_IFD0_STRINGS = {
    TAG_MAKE: 'camera_make',
    TAG_MODEL: 'camera_model',
    TAG_SOFTWARE: 'software',
    TAG_DATETIME: 'date_time',
}


@dataclass(frozen=True)
class GPSCoordinate:
    """Degrees/minutes/seconds with a hemisphere reference (N, S, E or W)."""
    degrees: float
    minutes: float
    seconds: float
    reference_hemisphere: str

    def to_decimal(self) -> float:
        value = self.degrees + self.minutes / 60 + self.seconds / 3600
        if self.reference_hemisphere in ('S', 'W'):
            return -value
        return value

    def format_dms(self) -> str:
        """Normalized DMS text, e.g. ``40° 26' 46.00" N``."""
        absolute = abs(self.to_decimal())
        degrees = int(absolute)
        minutes_float = (absolute - degrees) * 60
        minutes = int(minutes_float)
        seconds = (minutes_float - minutes) * 60
        return f"{degrees}° {minutes}' {seconds:.2f}\" {self.reference_hemisphere}"


@dataclass
class GPSData:
    """Decoded GPS sub-IFD."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    latitude_ref: str = 'N'
    longitude_ref: str = 'E'
    latitude_dms: Optional[GPSCoordinate] = None
    longitude_dms: Optional[GPSCoordinate] = None
    altitude_meters: Optional[float] = None
    timestamp_utc: Optional[str] = None
    date_stamp: Optional[str] = None
    image_direction_degrees: Optional[float] = None

    @property
    def has_fix(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def maps_url(self) -> Optional[str]:
        if not self.has_fix:
            return None
        return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"


@dataclass
class ExifRecord:
    """Camera and location metadata recovered from a JPEG."""
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    software: Optional[str] = None
    date_time: Optional[str] = None
    date_time_original: Optional[str] = None
    byte_order: Optional[str] = None
    gps: Optional[GPSData] = None

    @property
    def has_gps(self) -> bool:
        return self.gps is not None and self.gps.has_fix

    def as_dict(self) -> dict:
        result = asdict(self)
        result['has_gps'] = self.has_gps
        if self.gps is not None:
            result['gps']['maps_url'] = self.gps.maps_url
        return result


@dataclass(frozen=True)
class IfdEntry:
    """One 12-byte IFD entry; ``value_offset`` is TIFF-relative."""
    tag: int
    field_type: int
    count: int
    value_offset: int


def read_ifd(reader: ByteReader, ifd_offset: int) -> List[IfdEntry]:
    """
    Decode the entries of one IFD.

    Values that fit in four bytes live inside the entry itself; larger values
    are referenced by a TIFF-relative offset. A truncated directory yields the
    entries read before the truncation.
    """
    entries: List[IfdEntry] = []
    try:
        count = reader.u16(ifd_offset)
    except BoundsError:
        logger.debug("IFD at %d is outside the TIFF block", ifd_offset)
        return entries

    for index in range(count):
        position = ifd_offset + 2 + index * 12
        try:
            tag = reader.u16(position)
            field_type = reader.u16(position + 2)
            value_count = reader.u32(position + 4)
            size = TYPE_SIZES.get(field_type, 1) * value_count
            if size <= 4:
                value_offset = position + 8
            else:
                value_offset = reader.u32(position + 8)
        except BoundsError:
            logger.debug("IFD at %d truncated after %d entries", ifd_offset, index)
            break
        entries.append(IfdEntry(tag, field_type, value_count, value_offset))
    return entries


def _read_string(reader: ByteReader, entry: IfdEntry) -> Optional[str]:
    length = min(entry.count, MAX_STRING_LENGTH)
    if length == 0:
        return None
    try:
        text = reader.ascii(entry.value_offset, length).strip()
    except BoundsError:
        return None
    return text or None


def _read_pointer(reader: ByteReader, entry: IfdEntry) -> Optional[int]:
    try:
        return reader.u32(entry.value_offset)
    except BoundsError:
        return None


def _read_rationals(reader: ByteReader, offset: int, count: int) -> Optional[Tuple[float, ...]]:
    values = []
    for index in range(count):
        value = reader.rational(offset + index * 8)
        if value is None:
            return None
        values.append(value)
    return tuple(values)


def _read_reference(reader: ByteReader, entry: IfdEntry, default: str) -> str:
    text = reader.ascii(entry.value_offset, max(1, min(entry.count, 2))).strip().upper()
    return text[:1] or default


def parse_gps_ifd(reader: ByteReader, ifd_offset: int) -> GPSData:
    """Decode the GPS sub-IFD; undecodable fields stay None."""
    gps = GPSData()
    latitude: Optional[Tuple[float, ...]] = None
    longitude: Optional[Tuple[float, ...]] = None
    below_sea_level = False

    for entry in read_ifd(reader, ifd_offset):
        offset = entry.value_offset
        try:
            if entry.tag == GPS_LATITUDE_REF:
                gps.latitude_ref = _read_reference(reader, entry, 'N')
            elif entry.tag == GPS_LATITUDE:
                latitude = _read_rationals(reader, offset, 3)
            elif entry.tag == GPS_LONGITUDE_REF:
                gps.longitude_ref = _read_reference(reader, entry, 'E')
            elif entry.tag == GPS_LONGITUDE:
                longitude = _read_rationals(reader, offset, 3)
            elif entry.tag == GPS_ALTITUDE_REF:
                below_sea_level = reader.u8(offset) == 1
            elif entry.tag == GPS_ALTITUDE:
                gps.altitude_meters = reader.rational(offset)
            elif entry.tag == GPS_TIMESTAMP:
                hms = _read_rationals(reader, offset, 3)
                if hms is not None:
                    gps.timestamp_utc = ':'.join(f"{int(part):02d}" for part in hms)
            elif entry.tag == GPS_IMG_DIRECTION:
                gps.image_direction_degrees = reader.rational(offset)
            elif entry.tag == GPS_DATESTAMP:
                text = reader.ascii(offset, min(entry.count, 10)).strip()
                gps.date_stamp = text.replace(':', '-') or None
        except BoundsError:
            logger.debug("GPS tag 0x%04X points outside the TIFF block", entry.tag)

    if latitude is not None:
        gps.latitude_dms = GPSCoordinate(*latitude, gps.latitude_ref)
        gps.latitude = gps.latitude_dms.to_decimal()
    if longitude is not None:
        gps.longitude_dms = GPSCoordinate(*longitude, gps.longitude_ref)
        gps.longitude = gps.longitude_dms.to_decimal()
    if below_sea_level and gps.altitude_meters is not None:
        gps.altitude_meters = -gps.altitude_meters
    return gps


def find_exif_segment(buffer) -> Optional[Tuple[int, int]]:
    """
    Locate the TIFF block inside the first EXIF APP1 segment.

    Returns:
        (tiff_start, segment_end) as absolute offsets, or None
    """
    reader = ByteReader(buffer, BIG_ENDIAN)
    offset = 2
    while reader.contains(offset, 4):
        marker = reader.u16(offset)
        if marker & 0xFF00 != 0xFF00:
            logger.debug("Non-marker byte at offset %d, stopping segment scan", offset)
            return None
        if marker == MARKER_FILL:
            offset += 1
            continue
        if marker in (MARKER_SOS, MARKER_EOI):
            return None
        if 0xFFD0 <= marker <= 0xFFD7 or marker == 0xFF01:
            # Standalone markers carry no length field
            offset += 2
            continue

        length = reader.u16(offset + 2)
        if length < 2:
            logger.debug("Invalid segment length %d at offset %d", length, offset)
            return None
        payload = offset + 4
        segment_end = min(offset + 2 + length, len(buffer))
        if (marker == MARKER_APP1 and reader.contains(payload, len(EXIF_HEADER))
                and reader.bytes_at(payload, len(EXIF_HEADER)) == EXIF_HEADER):
            return payload + len(EXIF_HEADER), segment_end
        offset += 2 + length
    return None


def _parse_tiff(buffer, tiff_start: int, tiff_end: int, record: ExifRecord):
    reader = ByteReader(buffer, BIG_ENDIAN, base=tiff_start, limit=tiff_end)
    try:
        order_mark = reader.bytes_at(0, 2)
    except BoundsError:
        return
    if order_mark == b'II':
        reader = reader.with_byte_order(LITTLE_ENDIAN)
        record.byte_order = 'little'
    elif order_mark == b'MM':
        record.byte_order = 'big'
    else:
        logger.debug("Unknown TIFF byte order mark %r", order_mark)
        return

    try:
        ifd0_offset = reader.u32(4)
    except BoundsError:
        return

    exif_pointer = None
    gps_pointer = None
    for entry in read_ifd(reader, ifd0_offset):
        if entry.tag in _IFD0_STRINGS:
            setattr(record, _IFD0_STRINGS[entry.tag], _read_string(reader, entry))
        elif entry.tag == TAG_GPS_IFD:
            gps_pointer = _read_pointer(reader, entry)
        elif entry.tag == TAG_EXIF_IFD:
            exif_pointer = _read_pointer(reader, entry)

    if exif_pointer:
        for entry in read_ifd(reader, exif_pointer):
            if entry.tag == TAG_DATETIME_ORIGINAL:
                record.date_time_original = _read_string(reader, entry)

    if gps_pointer:
        record.gps = parse_gps_ifd(reader, gps_pointer)


def extract_exif(buffer) -> ExifRecord:
    """
    Extract camera and GPS metadata from a JPEG buffer.

    Args:
        buffer: Complete JPEG file content

    Returns:
        ExifRecord, partially filled when the stream is malformed

    Raises:
        NotAJpegError: buffer does not begin with FF D8
    """
    if len(buffer) < 2 or bytes(buffer[:2]) != JPEG_SOI:
        raise NotAJpegError("Buffer does not start with a JPEG SOI marker")

    record = ExifRecord()
    segment = find_exif_segment(buffer)
    if segment is None:
        return record
    _parse_tiff(buffer, segment[0], segment[1], record)
    return record
