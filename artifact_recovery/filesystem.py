"""
File System Reader Module for ArtifactRecovery

Identifies FAT/NTFS/EXT4 volumes, lists FAT root directories (active and
deleted entries), scans NTFS MFT records and decodes the MBR partition table.
Every walk is bounds-checked; truncated or garbage input ends the affected
walk and returns what was recovered up to that point.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterator, List, NamedTuple, Optional

from .byte_reader import ByteReader
from .errors import BoundsError


logger = logging.getLogger(__name__)

SECTOR_SIZE = 512
DIR_ENTRY_SIZE = 32
MFT_RECORD_SIZE = 1024
DEFAULT_MFT_SCAN_LIMIT = 1_000_000

# FAT directory entry markers
ENTRY_END = 0x00
ENTRY_DELETED = 0xE5
ENTRY_DOT = 0x2E
ENTRY_KANJI_E5 = 0x05

ATTR_READ_ONLY = 0x01
ATTR_HIDDEN = 0x02
ATTR_SYSTEM = 0x04
ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = 0x0F

FAT32_MASK = 0x0FFFFFFF
FAT32_BAD_CLUSTER = 0x0FFFFFF7
FAT32_END_OF_CHAIN = 0x0FFFFFF8

# NTFS
MFT_MAGIC = b'FILE'
MFT_FLAG_IN_USE = 0x0001
MFT_FLAG_DIRECTORY = 0x0002
ATTR_TYPE_FILE_NAME = 0x30
ATTR_TYPE_DATA = 0x80
ATTR_TYPE_END = 0xFFFFFFFF
FILE_NAMESPACE_DOS = 2
FILE_NAME_FLAG_DIRECTORY = 0x10000000

MBR_SIGNATURE = b'\x55\xAA'
PARTITION_TABLE_OFFSET = 446
PARTITION_ENTRY_SIZE = 16

PARTITION_TYPES = {
    0x01: 'FAT12',
    0x04: 'FAT16',
    0x06: 'FAT16',
    0x07: 'NTFS',
    0x0B: 'FAT32',
    0x0C: 'FAT32',
    0x0E: 'FAT16',
    0x83: 'Linux',
    0xEE: 'GPT Protective',
}


class FileSystemType(Enum):
    FAT16 = 'FAT16'
    FAT32 = 'FAT32'
    NTFS = 'NTFS'
    EXT4 = 'EXT4'
    UNKNOWN = 'Unknown'

    @property
    def is_fat(self) -> bool:
        return self in (FileSystemType.FAT16, FileSystemType.FAT32)


class FileAttribute(Enum):
    READ_ONLY = 'Read-Only'
    HIDDEN = 'Hidden'
    SYSTEM = 'System'
    DIRECTORY = 'Directory'
    ARCHIVE = 'Archive'
    DELETED = 'Deleted'


_ATTRIBUTE_BITS = (
    (ATTR_READ_ONLY, FileAttribute.READ_ONLY),
    (ATTR_HIDDEN, FileAttribute.HIDDEN),
    (ATTR_SYSTEM, FileAttribute.SYSTEM),
    (ATTR_DIRECTORY, FileAttribute.DIRECTORY),
    (ATTR_ARCHIVE, FileAttribute.ARCHIVE),
)


def attributes_from_flags(flags: int) -> FrozenSet[FileAttribute]:
    """Map FAT/NTFS file attribute bits to FileAttribute members."""
    return frozenset(attr for bit, attr in _ATTRIBUTE_BITS if flags & bit)


@dataclass
class DirectoryEntry:
    """A file or directory found in a FAT directory."""
    name: str
    size_bytes: int
    is_directory: bool
    is_deleted: bool
    start_cluster: int
    attributes: FrozenSet[FileAttribute] = field(default_factory=frozenset)
    offset: int = 0  # Byte offset of the entry within the volume

    @property
    def path(self) -> str:
        return '/' + self.name

    @property
    def recoverable(self) -> bool:
        if not self.is_deleted:
            return True
        return self.start_cluster > 0 and self.size_bytes > 0

    def as_dict(self) -> dict:
        return {
            'name': self.name,
            'path': self.path,
            'size_bytes': self.size_bytes,
            'is_directory': self.is_directory,
            'is_deleted': self.is_deleted,
            'start_cluster': self.start_cluster,
            'attributes': sorted(a.value for a in self.attributes),
            'offset': self.offset,
            'recoverable': self.recoverable,
        }


@dataclass
class MFTRecord(DirectoryEntry):
    """A file or directory found in the NTFS master file table."""
    record_number: int = 0

    def as_dict(self) -> dict:
        result = super().as_dict()
        result['record_number'] = self.record_number
        return result


class DirectoryListing(NamedTuple):
    active: List[DirectoryEntry]
    deleted: List[DirectoryEntry]

    @property
    def recoverable_count(self) -> int:
        return sum(1 for entry in self.deleted if entry.recoverable)

    def as_dict(self) -> dict:
        return {
            'active': [e.as_dict() for e in self.active],
            'deleted': [e.as_dict() for e in self.deleted],
            'recoverable_count': self.recoverable_count,
        }


@dataclass
class BootSector:
    """Decoded BIOS parameter block."""
    file_system: FileSystemType
    oem_id: str
    bytes_per_sector: int
    sectors_per_cluster: int
    reserved_sectors: int
    num_fats: int
    root_entry_count: int
    sectors_per_fat: int
    root_cluster: int = 0
    mft_cluster: int = 0

    @property
    def cluster_size(self) -> int:
        return self.bytes_per_sector * self.sectors_per_cluster

    def as_dict(self) -> dict:
        return {
            'file_system': self.file_system.value,
            'oem_id': self.oem_id,
            'bytes_per_sector': self.bytes_per_sector,
            'sectors_per_cluster': self.sectors_per_cluster,
            'cluster_size': self.cluster_size,
            'reserved_sectors': self.reserved_sectors,
            'num_fats': self.num_fats,
            'root_entry_count': self.root_entry_count,
            'sectors_per_fat': self.sectors_per_fat,
            'root_cluster': self.root_cluster,
            'mft_cluster': self.mft_cluster,
        }


@dataclass
class PartitionEntry:
    """One primary MBR partition slot."""
    index: int
    type_code: int
    start_sector: int
    size_bytes: int
    bootable: bool
    file_system: str

    @property
    def type_hex(self) -> str:
        return f"0x{self.type_code:02X}"

    @property
    def start_offset(self) -> int:
        return self.start_sector * SECTOR_SIZE

    def as_dict(self) -> dict:
        return {
            'index': self.index,
            'type': self.type_hex,
            'start_sector': self.start_sector,
            'size_bytes': self.size_bytes,
            'bootable': self.bootable,
            'file_system': self.file_system,
        }


@dataclass
class FileSystemReport:
    """Result of a whole-image file system analysis."""
    file_system: FileSystemType
    boot_sector: Optional[BootSector]
    listing: DirectoryListing
    partitions: List[PartitionEntry] = field(default_factory=list)
    volume_offset: int = 0
    total_size: int = 0

    def as_dict(self) -> dict:
        return {
            'file_system': self.file_system.value,
            'boot_sector': self.boot_sector.as_dict() if self.boot_sector else None,
            'partitions': [p.as_dict() for p in self.partitions],
            'volume_offset': self.volume_offset,
            'total_size': self.total_size,
            'files': self.listing.as_dict(),
        }


def _empty_listing() -> DirectoryListing:
    return DirectoryListing(active=[], deleted=[])


def _label(buffer, start: int, end: int) -> str:
    return bytes(buffer[start:end]).decode('latin-1')


# ============================================================
# IDENTIFICATION
# ============================================================

def identify_file_system(boot_sector) -> FileSystemType:
    """
    Identify the file system from the first sectors of a volume.

    Checks, in order: FAT32 label, FAT12/16 label, NTFS OEM id, EXT superblock
    magic. Short buffers simply fail the checks that need more bytes.
    """
    if 'FAT32' in _label(boot_sector, 82, 90):
        return FileSystemType.FAT32
    fat16_label = _label(boot_sector, 54, 62)
    if 'FAT16' in fat16_label or 'FAT12' in fat16_label:
        return FileSystemType.FAT16
    if bytes(boot_sector[3:7]) == b'NTFS':
        return FileSystemType.NTFS
    if len(boot_sector) > 1081 and bytes(boot_sector[1080:1082]) == b'\x53\xEF':
        return FileSystemType.EXT4
    return FileSystemType.UNKNOWN


def parse_boot_sector(buffer) -> Optional[BootSector]:
    """Decode the BPB of a FAT or NTFS volume; None for anything else."""
    fs_type = identify_file_system(buffer)
    if not (fs_type.is_fat or fs_type == FileSystemType.NTFS):
        return None

    reader = ByteReader(buffer)
    try:
        sectors_per_fat = reader.u16(22)
        root_cluster = 0
        if fs_type.is_fat and sectors_per_fat == 0:
            sectors_per_fat = reader.u32(36)
            root_cluster = reader.u32(44)
        return BootSector(
            file_system=fs_type,
            oem_id=reader.ascii(3, 8).strip(),
            bytes_per_sector=reader.u16(11),
            sectors_per_cluster=reader.u8(13),
            reserved_sectors=reader.u16(14),
            num_fats=reader.u8(16),
            root_entry_count=reader.u16(17),
            sectors_per_fat=sectors_per_fat,
            root_cluster=root_cluster,
            mft_cluster=reader.u32(48) if fs_type == FileSystemType.NTFS else 0,
        )
    except BoundsError:
        logger.debug("Boot sector truncated")
        return None


# ============================================================
# FAT
# ============================================================

def _fat32_chain(
    reader: ByteReader,
    fat_offset: int,
    start_cluster: int
) -> Iterator[int]:
    """Follow a FAT32 cluster chain; stops on end-of-chain, bad or repeated clusters."""
    visited = set()
    cluster = start_cluster
    while 2 <= cluster < FAT32_BAD_CLUSTER and cluster not in visited:
        visited.add(cluster)
        yield cluster
        try:
            cluster = reader.u32(fat_offset + cluster * 4) & FAT32_MASK
        except BoundsError:
            logger.debug("FAT entry for cluster %d is outside the image", cluster)
            return
    if cluster in visited:
        logger.debug("Cluster chain loops back to cluster %d", cluster)


def _root_entry_offsets(reader: ByteReader) -> Iterator[int]:
    """
    Offsets of the root directory's 32-byte entries.

    A non-zero root entry count means a fixed root region after the FATs,
    whatever the volume label says. Otherwise the root is the FAT32 cluster
    chain starting at the BPB root cluster.
    """
    bytes_per_sector = reader.u16(11)
    sectors_per_cluster = reader.u8(13)
    reserved = reader.u16(14)
    num_fats = reader.u8(16)
    root_entry_count = reader.u16(17)

    if root_entry_count:
        root_start = (reserved + num_fats * reader.u16(22)) * bytes_per_sector
        for index in range(root_entry_count):
            yield root_start + index * DIR_ENTRY_SIZE
        return

    root_cluster = reader.u32(44)
    cluster_size = bytes_per_sector * sectors_per_cluster
    if cluster_size == 0 or root_cluster < 2:
        return
    sectors_per_fat = reader.u32(36)
    fat_offset = reserved * bytes_per_sector
    data_start = (reserved + num_fats * sectors_per_fat) * bytes_per_sector
    for cluster in _fat32_chain(reader, fat_offset, root_cluster):
        cluster_offset = data_start + (cluster - 2) * cluster_size
        for index in range(cluster_size // DIR_ENTRY_SIZE):
            yield cluster_offset + index * DIR_ENTRY_SIZE


def _read_entry(reader: ByteReader, pos: int, fat32: bool) -> Optional[DirectoryEntry]:
    raw_name = bytearray(reader.bytes_at(pos, 8))
    ext = reader.bytes_at(pos + 8, 3).decode('latin-1').strip()
    attr = reader.u8(pos + 11)
    size = reader.u32(pos + 28)
    cluster = reader.u16(pos + 26)
    if fat32:
        cluster |= reader.u16(pos + 20) << 16

    is_deleted = raw_name[0] == ENTRY_DELETED
    is_directory = bool(attr & ATTR_DIRECTORY)
    attributes = attributes_from_flags(attr)

    if is_deleted:
        stem = raw_name[1:].decode('latin-1').strip()
        if not stem:
            return None
        name = '_' + stem
        attributes = attributes | {FileAttribute.DELETED}
    else:
        if raw_name[0] == ENTRY_KANJI_E5:
            raw_name[0] = ENTRY_DELETED
        name = raw_name.decode('latin-1').strip()
        if not name:
            return None

    if ext and not is_directory:
        name = f"{name}.{ext}"

    return DirectoryEntry(
        name=name,
        size_bytes=size,
        is_directory=is_directory,
        is_deleted=is_deleted,
        start_cluster=cluster,
        attributes=attributes,
        offset=pos,
    )


def parse_fat_directory(buffer) -> DirectoryListing:
    """
    List the root directory of a FAT12/16/32 volume.

    Args:
        buffer: Volume content starting at the boot sector

    Returns:
        DirectoryListing(active, deleted)
    """
    listing = _empty_listing()
    reader = ByteReader(buffer)
    try:
        fat32 = reader.u16(22) == 0
        offsets = _root_entry_offsets(reader)
    except BoundsError:
        logger.debug("FAT boot sector truncated")
        return listing

    try:
        for pos in offsets:
            if not reader.contains(pos, DIR_ENTRY_SIZE):
                logger.debug("Directory entry at %d is outside the image", pos)
                break
            first = reader.u8(pos)
            if first == ENTRY_END:
                break
            attr = reader.u8(pos + 11)
            if (attr & 0x3F) == ATTR_LONG_NAME or attr & ATTR_VOLUME_ID:
                continue
            if first == ENTRY_DOT:
                continue

            entry = _read_entry(reader, pos, fat32)
            if entry is None:
                continue
            if entry.is_deleted:
                listing.deleted.append(entry)
            else:
                listing.active.append(entry)
    except BoundsError:
        logger.debug("FAT directory walk hit the end of the image")

    return listing


# ============================================================
# NTFS
# ============================================================

def _apply_fixups(record: bytearray) -> bool:
    """
    Restore the sector-end bytes saved in the update sequence array.

    The record is only modified when every protected sector still carries the
    update sequence number.
    """
    reader = ByteReader(record)
    try:
        usa_offset = reader.u16(4)
        usa_count = reader.u16(6)
        if usa_count < 2:
            return False
        usn = reader.bytes_at(usa_offset, 2)
        replacements = [reader.bytes_at(usa_offset + 2 * i, 2) for i in range(1, usa_count)]
    except BoundsError:
        return False

    positions = [i * SECTOR_SIZE - 2 for i in range(1, usa_count)]
    for pos in positions:
        if pos + 2 > len(record) or bytes(record[pos:pos + 2]) != usn:
            logger.debug("Update sequence mismatch at %d, leaving record as-is", pos)
            return False
    for pos, replacement in zip(positions, replacements):
        record[pos:pos + 2] = replacement
    return True


def _first_lcn(reader: ByteReader, runlist: int) -> int:
    header = reader.u8(runlist)
    length_size = header & 0x0F
    offset_size = header >> 4
    if header == 0 or offset_size == 0:
        return 0
    raw = reader.bytes_at(runlist + 1 + length_size, offset_size)
    return int.from_bytes(raw, 'little', signed=True)


def _parse_mft_record(record: bytes, position: int, record_number: int) -> Optional[MFTRecord]:
    reader = ByteReader(record)
    flags = reader.u16(22)
    in_use = bool(flags & MFT_FLAG_IN_USE)
    is_directory = bool(flags & MFT_FLAG_DIRECTORY)

    name = ''
    name_is_dos = True
    size = 0
    file_flags = 0
    start_cluster = 0

    pos = reader.u16(20)
    while reader.contains(pos, 8):
        attr_type = reader.u32(pos)
        if attr_type == ATTR_TYPE_END:
            break
        attr_length = reader.u32(pos + 4)
        if attr_length == 0:
            break

        try:
            if attr_type == ATTR_TYPE_FILE_NAME:
                content = pos + (reader.u16(pos + 0x14) or 0x18)
                name_length = reader.u8(content + 64)
                namespace = reader.u8(content + 65)
                # Win32/POSIX names win over the 8.3 DOS alias
                if name_length and (not name or (name_is_dos and namespace != FILE_NAMESPACE_DOS)):
                    name = reader.bytes_at(content + 66, name_length * 2).decode(
                        'utf-16-le', errors='replace')
                    name_is_dos = namespace == FILE_NAMESPACE_DOS
                    size = reader.u64(content + 48)
                    file_flags = reader.u32(content + 56)
            elif attr_type == ATTR_TYPE_DATA and reader.u8(pos + 9) == 0:
                if reader.u8(pos + 8):
                    size = reader.u64(pos + 0x30)
                    start_cluster = _first_lcn(reader, pos + reader.u16(pos + 0x20))
                else:
                    size = reader.u32(pos + 0x10)
        except BoundsError:
            logger.debug("Attribute 0x%X of MFT record %d is truncated", attr_type, record_number)

        pos += attr_length

    if not name or name.startswith('$'):
        return None

    attributes = attributes_from_flags(file_flags)
    if is_directory or file_flags & FILE_NAME_FLAG_DIRECTORY:
        is_directory = True
        attributes = attributes | {FileAttribute.DIRECTORY}
    if not in_use:
        attributes = attributes | {FileAttribute.DELETED}

    return MFTRecord(
        name=name,
        size_bytes=size,
        is_directory=is_directory,
        is_deleted=not in_use,
        start_cluster=start_cluster,
        attributes=attributes,
        offset=position,
        record_number=record_number,
    )


def parse_ntfs_mft(buffer, scan_limit: int = DEFAULT_MFT_SCAN_LIMIT) -> DirectoryListing:
    """
    Scan MFT records of an NTFS volume.

    Args:
        buffer: Volume content starting at the boot sector
        scan_limit: Bytes of the MFT to scan

    Returns:
        DirectoryListing(active, deleted); metadata files ($MFT, ...) are omitted
    """
    listing = _empty_listing()
    reader = ByteReader(buffer)
    try:
        cluster_size = reader.u16(11) * reader.u8(13)
        mft_offset = reader.u32(48) * cluster_size
    except BoundsError:
        logger.debug("NTFS boot sector truncated")
        return listing

    end = min(len(buffer), mft_offset + scan_limit)
    for record_number, pos in enumerate(range(mft_offset, end, MFT_RECORD_SIZE)):
        record = bytearray(buffer[pos:min(pos + MFT_RECORD_SIZE, len(buffer))])
        if len(record) < 24 or bytes(record[:4]) != MFT_MAGIC:
            continue
        _apply_fixups(record)
        try:
            entry = _parse_mft_record(bytes(record), pos, record_number)
        except BoundsError:
            logger.debug("MFT record %d is truncated", record_number)
            continue
        if entry is None:
            continue
        if entry.is_deleted:
            listing.deleted.append(entry)
        else:
            listing.active.append(entry)

    return listing


# ============================================================
# PARTITIONS
# ============================================================

def parse_partition_table(buffer) -> List[PartitionEntry]:
    """Decode the four primary MBR slots; empty when there is no 55 AA signature."""
    if len(buffer) < 512 or bytes(buffer[510:512]) != MBR_SIGNATURE:
        return []

    reader = ByteReader(buffer)
    partitions = []
    for index in range(4):
        base = PARTITION_TABLE_OFFSET + index * PARTITION_ENTRY_SIZE
        type_code = reader.u8(base + 4)
        if type_code == 0:
            continue
        partitions.append(PartitionEntry(
            index=index,
            type_code=type_code,
            start_sector=reader.u32(base + 8),
            size_bytes=reader.u32(base + 12) * SECTOR_SIZE,
            bootable=reader.u8(base) == 0x80,
            file_system=PARTITION_TYPES.get(type_code, 'Unknown'),
        ))
    return partitions


def analyze_file_system(buffer) -> FileSystemReport:
    """
    Identify and list a disk or volume image.

    The image itself is tried first; when it is not a recognized volume, the
    first MBR partition holding one is parsed instead.
    """
    partitions = parse_partition_table(buffer)
    fs_type = identify_file_system(buffer)
    if fs_type != FileSystemType.UNKNOWN or not partitions:
        return _analyze_volume(buffer, fs_type, partitions, 0, len(buffer))

    with memoryview(buffer) as view:
        for partition in partitions:
            start = partition.start_offset
            if start <= 0 or start >= len(buffer):
                continue
            with view[start:] as candidate:
                candidate_type = identify_file_system(candidate)
                if candidate_type != FileSystemType.UNKNOWN:
                    logger.info("Found %s volume in partition %d at offset %d",
                                candidate_type.value, partition.index, start)
                    return _analyze_volume(candidate, candidate_type, partitions,
                                           start, len(buffer))

    return _analyze_volume(buffer, fs_type, partitions, 0, len(buffer))


def _analyze_volume(
    volume,
    fs_type: FileSystemType,
    partitions: List[PartitionEntry],
    volume_offset: int,
    total_size: int
) -> FileSystemReport:
    if fs_type.is_fat:
        listing = parse_fat_directory(volume)
    elif fs_type == FileSystemType.NTFS:
        listing = parse_ntfs_mft(volume)
    else:
        listing = _empty_listing()

    return FileSystemReport(
        file_system=fs_type,
        boot_sector=parse_boot_sector(volume),
        listing=listing,
        partitions=partitions,
        volume_offset=volume_offset,
        total_size=total_size,
    )
