"""
Shared fixtures for ArtifactRecovery tests.

Every image is synthesized with struct so the expected values are known
exactly: JPEG/EXIF (both byte orders), PNG/JPEG carving targets, FAT16,
FAT32, NTFS and MBR layouts.
"""

import struct

import pytest


FILLER = b'\xAA'

PNG_HEADER = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])
PNG_FOOTER = bytes([0x49, 0x45, 0x4E, 0x44, 0xAE, 0x42, 0x60, 0x82])


def make_png(body_size: int = 200) -> bytes:
    return PNG_HEADER + FILLER * body_size + PNG_FOOTER


def make_jpeg_blob(body_size: int = 300) -> bytes:
    return b'\xFF\xD8\xFF\xE0' + FILLER * body_size + b'\xFF\xD9'


# ============================================================
# TIFF / EXIF
# ============================================================

TYPE_BYTE = 1
TYPE_ASCII = 2
TYPE_LONG = 4
TYPE_RATIONAL = 5


def ascii_entry(tag, text):
    raw = text.encode('latin-1') + b'\x00'
    return (tag, TYPE_ASCII, len(raw), raw)


def byte_entry(tag, value):
    return (tag, TYPE_BYTE, 1, bytes([value]))


def rational_entry(order, tag, *pairs):
    raw = b''.join(struct.pack(order + 'II', num, den) for num, den in pairs)
    return (tag, TYPE_RATIONAL, len(pairs), raw)


def _ifd_size(count):
    return 2 + 12 * count + 4


def _pack_ifd(order, entries, data_offset):
    """Pack one IFD; values over four bytes go to a data area at data_offset."""
    ifd = struct.pack(order + 'H', len(entries))
    data = b''
    for tag, field_type, count, value in sorted(entries, key=lambda e: e[0]):
        if len(value) <= 4:
            ifd += struct.pack(order + 'HHI', tag, field_type, count) + value.ljust(4, b'\x00')
        else:
            ifd += struct.pack(order + 'HHII', tag, field_type, count, data_offset + len(data))
            data += value
            if len(data) % 2:
                data += b'\x00'
    ifd += struct.pack(order + 'I', 0)
    return ifd, data


def build_tiff(order, ifd0, exif=None, gps=None):
    """TIFF block with IFD0 at offset 8, followed by optional EXIF and GPS IFDs."""

    def pack_ifd0(pointers):
        entries = list(ifd0) + [
            (tag, TYPE_LONG, 1, struct.pack(order + 'I', offset)) for tag, offset in pointers
        ]
        return _pack_ifd(order, entries, 8 + _ifd_size(len(entries)))

    placeholders = [(tag, 0) for tag, sub in ((0x8769, exif), (0x8825, gps)) if sub is not None]
    ifd_bytes, data = pack_ifd0(placeholders)
    cursor = 8 + len(ifd_bytes) + len(data)

    pointers = []
    tail = b''
    for tag, sub in ((0x8769, exif), (0x8825, gps)):
        if sub is None:
            continue
        pointers.append((tag, cursor))
        sub_ifd, sub_data = _pack_ifd(order, sub, cursor + _ifd_size(len(sub)))
        tail += sub_ifd + sub_data
        cursor += len(sub_ifd) + len(sub_data)

    ifd_bytes, data = pack_ifd0(pointers)
    mark = b'II' if order == '<' else b'MM'
    return mark + struct.pack(order + 'HI', 42, 8) + ifd_bytes + data + tail


def segment(marker, payload):
    return struct.pack('>HH', marker, len(payload) + 2) + payload


def build_jpeg(tiff=None, extra_segments=()):
    """SOI, JFIF APP0, optional segments, EXIF APP1, SOS with scan data, EOI."""
    parts = [b'\xFF\xD8', segment(0xFFE0, b'JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00')]
    parts.extend(extra_segments)
    if tiff is not None:
        parts.append(segment(0xFFE1, b'Exif\x00\x00' + tiff))
    parts.append(segment(0xFFDA, b'\x00' * 10))
    parts.append(b'\x12\x34' * 32)
    parts.append(b'\xFF\xD9')
    return b''.join(parts)


def camera_entries():
    return [
        ascii_entry(0x010F, 'Canon'),
        ascii_entry(0x0110, 'Canon EOS 5D Mark IV'),
        ascii_entry(0x0131, 'Firmware 1.2.3'),
        ascii_entry(0x0132, '2023:05:17 14:30:15'),
    ]


def gps_entries(order, lat_ref='N', lon_ref='W', altitude_ref=1):
    return [
        ascii_entry(0x0001, lat_ref),
        rational_entry(order, 0x0002, (40, 1), (26, 1), (46, 1)),
        ascii_entry(0x0003, lon_ref),
        rational_entry(order, 0x0004, (79, 1), (58, 1), (56, 1)),
        byte_entry(0x0005, altitude_ref),
        rational_entry(order, 0x0006, (300, 1)),
        rational_entry(order, 0x0007, (14, 1), (30, 1), (31, 2)),
        rational_entry(order, 0x0011, (1805, 10)),
        ascii_entry(0x001D, '2023:05:17'),
    ]


def build_camera_jpeg(order='<', **gps_kwargs):
    tiff = build_tiff(
        order,
        camera_entries(),
        exif=[ascii_entry(0x9003, '2023:05:17 14:30:00')],
        gps=gps_entries(order, **gps_kwargs),
    )
    return build_jpeg(tiff)


@pytest.fixture(params=['<', '>'], ids=['little-endian', 'big-endian'])
def camera_jpeg(request):
    return build_camera_jpeg(request.param)


# ============================================================
# FAT
# ============================================================

def dir_entry(name, ext=b'', attr=0x20, cluster=0, size=0, high=0):
    """32-byte FAT directory entry; ``name`` and ``ext`` are raw bytes."""
    return (
        name.ljust(8, b' ')[:8]
        + ext.ljust(3, b' ')[:3]
        + bytes([attr])
        + bytes(8)
        + struct.pack('<H', high)
        + bytes(4)
        + struct.pack('<HI', cluster, size)
    )


def fat_boot_sector(bytes_per_sector=512, sectors_per_cluster=1, reserved=1, num_fats=2,
                    root_entries=16, sectors_per_fat16=1, sectors_per_fat32=0,
                    root_cluster=0, label=b'FAT16   '):
    boot = bytearray(512)
    boot[0:3] = b'\xEB\x3C\x90'
    boot[3:11] = b'MSDOS5.0'
    struct.pack_into('<HBHBH', boot, 11, bytes_per_sector, sectors_per_cluster,
                     reserved, num_fats, root_entries)
    struct.pack_into('<H', boot, 22, sectors_per_fat16)
    if sectors_per_fat16:
        boot[54:62] = label
    else:
        struct.pack_into('<I', boot, 36, sectors_per_fat32)
        struct.pack_into('<I', boot, 44, root_cluster)
        boot[82:90] = label
    boot[510:512] = b'\x55\xAA'
    return boot


FAT16_ROOT_OFFSET = (1 + 2 * 1) * 512


def build_fat16_image(entries, size=8192):
    image = bytearray(size)
    image[0:512] = fat_boot_sector()
    root = b''.join(entries)
    image[FAT16_ROOT_OFFSET:FAT16_ROOT_OFFSET + len(root)] = root
    return bytes(image)


@pytest.fixture
def fat16_image():
    return build_fat16_image([
        dir_entry(b'MYDISK', attr=0x08),
        dir_entry(b'README', b'TXT', attr=0x21, cluster=3, size=1234),
        dir_entry(b'PHOTOS', attr=0x10, cluster=4),
        dir_entry(b'A\x00B\x00C', attr=0x0F),
        dir_entry(b'\xE5ECRET', b'DOC', attr=0x20, cluster=5, size=2048),
        dir_entry(b'\xE5MPTY', b'LOG', attr=0x20, cluster=0, size=0),
        dir_entry(b'HIDDEN', b'SYS', attr=0x06, cluster=6, size=10),
        bytes(32),
        dir_entry(b'AFTER', b'END', cluster=7, size=1),
    ])


# FAT32 layout: 4 reserved sectors, 2 FATs of 1 sector, clusters of 1 sector
FAT32_FAT_OFFSET = 4 * 512
FAT32_DATA_OFFSET = (4 + 2 * 1) * 512


def cluster_offset(cluster):
    return FAT32_DATA_OFFSET + (cluster - 2) * 512


def build_fat32_image(clusters, chain, root_cluster=2, size=16384):
    """
    Args:
        clusters: {cluster_number: directory bytes}
        chain: {cluster_number: next FAT entry value}
    """
    image = bytearray(size)
    image[0:512] = fat_boot_sector(reserved=4, root_entries=0, sectors_per_fat16=0,
                                   sectors_per_fat32=1, root_cluster=root_cluster,
                                   label=b'FAT32   ')
    struct.pack_into('<II', image, FAT32_FAT_OFFSET, 0x0FFFFFF8, 0x0FFFFFFF)
    for cluster, value in chain.items():
        struct.pack_into('<I', image, FAT32_FAT_OFFSET + cluster * 4, value)
    for cluster, content in clusters.items():
        start = cluster_offset(cluster)
        image[start:start + len(content)] = content
    return bytes(image)


# ============================================================
# NTFS
# ============================================================

NTFS_MFT_CLUSTER = 4
NTFS_MFT_OFFSET = NTFS_MFT_CLUSTER * 512
USN = b'\x07\x00'


def _align8(value):
    return (value + 7) & ~7


def file_name_attr(name, namespace=1, real_size=0, flags=0x20):
    encoded = name.encode('utf-16-le')
    content = (
        struct.pack('<Q', 5)
        + bytes(32)
        + struct.pack('<QQII', real_size, real_size, flags, 0)
        + bytes([len(name), namespace])
        + encoded
    )
    length = _align8(24 + len(content))
    header = struct.pack('<IIBBHHHIHBB', 0x30, length, 0, 0, 0, 0, 0, len(content), 24, 0, 0)
    return (header + content).ljust(length, b'\x00')


def resident_data_attr(content):
    length = _align8(24 + len(content))
    header = struct.pack('<IIBBHHHIHBB', 0x80, length, 0, 0, 0, 0, 1, len(content), 24, 0, 0)
    return (header + content).ljust(length, b'\x00')


def nonresident_data_attr(real_size, lcn, cluster_count=4):
    runlist = bytes([0x21, cluster_count]) + struct.pack('<H', lcn) + b'\x00'
    length = _align8(0x40 + len(runlist))
    header = struct.pack('<IIBBHHH', 0x80, length, 1, 0, 0x40, 0, 2)
    header += struct.pack('<QQHH4xQQQ', 0, cluster_count - 1, 0x40, 0,
                          cluster_count * 512, real_size, real_size)
    return (header + runlist).ljust(length, b'\x00')


def mft_record(attributes, in_use=True, directory=False, fixups=True):
    record = bytearray(1024)
    record[0:4] = b'FILE'
    struct.pack_into('<HH', record, 4, 0x30, 3)
    struct.pack_into('<H', record, 16, 1)
    flags = (0x01 if in_use else 0) | (0x02 if directory else 0)
    struct.pack_into('<HH', record, 20, 0x38, flags)
    body = b''.join(attributes) + struct.pack('<I', 0xFFFFFFFF)
    record[0x38:0x38 + len(body)] = body
    struct.pack_into('<I', record, 24, 0x38 + len(body) + 4)
    struct.pack_into('<I', record, 28, 1024)
    if fixups:
        # Save sector tails into the update sequence array, stamp the USN
        record[0x30:0x32] = USN
        for i, pos in enumerate((510, 1022), start=1):
            record[0x30 + 2 * i:0x32 + 2 * i] = record[pos:pos + 2]
            record[pos:pos + 2] = USN
    return bytes(record)


def ntfs_boot_sector():
    boot = bytearray(512)
    boot[0:3] = b'\xEB\x52\x90'
    boot[3:11] = b'NTFS    '
    struct.pack_into('<HB', boot, 11, 512, 1)
    struct.pack_into('<Q', boot, 48, NTFS_MFT_CLUSTER)
    boot[510:512] = b'\x55\xAA'
    return boot


def build_ntfs_image(records):
    image = bytearray(NTFS_MFT_OFFSET + 1024 * len(records))
    image[0:512] = ntfs_boot_sector()
    for index, record in enumerate(records):
        start = NTFS_MFT_OFFSET + index * 1024
        image[start:start + len(record)] = record
    return bytes(image)


@pytest.fixture
def ntfs_image():
    return build_ntfs_image([
        mft_record([file_name_attr('$MFT'), resident_data_attr(b'')]),
        mft_record([file_name_attr('report.docx', real_size=0),
                    nonresident_data_attr(real_size=5000, lcn=100)]),
        mft_record([file_name_attr('DELETE~1.JPG', namespace=2),
                    file_name_attr('deleted.jpg', namespace=1),
                    resident_data_attr(b'x' * 300)], in_use=False),
        mft_record([file_name_attr('Documents', flags=0x10000000)], directory=True),
        b'\x00' * 1024,
        mft_record([file_name_attr('notes.txt'), resident_data_attr(b'hello')]),
    ])


# ============================================================
# MBR
# ============================================================

def partition_slot(type_code, start_sector, sectors, bootable=False):
    return (
        bytes([0x80 if bootable else 0x00])
        + bytes(3)
        + bytes([type_code])
        + bytes(3)
        + struct.pack('<II', start_sector, sectors)
    )


def build_mbr(slots):
    mbr = bytearray(512)
    table = b''.join(slots)
    mbr[446:446 + len(table)] = table
    mbr[510:512] = b'\x55\xAA'
    return bytes(mbr)
