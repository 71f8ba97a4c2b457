"""
Tests for file system identification and FAT/NTFS/MBR parsing.
"""

from artifact_recovery.filesystem import (
    FileAttribute, FileSystemType, analyze_file_system, identify_file_system,
    parse_boot_sector, parse_fat_directory, parse_ntfs_mft, parse_partition_table,
)

from conftest import (
    build_fat16_image, build_fat32_image, build_mbr, build_ntfs_image, dir_entry,
    fat_boot_sector, file_name_attr, mft_record, partition_slot, resident_data_attr,
)


def names(entries):
    return [entry.name for entry in entries]


class TestIdentify:
    """Test file system identification."""

    def test_fat16(self, fat16_image):
        assert identify_file_system(fat16_image) is FileSystemType.FAT16

    def test_fat12_reported_as_fat16(self):
        """FAT12 volumes share the FAT16 reader."""
        assert identify_file_system(fat_boot_sector(label=b'FAT12   ')) is FileSystemType.FAT16

    def test_fat32(self):
        image = build_fat32_image({}, {2: 0x0FFFFFFF})
        assert identify_file_system(image) is FileSystemType.FAT32

    def test_ntfs(self, ntfs_image):
        assert identify_file_system(ntfs_image) is FileSystemType.NTFS

    def test_ext4(self):
        """The EXT superblock magic sits at 1080."""
        image = bytearray(2048)
        image[1080:1082] = b'\x53\xEF'
        assert identify_file_system(bytes(image)) is FileSystemType.EXT4

    def test_unknown_and_short(self):
        """Zeroed or short buffers are unknown, never an error."""
        assert identify_file_system(bytes(512)) is FileSystemType.UNKNOWN
        assert identify_file_system(b'') is FileSystemType.UNKNOWN
        assert identify_file_system(b'\xEB\x3C\x90NTF') is FileSystemType.UNKNOWN


class TestBootSector:
    """Test BIOS parameter block decoding."""

    def test_fat16_geometry(self, fat16_image):
        boot = parse_boot_sector(fat16_image)
        assert boot.file_system is FileSystemType.FAT16
        assert boot.oem_id == 'MSDOS5.0'
        assert boot.bytes_per_sector == 512
        assert boot.cluster_size == 512
        assert boot.root_entry_count == 16
        assert boot.sectors_per_fat == 1

    def test_fat32_geometry(self):
        boot = parse_boot_sector(build_fat32_image({}, {2: 0x0FFFFFFF}))
        assert boot.file_system is FileSystemType.FAT32
        assert boot.root_cluster == 2
        assert boot.reserved_sectors == 4

    def test_ntfs_mft_cluster(self, ntfs_image):
        assert parse_boot_sector(ntfs_image).mft_cluster == 4

    def test_unknown(self):
        assert parse_boot_sector(bytes(512)) is None


class TestFATDirectory:
    """Test FAT root directory listing."""

    def test_active_entries(self, fat16_image):
        """Regular files and directories are listed; labels and LFN slots are not."""
        listing = parse_fat_directory(fat16_image)
        assert names(listing.active) == ['README.TXT', 'PHOTOS', 'HIDDEN.SYS']
        readme = listing.active[0]
        assert readme.size_bytes == 1234
        assert readme.start_cluster == 3
        assert not readme.is_deleted
        assert readme.attributes == {FileAttribute.READ_ONLY, FileAttribute.ARCHIVE}
        assert readme.path == '/README.TXT'

    def test_directory_entry(self, fat16_image):
        photos = parse_fat_directory(fat16_image).active[1]
        assert photos.is_directory
        assert FileAttribute.DIRECTORY in photos.attributes

    def test_hidden_system_attributes(self, fat16_image):
        hidden = parse_fat_directory(fat16_image).active[2]
        assert hidden.attributes == {FileAttribute.HIDDEN, FileAttribute.SYSTEM}

    def test_deleted_entries(self, fat16_image):
        """Deleted names replace the lost first character with an underscore."""
        listing = parse_fat_directory(fat16_image)
        assert names(listing.deleted) == ['_ECRET.DOC', '_MPTY.LOG']
        secret = listing.deleted[0]
        assert secret.is_deleted
        assert secret.size_bytes == 2048
        assert secret.start_cluster == 5
        assert FileAttribute.DELETED in secret.attributes

    def test_recoverable(self, fat16_image):
        """Deleted entries need a start cluster and a size to be recoverable."""
        listing = parse_fat_directory(fat16_image)
        assert [entry.recoverable for entry in listing.deleted] == [True, False]
        assert listing.recoverable_count == 1

    def test_listing_stops_at_end_marker(self, fat16_image):
        """Nothing after the 0x00 entry is reported."""
        listing = parse_fat_directory(fat16_image)
        assert 'AFTER.END' not in names(listing.active + listing.deleted)

    def test_entry_offsets(self, fat16_image):
        """Entries record their byte offset in the volume."""
        readme = parse_fat_directory(fat16_image).active[0]
        assert readme.offset == 3 * 512 + 32

    def test_kanji_escape(self):
        """A leading 0x05 stands for 0xE5 in an active name."""
        image = build_fat16_image([dir_entry(b'\x05BC', b'TXT', cluster=2, size=10)])
        listing = parse_fat_directory(image)
        assert names(listing.active) == ['\xe5BC.TXT']
        assert listing.deleted == []

    def test_dot_entries_skipped(self):
        image = build_fat16_image([
            dir_entry(b'.', attr=0x10, cluster=2),
            dir_entry(b'..', attr=0x10),
            dir_entry(b'FILE', b'BIN', cluster=3, size=100),
        ])
        assert names(parse_fat_directory(image).active) == ['FILE.BIN']

    def test_truncated_root_directory(self):
        """A root directory cut by the end of the image returns what was read."""
        image = build_fat16_image([
            dir_entry(b'ONE', b'TXT', cluster=2, size=1),
            dir_entry(b'TWO', b'TXT', cluster=3, size=1),
        ])
        truncated = image[:3 * 512 + 32 + 16]
        assert names(parse_fat_directory(truncated).active) == ['ONE.TXT']

    def test_garbage_input(self):
        """Short or random buffers give an empty listing."""
        assert parse_fat_directory(b'').active == []
        assert parse_fat_directory(b'\x01' * 40).deleted == []

    def test_as_dict(self, fat16_image):
        record = parse_fat_directory(fat16_image).as_dict()
        assert record['recoverable_count'] == 1
        assert record['deleted'][0]['attributes'] == ['Archive', 'Deleted']


class TestFAT32:
    """Test FAT32 root directory chains."""

    def test_single_deleted_entry(self):
        """A root cluster with one E5 entry has no active files."""
        root = dir_entry(b'\xE5HOTO', b'JPG', cluster=9, size=4096, high=0)
        listing = parse_fat_directory(build_fat32_image({2: root}, {2: 0x0FFFFFFF}))
        assert listing.active == []
        assert names(listing.deleted) == ['_HOTO.JPG']

    def test_fixed_root_region(self):
        """A root entry count places the root after the FATs even on FAT32 volumes."""
        image = bytearray(4096)
        image[0:512] = fat_boot_sector(root_entries=16, sectors_per_fat16=0,
                                       sectors_per_fat32=0, root_cluster=0,
                                       label=b'FAT32   ')
        image[512:544] = dir_entry(b'\xE5HOTO', b'JPG', cluster=9, size=4096)
        listing = parse_fat_directory(bytes(image))
        assert listing.active == []
        assert names(listing.deleted) == ['_HOTO.JPG']

    def test_missing_root_cluster(self):
        """Without a root entry count or a root cluster there is nothing to walk."""
        root = dir_entry(b'LOST', b'TXT', cluster=3, size=1)
        image = build_fat32_image({2: root}, {2: 0x0FFFFFFF}, root_cluster=0)
        listing = parse_fat_directory(image)
        assert listing.active == []
        assert listing.deleted == []

    def test_high_cluster_word(self):
        """FAT32 start clusters combine the high and low words."""
        root = dir_entry(b'BIG', b'DAT', cluster=5, size=1, high=1)
        listing = parse_fat_directory(build_fat32_image({2: root}, {2: 0x0FFFFFFF}))
        assert listing.active[0].start_cluster == 0x10005

    def test_chain_across_clusters(self):
        """The root directory continues along the cluster chain."""
        first = b''.join(dir_entry(b'F%02d' % i, b'TXT', cluster=10 + i, size=1) for i in range(16))
        second = dir_entry(b'LAST', b'TXT', cluster=40, size=1)
        image = build_fat32_image({2: first, 3: second}, {2: 3, 3: 0x0FFFFFFF})
        listing = parse_fat_directory(image)
        assert len(listing.active) == 17
        assert listing.active[-1].name == 'LAST.TXT'

    def test_chain_loop_terminates(self):
        """A cluster chain pointing back to itself is walked once."""
        first = b''.join(dir_entry(b'F%02d' % i, b'TXT', cluster=10, size=1) for i in range(16))
        image = build_fat32_image({2: first}, {2: 2})
        assert len(parse_fat_directory(image).active) == 16


class TestNTFS:
    """Test MFT record scanning."""

    def test_active_records(self, ntfs_image):
        """System files are omitted; active records keep MFT order."""
        listing = parse_ntfs_mft(ntfs_image)
        assert names(listing.active) == ['report.docx', 'Documents', 'notes.txt']

    def test_nonresident_data(self, ntfs_image):
        """Size and start cluster come from the non-resident $DATA attribute."""
        report = parse_ntfs_mft(ntfs_image).active[0]
        assert report.size_bytes == 5000
        assert report.start_cluster == 100
        assert report.record_number == 1

    def test_resident_data(self, ntfs_image):
        notes = parse_ntfs_mft(ntfs_image).active[2]
        assert notes.size_bytes == 5
        assert notes.record_number == 5

    def test_directory(self, ntfs_image):
        documents = parse_ntfs_mft(ntfs_image).active[1]
        assert documents.is_directory
        assert FileAttribute.DIRECTORY in documents.attributes

    def test_deleted_record_prefers_long_name(self, ntfs_image):
        """A record not in use is deleted; the Win32 name beats the DOS alias."""
        listing = parse_ntfs_mft(ntfs_image)
        assert names(listing.deleted) == ['deleted.jpg']
        deleted = listing.deleted[0]
        assert deleted.is_deleted
        assert deleted.size_bytes == 300
        assert FileAttribute.DELETED in deleted.attributes

    def test_records_without_fixups(self):
        """Records written without an update sequence array are still read."""
        image = build_ntfs_image([
            mft_record([file_name_attr('plain.txt'), resident_data_attr(b'abc')], fixups=False),
        ])
        assert names(parse_ntfs_mft(image).active) == ['plain.txt']

    def test_scan_limit(self, ntfs_image):
        """Only records within the scan limit are visited."""
        listing = parse_ntfs_mft(ntfs_image, scan_limit=2 * 1024)
        assert names(listing.active) == ['report.docx']

    def test_truncated_image(self, ntfs_image):
        """A record cut short does not raise."""
        listing = parse_ntfs_mft(ntfs_image[:4 * 512 + 1024 + 100])
        assert listing.deleted == []

    def test_garbage_input(self):
        assert parse_ntfs_mft(b'').active == []
        assert parse_ntfs_mft(b'\xFF' * 600).active == []


class TestPartitions:
    """Test MBR partition tables and whole-image analysis."""

    def test_partition_table(self):
        mbr = build_mbr([
            partition_slot(0x07, 2048, 1000, bootable=True),
            partition_slot(0x00, 0, 0),
            partition_slot(0x83, 4096, 10),
        ])
        partitions = parse_partition_table(mbr)
        assert [p.index for p in partitions] == [0, 2]
        ntfs, linux = partitions
        assert ntfs.file_system == 'NTFS'
        assert ntfs.bootable
        assert ntfs.size_bytes == 1000 * 512
        assert ntfs.start_offset == 2048 * 512
        assert ntfs.type_hex == '0x07'
        assert linux.file_system == 'Linux'
        assert not linux.bootable

    def test_unknown_type_code(self):
        partitions = parse_partition_table(build_mbr([partition_slot(0x42, 1, 1)]))
        assert partitions[0].file_system == 'Unknown'

    def test_missing_signature(self):
        mbr = bytearray(build_mbr([partition_slot(0x07, 1, 1)]))
        mbr[510:512] = b'\x00\x00'
        assert parse_partition_table(bytes(mbr)) == []
        assert parse_partition_table(b'\x55\xAA') == []

    def test_analyze_volume(self, fat16_image):
        """A bare volume is listed directly."""
        report = analyze_file_system(fat16_image)
        assert report.file_system is FileSystemType.FAT16
        assert report.volume_offset == 0
        assert names(report.listing.active) == ['README.TXT', 'PHOTOS', 'HIDDEN.SYS']

    def test_analyze_partitioned_disk(self, fat16_image):
        """A disk image falls back to the first partition holding a volume."""
        mbr = build_mbr([partition_slot(0x06, 8, len(fat16_image) // 512)])
        disk = mbr + bytes(8 * 512 - len(mbr)) + fat16_image
        report = analyze_file_system(disk)
        assert report.file_system is FileSystemType.FAT16
        assert report.volume_offset == 8 * 512
        assert report.partitions[0].file_system == 'FAT16'
        assert names(report.listing.deleted) == ['_ECRET.DOC', '_MPTY.LOG']
        assert report.total_size == len(disk)

    def test_analyze_unknown(self):
        report = analyze_file_system(bytes(4096))
        assert report.file_system is FileSystemType.UNKNOWN
        assert report.boot_sector is None
        assert report.listing.active == [] and report.listing.deleted == []
        assert report.as_dict()['file_system'] == 'Unknown'
