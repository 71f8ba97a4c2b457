"""
File Signature Database for ArtifactRecovery

Magic bytes, footers and size caps for the detection and carving catalogs.
Catalog order is significant: when two headers match at the same position the
earlier entry wins.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional
from enum import Enum


class FileCategory(Enum):
    """Categories for file types."""
    IMAGE = 'image'
    VIDEO = 'video'
    AUDIO = 'audio'
    DOCUMENT = 'document'
    ARCHIVE = 'archive'
    EXECUTABLE = 'executable'
    OTHER = 'other'

    @classmethod
    def parse(cls, name: str) -> "FileCategory":
        """Look up a category by value or member name, case-insensitively."""
        key = name.strip().lower()
        for category in cls:
            if category.value == key:
                return category
        raise ValueError(f"Unknown file category: {name!r}")


DEFAULT_MAX_SIZE = 100 * 1000 * 1000


@dataclass(frozen=True)
class FileSignature:
    """File signature definition."""
    name: str
    extension: str
    category: FileCategory
    header: bytes
    footer: Optional[bytes] = None
    max_size: int = DEFAULT_MAX_SIZE
    description: str = ""
    # Declared extensions (upper case) that are consistent with this header
    aliases: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def accepted_extensions(self) -> FrozenSet[str]:
        return self.aliases or frozenset({self.extension.upper()})

    @property
    def header_hex(self) -> str:
        return self.header.hex().upper()

    def accepts_extension(self, extension: str) -> bool:
        return extension.upper().lstrip('.') in self.accepted_extensions

    def matches_at(self, data, offset: int = 0) -> bool:
        """True if the header bytes occur at ``offset`` (never reads past the end)."""
        end = offset + len(self.header)
        if offset < 0 or end > len(data):
            return False
        return data[offset:end] == self.header

    def as_dict(self) -> dict:
        return {
            'name': self.name,
            'extension': self.extension,
            'category': self.category.value,
            'header': self.header_hex,
            'footer': self.footer.hex().upper() if self.footer else None,
            'max_size': self.max_size,
            'description': self.description,
            'aliases': sorted(self.accepted_extensions),
        }


def _aliases(*names: str) -> FrozenSet[str]:
    return frozenset(names)


# ============================================================
# DETECTION CATALOG (magic number vs. declared extension)
# ============================================================

DETECTION_SIGNATURES: List[FileSignature] = [
    FileSignature("PNG", "png", FileCategory.IMAGE, bytes.fromhex("89504E47"),
                  description="PNG Image", aliases=_aliases("PNG")),
    FileSignature("JPEG/JFIF", "jpg", FileCategory.IMAGE, bytes.fromhex("FFD8FFE0"),
                  description="JPEG Image (JFIF)", aliases=_aliases("JPG", "JPEG")),
    FileSignature("JPEG/EXIF", "jpg", FileCategory.IMAGE, bytes.fromhex("FFD8FFE1"),
                  description="JPEG Image (EXIF)", aliases=_aliases("JPG", "JPEG")),
    FileSignature("JPEG", "jpg", FileCategory.IMAGE, bytes.fromhex("FFD8FFDB"),
                  description="JPEG Image", aliases=_aliases("JPG", "JPEG")),
    FileSignature("GIF", "gif", FileCategory.IMAGE, bytes.fromhex("47494638"),
                  description="GIF Image", aliases=_aliases("GIF")),
    FileSignature("WEBP", "webp", FileCategory.IMAGE, bytes.fromhex("52494646"),
                  description="WebP Image (RIFF container)", aliases=_aliases("WEBP")),
    FileSignature("PDF", "pdf", FileCategory.DOCUMENT, bytes.fromhex("25504446"),
                  description="PDF Document", aliases=_aliases("PDF")),
    FileSignature("ZIP/DOCX/XLSX", "zip", FileCategory.ARCHIVE, bytes.fromhex("504B0304"),
                  description="ZIP Archive or Office Open XML Document",
                  aliases=_aliases("ZIP", "DOCX", "XLSX", "PPTX")),
    FileSignature("ZIP (empty)", "zip", FileCategory.ARCHIVE, bytes.fromhex("504B0506"),
                  description="Empty ZIP Archive", aliases=_aliases("ZIP")),
    FileSignature("RAR", "rar", FileCategory.ARCHIVE, bytes.fromhex("52617221"),
                  description="RAR Archive", aliases=_aliases("RAR")),
    FileSignature("GZIP", "gz", FileCategory.ARCHIVE, bytes.fromhex("1F8B0800"),
                  description="GZIP Compressed File", aliases=_aliases("GZ", "TGZ")),
    FileSignature("7Z", "7z", FileCategory.ARCHIVE, bytes.fromhex("377ABCAF"),
                  description="7-Zip Archive", aliases=_aliases("7Z")),
    FileSignature("EXE", "exe", FileCategory.EXECUTABLE, bytes.fromhex("4D5A9000"),
                  description="Windows Executable", aliases=_aliases("EXE", "DLL")),
    FileSignature("ELF", "elf", FileCategory.EXECUTABLE, bytes.fromhex("7F454C46"),
                  description="Linux Executable", aliases=_aliases("ELF", "SO")),
    FileSignature("MP3/ID3", "mp3", FileCategory.AUDIO, bytes.fromhex("49443303"),
                  description="MP3 Audio (ID3v2)", aliases=_aliases("MP3")),
    FileSignature("MP3", "mp3", FileCategory.AUDIO, bytes.fromhex("FFFB9000"),
                  description="MP3 Audio", aliases=_aliases("MP3")),
    FileSignature("MP4", "mp4", FileCategory.VIDEO, bytes.fromhex("00000020"),
                  description="MP4 Video", aliases=_aliases("MP4", "M4V", "M4A")),
    FileSignature("MP4/ISO", "mp4", FileCategory.VIDEO, bytes.fromhex("00000018"),
                  description="MP4 Video", aliases=_aliases("MP4", "M4V", "M4A")),
    FileSignature("MKV/WEBM", "mkv", FileCategory.VIDEO, bytes.fromhex("1A45DFA3"),
                  description="Matroska/WebM Video", aliases=_aliases("MKV", "WEBM")),
    FileSignature("OLE2", "doc", FileCategory.DOCUMENT, bytes.fromhex("D0CF11E0"),
                  description="Legacy Office Document (DOC/XLS/PPT)",
                  aliases=_aliases("DOC", "XLS", "PPT")),
]


# ============================================================
# CARVING CATALOG (header/footer pairs with size caps)
# ============================================================

CARVING_SIGNATURES: List[FileSignature] = [
    # Images
    FileSignature("JPEG", "jpg", FileCategory.IMAGE, bytes([0xFF, 0xD8, 0xFF]),
                  footer=bytes([0xFF, 0xD9]), max_size=50_000_000,
                  description="JPEG Image"),
    FileSignature("PNG", "png", FileCategory.IMAGE,
                  bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A]),
                  footer=bytes([0x49, 0x45, 0x4E, 0x44, 0xAE, 0x42, 0x60, 0x82]),
                  max_size=50_000_000, description="PNG Image"),
    FileSignature("GIF", "gif", FileCategory.IMAGE, b"GIF8",
                  footer=bytes([0x00, 0x3B]), max_size=20_000_000,
                  description="GIF Image"),
    FileSignature("BMP", "bmp", FileCategory.IMAGE, b"BM",
                  max_size=50_000_000, description="Bitmap Image"),
    FileSignature("WebP", "webp", FileCategory.IMAGE, b"RIFF",
                  max_size=50_000_000, description="WebP Image"),

    # Videos
    FileSignature("MP4", "mp4", FileCategory.VIDEO, bytes([0x00, 0x00, 0x00]),
                  max_size=500_000_000, description="MP4 Video"),
    FileSignature("AVI", "avi", FileCategory.VIDEO, b"RIFF",
                  max_size=500_000_000, description="AVI Video"),
    FileSignature("MKV", "mkv", FileCategory.VIDEO, bytes([0x1A, 0x45, 0xDF, 0xA3]),
                  max_size=500_000_000, description="Matroska Video"),

    # Audio
    FileSignature("MP3", "mp3", FileCategory.AUDIO, b"ID3",
                  max_size=50_000_000, description="MP3 Audio (ID3 tagged)"),
    FileSignature("WAV", "wav", FileCategory.AUDIO, b"RIFF",
                  max_size=100_000_000, description="WAV Audio"),
    FileSignature("OGG", "ogg", FileCategory.AUDIO, b"OggS",
                  max_size=50_000_000, description="OGG Audio"),

    # Documents
    FileSignature("PDF", "pdf", FileCategory.DOCUMENT, b"%PDF",
                  footer=b"%%EOF", max_size=100_000_000, description="PDF Document"),
    FileSignature("DOCX/ZIP", "zip", FileCategory.DOCUMENT, bytes([0x50, 0x4B, 0x03, 0x04]),
                  max_size=100_000_000, description="ZIP Archive or Office Document"),
    FileSignature("RTF", "rtf", FileCategory.DOCUMENT, b"{\\rtf",
                  max_size=50_000_000, description="Rich Text Document"),

    # Archives
    FileSignature("RAR", "rar", FileCategory.ARCHIVE, b"Rar!",
                  max_size=500_000_000, description="RAR Archive"),
    FileSignature("7Z", "7z", FileCategory.ARCHIVE,
                  bytes([0x37, 0x7A, 0xBC, 0xAF, 0x27, 0x1C]),
                  max_size=500_000_000, description="7-Zip Archive"),
    FileSignature("GZIP", "gz", FileCategory.ARCHIVE, bytes([0x1F, 0x8B]),
                  max_size=500_000_000, description="GZIP Compressed File"),

    # Executables
    FileSignature("EXE", "exe", FileCategory.OTHER, b"MZ",
                  max_size=100_000_000, description="Windows Executable"),
    FileSignature("ELF", "elf", FileCategory.OTHER, bytes([0x7F, 0x45, 0x4C, 0x46]),
                  max_size=100_000_000, description="ELF Executable/Library"),
]


class SignatureDB:
    """
    Ordered registry of file signatures.

    Defaults to the carving catalog; use ``SignatureDB.for_detection()`` for
    the magic-number catalog.
    """

    def __init__(self, signatures: Optional[Iterable[FileSignature]] = None):
        if signatures is None:
            signatures = CARVING_SIGNATURES
        self._signatures: List[FileSignature] = list(signatures)
        self._header_map: Dict[bytes, List[FileSignature]] = {}
        self._build_header_map()

    @classmethod
    def for_detection(cls) -> "SignatureDB":
        return cls(DETECTION_SIGNATURES)

    @classmethod
    def for_carving(cls) -> "SignatureDB":
        return cls(CARVING_SIGNATURES)

    def _build_header_map(self):
        """Map the first header byte to signatures, preserving catalog order."""
        self._header_map = {}
        for sig in self._signatures:
            self._header_map.setdefault(sig.header[:1], []).append(sig)

    def get_by_category(self, category: FileCategory) -> List[FileSignature]:
        return [s for s in self._signatures if s.category == category]

    def get_by_name(self, name: str) -> Optional[FileSignature]:
        name = name.upper()
        for sig in self._signatures:
            if sig.name.upper() == name:
                return sig
        return None

    def categories(self) -> List[FileCategory]:
        """Categories present in the catalog, in first-seen order."""
        seen: List[FileCategory] = []
        for sig in self._signatures:
            if sig.category not in seen:
                seen.append(sig.category)
        return seen

    def match_all(self, data, offset: int = 0) -> List[FileSignature]:
        """All signatures whose header occurs at ``offset``, in catalog order."""
        if offset < 0 or offset >= len(data):
            return []
        candidates = self._header_map.get(bytes(data[offset:offset + 1]), [])
        return [sig for sig in candidates if sig.matches_at(data, offset)]

    def match_header(self, data, offset: int = 0) -> Optional[FileSignature]:
        """First signature (catalog order) whose header occurs at ``offset``."""
        matches = self.match_all(data, offset)
        return matches[0] if matches else None

    def filter_by_categories(self, categories: Iterable[FileCategory]) -> "SignatureDB":
        """Create a new SignatureDB limited to the given categories."""
        wanted = set(categories)
        return SignatureDB(s for s in self._signatures if s.category in wanted)

    def __len__(self) -> int:
        return len(self._signatures)

    def __iter__(self) -> Iterator[FileSignature]:
        return iter(self._signatures)
