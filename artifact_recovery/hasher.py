"""
Hash Validator Module for ArtifactRecovery

MD5/SHA-1/SHA-256/SHA-512 digests of buffers, files and streams, plus
duplicate tracking for carved output.
"""

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple


class HashAlgorithm(Enum):
    """Supported hash algorithms."""
    MD5 = 'md5'
    SHA1 = 'sha1'
    SHA256 = 'sha256'
    SHA512 = 'sha512'

    @classmethod
    def parse(cls, name: str) -> "HashAlgorithm":
        key = name.strip().lower().replace('-', '')
        for alg in cls:
            if alg.value == key:
                return alg
        raise ValueError(f"Unknown hash algorithm: {name!r}")

    @classmethod
    def parse_list(cls, names: str) -> List["HashAlgorithm"]:
        """Parse a comma-separated list such as ``"md5,sha256"``."""
        return [cls.parse(n) for n in names.split(',') if n.strip()]

    @classmethod
    def from_digest(cls, digest: str) -> "HashAlgorithm":
        """Algorithm whose hex digest has the length of ``digest``."""
        length = len(digest.strip())
        for alg in cls:
            if alg.new().digest_size * 2 == length:
                return alg
        raise ValueError(f"Not an MD5/SHA1/SHA256/SHA512 hex digest: {digest!r}")

    def new(self):
        return hashlib.new(self.value)


@dataclass
class FileHash:
    """Digests of one piece of content."""
    size: int = 0
    digests: Dict[HashAlgorithm, str] = field(default_factory=dict)

    def get(self, algorithm: HashAlgorithm) -> Optional[str]:
        return self.digests.get(algorithm)

    @property
    def md5(self) -> Optional[str]:
        return self.get(HashAlgorithm.MD5)

    @property
    def sha1(self) -> Optional[str]:
        return self.get(HashAlgorithm.SHA1)

    @property
    def sha256(self) -> Optional[str]:
        return self.get(HashAlgorithm.SHA256)

    @property
    def sha512(self) -> Optional[str]:
        return self.get(HashAlgorithm.SHA512)

    def as_dict(self) -> dict:
        """Digests in algorithm order, then the size."""
        result = {alg.value: value for alg, value in self.digests.items()}
        result['size'] = self.size
        return result


class HashValidator:
    """
    Hash calculator and duplicate tracker.

    Every input is consumed once; all configured algorithms are updated from
    the same chunks.
    """

    # Chunk size for streaming hash (1MB)
    DEFAULT_CHUNK_SIZE = 1024 * 1024

    DEFAULT_ALGORITHMS = (HashAlgorithm.MD5, HashAlgorithm.SHA256)

    def __init__(
        self,
        algorithms: Optional[Iterable[HashAlgorithm]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        """
        Initialize hash validator.

        Args:
            algorithms: Algorithms to compute (default: MD5, SHA256)
            chunk_size: Chunk size for streaming hash calculation
        """
        if algorithms is None:
            algorithms = self.DEFAULT_ALGORITHMS
        self.algorithms: List[HashAlgorithm] = list(dict.fromkeys(algorithms))
        self.chunk_size = chunk_size

        self._hash_index: Dict[str, str] = {}  # hash -> first file path

    def _digest_chunks(self, chunks: Iterable[bytes]) -> FileHash:
        hashers = {alg: alg.new() for alg in self.algorithms}
        size = 0
        for chunk in chunks:
            size += len(chunk)
            for hasher in hashers.values():
                hasher.update(chunk)
        return FileHash(
            size=size,
            digests={alg: hasher.hexdigest() for alg, hasher in hashers.items()},
        )

    def _iter_buffer(self, data) -> Iterable[bytes]:
        view = memoryview(data)
        for start in range(0, len(view), self.chunk_size):
            yield view[start:start + self.chunk_size]

    def _iter_stream(self, stream: BinaryIO, size: Optional[int] = None) -> Iterable[bytes]:
        remaining = size
        while remaining is None or remaining > 0:
            read_size = self.chunk_size if remaining is None else min(self.chunk_size, remaining)
            chunk = stream.read(read_size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk

    def hash_bytes(self, data) -> FileHash:
        """Calculate hashes for a bytes-like object."""
        return self._digest_chunks(self._iter_buffer(data))

    def hash_stream(self, stream: BinaryIO, size: Optional[int] = None) -> FileHash:
        """
        Calculate hashes from a binary stream.

        Args:
            stream: Binary readable stream
            size: Optional limit on the bytes read
        """
        return self._digest_chunks(self._iter_stream(stream, size))

    def hash_file(self, file_path) -> FileHash:
        """Calculate hashes for a file using streaming."""
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        with open(path, 'rb') as f:
            return self.hash_stream(f)

    def verify_hash(
        self,
        file_path,
        expected_hash: str,
        algorithm: HashAlgorithm = HashAlgorithm.SHA256
    ) -> bool:
        """True if the file's digest equals ``expected_hash`` (case-insensitive)."""
        validator = HashValidator([algorithm], self.chunk_size)
        actual = validator.hash_file(file_path).get(algorithm)
        return actual == expected_hash.strip().lower()

    def check_duplicate(
        self,
        file_hash: FileHash,
        file_path: str,
        use_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    ) -> Tuple[bool, Optional[str]]:
        """
        Check if content was already seen, and remember it if not.

        Returns:
            Tuple of (is_duplicate, original_path if duplicate)
        """
        hash_value = file_hash.get(use_algorithm)
        if not hash_value:
            return False, None

        original_path = self._hash_index.get(hash_value)
        if original_path is None:
            self._hash_index[hash_value] = file_path
            return False, None

        return True, original_path

    def forget(self, file_hash: FileHash, use_algorithm: HashAlgorithm = HashAlgorithm.SHA256):
        """Drop content remembered by check_duplicate()."""
        hash_value = file_hash.get(use_algorithm)
        if hash_value:
            self._hash_index.pop(hash_value, None)

    def reset_tracking(self):
        self._hash_index.clear()

    @staticmethod
    def format_hash_chain(file_hash: FileHash) -> str:
        """
        Format hashes for forensic documentation.

        Returns:
            One line per digest, preceded by the size
        """
        lines = [f"Size: {file_hash.size} bytes"]
        for alg, value in file_hash.digests.items():
            lines.append(f"{alg.name + ':':<8}{value}")
        return "\n".join(lines)
