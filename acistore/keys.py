"""Content keys, file type detection and decompression for stored images."""

from __future__ import annotations

import bz2
import enum
import gzip
import hashlib
import lzma
from typing import BinaryIO

HASH_PREFIX = "sha512-"
LEN_HASH = hashlib.sha512().digest_size
# Keys use only the first half of a sha512 sum, in hex characters.
LEN_HASH_KEY = (LEN_HASH // 2) * 2
LEN_KEY = len(HASH_PREFIX) + LEN_HASH_KEY
MIN_LEN_KEY = len(HASH_PREFIX) + 2

_GZIP_MAGIC = b"\x1f\x8b"
_BZIP2_MAGIC = b"BZh"
_XZ_MAGIC = b"\xfd7zXZ\x00"
_TAR_MAGIC = b"ustar"
_TAR_MAGIC_OFFSET = 257


class FileType(enum.Enum):
    """Kinds of image file the store can import."""

    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"
    TAR = "tar"
    UNKNOWN = "unknown"


def key_to_string(digest: bytes) -> str:
    """Return the shortened, prefixed hex key for a full sha512 digest."""
    if len(digest) != LEN_HASH:
        raise ValueError(f"bad hash passed to hash_to_key: {digest.hex()}")
    return (HASH_PREFIX + digest.hex())[:LEN_KEY]


def hash_to_key(hasher) -> str:
    """Return the store key for a hash object that holds a full sha512."""
    return key_to_string(hasher.digest())


def block_transform(key: str) -> list[str]:
    """Return the directory components used to shard a key on disk."""
    algorithm, sep, rest = key.partition("-")
    if not sep:
        raise ValueError(f"block_transform should never receive non-hash, got {key}")
    return [algorithm, rest[:2]]


def detect_file_type(header: bytes) -> FileType:
    """Guess the file type from the first bytes of an image."""
    if header.startswith(_GZIP_MAGIC):
        return FileType.GZIP
    if header.startswith(_BZIP2_MAGIC):
        return FileType.BZIP2
    if header.startswith(_XZ_MAGIC):
        return FileType.XZ
    magic = header[_TAR_MAGIC_OFFSET:_TAR_MAGIC_OFFSET + len(_TAR_MAGIC)]
    if magic == _TAR_MAGIC:
        return FileType.TAR
    return FileType.UNKNOWN


def decompress(stream: BinaryIO, file_type: FileType) -> BinaryIO:
    """Wrap a binary stream so that reading it yields the uncompressed tar."""
    if file_type is FileType.GZIP:
        return gzip.GzipFile(fileobj=stream, mode="rb")
    if file_type is FileType.BZIP2:
        return bz2.BZ2File(stream, mode="rb")
    if file_type is FileType.XZ:
        return lzma.LZMAFile(stream, mode="rb")
    if file_type is FileType.TAR:
        return stream
    if file_type is FileType.UNKNOWN:
        raise ValueError("error: unknown image filetype")
    raise ValueError("no type returned from detect_file_type?")