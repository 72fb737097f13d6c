import bz2
import gzip
import hashlib
import io
import lzma
import tarfile

import pytest

from acistore.keys import (
    FileType,
    LEN_KEY,
    block_transform,
    decompress,
    detect_file_type,
    hash_to_key,
    key_to_string,
)


def _tar_bytes() -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tf:
        data = b"hello"
        info = tarfile.TarInfo("hello.txt")
        info.size = len(data)
        tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def test_key_to_string_short_form():
    digest = bytes.fromhex(
        "1234567890000000000000000000000000000000000000000000000000000000"
        "0000000000000000000000000000000000000000000000000000000000000000"
    )
    assert key_to_string(digest) == (
        "sha512-1234567890000000000000000000000000000000000000000000000000000000"
    )


def test_key_to_string_truncates_full_hash():
    digest = bytes.fromhex(
        "67147019a5b56f5e2ee01e989a8aa4787f56b8445960be2d8678391cf111009b"
        "c0780f31001fd181a2b61507547aee4caa44cda4b8bdb238d0e4ba830069ed2c"
    )
    assert key_to_string(digest) == (
        "sha512-67147019a5b56f5e2ee01e989a8aa4787f56b8445960be2d8678391cf111009b"
    )


def test_key_to_string_rejects_wrong_length():
    with pytest.raises(ValueError):
        key_to_string(b"\x00" * 10)


def test_hash_to_key_matches_digest():
    hasher = hashlib.sha512(b"I am a manually placed object")
    key = hash_to_key(hasher)
    assert key == key_to_string(hasher.digest())
    assert len(key) == LEN_KEY
    assert key.startswith("sha512-")


def test_block_transform():
    assert block_transform("sha512-abcdef") == ["sha512", "ab"]


def test_block_transform_rejects_non_hash():
    with pytest.raises(ValueError):
        block_transform("nohash")


@pytest.mark.parametrize(
    "compress, expected",
    [
        (gzip.compress, FileType.GZIP),
        (bz2.compress, FileType.BZIP2),
        (lzma.compress, FileType.XZ),
        (lambda data: data, FileType.TAR),
    ],
)
def test_detect_and_decompress_round_trip(compress, expected):
    raw = _tar_bytes()
    packed = compress(raw)
    file_type = detect_file_type(packed[:512])
    assert file_type is expected
    with decompress(io.BytesIO(packed), file_type) as stream:
        assert stream.read() == raw


def test_detect_unknown():
    assert detect_file_type(b"not an image at all") is FileType.UNKNOWN


def test_decompress_unknown_raises():
    with pytest.raises(ValueError, match="unknown image filetype"):
        decompress(io.BytesIO(b""), FileType.UNKNOWN)