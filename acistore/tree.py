"""Rendered image trees and the hash that verifies them."""

from __future__ import annotations

import hashlib
import io
import json
import os
import shutil
import tarfile
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional, Protocol

from .keys import hash_to_key

HASH_FILENAME = "hash"
RENDERED_FILENAME = "rendered"
MANIFEST_FILE = "manifest"
ROOTFS_DIR = "rootfs"

_IGNORED = frozenset({MANIFEST_FILE, HASH_FILENAME, RENDERED_FILENAME})
_XATTR_PREFIX = "SCHILY.xattr."

_TYPE_MODE_BITS = {
    tarfile.REGTYPE: 0o100000,
    tarfile.AREGTYPE: 0o100000,
    tarfile.LNKTYPE: 0o100000,
    tarfile.DIRTYPE: 0o40000,
    tarfile.SYMTYPE: 0o120000,
    tarfile.FIFOTYPE: 0o10000,
    tarfile.CHRTYPE: 0o20000,
    tarfile.BLKTYPE: 0o60000,
}

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class TreeStoreError(Exception):
    """Raised when a tree cannot be hashed, checked or removed."""


@dataclass(frozen=True)
class FileInfo:
    """The parts of a tar header that identify a file, in a stable form."""

    name: str
    mode: int
    uid: int
    gid: int
    size: int
    typeflag: int
    linkname: str
    devmajor: int
    devminor: int
    xattrs: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    def to_json(self) -> bytes:
        """Return the compact JSON encoding that goes into the tree hash."""
        document = {
            "Name": self.name,
            "Mode": self.mode,
            "Uid": self.uid,
            "Gid": self.gid,
            "Size": self.size,
            "Typeflag": self.typeflag,
            "Linkname": self.linkname,
            "Devmajor": self.devmajor,
            "Devminor": self.devminor,
            "Xattrs": [{"Name": k, "Value": v} for k, v in self.xattrs],
        }
        text = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
        for char, escape in _JSON_ESCAPES.items():
            text = text.replace(char, escape)
        return text.encode("utf-8")


def file_info_from_tarinfo(tarinfo: tarfile.TarInfo) -> FileInfo:
    """Build a FileInfo from a tar header, with xattrs sorted by name."""
    xattrs = sorted(
        (key[len(_XATTR_PREFIX):], value)
        for key, value in tarinfo.pax_headers.items()
        if key.startswith(_XATTR_PREFIX)
    )
    return FileInfo(
        name=tarinfo.name,
        mode=tarinfo.mode | _TYPE_MODE_BITS.get(tarinfo.type, 0),
        uid=tarinfo.uid,
        gid=tarinfo.gid,
        size=tarinfo.size,
        typeflag=tarinfo.type[0],
        linkname=tarinfo.linkname,
        devmajor=tarinfo.devmajor,
        devminor=tarinfo.devminor,
        xattrs=tuple(xattrs),
    )


class ArchiveWriter(Protocol):
    def add_file(self, tarinfo: tarfile.TarInfo, stream: Optional[BinaryIO]) -> None:
        ...


class ImageHashWriter:
    """Feeds file headers and contents into a sink such as a hash object."""

    def __init__(self, sink):
        self.sink = sink

    def add_file(self, tarinfo: tarfile.TarInfo, stream: Optional[BinaryIO]) -> None:
        """Write the header's JSON encoding, then the file data if any."""
        self.sink.update(file_info_from_tarinfo(tarinfo).to_json()) if hasattr(
            self.sink, "update"
        ) else self.sink.write(file_info_from_tarinfo(tarinfo).to_json())
        if stream is None:
            return
        for chunk in iter(lambda: stream.read(65536), b""):
            if hasattr(self.sink, "update"):
                self.sink.update(chunk)
            else:
                self.sink.write(chunk)

    def close(self) -> None:
        """Nothing to flush; present for symmetry with archive writers."""


def _walk(root: str) -> Iterator[str]:
    os.lstat(root)

    def visit(path: str) -> Iterator[str]:
        for name in sorted(os.listdir(path)):
            full = os.path.join(path, name)
            yield full
            if os.path.isdir(full) and not os.path.islink(full):
                yield from visit(full)

    yield from visit(root)


def walk_tree(root, writer: ArchiveWriter) -> None:
    """Pass every file under root, in lexical order, to the writer.

    Bookkeeping files at the top level and sockets are skipped; hard links
    to a file already seen are passed with no contents.
    """
    root = os.fspath(root)
    with tarfile.open(fileobj=io.BytesIO(), mode="w") as archive:
        for path in _walk(root):
            relpath = os.path.relpath(path, root)
            if relpath in _IGNORED:
                continue
            tarinfo = archive.gettarinfo(path, arcname=relpath)
            if tarinfo is None:
                continue
            if tarinfo.type in (tarfile.REGTYPE, tarfile.AREGTYPE):
                with open(path, "rb") as stream:
                    writer.add_file(tarinfo, stream)
            else:
                if tarinfo.type == tarfile.LNKTYPE:
                    tarinfo.size = 0
                writer.add_file(tarinfo, None)


def _fsync_dir(path: str) -> None:
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class TreeStore:
    """A directory of rendered images, one subdirectory per image key."""

    def __init__(self, path):
        self.path = os.fspath(path)

    def get_path(self, key: str) -> str:
        """Return the tree path for a key, whether or not it exists."""
        return os.path.join(self.path, key)

    def get_rootfs(self, key: str) -> str:
        """Return the rootfs path for a key, whether or not it exists."""
        return os.path.join(self.get_path(key), ROOTFS_DIR)

    def remove(self, key: str) -> None:
        """Delete the tree for a key, the "rendered" flag first."""
        treepath = self.get_path(key)
        try:
            os.stat(treepath)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise TreeStoreError(
                f"treestore: failed to open tree store directory: {exc}"
            ) from exc
        rendered = os.path.join(treepath, RENDERED_FILENAME)
        if os.path.lexists(rendered):
            os.remove(rendered)
            try:
                _fsync_dir(treepath)
            except OSError as exc:
                raise TreeStoreError(
                    f"treestore: failed to sync tree store directory: {exc}"
                ) from exc
        shutil.rmtree(treepath)

    def is_rendered(self, key: str) -> bool:
        """Tell whether the tree carries its "rendered" flag file."""
        try:
            os.stat(os.path.join(self.get_path(key), RENDERED_FILENAME))
        except FileNotFoundError:
            return False
        return True

    def hash(self, key: str) -> str:
        """Return a key-formatted sha512 over the tree's headers and data."""
        hasher = hashlib.sha512()
        try:
            walk_tree(self.get_path(key), ImageHashWriter(hasher))
        except OSError as exc:
            raise TreeStoreError(f"treestore: error walking rootfs: {exc}") from exc
        return hash_to_key(hasher)

    def check(self, key: str) -> None:
        """Raise TreeStoreError unless the tree matches its saved hash."""
        try:
            with open(os.path.join(self.get_path(key), HASH_FILENAME)) as fh:
                saved = fh.read()
        except OSError as exc:
            raise TreeStoreError(f"treestore: cannot read hash file: {exc}") from exc
        try:
            current = self.hash(key)
        except TreeStoreError as exc:
            raise TreeStoreError(
                f"treestore: cannot calculate tree hash: {exc}"
            ) from exc
        if current != saved:
            raise TreeStoreError(
                f"treestore: wrong tree hash: {current}, expected: {saved}"
            )