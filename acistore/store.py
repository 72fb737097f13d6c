"""The content-addressable store that holds imported images on disk."""

from __future__ import annotations

import contextlib
import hashlib
import io
import json
import os
import shutil
import tarfile
import tempfile
from datetime import datetime, timezone
from typing import Any, BinaryIO, Iterator, Mapping

from filelock import FileLock

from .aciinfo import (
    ACIInfo,
    get_aciinfos_with_app_name,
    get_aciinfos_with_key_prefix,
    write_aciinfo,
)
from .blobstore import BlobStore
from .db import DB, create_schema
from .keys import (
    HASH_PREFIX,
    LEN_KEY,
    MIN_LEN_KEY,
    decompress,
    detect_file_type,
    hash_to_key,
)
from .remote import Remote, get_remote, write_remote
from .tree import MANIFEST_FILE, TreeStore

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms
    fcntl = None

_DIR_MODE = 0o777
_LOCK_FILE_MODE = 0o660
_HEADER_SIZE = 512
_COPY_CHUNK = 65536
_DUMP_LIMIT = 128


class StoreError(Exception):
    """Raised when the store cannot resolve, read or import an image."""


class _PeekedStream(io.RawIOBase):
    """Replays bytes already read from a stream before reading the rest."""

    def __init__(self, head: bytes, rest: BinaryIO):
        super().__init__()
        self._head = head
        self._rest = rest

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._head:
            count = min(len(buffer), len(self._head))
            buffer[:count] = self._head[:count]
            self._head = self._head[count:]
            return count
        data = self._rest.read(len(buffer))
        count = len(data)
        buffer[:count] = data
        return count


@contextlib.contextmanager
def _key_lock(directory: str, key: str, shared: bool) -> Iterator[None]:
    path = os.path.join(directory, key)
    if fcntl is None:
        with FileLock(path + ".lock"):
            yield
        return
    fd = os.open(path, os.O_RDONLY | os.O_CREAT, _LOCK_FILE_MODE)
    try:
        fcntl.flock(fd, fcntl.LOCK_SH if shared else fcntl.LOCK_EX)
        yield
    finally:
        os.close(fd)


def _manifest_from_image(path: str) -> dict[str, Any]:
    with tarfile.open(path, mode="r:") as archive:
        for member in archive:
            if os.path.normpath(member.name) != MANIFEST_FILE or not member.isfile():
                continue
            fh = archive.extractfile(member)
            if fh is None:
                break
            manifest = json.loads(fh.read().decode("utf-8"))
            if not isinstance(manifest, dict):
                raise ValueError("image manifest is not an object")
            if manifest.get("acKind") != "ImageManifest":
                raise ValueError(f"missing or bad acKind: {manifest.get('acKind')!r}")
            if not manifest.get("name"):
                raise ValueError("name is required")
            return manifest
    raise ValueError("missing manifest")


def _has_labels(manifest: Mapping[str, Any], labels: Mapping[str, str]) -> bool:
    present = {
        (label.get("name"), label.get("value"))
        for label in manifest.get("labels") or []
    }
    return all((name, value) in present for name, value in labels.items())


class Store:
    """A content-addressable store of images rooted at a base directory."""

    def __init__(self, base):
        self.base = os.fspath(base)
        cas_dir = os.path.join(self.base, "cas")
        self.image_lock_dir = os.path.join(cas_dir, "imagelocks")
        os.makedirs(self.image_lock_dir, mode=_DIR_MODE, exist_ok=True)
        self.tree_store_lock_dir = os.path.join(cas_dir, "treestorelocks")
        os.makedirs(self.tree_store_lock_dir, mode=_DIR_MODE, exist_ok=True)

        self.blob_store = BlobStore(os.path.join(cas_dir, "blob"))
        self.manifest_store = BlobStore(os.path.join(cas_dir, "imageManifest"))
        self.db = DB(os.path.join(cas_dir, "db"))
        self.db.do(create_schema)
        self.tree_store = TreeStore(os.path.join(cas_dir, "tree"))

    @property
    def stores(self) -> tuple[BlobStore, BlobStore]:
        return (self.blob_store, self.manifest_store)

    def _tmp_dir(self) -> str:
        directory = os.path.join(self.base, "tmp")
        os.makedirs(directory, mode=_DIR_MODE, exist_ok=True)
        return directory

    def resolve_key(self, key: str) -> str:
        """Resolve a key prefix such as ``sha512-0c45e8c0ab2`` to a full key.

        Keys longer than a full key are truncated first.
        """
        if not key.startswith(HASH_PREFIX):
            raise StoreError("wrong key prefix")
        if len(key) < MIN_LEN_KEY:
            raise StoreError("key too short")
        key = key[:LEN_KEY]
        try:
            infos = self.db.do(lambda conn: get_aciinfos_with_key_prefix(conn, key))
        except Exception as exc:
            raise StoreError(f"error retrieving ACI Infos: {exc}") from exc
        if not infos:
            raise StoreError("no keys found")
        if len(infos) != 1:
            raise StoreError(f"ambiguous key: {key!r}")
        return infos[0].blob_key

    def read_stream(self, key: str) -> BinaryIO:
        """Open the stored image for a key (or key prefix) for reading."""
        try:
            key = self.resolve_key(key)
        except StoreError as exc:
            raise StoreError(f"error resolving key: {exc}") from exc
        try:
            lock = _key_lock(self.image_lock_dir, key, shared=True)
            lock.__enter__()
        except OSError as exc:
            raise StoreError(f"error locking image: {exc}") from exc
        try:
            return self.blob_store.open(key)
        finally:
            lock.__exit__(None, None, None)

    def write_aci(self, stream: BinaryIO, latest: bool) -> str:
        """Import an image, decompressing it if needed, and return its key.

        The key is derived from the hash of the uncompressed image. ``latest``
        marks an image fetched without asking for a specific version.
        """
        head = b""
        try:
            while len(head) < _HEADER_SIZE:
                chunk = stream.read(_HEADER_SIZE - len(head))
                if not chunk:
                    break
                head += chunk
        except OSError as exc:
            raise StoreError(f"error reading image header: {exc}") from exc
        file_type = detect_file_type(head)
        buffered = io.BufferedReader(_PeekedStream(head, stream))
        try:
            reader = decompress(buffered, file_type)
        except (ValueError, OSError) as exc:
            raise StoreError(f"error decompressing image: {exc}") from exc

        hasher = hashlib.sha512()
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._tmp_dir())
        except OSError as exc:
            raise StoreError(f"error creating image: {exc}") from exc
        try:
            try:
                with os.fdopen(fd, "wb") as tmp:
                    for chunk in iter(lambda: reader.read(_COPY_CHUNK), b""):
                        hasher.update(chunk)
                        tmp.write(chunk)
            except Exception as exc:
                raise StoreError(f"error copying image: {exc}") from exc
            try:
                manifest = _manifest_from_image(tmp_path)
            except Exception as exc:
                raise StoreError(f"error extracting image manifest: {exc}") from exc

            key = hash_to_key(hasher)
            try:
                lock = _key_lock(self.image_lock_dir, key, shared=False)
                lock.__enter__()
            except OSError as exc:
                raise StoreError(f"error locking image: {exc}") from exc
            try:
                try:
                    self.blob_store.import_file(tmp_path, key, move=True)
                except OSError as exc:
                    raise StoreError(f"error importing image: {exc}") from exc
                try:
                    self.manifest_store.write(key, json.dumps(manifest).encode("utf-8"))
                except OSError as exc:
                    raise StoreError(f"error importing image manifest: {exc}") from exc
                info = ACIInfo(
                    blob_key=key,
                    app_name=str(manifest["name"]),
                    import_time=datetime.now(timezone.utc),
                    latest=latest,
                )
                try:
                    self.db.do(lambda conn: write_aciinfo(conn, info))
                except Exception as exc:
                    raise StoreError(f"error writing ACI Info: {exc}") from exc
            finally:
                lock.__exit__(None, None, None)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        return key

    def check_tree_store(self, key: str) -> None:
        """Verify that the rendered tree for a key matches its saved hash."""
        try:
            lock = _key_lock(self.tree_store_lock_dir, key, shared=True)
            lock.__enter__()
        except OSError as exc:
            raise StoreError(f"error locking tree store: {exc}") from exc
        try:
            self.tree_store.check(key)
        finally:
            lock.__exit__(None, None, None)

    def get_tree_store_path(self, key: str) -> str:
        """Return the tree path for a key; it may not exist or be rendered."""
        return self.tree_store.get_path(key)

    def get_tree_store_rootfs(self, key: str) -> str:
        """Return the rootfs path for a key; it may not exist or be rendered."""
        return self.tree_store.get_rootfs(key)

    def get_remote(self, aci_url: str) -> Remote | None:
        """Return the remote for an image URL, or None if there is none."""
        return self.db.do(lambda conn: get_remote(conn, aci_url))

    def write_remote(self, remote: Remote) -> None:
        """Add or replace a remote."""
        self.db.do(lambda conn: write_remote(conn, remote))

    def get_image_manifest(self, key: str) -> dict[str, Any]:
        """Return the image manifest for a key (or key prefix)."""
        try:
            key = self.resolve_key(key)
        except StoreError as exc:
            raise StoreError(f"error resolving key: {exc}") from exc
        try:
            lock = _key_lock(self.image_lock_dir, key, shared=True)
            lock.__enter__()
        except OSError as exc:
            raise StoreError(f"error locking image: {exc}") from exc
        try:
            try:
                data = self.manifest_store.read(key)
            except (KeyError, OSError) as exc:
                raise StoreError(f"error retrieving image manifest: {exc}") from exc
        finally:
            lock.__exit__(None, None, None)
        try:
            return json.loads(data.decode("utf-8"))
        except ValueError as exc:
            raise StoreError(f"error unmarshalling image manifest: {exc}") from exc

    def get_aci(self, name: str, labels: Mapping[str, str]) -> str:
        """Return the key of the image that best matches a name and labels.

        Among several matches the last imported wins; when no version label
        is requested, images marked latest are preferred.
        """
        version_requested = "version" in labels
        infos = self.db.do(lambda conn: get_aciinfos_with_app_name(conn, str(name)))

        best: ACIInfo | None = None
        for info in infos:
            try:
                manifest = self.get_image_manifest(info.blob_key)
            except StoreError as exc:
                raise StoreError(f"error getting image manifest: {exc}") from exc
            if not _has_labels(manifest, labels):
                continue
            if best is None:
                best = info
                continue
            if not version_requested:
                if not best.latest and info.latest:
                    best = info
                    continue
                if best.latest and not info.latest:
                    continue
            if info.import_time > best.import_time:
                best = info

        if best is None:
            raise StoreError("aci not found")
        return best.blob_key

    def dump(self, hex_output: bool) -> None:
        """Print every stored key with the start of its value."""
        for store in self.stores:
            count = 0
            for key in store.keys():
                value = store.read(key)[:_DUMP_LIMIT]
                out = value.hex() if hex_output else value.decode("utf-8", "replace")
                print(f"{store.base_path}/{key}: {out}")
                count += 1
            print(f"{count} total keys")

    def hash_to_key(self, hasher) -> str:
        """Return the store key for a hash object holding a full sha512."""
        return hash_to_key(hasher)


def remove_store(base) -> None:
    """Delete a store's whole directory tree."""
    shutil.rmtree(os.fspath(base), ignore_errors=True)