"""A key-value blob store on disk, sharded by the leading hash characters."""

from __future__ import annotations

import os
import shutil
import tempfile
from typing import BinaryIO, Iterator

from .keys import block_transform

_DIR_MODE = 0o777
_FILE_MODE = 0o660
_TEMP_PREFIX = "."


class BlobStore:
    """Stores each value in a file named by its key.

    A key such as ``sha512-abcd...`` lives at ``<base>/sha512/ab/<key>``.
    """

    def __init__(self, base_path):
        self.base_path = os.fspath(base_path)

    def path_for(self, key: str) -> str:
        """Return the file path that holds the value of a key."""
        if not key or "/" in key or os.sep in key or key.startswith(_TEMP_PREFIX):
            raise ValueError(f"invalid blob key: {key!r}")
        return os.path.join(self.base_path, *block_transform(key), key)

    def _prepare_dir(self, key: str) -> str:
        path = self.path_for(key)
        os.makedirs(os.path.dirname(path), mode=_DIR_MODE, exist_ok=True)
        return path

    def write(self, key: str, data: bytes) -> None:
        """Store the data under the key, replacing any earlier value."""
        path = self._prepare_dir(key)
        fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path), prefix=_TEMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.chmod(tmp, _FILE_MODE)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def read(self, key: str) -> bytes:
        """Return the value stored under the key."""
        with self.open(key) as fh:
            return fh.read()

    def open(self, key: str) -> BinaryIO:
        """Open the value stored under the key for binary reading."""
        path = self.path_for(key)
        try:
            return open(path, "rb")
        except FileNotFoundError:
            raise KeyError(key) from None

    def import_file(self, src, key: str, move: bool) -> None:
        """Store an existing file under the key, moving or copying it."""
        src = os.fspath(src)
        if not os.path.isfile(src):
            raise FileNotFoundError(f"cannot import {src}: not a regular file")
        path = self._prepare_dir(key)
        if move:
            os.replace(src, path)
            return
        fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path), prefix=_TEMP_PREFIX)
        try:
            with os.fdopen(fd, "wb") as dst, open(src, "rb") as source:
                shutil.copyfileobj(source, dst)
            os.chmod(tmp, _FILE_MODE)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def keys(self) -> Iterator[str]:
        """Yield every stored key, in sorted path order."""
        if not os.path.isdir(self.base_path):
            return
        for dirpath, dirnames, filenames in os.walk(self.base_path):
            dirnames.sort()
            for name in sorted(filenames):
                if not name.startswith(_TEMP_PREFIX):
                    yield name