"""A file-per-address reservation store for the static address manager."""

from __future__ import annotations

import ipaddress
import os

from filelock import FileLock

DEFAULT_DATA_DIR = "/var/lib/rkt/networks"
_DIR_MODE = 0o755
_FILE_MODE = 0o644


def _ip_text(ip) -> str:
    return str(ipaddress.ip_address(ip) if isinstance(ip, str) else ip)


class DiskStore:
    """Reservations for one network, each address a file holding its owner."""

    def __init__(self, network, data_dir=DEFAULT_DATA_DIR):
        self.network = network
        self.directory = os.path.join(os.fspath(data_dir), network)
        os.makedirs(self.directory, mode=_DIR_MODE, exist_ok=True)
        self._lock = FileLock(self.directory + ".lock")

    def __enter__(self) -> "DiskStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def lock(self) -> None:
        """Take the exclusive lock on the network's reservations."""
        self._lock.acquire()

    def unlock(self) -> None:
        """Release the lock taken by lock()."""
        self._lock.release()

    def close(self) -> None:
        """Release the lock completely if it is still held."""
        if self._lock.is_locked:
            self._lock.release(force=True)

    def reserve(self, container_id: str, ip) -> bool:
        """Reserve an address for a container; False if already taken."""
        path = os.path.join(self.directory, _ip_text(ip))
        try:
            fd = os.open(path, os.O_RDWR | os.O_EXCL | os.O_CREAT, _FILE_MODE)
        except FileExistsError:
            return False
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(container_id)
        except BaseException:
            if os.path.exists(path):
                os.remove(path)
            raise
        return True

    def release(self, ip) -> None:
        """Drop the reservation of an address."""
        os.remove(os.path.join(self.directory, _ip_text(ip)))

    def release_by_container_id(self, container_id: str) -> None:
        """Drop every reservation a container holds, ignoring errors."""
        for dirpath, _dirnames, filenames in os.walk(self.directory):
            for name in filenames:
                path = os.path.join(dirpath, name)
                try:
                    with open(path, "r", encoding="utf-8") as fh:
                        owner = fh.read()
                except (OSError, UnicodeDecodeError):
                    continue
                if owner == container_id:
                    try:
                        os.remove(path)
                    except OSError:
                        continue