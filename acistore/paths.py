"""Well-known paths and values shared by the stages of a pod."""

from __future__ import annotations

import os
import posixpath

from .tree import MANIFEST_FILE, ROOTFS_DIR

STAGE1_DIR = "/stage1"
STAGE2_DIR = "/opt/stage2"

ENV_LOCK_FD = "RKT_LOCK_FD"
STAGE1_ID_FILENAME = "stage1ID"
OVERLAY_PREPARED_FILENAME = "overlay-prepared"

METADATA_SERVICE_IP = "169.254.169.255"
METADATA_SERVICE_PUB_PORT = 80
METADATA_SERVICE_PRV_PORT = 2375
METADATA_SERVICE_REG_SOCK = "/run/rkt/metadata-svc.sock"

_SHORT_HASH_LEN = 12
_MAX_FD = 2**32 - 1


def _join(*parts: str) -> str:
    """Join path parts and clean the result, keeping absolute parts inside."""
    joined = "/".join(part for part in parts if part)
    if not joined:
        return ""
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def stage1_image_path(root: str) -> str:
    """Return where the unpacked stage1 image is rooted."""
    return _join(os.fspath(root), STAGE1_DIR)


def stage1_rootfs_path(root: str) -> str:
    """Return the stage1 rootfs path."""
    return _join(stage1_image_path(root), ROOTFS_DIR)


def stage1_manifest_path(root: str) -> str:
    """Return the path of the stage1 manifest inside the unpacked image."""
    return _join(stage1_image_path(root), MANIFEST_FILE)


def pod_manifest_path(root: str) -> str:
    """Return the path of the pod manifest."""
    return _join(os.fspath(root), "pod")


def app_images_path(root: str) -> str:
    """Return where the app images live."""
    return _join(stage1_rootfs_path(root), STAGE2_DIR)


def short_hash(image_id) -> str:
    """Return an image ID cut down to a short, still readable form."""
    text = str(image_id)
    index = text.find("-")
    limit = index + 1 + _SHORT_HASH_LEN if index != -1 else _SHORT_HASH_LEN
    return text[:limit]


def app_image_path(root: str, image_id) -> str:
    """Return where an app image is rooted, based on its image ID."""
    return _join(app_images_path(root), short_hash(image_id))


def app_rootfs_path(root: str, image_id) -> str:
    """Return the rootfs path of an app image."""
    return _join(app_image_path(root, image_id), ROOTFS_DIR)


def rel_app_image_path(image_id) -> str:
    """Return an app image path relative to the stage1 chroot."""
    return _join(STAGE2_DIR, short_hash(image_id))


def rel_app_rootfs_path(image_id) -> str:
    """Return an app rootfs path relative to the stage1 chroot."""
    return _join(rel_app_image_path(image_id), ROOTFS_DIR)


def image_manifest_path(root: str, image_id) -> str:
    """Return the path of an app's manifest inside its unpacked image."""
    return _join(app_image_path(root, image_id), MANIFEST_FILE)


def metadata_service_public_url() -> str:
    """Return the public URL of the metadata service."""
    return f"http://{METADATA_SERVICE_IP}:{METADATA_SERVICE_PUB_PORT}"


def get_rkt_lock_fd() -> int:
    """Return the lock file descriptor passed in the environment."""
    value = os.environ.get(ENV_LOCK_FD, "")
    if not value:
        raise LookupError(f"{ENV_LOCK_FD} env var is not set")
    if not (value.isascii() and value.isdigit()):
        raise ValueError(f"invalid {ENV_LOCK_FD} value: {value!r}")
    fd = int(value)
    if fd > _MAX_FD:
        raise ValueError(f"{ENV_LOCK_FD} value out of range: {value!r}")
    return fd