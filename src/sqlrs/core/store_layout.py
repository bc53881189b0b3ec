"""Store type/path resolution and native store planning (pure).

Every function here takes the platform name (``platform.system()``
value: ``"Linux"``, ``"Windows"``, ``"Darwin"``) as an argument instead
of consulting the running interpreter, so the whole decision matrix is
testable from any host.
"""

from __future__ import annotations

import ntpath
import posixpath
from collections.abc import Callable

from sqlrs.core.models import SnapshotBackend, StorePlan, StoreType
from sqlrs.exceptions import InvalidArgumentsError

IMAGE_SUFFIXES: tuple[str, ...] = (".img", ".raw", ".qcow2")

LINUX_IMAGE_NAME: str = "btrfs.img"
WINDOWS_IMAGE_NAME: str = "btrfs.vhdx"


def looks_like_image_path(path: str) -> bool:
    """Return whether *path* names an image file rather than a directory."""
    return posixpath.basename(path).lower().endswith(IMAGE_SUFFIXES)


def parse_store_size_gb(value: str) -> int:
    """Parse ``--store-size`` values such as ``"100GB"``.

    Raises
    ------
    InvalidArgumentsError
        On a missing ``GB`` suffix or a non-positive integer.
    """
    raw = value.strip()
    if not raw:
        raise InvalidArgumentsError("store size is empty")
    if not raw.upper().endswith("GB"):
        raise InvalidArgumentsError(
            "store size must use GB suffix",
            hint="Example: --store-size 100GB",
        )
    number = raw[:-2].strip()
    if not number:
        raise InvalidArgumentsError("store size is empty")
    try:
        size = int(number)
    except ValueError:
        size = 0
    if size <= 0:
        raise InvalidArgumentsError("store size must be a positive integer")
    return size


def resolve_store_type(
    snapshot: SnapshotBackend,
    store_type: StoreType | None,
    system: str,
    *,
    root_is_btrfs: Callable[[], bool] = lambda: False,
) -> StoreType:
    """Pick the store type when ``--store-type`` was not given.

    On Linux a btrfs backend reuses the default root as a plain
    directory when *root_is_btrfs* says it already lives on btrfs.
    """
    if store_type is not None:
        return store_type
    if snapshot in (SnapshotBackend.COPY, SnapshotBackend.OVERLAY):
        return StoreType.DIR
    if snapshot is SnapshotBackend.BTRFS:
        if system == "Windows":
            return StoreType.IMAGE
        if system == "Linux":
            return StoreType.DIR if root_is_btrfs() else StoreType.IMAGE
        return StoreType.DIR
    if snapshot is SnapshotBackend.AUTO and system == "Windows":
        return StoreType.IMAGE
    return StoreType.DIR


def resolve_store_path(
    store_type: StoreType,
    store_path: str,
    default_root: str,
    system: str,
) -> str:
    """Return the explicit store path or the platform default for the type."""
    if store_path.strip():
        return store_path.strip()
    if store_type is StoreType.DEVICE:
        return ""
    if store_type is StoreType.DIR:
        return default_root
    name = WINDOWS_IMAGE_NAME if system == "Windows" else LINUX_IMAGE_NAME
    join = _join_for(system)
    return join(default_root, name)


def should_use_wsl(
    system: str,
    snapshot: SnapshotBackend,
    store_type: StoreType,
    store_explicit: bool,
) -> tuple[bool, bool]:
    """Return ``(use_wsl, require_wsl)``.

    Only Windows ever uses WSL.  An explicit btrfs backend requires it;
    ``auto`` requires it only when the operator spelled out an image or
    device store.
    """
    if system != "Windows":
        return False, False
    if snapshot is SnapshotBackend.BTRFS:
        return store_type is not StoreType.DIR, True
    if snapshot is SnapshotBackend.AUTO:
        if store_type is StoreType.DIR:
            return False, False
        return True, store_explicit
    return False, False


def plan_store(store_type: StoreType | None, store_path: str, default_root: str) -> StorePlan:
    """Derive the native-Linux store layout.

    Raises
    ------
    InvalidArgumentsError
        When *store_path* is empty or no directory can be derived.
    """
    raw = store_path.strip()
    if not raw:
        raise InvalidArgumentsError("store path is required")
    path = posixpath.normpath(raw)

    if store_type is StoreType.IMAGE:
        if looks_like_image_path(path):
            store_dir = posixpath.dirname(path)
            if not store_dir or store_dir == ".":
                raise InvalidArgumentsError(
                    f"cannot derive store directory from image path: {path}"
                )
            return StorePlan(store_dir=store_dir, image_path=path)
        return StorePlan(store_dir=path, image_path=posixpath.join(path, LINUX_IMAGE_NAME))

    if store_type is StoreType.DEVICE and path.startswith("/dev/"):
        return StorePlan(store_dir=default_root, device_path=path)

    # dir, unset, or a device "path" that is really a directory
    parent = posixpath.dirname(path)
    base = posixpath.basename(path)
    return StorePlan(store_dir=path, image_path=posixpath.join(parent, f"{base}.btrfs.img"))


def _join_for(system: str) -> Callable[..., str]:
    if system == "Windows":
        return ntpath.join
    return posixpath.join
