"""Domain models for sqlrs store provisioning.

All models are **frozen** dataclasses — immutable value objects with no
behaviour beyond data access and deterministic rendering.  They carry
zero I/O and must remain pure across the entire lifecycle.
"""

from __future__ import annotations

import enum
import posixpath
from dataclasses import dataclass

DEFAULT_STORE_SIZE_GB: int = 100
"""Size of a freshly created image/VHDX when ``--store-size`` is absent."""

BTRFS: str = "btrfs"

SYSTEMD_UNIT_DIR: str = "/etc/systemd/system"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class SnapshotBackend(str, enum.Enum):
    """Snapshot strategy the engine uses for clones."""

    AUTO = "auto"
    BTRFS = "btrfs"
    OVERLAY = "overlay"
    COPY = "copy"


class StoreType(str, enum.Enum):
    """Shape of the backing store."""

    DIR = "dir"
    IMAGE = "image"
    DEVICE = "device"


class CommandTarget(enum.Enum):
    """Where an external command executes."""

    HOST = "host"
    HOST_ROOT = "host-root"
    WSL_USER = "wsl-user"
    WSL_ROOT = "wsl-root"


class FailureKind(enum.Enum):
    """Closed classification of external-command failures."""

    ALREADY_UNMOUNTED = "already-unmounted"
    TOOL_MISSING = "tool-missing"
    DEVICE_BUSY = "device-busy"
    ABSENT = "absent"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Provisioning input / output
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class StoreRequest:
    """Immutable input to a store provisioner."""

    snapshot_backend: SnapshotBackend
    store_type: StoreType
    store_path: str = ""
    size_gb: int = 0
    """Requested size in GB; ``<= 0`` selects :data:`DEFAULT_STORE_SIZE_GB`."""
    reinit: bool = False
    distro: str = ""
    no_start: bool = False
    verbose: bool = False
    require: bool = False
    """When set, every soft failure becomes a hard error."""

    @property
    def effective_size_gb(self) -> int:
        return self.size_gb if self.size_gb > 0 else DEFAULT_STORE_SIZE_GB


@dataclass(frozen=True, slots=True)
class ProvisionResult:
    """Outcome of provisioning.

    ``use_store=False`` without an exception means the provisioner fell
    back and the caller should proceed without btrfs.
    """

    use_store: bool
    store_backend_available: bool = False
    distro: str | None = None
    state_dir: str | None = None
    store_path: str | None = None
    mount_device: str | None = None
    mount_fstype: str | None = None
    mount_unit: str | None = None
    mount_device_uuid: str | None = None
    warning: str = ""


# ---------------------------------------------------------------------------
# Block devices
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BlockDeviceEntry:
    """One row of a block-device inventory listing."""

    name: str
    size_bytes: int
    type: str
    """``disk``, ``part``, ``loop``, ... as reported by the listing."""
    parent_name: str = ""


@dataclass(frozen=True, slots=True)
class Distro:
    """A WSL distribution as reported by ``wsl.exe --list --verbose``."""

    name: str
    default: bool
    state: str
    version: int


# ---------------------------------------------------------------------------
# Store layout
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class StorePlan:
    """Native-Linux store layout.

    ``store_dir`` is always set; exactly one of ``image_path`` and
    ``device_path`` is set.
    """

    store_dir: str
    image_path: str | None = None
    device_path: str | None = None


# ---------------------------------------------------------------------------
# systemd mount unit
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MountUnit:
    """A systemd ``.mount`` unit keyed by the escaped target path.

    :meth:`render` is deterministic in (what, where, fstype), so
    re-installing the same unit is idempotent.
    """

    name: str
    what: str
    where: str
    fstype: str = BTRFS
    options: str = "defaults"

    @property
    def path(self) -> str:
        return posixpath.join(SYSTEMD_UNIT_DIR, self.name)

    def render(self) -> str:
        lines = [
            "[Unit]",
            "Description=SQLRS state store",
            "After=local-fs.target",
            "",
            "[Mount]",
            f"What={self.what}",
            f"Where={self.where}",
            f"Type={self.fstype or BTRFS}",
            f"Options={self.options}",
            "",
            "[Install]",
            "WantedBy=multi-user.target",
            "",
        ]
        return "\n".join(lines)
