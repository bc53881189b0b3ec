"""Block-device inventory parsing and disk selection.

Input is the raw output of::

    lsblk -b -n -r -o NAME,SIZE,TYPE,PKNAME

Tree-drawing prefixes (``├─``, ``└─``, ``│``) are tolerated so the
same parser also accepts the non-raw tree layout.

Disk selection is size based: a freshly attached VHDX shows up as an
anonymous ``sdX`` disk, and its size is the only property the host
knows in advance.  Virtio/VHDX rounding makes the reported size drift
slightly, hence the tolerance window.  Two disks inside the window is
a genuine operator problem and is reported, never guessed.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlrs.core.models import BlockDeviceEntry
from sqlrs.exceptions import AmbiguousDiskError, InventoryError, PartitionNotFoundError

MIN_SIZE_TOLERANCE: int = 100 * 1024 * 1024
"""Lower bound of the disk-size matching window (100 MiB)."""

_TREE_CHARS = "├─└│ "


def parse_inventory(output: str) -> list[BlockDeviceEntry]:
    """Parse the listing into flat :class:`BlockDeviceEntry` records.

    Raises
    ------
    InventoryError
        If any size column is not an integer, or no entry was found.
    """
    entries: list[BlockDeviceEntry] = []
    for line in output.strip().splitlines():
        fields = line.split()
        if len(fields) < 3:
            continue
        if fields[0] == "NAME":
            continue
        try:
            size = int(fields[1])
        except ValueError:
            raise InventoryError(f"invalid size: {fields[1]}") from None
        entries.append(
            BlockDeviceEntry(
                name=clean_device_name(fields[0]),
                size_bytes=size,
                type=fields[2],
                parent_name=clean_device_name(fields[3]) if len(fields) >= 4 else "",
            )
        )
    if not entries:
        raise InventoryError("no block devices listed")
    return entries


def clean_device_name(value: str) -> str:
    """Strip tree-drawing characters from the front of a device name."""
    return value.lstrip(_TREE_CHARS)


def size_tolerance(target_bytes: int) -> int:
    """Return ``max(100 MiB, 1% of target_bytes)``."""
    if target_bytes <= 0:
        return MIN_SIZE_TOLERANCE
    return max(MIN_SIZE_TOLERANCE, target_bytes // 100)


def select_disk_by_size(
    entries: Iterable[BlockDeviceEntry],
    target_bytes: int,
) -> str | None:
    """Return the single disk within tolerance of *target_bytes*.

    Returns ``None`` when no disk matches (the disk is not attached yet).

    Raises
    ------
    AmbiguousDiskError
        When two or more disks match.
    """
    tolerance = size_tolerance(target_bytes)
    candidates = [
        entry
        for entry in entries
        if entry.type == "disk" and abs(entry.size_bytes - target_bytes) <= tolerance
    ]
    if not candidates:
        return None
    if len(candidates) > 1:
        names = ", ".join(entry.name for entry in candidates)
        raise AmbiguousDiskError(
            f"multiple disks match size {target_bytes} bytes: {names}",
            hint="Detach the extra disk of the same size, or choose a different --store-size.",
        )
    return candidates[0].name


def select_partition(entries: Iterable[BlockDeviceEntry], disk_name: str) -> str:
    """Return the largest partition whose parent is *disk_name*.

    Raises
    ------
    PartitionNotFoundError
        When the disk has no partition.
    """
    selected: BlockDeviceEntry | None = None
    for entry in entries:
        if entry.type != "part" or entry.parent_name != disk_name:
            continue
        if selected is None or entry.size_bytes > selected.size_bytes:
            selected = entry
    if selected is None:
        raise PartitionNotFoundError(f"partition for disk {disk_name} not found")
    return selected.name
