"""Core layer — pure models, parsers, selection logic, and protocols.

Rules
-----
* No ``print()`` calls.
* No subprocess, filesystem or network I/O.
* No imports from ``cli`` or ``infra``.
* Everything deterministic; time only through an injected clock.
"""

from sqlrs.core.failures import classify
from sqlrs.core.inventory import parse_inventory, select_disk_by_size, select_partition
from sqlrs.core.models import (
    BlockDeviceEntry,
    CommandTarget,
    Distro,
    FailureKind,
    MountUnit,
    ProvisionResult,
    SnapshotBackend,
    StorePlan,
    StoreRequest,
    StoreType,
)
from sqlrs.core.protocols import Clock, CommandRunner, Shell, StoreProvisioner

__all__: list[str] = [
    "BlockDeviceEntry",
    "Clock",
    "CommandRunner",
    "CommandTarget",
    "Distro",
    "FailureKind",
    "MountUnit",
    "ProvisionResult",
    "Shell",
    "SnapshotBackend",
    "StorePlan",
    "StoreProvisioner",
    "StoreRequest",
    "StoreType",
    "classify",
    "parse_inventory",
    "select_disk_by_size",
    "select_partition",
]
