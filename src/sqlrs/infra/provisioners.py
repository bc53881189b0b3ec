"""Runtime selection of the platform's :class:`StoreProvisioner`."""

from __future__ import annotations

import platform

from sqlrs.core.protocols import Clock, CommandRunner, StoreProvisioner
from sqlrs.infra.linux_store import LinuxStoreProvisioner, PassthroughProvisioner
from sqlrs.infra.wsl_bootstrap import WSLStoreProvisioner


def select_provisioner(
    runner: CommandRunner,
    system: str | None = None,
    *,
    clock: Clock | None = None,
) -> StoreProvisioner:
    """Return the provisioner for *system* (defaults to the running OS).

    Windows provisions through WSL2, Linux natively; everything else
    passes the store path through untouched.
    """
    system = system or platform.system()
    if system == "Windows":
        return WSLStoreProvisioner(runner, clock=clock)
    if system == "Linux":
        return LinuxStoreProvisioner(runner, clock=clock)
    return PassthroughProvisioner()
