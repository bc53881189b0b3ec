"""Infrastructure layer — everything that touches the operating system.

This layer wraps subprocesses, WSL, PowerShell, systemd, btrfs tooling
and the workspace config file.  Every raw ``subprocess``/``OSError``
failure must be caught here and re-raised as a
:class:`~sqlrs.exceptions.SqlrsError` subclass.

Rules
-----
* No imports from ``cli``.
* No user-facing output (no ``print()``, no Rich rendering); log
  through :mod:`logging` instead.
* Processes are only spawned by :mod:`sqlrs.infra.runner`.
"""

from sqlrs.infra.linux_store import LinuxStoreProvisioner, PassthroughProvisioner
from sqlrs.infra.provisioners import select_provisioner
from sqlrs.infra.runner import SubprocessRunner
from sqlrs.infra.wsl_bootstrap import WSLStoreProvisioner

__all__: list[str] = [
    "LinuxStoreProvisioner",
    "PassthroughProvisioner",
    "SubprocessRunner",
    "WSLStoreProvisioner",
    "select_provisioner",
]
