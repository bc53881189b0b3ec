"""Host-side VHDX management through PowerShell and ``wsl.exe``.

Rules
-----
* Only a freshly created disk (or an explicit reinit) licenses
  formatting; :meth:`VirtualDiskManager.ensure_virtual_disk` reports
  creation so the caller can pass that on.
* A disk that was attached on entry is never detached.
"""

from __future__ import annotations

import logging
import os

from sqlrs.core.failures import classify
from sqlrs.core.models import CommandTarget, FailureKind
from sqlrs.core.protocols import CommandRunner
from sqlrs.exceptions import CommandError, ProvisioningError, VirtualDiskInUseError
from sqlrs.infra.runner import QUICK_TIMEOUT, WSL_EXE

log = logging.getLogger(__name__)

POWERSHELL: str = "powershell"
POWERSHELL_ARGS: tuple[str, ...] = ("-NoProfile", "-NonInteractive", "-Command")

GIB: int = 1024 * 1024 * 1024

VHDX_IN_USE_HINT = "Please rerun with --reinit or detach it from WSL."


def escape_powershell(value: str) -> str:
    """Escape *value* for a single-quoted PowerShell string literal."""
    return value.replace("'", "''")


def gpt_partition_script(path: str) -> str:
    """Attach, GPT-initialize, partition, and detach-if-we-attached."""
    return " ".join(
        [
            f"$path = '{escape_powershell(path)}';",
            "$attached = $false;",
            "$diskImage = Get-DiskImage -ImagePath $path -ErrorAction SilentlyContinue;",
            "if ($diskImage -and $diskImage.Attached) { $attached = $true; $disk = $diskImage | Get-Disk };",
            "if (-not $disk) { $vhd = Mount-VHD -Path $path -PassThru; $disk = $vhd | Get-Disk };",
            "if ($disk.PartitionStyle -eq 'RAW') { Initialize-Disk -Number $disk.Number -PartitionStyle GPT | Out-Null };",
            "$part = Get-Partition -DiskNumber $disk.Number | Where-Object { $_.Type -ne 'Reserved' } | Select-Object -First 1;",
            "if (-not $part) { New-Partition -DiskNumber $disk.Number -UseMaximumSize | Out-Null };",
            "if (-not $attached) { Dismount-VHD -Path $path -ErrorAction SilentlyContinue | Out-Null };",
        ]
    )


def dismount_script(path: str) -> str:
    return " ".join(
        [
            f"$path = '{escape_powershell(path)}';",
            "$diskImage = Get-DiskImage -ImagePath $path -ErrorAction SilentlyContinue;",
            "if ($diskImage -and $diskImage.Attached) { Dismount-VHD -Path $path -ErrorAction SilentlyContinue | Out-Null };",
        ]
    )


ELEVATION_SCRIPT: str = (
    "([Security.Principal.WindowsPrincipal] "
    "[Security.Principal.WindowsIdentity]::GetCurrent())"
    ".IsInRole([Security.Principal.WindowsBuiltInRole]::Administrator)"
)


class VirtualDiskManager:
    """Create, partition, attach and destroy the store VHDX."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def powershell(self, description: str, script: str, *, timeout: float | None = None) -> str:
        return self._runner.run(
            CommandTarget.HOST,
            description,
            POWERSHELL,
            (*POWERSHELL_ARGS, script),
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ensure_virtual_disk(self, path: str, size_gb: int) -> bool:
        """Create a dynamic VHDX at *path* unless one exists.

        Returns
        -------
        bool
            ``True`` when the disk was created by this call.
        """
        if not path:
            raise ProvisioningError("vhdx path is empty")
        if os.path.exists(path):
            log.debug("VHDX already exists: %s", path)
            return False
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, mode=0o700, exist_ok=True)
        size_bytes = size_gb * GIB
        self.powershell(
            "create VHDX",
            f"New-VHD -Path '{escape_powershell(path)}' -Dynamic -SizeBytes {size_bytes} | Out-Null",
        )
        return True

    def ensure_gpt_partition(self, path: str) -> None:
        """Make sure the VHDX carries a GPT table with one usable partition.

        Raises
        ------
        VirtualDiskInUseError
            When Windows reports the image as held by another consumer.
        CommandError
            For any other PowerShell failure.
        """
        try:
            self.powershell("partition VHDX", gpt_partition_script(path))
        except CommandError as exc:
            if classify(exc) is FailureKind.DEVICE_BUSY:
                raise VirtualDiskInUseError("VHDX is in use", hint=VHDX_IN_USE_HINT) from exc
            raise

    def attach_to_wsl(self, path: str) -> None:
        """Bare-attach the VHDX so it shows up as a block device in WSL."""
        self._runner.run(
            CommandTarget.HOST,
            "attach VHDX to WSL",
            WSL_EXE,
            ("--mount", path, "--vhd", "--bare"),
        )

    def detach_and_delete(self, path: str) -> None:
        """Best-effort detach from WSL and the host, then delete the file.

        Raises
        ------
        OSError
            Only when the file exists and cannot be removed.
        """
        try:
            self._runner.run(
                CommandTarget.HOST, "unmount VHDX from WSL", WSL_EXE, ("--unmount", path)
            )
        except CommandError as exc:
            log.debug("WSL unmount of %s failed (ignored): %s", path, exc)
        try:
            self.powershell("unmount VHDX on host", dismount_script(path))
        except CommandError as exc:
            log.debug("host dismount of %s failed (ignored): %s", path, exc)
        try:
            os.remove(path)
        except FileNotFoundError:
            log.debug("VHDX already absent: %s", path)

    # ------------------------------------------------------------------
    # Host checks
    # ------------------------------------------------------------------

    def is_elevated(self) -> bool:
        """Return whether the current host session has Administrator rights."""
        out = self.powershell("check administrator", ELEVATION_SCRIPT, timeout=QUICK_TIMEOUT)
        return out.strip().lower() == "true"
