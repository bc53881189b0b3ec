"""Btrfs filesystem manager: trust, format, or reject a block device.

Decision table for :meth:`BtrfsManager.ensure_btrfs`:

==================================  =================  ==================
Detected state                      allow_format=False allow_format=True
==================================  =================  ==================
mounted as btrfs                    accept             accept
mounted as another filesystem       error              error
unmounted, blkid reports btrfs      accept             accept
unmounted, blkid reports other fs   error              wipe + format
unmounted, nothing detectable       error              format
==================================  =================  ==================

``allow_format`` is only ever true for a freshly created image/disk or
an explicit ``--reinit``; an existing filesystem is never mutated
otherwise.
"""

from __future__ import annotations

import logging

from sqlrs.core.failures import classify
from sqlrs.core.models import BTRFS, FailureKind
from sqlrs.core.protocols import Clock, Shell
from sqlrs.core.retry import FORMAT_VERIFY_ATTEMPTS, FORMAT_VERIFY_INTERVAL, poll
from sqlrs.exceptions import REINIT_HINT, CommandError, FilesystemError

log = logging.getLogger(__name__)

PROBE_DIR_TEMPLATE: str = "/tmp/sqlrs-mount-XXXXXX"


def first_field(value: str) -> str:
    """Return the first whitespace-separated token of *value*, or ``""``."""
    fields = value.split()
    return fields[0] if fields else ""


class BtrfsManager:
    """Format-or-verify btrfs on a block device through a :class:`Shell`."""

    def __init__(self, shell: Shell, clock: Clock) -> None:
        self._shell = shell
        self._clock = clock

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def mounted_fstype(self, target: str) -> str | None:
        """Return the filesystem type mounted at/from *target*, or ``None``.

        Device nodes are looked up as mount sources (``-S``); anything
        else as an exact mountpoint (``-M``).
        """
        selector = "-S" if target.strip().startswith("/dev/") else "-M"
        try:
            out = self._shell.run_in_init_namespace(
                "findmnt", "findmnt", "-n", "-o", "FSTYPE", selector, target
            )
        except CommandError as exc:
            if exc.returncode == 1:
                return None
            raise
        return first_field(out) or None

    def block_fstype(self, device: str) -> str | None:
        """Return the filesystem signature ``blkid`` sees on *device*."""
        try:
            out = self._shell.run_root(
                "detect filesystem", "blkid", "-o", "value", "-s", "TYPE", device
            )
        except CommandError as exc:
            # 2: no signature found, 1: nothing matched the query
            if exc.returncode in (1, 2):
                return None
            raise
        return first_field(out) or None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_btrfs(self, device: str, *, allow_format: bool) -> bool:
        """Make sure *device* carries btrfs.  Returns whether it formatted.

        Raises
        ------
        FilesystemError
            When the device holds another filesystem (or none) and
            formatting is not allowed, or is mounted as another type.
        CommandError
            When a detection or formatting command fails.
        """
        mounted = self.mounted_fstype(device)
        if mounted is not None:
            if mounted == BTRFS:
                log.debug("%s already mounted as btrfs", device)
                return False
            raise FilesystemError(
                f"filesystem is {mounted}, expected btrfs", hint=REINIT_HINT
            )

        existing = self.block_fstype(device)
        if existing == BTRFS:
            log.debug("%s already formatted as btrfs", device)
            return False
        if not allow_format:
            if existing:
                raise FilesystemError(
                    f"filesystem is {existing}, expected btrfs", hint=REINIT_HINT
                )
            raise FilesystemError("no filesystem detected, expected btrfs", hint=REINIT_HINT)

        if existing:
            self._wipe(device)
        self._shell.run_root("format btrfs", "mkfs.btrfs", "-f", device)
        self.verify_format(device)
        return True

    def verify_format(self, device: str) -> None:
        """Confirm a fresh format, falling back to a probe mount.

        Signature detection can lag behind a format on virtualized
        devices; when ``blkid`` never reports anything, mounting the
        device once is accepted as confirmation.

        Raises
        ------
        FilesystemError
            When neither check confirms btrfs.
        """
        outcome = poll(
            lambda: first_field(
                self._shell.run_root(
                    "verify filesystem",
                    "blkid", "-c", "/dev/null", "-p", "-o", "value", "-s", "TYPE", device,
                )
            ),
            lambda fstype: fstype == BTRFS,
            attempts=FORMAT_VERIFY_ATTEMPTS,
            interval=FORMAT_VERIFY_INTERVAL,
            clock=self._clock,
            retry_on=(CommandError,),
        )
        if outcome.satisfied:
            return

        last_error: Exception | None = outcome.error
        if not outcome.value:
            try:
                self.probe_mount(device)
            except CommandError as exc:
                last_error = last_error or exc
            else:
                log.debug("probe mount confirmed btrfs on %s", device)
                return

        if last_error is not None:
            raise FilesystemError(f"filesystem verification failed: {last_error}") from last_error
        if not outcome.value:
            raise FilesystemError("filesystem verification failed: empty type")
        raise FilesystemError(f"filesystem verification failed: {outcome.value}")

    def probe_mount(self, device: str) -> None:
        """Mount *device* on a throwaway directory and unmount it again."""
        mount_dir = self._shell.run_root(
            "probe mount dir", "mktemp", "-d", PROBE_DIR_TEMPLATE
        ).strip()
        if not mount_dir:
            raise FilesystemError("probe mount dir is empty")
        try:
            self._shell.run_in_init_namespace(
                "probe mount", "mount", "-t", BTRFS, device, mount_dir
            )
            self._shell.run_in_init_namespace("probe umount", "umount", mount_dir)
        finally:
            self._remove_probe_dir(mount_dir)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _wipe(self, device: str) -> None:
        try:
            self._shell.run_root("wipe signatures", "wipefs", "-a", device)
        except CommandError as exc:
            if classify(exc) is not FailureKind.TOOL_MISSING:
                raise
            log.debug("wipefs not installed; formatting over existing signatures")

    def _remove_probe_dir(self, mount_dir: str) -> None:
        try:
            self._shell.run_root("cleanup probe dir", "rmdir", mount_dir)
        except CommandError as exc:
            log.debug("probe dir cleanup failed (ignored): %s", exc)
