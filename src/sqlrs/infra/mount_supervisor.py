"""systemd mount-unit supervision inside WSL.

The state directory is mounted through a ``.mount`` unit rather than a
one-off ``mount`` so that the mount survives distro restarts and is
owned by PID 1.
"""

from __future__ import annotations

import logging

from sqlrs.core.models import BTRFS, MountUnit
from sqlrs.core.protocols import Clock, Shell
from sqlrs.core.retry import MOUNT_VERIFY_ATTEMPTS, MOUNT_VERIFY_INTERVAL, poll
from sqlrs.exceptions import CommandError, MountError
from sqlrs.infra.btrfs import BtrfsManager

log = logging.getLogger(__name__)

JOURNAL_TAIL_LINES: int = 20


class MountSupervisor:
    """Install, activate, verify and tear down a systemd mount unit.

    Parameters
    ----------
    shell:
        Shell for the target environment (root access required).
    clock:
        Clock used by mount verification polling.
    verbose:
        Attach the unit's journal tail to start failures.
    """

    def __init__(self, shell: Shell, clock: Clock, *, verbose: bool = False) -> None:
        self._shell = shell
        self._clock = clock
        self._verbose = verbose
        self._btrfs = BtrfsManager(shell, clock)

    def resolve_unit_name(self, where: str) -> str:
        """Return the systemd-escaped ``.mount`` unit name for *where*."""
        out = self._shell.run_root(
            "resolve mount unit", "systemd-escape", "--path", "--suffix=mount", where
        )
        name = out.strip()
        if not name:
            raise MountError("systemd mount unit is empty")
        return name

    def install(self, unit: MountUnit) -> None:
        """Write the unit file, reload systemd and enable the unit.

        Raises
        ------
        MountError
            When the unit description is incomplete.
        CommandError
            When any systemd step fails.
        """
        if not unit.name:
            raise MountError("mount unit name is empty")
        if not unit.where:
            raise MountError("mount state dir is empty")
        if not unit.what:
            raise MountError("mount source is empty")

        self._shell.run_root("create state dir", "mkdir", "-p", unit.where)
        self._shell.run_root("write mount unit", "tee", unit.path, stdin=unit.render())
        self._shell.run_root("reload systemd", "systemctl", "daemon-reload")
        self._shell.run_root("enable mount unit", "systemctl", "enable", unit.name)

    def activate(self, unit: MountUnit) -> None:
        """Start *unit* unless active, then verify the live filesystem type.

        Raises
        ------
        MountError
            When the unit does not become active or the mounted
            filesystem type never matches.
        CommandError
            When ``systemctl start`` fails.
        """
        if not unit.name:
            raise MountError("mount unit name is empty")
        if not unit.where:
            raise MountError("mount state dir is empty")

        if not self.is_active(unit.name):
            try:
                self._shell.run_root("start mount unit", "systemctl", "start", unit.name)
            except CommandError as exc:
                journal = self._journal_tail(unit.name) if self._verbose else ""
                if journal:
                    raise MountError(f"{exc}\n{journal}") from exc
                raise
            if not self.is_active(unit.name):
                raise MountError("mount unit is not active")

        self.wait_for_fstype(unit.where, unit.fstype or BTRFS)

    def is_active(self, name: str) -> bool:
        try:
            out = self._shell.run_root("check mount unit", "systemctl", "is-active", name)
        except CommandError:
            return False
        return out.strip() == "active"

    def wait_for_fstype(self, where: str, fstype: str) -> None:
        """Poll ``findmnt`` until *where* is mounted as *fstype*."""
        outcome = poll(
            lambda: self._btrfs.mounted_fstype(where),
            lambda mounted: mounted == fstype,
            attempts=MOUNT_VERIFY_ATTEMPTS,
            interval=MOUNT_VERIFY_INTERVAL,
            clock=self._clock,
            retry_on=(CommandError,),
        )
        if outcome.satisfied:
            return
        if outcome.error is not None:
            raise MountError(str(outcome.error)) from outcome.error
        if outcome.value is None:
            raise MountError(f"mount verification failed for {where}")
        raise MountError(f"mounted filesystem is {outcome.value}, expected {fstype}")

    def teardown(self, name: str) -> None:
        """Best-effort stop, disable, delete and reload.

        Each failure is logged and skipped; a reinit must reach the
        point of deleting the backing disk regardless.
        """
        if not name:
            return
        unit_path = MountUnit(name=name, what="", where="").path
        steps: list[tuple[str, tuple[str, ...]]] = [
            ("stop mount unit", ("systemctl", "stop", name)),
            ("disable mount unit", ("systemctl", "disable", name)),
            ("remove mount unit", ("rm", "-f", unit_path)),
            ("reload systemd", ("systemctl", "daemon-reload")),
        ]
        for description, argv in steps:
            try:
                self._shell.run_root(description, *argv)
            except CommandError as exc:
                log.debug("%s failed (ignored): %s", description, exc)

    def _journal_tail(self, name: str) -> str:
        try:
            out = self._shell.run_root(
                "mount unit logs",
                "journalctl", "-u", name, "-n", str(JOURNAL_TAIL_LINES), "--no-pager",
            )
        except CommandError:
            return ""
        return out.strip()
