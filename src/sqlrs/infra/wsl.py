"""WSL command shell and distro discovery.

:class:`WSLShell` binds a :class:`~sqlrs.core.protocols.CommandRunner`
to one distro and exposes the three privilege levels the provisioning
pipeline needs:

* ``run`` — the distro's default user,
* ``run_root`` — ``wsl.exe -u root``,
* ``run_in_init_namespace`` — root inside PID 1's mount namespace via
  ``nsenter -t 1 -m --``.  Mounts made from a plain ``wsl.exe`` session
  live in that session's namespace and are invisible to systemd; going
  through PID 1 makes them global.  When ``nsenter`` is missing the call
  degrades to ``run_root`` so read-only checks such as ``findmnt`` still
  work.
"""

from __future__ import annotations

import logging

from sqlrs.core.distros import parse_distro_list
from sqlrs.core.failures import classify
from sqlrs.core.models import CommandTarget, Distro, FailureKind
from sqlrs.core.protocols import CommandRunner
from sqlrs.exceptions import CommandError
from sqlrs.infra.runner import CHECK_TIMEOUT, WSL_EXE

log = logging.getLogger(__name__)

NSENTER_PREFIX: tuple[str, ...] = ("-t", "1", "-m", "--")


class WSLShell:
    """Satisfies :class:`~sqlrs.core.protocols.Shell` for one WSL distro."""

    def __init__(self, runner: CommandRunner, distro: str) -> None:
        self._runner = runner
        self.distro = distro

    def run(
        self,
        description: str,
        command: str,
        *args: str,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        return self._runner.run(
            CommandTarget.WSL_USER,
            description,
            command,
            args,
            distro=self.distro,
            stdin=stdin,
            timeout=timeout,
        )

    def run_root(
        self,
        description: str,
        command: str,
        *args: str,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        return self._runner.run(
            CommandTarget.WSL_ROOT,
            description,
            command,
            args,
            distro=self.distro,
            stdin=stdin,
            timeout=timeout,
        )

    def run_in_init_namespace(
        self,
        description: str,
        command: str,
        *args: str,
        timeout: float | None = None,
    ) -> str:
        try:
            return self.run_root(
                description,
                "nsenter",
                *NSENTER_PREFIX,
                command,
                *args,
                timeout=timeout,
            )
        except CommandError as exc:
            if classify(exc) is not FailureKind.TOOL_MISSING:
                raise
            log.debug("nsenter unavailable, running %s without it", command)
            return self.run_root(description, command, *args, timeout=timeout)


def list_distros(runner: CommandRunner) -> list[Distro]:
    """Enumerate installed distros through ``wsl.exe --list --verbose``.

    Raises
    ------
    CommandError
        When ``wsl.exe`` fails.
    WSLUnavailableError
        When the listing contains no distro.
    """
    out = runner.run(
        CommandTarget.HOST,
        "list WSL distros",
        WSL_EXE,
        ("--list", "--verbose"),
        timeout=CHECK_TIMEOUT,
    )
    return parse_distro_list(out)
