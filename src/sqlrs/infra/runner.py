"""Subprocess-backed implementation of :class:`~sqlrs.core.protocols.CommandRunner`.

This module is the **only** place in the codebase that spawns
processes.  Every ``subprocess``/``OSError`` failure is caught here and
re-raised as :class:`~sqlrs.exceptions.CommandError` — nothing raw
escapes the infrastructure boundary.

Rules
-----
* Every command runs under an explicit timeout.
* Verbose mode logs the exact argv before running; otherwise the
  injected *activity* context manager (a spinner, in the CLI) wraps the
  call.
* No user-facing output here.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shlex
import subprocess
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager

from sqlrs.core.models import CommandTarget
from sqlrs.exceptions import CommandError

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Timeout classes (seconds)
# ---------------------------------------------------------------------------

QUICK_TIMEOUT: float = 5.0
CHECK_TIMEOUT: float = 10.0
START_TIMEOUT: float = 20.0
INSTALL_TIMEOUT: float = 300.0
DEFAULT_TIMEOUT: float = 120.0

WSL_EXE: str = "wsl.exe"

Activity = Callable[[str], AbstractContextManager[object]]


def build_argv(
    target: CommandTarget,
    command: str,
    args: Sequence[str],
    *,
    distro: str | None = None,
    euid: int | None = None,
) -> list[str]:
    """Return the full argv for running *command* on *target*."""
    if target is CommandTarget.HOST:
        return [command, *args]
    if target is CommandTarget.HOST_ROOT:
        if euid == 0:
            return [command, *args]
        return ["sudo", command, *args]
    if not distro:
        raise ValueError(f"{target.value} commands need a WSL distro")
    argv = [WSL_EXE, "-d", distro]
    if target is CommandTarget.WSL_ROOT:
        argv += ["-u", "root"]
    return [*argv, "--", command, *args]


def sanitize_output(value: str) -> str:
    """Drop the NUL bytes ``wsl.exe`` leaves behind from UTF-16 output."""
    return value.replace("\x00", "")


class SubprocessRunner:
    """Concrete :class:`CommandRunner` backed by :func:`subprocess.run`.

    Parameters
    ----------
    verbose:
        Log each command line before running it and skip *activity*.
    activity:
        Factory for a context manager entered around each command while
        not verbose.  ``None`` disables it.
    default_timeout:
        Timeout used when a call does not pass one.
    """

    def __init__(
        self,
        *,
        verbose: bool = False,
        activity: Activity | None = None,
        default_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._verbose = verbose
        self._activity = activity
        self._default_timeout = default_timeout

    def run(
        self,
        target: CommandTarget,
        description: str,
        command: str,
        args: Sequence[str] = (),
        *,
        distro: str | None = None,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        argv = build_argv(target, command, args, distro=distro, euid=_geteuid())
        limit = self._default_timeout if timeout is None else timeout

        if self._verbose:
            log.info("%s: %s", description, shlex.join(argv))

        with self._activity_for(description):
            try:
                proc = subprocess.run(
                    argv,
                    input=stdin,
                    stdin=None if stdin is not None else subprocess.DEVNULL,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=limit,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise CommandError(
                    description,
                    f"timed out after {limit:g}s",
                    argv=argv,
                    stderr=_as_text(exc.stderr),
                    timed_out=True,
                ) from exc
            except FileNotFoundError as exc:
                raise CommandError(
                    description,
                    f"executable file not found: {argv[0]}",
                    argv=argv,
                ) from exc
            except OSError as exc:
                raise CommandError(description, str(exc), argv=argv) from exc

        stdout = sanitize_output(proc.stdout or "")
        if proc.returncode != 0:
            log.debug("%s exited with code %s", argv[0], proc.returncode)
            raise CommandError(
                description,
                f"exit status {proc.returncode}",
                argv=argv,
                returncode=proc.returncode,
                stdout=stdout,
                stderr=sanitize_output(proc.stderr or ""),
            )
        return stdout

    def _activity_for(self, description: str) -> AbstractContextManager[object]:
        if self._verbose or self._activity is None:
            return contextlib.nullcontext()
        return self._activity(description)


def _geteuid() -> int | None:
    geteuid = getattr(os, "geteuid", None)
    return geteuid() if geteuid is not None else None


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
