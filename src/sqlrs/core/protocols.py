"""Protocols (interfaces) consumed by the provisioning layer.

These define the contracts that infrastructure adapters must satisfy.
Provisioners depend ONLY on these protocols — the real subprocess
runner and the scripted test fakes both satisfy them structurally.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from sqlrs.core.models import CommandTarget, ProvisionResult, StoreRequest


class CommandRunner(Protocol):
    """Contract for running one external command.

    Implementations must raise :class:`~sqlrs.exceptions.CommandError`
    on non-zero exit, timeout, or spawn failure, and never return
    partial output silently.
    """

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
        """Run *command* with *args* on *target* and return its stdout.

        Parameters
        ----------
        target:
            Host, host-as-root, WSL-as-user or WSL-as-root.
        description:
            Human-readable label embedded in errors and spinners.
        distro:
            WSL distro name; required for WSL targets.
        stdin:
            Text fed to the command's standard input.
        timeout:
            Seconds before the command is killed.  ``None`` selects the
            implementation default.

        Raises
        ------
        CommandError
            When the command cannot start, exits non-zero, or times out.
        """
        ...  # pragma: no cover


class Shell(Protocol):
    """A command environment with three privilege levels.

    ``run_in_init_namespace`` escalates as far as the environment allows
    (``nsenter`` into PID 1 on WSL, plain root elsewhere).
    """

    def run(
        self,
        description: str,
        command: str,
        *args: str,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        ...  # pragma: no cover

    def run_root(
        self,
        description: str,
        command: str,
        *args: str,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        ...  # pragma: no cover

    def run_in_init_namespace(
        self,
        description: str,
        command: str,
        *args: str,
        timeout: float | None = None,
    ) -> str:
        ...  # pragma: no cover


class Clock(Protocol):
    """Time source used by the bounded-retry helpers."""

    def monotonic(self) -> float:
        ...  # pragma: no cover

    def sleep(self, seconds: float) -> None:
        ...  # pragma: no cover


class StoreProvisioner(Protocol):
    """Contract for platform-specific store provisioning."""

    def provision(self, request: StoreRequest) -> ProvisionResult:
        """Ensure the requested store exists and describe it.

        Raises
        ------
        SqlrsError
            When provisioning fails and the failure must be fatal.
        """
        ...  # pragma: no cover
