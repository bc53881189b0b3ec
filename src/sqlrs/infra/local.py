"""Native-host command shell.

Root commands go through ``sudo`` unless the process already runs as
root (see :func:`~sqlrs.infra.runner.build_argv`).  There is no
namespace to enter on a native host, so ``run_in_init_namespace`` is
plain root execution.
"""

from __future__ import annotations

from sqlrs.core.models import CommandTarget
from sqlrs.core.protocols import CommandRunner


class LocalShell:
    """Satisfies :class:`~sqlrs.core.protocols.Shell` for the host."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def run(
        self,
        description: str,
        command: str,
        *args: str,
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> str:
        return self._runner.run(
            CommandTarget.HOST, description, command, args, stdin=stdin, timeout=timeout
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
            CommandTarget.HOST_ROOT, description, command, args, stdin=stdin, timeout=timeout
        )

    def run_in_init_namespace(
        self,
        description: str,
        command: str,
        *args: str,
        timeout: float | None = None,
    ) -> str:
        return self.run_root(description, command, *args, timeout=timeout)
