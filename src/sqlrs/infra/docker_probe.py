"""Container-runtime health probes.

Nothing here aborts provisioning: every probe produces at most a
warning string.  Fallback order on the host is service status, then
the engine named pipe, then ``docker info``.
"""

from __future__ import annotations

import logging

from sqlrs.core.failures import classify
from sqlrs.core.models import CommandTarget, FailureKind
from sqlrs.core.protocols import CommandRunner, Shell
from sqlrs.exceptions import CommandError
from sqlrs.infra.runner import CHECK_TIMEOUT, QUICK_TIMEOUT
from sqlrs.infra.virtual_disk import POWERSHELL, POWERSHELL_ARGS

log = logging.getLogger(__name__)

SERVICE_SCRIPT: str = "(Get-Service -Name com.docker.service -ErrorAction SilentlyContinue).Status"
PIPE_SCRIPT: str = "[System.IO.File]::Exists('\\\\.\\pipe\\docker_engine')"


class DockerProbe:
    """Checks Docker Desktop on the host and docker inside a distro."""

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def desktop_running(self) -> tuple[bool, str]:
        """Return ``(running, warning)`` for Docker Desktop.

        Raises
        ------
        CommandError
            When the service query itself cannot run.
        """
        status = self._powershell("check docker desktop", SERVICE_SCRIPT).strip()
        if status.lower() == "running":
            return True, ""
        if self._pipe_exists() or self._cli_responds():
            return True, ""
        if not status:
            return False, "Docker Desktop is not running (service not found)"
        return False, "Docker Desktop is not running"

    def check_in_wsl(self, shell: Shell, distro: str) -> str:
        """Return a warning when ``docker info`` fails inside *distro*."""
        try:
            shell.run("check docker in WSL", "docker", "info", timeout=CHECK_TIMEOUT)
        except CommandError as exc:
            text = str(exc).lower()
            if classify(exc) is FailureKind.TOOL_MISSING:
                return f"docker is not installed in WSL distro {distro}"
            if "cannot connect to the docker daemon" in text or "is the docker daemon running" in text:
                return (
                    f"docker is not available in WSL distro {distro}. "
                    "Enable Docker Desktop WSL integration and ensure Docker Desktop is running."
                )
            return f"docker is not available in WSL distro {distro}: {exc}"
        return ""

    def warnings(self, shell: Shell, distro: str) -> list[str]:
        """Run the full probe chain and collect warnings."""
        try:
            running, warning = self.desktop_running()
        except CommandError as exc:
            return [f"Docker Desktop check failed: {exc}"]
        if not running:
            return [warning] if warning else []
        in_wsl = self.check_in_wsl(shell, distro)
        return [in_wsl] if in_wsl else []

    def _pipe_exists(self) -> bool:
        try:
            out = self._powershell("check docker pipe", PIPE_SCRIPT)
        except CommandError as exc:
            log.debug("docker pipe probe failed: %s", exc)
            return False
        return out.strip().lower() == "true"

    def _cli_responds(self) -> bool:
        try:
            self._runner.run(
                CommandTarget.HOST, "check docker cli", "docker", ("info",), timeout=QUICK_TIMEOUT
            )
        except CommandError as exc:
            log.debug("docker cli probe failed: %s", exc)
            return False
        return True

    def _powershell(self, description: str, script: str) -> str:
        return self._runner.run(
            CommandTarget.HOST,
            description,
            POWERSHELL,
            (*POWERSHELL_ARGS, script),
            timeout=QUICK_TIMEOUT,
        )
