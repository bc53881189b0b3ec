"""WSL store provisioning: VHDX → WSL2 block device → btrfs → systemd mount.

:class:`WSLStoreProvisioner` is a strictly sequential state machine.
Each stage runs inside :meth:`WSLStoreProvisioner._stage`, which
prefixes any failure with the stage label so the operator can tell
exactly which step to retry.

Rules
-----
* Failures before the elevation check raise
  :class:`~sqlrs.exceptions.WSLUnavailableError`; later ones raise
  :class:`~sqlrs.exceptions.ProvisioningError`.
* :meth:`WSLStoreProvisioner.provision` turns both into a warning plus
  ``use_store=False`` unless the request sets ``require``.
* Formatting is only allowed on a VHDX created by this run or under
  ``--reinit``.
"""

from __future__ import annotations

import contextlib
import logging
import posixpath
import shutil
from collections.abc import Callable, Iterator, Mapping

from sqlrs.core.distros import select_distro
from sqlrs.core.failures import classify
from sqlrs.core.inventory import parse_inventory, select_disk_by_size, select_partition
from sqlrs.core.models import BTRFS, FailureKind, MountUnit, ProvisionResult, StoreRequest
from sqlrs.core.protocols import Clock, CommandRunner, Shell
from sqlrs.core.retry import UUID_WAIT_INTERVAL, UUID_WAIT_SECONDS, wait_until
from sqlrs.exceptions import (
    CommandError,
    PartitionNotFoundError,
    PrerequisiteError,
    ProvisioningError,
    SqlrsError,
    WSLUnavailableError,
)
from sqlrs.infra.btrfs import BtrfsManager
from sqlrs.infra.clock import SystemClock
from sqlrs.infra.docker_probe import DockerProbe
from sqlrs.infra.finalizer import ensure_ownership, ensure_subvolumes, resolve_wsl_owner
from sqlrs.infra.mount_supervisor import MountSupervisor
from sqlrs.infra.paths import host_vhdx_path
from sqlrs.infra.runner import INSTALL_TIMEOUT, QUICK_TIMEOUT, START_TIMEOUT, WSL_EXE
from sqlrs.infra.virtual_disk import GIB, VirtualDiskManager
from sqlrs.infra.wsl import WSLShell, list_distros

log = logging.getLogger(__name__)

ELEVATION_REQUIRED = (
    "WSL init requires Administrator privileges to create and mount VHDX. "
    "Please rerun this command in an elevated terminal (Run as Administrator)."
)
RESTART_WARNING = "WSL restart required: wsl.exe --shutdown"
UUID_DIR = "/dev/disk/by-uuid"

SYSTEMD_OK_STATES: tuple[str, ...] = ("running", "degraded")


# ---------------------------------------------------------------------------
# WSL-side helpers
# ---------------------------------------------------------------------------

def find_disk(shell: Shell, size_bytes: int) -> tuple[str | None, str | None]:
    """Locate the attached VHDX and its partition by size.

    Returns ``(disk, partition)`` as ``/dev`` paths; either may be
    ``None`` (disk not attached yet / disk without partition).
    """
    out = shell.run("lsblk", "lsblk", "-b", "-n", "-r", "-o", "NAME,SIZE,TYPE,PKNAME")
    entries = parse_inventory(out)
    disk = select_disk_by_size(entries, size_bytes)
    if disk is None:
        return None, None
    try:
        part = select_partition(entries, disk)
    except PartitionNotFoundError:
        return f"/dev/{disk}", None
    return f"/dev/{disk}", f"/dev/{part}"


def resolve_state_dir(shell: Shell) -> str:
    """``$XDG_STATE_HOME/sqlrs/store``, else ``$HOME/.local/state/sqlrs/store``."""
    try:
        state_home = shell.run("resolve XDG_STATE_HOME", "printenv", "XDG_STATE_HOME").strip()
    except CommandError:
        state_home = ""
    if not state_home:
        try:
            home = shell.run("resolve HOME", "printenv", "HOME").strip()
        except CommandError:
            home = ""
        if not home:
            raise ProvisioningError("HOME is empty")
        state_home = posixpath.join(home, ".local", "state")
    return posixpath.join(state_home, "sqlrs", "store")


def path_exists(shell: Shell, path: str) -> bool:
    try:
        shell.run("check path", "stat", path)
    except CommandError as exc:
        if classify(exc) is FailureKind.ABSENT:
            return False
        raise
    return True


# ---------------------------------------------------------------------------
# Provisioner
# ---------------------------------------------------------------------------

class WSLStoreProvisioner:
    """Provision a btrfs store inside WSL2 backed by a host VHDX.

    Parameters
    ----------
    runner:
        Command runner for host and WSL commands.
    clock:
        Clock for bounded waits.  Defaults to the system clock.
    which:
        Executable lookup used to locate ``wsl.exe``.
    environ:
        Environment consulted for the default VHDX location.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        clock: Clock | None = None,
        which: Callable[[str], str | None] = shutil.which,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._runner = runner
        self._clock = clock or SystemClock()
        self._which = which
        self._environ = environ
        self._disks = VirtualDiskManager(runner)
        self._docker = DockerProbe(runner)

    def provision(self, request: StoreRequest) -> ProvisionResult:
        warnings: list[str] = []
        try:
            return self._provision(request, warnings)
        except (WSLUnavailableError, ProvisioningError) as exc:
            if request.require:
                raise
            log.debug("WSL provisioning fell back: %s", exc)
            return ProvisionResult(use_store=False, warning="\n".join([*warnings, str(exc)]))

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _provision(self, request: StoreRequest, warnings: list[str]) -> ProvisionResult:
        if self._which(WSL_EXE) is None:
            raise WSLUnavailableError("WSL is not available")

        with self._stage("WSL unavailable", WSLUnavailableError):
            distros = list_distros(self._runner)
        with self._stage("WSL distro resolution failed", WSLUnavailableError):
            distro = select_distro(distros, request.distro)
        log.debug("selected WSL distro: %s", distro)
        shell = WSLShell(self._runner, distro)

        if not request.no_start:
            with self._stage("WSL distro start failed", WSLUnavailableError):
                shell.run("start WSL distro", "true", timeout=START_TIMEOUT)

        self._ensure_btrfs_kernel(shell)
        self._ensure_tool(shell, "mkfs.btrfs", "btrfs-progs", "btrfs-progs install failed")
        self._ensure_tool(shell, "nsenter", "util-linux", "nsenter install failed")
        self._ensure_systemd(shell, distro)

        warnings.extend(self._docker.warnings(shell, distro))

        store_path = request.store_path.strip() or host_vhdx_path(self._environ)
        log.debug("host VHDX path: %s", store_path)

        with self._stage("Administrator check failed"):
            elevated = self._disks.is_elevated()
        if not elevated:
            raise ProvisioningError(ELEVATION_REQUIRED)

        btrfs = BtrfsManager(shell, self._clock)
        supervisor = MountSupervisor(shell, self._clock, verbose=request.verbose)

        with self._stage("WSL state dir resolution failed"):
            state_dir = resolve_state_dir(shell)
        with self._stage("WSL mount unit resolution failed"):
            unit_name = supervisor.resolve_unit_name(state_dir)
        log.debug("state dir %s, mount unit %s", state_dir, unit_name)

        if request.reinit:
            with self._stage("WSL reinit failed"):
                self._reinit(shell, supervisor, btrfs, state_dir, store_path, unit_name)

        size_gb = request.effective_size_gb
        with self._stage("VHDX init failed"):
            created = self._disks.ensure_virtual_disk(store_path, size_gb)

        size_bytes = size_gb * GIB
        with self._stage("WSL disk detection failed"):
            disk, part = find_disk(shell, size_bytes)
        if disk is None:
            with self._stage("VHDX partitioning failed"):
                self._disks.ensure_gpt_partition(store_path)
            with self._stage("WSL mount failed"):
                self._disks.attach_to_wsl(store_path)
            with self._stage("WSL disk detection failed"):
                disk, part = find_disk(shell, size_bytes)

        log.debug("WSL disk: %s", disk)
        if part is None:
            if created or request.reinit:
                raise ProvisioningError("WSL disk has no partition after initialization")
            raise ProvisioningError(
                "WSL disk is missing required partition. Please rerun with --reinit."
            )

        with self._stage("btrfs format failed"):
            btrfs.ensure_btrfs(part, allow_format=created or request.reinit)

        with self._stage("btrfs device UUID failed"):
            device_uuid = self._resolve_partition_uuid(shell, part)

        mount_source = part
        if device_uuid:
            by_uuid = posixpath.join(UUID_DIR, device_uuid)
            with self._stage("btrfs device path check failed"):
                found = path_exists(shell, by_uuid)
            if found:
                mount_source = by_uuid
            else:
                warnings.append(f"WSL mount: {by_uuid} not found, using {part}")
        else:
            warnings.append(f"WSL mount: partition UUID unavailable, using {part}")

        unit = MountUnit(name=unit_name, what=mount_source, where=state_dir)
        with self._stage("btrfs mount unit failed"):
            supervisor.install(unit)
        with self._stage("btrfs mount failed"):
            supervisor.activate(unit)
        with self._stage("btrfs subvolumes failed"):
            ensure_subvolumes(shell, state_dir)
        with self._stage("btrfs ownership failed"):
            ensure_ownership(shell, state_dir, resolve_wsl_owner(shell))

        warnings.append(RESTART_WARNING)
        return ProvisionResult(
            use_store=True,
            store_backend_available=True,
            distro=distro,
            state_dir=state_dir,
            store_path=store_path,
            mount_device=part,
            mount_fstype=BTRFS,
            mount_unit=unit_name,
            mount_device_uuid=device_uuid or None,
            warning="\n".join(warnings),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def _stage(
        self,
        label: str,
        error: type[SqlrsError] = ProvisioningError,
    ) -> Iterator[None]:
        try:
            yield
        except (SqlrsError, OSError) as exc:
            hint = exc.hint if isinstance(exc, SqlrsError) else None
            raise error(f"{label}: {exc}", hint=hint) from exc

    def _ensure_btrfs_kernel(self, shell: WSLShell) -> None:
        with self._stage("btrfs kernel check failed"):
            if self._kernel_has_btrfs(shell):
                return
            try:
                shell.run_root("load btrfs module", "modprobe", BTRFS)
            except CommandError as exc:
                log.debug("modprobe btrfs failed: %s", exc)
            supported = self._kernel_has_btrfs(shell)
        if not supported:
            raise ProvisioningError("btrfs kernel support missing")

    def _kernel_has_btrfs(self, shell: WSLShell) -> bool:
        out = shell.run("check btrfs kernel", "cat", "/proc/filesystems")
        return BTRFS in out

    def _ensure_tool(self, shell: WSLShell, tool: str, package: str, label: str) -> None:
        try:
            shell.run(f"check {tool}", "which", tool)
            return
        except CommandError:
            log.debug("%s missing, installing %s", tool, package)
        with self._stage(label):
            shell.run_root("apt-get update", "apt-get", "update", timeout=INSTALL_TIMEOUT)
            shell.run_root(
                "apt-get install", "apt-get", "install", "-y", package, timeout=INSTALL_TIMEOUT
            )

    def _ensure_systemd(self, shell: WSLShell, distro: str) -> None:
        try:
            state = shell.run_root(
                "check systemd", "systemctl", "is-system-running", timeout=QUICK_TIMEOUT
            ).strip()
        except CommandError as exc:
            # is-system-running exits non-zero for every state but "running"
            state = exc.stdout.strip()
        if state in SYSTEMD_OK_STATES:
            return
        raise ProvisioningError(
            f"systemd is not running in WSL distro {distro} "
            f"(state={state or 'unknown'}). Enable systemd and restart WSL"
        )

    def _resolve_partition_uuid(self, shell: WSLShell, part: str) -> str:
        def probe() -> str:
            try:
                out = shell.run_root(
                    "resolve partition UUID", "blkid", "-o", "value", "-s", "UUID", part
                )
            except CommandError as exc:
                if classify(exc) is FailureKind.TOOL_MISSING:
                    raise PrerequisiteError(str(exc)) from exc
                raise
            return out.strip()

        outcome = wait_until(
            probe,
            bool,
            timeout=UUID_WAIT_SECONDS,
            interval=UUID_WAIT_INTERVAL,
            clock=self._clock,
            retry_on=(CommandError,),
        )
        if outcome.satisfied:
            return outcome.value or ""
        if outcome.error is not None:
            raise ProvisioningError(
                f"partition UUID unavailable: {outcome.error}"
            ) from outcome.error
        return ""

    def _reinit(
        self,
        shell: WSLShell,
        supervisor: MountSupervisor,
        btrfs: BtrfsManager,
        state_dir: str,
        store_path: str,
        unit_name: str,
    ) -> None:
        supervisor.teardown(unit_name)

        mounted = btrfs.mounted_fstype(state_dir)
        if mounted is not None:
            log.debug("unmounting previous WSL store (%s)", mounted)
            try:
                shell.run_in_init_namespace("unmount btrfs", "umount", state_dir)
            except CommandError as exc:
                if classify(exc) is not FailureKind.ALREADY_UNMOUNTED:
                    raise

        self._disks.detach_and_delete(store_path)
