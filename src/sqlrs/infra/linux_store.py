"""Native Linux btrfs store: loopback image or raw block device.

The same create-or-reuse, detect, format-if-allowed, mount, chown and
verify sequence as the WSL path, run directly against the host kernel
(``sudo`` when not already root).
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable

from sqlrs.core.failures import classify
from sqlrs.core.models import BTRFS, FailureKind, ProvisionResult, StorePlan, StoreRequest
from sqlrs.core.protocols import Clock, CommandRunner
from sqlrs.core.store_layout import plan_store
from sqlrs.exceptions import (
    REINIT_HINT,
    CommandError,
    MountError,
    PrerequisiteError,
    ProvisioningError,
)
from sqlrs.infra.btrfs import BtrfsManager
from sqlrs.infra.clock import SystemClock
from sqlrs.infra.finalizer import ensure_ownership
from sqlrs.infra.local import LocalShell
from sqlrs.infra.paths import default_store_root

log = logging.getLogger(__name__)


def _make_dir(path: str) -> None:
    try:
        os.makedirs(path, mode=0o700, exist_ok=True)
    except OSError as exc:
        raise ProvisioningError(f"create directory {path}: {exc}") from exc


class LinuxStoreProvisioner:
    """Provision a btrfs store on the local Linux host.

    Parameters
    ----------
    runner:
        Command runner; root commands go through ``HOST_ROOT``.
    clock:
        Clock for format verification polling.
    which:
        Executable lookup used by the prerequisite check.
    default_root:
        Store directory used for device-backed stores.  Defaults to
        :func:`~sqlrs.infra.paths.default_store_root`.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        clock: Clock | None = None,
        which: Callable[[str], str | None] = shutil.which,
        default_root: str | None = None,
        uid: int | None = None,
        gid: int | None = None,
        euid: int | None = None,
    ) -> None:
        self._shell = LocalShell(runner)
        self._btrfs = BtrfsManager(self._shell, clock or SystemClock())
        self._which = which
        self._default_root = default_root
        self._uid = os.getuid() if uid is None else uid
        self._gid = os.getgid() if gid is None else gid
        self._euid = os.geteuid() if euid is None else euid

    def provision(self, request: StoreRequest) -> ProvisionResult:
        """Ensure a btrfs store exists and return its directory.

        Raises
        ------
        InvalidArgumentsError
            When no store layout can be derived from the request.
        PrerequisiteError
            When a required tool is missing.
        FilesystemError, MountError
            When the store cannot be made btrfs.
        ProvisioningError
            When the store directory or image cannot be created or removed.
        CommandError
            When a privileged command fails.
        """
        root = self._default_root or default_store_root("Linux")
        plan = plan_store(request.store_type, request.store_path, root)
        self.check_prerequisites(plan)
        _make_dir(plan.store_dir)

        if self.is_btrfs_path(plan.store_dir):
            log.debug("reusing existing btrfs store: %s", plan.store_dir)
            return self._result(plan.store_dir)

        if plan.device_path:
            return self._result(self._device_store(plan, request))
        return self._result(self._loopback_store(plan, request))

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_prerequisites(self, plan: StorePlan) -> None:
        required = ["mkfs.btrfs", "mount", "umount"]
        if plan.image_path:
            required.append("truncate")
        if plan.device_path:
            required.append("findmnt")
        if self._euid != 0:
            required.append("sudo")
        for command in required:
            if self._which(command) is None:
                raise PrerequisiteError(f"{command} is required for btrfs init")

    def is_btrfs_path(self, path: str) -> bool:
        out = self._shell.run("detect store filesystem", "stat", "-f", "-c", "%T", path)
        return out.strip() == BTRFS

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    def _loopback_store(self, plan: StorePlan, request: StoreRequest) -> str:
        image = plan.image_path or ""
        if request.reinit:
            self._unmount(plan.store_dir)
            try:
                os.remove(image)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise ProvisioningError(f"remove btrfs image {image}: {exc}") from exc

        created = self._ensure_image(image, request.effective_size_gb)
        self._btrfs.ensure_btrfs(image, allow_format=created or request.reinit)

        mounted = self._btrfs.mounted_fstype(plan.store_dir)
        if mounted == BTRFS:
            return plan.store_dir
        if mounted is not None:
            if not request.reinit:
                raise MountError(
                    f"store path {plan.store_dir} is mounted as {mounted}, expected btrfs",
                    hint=REINIT_HINT,
                )
            self._unmount(plan.store_dir)

        self._shell.run_root("mount loopback btrfs", "mount", "-o", "loop", image, plan.store_dir)
        self._finish(plan.store_dir, "loopback")
        return plan.store_dir

    def _device_store(self, plan: StorePlan, request: StoreRequest) -> str:
        device = plan.device_path or ""
        target, fstype = self._source_mount(device)
        if target is not None:
            if fstype == BTRFS:
                return target
            if not request.reinit:
                raise MountError(
                    f"device {device} is mounted as {fstype}, expected btrfs",
                    hint=REINIT_HINT,
                )
            self._unmount(target)

        self._btrfs.ensure_btrfs(device, allow_format=request.reinit)
        self._shell.run_root("mount btrfs device", "mount", device, plan.store_dir)
        self._finish(plan.store_dir, "device")
        return plan.store_dir

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_image(self, path: str, size_gb: int) -> bool:
        if os.path.exists(path):
            return False
        _make_dir(os.path.dirname(path) or ".")
        self._shell.run("create loopback image", "truncate", "-s", f"{size_gb}G", path)
        return True

    def _source_mount(self, device: str) -> tuple[str | None, str]:
        try:
            out = self._shell.run_root(
                "detect source mount", "findmnt", "-n", "-o", "TARGET,FSTYPE", "-S", device
            )
        except CommandError as exc:
            if exc.returncode == 1:
                return None, ""
            raise
        fields = out.split()
        if not fields:
            return None, ""
        return fields[0], fields[1] if len(fields) > 1 else ""

    def _unmount(self, path: str) -> None:
        """``umount``, then ``umount -l``; "not mounted" counts as success."""
        try:
            self._shell.run_root("unmount store", "umount", path)
            return
        except CommandError as exc:
            if classify(exc) is FailureKind.ALREADY_UNMOUNTED:
                return
            log.debug("umount %s failed, retrying lazily: %s", path, exc)
        try:
            self._shell.run_root("lazy unmount store", "umount", "-l", path)
        except CommandError as exc:
            if classify(exc) is not FailureKind.ALREADY_UNMOUNTED:
                raise
        log.debug("store unmounted: %s", path)

    def _finish(self, store_dir: str, kind: str) -> None:
        ensure_ownership(self._shell, store_dir, f"{self._uid}:{self._gid}")
        if not self.is_btrfs_path(store_dir):
            raise MountError(f"store path {store_dir} is not btrfs after {kind} mount")

    def _result(self, store_dir: str) -> ProvisionResult:
        return ProvisionResult(
            use_store=True,
            store_backend_available=True,
            store_path=store_dir,
            mount_fstype=BTRFS,
        )


class PassthroughProvisioner:
    """Platforms without a btrfs provisioning path keep the store path as is."""

    def provision(self, request: StoreRequest) -> ProvisionResult:
        return ProvisionResult(use_store=False, store_path=request.store_path or None)
