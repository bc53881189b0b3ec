"""``sqlrs init`` — create or update a workspace and provision its store.

Flow:

1. Resolve the workspace directory and refuse nested workspaces.
2. Short-circuit when the workspace exists and nothing is to change.
3. Compute the (snapshot backend, store type, store path) triple.
4. On Windows, provision through WSL when btrfs is requested or
   implied; fall back to a plain directory store when allowed.
5. With an explicit btrfs backend, provision natively (Linux) or fail.
6. Merge the outcome into ``.sqlrs/config.yaml``.

Concurrent ``init`` runs against the same workspace are not supported;
the block device, VHDX and mount point are assumed to have a single
owner for the duration of one invocation.
"""

from __future__ import annotations

import argparse
import dataclasses
import os
import platform
from collections.abc import Mapping
from dataclasses import dataclass

from sqlrs.cli import exit_codes
from sqlrs.cli.console import console, out
from sqlrs.core.models import ProvisionResult, SnapshotBackend, StoreRequest, StoreType
from sqlrs.core.protocols import CommandRunner, StoreProvisioner
from sqlrs.core.store_layout import (
    parse_store_size_gb,
    resolve_store_path,
    resolve_store_type,
    should_use_wsl,
)
from sqlrs.exceptions import (
    CommandError,
    ConfigError,
    InvalidArgumentsError,
    ProvisioningError,
    SqlrsError,
    WorkspaceError,
)
from sqlrs.infra.config import (
    atomic_write,
    build_workspace_config,
    dump_config,
    read_config_map,
    validate_config,
)
from sqlrs.infra.local import LocalShell
from sqlrs.infra.paths import (
    default_store_root,
    has_parent_workspace,
    workspace_config_path,
    workspace_marker,
)
from sqlrs.infra.provisioners import select_provisioner

SNAPSHOT_CHOICES: tuple[str, ...] = tuple(backend.value for backend in SnapshotBackend)
STORE_TYPE_CHOICES: tuple[str, ...] = tuple(kind.value for kind in StoreType)
BTRFS_INCAPABLE: tuple[str, ...] = (SnapshotBackend.OVERLAY.value, SnapshotBackend.COPY.value)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class InitOptions:
    """Normalized ``sqlrs init`` flags."""

    workspace: str = ""
    force: bool = False
    update: bool = False
    dry_run: bool = False
    snapshot: str = ""
    store_type: str = ""
    store_path: str = ""
    store_size_gb: int = 0
    reinit: bool = False
    distro: str = ""
    no_start: bool = False
    verbose: bool = False

    @property
    def has_update_flags(self) -> bool:
        return bool(
            self.snapshot
            or self.store_type
            or self.store_path
            or self.store_size_gb > 0
            or self.reinit
            or self.distro
        )


def register(subparsers: argparse._SubParsersAction) -> None:  # type: ignore[type-arg]
    """Add the ``init`` sub-command to *subparsers*."""
    parser = subparsers.add_parser(
        "init",
        help="Create a workspace and provision its snapshot store.",
        description=(
            "Create or update a .sqlrs workspace and make sure its snapshot "
            "store exists. Concurrent runs against one workspace are not supported."
        ),
    )
    parser.add_argument("mode", nargs="?", choices=("local",), default="local",
                        help="Engine mode (only 'local' is supported).")
    parser.add_argument("--workspace", default="", help="Workspace root (default: cwd).")
    parser.add_argument("--force", action="store_true", help="Allow a nested workspace.")
    parser.add_argument("--update", action="store_true",
                        help="Update an existing workspace config.")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show what would be written without changing anything.")
    parser.add_argument("--snapshot", type=str.lower, choices=SNAPSHOT_CHOICES, default="",
                        help="Snapshot backend.")
    parser.add_argument("--store-type", type=str.lower, choices=STORE_TYPE_CHOICES, default="",
                        help="Store shape.")
    parser.add_argument("--store-path", default="", help="Store directory, image or device.")
    parser.add_argument("--store-size", default="", metavar="NGB",
                        help="Image size, e.g. 100GB (image stores only).")
    parser.add_argument("--reinit", action="store_true",
                        help="Destroy and recreate the btrfs store.")
    parser.add_argument("--distro", default="", help="WSL distro name (Windows).")
    parser.add_argument("--no-start", action="store_true",
                        help="Do not start the WSL distro.")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every external command.")


def options_from_args(args: argparse.Namespace) -> InitOptions:
    size = parse_store_size_gb(args.store_size) if args.store_size.strip() else 0
    return InitOptions(
        workspace=args.workspace.strip(),
        force=args.force,
        update=args.update,
        dry_run=args.dry_run,
        snapshot=args.snapshot.strip(),
        store_type=args.store_type.strip(),
        store_path=args.store_path.strip(),
        store_size_gb=size,
        reinit=args.reinit,
        distro=args.distro.strip(),
        no_start=args.no_start,
        verbose=args.verbose,
    )


def validate_options(opts: InitOptions, system: str) -> None:
    """Reject illegal flag combinations before anything touches the disk.

    Raises
    ------
    InvalidArgumentsError
        On the first violated rule.
    """
    snapshot, store_type = opts.snapshot, opts.store_type
    if opts.store_path and not store_type:
        _invalid("--store-path requires --store-type")
    if store_type == StoreType.DEVICE.value and not opts.store_path:
        _invalid("--store-type device requires --store-path")
    if opts.store_size_gb > 0 and store_type != StoreType.IMAGE.value:
        _invalid("--store-size requires --store-type image")
    if store_type in (StoreType.IMAGE.value, StoreType.DEVICE.value) and snapshot in BTRFS_INCAPABLE:
        _invalid("store type requires btrfs backend")
    if opts.reinit and snapshot in BTRFS_INCAPABLE:
        _invalid("--reinit requires btrfs backend")
    if snapshot == SnapshotBackend.OVERLAY.value and system != "Linux":
        _invalid("overlay snapshots are only supported on Linux")
    if system == "Darwin":
        if snapshot == SnapshotBackend.BTRFS.value:
            _invalid("btrfs snapshots are not supported on macOS")
        if store_type in (StoreType.IMAGE.value, StoreType.DEVICE.value) and snapshot in (
            "",
            SnapshotBackend.AUTO.value,
        ):
            _invalid("btrfs snapshots are not supported on macOS")
    if system == "Windows" and snapshot == SnapshotBackend.BTRFS.value and store_type == StoreType.DIR.value:
        _invalid("btrfs on Windows requires an image or device store")


def _invalid(message: str) -> None:
    raise InvalidArgumentsError(f"Invalid arguments: {message}")


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------

def resolve_workspace(workspace: str, cwd: str) -> str:
    """Return the absolute, symlink-resolved workspace directory."""
    target = workspace or cwd
    if not target:
        raise WorkspaceError(
            "Cannot create .sqlrs directory: workspace path is empty",
            exit_code=exit_codes.IO_ERROR,
        )
    if not os.path.isabs(target):
        target = os.path.join(cwd, target)
    resolved = os.path.realpath(os.path.normpath(target))
    if not os.path.exists(resolved):
        raise WorkspaceError(
            f"Cannot create .sqlrs directory: no such directory: {resolved}",
            exit_code=exit_codes.IO_ERROR,
        )
    if not os.path.isdir(resolved):
        raise WorkspaceError(
            f"Cannot create .sqlrs directory: workspace is not a directory: {resolved}",
            exit_code=exit_codes.IO_ERROR,
        )
    return resolved


def run_init(
    opts: InitOptions,
    *,
    cwd: str,
    runner: CommandRunner,
    system: str | None = None,
    provisioner: StoreProvisioner | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    """Execute ``sqlrs init``.

    Raises
    ------
    WorkspaceError
        For nested workspaces, corrupted configs and I/O failures.
    InvalidArgumentsError
        For illegal flag combinations.
    ProvisioningError
        When btrfs was required and could not be provisioned.
    """
    system = system or platform.system()
    validate_options(opts, system)

    target = resolve_workspace(opts.workspace, cwd)
    marker = workspace_marker(target)
    local_exists = os.path.isdir(marker)
    if has_parent_workspace(target) and not local_exists and not opts.force:
        raise WorkspaceError(
            "Refusing to create nested workspace",
            exit_code=exit_codes.NESTED_WORKSPACE,
            hint="Pass --force to create it anyway.",
        )

    config_path = workspace_config_path(target)
    config_exists = os.path.isfile(config_path)
    config_valid = False
    suffix = " (dry-run)" if opts.dry_run else ""

    if local_exists:
        if config_exists:
            try:
                validate_config(config_path)
            except ConfigError as exc:
                if not opts.update:
                    raise WorkspaceError(
                        f"Workspace config is corrupted: {exc}",
                        exit_code=exit_codes.CONFIG_CORRUPTED,
                        hint="Rerun with --update to rewrite it.",
                    ) from exc
            else:
                config_valid = True
        if not opts.update or (config_exists and config_valid and not opts.has_update_flags):
            out.print(f"Workspace already initialized at {target}{suffix}", markup=False)
            return exit_codes.SUCCESS

    snapshot = opts.snapshot or SnapshotBackend.AUTO.value
    backend = SnapshotBackend(snapshot)
    root = default_store_root(system, environ)
    store_type = resolve_store_type(
        backend,
        StoreType(opts.store_type) if opts.store_type else None,
        system,
        root_is_btrfs=lambda: _path_is_btrfs(runner, root),
    )
    store_path = resolve_store_path(store_type, opts.store_path, root, system)
    use_wsl, require_wsl = should_use_wsl(
        system, backend, store_type, bool(opts.store_type or opts.store_path)
    )
    if provisioner is None:
        provisioner = select_provisioner(runner, system)

    request = StoreRequest(
        snapshot_backend=backend,
        store_type=store_type,
        store_path=store_path,
        size_gb=opts.store_size_gb,
        reinit=opts.reinit,
        distro=opts.distro,
        no_start=opts.no_start,
        verbose=opts.verbose,
        require=require_wsl,
    )

    wsl_result: ProvisionResult | None = None
    wsl_mode = ""
    if use_wsl and not opts.dry_run:
        try:
            result = provisioner.provision(request)
        except SqlrsError as exc:
            raise ProvisioningError(f"WSL init failed: {exc}", hint=exc.hint) from exc
        warning = result.warning.strip()
        if warning:
            console.print(warning, style="yellow", markup=False)
        if require_wsl and not result.use_store:
            raise ProvisioningError(f"WSL init failed: {warning}")
        if result.use_store:
            wsl_result = result
            wsl_mode = "required" if require_wsl else "auto"
        elif backend is SnapshotBackend.AUTO:
            store_type = StoreType.DIR
            store_path = resolve_store_path(store_type, "", root, system)

    if backend is SnapshotBackend.BTRFS and not opts.dry_run and wsl_result is None:
        try:
            local = provisioner.provision(dataclasses.replace(request, require=True))
        except SqlrsError as exc:
            raise ProvisioningError(f"Linux btrfs init failed: {exc}", hint=exc.hint) from exc
        if local.store_path:
            store_path = local.store_path

    if opts.dry_run:
        if not local_exists:
            out.print(f"Would create {marker}", markup=False)
        out.print(f"Would write {config_path}", markup=False)
        return exit_codes.SUCCESS

    if not local_exists:
        try:
            os.makedirs(marker, mode=0o700, exist_ok=True)
        except OSError as exc:
            raise WorkspaceError(
                f"Cannot create .sqlrs directory: {exc}", exit_code=exit_codes.IO_ERROR
            ) from exc

    base = None
    if opts.update and config_exists and config_valid:
        try:
            base = read_config_map(config_path)
        except ConfigError as exc:
            raise WorkspaceError(
                f"Cannot read config.yaml: {exc}", exit_code=exit_codes.IO_ERROR
            ) from exc

    cfg = build_workspace_config(
        snapshot=snapshot,
        store_path=store_path if wsl_result is None else "",
        wsl_result=wsl_result,
        wsl_mode=wsl_mode,
        distro=opts.distro,
        base=base,
    )
    try:
        atomic_write(config_path, dump_config(cfg))
    except OSError as exc:
        raise WorkspaceError(
            f"Cannot write config.yaml: {exc}", exit_code=exit_codes.IO_ERROR
        ) from exc

    verb = "Updated" if local_exists else "Initialized"
    out.print(f"{verb} workspace at {target}", markup=False)
    return exit_codes.SUCCESS


def _path_is_btrfs(runner: CommandRunner, path: str) -> bool:
    try:
        fstype = LocalShell(runner).run(
            "detect store filesystem", "stat", "-f", "-c", "%T", path
        )
    except CommandError:
        return False
    return fstype.strip() == "btrfs"
