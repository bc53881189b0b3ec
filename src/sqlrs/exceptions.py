"""Custom exception hierarchy for sqlrs.

All exceptions that cross layer boundaries must inherit from
:class:`SqlrsError`.  Raw ``subprocess``/``OSError`` exceptions must
NEVER propagate beyond the infrastructure layer; they must be caught
and re-raised as a typed subclass defined here.

Hierarchy
---------
SqlrsError
├── InvalidArgumentsError
├── WorkspaceError
├── ConfigError
├── EnvironmentError
├── CommandError
├── InventoryError
│   ├── AmbiguousDiskError
│   └── PartitionNotFoundError
├── WSLUnavailableError
└── ProvisioningError
    ├── FilesystemError
    ├── MountError
    ├── VirtualDiskInUseError
    └── PrerequisiteError
"""

from __future__ import annotations

from collections.abc import Sequence

REINIT_HINT = "Rerun with --reinit to recreate the store from scratch."


class SqlrsError(Exception):
    """Base exception for all sqlrs errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the CLI error boundary can render a clean message
    without leaking internal stack traces.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance shown below the error message."""


# --- Arguments / workspace -------------------------------------------------

class InvalidArgumentsError(SqlrsError):
    """Raised when a flag combination is not legal."""


class WorkspaceError(SqlrsError):
    """Raised when the workspace directory cannot be initialized."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: int,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.exit_code: int = exit_code


class ConfigError(SqlrsError):
    """Raised when ``config.yaml`` cannot be read, parsed, or written."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(SqlrsError):
    """Raised when a required runtime dependency is not available."""


# --- External commands -----------------------------------------------------

class CommandError(SqlrsError):
    """Raised when an external command fails, times out, or cannot start.

    The message always embeds the human description, the underlying
    cause, and the trimmed stderr (when non-empty), so stage failures
    are diagnosable without re-running in verbose mode.
    """

    def __init__(
        self,
        description: str,
        cause: str,
        *,
        argv: Sequence[str] = (),
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
    ) -> None:
        detail = stderr.strip()
        message = f"{description}: {cause}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.description: str = description
        self.cause: str = cause
        self.argv: tuple[str, ...] = tuple(argv)
        self.returncode: int | None = returncode
        self.stdout: str = stdout
        self.stderr: str = detail
        self.timed_out: bool = timed_out


# --- Block-device inventory ------------------------------------------------

class InventoryError(SqlrsError):
    """Raised when the block-device listing cannot be parsed."""


class AmbiguousDiskError(InventoryError):
    """Raised when more than one disk matches the requested size."""


class PartitionNotFoundError(InventoryError):
    """Raised when the selected disk has no partition."""


# --- Provisioning ----------------------------------------------------------

class WSLUnavailableError(SqlrsError):
    """Raised when the WSL runtime itself cannot be reached."""


class ProvisioningError(SqlrsError):
    """Raised when a provisioning stage fails.

    The message is prefixed with the stage label
    (e.g. ``"btrfs format failed: ..."``) by the stage guard.
    """


class FilesystemError(ProvisioningError):
    """Raised when a device carries an unexpected filesystem."""


class MountError(ProvisioningError):
    """Raised when a mount unit or a direct mount does not come up."""


class VirtualDiskInUseError(ProvisioningError):
    """Raised when the VHDX is attached to another consumer."""


class PrerequisiteError(ProvisioningError):
    """Raised when a required host tool is missing."""
