"""Classification of external-command failures.

The tools driven by provisioning (``umount``, ``findmnt``, ``stat``,
PowerShell, ``wsl.exe``) give no structured error codes beyond the exit
status, so classification falls back to message text.  This module is
the **only** place that matches on error text; everything else asks
:func:`classify` and branches on :class:`FailureKind`.
"""

from __future__ import annotations

from sqlrs.core.models import FailureKind
from sqlrs.exceptions import CommandError

# Checked in declaration order; the first matching kind wins.
_TOOL_MISSING_SIGNALS: tuple[str, ...] = (
    "command not found",
    "executable file not found",
)

_DEVICE_BUSY_SIGNALS: tuple[str, ...] = (
    "objectinuse",
    "in use by another process",
    "0x80070020",
)

_ALREADY_UNMOUNTED_SIGNALS: tuple[str, ...] = (
    "not mounted",
)

_ABSENT_SIGNALS: tuple[str, ...] = (
    "no such file",
    "cannot stat",
    "not a mountpoint",
)


def classify(error: BaseException) -> FailureKind:
    """Map a raw command failure to a :class:`FailureKind`."""
    returncode = error.returncode if isinstance(error, CommandError) else None
    text = str(error).lower()

    if returncode == 127 or _contains_any(text, _TOOL_MISSING_SIGNALS):
        return FailureKind.TOOL_MISSING
    if _contains_any(text, _DEVICE_BUSY_SIGNALS):
        return FailureKind.DEVICE_BUSY
    if returncode == 32 or _contains_any(text, _ALREADY_UNMOUNTED_SIGNALS):
        return FailureKind.ALREADY_UNMOUNTED
    if returncode == 1 or _contains_any(text, _ABSENT_SIGNALS):
        return FailureKind.ABSENT
    return FailureKind.OTHER


def _contains_any(text: str, signals: tuple[str, ...]) -> bool:
    return any(signal in text for signal in signals)
