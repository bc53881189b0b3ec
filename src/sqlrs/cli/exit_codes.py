"""Exit-code constants used by the CLI layer.

Values follow the workspace conventions of ``sqlrs init`` and the BSD
``sysexits.h`` codes for usage/internal errors.
"""

from __future__ import annotations

SUCCESS: int = 0

GENERAL_ERROR: int = 1
"""A provisioning or other known :class:`SqlrsError` failure."""

NESTED_WORKSPACE: int = 2
"""The target lies inside another workspace and ``--force`` was not given."""

CONFIG_CORRUPTED: int = 3

IO_ERROR: int = 4
"""The workspace directory or config file could not be created/written."""

USAGE: int = 64
"""Invalid flag combination (``EX_USAGE``)."""

UNEXPECTED_ERROR: int = 70
"""An unhandled exception escaped every known boundary (``EX_SOFTWARE``)."""

KEYBOARD_INTERRUPT: int = 130
"""User pressed Ctrl+C.  Follows POSIX convention (128 + SIGINT=2)."""
