"""Subvolume and ownership finalization of a mounted btrfs store."""

from __future__ import annotations

import logging
import posixpath

from sqlrs.core.failures import classify
from sqlrs.core.models import FailureKind
from sqlrs.core.protocols import Shell
from sqlrs.exceptions import CommandError

log = logging.getLogger(__name__)

SUBVOLUMES: tuple[str, ...] = ("@instances", "@states")
"""Namespace subvolumes the engine expects at the store root."""


def ensure_subvolumes(shell: Shell, state_dir: str) -> list[str]:
    """Create missing subvolumes under *state_dir*; return those created."""
    created: list[str] = []
    for name in SUBVOLUMES:
        target = posixpath.join(state_dir, name)
        try:
            shell.run_in_init_namespace("check path", "stat", target)
        except CommandError as exc:
            if classify(exc) is not FailureKind.ABSENT:
                raise
        else:
            continue
        shell.run_in_init_namespace(
            "create subvolume", "btrfs", "subvolume", "create", target
        )
        log.debug("created subvolume %s", target)
        created.append(target)
    return created


def ensure_ownership(shell: Shell, state_dir: str, owner: str) -> None:
    """Recursively hand *state_dir* to *owner* (``user[:group]``)."""
    shell.run_in_init_namespace("chown store", "chown", "-R", owner, state_dir)


def resolve_wsl_owner(shell: Shell) -> str:
    """Return ``user:group`` of the distro's default user.

    The group is optional: if ``id -gn`` fails the bare user is used.
    """
    user = shell.run("resolve WSL user", "id", "-un").strip()
    if not user:
        raise CommandError("resolve WSL user", "WSL user is empty")
    try:
        group = shell.run("resolve WSL group", "id", "-gn").strip()
    except CommandError as exc:
        log.debug("group lookup failed, chowning to user only: %s", exc)
        return user
    return f"{user}:{group}" if group else user
