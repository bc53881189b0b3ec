"""Platform directory resolution.

Linux and other Unixes follow XDG, macOS uses ``~/Library/Application
Support``, Windows uses ``%APPDATA%``/``%LOCALAPPDATA%``.  Every
function takes the platform name and environment explicitly so the
whole matrix is testable from one host.
"""

from __future__ import annotations

import ntpath
import os
import platform
import posixpath
from collections.abc import Mapping
from dataclasses import dataclass

from sqlrs.core.store_layout import WINDOWS_IMAGE_NAME

APP_NAME: str = "sqlrs"
STORE_ENV: str = "SQLRS_STATE_STORE"
WORKSPACE_DIR: str = ".sqlrs"
CONFIG_FILE: str = "config.yaml"


@dataclass(frozen=True, slots=True)
class Dirs:
    """Per-user sqlrs directories."""

    config_dir: str
    state_dir: str
    cache_dir: str


def resolve_dirs(
    system: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: str | None = None,
) -> Dirs:
    """Return the sqlrs config/state/cache directories for *system*."""
    system = system or platform.system()
    env = os.environ if environ is None else environ
    home = home or os.path.expanduser("~")

    if system == "Windows":
        app_data = env.get("APPDATA") or ntpath.join(home, "AppData", "Roaming")
        local = env.get("LOCALAPPDATA") or ntpath.join(home, "AppData", "Local")
        return Dirs(
            config_dir=ntpath.join(app_data, APP_NAME),
            state_dir=ntpath.join(local, APP_NAME),
            cache_dir=ntpath.join(local, APP_NAME),
        )
    if system == "Darwin":
        base = posixpath.join(home, "Library", "Application Support", APP_NAME)
        return Dirs(
            config_dir=posixpath.join(base, "config"),
            state_dir=posixpath.join(base, "state"),
            cache_dir=posixpath.join(base, "cache"),
        )

    config_home = env.get("XDG_CONFIG_HOME") or posixpath.join(home, ".config")
    state_home = env.get("XDG_STATE_HOME") or posixpath.join(home, ".local", "state")
    cache_home = env.get("XDG_CACHE_HOME") or posixpath.join(home, ".cache")
    return Dirs(
        config_dir=posixpath.join(config_home, APP_NAME),
        state_dir=posixpath.join(state_home, APP_NAME),
        cache_dir=posixpath.join(cache_home, APP_NAME),
    )


def default_store_root(
    system: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: str | None = None,
) -> str:
    """``$SQLRS_STATE_STORE`` or ``<state dir>/store``."""
    env = os.environ if environ is None else environ
    override = env.get(STORE_ENV, "").strip()
    if override:
        return override
    system = system or platform.system()
    join = ntpath.join if system == "Windows" else posixpath.join
    return join(resolve_dirs(system, env, home).state_dir, "store")


def host_vhdx_path(environ: Mapping[str, str] | None = None, home: str | None = None) -> str:
    """Default VHDX location on a Windows host."""
    env = os.environ if environ is None else environ
    store_dir = env.get(STORE_ENV, "").strip()
    if not store_dir:
        local = env.get("LOCALAPPDATA") or ntpath.join(
            home or os.path.expanduser("~"), "AppData", "Local"
        )
        store_dir = ntpath.join(local, APP_NAME, "store")
    return ntpath.join(store_dir, WINDOWS_IMAGE_NAME)


def workspace_marker(workspace: str) -> str:
    return os.path.join(workspace, WORKSPACE_DIR)


def workspace_config_path(workspace: str) -> str:
    return os.path.join(workspace, WORKSPACE_DIR, CONFIG_FILE)


def has_parent_workspace(target: str) -> bool:
    """Return whether any ancestor of *target* already holds ``.sqlrs``."""
    current = os.path.dirname(target)
    while True:
        if os.path.isdir(workspace_marker(current)):
            return True
        parent = os.path.dirname(current)
        if parent == current:
            return False
        current = parent
