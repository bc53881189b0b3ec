"""Workspace ``config.yaml`` handling (PyYAML).

The workspace file is a free-form mapping; ``sqlrs init`` only owns
the keys it writes and preserves everything else on ``--update``.
"""

from __future__ import annotations

import copy
import os
import tempfile
from collections.abc import Sequence
from typing import Any

import yaml

from sqlrs.core.models import ProvisionResult
from sqlrs.exceptions import ConfigError

CONFIG_MODE: int = 0o600

DEFAULT_CONFIG: dict[str, Any] = {
    "client": {"timeout": "30s", "retries": 1, "output": "human"},
    "orchestrator": {"startupTimeout": "5s", "idleTimeout": "120s"},
    "snapshot": {"backend": "auto"},
    "engine": {"storePath": None},
}


def default_config() -> dict[str, Any]:
    """Return a fresh deep copy of :data:`DEFAULT_CONFIG`."""
    return copy.deepcopy(DEFAULT_CONFIG)


def validate_config(path: str) -> None:
    """Raise :class:`ConfigError` unless *path* holds parseable YAML."""
    try:
        with open(path, encoding="utf-8") as handle:
            yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(str(exc)) from exc


def read_config_map(path: str) -> dict[str, Any]:
    """Load *path* as a mapping; an empty file yields ``{}``.

    Raises
    ------
    ConfigError
        When the file is unreadable, invalid, or not a mapping.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    return data


def set_nested(root: dict[str, Any], keys: Sequence[str], value: Any) -> None:
    """Assign *value* at the dotted path *keys*, replacing non-mapping nodes."""
    current = root
    for key in keys[:-1]:
        node = current.get(key)
        if not isinstance(node, dict):
            node = {}
            current[key] = node
        current = node
    current[keys[-1]] = value


def build_workspace_config(
    *,
    snapshot: str,
    store_path: str,
    wsl_result: ProvisionResult | None = None,
    wsl_mode: str = "auto",
    distro: str = "",
    base: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge the ``init`` outcome into *base* (or the defaults)."""
    cfg = base if base is not None else default_config()
    if snapshot:
        set_nested(cfg, ("snapshot", "backend"), snapshot)
    if store_path:
        set_nested(cfg, ("engine", "storePath"), store_path)

    if wsl_result is not None:
        set_nested(cfg, ("engine", "wsl", "mode"), wsl_mode or "auto")
        name = wsl_result.distro or distro
        if name:
            set_nested(cfg, ("engine", "wsl", "distro"), name)
        mount_keys = (
            (("stateDir",), wsl_result.state_dir),
            (("mount", "device"), wsl_result.mount_device),
            (("mount", "fstype"), wsl_result.mount_fstype),
            (("mount", "deviceUUID"), wsl_result.mount_device_uuid),
            (("mount", "unit"), wsl_result.mount_unit),
        )
        for keys, value in mount_keys:
            if value:
                set_nested(cfg, ("engine", "wsl", *keys), value)
        if wsl_result.store_path:
            set_nested(cfg, ("engine", "storePath"), wsl_result.store_path)
    return cfg


def dump_config(cfg: dict[str, Any]) -> str:
    text = yaml.safe_dump(cfg, sort_keys=False, default_flow_style=False)
    return text if text.endswith("\n") else text + "\n"


def atomic_write(path: str, data: str, mode: int = CONFIG_MODE) -> None:
    """Write *data* to *path* through a temp file and :func:`os.replace`.

    Raises
    ------
    OSError
        When the directory is not writable.
    """
    directory = os.path.dirname(path) or "."
    fd, tmp = tempfile.mkstemp(prefix=".config-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.remove(tmp)
        except FileNotFoundError:
            pass
        raise
