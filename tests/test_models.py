"""Tests for domain models (core/models.py).

All models are frozen dataclasses; these tests cover immutability,
defaults and the deterministic mount-unit rendering.
"""

from __future__ import annotations

import dataclasses

import pytest

from sqlrs.core.models import (
    DEFAULT_STORE_SIZE_GB,
    MountUnit,
    ProvisionResult,
    SnapshotBackend,
    StoreRequest,
    StoreType,
)


def _make_request(**overrides: object) -> StoreRequest:
    defaults: dict[str, object] = {
        "snapshot_backend": SnapshotBackend.BTRFS,
        "store_type": StoreType.IMAGE,
    }
    defaults.update(overrides)
    return StoreRequest(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# StoreRequest
# ---------------------------------------------------------------------------

class TestStoreRequest:
    def test_effective_size_defaults(self) -> None:
        assert _make_request().effective_size_gb == DEFAULT_STORE_SIZE_GB
        assert _make_request(size_gb=-1).effective_size_gb == DEFAULT_STORE_SIZE_GB

    def test_effective_size_explicit(self) -> None:
        assert _make_request(size_gb=20).effective_size_gb == 20

    def test_frozen(self) -> None:
        req = _make_request()
        with pytest.raises(dataclasses.FrozenInstanceError):
            req.reinit = True  # type: ignore[misc]

    def test_replace_keeps_other_fields(self) -> None:
        req = _make_request(store_path="/data/x.img", size_gb=5)
        strict = dataclasses.replace(req, require=True)
        assert strict.require
        assert strict.store_path == "/data/x.img"
        assert not req.require

    def test_enum_values_are_strings(self) -> None:
        assert SnapshotBackend("overlay") is SnapshotBackend.OVERLAY
        assert StoreType.DEVICE == "device"


class TestProvisionResult:
    def test_fallback_defaults(self) -> None:
        result = ProvisionResult(use_store=False)
        assert result.store_path is None
        assert result.mount_device_uuid is None
        assert result.warning == ""


# ---------------------------------------------------------------------------
# MountUnit
# ---------------------------------------------------------------------------

class TestMountUnit:
    def _unit(self) -> MountUnit:
        return MountUnit(
            name="home-u-.local-state-sqlrs.mount",
            what="/dev/disk/by-uuid/1234",
            where="/home/u/.local/state/sqlrs",
        )

    def test_path_under_systemd_dir(self) -> None:
        assert self._unit().path == "/etc/systemd/system/home-u-.local-state-sqlrs.mount"

    def test_render_sections(self) -> None:
        text = self._unit().render()
        assert text.startswith("[Unit]\n")
        assert "What=/dev/disk/by-uuid/1234\n" in text
        assert "Where=/home/u/.local/state/sqlrs\n" in text
        assert "Type=btrfs\n" in text
        assert "WantedBy=multi-user.target" in text
        assert text.endswith("\n")

    def test_render_is_deterministic(self) -> None:
        assert self._unit().render() == self._unit().render()

    def test_empty_fstype_renders_btrfs(self) -> None:
        unit = dataclasses.replace(self._unit(), fstype="")
        assert "Type=btrfs\n" in unit.render()
