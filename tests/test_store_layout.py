"""Tests for store type/path resolution and native planning (core/store_layout.py)."""

from __future__ import annotations

import pytest

from sqlrs.core.models import SnapshotBackend, StorePlan, StoreType
from sqlrs.core.store_layout import (
    parse_store_size_gb,
    plan_store,
    resolve_store_path,
    resolve_store_type,
    should_use_wsl,
)
from sqlrs.exceptions import InvalidArgumentsError

ROOT = "/home/u/.local/state/sqlrs/store"


# ---------------------------------------------------------------------------
# --store-size
# ---------------------------------------------------------------------------

class TestParseStoreSize:
    @pytest.mark.parametrize("value,expected", [("100GB", 100), ("10gb", 10), (" 25 GB ", 25)])
    def test_valid(self, value: str, expected: int) -> None:
        assert parse_store_size_gb(value) == expected

    @pytest.mark.parametrize("value", ["100", "100MB", "GB", "0GB", "-5GB", "tenGB"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(InvalidArgumentsError):
            parse_store_size_gb(value)


# ---------------------------------------------------------------------------
# Type / path resolution
# ---------------------------------------------------------------------------

class TestResolveStoreType:
    def test_explicit_type_wins(self) -> None:
        assert resolve_store_type(SnapshotBackend.AUTO, StoreType.DEVICE, "Linux") is StoreType.DEVICE

    @pytest.mark.parametrize("backend", [SnapshotBackend.COPY, SnapshotBackend.OVERLAY])
    def test_non_btrfs_backends_use_dir(self, backend: SnapshotBackend) -> None:
        assert resolve_store_type(backend, None, "Windows") is StoreType.DIR

    def test_btrfs_on_windows_uses_image(self) -> None:
        assert resolve_store_type(SnapshotBackend.BTRFS, None, "Windows") is StoreType.IMAGE

    def test_btrfs_on_linux_reuses_btrfs_root(self) -> None:
        kind = resolve_store_type(SnapshotBackend.BTRFS, None, "Linux", root_is_btrfs=lambda: True)
        assert kind is StoreType.DIR

    def test_btrfs_on_linux_defaults_to_image(self) -> None:
        assert resolve_store_type(SnapshotBackend.BTRFS, None, "Linux") is StoreType.IMAGE

    def test_auto(self) -> None:
        assert resolve_store_type(SnapshotBackend.AUTO, None, "Windows") is StoreType.IMAGE
        assert resolve_store_type(SnapshotBackend.AUTO, None, "Linux") is StoreType.DIR


class TestResolveStorePath:
    def test_explicit_path(self) -> None:
        assert resolve_store_path(StoreType.IMAGE, " /data/x.img ", ROOT, "Linux") == "/data/x.img"

    def test_dir_default(self) -> None:
        assert resolve_store_path(StoreType.DIR, "", ROOT, "Linux") == ROOT

    def test_image_default_linux(self) -> None:
        assert resolve_store_path(StoreType.IMAGE, "", ROOT, "Linux") == f"{ROOT}/btrfs.img"

    def test_image_default_windows(self) -> None:
        root = r"C:\Users\u\AppData\Local\sqlrs\store"
        assert resolve_store_path(StoreType.IMAGE, "", root, "Windows") == root + r"\btrfs.vhdx"

    def test_device_has_no_default(self) -> None:
        assert resolve_store_path(StoreType.DEVICE, "", ROOT, "Linux") == ""


class TestShouldUseWSL:
    def test_never_off_windows(self) -> None:
        assert should_use_wsl("Linux", SnapshotBackend.BTRFS, StoreType.IMAGE, True) == (False, False)

    def test_btrfs_requires(self) -> None:
        assert should_use_wsl("Windows", SnapshotBackend.BTRFS, StoreType.IMAGE, False) == (True, True)

    def test_auto_implicit_image_is_optional(self) -> None:
        assert should_use_wsl("Windows", SnapshotBackend.AUTO, StoreType.IMAGE, False) == (True, False)

    def test_auto_explicit_image_is_required(self) -> None:
        assert should_use_wsl("Windows", SnapshotBackend.AUTO, StoreType.IMAGE, True) == (True, True)

    def test_auto_dir_skips(self) -> None:
        assert should_use_wsl("Windows", SnapshotBackend.AUTO, StoreType.DIR, True) == (False, False)

    def test_copy_skips(self) -> None:
        assert should_use_wsl("Windows", SnapshotBackend.COPY, StoreType.DIR, False) == (False, False)


# ---------------------------------------------------------------------------
# plan_store
# ---------------------------------------------------------------------------

class TestPlanStore:
    def test_image_file(self) -> None:
        assert plan_store(StoreType.IMAGE, "/data/store/btrfs.img", ROOT) == StorePlan(
            store_dir="/data/store", image_path="/data/store/btrfs.img"
        )

    @pytest.mark.parametrize("name", ["disk.raw", "disk.QCOW2"])
    def test_other_image_suffixes(self, name: str) -> None:
        plan = plan_store(StoreType.IMAGE, f"/data/{name}", ROOT)
        assert plan.store_dir == "/data"
        assert plan.image_path == f"/data/{name}"

    def test_image_directory(self) -> None:
        assert plan_store(StoreType.IMAGE, "/data/store/", ROOT) == StorePlan(
            store_dir="/data/store", image_path="/data/store/btrfs.img"
        )

    def test_relative_image_without_dir(self) -> None:
        with pytest.raises(InvalidArgumentsError):
            plan_store(StoreType.IMAGE, "btrfs.img", ROOT)

    def test_device(self) -> None:
        assert plan_store(StoreType.DEVICE, "/dev/sdb1", ROOT) == StorePlan(
            store_dir=ROOT, device_path="/dev/sdb1"
        )

    def test_device_with_directory_path(self) -> None:
        plan = plan_store(StoreType.DEVICE, "/srv/store", ROOT)
        assert plan == StorePlan(store_dir="/srv/store", image_path="/srv/store.btrfs.img")

    def test_dir(self) -> None:
        assert plan_store(StoreType.DIR, "/var/lib/sqlrs/store", ROOT) == StorePlan(
            store_dir="/var/lib/sqlrs/store", image_path="/var/lib/sqlrs/store.btrfs.img"
        )

    def test_empty_path(self) -> None:
        with pytest.raises(InvalidArgumentsError):
            plan_store(StoreType.DIR, "  ", ROOT)
