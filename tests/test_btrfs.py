"""Tests for btrfs detection, formatting and verification (infra/btrfs.py).

Coverage:
* Mounted-type and signature detection.
* Every row of the ensure_btrfs decision table.
* No mutation of an already-correct device.
* Post-format verification and its probe-mount fallback.
"""

from __future__ import annotations

import pytest

from conftest import FakeClock, ScriptedRunner, fail, missing
from sqlrs.exceptions import CommandError, FilesystemError
from sqlrs.infra.btrfs import BtrfsManager, first_field
from sqlrs.infra.wsl import WSLShell

DEVICE = "/dev/sdc1"


@pytest.fixture()
def manager(runner: ScriptedRunner, clock: FakeClock) -> BtrfsManager:
    return BtrfsManager(WSLShell(runner, "Ubuntu"), clock)


def _unmounted(runner: ScriptedRunner, signature: str | None) -> None:
    runner.on("findmnt", error=fail(1))
    if signature is None:
        runner.on("blkid", "-o", error=fail(2))
    else:
        runner.on("blkid", "-o", output=f"{signature}\n")


def test_first_field() -> None:
    assert first_field("  btrfs extra\n") == "btrfs"
    assert first_field("\n") == ""


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

class TestDetection:
    def test_device_is_looked_up_as_source(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("findmnt", output="btrfs\n")
        assert manager.mounted_fstype(DEVICE) == "btrfs"
        assert runner.calls[0].command == ("findmnt", "-n", "-o", "FSTYPE", "-S", DEVICE)
        assert runner.calls[0].nsenter

    def test_directory_is_looked_up_as_mountpoint(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        manager.mounted_fstype("/home/u/.local/state/sqlrs")
        assert runner.calls[0].command[-2] == "-M"

    def test_not_mounted(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("findmnt", error=fail(1))
        assert manager.mounted_fstype(DEVICE) is None

    def test_findmnt_other_failure_propagates(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("findmnt", error=fail(4, "findmnt: bad usage"))
        with pytest.raises(CommandError):
            manager.mounted_fstype(DEVICE)

    @pytest.mark.parametrize("code", [1, 2])
    def test_blkid_no_signature(self, runner: ScriptedRunner, manager: BtrfsManager, code: int) -> None:
        runner.on("blkid", error=fail(code))
        assert manager.block_fstype(DEVICE) is None


# ---------------------------------------------------------------------------
# ensure_btrfs decision table
# ---------------------------------------------------------------------------

class TestEnsureBtrfs:
    def test_mounted_btrfs_is_untouched(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("findmnt", output="btrfs\n")
        assert manager.ensure_btrfs(DEVICE, allow_format=True) is False
        assert runner.count("mkfs.btrfs") == 0
        assert runner.count("mount") == 0
        assert runner.count("blkid") == 0

    def test_mounted_other_fs_is_rejected(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("findmnt", output="ext4\n")
        with pytest.raises(FilesystemError, match="filesystem is ext4, expected btrfs"):
            manager.ensure_btrfs(DEVICE, allow_format=True)
        assert runner.count("mkfs.btrfs") == 0

    def test_existing_btrfs_signature_is_accepted(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        _unmounted(runner, "btrfs")
        assert manager.ensure_btrfs(DEVICE, allow_format=False) is False
        assert runner.count("mkfs.btrfs") == 0

    def test_other_signature_without_format_is_rejected(
        self, runner: ScriptedRunner, manager: BtrfsManager
    ) -> None:
        _unmounted(runner, "ext4")
        with pytest.raises(FilesystemError, match="filesystem is ext4") as exc_info:
            manager.ensure_btrfs(DEVICE, allow_format=False)
        assert "--reinit" in (exc_info.value.hint or "")
        assert runner.count("mkfs.btrfs") == 0
        assert runner.count("wipefs") == 0

    def test_blank_device_without_format_is_rejected(
        self, runner: ScriptedRunner, manager: BtrfsManager
    ) -> None:
        _unmounted(runner, None)
        with pytest.raises(FilesystemError, match="no filesystem detected"):
            manager.ensure_btrfs(DEVICE, allow_format=False)
        assert runner.count("mkfs.btrfs") == 0

    def test_blank_device_is_formatted(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        _unmounted(runner, None)
        runner.on("blkid", "-c", output="btrfs\n")
        assert manager.ensure_btrfs(DEVICE, allow_format=True) is True
        assert runner.count("mkfs.btrfs", "-f", DEVICE) == 1
        assert runner.count("wipefs") == 0

    def test_other_fs_is_wiped_then_formatted(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        _unmounted(runner, "ext4")
        runner.on("blkid", "-c", output="btrfs\n")
        assert manager.ensure_btrfs(DEVICE, allow_format=True) is True
        assert runner.index("wipefs", "-a", DEVICE) < runner.index("mkfs.btrfs")

    def test_missing_wipefs_is_tolerated(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        _unmounted(runner, "ext4")
        runner.on("wipefs", error=missing("wipefs"))
        runner.on("blkid", "-c", output="btrfs\n")
        assert manager.ensure_btrfs(DEVICE, allow_format=True) is True

    def test_wipefs_failure_propagates(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        _unmounted(runner, "ext4")
        runner.on("wipefs", error=fail(1, "wipefs: device busy"))
        with pytest.raises(CommandError):
            manager.ensure_btrfs(DEVICE, allow_format=True)
        assert runner.count("mkfs.btrfs") == 0


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class TestVerifyFormat:
    def test_retries_until_signature_appears(
        self, runner: ScriptedRunner, manager: BtrfsManager, clock: FakeClock
    ) -> None:
        runner.on("blkid", "-c", output=["", "", "btrfs\n"])
        manager.verify_format(DEVICE)
        assert clock.sleeps == [0.2, 0.2]
        assert runner.count("mount") == 0

    def test_probe_mount_fallback(
        self, runner: ScriptedRunner, manager: BtrfsManager, clock: FakeClock
    ) -> None:
        runner.on("mktemp", output="/tmp/sqlrs-mount-abc\n")
        manager.verify_format(DEVICE)
        assert runner.count("blkid", "-c") == 5
        assert len(clock.sleeps) == 4
        assert runner.count("mount", "-t", "btrfs", DEVICE, "/tmp/sqlrs-mount-abc") == 1
        assert runner.count("umount", "/tmp/sqlrs-mount-abc") == 1
        assert runner.count("rmdir", "/tmp/sqlrs-mount-abc") == 1

    def test_probe_mount_failure(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("mktemp", output="/tmp/sqlrs-mount-abc\n")
        runner.on("mount", error=fail(32, "mount: wrong fs type"))
        with pytest.raises(FilesystemError, match="filesystem verification failed"):
            manager.verify_format(DEVICE)
        assert runner.count("rmdir", "/tmp/sqlrs-mount-abc") == 1

    def test_wrong_type_skips_probe(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        runner.on("blkid", "-c", output="ext4\n")
        with pytest.raises(FilesystemError, match="filesystem verification failed: ext4"):
            manager.verify_format(DEVICE)
        assert runner.count("mktemp") == 0

    def test_empty_probe_dir(self, runner: ScriptedRunner, manager: BtrfsManager) -> None:
        with pytest.raises(FilesystemError):
            manager.verify_format(DEVICE)
