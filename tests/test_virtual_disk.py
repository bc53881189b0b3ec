"""Tests for host-side VHDX management (infra/virtual_disk.py)."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import ScriptedRunner, fail
from sqlrs.core.models import CommandTarget
from sqlrs.exceptions import CommandError, ProvisioningError, VirtualDiskInUseError
from sqlrs.infra.virtual_disk import (
    GIB,
    VirtualDiskManager,
    dismount_script,
    escape_powershell,
    gpt_partition_script,
)


def _script(runner: ScriptedRunner, position: int = -1) -> str:
    return runner.calls[position].command[-1]


class TestScripts:
    def test_escape_single_quotes(self) -> None:
        assert escape_powershell("C:\\Users\\O'Neil\\x.vhdx") == "C:\\Users\\O''Neil\\x.vhdx"

    def test_partition_script_only_detaches_what_it_attached(self) -> None:
        script = gpt_partition_script("C:\\s\\btrfs.vhdx")
        assert "$path = 'C:\\s\\btrfs.vhdx';" in script
        assert "PartitionStyle GPT" in script
        assert "if (-not $attached) { Dismount-VHD" in script

    def test_dismount_script(self) -> None:
        assert "Dismount-VHD" in dismount_script("C:\\s\\btrfs.vhdx")


class TestEnsureVirtualDisk:
    def test_creates_missing_disk(self, runner: ScriptedRunner, tmp_path: Path) -> None:
        path = tmp_path / "store" / "btrfs.vhdx"
        created = VirtualDiskManager(runner).ensure_virtual_disk(str(path), 10)
        assert created is True
        assert path.parent.is_dir()
        call = runner.calls[0]
        assert call.target is CommandTarget.HOST
        assert call.command[:4] == ("powershell", "-NoProfile", "-NonInteractive", "-Command")
        assert f"-SizeBytes {10 * GIB}" in _script(runner)
        assert "-Dynamic" in _script(runner)

    def test_existing_disk_is_reused(self, runner: ScriptedRunner, tmp_path: Path) -> None:
        path = tmp_path / "btrfs.vhdx"
        path.write_bytes(b"")
        assert VirtualDiskManager(runner).ensure_virtual_disk(str(path), 10) is False
        assert runner.calls == []

    def test_empty_path(self, runner: ScriptedRunner) -> None:
        with pytest.raises(ProvisioningError, match="vhdx path is empty"):
            VirtualDiskManager(runner).ensure_virtual_disk("", 10)

    def test_creation_failure(self, runner: ScriptedRunner, tmp_path: Path) -> None:
        runner.on("powershell", error=fail(1, "New-VHD: not recognized"))
        with pytest.raises(CommandError):
            VirtualDiskManager(runner).ensure_virtual_disk(str(tmp_path / "x.vhdx"), 10)


class TestPartitionAndAttach:
    def test_in_use_maps_to_typed_error(self, runner: ScriptedRunner) -> None:
        runner.on("powershell", error=fail(1, "Mount-VHD : ObjectInUse"))
        with pytest.raises(VirtualDiskInUseError) as exc_info:
            VirtualDiskManager(runner).ensure_gpt_partition("C:\\s\\btrfs.vhdx")
        assert "--reinit" in (exc_info.value.hint or "")

    def test_other_partition_failure(self, runner: ScriptedRunner) -> None:
        runner.on("powershell", error=fail(1, "Access denied"))
        with pytest.raises(CommandError):
            VirtualDiskManager(runner).ensure_gpt_partition("C:\\s\\btrfs.vhdx")

    def test_attach_bare(self, runner: ScriptedRunner) -> None:
        VirtualDiskManager(runner).attach_to_wsl("C:\\s\\btrfs.vhdx")
        assert runner.commands() == [("wsl.exe", "--mount", "C:\\s\\btrfs.vhdx", "--vhd", "--bare")]


class TestDetachAndDelete:
    def test_removes_file_even_if_detach_fails(self, runner: ScriptedRunner, tmp_path: Path) -> None:
        path = tmp_path / "btrfs.vhdx"
        path.write_bytes(b"x")
        runner.on("wsl.exe", error=fail(1, "not mounted"))
        runner.on("powershell", error=fail(1))
        VirtualDiskManager(runner).detach_and_delete(str(path))
        assert not path.exists()
        assert runner.count("wsl.exe", "--unmount", str(path)) == 1

    def test_missing_file_is_fine(self, runner: ScriptedRunner, tmp_path: Path) -> None:
        VirtualDiskManager(runner).detach_and_delete(str(tmp_path / "gone.vhdx"))


class TestIsElevated:
    @pytest.mark.parametrize("output,expected", [("True\r\n", True), ("False\n", False), ("", False)])
    def test_parses_output(self, runner: ScriptedRunner, output: str, expected: bool) -> None:
        runner.on("powershell", output=output)
        assert VirtualDiskManager(runner).is_elevated() is expected
        assert runner.calls[0].timeout == 5.0
