"""Tests for block-device inventory parsing and selection (core/inventory.py).

Coverage:
* Listing parsing, header skipping, tree-prefix stripping.
* Parse failures (bad size, empty listing).
* Size tolerance window.
* Disk selection: none / unique / ambiguous.
* Partition selection: largest child wins, none is an error.
"""

from __future__ import annotations

import pytest

from sqlrs.core.inventory import (
    MIN_SIZE_TOLERANCE,
    clean_device_name,
    parse_inventory,
    select_disk_by_size,
    select_partition,
    size_tolerance,
)
from sqlrs.core.models import BlockDeviceEntry
from sqlrs.exceptions import AmbiguousDiskError, InventoryError, PartitionNotFoundError

GIB = 1024 * 1024 * 1024


def _disk(name: str, size: int) -> BlockDeviceEntry:
    return BlockDeviceEntry(name=name, size_bytes=size, type="disk")


def _part(name: str, size: int, parent: str) -> BlockDeviceEntry:
    return BlockDeviceEntry(name=name, size_bytes=size, type="part", parent_name=parent)


# ---------------------------------------------------------------------------
# parse_inventory
# ---------------------------------------------------------------------------

class TestParseInventory:
    def test_parses_raw_listing(self) -> None:
        output = "sda 107374182400 disk\nsda1 107373133824 part sda\n"
        entries = parse_inventory(output)
        assert entries == [
            _disk("sda", 107374182400),
            _part("sda1", 107373133824, "sda"),
        ]

    def test_skips_header_and_short_lines(self) -> None:
        output = "NAME SIZE TYPE PKNAME\n\nsdb 42\nsdc 1024 disk\n"
        assert parse_inventory(output) == [_disk("sdc", 1024)]

    def test_strips_tree_prefixes(self) -> None:
        output = "sdd 2048 disk\n├─sdd1 1024 part sdd\n└─sdd2 512 part sdd\n"
        names = [entry.name for entry in parse_inventory(output)]
        assert names == ["sdd", "sdd1", "sdd2"]

    def test_invalid_size_fails_whole_parse(self) -> None:
        with pytest.raises(InventoryError, match="invalid size"):
            parse_inventory("sda 100 disk\nsdb huge disk\n")

    def test_empty_listing_fails(self) -> None:
        with pytest.raises(InventoryError):
            parse_inventory("NAME SIZE TYPE PKNAME\n")

    def test_clean_device_name(self) -> None:
        assert clean_device_name("│ └─sde1") == "sde1"


# ---------------------------------------------------------------------------
# Tolerance
# ---------------------------------------------------------------------------

class TestSizeTolerance:
    def test_small_targets_use_floor(self) -> None:
        assert size_tolerance(1 * GIB) == MIN_SIZE_TOLERANCE

    def test_large_targets_use_one_percent(self) -> None:
        assert size_tolerance(100 * GIB) == 100 * GIB // 100

    def test_non_positive_target(self) -> None:
        assert size_tolerance(0) == MIN_SIZE_TOLERANCE


# ---------------------------------------------------------------------------
# select_disk_by_size
# ---------------------------------------------------------------------------

class TestSelectDiskBySize:
    def test_none_when_nothing_matches(self) -> None:
        entries = [_disk("sda", 256 * GIB), _disk("sdb", 1 * GIB)]
        assert select_disk_by_size(entries, 100 * GIB) is None

    def test_unique_match_within_tolerance(self) -> None:
        entries = [_disk("sda", 256 * GIB), _disk("sdc", 100 * GIB - 5 * 1024 * 1024)]
        assert select_disk_by_size(entries, 100 * GIB) == "sdc"

    def test_partitions_are_not_candidates(self) -> None:
        entries = [_part("sda1", 100 * GIB, "sda")]
        assert select_disk_by_size(entries, 100 * GIB) is None

    def test_just_outside_tolerance(self) -> None:
        target = 100 * GIB
        entries = [_disk("sdc", target + size_tolerance(target) + 1)]
        assert select_disk_by_size(entries, target) is None

    def test_two_matches_are_ambiguous(self) -> None:
        entries = [_disk("sdc", 100 * GIB), _disk("sdd", 100 * GIB + 1024)]
        with pytest.raises(AmbiguousDiskError, match="multiple disks match") as exc_info:
            select_disk_by_size(entries, 100 * GIB)
        assert "sdc" in str(exc_info.value)
        assert "sdd" in str(exc_info.value)


# ---------------------------------------------------------------------------
# select_partition
# ---------------------------------------------------------------------------

class TestSelectPartition:
    def test_largest_child_wins(self) -> None:
        entries = [
            _disk("sdc", 100 * GIB),
            _part("sdc1", 16 * 1024 * 1024, "sdc"),
            _part("sdc2", 99 * GIB, "sdc"),
            _part("sdd1", 200 * GIB, "sdd"),
        ]
        assert select_partition(entries, "sdc") == "sdc2"

    def test_no_child_is_error(self) -> None:
        entries = [_disk("sdc", 100 * GIB), _part("sdd1", GIB, "sdd")]
        with pytest.raises(PartitionNotFoundError):
            select_partition(entries, "sdc")
