"""Tests for TieredCache placement, lookup order and expiry."""

import json

import pytest

from pi_governor.storage import TieredCache
from pi_governor.storage.tiered_cache import (
    EXTERNAL_CACHE_DIRNAME,
    LARGE_ENTRY_BYTES,
    SMALL_ENTRY_BYTES,
    safe_key,
)

from tests.utils import FakeClock, RecordingRunner

MIB = 1024 * 1024


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return TieredCache(
        disk_dirs=[str(tmp_path / "disk")],
        ram_dir=str(tmp_path / "ram"),
        scan_block_devices=False,
        clock=clock,
    )


class TestPlacement:

    def test_small_entries_go_to_ram(self, cache, tmp_path):
        assert cache.get_optimal_cache_path(SMALL_ENTRY_BYTES - 1) == tmp_path / "ram"

    def test_medium_entries_go_to_disk(self, cache, tmp_path):
        assert cache.get_optimal_cache_path(SMALL_ENTRY_BYTES) == tmp_path / "disk"
        assert cache.get_optimal_cache_path(LARGE_ENTRY_BYTES + 1) == tmp_path / "disk"

    def test_large_entries_go_to_external_when_present(self, cache, tmp_path):
        usb = tmp_path / "usb"
        usb.mkdir()
        cache.external_paths = [usb]
        assert cache.get_optimal_cache_path(LARGE_ENTRY_BYTES + 1) == usb / EXTERNAL_CACHE_DIRNAME

    def test_without_ram_dir_small_entries_use_disk(self, tmp_path):
        cache = TieredCache([str(tmp_path / "disk")], scan_block_devices=False)
        assert cache.get_optimal_cache_path(10) == tmp_path / "disk"

    def test_lookup_order(self, cache, tmp_path):
        cache.external_paths = [tmp_path / "usb"]
        assert cache.roots() == [tmp_path / "ram", tmp_path / "disk", tmp_path / "usb" / EXTERNAL_CACHE_DIRNAME]

    def test_requires_disk_dir(self):
        with pytest.raises(ValueError):
            TieredCache([])


class TestReadWrite:

    def test_put_then_get(self, cache, tmp_path):
        path = cache.put("thumb/1", b"pixels")

        assert path == tmp_path / "ram" / "thumb_1.cache"
        assert cache.get("thumb/1") == b"pixels"
        meta = json.loads((tmp_path / "ram" / "thumb_1.meta").read_text())
        assert meta["key"] == "thumb/1"
        assert meta["size"] == 6

    def test_expired_entries_are_removed_on_read(self, cache, clock, tmp_path):
        cache.put("k", b"v", ttl_seconds=10)
        clock.advance(10)

        assert cache.get("k") is None
        assert not (tmp_path / "ram" / "k.cache").exists()

    def test_get_falls_through_tiers(self, cache, tmp_path):
        disk = tmp_path / "disk"
        cache.put("big", b"x" * SMALL_ENTRY_BYTES)
        assert (disk / "big.cache").exists()
        assert cache.get("big") == b"x" * SMALL_ENTRY_BYTES

    def test_update_moving_tiers_replaces_old_copy(self, cache, tmp_path):
        cache.put("k", b"old")
        cache.put("k", b"n" * (2 * MIB))

        assert cache.get("k") == b"n" * (2 * MIB)
        assert not (tmp_path / "ram" / "k.cache").exists()
        assert not (tmp_path / "ram" / "k.meta").exists()

        cache.put("k", b"small again")
        assert cache.get("k") == b"small again"
        assert not (tmp_path / "disk" / "k.cache").exists()

    def test_corrupt_metadata_treated_as_miss(self, cache, tmp_path):
        cache.put("k", b"v")
        (tmp_path / "ram" / "k.meta").write_text("{not json")
        assert cache.get("k") is None

    def test_unwritable_ram_tier_falls_back_to_disk(self, tmp_path):
        blocker = tmp_path / "ram"
        blocker.write_text("file, not directory")
        cache = TieredCache([str(tmp_path / "disk")], ram_dir=str(blocker), scan_block_devices=False)

        path = cache.put("k", b"v")

        assert path == tmp_path / "disk" / "k.cache"

    def test_delete_and_purge(self, cache, clock):
        cache.put("a", b"1", ttl_seconds=5)
        cache.put("b", b"2", ttl_seconds=100)
        assert cache.delete("b") == 2

        clock.advance(6)
        assert cache.purge_expired() == 2
        assert cache.usage() == 0

    @pytest.mark.parametrize("key, expected", [("a b", "a_b"), ("../etc", ".._etc"), ("ok-1.x", "ok-1.x")])
    def test_safe_key(self, key, expected):
        assert safe_key(key) == expected

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            safe_key("")


class TestExternalDetection:

    def test_writable_candidates_are_accepted(self, tmp_path):
        usb = tmp_path / "usb"
        usb.mkdir()
        cache = TieredCache(
            [str(tmp_path / "disk")],
            external_candidates=[str(usb), str(tmp_path / "absent")],
            scan_block_devices=False,
        )

        assert cache.detect_external_storage() == [usb]
        assert list(usb.iterdir()) == []

    def test_usb_mountpoints_from_lsblk(self, tmp_path):
        usb = tmp_path / "media" / "usb0"
        usb.mkdir(parents=True)
        listing = {
            "blockdevices": [
                {"name": "mmcblk0", "mountpoint": None, "children": [{"name": "p1", "mountpoint": "/"}]},
                {"name": "sda", "mountpoint": None, "children": [{"name": "sda1", "mountpoint": str(usb)}]},
            ]
        }
        runner = RecordingRunner({"lsblk": json.dumps(listing)})
        cache = TieredCache([str(tmp_path / "disk")], runner=runner)

        assert cache.detect_external_storage() == [usb]
        assert runner.commands[0][0] == "lsblk"

    def test_lsblk_failure_means_no_external(self, tmp_path):
        cache = TieredCache([str(tmp_path / "disk")], runner=RecordingRunner(fail=True))
        assert cache.detect_external_storage() == []
