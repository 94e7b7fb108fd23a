"""
Tests for aggregate-size log rotation.

Files are created sparse so multi-megabyte sizes cost nothing on disk.
"""

import os
from datetime import datetime, timezone

import pytest

from pi_governor.storage import LogRotator, collect_log_files, is_log_file
from pi_governor.storage.log_rotation import rotated_name, rotation_stamp

MIB = 1024 * 1024
FIXED_MOMENT = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


def make_log(directory, name, size, mtime):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    with open(path, "wb") as f:
        f.truncate(size)
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def rotator(tmp_path):
    return LogRotator(
        [str(tmp_path / "app"), str(tmp_path / "system")],
        max_size=100 * MIB,
        clock=lambda: FIXED_MOMENT,
    )


class TestLogFileMatching:

    @pytest.mark.parametrize(
        "name, expected",
        [("governor.log", True), ("syslog", True), ("log.1", True), ("data.txt", False), ("cache.meta", False)],
    )
    def test_is_log_file(self, name, expected):
        assert is_log_file(name) == expected

    def test_collect_skips_missing_directories_and_subdirs(self, tmp_path):
        make_log(tmp_path / "app", "b.log", 10, 100)
        make_log(tmp_path / "app", "a.log", 10, 200)
        (tmp_path / "app" / "old.log").mkdir()

        records = collect_log_files([tmp_path / "missing", tmp_path / "app"])

        assert [r.path.name for r in records] == ["a.log", "b.log"]

    def test_rotation_stamp_is_filename_safe(self):
        stamp = rotation_stamp(FIXED_MOMENT)
        assert stamp == "2024-01-02T03-04-05-678Z"
        assert ":" not in stamp

    def test_rotated_name_keeps_suffix(self, tmp_path):
        assert rotated_name(tmp_path / "app.log", "S").name == "app.S.log"
        assert rotated_name(tmp_path / "syslog", "S").name == "syslog.S"


class TestRotation:

    def test_under_bound_is_skipped(self, tmp_path, rotator):
        make_log(tmp_path / "app", "a.log", 40 * MIB, 100)
        make_log(tmp_path / "system", "b.log", 30 * MIB, 200)

        result = rotator.rotate()

        assert result.skipped
        assert result.total_size_before == 70 * MIB
        assert (tmp_path / "app" / "a.log").exists()

    def test_exactly_at_bound_is_skipped(self, tmp_path, rotator):
        make_log(tmp_path / "app", "a.log", 100 * MIB, 100)
        assert rotator.rotate().skipped

    def test_oldest_deleted_until_within_bound(self, tmp_path, rotator):
        oldest = make_log(tmp_path / "system", "a.log", 40 * MIB, 100)
        middle = make_log(tmp_path / "app", "b.log", 40 * MIB, 200)
        newest = make_log(tmp_path / "app", "c.log", 30 * MIB, 300)

        result = rotator.rotate()

        assert not result.skipped
        assert result.total_size_before == 110 * MIB
        assert result.removed_files == [str(oldest)]
        assert result.removed_size == 40 * MIB
        assert result.total_size_after == 70 * MIB
        assert result.total_size_after <= rotator.max_size
        assert not oldest.exists()

        # survivors above a tenth of the bound are renamed, content kept
        stamp = rotation_stamp(FIXED_MOMENT)
        assert sorted(result.rotated_files) == sorted(
            [str(rotated_name(middle, stamp)), str(rotated_name(newest, stamp))]
        )
        assert not middle.exists()
        assert os.path.getsize(rotated_name(middle, stamp)) == 40 * MIB

    def test_second_rotation_is_a_no_op(self, tmp_path, rotator):
        make_log(tmp_path / "system", "a.log", 40 * MIB, 100)
        make_log(tmp_path / "app", "b.log", 40 * MIB, 200)
        make_log(tmp_path / "app", "c.log", 30 * MIB, 300)
        assert not rotator.rotate().skipped
        files_after_first = sorted(p for p in tmp_path.rglob("*") if p.is_file())

        second = rotator.rotate()

        assert second.skipped
        assert second.removed_files == []
        assert second.rotated_files == []
        assert second.total_size_before == second.total_size_after == 70 * MIB
        assert sorted(p for p in tmp_path.rglob("*") if p.is_file()) == files_after_first

    def test_small_survivors_are_not_renamed(self, tmp_path, rotator):
        make_log(tmp_path / "app", "big.log", 95 * MIB, 100)
        small = make_log(tmp_path / "app", "small.log", 5 * MIB, 200)
        make_log(tmp_path / "system", "tiny.log", 1 * MIB, 300)

        result = rotator.rotate()

        assert result.removed_size == 95 * MIB
        assert result.rotated_files == []
        assert small.exists()

    def test_equal_mtimes_follow_scan_order(self, tmp_path, rotator):
        first = make_log(tmp_path / "app", "a.log", 60 * MIB, 100)
        second = make_log(tmp_path / "app", "b.log", 60 * MIB, 100)

        result = rotator.rotate()

        assert result.removed_files == [str(first)]
        assert not first.exists()
        assert result.total_size_after == 60 * MIB
        assert not second.exists()  # renamed, not deleted
        assert len(result.rotated_files) == 1

    def test_current_size_counts_all_directories(self, tmp_path, rotator):
        make_log(tmp_path / "app", "a.log", 3 * MIB, 100)
        make_log(tmp_path / "system", "b.log", 2 * MIB, 100)
        assert rotator.current_size() == 5 * MIB
