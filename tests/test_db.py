import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from lbstore.db import DatabaseClosedError, Db, KeyNotFoundError
from lbstore.entry import Entry

TEST_SEGMENT_SIZE = 45
SMALL_SEGMENT_SIZE = 35

PAIRS = [("1", "v1"), ("2", "v2"), ("3", "v3")]


def test_put_get_duplicates_and_recovery(tmp_path):
    db = Db(tmp_path, TEST_SEGMENT_SIZE)
    with open(tmp_path / "current-data0", "rb") as first_segment:
        for key, value in PAIRS:
            db.put(key, value)
            assert db.get(key) == value

        initial_size = os.fstat(first_segment.fileno()).st_size
        assert initial_size == 35

        for key, value in PAIRS:
            db.put(key, value)
        assert os.fstat(first_segment.fileno()).st_size == initial_size

    db.close()

    with Db(tmp_path, 10) as recovered:
        for key, value in PAIRS:
            assert recovered.get(key) == value


def test_segmentation_and_compaction(tmp_path):
    with Db(tmp_path, SMALL_SEGMENT_SIZE) as db:
        db.put("1", "v1")
        db.put("2", "v2")
        db.put("3", "v3")
        db.put("2", "v5")
        assert len(db.segments) >= 2

        db.put("4", "v4")
        db.put("5", "v5")
        db.put("6", "v6")
        assert len(db.segments) == 2

        assert db.get("2") == "v5"
        for key, value in [("1", "v1"), ("3", "v3"), ("4", "v4"), ("6", "v6")]:
            assert db.get(key) == value

        assert os.path.getsize(db.segments[0].path) > 0


def test_compaction_keeps_only_latest_values(tmp_path):
    with Db(tmp_path, SMALL_SEGMENT_SIZE) as db:
        for value in ["a1", "a2", "a3", "a4"]:
            db.put("k", value)
        compacted = db.segments[0]
        assert len(compacted.index) == 1
        assert db.get("k") == "a4"


def test_values_survive_restart_after_compaction(tmp_path):
    with Db(tmp_path, SMALL_SEGMENT_SIZE) as db:
        for value in ["x1", "x2", "x3", "x4", "x5"]:
            db.put("k", value)
    with Db(tmp_path, 1000) as db:
        assert db.get("k") == "x5"
        db.put("k", "x6")
    with Db(tmp_path, 1000) as db:
        assert db.get("k") == "x6"


def test_sequential_put_then_parallel_get(tmp_path):
    with Db(tmp_path, 1000) as db:
        for i in range(50):
            db.put(f"key_{i}", f"value_{i}")
        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(lambda i: db.get(f"key_{i}"), range(50)))
        assert results == [f"value_{i}" for i in range(50)]


def test_parallel_writes_to_different_keys(tmp_path):
    with Db(tmp_path, 1000) as db:

        def worker(worker_id):
            for j in range(10):
                db.put(f"worker_{worker_id}_key_{j}", f"worker_{worker_id}_value_{j}")

        with ThreadPoolExecutor(max_workers=5) as pool:
            list(pool.map(worker, range(5)))

        for worker_id in range(5):
            for j in range(10):
                assert (
                    db.get(f"worker_{worker_id}_key_{j}")
                    == f"worker_{worker_id}_value_{j}"
                )


def test_concurrent_writes_to_same_key(tmp_path):
    values = [f"value_from_worker_{i}" for i in range(3)]
    with Db(tmp_path, 1000) as db:
        with ThreadPoolExecutor(max_workers=3) as pool:
            list(pool.map(lambda v: db.put("shared_key", v), values))
        assert db.get("shared_key") in values


def test_missing_key_raises(tmp_path):
    with Db(tmp_path, 1000) as db:
        db.put("present", "yes")
        with pytest.raises(KeyNotFoundError):
            db.get("absent")


def test_closed_database(tmp_path):
    db = Db(tmp_path, 1000)
    db.put("a", "1")
    db.close()
    db.close()
    with pytest.raises(DatabaseClosedError):
        db.put("b", "2")
    with pytest.raises(KeyNotFoundError):
        db.get("a")


def test_corrupted_entry_skipped_on_recovery(tmp_path):
    bad = bytearray(Entry("b", "2").encode())
    bad[-1] ^= 0xFF
    (tmp_path / "current-data0").write_bytes(Entry("a", "1").encode() + bytes(bad))
    with Db(tmp_path, 1000) as db:
        assert db.get("a") == "1"
        with pytest.raises(KeyNotFoundError):
            db.get("b")


def test_invalid_record_size_fails_open(tmp_path):
    (tmp_path / "current-data0").write_bytes(b"\x00\x00\x00\x00" + b"\x00" * 40)
    with pytest.raises(ValueError, match="invalid record size"):
        Db(tmp_path, 1000)


def test_truncated_record_fails_open(tmp_path):
    (tmp_path / "current-data0").write_bytes(Entry("a", "1").encode()[:-3])
    with pytest.raises(ValueError, match="data corruption detected"):
        Db(tmp_path, 1000)


def test_new_segment_does_not_reuse_existing_file(tmp_path):
    with Db(tmp_path, 1000) as db:
        db.put("a", "1")
    with Db(tmp_path, 1000) as db:
        names = [segment.path.name for segment in db.segments]
        assert names == ["current-data0", "current-data1"]
        db.put("b", "2")
        assert db.get("a") == "1"
        assert db.get("b") == "2"