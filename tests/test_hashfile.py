"""Tests for the hash file storage engine."""

import pytest
from pathlib import Path

from gdbmtool.storage import (
    BadMagic,
    BlockSizeMismatch,
    BucketOverflow,
    CorruptFile,
    EngineError,
    HashFile,
    ReadOnlyEngine,
)
from gdbmtool.storage.hashfile import hash_key


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path):
    with HashFile.open(db_path, write=True, create=True, block_size=512) as db:
        yield db


class TestOpen:
    """Tests for HashFile.open."""

    def test_create_new_file(self, db_path: Path):
        """Create writes a valid empty database."""
        with HashFile.open(db_path, write=True, create=True) as db:
            assert len(db) == 0
            assert db.block_size == 4096

        assert db_path.exists()

    def test_missing_file_without_create_raises(self, db_path: Path):
        """Opening a missing file without create fails."""
        with pytest.raises(FileNotFoundError):
            HashFile.open(db_path, write=True)

    def test_missing_file_read_only_raises(self, db_path: Path):
        """Read-only open of a missing file fails."""
        with pytest.raises(FileNotFoundError):
            HashFile.open(db_path)

    def test_bad_magic_raises(self, db_path: Path):
        """A file of zeros is rejected."""
        db_path.write_bytes(b"\0" * 1024)

        with pytest.raises(BadMagic):
            HashFile.open(db_path)

    def test_short_file_raises(self, db_path: Path):
        """A truncated file is reported as corrupt."""
        db_path.write_bytes(b"GDBM")

        with pytest.raises(CorruptFile):
            HashFile.open(db_path)

    def test_block_size_mismatch_raises(self, db_path: Path):
        """Reopening with another block size fails."""
        HashFile.open(db_path, write=True, create=True, block_size=512).close()

        with pytest.raises(BlockSizeMismatch):
            HashFile.open(db_path, write=True, create=True, block_size=1024)

    def test_block_size_below_minimum_raises(self, db_path: Path):
        """Tiny block sizes are rejected."""
        with pytest.raises(EngineError, match="below minimum"):
            HashFile.open(db_path, write=True, create=True, block_size=64)

    def test_create_existing_keeps_data(self, db_path: Path):
        """Create on an existing database opens it unchanged."""
        with HashFile.open(db_path, write=True, create=True) as db:
            db.insert(b"a", b"1")

        with HashFile.open(db_path, write=True, create=True) as db:
            assert db.get(b"a") == b"1"


class TestOperations:
    """Tests for get/insert/try_insert/remove."""

    def test_get_missing_returns_none(self, db: HashFile):
        assert db.get(b"nope") is None

    def test_insert_and_get(self, db: HashFile):
        assert db.insert(b"key", b"value") is None
        assert db.get(b"key") == b"value"
        assert b"key" in db

    def test_insert_replaces_and_returns_old(self, db: HashFile):
        db.insert(b"key", b"one")

        assert db.insert(b"key", b"two") == b"one"
        assert db.get(b"key") == b"two"
        assert len(db) == 1

    def test_try_insert_existing_keeps_value(self, db: HashFile):
        db.insert(b"key", b"one")

        inserted, old = db.try_insert(b"key", b"two")

        assert inserted is False
        assert old == b"one"
        assert db.get(b"key") == b"one"

    def test_try_insert_new_key(self, db: HashFile):
        assert db.try_insert(b"key", b"one") == (True, None)
        assert db.get(b"key") == b"one"

    def test_remove_returns_old(self, db: HashFile):
        db.insert(b"key", b"value")

        assert db.remove(b"key") == b"value"
        assert db.get(b"key") is None
        assert len(db) == 0

    def test_remove_missing_returns_none(self, db: HashFile):
        assert db.remove(b"nope") is None

    def test_short_and_empty_keys(self, db: HashFile):
        """Keys shorter than the stored prefix are found after reopen."""
        db.insert(b"", b"empty")
        db.insert(b"a", b"short")
        db.insert(b"abcd", b"exact")
        path = db.path
        db.close()

        with HashFile.open(path) as ro:
            assert ro.get(b"") == b"empty"
            assert ro.get(b"a") == b"short"
            assert ro.get(b"abcd") == b"exact"

    def test_freed_space_is_reused(self, db: HashFile):
        """Removing then inserting same-sized data does not grow the file."""
        db.insert(b"a", b"1")
        db.remove(b"a")
        next_block = db.next_block

        db.insert(b"b", b"2")

        assert db.next_block == next_block

    def test_read_only_rejects_mutation(self, db_path: Path):
        HashFile.open(db_path, write=True, create=True).close()

        with HashFile.open(db_path) as db:
            with pytest.raises(ReadOnlyEngine):
                db.insert(b"a", b"1")
            with pytest.raises(ReadOnlyEngine):
                db.remove(b"a")


class TestGrowth:
    """Tests for bucket splits and directory doubling."""

    def test_many_keys_split_buckets(self, db: HashFile):
        for i in range(200):
            db.insert(f"key{i}".encode(), f"value{i}".encode())

        assert len(db) == 200
        assert len(set(db.directory)) > 1
        for i in range(200):
            assert db.get(f"key{i}".encode()) == f"value{i}".encode()

    def test_directory_doubles(self, db: HashFile):
        """More buckets than directory slots forces the directory to grow."""
        initial_bits = db.dir_bits

        for i in range(3000):
            db.insert(f"k{i}".encode(), b"v")

        assert db.dir_bits > initial_bits
        assert len(db.directory) == 2 ** db.dir_bits
        assert len(db) == 3000
        assert db.get(b"k1234") == b"v"

    def test_persists_after_reopen(self, db_path: Path):
        with HashFile.open(db_path, write=True, create=True, block_size=512) as db:
            for i in range(500):
                db.insert(f"key{i}".encode(), f"value{i}".encode())
            for i in range(0, 500, 2):
                db.remove(f"key{i}".encode())

        with HashFile.open(db_path, cache_size=2) as db:
            assert len(db) == 250
            assert db.get(b"key1") == b"value1"
            assert db.get(b"key2") is None
            assert sorted(db.keys()) == sorted(
                f"key{i}".encode() for i in range(1, 500, 2)
            )

    def test_remove_keeps_cluster_reachable(self, db: HashFile):
        """Removing from a probe cluster leaves later members findable."""
        keys = [f"c{i}".encode() for i in range(20)]
        for key in keys:
            db.insert(key, key)

        for key in keys[::3]:
            db.remove(key)

        for i, key in enumerate(keys):
            expected = None if i % 3 == 0 else key
            assert db.get(key) == expected

    def test_same_hash_overflow_refused(self, db: HashFile):
        """A full bucket of identical hashes cannot split; the insert fails."""
        # b0 + 32*b1 + 1024*b2 is the same for every key, so is the hash
        keys = [
            bytes([65 + 32 * j, 250 - j - 32 * k, k])
            for j in range(6)
            for k in range(8)
        ]
        assert len({hash_key(key) for key in keys}) == 1
        initial_bits = db.dir_bits
        fill = keys[: db.bucket_elems]
        for key in fill:
            db.insert(key, b"v")

        with pytest.raises(BucketOverflow, match="same hash"):
            db.insert(keys[db.bucket_elems], b"v")

        assert db.dir_bits == initial_bits
        assert len(db) == db.bucket_elems
        assert db.insert(fill[0], b"new") == b"v"
        assert all(db.get(key) is not None for key in fill)


class TestIteration:
    """Tests for keys/values/items."""

    def test_items_match_inserted(self, db: HashFile):
        data = {f"k{i}".encode(): f"v{i}".encode() for i in range(50)}
        for key, value in data.items():
            db.insert(key, value)

        assert dict(db.items()) == data
        assert sorted(db.keys()) == sorted(data)
        assert sorted(db.values()) == sorted(data.values())

    def test_iteration_order_is_consistent(self, db: HashFile):
        for i in range(50):
            db.insert(f"k{i}".encode(), f"v{i}".encode())

        keys = list(db.keys())
        assert [k for k, _ in db.items()] == keys


class TestIntrospection:
    """Tests for header and directory dumps."""

    def test_header_lines(self, db: HashFile):
        lines = db.header_lines()

        assert lines[0] == "GDBM file header:"
        assert "magic 0x4744424d" in lines
        assert "block-size 512" in lines
        assert "bucket-elems 21" in lines
        assert "dir-bits 6" in lines
        assert "dir-size 64" in lines

    def test_directory_lines(self, db: HashFile):
        lines = db.directory_lines()

        assert lines[0] == "Hash Table Directory:"
        assert "Bits = 6" in lines[1]
        assert "Buckets = 1" in lines[1]
        assert len(lines) == 4 + 64


def test_hash_is_31_bit():
    for key in [b"", b"a", b"hello world", bytes(range(256))]:
        assert 0 <= hash_key(key) < 2 ** 31
