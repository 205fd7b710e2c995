"""Single-file extendible hashing key-value store.

File layout (all integers little-endian):

    offset 0            header block (block_size bytes)
                          fixed fields, then the avail table
    dir_offset          directory: 2**dir_bits bucket offsets (u64)
    bucket offsets      buckets (block_size bytes each)
                          bucket_bits, count, then bucket_elems elements
    data pointers       key bytes immediately followed by value bytes

A key's 31-bit hash selects a directory slot by its top dir_bits bits, and a
starting element by hash % bucket_elems; collisions probe linearly. A full
bucket is split on the next hash bit, doubling the directory when the bucket
already uses all dir_bits. A full bucket whose keys all share the new
key's hash cannot be split, and that insert fails with BucketOverflow.
Freed regions are recorded in the header avail table and reused best-fit.

Every mutation writes the touched bucket, directory and header through to the
file before returning.
"""

import logging
import os
import struct
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, TextIO, Union

from . import asciidump, flatdump
from .errors import (
    BadMagic,
    BlockSizeMismatch,
    BucketOverflow,
    CorruptFile,
    EngineError,
    ReadOnlyEngine,
)

logger = logging.getLogger(__name__)

MAGIC = 0x4744424D  # "GDBM"
MIN_BLOCK_SIZE = 512
DEFAULT_BLOCK_SIZE = 4096
DEFAULT_CACHE_SIZE = 64
MAX_DIR_BITS = 31

HEADER = struct.Struct("<IIQIIIIQIIQ")
AVAIL_ELEM = struct.Struct("<IQ")
BUCKET_HEADER = struct.Struct("<II")
BUCKET_ELEM = struct.Struct("<i4sQII")
DIR_ENTRY = struct.Struct("<Q")

EMPTY = -1


def key_start(key: bytes) -> bytes:
    """First four key bytes, NUL padded as stored in a bucket element."""
    return key[:4].ljust(4, b"\0")


def hash_key(key: bytes) -> int:
    """31-bit hash of a key (the classic gdbm hash function)."""
    value = (0x238F13AF * len(key)) & 0x7FFFFFFF
    for index, byte in enumerate(key):
        value = (value + (byte << (index * 5 % 24))) & 0x7FFFFFFF
    return (1103515243 * value + 12345) & 0x7FFFFFFF


@dataclass
class Element:
    """A bucket slot referencing one stored key/value pair."""

    hash: int
    key_start: bytes
    data_ptr: int
    key_size: int
    data_size: int


class Bucket:
    """In-memory image of one bucket block."""

    def __init__(self, offset: int, bits: int, nelems: int):
        self.offset = offset
        self.bits = bits
        self.elems: list[Optional[Element]] = [None] * nelems

    @property
    def count(self) -> int:
        return sum(1 for e in self.elems if e is not None)

    def place(self, elem: Element) -> int:
        """Put elem in the first free slot of its probe sequence."""
        n = len(self.elems)
        index = elem.hash % n
        while self.elems[index] is not None:
            index = (index + 1) % n
        self.elems[index] = elem
        return index

    def pack(self, block_size: int) -> bytes:
        parts = [BUCKET_HEADER.pack(self.bits, self.count)]
        for e in self.elems:
            if e is None:
                parts.append(BUCKET_ELEM.pack(EMPTY, b"", 0, 0, 0))
            else:
                parts.append(
                    BUCKET_ELEM.pack(e.hash, e.key_start, e.data_ptr, e.key_size, e.data_size)
                )
        raw = b"".join(parts)
        return raw + b"\0" * (block_size - len(raw))

    @classmethod
    def unpack(cls, offset: int, raw: bytes, nelems: int) -> "Bucket":
        bits, count = BUCKET_HEADER.unpack_from(raw, 0)
        bucket = cls(offset, bits, nelems)
        pos = BUCKET_HEADER.size
        for index in range(nelems):
            h, start, ptr, ksize, dsize = BUCKET_ELEM.unpack_from(raw, pos)
            pos += BUCKET_ELEM.size
            if h != EMPTY:
                bucket.elems[index] = Element(h, start, ptr, ksize, dsize)
        if bucket.count != count:
            raise CorruptFile(f"bucket at {offset}: count {count} does not match elements")
        return bucket


class HashFile:
    """An open database file.

    Use HashFile.open() rather than the constructor.
    """

    def __init__(self, path: Path, fp, writable: bool, cache_size: int):
        self.path = path
        self._fp = fp
        self.writable = writable
        self.cache_size = cache_size
        self._cache: "OrderedDict[int, Bucket]" = OrderedDict()

        self.magic = MAGIC
        self.block_size = 0
        self.dir_offset = 0
        self.dir_size = 0
        self.dir_bits = 0
        self.bucket_size = 0
        self.bucket_elems = 0
        self.next_block = 0
        self.avail_size = 0
        self.avail_next_block = 0
        self.avail: list[tuple[int, int]] = []  # (size, offset), sorted by size
        self.directory: list[int] = []

    # ------------------------------------------------------------------
    # Open / close
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        *,
        write: bool = False,
        create: bool = False,
        block_size: Optional[int] = None,
        cache_size: Optional[int] = None,
    ) -> "HashFile":
        """Open a database file.

        Args:
            path: Database file name.
            write: Open for reading and writing.
            create: Create the file if missing (requires write).
            block_size: Block size for a new file; for an existing file it
                must match the file's own block size.
            cache_size: Number of buckets kept in memory.

        Raises:
            OSError: If the file cannot be opened.
            EngineError: If the file is not a valid database.
        """
        path = Path(path)
        if cache_size is None:
            cache_size = DEFAULT_CACHE_SIZE
        if cache_size < 1:
            raise ValueError(f"cache size must be positive: {cache_size}")
        if block_size is not None and block_size < MIN_BLOCK_SIZE:
            raise EngineError(f"block size {block_size} is below minimum {MIN_BLOCK_SIZE}")
        if create and not write:
            raise ValueError("create requires write access")

        if not write:
            fp = open(path, "rb")
        elif create and (not path.exists() or path.stat().st_size == 0):
            fp = open(path, "w+b")
            db = cls(path, fp, writable=True, cache_size=cache_size)
            try:
                db._initialize(block_size or DEFAULT_BLOCK_SIZE)
            except BaseException:
                fp.close()
                raise
            logger.debug("Created %s with block size %d", path, db.block_size)
            return db
        else:
            fp = open(path, "r+b")

        db = cls(path, fp, writable=write, cache_size=cache_size)
        try:
            db._read_header()
            if block_size is not None and block_size != db.block_size:
                raise BlockSizeMismatch(block_size, db.block_size)
        except BaseException:
            fp.close()
            raise
        logger.debug(
            "Opened %s (%s), %d buckets",
            path,
            "read-write" if write else "read-only",
            len(set(db.directory)),
        )
        return db

    def close(self) -> None:
        if self._fp is not None:
            if self.writable:
                self._fp.flush()
            self._fp.close()
            self._fp = None
            self._cache.clear()

    @property
    def closed(self) -> bool:
        return self._fp is None

    def __enter__(self) -> "HashFile":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Low-level I/O
    # ------------------------------------------------------------------

    def _read_at(self, offset: int, size: int) -> bytes:
        if self._fp is None:
            raise EngineError("database is closed")
        self._fp.seek(offset)
        data = self._fp.read(size)
        if len(data) != size:
            raise CorruptFile(f"short read at offset {offset}: wanted {size}, got {len(data)}")
        return data

    def _write_at(self, offset: int, data: bytes) -> None:
        if self._fp is None:
            raise EngineError("database is closed")
        self._fp.seek(offset)
        self._fp.write(data)

    def _initialize(self, block_size: int) -> None:
        self.block_size = block_size
        self.bucket_size = block_size
        self.bucket_elems = (block_size - BUCKET_HEADER.size) // BUCKET_ELEM.size
        self.dir_bits = (block_size // DIR_ENTRY.size).bit_length() - 1
        self.dir_size = (1 << self.dir_bits) * DIR_ENTRY.size
        self.dir_offset = block_size
        self.avail_size = (block_size - HEADER.size) // AVAIL_ELEM.size
        self.avail = []

        bucket_offset = self.dir_offset + self.dir_size
        self.next_block = bucket_offset + self.bucket_size
        self.directory = [bucket_offset] * (1 << self.dir_bits)

        self._write_bucket(Bucket(bucket_offset, 0, self.bucket_elems))
        self._write_directory()
        self._write_header()

    def _read_header(self) -> None:
        raw = self._read_at(0, HEADER.size)
        (
            self.magic,
            self.block_size,
            self.dir_offset,
            self.dir_size,
            self.dir_bits,
            self.bucket_size,
            self.bucket_elems,
            self.next_block,
            self.avail_size,
            avail_count,
            self.avail_next_block,
        ) = HEADER.unpack(raw)

        if self.magic != MAGIC:
            raise BadMagic(self.magic)
        if self.block_size < MIN_BLOCK_SIZE or self.bucket_size != self.block_size:
            raise CorruptFile(f"bad block size {self.block_size}")
        if self.bucket_elems != (self.block_size - BUCKET_HEADER.size) // BUCKET_ELEM.size:
            raise CorruptFile(f"bad bucket element count {self.bucket_elems}")
        if self.dir_bits > MAX_DIR_BITS or self.dir_size != (1 << self.dir_bits) * DIR_ENTRY.size:
            raise CorruptFile(f"bad directory size {self.dir_size} for {self.dir_bits} bits")
        if avail_count > self.avail_size:
            raise CorruptFile(f"avail count {avail_count} exceeds table size {self.avail_size}")

        raw = self._read_at(HEADER.size, avail_count * AVAIL_ELEM.size)
        self.avail = sorted(
            AVAIL_ELEM.unpack_from(raw, i * AVAIL_ELEM.size) for i in range(avail_count)
        )

        raw = self._read_at(self.dir_offset, self.dir_size)
        self.directory = [
            DIR_ENTRY.unpack_from(raw, i * DIR_ENTRY.size)[0]
            for i in range(1 << self.dir_bits)
        ]
        for offset in self.directory:
            if offset < self.block_size or offset + self.bucket_size > self.next_block:
                raise CorruptFile(f"directory entry {offset} out of range")

    def _write_header(self) -> None:
        raw = HEADER.pack(
            self.magic,
            self.block_size,
            self.dir_offset,
            self.dir_size,
            self.dir_bits,
            self.bucket_size,
            self.bucket_elems,
            self.next_block,
            self.avail_size,
            len(self.avail),
            self.avail_next_block,
        )
        raw += b"".join(AVAIL_ELEM.pack(size, offset) for size, offset in self.avail)
        self._write_at(0, raw + b"\0" * (self.block_size - len(raw)))

    def _write_directory(self) -> None:
        self._write_at(
            self.dir_offset, b"".join(DIR_ENTRY.pack(o) for o in self.directory)
        )

    def _read_bucket(self, offset: int) -> Bucket:
        bucket = self._cache.get(offset)
        if bucket is not None:
            self._cache.move_to_end(offset)
            return bucket
        bucket = Bucket.unpack(offset, self._read_at(offset, self.bucket_size), self.bucket_elems)
        self._cache_put(bucket)
        return bucket

    def _write_bucket(self, bucket: Bucket) -> None:
        self._write_at(bucket.offset, bucket.pack(self.bucket_size))
        self._cache_put(bucket)

    def _cache_put(self, bucket: Bucket) -> None:
        self._cache[bucket.offset] = bucket
        self._cache.move_to_end(bucket.offset)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    # ------------------------------------------------------------------
    # Space management
    # ------------------------------------------------------------------

    def _alloc(self, size: int) -> int:
        for index, (avail_size, offset) in enumerate(self.avail):
            if avail_size >= size:
                del self.avail[index]
                if avail_size > size:
                    self._free(offset + size, avail_size - size)
                return offset
        offset = self.next_block
        self.next_block += size
        return offset

    def _free(self, offset: int, size: int) -> None:
        if size <= 0:
            return
        self.avail.append((size, offset))
        self.avail.sort()
        if len(self.avail) > self.avail_size:
            # Table full: the smallest region is lost.
            self.avail.pop(0)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _bucket_for(self, h: int) -> Bucket:
        return self._read_bucket(self.directory[h >> (MAX_DIR_BITS - self.dir_bits)])

    def _read_key(self, elem: Element) -> bytes:
        return self._read_at(elem.data_ptr, elem.key_size)

    def _read_value(self, elem: Element) -> bytes:
        return self._read_at(elem.data_ptr + elem.key_size, elem.data_size)

    def _lookup(self, key: bytes) -> tuple[int, Bucket, Optional[int]]:
        h = hash_key(key)
        bucket = self._bucket_for(h)
        n = len(bucket.elems)
        index = h % n
        for _ in range(n):
            elem = bucket.elems[index]
            if elem is None:
                break
            if (
                elem.hash == h
                and elem.key_size == len(key)
                and elem.key_start == key_start(key)
                and self._read_key(elem) == key
            ):
                return h, bucket, index
            index = (index + 1) % n
        return h, bucket, None

    def _check_writable(self) -> None:
        if not self.writable:
            raise ReadOnlyEngine()

    # ------------------------------------------------------------------
    # Bucket split
    # ------------------------------------------------------------------

    def _double_directory(self) -> None:
        if self.dir_bits >= MAX_DIR_BITS:
            raise EngineError("directory cannot grow beyond 31 bits")
        old_offset, old_size = self.dir_offset, self.dir_size
        self.directory = [o for o in self.directory for _ in (0, 1)]
        self.dir_bits += 1
        self.dir_size *= 2
        self.dir_offset = self._alloc(self.dir_size)
        self._free(old_offset, old_size)
        logger.debug("Directory doubled to %d bits", self.dir_bits)

    def _split(self, bucket: Bucket) -> None:
        if bucket.bits >= MAX_DIR_BITS:
            raise EngineError("bucket cannot be split further")
        if bucket.bits == self.dir_bits:
            self._double_directory()

        new_bits = bucket.bits + 1
        shift = MAX_DIR_BITS - new_bits
        low = Bucket(bucket.offset, new_bits, self.bucket_elems)
        high = Bucket(self._alloc(self.bucket_size), new_bits, self.bucket_elems)
        for elem in bucket.elems:
            if elem is not None:
                (high if (elem.hash >> shift) & 1 else low).place(elem)

        dir_shift = self.dir_bits - new_bits
        for index, offset in enumerate(self.directory):
            if offset == bucket.offset and (index >> dir_shift) & 1:
                self.directory[index] = high.offset

        self._write_bucket(low)
        self._write_bucket(high)
        self._write_directory()
        logger.debug(
            "Split bucket at %d into %d/%d elements (%d bits)",
            bucket.offset,
            low.count,
            high.count,
            new_bits,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: bytes) -> Optional[bytes]:
        """Return the value stored for key, or None."""
        _, bucket, index = self._lookup(key)
        if index is None:
            return None
        return self._read_value(bucket.elems[index])

    def __contains__(self, key: bytes) -> bool:
        return self._lookup(key)[2] is not None

    def _store(self, key: bytes, value: bytes, replace: bool) -> tuple[bool, Optional[bytes]]:
        self._check_writable()
        h, bucket, index = self._lookup(key)

        if index is not None:
            elem = bucket.elems[index]
            old = self._read_value(elem)
            if not replace:
                return False, old
            self._free(elem.data_ptr, elem.key_size + elem.data_size)
            elem.data_ptr = self._alloc(len(key) + len(value))
            elem.data_size = len(value)
            self._write_at(elem.data_ptr, key + value)
            self._write_bucket(bucket)
            self._write_header()
            return True, old

        while bucket.count == self.bucket_elems:
            if all(elem.hash == h for elem in bucket.elems):
                raise BucketOverflow(h)
            self._split(bucket)
            bucket = self._bucket_for(h)

        ptr = self._alloc(len(key) + len(value))
        self._write_at(ptr, key + value)
        bucket.place(Element(h, key_start(key), ptr, len(key), len(value)))
        self._write_bucket(bucket)
        self._write_header()
        return True, None

    def insert(self, key: bytes, value: bytes) -> Optional[bytes]:
        """Store value for key, replacing any existing value.

        Returns:
            The previous value, or None.
        """
        return self._store(key, value, replace=True)[1]

    def try_insert(self, key: bytes, value: bytes) -> tuple[bool, Optional[bytes]]:
        """Store value for key only if key is absent.

        Returns:
            (inserted, old): old is the existing value when not inserted.
        """
        return self._store(key, value, replace=False)

    def remove(self, key: bytes) -> Optional[bytes]:
        """Delete key.

        Returns:
            The removed value, or None if key was absent.
        """
        self._check_writable()
        _, bucket, index = self._lookup(key)
        if index is None:
            return None

        elem = bucket.elems[index]
        old = self._read_value(elem)
        self._free(elem.data_ptr, elem.key_size + elem.data_size)
        bucket.elems[index] = None

        # Re-place the rest of the probe cluster so lookups do not stop early.
        n = len(bucket.elems)
        index = (index + 1) % n
        while bucket.elems[index] is not None:
            moved = bucket.elems[index]
            bucket.elems[index] = None
            bucket.place(moved)
            index = (index + 1) % n

        self._write_bucket(bucket)
        self._write_header()
        return old

    def _buckets(self) -> Iterator[Bucket]:
        seen = set()
        for offset in self.directory:
            if offset not in seen:
                seen.add(offset)
                yield self._read_bucket(offset)

    def _elements(self) -> Iterator[Element]:
        for bucket in self._buckets():
            for elem in list(bucket.elems):
                if elem is not None:
                    yield elem

    def __len__(self) -> int:
        return sum(bucket.count for bucket in self._buckets())

    def keys(self) -> Iterator[bytes]:
        for elem in self._elements():
            yield self._read_key(elem)

    def values(self) -> Iterator[bytes]:
        for elem in self._elements():
            yield self._read_value(elem)

    def items(self) -> Iterator[tuple[bytes, bytes]]:
        for elem in self._elements():
            raw = self._read_at(elem.data_ptr, elem.key_size + elem.data_size)
            yield raw[: elem.key_size], raw[elem.key_size:]

    def sync(self) -> None:
        if self.writable and self._fp is not None:
            self._fp.flush()
            os.fsync(self._fp.fileno())

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def header_lines(self) -> list[str]:
        """Global header fields as display lines."""
        return [
            "GDBM file header:",
            "",
            f"magic {self.magic:#x}",
            f"dir-offset {self.dir_offset}",
            f"dir-size {self.dir_size // DIR_ENTRY.size}",
            f"dir-bits {self.dir_bits}",
            f"block-size {self.block_size}",
            f"bucket-elems {self.bucket_elems}",
            f"bucket-size {self.bucket_size}",
            f"next-block {self.next_block}",
            f"avail-size {self.avail_size}",
            f"avail-count {len(self.avail)}",
            f"avail-next-block {self.avail_next_block}",
        ]

    def directory_lines(self) -> list[str]:
        """Hash directory as display lines: size, bits, then one line per slot."""
        lines = [
            "Hash Table Directory:",
            f"  Size =  {len(self.directory)}.  Bits = {self.dir_bits},"
            f"  Buckets = {len(set(self.directory))}",
            "",
            "  Index:  Address:",
        ]
        lines.extend(f"  {index:<7} {offset}" for index, offset in enumerate(self.directory))
        return lines

    # ------------------------------------------------------------------
    # Dump import / export
    # ------------------------------------------------------------------

    def export_ascii(self, out: TextIO, producer: str = "gdbmtool") -> int:
        """Write every entry to out as an ASCII dump; returns the entry count."""
        return asciidump.write_dump(out, self.items(), self.path.name, producer)

    def export_binary(self, out: BinaryIO, producer: str = "gdbmtool") -> int:
        """Write every entry to out as a binary dump; returns the entry count."""
        return flatdump.write_flat(out, self.items(), producer)

    def _import_pairs(self, pairs: list[tuple[bytes, bytes]], replace: bool) -> int:
        stored = 0
        for key, value in pairs:
            if self._store(key, value, replace=replace)[0]:
                stored += 1
        logger.debug("Imported %d of %d pairs into %s", stored, len(pairs), self.path)
        return stored

    def import_ascii(self, stream: TextIO, replace: bool = True) -> int:
        """Decode an ASCII dump and store every pair.

        The dump is decoded and validated in full before the first store.

        Returns:
            Number of pairs stored.
        """
        self._check_writable()
        return self._import_pairs(asciidump.read_dump(stream), replace)

    def import_binary(self, stream: BinaryIO, replace: bool = True) -> int:
        """Decode a binary dump and store every pair, validating it first."""
        self._check_writable()
        return self._import_pairs(flatdump.read_flat(stream), replace)
