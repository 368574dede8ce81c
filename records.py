"""
records.py — fixed-format metadata records stored in flat83fs blocks.

Root directory record (block 0, 512 bytes):
    +0   nDirectories[4]    i32 LE
    +4   directories[29]    17 bytes each, packed:
             +0   dname[9]        NUL-terminated (max 8 chars)
             +9   nStartBlock[8]  i64 LE  block of the directory record
    +497 padding[15]

Directory entry record (one block per subdirectory, 512 bytes):
    +0   nFiles[4]          i32 LE
    +4   files[17]          29 bytes each, packed:
             +0   fname[9]        NUL-terminated (max 8 chars)
             +9   fext[4]         NUL-terminated (max 3 chars)
             +13  fsize[8]        u64 LE  bytes
             +21  nStartBlock[8]  i64 LE  first data block, 0 = unset
    +497 padding[15]

Entries are kept densely packed in creation order: slot i is in use for
every i < count.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from blockstore import BLOCK_SIZE, ROOT_BLOCK, UNSET_BLOCK, block_offset

# ── Constants ──────────────────────────────────────────────────────────

MAX_FILENAME = 8
MAX_EXTENSION = 3

_COUNT = struct.Struct("<i")
_DIR_SLOT = struct.Struct(f"<{MAX_FILENAME + 1}sq")
_FILE_SLOT = struct.Struct(f"<{MAX_FILENAME + 1}s{MAX_EXTENSION + 1}sQq")

DIR_SLOT_SIZE = _DIR_SLOT.size          # 17
FILE_SLOT_SIZE = _FILE_SLOT.size        # 29

MAX_DIRS_IN_ROOT = (BLOCK_SIZE - _COUNT.size) // DIR_SLOT_SIZE      # 29
MAX_FILES_IN_DIR = (BLOCK_SIZE - _COUNT.size) // FILE_SLOT_SIZE     # 17


# ── Data classes ───────────────────────────────────────────────────────

@dataclass
class DirSlot:
    """One subdirectory entry of the root record."""
    name: str
    start_block: int


@dataclass
class FileSlot:
    """One file entry of a directory record."""
    name: str
    ext: str
    size: int = 0
    start_block: int = UNSET_BLOCK

    @property
    def full_name(self) -> str:
        return f"{self.name}.{self.ext}"

    @property
    def written(self) -> bool:
        """False until the first write allocates the file's data run."""
        return self.start_block != UNSET_BLOCK


# ── Low-level helpers ──────────────────────────────────────────────────

def _encode_name(name: str, limit: int) -> bytes:
    raw = name.encode("utf-8")
    if len(raw) > limit:
        raise ValueError(f"Name too long: {name!r} (max {limit})")
    return raw


def _decode_name(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


# ── Record views ───────────────────────────────────────────────────────

class _Record:
    """Common count-then-slots layout of a one-block record."""

    capacity = 0
    slot_size = 0

    def __init__(self, img: bytearray, block: int):
        self.img = img
        self.block = block
        self.base = block_offset(block)

    @property
    def count(self) -> int:
        return _COUNT.unpack_from(self.img, self.base)[0]

    @count.setter
    def count(self, value: int):
        _COUNT.pack_into(self.img, self.base, value)

    @property
    def full(self) -> bool:
        return self.count >= self.capacity

    def __len__(self) -> int:
        return self.count

    def _slot_offset(self, index: int) -> int:
        return self.base + _COUNT.size + index * self.slot_size

    def clear(self):
        """Zero the whole block (count = 0, no entries)."""
        self.img[self.base : self.base + BLOCK_SIZE] = bytes(BLOCK_SIZE)


class RootDirectory(_Record):
    """View of the root directory record at block 0."""

    capacity = MAX_DIRS_IN_ROOT
    slot_size = DIR_SLOT_SIZE

    def __init__(self, img: bytearray):
        super().__init__(img, ROOT_BLOCK)

    def get(self, index: int) -> DirSlot:
        raw_name, start = _DIR_SLOT.unpack_from(self.img, self._slot_offset(index))
        return DirSlot(_decode_name(raw_name), start)

    def __iter__(self):
        # count is clamped so a corrupt header cannot walk off the block
        for i in range(min(self.count, self.capacity)):
            yield self.get(i)

    def find(self, name: str) -> DirSlot | None:
        for d in self:
            if d.name == name:
                return d
        return None

    def append(self, entry: DirSlot) -> int:
        """Write *entry* into the next free slot and bump the count."""
        n = self.count
        if n >= self.capacity:
            raise RuntimeError(f"Root directory full ({self.capacity} entries)")
        _DIR_SLOT.pack_into(self.img, self._slot_offset(n),
                            _encode_name(entry.name, MAX_FILENAME),
                            entry.start_block)
        self.count = n + 1
        return n


class DirectoryRecord(_Record):
    """View of the directory entry record stored at *block*."""

    capacity = MAX_FILES_IN_DIR
    slot_size = FILE_SLOT_SIZE

    def get(self, index: int) -> FileSlot:
        raw_name, raw_ext, size, start = _FILE_SLOT.unpack_from(
            self.img, self._slot_offset(index))
        return FileSlot(_decode_name(raw_name), _decode_name(raw_ext), size, start)

    def put(self, index: int, entry: FileSlot):
        _FILE_SLOT.pack_into(self.img, self._slot_offset(index),
                             _encode_name(entry.name, MAX_FILENAME),
                             _encode_name(entry.ext, MAX_EXTENSION),
                             entry.size, entry.start_block)

    def __iter__(self):
        for i in range(min(self.count, self.capacity)):
            yield self.get(i)

    def find(self, name: str, ext: str) -> tuple[int, FileSlot] | None:
        """Find a file by (name, extension).

        Returns (slot_index, entry) or None.
        """
        for i, f in enumerate(self):
            if f.name == name and f.ext == ext:
                return (i, f)
        return None

    def append(self, entry: FileSlot) -> int:
        n = self.count
        if n >= self.capacity:
            raise RuntimeError(f"Directory full ({self.capacity} entries)")
        self.put(n, entry)
        self.count = n + 1
        return n
