"""
fsops.py — flat83fs filesystem operation handlers.

FlatFS implements the calls a FUSE-style bridge forwards for a path:

    getattr   readdir   mkdir   mknod   read   write
    rmdir     unlink    open    flush   truncate

Failures are raised as OSError carrying the POSIX errno the bridge should
return (FileNotFoundError, FileExistsError, IsADirectoryError,
PermissionError for EPERM, or a plain OSError for ENAMETOOLONG / EFBIG /
EBADF / EINVAL).  A handler that changes metadata marks the cache dirty,
edits the in-memory image and flushes it before returning.  File contents
are read and written straight against the backing file.
"""

from __future__ import annotations

import errno
import logging
import stat
from dataclasses import dataclass

from blockstore import Bitmap, block_offset, blocks_needed
from diskcache import DiskCache
from pathinfo import (
    PathInfo, directory_name_for_create, resolve, resolve_for_create,
    slash_count,
)
from records import DirectoryRecord, DirSlot, FileSlot, RootDirectory

log = logging.getLogger(__name__)

KIND_DIR = "directory"
KIND_FILE = "file"


@dataclass
class FileAttributes:
    kind: str
    mode: int
    nlink: int
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind == KIND_DIR

    def as_stat(self) -> dict:
        """Attributes as the st_* mapping a bridge fills a stat from."""
        return dict(st_mode=self.mode, st_nlink=self.nlink, st_size=self.size)


def _dir_attrs() -> FileAttributes:
    return FileAttributes(KIND_DIR, stat.S_IFDIR | 0o755, 2)


def _file_attrs(size: int) -> FileAttributes:
    return FileAttributes(KIND_FILE, stat.S_IFREG | 0o666, 1, size)


def _error(code: int, msg: str, path: str) -> OSError:
    # OSError picks the matching subclass (FileNotFoundError, ...) by errno
    return OSError(code, msg, path)


class FlatFS:
    """Handler surface over one DiskCache."""

    def __init__(self, cache: DiskCache):
        self.cache = cache

    # ── lookup helpers ─────────────────────────────────────────────

    def _directory(self, img: bytearray, name: str) -> DirectoryRecord | None:
        d = RootDirectory(img).find(name)
        if d is None:
            return None
        return DirectoryRecord(img, d.start_block)

    def _locate(self, img: bytearray, info: PathInfo
                ) -> tuple[DirectoryRecord, int, FileSlot] | None:
        """Find the file named by *info*: (record, slot_index, entry)."""
        # dir_name is the second path segment, so /docs/x/a.txt finds /docs/a.txt
        rec = self._directory(img, info.dir_name)
        if rec is None:
            return None
        hit = rec.find(info.file_name, info.extension)
        if hit is None:
            return None
        return (rec, hit[0], hit[1])

    # ── queries ────────────────────────────────────────────────────

    def getattr(self, path: str) -> FileAttributes:
        """Attributes of the root, a subdirectory, or a file."""
        info = resolve(path)
        img = self.cache.acquire()

        if path == "/":
            return _dir_attrs()
        if not info.file_name and slash_count(path) >= 2:
            # /dir/sub or /dir/ never name anything
            pass
        elif not info.full_name:
            if RootDirectory(img).find(info.dir_name) is not None:
                return _dir_attrs()
        else:
            hit = self._locate(img, info)
            if hit is not None:
                return _file_attrs(hit[2].size)
        raise _error(errno.ENOENT, "No such file or directory", path)

    def readdir(self, path: str) -> list[str]:
        """Names in a directory, pseudo-entries first.

        A path that matches nothing lists only "." and "..".
        """
        info = resolve(path)
        img = self.cache.acquire()
        names = [".", ".."]
        if path == "/":
            names.extend(d.name for d in RootDirectory(img))
        else:
            rec = self._directory(img, info.dir_name)
            if rec is not None:
                names.extend(f.full_name for f in rec)
        return names

    # ── creation ───────────────────────────────────────────────────

    def mkdir(self, path: str, mode: int = 0o755) -> int:
        """Create a directory directly under the root."""
        name = directory_name_for_create(path)
        img = self.cache.acquire()
        root = RootDirectory(img)

        if root.find(name) is not None:
            raise _error(errno.EEXIST, "Directory exists", path)
        if root.full:
            raise _error(errno.EPERM,
                         f"Root directory full ({root.capacity} entries)", path)

        bmap = Bitmap(img, self.cache.geometry)
        start = bmap.find_first_free()
        if start >= len(bmap):
            raise _error(errno.ENOSPC, "No free block for directory", path)

        self.cache.mark_dirty()
        bmap.mark_range(start, 1)
        DirectoryRecord(img, start).clear()
        root.append(DirSlot(name, start))
        self.cache.flush()
        log.info("mkdir %s -> block %d", path, start)
        return 0

    def mknod(self, path: str, mode: int = 0o666, dev: int = 0) -> int:
        """Create an empty file inside an existing subdirectory.

        Data space is not allocated until the first write.
        """
        info = resolve_for_create(path)
        if path == "/" or not info.full_name or not info.file_name:
            raise _error(errno.EPERM, "Files must be created as /dir/name.ext", path)

        img = self.cache.acquire()
        rec = self._directory(img, info.dir_name)
        if rec is None:
            raise _error(errno.EPERM, "Parent directory does not exist", path)
        if rec.find(info.file_name, info.extension) is not None:
            raise _error(errno.EEXIST, "File exists", path)
        if rec.full:
            raise _error(errno.EPERM,
                         f"Directory full ({rec.capacity} entries)", path)

        self.cache.mark_dirty()
        rec.append(FileSlot(info.file_name, info.extension))
        self.cache.flush()
        log.info("mknod %s", path)
        return 0

    # ── data ───────────────────────────────────────────────────────

    def read(self, path: str, size: int, offset: int = 0) -> bytes:
        """Read at most *size* bytes of a file starting at *offset*."""
        info = resolve(path)
        if not info.full_name:
            raise _error(errno.EISDIR, "Is a directory", path)
        if offset < 0:
            raise _error(errno.EINVAL, "Negative offset", path)

        img = self.cache.acquire()
        hit = self._locate(img, info)
        if hit is None:
            return b""
        entry = hit[2]
        count = min(size, entry.size - offset)
        if count <= 0 or not entry.written:
            return b""
        return self.cache.pread(block_offset(entry.start_block, offset), count)

    def write(self, path: str, buffer: bytes | bytearray, size: int | None = None,
              offset: int = 0) -> int:
        """Write *size* bytes of *buffer* into a file at *offset*.

        The first write to a file fixes its extent: ``size`` bytes in a
        contiguous run of blocks.  Later writes must fall inside it.
        """
        if size is None:
            size = len(buffer)
        data = bytes(buffer[:size])
        size = len(data)

        info = resolve(path)
        if not info.full_name:
            # directories hold no data; nothing is written
            return 0
        if offset < 0:
            raise _error(errno.EINVAL, "Negative offset", path)

        img = self.cache.acquire()
        hit = self._locate(img, info)
        if hit is None:
            return 0
        rec, slot, entry = hit

        if not entry.written:
            if size == 0:
                return 0
            nblocks = blocks_needed(size)
            bmap = Bitmap(img, self.cache.geometry)
            start = bmap.find_first_free(nblocks)
            if start + nblocks > len(bmap):
                raise _error(errno.EFBIG, "No room left on the image", path)

            self.cache.mark_dirty()
            bmap.mark_range(start, nblocks)
            entry.start_block = start
            entry.size = size
            rec.put(slot, entry)
            self.cache.flush()
            log.info("allocated %d blocks at %d for %s", nblocks, start, path)

        if offset + size > entry.size:
            raise _error(errno.EFBIG,
                         f"Write past end of file ({entry.size} bytes)", path)
        self.cache.pwrite(block_offset(entry.start_block, offset), data)
        return size

    # ── accepted no-ops ────────────────────────────────────────────

    def rmdir(self, path: str) -> int:
        return 0

    def unlink(self, path: str) -> int:
        return 0

    def open(self, path: str, flags: int = 0) -> int:
        return 0

    def flush(self, path: str) -> int:
        return 0

    def truncate(self, path: str, length: int = 0) -> int:
        return 0
