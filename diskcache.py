"""
diskcache.py — in-memory mirror of a flat83fs backing image.

A DiskCache is the one handle through which the handlers see the image.
It owns the image buffer and a CLEAN/DIRTY state:

    CLEAN --mark_dirty()--> DIRTY --flush()--> CLEAN

acquire() always returns a CLEAN image: a leftover DIRTY image is flushed
to the backing file first, then (with reload_on_access) the image is read
back so callers observe the latest durable state.

File data does not go through the image buffer; pread/pwrite address the
backing file directly at absolute byte offsets.
"""

from __future__ import annotations

import enum
import errno
import logging
import os
from pathlib import Path

from blockstore import DEFAULT_GEOMETRY, ImageGeometry

log = logging.getLogger(__name__)

DEFAULT_IMAGE_PATH = ".disk"
IMAGE_PATH_ENV = "FLAT83FS_IMAGE"


def default_image_path() -> str:
    return os.environ.get(IMAGE_PATH_ENV, DEFAULT_IMAGE_PATH)


class BackingFileUnavailable(OSError):
    """The backing image cannot be opened.  Not recoverable."""


class CacheState(enum.Enum):
    CLEAN = "clean"
    DIRTY = "dirty"


class DiskCache:
    """Block-store image backed by a pre-sized host file."""

    def __init__(self, image_path: str | Path,
                 geometry: ImageGeometry = DEFAULT_GEOMETRY,
                 reload_on_access: bool = True):
        self.image_path = Path(image_path)
        self.geometry = geometry
        self.reload_on_access = reload_on_access
        self._state = CacheState.CLEAN
        self.img = bytearray(geometry.image_size)
        try:
            self._load()
        except OSError as e:
            raise BackingFileUnavailable(
                errno.EBADF, f"Cannot open backing image: {e.strerror or e}",
                str(self.image_path)) from e
        log.info("opened %s (%d blocks)", self.image_path, geometry.block_count)

    # ── state ──────────────────────────────────────────────────────

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def dirty(self) -> bool:
        return self._state is CacheState.DIRTY

    def mark_dirty(self):
        """Begin a structural mutation of the image."""
        if self._state is CacheState.DIRTY:
            raise RuntimeError("Image already has an unflushed mutation")
        self._state = CacheState.DIRTY

    # ── image I/O ──────────────────────────────────────────────────

    def _load(self):
        with open(self.image_path, "rb") as f:
            data = f.read(self.geometry.image_size)
        if len(data) < self.geometry.image_size:
            raise OSError(errno.EINVAL,
                          f"image is {len(data)} bytes, "
                          f"expected {self.geometry.image_size}")
        self.img[:] = data

    def acquire(self) -> bytearray:
        """Return the current image, flushing a pending mutation first."""
        if self.dirty:
            log.debug("image dirty, writing out before read")
            self.flush()
        if self.reload_on_access:
            try:
                self._load()
            except OSError as e:
                raise OSError(errno.EBADF, "Cannot reload backing image",
                              str(self.image_path)) from e
        return self.img

    def flush(self):
        """Write the whole image back and return to CLEAN."""
        try:
            with open(self.image_path, "r+b") as f:
                f.write(self.img)
        except OSError as e:
            raise OSError(errno.EBADF, "Cannot write backing image",
                          str(self.image_path)) from e
        self._state = CacheState.CLEAN
        log.debug("flushed %s", self.image_path)

    # ── ranged file I/O ────────────────────────────────────────────

    def pread(self, offset: int, size: int) -> bytes:
        """Read up to *size* bytes at absolute *offset* of the backing file."""
        try:
            with open(self.image_path, "rb") as f:
                f.seek(offset)
                return f.read(size)
        except OSError as e:
            raise OSError(errno.EBADF, "Cannot read backing image",
                          str(self.image_path)) from e

    def pwrite(self, offset: int, data: bytes | bytearray) -> int:
        """Write *data* at absolute *offset*; the mirror is patched too."""
        try:
            with open(self.image_path, "r+b") as f:
                f.seek(offset)
                n = f.write(data)
        except OSError as e:
            raise OSError(errno.EBADF, "Cannot write backing image",
                          str(self.image_path)) from e
        self.img[offset : offset + n] = data[:n]
        return n
