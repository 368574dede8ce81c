"""
blockstore.py — block geometry and free-space bitmap for flat83fs images.

A flat83fs image is a single pre-sized host file holding a flat array of
512-byte blocks followed by the allocation bitmap.

Image layout (5 MiB, default geometry):
    Blocks 0..10236     10237 × 512-byte blocks
      Block 0           Root directory record (always allocated)
      Blocks 1+         Directory records and file data
    +5241344            Allocation bitmap (1280 bytes = 10237 bits)
    +5242624            Zero slack up to the image size

Legacy geometry keeps the oversized 655360-byte bitmap region of older
images (8960 blocks, bitmap at +4587520) so such images can be opened
byte-for-byte.

Allocation bitmap:
    Bit N (byte N // 8, mask 1 << (N % 8)) = 1 means block N is allocated.
    Block 0 is reserved for the root record and never handed out.

Addressing:
    The allocator grants block indices.  A file's start locator is a
    BlockIndex; the host-file position of byte *k* of that file is
    block_offset(start) + k.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import NewType

log = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────

BLOCK_SIZE = 512
IMAGE_SIZE = 5 * 1024 * 1024        # 5 MiB
ROOT_BLOCK = 0
RESERVED_BLOCKS = 1                 # root record

LEGACY_BITMAP_SIZE = 655360

BlockIndex = NewType("BlockIndex", int)
ByteOffset = NewType("ByteOffset", int)

UNSET_BLOCK = BlockIndex(0)         # start locator of a never-written file


def block_offset(block: int, offset: int = 0) -> ByteOffset:
    """Absolute image offset of byte *offset* inside *block*."""
    return ByteOffset(block * BLOCK_SIZE + offset)


def blocks_needed(nbytes: int) -> int:
    """Number of 512-byte blocks needed to hold *nbytes*."""
    return (nbytes + BLOCK_SIZE - 1) // BLOCK_SIZE


# ── Geometry ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ImageGeometry:
    """Where the blocks and the bitmap live inside the backing image."""
    image_size: int
    block_count: int
    bitmap_size: int

    @property
    def bitmap_offset(self) -> ByteOffset:
        return block_offset(self.block_count)

    @property
    def data_size(self) -> int:
        return self.block_count * BLOCK_SIZE

    @classmethod
    def compact(cls, image_size: int = IMAGE_SIZE) -> "ImageGeometry":
        """Largest block count whose exact-size bitmap still fits."""
        n = (image_size * 8) // (BLOCK_SIZE * 8 + 1)
        while n * BLOCK_SIZE + (n + 7) // 8 > image_size:
            n -= 1
        return cls(image_size, n, (n + 7) // 8)

    @classmethod
    def legacy(cls, image_size: int = IMAGE_SIZE) -> "ImageGeometry":
        """Older images: fixed 655360-byte bitmap region."""
        n = (image_size - LEGACY_BITMAP_SIZE) // BLOCK_SIZE
        return cls(image_size, n, LEGACY_BITMAP_SIZE)


DEFAULT_GEOMETRY = ImageGeometry.compact()
LEGACY_GEOMETRY = ImageGeometry.legacy()


# ── Bitmap ─────────────────────────────────────────────────────────────

class Bitmap:
    """Bit-per-block allocation map viewed inside an image buffer.

    The view is live: marking bits writes straight into the underlying
    image, so the caller only has to flush the image afterwards.
    """

    def __init__(self, img: bytearray, geometry: ImageGeometry = DEFAULT_GEOMETRY):
        self._img = img
        self._off = geometry.bitmap_offset
        self._size = geometry.bitmap_size
        self.total = geometry.block_count

    def __len__(self) -> int:
        return self.total

    def is_used(self, index: int) -> bool:
        """Return True if block *index* is marked allocated."""
        byte_idx, bit_idx = divmod(index, 8)
        if byte_idx >= self._size:
            return False
        return bool(self._img[self._off + byte_idx] & (1 << bit_idx))

    def mark_range(self, start: int, length: int, used: bool = True):
        """Set (or clear) *length* consecutive bits starting at *start*.

        Bounds are the caller's responsibility.
        """
        for i in range(start, start + length):
            byte_idx, bit_idx = divmod(i, 8)
            pos = self._off + byte_idx
            if used:
                self._img[pos] |= (1 << bit_idx)
            else:
                self._img[pos] &= ~(1 << bit_idx) & 0xFF
        log.debug("bitmap: %s blocks %d..%d",
                  "mark" if used else "clear", start, start + length - 1)

    def find_first_free(self, count: int = 1) -> BlockIndex:
        """First block that starts a run of *count* free blocks.

        The scan starts just past the root reserve.  Returns len(self),
        an out-of-range sentinel, if no such run exists.
        """
        run_start = RESERVED_BLOCKS
        run_len = 0
        for b in range(RESERVED_BLOCKS, self.total):
            if self.is_used(b):
                run_start = b + 1
                run_len = 0
            else:
                run_len += 1
                if run_len >= count:
                    return BlockIndex(run_start)
        return BlockIndex(self.total)

    def count_free(self) -> int:
        return sum(1 for b in range(RESERVED_BLOCKS, self.total)
                   if not self.is_used(b))


# ── Provisioning ───────────────────────────────────────────────────────

def blank_image(geometry: ImageGeometry = DEFAULT_GEOMETRY) -> bytearray:
    """A zeroed image with the root block reserved."""
    img = bytearray(geometry.image_size)
    Bitmap(img, geometry).mark_range(ROOT_BLOCK, RESERVED_BLOCKS)
    return img


def format_image(path: str | Path, geometry: ImageGeometry = DEFAULT_GEOMETRY):
    """Create (or overwrite) a blank backing image at *path*."""
    Path(path).write_bytes(blank_image(geometry))
    log.info("formatted %s (%d blocks, %d-byte bitmap)",
             path, geometry.block_count, geometry.bitmap_size)
