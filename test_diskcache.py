"""Tests for the DiskCache load/flush discipline and ranged file I/O."""

import errno
import os

import pytest

from blockstore import IMAGE_SIZE
from diskcache import (
    DEFAULT_IMAGE_PATH, BackingFileUnavailable, CacheState, DiskCache,
    default_image_path,
)


def _read_file(path):
    with open(path, "rb") as f:
        return f.read()


def _poke(path, offset, data):
    with open(path, "r+b") as f:
        f.seek(offset)
        f.write(data)


# ── construction ───────────────────────────────────────────────────────

def test_missing_backing_file_is_fatal(tmp_path):
    with pytest.raises(BackingFileUnavailable) as exc:
        DiskCache(tmp_path / "absent.disk")
    assert isinstance(exc.value, OSError)
    assert exc.value.errno == errno.EBADF


def test_short_backing_file_is_fatal(tmp_path):
    path = tmp_path / "short.disk"
    path.write_bytes(b"\x00" * 100)
    with pytest.raises(BackingFileUnavailable):
        DiskCache(path)


def test_loads_full_image(cache):
    assert len(cache.img) == IMAGE_SIZE
    assert cache.state is CacheState.CLEAN


def test_default_image_path(monkeypatch):
    monkeypatch.delenv("FLAT83FS_IMAGE", raising=False)
    assert default_image_path() == DEFAULT_IMAGE_PATH
    monkeypatch.setenv("FLAT83FS_IMAGE", "/tmp/other.disk")
    assert default_image_path() == "/tmp/other.disk"


# ── state machine ──────────────────────────────────────────────────────

def test_clean_dirty_clean(cache):
    cache.mark_dirty()
    assert cache.state is CacheState.DIRTY
    assert cache.dirty
    cache.flush()
    assert cache.state is CacheState.CLEAN


def test_no_second_mutation_while_dirty(cache):
    cache.mark_dirty()
    with pytest.raises(RuntimeError):
        cache.mark_dirty()


def test_acquire_flushes_pending_mutation(cache, image_path):
    img = cache.acquire()
    cache.mark_dirty()
    img[100] = 7
    img = cache.acquire()
    assert cache.state is CacheState.CLEAN
    assert _read_file(image_path)[100] == 7
    assert img[100] == 7


def test_acquire_reloads_durable_state(cache, image_path):
    _poke(image_path, 200, b"\xAA")
    assert cache.acquire()[200] == 0xAA


def test_acquire_without_reload_keeps_mirror(image_path):
    cache = DiskCache(image_path, reload_on_access=False)
    _poke(image_path, 200, b"\xAA")
    assert cache.acquire()[200] == 0


def test_reload_failure_is_bad_descriptor(cache, image_path):
    os.remove(image_path)
    with pytest.raises(OSError) as exc:
        cache.acquire()
    assert exc.value.errno == errno.EBADF
    assert not isinstance(exc.value, BackingFileUnavailable)


def test_flush_failure_keeps_dirty(cache, image_path):
    cache.mark_dirty()
    os.remove(image_path)
    with pytest.raises(OSError) as exc:
        cache.flush()
    assert exc.value.errno == errno.EBADF
    assert cache.state is CacheState.DIRTY


# ── ranged I/O ─────────────────────────────────────────────────────────

def test_pwrite_pread(cache, image_path):
    assert cache.pwrite(1024, b"abc") == 3
    assert cache.pread(1024, 3) == b"abc"
    assert _read_file(image_path)[1024:1027] == b"abc"


def test_pwrite_patches_mirror(image_path):
    cache = DiskCache(image_path, reload_on_access=False)
    cache.pwrite(2048, b"xyz")
    assert cache.img[2048:2051] == b"xyz"


def test_pread_missing_file(cache, image_path):
    os.remove(image_path)
    with pytest.raises(OSError) as exc:
        cache.pread(0, 10)
    assert exc.value.errno == errno.EBADF


def test_pwrite_missing_file(cache, image_path):
    os.remove(image_path)
    with pytest.raises(OSError) as exc:
        cache.pwrite(0, b"x")
    assert exc.value.errno == errno.EBADF
