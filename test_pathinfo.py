"""Tests for 8.3 path decomposition and creation-time validation."""

import errno

import pytest

from pathinfo import (
    PathInfo, directory_name_for_create, resolve, resolve_for_create,
    slash_count,
)


@pytest.mark.parametrize("path, expected", [
    ("/",                  ("", "", "", "")),
    ("/docs",              ("docs", "", "", "")),
    ("/docs/a.txt",        ("docs", "a.txt", "a", "txt")),
    ("/docs/readme",       ("readme", "", "", "")),
    ("/docs/",             ("", "", "", "")),
    ("/a.b",               ("", "a.b", "a", "b")),
    ("/d/archive.tar.gz",  ("d", "archive.tar.gz", "archive.tar", "gz")),
    ("/d.x/f.t",           ("d.x", "f.t", "f", "t")),
    ("",                   ("", "", "", "")),
])
def test_resolve(path, expected):
    assert resolve(path) == PathInfo(*expected)


def test_resolve_is_file():
    assert resolve("/docs/a.txt").is_file
    assert not resolve("/docs").is_file


def test_slash_count():
    assert slash_count("/") == 1
    assert slash_count("/a/b.c") == 2
    assert slash_count("/a/b/c.d") == 3


# ── file creation ──────────────────────────────────────────────────────

def test_resolve_for_create_ok():
    assert resolve_for_create("/docs/notes.txt") == \
        PathInfo("docs", "notes.txt", "notes", "txt")
    assert resolve_for_create("/12345678/12345678.123").file_name == "12345678"


@pytest.mark.parametrize("path", [
    "/d/averylongname.ext",
    "/d/a.text",
    "/ninechars/a.txt",
])
def test_resolve_for_create_name_too_long(path):
    with pytest.raises(OSError) as exc:
        resolve_for_create(path)
    assert exc.value.errno == errno.ENAMETOOLONG


@pytest.mark.parametrize("path", [
    "/a/b/c.txt",
    "/a/b/averylongname.txt",
])
def test_resolve_for_create_too_deep(path):
    with pytest.raises(PermissionError) as exc:
        resolve_for_create(path)
    assert exc.value.errno == errno.EPERM


# ── directory creation ─────────────────────────────────────────────────

def test_directory_name_ok():
    assert directory_name_for_create("/docs") == "docs"
    assert directory_name_for_create("/12345678") == "12345678"


@pytest.mark.parametrize("path", ["/toolongname", "/toolongname/x"])
def test_directory_name_too_long(path):
    with pytest.raises(OSError) as exc:
        directory_name_for_create(path)
    assert exc.value.errno == errno.ENAMETOOLONG


@pytest.mark.parametrize("path", ["/a/b", "/abcdefgh/x", "/docs/", "/", "docs",
                                  "/a.b", "/.hidden"])
def test_directory_name_not_permitted(path):
    with pytest.raises(PermissionError):
        directory_name_for_create(path)
