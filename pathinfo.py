"""
pathinfo.py — 8.3 path decomposition for the two-level flat83fs tree.

Every path has the shape ``/dir`` or ``/dir/name.ext``.  ``resolve`` splits
a path in one left-to-right pass; the ``*_for_create`` variants add the
name-length and depth rules enforced when something new is created.

Loose inputs are accepted rather than rejected, matching what images in
the wild were built with:

    "/"             dir=""        (root)
    "/docs"         dir="docs"
    "/docs/a.txt"   dir="docs"    name="a"  ext="txt"
    "/docs/readme"  dir="readme"  (no dot: the tail is a directory)
    "/docs/"        dir=""
    "/a.b"          dir=""        name="a"  ext="b"
"""

from __future__ import annotations

import errno
import logging
from typing import NamedTuple

from records import MAX_EXTENSION, MAX_FILENAME

log = logging.getLogger(__name__)


class PathInfo(NamedTuple):
    dir_name: str
    full_name: str
    file_name: str
    extension: str

    @property
    def is_file(self) -> bool:
        return bool(self.full_name)


def slash_count(path: str) -> int:
    return path.count("/")


def resolve(path: str) -> PathInfo:
    """Split *path* into (dir_name, full_name, file_name, extension).

    Fields that do not apply are empty strings.
    """
    dir_name = full_name = file_name = extension = ""
    last_slash = 0
    last_dot = 0
    slashes = 0
    in_dir = in_file = False

    for i, ch in enumerate(path):
        if ch == "/":
            in_dir, in_file = True, False
            slashes += 1
            last_slash = i
            if slashes == 2:
                dir_name = path[1:i]
        elif ch == ".":
            in_dir, in_file = False, True
            last_dot = i

    tail = path[last_slash + 1:]
    if in_dir:
        dir_name = tail
    elif in_file:
        full_name = tail
        file_name = path[last_slash + 1 : last_dot]
        extension = path[last_dot + 1:]

    info = PathInfo(dir_name, full_name, file_name, extension)
    log.debug("resolve %r -> %s", path, info)
    return info


def _too_long(name: str, limit: int) -> bool:
    return len(name.encode("utf-8")) > limit


def resolve_for_create(path: str) -> PathInfo:
    """``resolve`` plus the rules for creating a file.

    Raises OSError(ENAMETOOLONG) when a component breaks 8.3 naming and
    OSError(EPERM) when the path nests deeper than /dir/file.  The depth
    rule wins when both apply.
    """
    info = resolve(path)
    if slash_count(path) > 2:
        raise OSError(errno.EPERM, "Only one directory level is allowed", path)
    if (_too_long(info.file_name, MAX_FILENAME)
            or _too_long(info.extension, MAX_EXTENSION)
            or _too_long(info.dir_name, MAX_FILENAME)):
        raise OSError(errno.ENAMETOOLONG, "Name is not 8.3", path)
    return info


def directory_name_for_create(path: str) -> str:
    """Validate a mkdir path and return the new directory's name.

    The path is scanned from the end: a component longer than 8 characters
    raises ENAMETOOLONG and a second slash raises EPERM, whichever the scan
    meets first.
    """
    letters = 0
    slashes = 0
    for ch in reversed(path):
        if letters > MAX_FILENAME:
            raise OSError(errno.ENAMETOOLONG, "Directory name is too long", path)
        if ch == "/":
            slashes += 1
            letters = 0
        else:
            letters += len(ch.encode("utf-8"))
        if slashes > 1:
            raise OSError(errno.EPERM, "Directories may only be created in /", path)
    if letters > MAX_FILENAME:
        raise OSError(errno.ENAMETOOLONG, "Directory name is too long", path)

    name = path[1:] if path.startswith("/") else path
    if not name:
        raise OSError(errno.EPERM, "Missing directory name", path)
    if slashes == 0:
        # relative names have no place in the tree
        raise OSError(errno.EPERM, "Path must start at /", path)
    if "." in name:
        # a dotted path resolves as a file, so the directory could never be found
        raise OSError(errno.EPERM, "Directory names take no extension", path)
    return name
