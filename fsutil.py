#!/usr/bin/env python3
"""
fsutil.py — command-line tool for flat83fs backing images.

Provisions images and drives the filesystem handlers against them without
a mount, which is handy for preparing and inspecting test images.

Usage:
  python fsutil.py [--image PATH] [-v] COMMAND ...

  format [--legacy]        create a blank 5 MiB image
  info                     geometry, directory count and free blocks
  ls [PATH]                list a directory (default: /)
  stat PATH                show attributes of a path
  mkdir PATH               create /dir
  touch PATH               create /dir/name.ext
  write PATH FILE          write a host file into /dir/name.ext
  cat PATH                 copy a file's contents to stdout

The image path defaults to $FLAT83FS_IMAGE, or ".disk".
"""

from __future__ import annotations

import argparse
import errno
import logging
import os
import sys

from blockstore import DEFAULT_GEOMETRY, LEGACY_GEOMETRY, Bitmap, format_image
from diskcache import BackingFileUnavailable, DiskCache, default_image_path
from fsops import FlatFS
from records import DirectoryRecord, RootDirectory

log = logging.getLogger("fsutil")

LOG_LEVEL_ENV = "FLAT83FS_LOG"


def _setup_logging(verbosity: int):
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = os.environ.get(LOG_LEVEL_ENV, "WARNING").upper()
    logging.basicConfig(level=level,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")


def image_info(cache: DiskCache) -> dict:
    """Summary of an opened image."""
    img = cache.acquire()
    root = RootDirectory(img)
    geo = cache.geometry
    return {
        "image_size": geo.image_size,
        "blocks": geo.block_count,
        "bitmap_bytes": geo.bitmap_size,
        "directories": root.count,
        "files": sum(DirectoryRecord(img, d.start_block).count for d in root),
        "free_blocks": Bitmap(img, geo).count_free(),
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsutil",
        description="flat83fs backing image utility",
    )
    parser.add_argument("--image", default=default_image_path(),
                        help="Backing image path (default: $FLAT83FS_IMAGE or .disk)")
    parser.add_argument("--legacy", action="store_true",
                        help="Use the legacy 655360-byte bitmap geometry")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("format", help="Create a blank image")
    sub.add_parser("info", help="Show image summary")

    p_ls = sub.add_parser("ls", help="List a directory")
    p_ls.add_argument("path", nargs="?", default="/")

    p_stat = sub.add_parser("stat", help="Show attributes of a path")
    p_stat.add_argument("path")

    p_mkdir = sub.add_parser("mkdir", help="Create a directory under /")
    p_mkdir.add_argument("path")

    p_touch = sub.add_parser("touch", help="Create an empty file")
    p_touch.add_argument("path")

    p_write = sub.add_parser("write", help="Write a host file into the image")
    p_write.add_argument("path")
    p_write.add_argument("file", help="Host file to copy in")
    p_write.add_argument("--offset", type=int, default=0)

    p_cat = sub.add_parser("cat", help="Print a file from the image")
    p_cat.add_argument("path")

    return parser


def run(args: argparse.Namespace) -> int:
    geometry = LEGACY_GEOMETRY if args.legacy else DEFAULT_GEOMETRY

    if args.cmd == "format":
        format_image(args.image, geometry)
        print(f"Formatted {args.image} ({geometry.block_count} blocks)")
        return 0

    fs = FlatFS(DiskCache(args.image, geometry))

    if args.cmd == "info":
        for key, value in image_info(fs.cache).items():
            print(f"{key:<14} {value}")

    elif args.cmd == "ls":
        for name in fs.readdir(args.path):
            print(name)

    elif args.cmd == "stat":
        attrs = fs.getattr(args.path)
        print(f"{args.path}: {attrs.kind} mode=0o{attrs.mode:o} "
              f"nlink={attrs.nlink} size={attrs.size}")

    elif args.cmd == "mkdir":
        fs.mkdir(args.path)

    elif args.cmd == "touch":
        fs.mknod(args.path)

    elif args.cmd == "write":
        with open(args.file, "rb") as f:
            data = f.read()
        n = fs.write(args.path, data, len(data), args.offset)
        print(f"Wrote {n} bytes to {args.path}")

    elif args.cmd == "cat":
        size = fs.getattr(args.path).size
        sys.stdout.buffer.write(fs.read(args.path, size, 0))

    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.cmd is None:
        parser.print_help()
        return 0

    try:
        return run(args)
    except BackingFileUnavailable as e:
        log.error("%s", e)
        print(f"fsutil: fatal: {e.strerror}: {e.filename}", file=sys.stderr)
        return 2
    except OSError as e:
        name = errno.errorcode.get(e.errno, "EIO")
        print(f"fsutil: {name}: {e.strerror}: {e.filename}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
