"""Reading and writing tar archives that are copied to and from containers."""

from __future__ import annotations

import io
import logging
import os
import posixpath
import shutil
import tarfile
from collections.abc import Iterator
from typing import BinaryIO, Union

log = logging.getLogger(__name__)

Archive = Union[bytes, bytearray, memoryview, BinaryIO]


def _join(dst: str, name: str) -> str:
    """Join and clean two slash separated paths, keeping both parts."""
    parts = [p for p in (dst, name) if p]
    if not parts:
        return ""
    joined = posixpath.normpath("/".join(parts))
    if joined.startswith("//"):
        joined = "/" + joined.lstrip("/")
    return joined


def _archive_bytes(archive: Archive) -> bytes:
    if isinstance(archive, (bytes, bytearray, memoryview)):
        return bytes(archive)
    return archive.read()


def _members(archive: Archive) -> Iterator[tuple[tarfile.TarFile, tarfile.TarInfo]]:
    """Yield every member of the archive together with its open tar file."""
    data = _archive_bytes(archive)
    if not data:
        return
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tf:
        for member in tf:
            yield tf, member


def _walk(src: str) -> Iterator[str]:
    """Yield src and everything below it, depth first in lexical order."""
    yield src
    if os.path.isdir(src) and not os.path.islink(src):
        for entry in sorted(os.listdir(src)):
            yield from _walk(os.path.join(src, entry))


def pack_folder(src: str, out: BinaryIO) -> None:
    """Write the folder src as a tar archive to the binary stream out."""
    with tarfile.open(fileobj=out, mode="w|") as tw:
        for path in _walk(src):
            name = os.path.relpath(path, src).replace(os.sep, "/")
            log.debug("add to tar file: %s", name)
            tw.add(path, arcname=name, recursive=False)


def unpack_file(dst: str, fname: str, archive: Archive, dest: BinaryIO) -> None:
    """Copy the contents of the entry that lands on fname to dest.

    Entry names are resolved relative to dst. Raises FileNotFoundError when
    no entry in the archive matches.
    """
    for tf, member in _members(archive):
        if _join(dst, member.name) == fname:
            fileobj = tf.extractfile(member)
            if fileobj is not None:
                shutil.copyfileobj(fileobj, dest)
            return
    raise FileNotFoundError(f"{fname} not found in archive")


def _targets(dst: str, archive: Archive, want_dir: bool) -> list[str]:
    return [
        _join(dst, member.name)
        for _, member in _members(archive)
        if (member.isdir() if want_dir else member.isreg())
    ]


def get_target_folder_names(dst: str, archive: Archive) -> list[str]:
    """Return the target paths of all folders in the archive."""
    return _targets(dst, archive, want_dir=True)


def get_target_file_names(dst: str, archive: Archive) -> list[str]:
    """Return the target paths of all regular files in the archive."""
    return _targets(dst, archive, want_dir=False)


def is_single_file_archive(archive: Archive) -> bool:
    """Return True if the archive holds exactly one regular file."""
    count = 0
    try:
        for _, member in _members(archive):
            if member.isreg():
                count += 1
                if count >= 2:
                    break
    except tarfile.TarError:
        pass
    return count == 1