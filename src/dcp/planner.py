"""
Enumeration of copy work.

Turns a list of source paths and a destination root into an ordered stream
of :class:`~dcp.models.WorkItem` objects. Directories are walked depth-first
with children sorted by name, so a parent directory is always planned before
anything inside it and identical inputs always give identical plans.
"""

import os
import stat
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath

from .models import EntryKind, ErrorKind, RecordError, SourceEntry, WorkItem


def classify(path: Path) -> EntryKind:
    """
    Classify a path without following symbolic links.

    A path that cannot be stat'ed is reported as a FILE so that the failure
    surfaces when the engine tries to open it.
    """
    try:
        mode = os.lstat(path).st_mode
    except OSError:
        return EntryKind.FILE

    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    if stat.S_ISREG(mode):
        return EntryKind.FILE
    return EntryKind.OTHER


def _describe(path: Path) -> str:
    try:
        mode = os.lstat(path).st_mode
    except OSError:
        return "unknown entry"
    if stat.S_ISLNK(mode):
        return "symbolic link"
    if stat.S_ISFIFO(mode):
        return "fifo"
    if stat.S_ISSOCK(mode):
        return "socket"
    if stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        return "device node"
    return "special file"


def _children(directory: Path) -> list[SourceEntry]:
    """List a directory's entries sorted by name. Raises OSError."""
    with os.scandir(directory) as it:
        names = sorted(entry.name for entry in it)
    entries = []
    for name in names:
        child = directory / name
        entries.append(SourceEntry(child, classify(child)))
    return entries


def _walk(
    entry: SourceEntry, destination_root: Path, relative: PurePosixPath
) -> Iterator[WorkItem]:
    rel = relative.as_posix()
    destination = destination_root / relative

    if entry.kind is EntryKind.OTHER:
        message = f"unsupported {_describe(entry.path)}: {entry.path}"
        yield WorkItem(
            entry.path,
            destination,
            rel,
            entry.kind,
            RecordError(ErrorKind.UNSUPPORTED_ENTRY, message),
        )
        return

    if entry.kind is EntryKind.FILE:
        yield WorkItem(entry.path, destination, rel, entry.kind)
        return

    try:
        children = _children(entry.path)
    except OSError as e:
        yield WorkItem(
            entry.path,
            destination,
            rel,
            entry.kind,
            RecordError(ErrorKind.OPEN_FAILED, str(e)),
        )
        return

    yield WorkItem(entry.path, destination, rel, entry.kind)
    for child in children:
        yield from _walk(child, destination_root, relative / child.path.name)


def plan(sources: Iterable[Path], destination_root: Path) -> Iterator[WorkItem]:
    """
    Enumerate the work items for copying *sources* into *destination_root*.

    Parameters
    ----------
    sources : Iterable[Path]
        Files and directories to copy, in the order given by the caller
    destination_root : Path
        Directory every source is copied into, as ``destination_root/basename``

    Yields
    ------
    WorkItem
        Items in depth-first order, parents before children. Symbolic links
        and special files yield one item carrying an UNSUPPORTED_ENTRY error;
        enumeration of their siblings continues. A filesystem root such as
        ``/`` has no basename and is rejected the same way, with an empty
        relative path.
    """
    destination_root = Path(destination_root)
    for source in sources:
        source = Path(source)
        # abspath so that "." and ".." get the name of the directory they denote
        name = Path(os.path.abspath(source)).name
        if not name:
            # A filesystem root has no name to copy it under
            yield WorkItem(
                source,
                destination_root,
                "",
                classify(source),
                RecordError(
                    ErrorKind.UNSUPPORTED_ENTRY, f"cannot copy a filesystem root: {source}"
                ),
            )
            continue
        entry = SourceEntry(source, classify(source))
        yield from _walk(entry, destination_root, PurePosixPath(name))
