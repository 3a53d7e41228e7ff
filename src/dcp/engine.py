"""
Digest-aware copy engine.

Architecture:
- The engine reads each source once, writing every chunk to the destination
  and feeding it to all enabled digests in the same iteration
- One fixed-size buffer per engine is reused for every file in the run
- Per-item failures are captured on the item's record; only configuration
  problems (e.g. an unusable destination root) abort a run
- Output is delegated to a result sink; the engine never formats records
"""

import contextlib
import errno
import logging
import os
import stat
import tempfile
import threading
from collections import deque
from collections.abc import Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO

from .digest import DigestSet
from .exceptions import DestinationUnavailable
from .models import (
    ChangeStatus,
    CopyOptions,
    DigestRecord,
    ErrorKind,
    RecordError,
    ResultRecord,
    RunSummary,
    WorkItem,
)
from .planner import plan
from .sinks import ResultSink

logger = logging.getLogger(__name__)


# ============================================================================
# Core Copy Engine
# ============================================================================


class CopyEngine:
    """
    Processes work items one at a time.

    An engine owns its scratch buffer and is not thread-safe; give every
    worker thread its own engine.

    Parameters
    ----------
    options : CopyOptions
        Resolved options for the run
    """

    def __init__(self, options: CopyOptions):
        self.options = options
        self._buffer = bytearray(options.buffer_size)
        self._view = memoryview(self._buffer)

    def process(self, item: WorkItem) -> ResultRecord:
        """
        Copy one work item and describe the outcome.

        Parameters
        ----------
        item : WorkItem
            File or directory to copy

        Returns
        -------
        ResultRecord
            Exactly one record; failures are reported through its ``error``
            field rather than raised
        """
        if item.error is not None:
            record = self._record(item, error=item.error)
        elif item.is_directory:
            record = self._process_directory(item)
        else:
            record = self._process_file(item)

        self._log(record)
        return record

    # ------------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------------

    def _record(self, item: WorkItem, **fields) -> ResultRecord:
        return ResultRecord(
            source_path=item.source_path,
            destination_path=item.destination_path,
            relative_path=item.relative_path,
            kind=item.kind,
            **fields,
        )

    def _failed(self, item: WorkItem, kind: ErrorKind, message: str) -> ResultRecord:
        return self._record(item, error=RecordError(kind, message))

    def _process_directory(self, item: WorkItem) -> ResultRecord:
        try:
            item.destination_path.mkdir(exist_ok=True)
        except OSError as e:
            return self._failed(
                item, ErrorKind.OPEN_FAILED, f"cannot create directory: {e}"
            )

        warnings = self._apply_ownership(item.destination_path)
        return self._record(item, warnings=warnings)

    def _process_file(self, item: WorkItem) -> ResultRecord:
        destination = item.destination_path

        try:
            # Unbuffered: the engine's own buffer is the only read cache
            src = open(item.source_path, "rb", buffering=0)
        except OSError as e:
            return self._failed(item, ErrorKind.OPEN_FAILED, f"cannot open source: {e}")

        with src:
            try:
                dst, temp_path = self._open_temp(destination, src)
            except OSError as e:
                return self._failed(
                    item, ErrorKind.OPEN_FAILED, f"cannot create destination: {e}"
                )

            try:
                with dst:
                    size, digests = self._stream(src, dst)
                temp_path.replace(destination)
            except OSError as e:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
                return self._failed(item, ErrorKind.COPY_FAILED, str(e))

        return self._record(
            item,
            size_bytes=size,
            digests=digests,
            change_status=self._change_status(item, digests),
            warnings=self._apply_ownership(destination),
        )

    def _open_temp(self, destination: Path, src) -> tuple[BinaryIO, Path]:
        """
        Create a uniquely named temporary sibling of *destination*.

        The copy is written there and renamed on success, so a failed copy
        never leaves a truncated file at the destination path. The name is
        unique, so it cannot clash with a source file that is also copied
        into the same directory.

        Raises
        ------
        OSError
            If the temporary file cannot be created, or a directory already
            occupies the destination path
        """
        try:
            mode = os.lstat(destination).st_mode
        except FileNotFoundError:
            pass
        else:
            if stat.S_ISDIR(mode):
                raise IsADirectoryError(
                    errno.EISDIR, os.strerror(errno.EISDIR), str(destination)
                )

        fd, name = tempfile.mkstemp(
            prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent
        )
        try:
            # mkstemp creates the file 0600; the copy gets the source's mode
            os.fchmod(fd, stat.S_IMODE(os.fstat(src.fileno()).st_mode) & 0o777)
            return os.fdopen(fd, "wb"), Path(name)
        except OSError:
            os.close(fd)
            with contextlib.suppress(OSError):
                os.unlink(name)
            raise

    def _stream(self, src, dst) -> tuple[int, tuple[DigestRecord, ...]]:
        """Copy src to dst through the shared buffer, hashing in the same pass."""
        digests = DigestSet(self.options.algorithms)
        view = self._view
        size = 0

        while n := src.readinto(view):
            chunk = view[:n]
            dst.write(chunk)
            digests.update(chunk)
            size += n

        return size, digests.finalize()

    def _change_status(
        self, item: WorkItem, digests: tuple[DigestRecord, ...]
    ) -> ChangeStatus:
        index = self.options.index
        if index is None:
            return ChangeStatus.UNKNOWN

        primary = digests[0]
        recorded = index.lookup(item.relative_path, primary.algorithm)
        if recorded is None:
            return ChangeStatus.NEW
        if recorded.lower() == primary.hex_value:
            return ChangeStatus.UNCHANGED
        return ChangeStatus.CHANGED

    def _apply_ownership(self, path: Path) -> tuple[RecordError, ...]:
        """Apply the configured owner/group; failures become warnings."""
        uid, gid = self.options.owner_uid, self.options.owner_gid
        if uid is None and gid is None:
            return ()

        try:
            os.chown(path, -1 if uid is None else uid, -1 if gid is None else gid)
        except OSError as e:
            return (
                RecordError(
                    ErrorKind.OWNERSHIP_FAILED,
                    f"cannot set owner {uid}:{gid} on {path}: {e}",
                ),
            )
        return ()

    def _log(self, record: ResultRecord) -> None:
        if record.error is not None:
            logger.error(
                f"✗ {record.relative_path}: {record.error.kind.value}: {record.error.message}"
            )
            return

        for warning in record.warnings:
            logger.warning(f"{record.relative_path}: {warning.message}")

        level = logging.INFO if self.options.verbose else logging.DEBUG
        if record.digests:
            logger.log(
                level,
                f"✓ {record.relative_path} ({record.size_bytes:,} bytes, "
                f"{record.change_status.value})",
            )
        else:
            logger.log(level, f"✓ {record.relative_path}/")


# ============================================================================
# Run orchestration
# ============================================================================


def prepare_destination_root(destination_root: Path) -> Path:
    """
    Make sure the destination root exists and is writable.

    Raises
    ------
    DestinationUnavailable
        If the directory cannot be created or written to
    """
    destination_root = Path(destination_root)
    try:
        destination_root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DestinationUnavailable(
            f"Cannot create destination '{destination_root}': {e}"
        ) from e

    if not os.access(destination_root, os.W_OK | os.X_OK):
        raise DestinationUnavailable(f"Destination '{destination_root}' is not writable")
    return destination_root


def _process_sequential(
    items: Iterable[WorkItem], options: CopyOptions
) -> Iterator[ResultRecord]:
    engine = CopyEngine(options)
    for item in items:
        yield engine.process(item)


def _process_parallel(
    items: Iterable[WorkItem], options: CopyOptions
) -> Iterator[ResultRecord]:
    """
    Process file items on a thread pool, yielding records in item order.

    Directories are created on the calling thread as soon as they are
    planned, before any of their children is submitted.
    """
    local = threading.local()

    def work(item: WorkItem) -> ResultRecord:
        engine = getattr(local, "engine", None)
        if engine is None:
            engine = local.engine = CopyEngine(options)
        return engine.process(item)

    directory_engine = CopyEngine(options)
    pending: deque[Future] = deque()

    with ThreadPoolExecutor(
        max_workers=options.workers, thread_name_prefix="dcp-worker"
    ) as executor:
        for item in items:
            if item.is_directory:
                future = Future()
                future.set_result(directory_engine.process(item))
            else:
                future = executor.submit(work, item)
            pending.append(future)

            while pending and pending[0].done():
                yield pending.popleft().result()

        while pending:
            yield pending.popleft().result()


def run_copy(
    sources: Iterable[Path],
    destination_root: Path,
    options: CopyOptions,
    sink: ResultSink,
) -> RunSummary:
    """
    Copy every source into *destination_root* and report each item to *sink*.

    Parameters
    ----------
    sources : Iterable[Path]
        Files and directories to copy
    destination_root : Path
        Directory the sources are copied into; created if missing
    options : CopyOptions
        Resolved options for the run
    sink : ResultSink
        Receives every record in enumeration order, then the summary

    Returns
    -------
    RunSummary
        Counts of processed, failed and changed items

    Raises
    ------
    DestinationUnavailable
        If the destination root is unusable; raised before any item is copied
    """
    destination_root = prepare_destination_root(destination_root)
    items = plan(sources, destination_root)

    if options.workers > 1:
        records = _process_parallel(items, options)
    else:
        records = _process_sequential(items, options)

    summary = RunSummary()
    for record in records:
        sink.emit(record)
        summary.add(record)

    logger.info(
        f"copied {summary.succeeded}/{summary.total} item(s), "
        f"{summary.bytes_copied:,} bytes"
    )
    if summary.failed:
        logger.warning(f"{summary.failed} item(s) failed ({summary.failure_breakdown()})")

    sink.close(summary)
    return summary
