"""
Result sinks: where the copy engine's records go.

The result-file format written by :class:`ResultFileSink` is the one
:mod:`dcp.index` reads back, so the output of one run can be the index of
the next.
"""

import errno
import json
import os
import socket
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TextIO

from .index import COMMENT_PREFIX, DIGESTS_KEY, FILE_ENCODING, FILE_ERRORS, FORMAT_ID
from .models import DigestAlgorithm, ResultRecord, RunSummary

HEADER_TITLE = "File Generated by dcp DO NOT EDIT"
DEFAULT_OUTPUT_NAME = "dcp"
_KEY_WIDTH = 11


class ResultSink(Protocol):
    """Receives one record per processed item, in engine order, then a summary."""

    def emit(self, record: ResultRecord) -> None: ...

    def close(self, summary: RunSummary) -> None: ...


class MemorySink:
    """Keep every record in memory; used by library callers and tests."""

    def __init__(self):
        self.records: list[ResultRecord] = []
        self.summary: RunSummary | None = None

    def emit(self, record: ResultRecord) -> None:
        self.records.append(record)

    def close(self, summary: RunSummary) -> None:
        self.summary = summary


def _getcwd() -> str | None:
    try:
        return os.getcwd()
    except OSError:
        return None


@dataclass
class RunMetadata:
    """
    Description of a run, written as the header of a result file.

    Attributes
    ----------
    version : str
        dcp version
    command : list[str]
        Command line the run was started with
    algorithms : tuple[DigestAlgorithm, ...]
        Digests computed by the run
    sources : list[str]
        Source operands
    destination : str
        Destination operand
    output : str | None
        Name of the result file itself
    owner : str | None, default=None
        Owner name requested for the copies
    group : str | None, default=None
        Group name requested for the copies
    """

    version: str
    command: list[str]
    algorithms: tuple[DigestAlgorithm, ...]
    sources: list[str]
    destination: str
    output: str | None = None
    owner: str | None = None
    group: str | None = None
    timestamp: str = field(default_factory=time.ctime)
    host: str = field(default_factory=socket.gethostname)
    cwd: str | None = field(default_factory=_getcwd)

    def lines(self) -> list[str]:
        """Header lines, without line terminators."""
        pairs = [
            ("format", FORMAT_ID),
            ("version", self.version),
            ("timestamp", self.timestamp),
            ("command", " ".join(self.command)),
            (DIGESTS_KEY, ", ".join(a.value for a in self.algorithms)),
            ("host", self.host),
        ]
        if self.cwd is not None:
            pairs.append(("cwd", json.dumps(self.cwd)))
        pairs.append(("sources", json.dumps(self.sources)))
        pairs.append(("destination", json.dumps(self.destination)))
        pairs.append(("output", json.dumps(self.output)))
        if self.owner is not None:
            pairs.append(("data_owner", self.owner))
        if self.group is not None:
            pairs.append(("data_group", self.group))

        return [f"{COMMENT_PREFIX} {HEADER_TITLE}"] + [
            _metadata_line(key, value) for key, value in pairs
        ]


def _metadata_line(key: str, value: str) -> str:
    return f"{COMMENT_PREFIX} {key.ljust(_KEY_WIDTH)} : {value}"


def _one_line(text: str) -> str:
    return " ".join(text.splitlines())


class ResultFileSink:
    """
    Write records in the ``dcp-result/1`` text format.

    Parameters
    ----------
    stream : TextIO
        Open text stream to write to
    metadata : RunMetadata | None, default=None
        Header written before the first record
    close_stream : bool, default=False
        Close *stream* when the run ends
    """

    def __init__(
        self,
        stream: TextIO,
        metadata: RunMetadata | None = None,
        close_stream: bool = False,
    ):
        self.stream = stream
        self.close_stream = close_stream
        if metadata is not None:
            for line in metadata.lines():
                self._write(line)

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")

    def emit(self, record: ResultRecord) -> None:
        path = record.relative_path
        multiline = "\n" in path or "\r" in path
        shown = repr(path) if multiline else path

        if record.error is not None:
            self._write(
                f"{COMMENT_PREFIX} error {record.error.kind.value} {shown}: "
                f"{_one_line(record.error.message)}"
            )
            return

        for warning in record.warnings:
            self._write(
                f"{COMMENT_PREFIX} warning {warning.kind.value} {shown}: "
                f"{_one_line(warning.message)}"
            )

        if record.digests and multiline:
            # Entry lines cannot carry a line break
            self._write(f"{COMMENT_PREFIX} unindexable {shown}: path contains a line break")
            return

        for digest in record.digests:
            self._write(f"{digest.algorithm.value} {digest.hex_value} {path}")

    def close(self, summary: RunSummary) -> None:
        self._write(
            _metadata_line(
                "summary",
                f"{summary.total} item(s), {summary.succeeded} copied, "
                f"{summary.failed} failed, {summary.warning_count} warning(s)",
            )
        )
        if summary.failed:
            self._write(_metadata_line("failures", summary.failure_breakdown()))
        self.stream.flush()
        if self.close_stream:
            self.stream.close()


def open_result_stream(path: Path | None = None, directory: Path | None = None):
    """
    Open the stream a run's results are written to.

    Parameters
    ----------
    path : Path | None, default=None
        Explicit output file, truncated if it exists
    directory : Path | None, default=None
        Where to create the default file when *path* is not given
        (current directory if None)

    Returns
    -------
    tuple[TextIO, Path]
        The open stream and the file's path. Without an explicit path the
        first free name of ``dcp.out``, ``dcp(1).out``, ``dcp(2).out``, ...
        is created exclusively.

    Raises
    ------
    OSError
        If the file cannot be created
    """
    if path is not None:
        path = Path(path)
        return open(path, "w", encoding=FILE_ENCODING, errors=FILE_ERRORS), path

    directory = Path(directory) if directory is not None else Path(".")
    i = 0
    while True:
        suffix = f"({i})" if i else ""
        candidate = directory / f"{DEFAULT_OUTPUT_NAME}{suffix}.out"
        try:
            fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o666)
        except OSError as e:
            if e.errno != errno.EEXIST:
                raise
            i += 1
            continue
        return os.fdopen(fd, "w", encoding=FILE_ENCODING, errors=FILE_ERRORS), candidate
