"""
Data models shared by the planner, the copy engine and the result sinks.

Everything that crosses a component boundary is immutable: work items are
produced by the planner and consumed once by the engine, and result records
are handed to a sink which must not change them.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .index import Index

# Default size of the engine's read/write buffer, in bytes
DEFAULT_BUFFER_SIZE = 32 * 1024


# ============================================================================
# Enumerations
# ============================================================================


class DigestAlgorithm(Enum):
    """
    Digest algorithms dcp can compute while copying.

    Definition order is the canonical order: digests are always reported
    MD5, SHA-1, SHA-256, SHA-512, then XXH64, whatever order they were
    requested in.

    Attributes
    ----------
    MD5 : str
        128-bit MD5
    SHA1 : str
        160-bit SHA-1
    SHA256 : str
        256-bit SHA-2
    SHA512 : str
        512-bit SHA-2
    XXH64 : str
        64-bit xxHash, big-endian hex (non-cryptographic, opt-in)
    """

    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"
    XXH64 = "xxh64be"

    @property
    def hex_length(self) -> int:
        """Number of hex characters in a digest of this algorithm."""
        return _HEX_LENGTHS[self]

    @classmethod
    def canonical(cls, algorithms) -> tuple[DigestAlgorithm, ...]:
        """Return *algorithms* de-duplicated and sorted into canonical order."""
        wanted = set(algorithms)
        return tuple(a for a in cls if a in wanted)


_HEX_LENGTHS = {
    DigestAlgorithm.MD5: 32,
    DigestAlgorithm.SHA1: 40,
    DigestAlgorithm.SHA256: 64,
    DigestAlgorithm.SHA512: 128,
    DigestAlgorithm.XXH64: 16,
}


class EntryKind(Enum):
    """Classification of a source path."""

    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


class ChangeStatus(Enum):
    """
    How a copied file relates to the digest recorded for it by a prior run.

    Attributes
    ----------
    NEW : str
        The index has no entry for the path
    UNCHANGED : str
        The recorded digest equals the one just computed
    CHANGED : str
        The recorded digest differs from the one just computed
    UNKNOWN : str
        No index was supplied, or the item failed before it was hashed
    """

    NEW = "new"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    UNKNOWN = "unknown"


class ErrorKind(Enum):
    """Per-item problems captured on a :class:`ResultRecord`."""

    OPEN_FAILED = "open_failed"
    UNSUPPORTED_ENTRY = "unsupported_entry"
    COPY_FAILED = "copy_failed"
    OWNERSHIP_FAILED = "ownership_failed"


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class RecordError:
    """
    A per-item error or warning.

    Attributes
    ----------
    kind : ErrorKind
        What went wrong
    message : str
        Human readable detail, usually the underlying OS error
    """

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class SourceEntry:
    """A source path and what kind of filesystem object it is."""

    path: Path
    kind: EntryKind


@dataclass(frozen=True)
class WorkItem:
    """
    One unit of copy work produced by the planner.

    Attributes
    ----------
    source_path : Path
        File or directory to copy
    destination_path : Path
        Where the copy goes, always ``destination_root / relative_path``
    relative_path : str
        POSIX form of the destination path relative to the destination root;
        this is the key used for index lookups
    kind : EntryKind
        Type of the source entry
    error : RecordError | None, default=None
        Set when the planner already knows the item cannot be copied
    """

    source_path: Path
    destination_path: Path
    relative_path: str
    kind: EntryKind
    error: RecordError | None = None

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True)
class DigestRecord:
    """A computed digest: algorithm and lowercase hex value."""

    algorithm: DigestAlgorithm
    hex_value: str


@dataclass(frozen=True)
class ResultRecord:
    """
    Outcome of processing one :class:`WorkItem`.

    Attributes
    ----------
    source_path : Path
        Source of the item
    destination_path : Path
        Destination of the item
    relative_path : str
        Index key of the item
    kind : EntryKind
        Type of the source entry
    size_bytes : int, default=0
        Bytes copied; always 0 for directories and failed items
    digests : tuple[DigestRecord, ...], default=()
        Digests in canonical algorithm order; empty for directories
    change_status : ChangeStatus, default=ChangeStatus.UNKNOWN
        Classification against the index
    error : RecordError | None, default=None
        Fatal problem for this item, if any
    warnings : tuple[RecordError, ...], default=()
        Non-fatal problems, e.g. ownership could not be applied
    """

    source_path: Path
    destination_path: Path
    relative_path: str
    kind: EntryKind
    size_bytes: int = 0
    digests: tuple[DigestRecord, ...] = ()
    change_status: ChangeStatus = ChangeStatus.UNKNOWN
    error: RecordError | None = None
    warnings: tuple[RecordError, ...] = ()

    @property
    def success(self) -> bool:
        """True if the item was copied (warnings do not count as failure)."""
        return self.error is None

    @property
    def primary_digest(self) -> DigestRecord | None:
        """The digest used for change detection, if any were computed."""
        return self.digests[0] if self.digests else None


# ============================================================================
# Options and summary
# ============================================================================


@dataclass(frozen=True)
class CopyOptions:
    """
    Fully resolved options for one run of the copy engine.

    Attributes
    ----------
    buffer_size : int, default=32768
        Size of the reusable read/write buffer in bytes
    algorithms : tuple[DigestAlgorithm, ...], default=(MD5,)
        Digests to compute; an empty selection falls back to MD5
    owner_uid : int | None, default=None
        Owner applied to every copy; None leaves it unchanged
    owner_gid : int | None, default=None
        Group applied to every copy; None leaves it unchanged
    index : Index | None, default=None
        Digests from prior runs used for change detection
    verbose : bool, default=False
        Log every processed item at INFO level
    workers : int, default=1
        Number of worker threads; 1 processes items sequentially
    """

    buffer_size: int = DEFAULT_BUFFER_SIZE
    algorithms: tuple[DigestAlgorithm, ...] = (DigestAlgorithm.MD5,)
    owner_uid: int | None = None
    owner_gid: int | None = None
    index: Index | None = None
    verbose: bool = False
    workers: int = 1

    def __post_init__(self):
        """Validate configuration."""
        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")
        if self.workers < 1:
            raise ValueError(f"Worker count must be at least 1, got {self.workers}")

        algorithms = DigestAlgorithm.canonical(self.algorithms)
        if not algorithms:
            algorithms = (DigestAlgorithm.MD5,)
        object.__setattr__(self, "algorithms", algorithms)

    @property
    def primary_algorithm(self) -> DigestAlgorithm:
        """First enabled algorithm in canonical order, used for index lookups."""
        return self.algorithms[0]


@dataclass
class RunSummary:
    """
    Aggregate of every record emitted during a run.

    Attributes
    ----------
    total : int
        Number of records
    failed : int
        Records carrying an error
    warning_count : int
        Warnings across all records
    bytes_copied : int
        Sum of ``size_bytes`` over successful records
    failures_by_kind : Counter
        Failed records per :class:`ErrorKind`
    status_counts : Counter
        Records per :class:`ChangeStatus`
    """

    total: int = 0
    failed: int = 0
    warning_count: int = 0
    bytes_copied: int = 0
    failures_by_kind: Counter = field(default_factory=Counter)
    status_counts: Counter = field(default_factory=Counter)

    def add(self, record: ResultRecord) -> None:
        self.total += 1
        self.status_counts[record.change_status] += 1
        self.warning_count += len(record.warnings)
        if record.error is not None:
            self.failed += 1
            self.failures_by_kind[record.error.kind] += 1
        else:
            self.bytes_copied += record.size_bytes

    @property
    def succeeded(self) -> int:
        return self.total - self.failed

    @property
    def success(self) -> bool:
        return self.failed == 0

    def failure_breakdown(self) -> str:
        """Failures per kind, e.g. ``open_failed=2, unsupported_entry=1``."""
        return ", ".join(
            f"{kind.value}={self.failures_by_kind[kind]}"
            for kind in ErrorKind
            if self.failures_by_kind[kind]
        )

    @classmethod
    def from_records(cls, records) -> RunSummary:
        summary = cls()
        for record in records:
            summary.add(record)
        return summary
