"""
dcp: copy files while computing their digests.

Each source file is read once; the same pass writes the copy and feeds every
enabled digest. Results of a run can be fed back as the index of a later run
to report which files changed in between.
"""

__version__ = "1.0.0"
__author__ = "dcp project"
__description__ = "Digest-aware file copying with change detection"

from .digest import DigestSet, hash_file, parse_algorithms
from .engine import CopyEngine, run_copy
from .exceptions import (
    AlreadyFinalized,
    ConfigError,
    DcpError,
    DestinationUnavailable,
    EmptyIndex,
    IndexReadError,
)
from .index import Index, IndexEntry, peek_algorithms, resolve_algorithms
from .models import (
    ChangeStatus,
    CopyOptions,
    DigestAlgorithm,
    DigestRecord,
    EntryKind,
    ErrorKind,
    RecordError,
    ResultRecord,
    RunSummary,
    WorkItem,
)
from .planner import plan
from .sinks import MemorySink, ResultFileSink, ResultSink, RunMetadata
from .cli import main

__all__ = [
    "AlreadyFinalized",
    "ChangeStatus",
    "ConfigError",
    "CopyEngine",
    "CopyOptions",
    "DcpError",
    "DestinationUnavailable",
    "DigestAlgorithm",
    "DigestRecord",
    "DigestSet",
    "EmptyIndex",
    "EntryKind",
    "ErrorKind",
    "Index",
    "IndexEntry",
    "IndexReadError",
    "MemorySink",
    "RecordError",
    "ResultFileSink",
    "ResultRecord",
    "ResultSink",
    "RunMetadata",
    "RunSummary",
    "WorkItem",
    "hash_file",
    "main",
    "parse_algorithms",
    "peek_algorithms",
    "plan",
    "resolve_algorithms",
    "run_copy",
]
