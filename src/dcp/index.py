"""
Change-detection index built from the result files of prior runs.

Result files mix free-form metadata comment lines with entry lines of the
form ``<algorithm> <hex> <relative-path>``. Parsing is tolerant: each line is
classified on its own and anything that is not a well-formed entry is
skipped, so a damaged or hand-edited historical file never aborts a run.
"""

import logging
import string
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple

from .digest import parse_algorithm
from .exceptions import EmptyIndex, IndexReadError
from .models import DigestAlgorithm

logger = logging.getLogger(__name__)

FORMAT_ID = "dcp-result/1"
COMMENT_PREFIX = "#"
DIGESTS_KEY = "digests"
FILE_ENCODING = "utf-8"
FILE_ERRORS = "surrogateescape"

_HEX_CHARS = frozenset(string.hexdigits)


class IndexLine(NamedTuple):
    """One parsed entry line: a single (path, algorithm) digest."""

    relative_path: str
    algorithm: DigestAlgorithm
    hex_value: str


@dataclass(frozen=True)
class IndexEntry:
    """All digests recorded for one relative path."""

    relative_path: str
    digests: Mapping[DigestAlgorithm, str]


def classify_line(line: str) -> IndexLine | None:
    """
    Classify a single line of a result file.

    Parameters
    ----------
    line : str
        Raw line, with or without its line terminator

    Returns
    -------
    IndexLine | None
        The parsed entry, or None for comments, blank lines and anything
        that does not match ``<algorithm> <hex> <relative-path>``
    """
    line = line.rstrip("\r\n")
    if not line or line.startswith(COMMENT_PREFIX):
        return None

    parts = line.split(" ", 2)
    if len(parts) != 3:
        return None
    name, hex_value, relative_path = parts
    if not relative_path:
        return None

    try:
        algorithm = parse_algorithm(name)
    except ValueError:
        return None

    if len(hex_value) != algorithm.hex_length or not _HEX_CHARS.issuperset(hex_value):
        return None

    return IndexLine(relative_path, algorithm, hex_value.lower())


def _metadata_algorithms(line: str) -> set[DigestAlgorithm] | None:
    """Return the algorithms named by a ``# digests : ...`` line, else None."""
    if not line.startswith(COMMENT_PREFIX):
        return None
    key, sep, value = line[len(COMMENT_PREFIX):].partition(":")
    if not sep or key.strip() != DIGESTS_KEY:
        return None

    found = set()
    for name in value.split(","):
        try:
            found.add(parse_algorithm(name))
        except ValueError:
            continue
    return found or None


def _open_result_file(path: Path):
    try:
        return open(path, "r", encoding=FILE_ENCODING, errors=FILE_ERRORS)
    except OSError as e:
        raise IndexReadError(f"Cannot read index input '{path}': {e}") from e


def peek_algorithms(paths: Iterable[Path]) -> set[DigestAlgorithm]:
    """
    Find which algorithms prior result files recorded, without a full parse.

    For each file the ``# digests :`` metadata line is used if present,
    otherwise the algorithm of the first entry line. Scanning of a file stops
    at whichever comes first.

    Raises
    ------
    IndexReadError
        If a file cannot be opened
    """
    found: set[DigestAlgorithm] = set()
    for path in paths:
        with _open_result_file(Path(path)) as f:
            for line in f:
                declared = _metadata_algorithms(line)
                if declared:
                    found |= declared
                    break
                entry = classify_line(line)
                if entry is not None:
                    found.add(entry.algorithm)
                    break
    return found


def resolve_algorithms(
    paths: Sequence[Path], requested: Iterable[DigestAlgorithm]
) -> tuple[DigestAlgorithm, ...]:
    """
    Choose the digests for a run.

    When prior result files are given, their algorithms win over *requested*
    so that re-verification uses the same digest as the original record.

    Raises
    ------
    EmptyIndex
        If files are given but no algorithm can be found in any of them
    """
    if not paths:
        return DigestAlgorithm.canonical(requested)

    found = peek_algorithms(paths)
    if not found:
        raise EmptyIndex("cannot determine digest types from input file(s)")
    return DigestAlgorithm.canonical(found)


class Index:
    """
    Digests recorded by prior runs, keyed by relative path.

    Build with :meth:`build`; the index is read-only afterwards and may be
    shared between worker threads.
    """

    def __init__(self):
        self._entries: dict[str, dict[DigestAlgorithm, str]] = {}

    @classmethod
    def build(cls, paths: Sequence[Path]) -> "Index":
        """
        Parse prior result files, in order, into an index.

        A later file overrides an earlier one for the same path and algorithm.

        Parameters
        ----------
        paths : Sequence[Path]
            Prior result files, oldest first

        Returns
        -------
        Index
            The populated index

        Raises
        ------
        IndexReadError
            If a file cannot be opened
        EmptyIndex
            If no entry line could be parsed from any file
        """
        index = cls()
        for path in paths:
            path = Path(path)
            parsed = skipped = 0
            with _open_result_file(path) as f:
                for line in f:
                    entry = classify_line(line)
                    if entry is None:
                        if line.strip() and not line.startswith(COMMENT_PREFIX):
                            skipped += 1
                        continue
                    index._add(entry)
                    parsed += 1

            logger.debug(f"index: {parsed} entries from {path} ({skipped} lines skipped)")

        if not index._entries:
            names = ", ".join(str(p) for p in paths) or "<none>"
            raise EmptyIndex(f"No index entries could be parsed from: {names}")

        logger.info(f"index built with {len(index)} paths from {len(paths)} file(s)")
        return index

    def _add(self, entry: IndexLine) -> None:
        self._entries.setdefault(entry.relative_path, {})[entry.algorithm] = entry.hex_value

    def lookup(self, relative_path: str, algorithm: DigestAlgorithm) -> str | None:
        """Return the recorded hex digest for a path, or None."""
        digests = self._entries.get(relative_path)
        if digests is None:
            return None
        return digests.get(algorithm)

    def entry(self, relative_path: str) -> IndexEntry | None:
        digests = self._entries.get(relative_path)
        if digests is None:
            return None
        return IndexEntry(relative_path, MappingProxyType(dict(digests)))

    @property
    def algorithms(self) -> set[DigestAlgorithm]:
        """Every algorithm that appears in at least one entry."""
        return {a for digests in self._entries.values() for a in digests}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, relative_path: object) -> bool:
        return relative_path in self._entries
