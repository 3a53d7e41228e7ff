#!/usr/bin/env python3
"""
Tests for the change-detection index.

Tests cover:
- Line classification of result files
- Last-writer-wins across multiple input files
- Tolerance of malformed lines
- Digest type detection from prior result files
"""

import shutil
import sys
import tempfile
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dcp import DigestAlgorithm, EmptyIndex, Index, IndexReadError
from dcp.index import classify_line, peek_algorithms, resolve_algorithms

MD5_A = "0123456789abcdef0123456789abcdef"
MD5_B = "fedcba9876543210fedcba9876543210"
SHA1_A = "a" * 40


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def index_dir():
    """Create and cleanup a directory for result files."""
    test_dir = tempfile.mkdtemp()
    yield Path(test_dir)
    shutil.rmtree(test_dir)


def _write(path: Path, *lines: str) -> Path:
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    return path


# ============================================================================
# Line classification
# ============================================================================


def test_classify_entry_line() -> None:
    entry = classify_line(f"md5 {MD5_A} photos/a.jpg\n")

    assert entry is not None
    assert entry.relative_path == "photos/a.jpg"
    assert entry.algorithm is DigestAlgorithm.MD5
    assert entry.hex_value == MD5_A


def test_classify_keeps_spaces_in_path() -> None:
    """Everything after the second space belongs to the path."""
    entry = classify_line(f"md5 {MD5_A} my photos/day 1.jpg")
    assert entry.relative_path == "my photos/day 1.jpg"


def test_classify_lowercases_hex() -> None:
    entry = classify_line(f"sha1 {'ABCDEF0123' * 4} x")
    assert entry.hex_value == "abcdef0123" * 4


def test_classify_crlf_line() -> None:
    entry = classify_line(f"md5 {MD5_A} a.txt\r\n")
    assert entry.relative_path == "a.txt"


@pytest.mark.parametrize(
    "line",
    [
        "",
        "\n",
        "# format      : dcp-result/1",
        f"# error open_failed a.txt: {MD5_A}",
        "garbage",
        f"md5 {MD5_A}",
        f"md5 {MD5_A} ",
        f"crc32 {MD5_A} a.txt",
        f"md5 {MD5_A[:-1]} a.txt",
        f"md5 {'g' * 32} a.txt",
        f"sha1 {MD5_A} a.txt",
    ],
)
def test_classify_rejects_non_entries(line: str) -> None:
    """Comments, blank lines and malformed entries are all skipped."""
    assert classify_line(line) is None


# ============================================================================
# Index building
# ============================================================================


def test_build_and_lookup(index_dir) -> None:
    result = _write(
        index_dir / "run.out",
        "# File Generated by dcp DO NOT EDIT",
        "# digests     : md5, sha1",
        f"md5 {MD5_A} src/a.txt",
        f"sha1 {SHA1_A} src/a.txt",
        f"md5 {MD5_B} src/b.txt",
    )

    index = Index.build([result])

    assert len(index) == 2
    assert "src/a.txt" in index
    assert "src/c.txt" not in index
    assert index.lookup("src/a.txt", DigestAlgorithm.MD5) == MD5_A
    assert index.lookup("src/a.txt", DigestAlgorithm.SHA1) == SHA1_A
    assert index.lookup("src/b.txt", DigestAlgorithm.SHA1) is None
    assert index.lookup("missing", DigestAlgorithm.MD5) is None
    assert index.algorithms == {DigestAlgorithm.MD5, DigestAlgorithm.SHA1}


def test_entry_is_read_only(index_dir) -> None:
    result = _write(index_dir / "run.out", f"md5 {MD5_A} a.txt")
    index = Index.build([result])

    entry = index.entry("a.txt")

    assert entry.relative_path == "a.txt"
    assert dict(entry.digests) == {DigestAlgorithm.MD5: MD5_A}
    with pytest.raises(TypeError):
        entry.digests[DigestAlgorithm.MD5] = MD5_B
    assert index.entry("b.txt") is None


def test_later_file_wins(index_dir) -> None:
    """The last file given overrides earlier ones for the same path."""
    first = _write(index_dir / "first.out", f"md5 {MD5_A} a.txt", f"md5 {MD5_A} b.txt")
    second = _write(index_dir / "second.out", f"md5 {MD5_B} a.txt")

    index = Index.build([first, second])

    assert index.lookup("a.txt", DigestAlgorithm.MD5) == MD5_B
    assert index.lookup("b.txt", DigestAlgorithm.MD5) == MD5_A

    reversed_index = Index.build([second, first])
    assert reversed_index.lookup("a.txt", DigestAlgorithm.MD5) == MD5_A


def test_later_line_wins_within_file(index_dir) -> None:
    result = _write(index_dir / "run.out", f"md5 {MD5_A} a.txt", f"md5 {MD5_B} a.txt")
    assert Index.build([result]).lookup("a.txt", DigestAlgorithm.MD5) == MD5_B


def test_garbage_lines_are_skipped(index_dir) -> None:
    """A damaged file still yields its valid entries."""
    result = _write(
        index_dir / "damaged.out",
        "not an entry at all",
        f"md5 {MD5_A[:10]} truncated.txt",
        f"md5 {MD5_A} good.txt",
        "\x00\x01binary junk",
    )

    index = Index.build([result])

    assert len(index) == 1
    assert index.lookup("good.txt", DigestAlgorithm.MD5) == MD5_A


def test_undecodable_bytes_do_not_abort(index_dir) -> None:
    result = index_dir / "latin1.out"
    result.write_bytes(b"\xff\xfe garbage\n" + f"md5 {MD5_A} ok.txt\n".encode())

    index = Index.build([result])
    assert "ok.txt" in index


def test_empty_index_raises(index_dir) -> None:
    """Input files without a single entry line are fatal."""
    result = _write(index_dir / "empty.out", "# only comments", "", "junk")

    with pytest.raises(EmptyIndex):
        Index.build([result])


def test_unreadable_input_raises(index_dir) -> None:
    with pytest.raises(IndexReadError):
        Index.build([index_dir / "missing.out"])


# ============================================================================
# Digest type detection
# ============================================================================


def test_peek_uses_digests_header(index_dir) -> None:
    result = _write(
        index_dir / "run.out",
        "# File Generated by dcp DO NOT EDIT",
        "# digests     : md5, sha256",
        f"md5 {MD5_A} a.txt",
    )
    assert peek_algorithms([result]) == {DigestAlgorithm.MD5, DigestAlgorithm.SHA256}


def test_peek_falls_back_to_first_entry(index_dir) -> None:
    result = _write(index_dir / "bare.out", "junk", f"sha1 {SHA1_A} a.txt")
    assert peek_algorithms([result]) == {DigestAlgorithm.SHA1}


def test_peek_unions_files(index_dir) -> None:
    first = _write(index_dir / "a.out", f"md5 {MD5_A} a.txt")
    second = _write(index_dir / "b.out", f"sha1 {SHA1_A} a.txt")
    assert peek_algorithms([first, second]) == {DigestAlgorithm.MD5, DigestAlgorithm.SHA1}


def test_resolve_without_inputs_uses_request() -> None:
    requested = [DigestAlgorithm.SHA256, DigestAlgorithm.MD5]
    assert resolve_algorithms([], requested) == (DigestAlgorithm.MD5, DigestAlgorithm.SHA256)


def test_resolve_inputs_override_request(index_dir) -> None:
    """Re-verification uses the digest the prior run recorded."""
    result = _write(index_dir / "run.out", f"sha1 {SHA1_A} a.txt")
    assert resolve_algorithms([result], [DigestAlgorithm.SHA512]) == (DigestAlgorithm.SHA1,)


def test_resolve_without_any_algorithm_raises(index_dir) -> None:
    result = _write(index_dir / "empty.out", "# nothing here")
    with pytest.raises(EmptyIndex):
        resolve_algorithms([result], [DigestAlgorithm.MD5])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
