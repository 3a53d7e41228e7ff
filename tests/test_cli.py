#!/usr/bin/env python3
"""
Tests for configuration resolution and the command-line interface.

Tests cover:
- Cache size parsing
- Digest flag selection
- Owner and group resolution
- Environment defaults and flag precedence
- End-to-end runs through main()
"""

import hashlib
import os
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dcp import ConfigError, DigestAlgorithm, EmptyIndex, Index, main
from dcp.cli import parse_arguments
from dcp.config import (
    RunConfig,
    parse_cache_size,
    resolve_group,
    resolve_owner,
    select_algorithms,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def cli_env():
    """Create a source tree and an output location for CLI runs."""
    test_dir = tempfile.mkdtemp()
    test_path = Path(test_dir)

    source = test_path / "footage"
    source.mkdir()
    (source / "a.mov").write_bytes(b"A" * 4096)
    (source / "b.mov").write_bytes(b"B" * 100)

    yield {
        "root": test_path,
        "source": source,
        "dest": test_path / "backup",
        "output": test_path / "run.out",
    }

    shutil.rmtree(test_dir)


# ============================================================================
# Value parsing
# ============================================================================


@pytest.mark.parametrize(
    "text, expected",
    [
        (None, 32768),
        ("4096", 4096),
        ("64k", 64 * 1024),
        ("64K", 64 * 1024),
        ("8M", 8 * 1024 * 1024),
        ("1g", 1024 * 1024 * 1024),
        ("0x100", 256),
        ("010", 8),
        ("020k", 16 * 1024),
        ("0o17", 15),
    ],
)
def test_parse_cache_size(text, expected) -> None:
    assert parse_cache_size(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "12q", "k", "0", "-5", "08", "019"])
def test_parse_cache_size_invalid(text) -> None:
    with pytest.raises(ConfigError):
        parse_cache_size(text)


def test_select_algorithms_default_md5() -> None:
    assert select_algorithms() == (DigestAlgorithm.MD5,)


def test_select_algorithms_flags() -> None:
    assert select_algorithms(sha512=True, sha1=True) == (
        DigestAlgorithm.SHA1,
        DigestAlgorithm.SHA512,
    )
    assert select_algorithms(xxh64=True) == (DigestAlgorithm.XXH64,)


def test_select_all() -> None:
    assert select_algorithms(all=True, xxh64=True) == (
        DigestAlgorithm.MD5,
        DigestAlgorithm.SHA1,
        DigestAlgorithm.SHA256,
        DigestAlgorithm.SHA512,
        DigestAlgorithm.XXH64,
    )


def test_resolve_owner_and_group() -> None:
    assert resolve_owner(None) == os.geteuid()
    assert resolve_group(None) == os.getegid()
    assert resolve_owner("1234") == 1234
    assert resolve_group("4321") == 4321


def test_unknown_owner_falls_back(caplog) -> None:
    with patch("dcp.config.pwd.getpwnam", side_effect=KeyError("nobody-here")):
        assert resolve_owner("nobody-here") == os.geteuid()
    with patch("dcp.config.grp.getgrnam", side_effect=KeyError("nobody-here")):
        assert resolve_group("nobody-here") == os.getegid()
    assert "lookup for 'nobody-here' failed" in caplog.text


def test_named_owner_lookup() -> None:
    with patch("dcp.config.pwd.getpwnam") as getpwnam:
        getpwnam.return_value.pw_uid = 501
        assert resolve_owner("media") == 501
    getpwnam.assert_called_once_with("media")


# ============================================================================
# RunConfig
# ============================================================================


def test_config_from_args(cli_env) -> None:
    args = parse_arguments(
        ["--sha256", "-c", "8k", "-j", "3", str(cli_env["source"]), str(cli_env["dest"])]
    )

    config = RunConfig.from_args(args, environ={})

    assert config.sources == [cli_env["source"]]
    assert config.destination == cli_env["dest"]
    assert config.output is None
    assert config.options.algorithms == (DigestAlgorithm.SHA256,)
    assert config.options.buffer_size == 8192
    assert config.options.workers == 3
    assert config.options.index is None
    assert config.options.owner_uid == os.geteuid()


def test_environment_defaults(cli_env) -> None:
    args = parse_arguments([str(cli_env["source"]), str(cli_env["dest"])])
    environ = {"DCP_CACHE_SIZE": "1M", "DCP_OWNER": "1234", "DCP_GROUP": "4321"}

    config = RunConfig.from_args(args, environ)

    assert config.options.buffer_size == 1024 * 1024
    assert config.options.owner_uid == 1234
    assert config.options.owner_gid == 4321
    assert config.owner_name == "1234"


def test_flags_override_environment(cli_env) -> None:
    args = parse_arguments(
        ["-c", "2k", "-u", "77", str(cli_env["source"]), str(cli_env["dest"])]
    )

    config = RunConfig.from_args(args, {"DCP_CACHE_SIZE": "1M", "DCP_OWNER": "1234"})

    assert config.options.buffer_size == 2048
    assert config.options.owner_uid == 77


def test_bad_environment_cache_size(cli_env) -> None:
    args = parse_arguments([str(cli_env["source"]), str(cli_env["dest"])])
    with pytest.raises(ConfigError):
        RunConfig.from_args(args, {"DCP_CACHE_SIZE": "lots"})


def test_missing_operands() -> None:
    with pytest.raises(ConfigError, match="missing file operand"):
        RunConfig.from_args(parse_arguments([]), {})
    with pytest.raises(ConfigError, match="missing destination file operand after 'only'"):
        RunConfig.from_args(parse_arguments(["only"]), {})


def test_multiple_sources(cli_env) -> None:
    args = parse_arguments(["one", "two", "three", str(cli_env["dest"])])
    config = RunConfig.from_args(args, {})
    assert config.sources == [Path("one"), Path("two"), Path("three")]


def test_inputs_decide_algorithms(cli_env) -> None:
    prior = cli_env["root"] / "prior.out"
    prior.write_text("# digests     : sha1\n" + f"sha1 {'e' * 40} footage/a.mov\n")
    args = parse_arguments(
        ["--sha512", "-i", str(prior), str(cli_env["source"]), str(cli_env["dest"])]
    )

    config = RunConfig.from_args(args, {})

    assert config.options.algorithms == (DigestAlgorithm.SHA1,)
    assert isinstance(config.options.index, Index)
    assert "footage/a.mov" in config.options.index


def test_empty_input_is_rejected(cli_env) -> None:
    prior = cli_env["root"] / "prior.out"
    prior.write_text("# nothing useful\n")
    args = parse_arguments(["-i", str(prior), str(cli_env["source"]), str(cli_env["dest"])])

    with pytest.raises(EmptyIndex):
        RunConfig.from_args(args, {})


# ============================================================================
# main()
# ============================================================================


def test_main_copies_and_writes_results(cli_env) -> None:
    code = main(
        [
            "--sha1",
            "-o",
            str(cli_env["output"]),
            str(cli_env["source"]),
            str(cli_env["dest"]),
        ]
    )

    assert code == 0
    assert (cli_env["dest"] / "footage" / "a.mov").read_bytes() == b"A" * 4096
    lines = cli_env["output"].read_text().splitlines()
    assert lines[0] == "# File Generated by dcp DO NOT EDIT"
    assert f"sha1 {hashlib.sha1(b'A' * 4096).hexdigest()} footage/a.mov" in lines
    assert lines[-1].startswith("# summary     : 3 item(s), 3 copied, 0 failed")


def test_main_second_run_reads_first(cli_env) -> None:
    assert main(["-o", str(cli_env["output"]), str(cli_env["source"]), str(cli_env["dest"])]) == 0
    (cli_env["source"] / "b.mov").write_bytes(b"changed")
    second = cli_env["root"] / "second.out"

    code = main(
        [
            "-i",
            str(cli_env["output"]),
            "-o",
            str(second),
            str(cli_env["source"]),
            str(cli_env["dest"]),
        ]
    )

    assert code == 0
    assert f"md5 {hashlib.md5(b'changed').hexdigest()} footage/b.mov" in second.read_text()


def test_main_reports_item_failures(cli_env) -> None:
    missing = cli_env["root"] / "missing.mov"

    code = main(["-o", str(cli_env["output"]), str(missing), str(cli_env["source"]), str(cli_env["dest"])])

    assert code == 1
    text = cli_env["output"].read_text()
    assert "# error open_failed missing.mov:" in text
    assert "# failures    : open_failed=1" in text
    assert (cli_env["dest"] / "footage" / "b.mov").exists()


def test_main_invalid_parameter(cli_env) -> None:
    assert main(["only-a-source"]) == 1
    assert main(["-c", "huge", str(cli_env["source"]), str(cli_env["dest"])]) == 1


def test_main_unusable_destination(cli_env) -> None:
    blocker = cli_env["root"] / "blocker"
    blocker.write_text("not a directory")

    code = main(["-o", str(cli_env["output"]), str(cli_env["source"]), str(blocker / "dest")])

    assert code == 1


def test_main_default_output_name(cli_env) -> None:
    cwd = os.getcwd()
    os.chdir(cli_env["root"])
    try:
        assert main([str(cli_env["source"]), str(cli_env["dest"])]) == 0
        assert main([str(cli_env["source"]), str(cli_env["dest"])]) == 0
    finally:
        os.chdir(cwd)

    assert (cli_env["root"] / "dcp.out").exists()
    assert (cli_env["root"] / "dcp(1).out").exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
