"""
Resolution of command-line and environment settings into :class:`CopyOptions`.

Command-line flags win over the ``DCP_OWNER``, ``DCP_GROUP`` and
``DCP_CACHE_SIZE`` environment variables. User and group names are resolved
to numeric ids here; the copy engine only ever sees the numbers.
"""

import argparse
import grp
import logging
import os
import pwd
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigError
from .index import Index, resolve_algorithms
from .models import DEFAULT_BUFFER_SIZE, CopyOptions, DigestAlgorithm

logger = logging.getLogger(__name__)

ENV_OWNER = "DCP_OWNER"
ENV_GROUP = "DCP_GROUP"
ENV_CACHE_SIZE = "DCP_CACHE_SIZE"

_SIZE_SUFFIXES = {"k": 1024, "m": 1024 * 1024, "g": 1024 * 1024 * 1024}


def parse_cache_size(text: str | None) -> int:
    """
    Parse a cache (buffer) size such as ``32768``, ``0x8000``, ``64k`` or ``8M``.

    Parameters
    ----------
    text : str | None
        Size in bytes with an optional k/m/g suffix (powers of 1024);
        None gives the default size. A ``0x`` prefix is hexadecimal and a
        leading ``0`` is octal.

    Returns
    -------
    int
        Size in bytes

    Raises
    ------
    ConfigError
        If the value or its suffix is not understood, or is not positive
    """
    if text is None:
        return DEFAULT_BUFFER_SIZE

    value = text.strip()
    multiplier = 1
    if value and value[-1].lower() in _SIZE_SUFFIXES:
        multiplier = _SIZE_SUFFIXES[value[-1].lower()]
        value = value[:-1]

    # Same bases as C's strtol(..., 0): 0x hex, leading 0 octal, else decimal
    digits = value.lstrip("+-")
    try:
        if len(digits) > 1 and digits[0] == "0" and digits[1].isdigit():
            size = int(value, 8)
        else:
            size = int(value, 0)
    except ValueError:
        raise ConfigError(f"invalid cache size: '{text}'") from None

    size *= multiplier
    if size <= 0:
        raise ConfigError(f"cache size must be positive: '{text}'")
    return size


def resolve_owner(name: str | None) -> int:
    """Return the uid for *name*, falling back to the effective uid."""
    if name is None:
        return os.geteuid()
    if name.isdigit():
        return int(name)
    try:
        return pwd.getpwnam(name).pw_uid
    except KeyError:
        logger.warning(f"uid lookup for '{name}' failed, defaulting to euid")
        return os.geteuid()


def resolve_group(name: str | None) -> int:
    """Return the gid for *name*, falling back to the effective gid."""
    if name is None:
        return os.getegid()
    if name.isdigit():
        return int(name)
    try:
        return grp.getgrnam(name).gr_gid
    except KeyError:
        logger.warning(f"gid lookup for '{name}' failed, defaulting to egid")
        return os.getegid()


def select_algorithms(
    md5: bool = False,
    sha1: bool = False,
    sha256: bool = False,
    sha512: bool = False,
    xxh64: bool = False,
    all: bool = False,
) -> tuple[DigestAlgorithm, ...]:
    """Translate digest flags into algorithms; MD5 when nothing is selected."""
    if all:
        selected = [
            DigestAlgorithm.MD5,
            DigestAlgorithm.SHA1,
            DigestAlgorithm.SHA256,
            DigestAlgorithm.SHA512,
        ]
    else:
        flags = {
            DigestAlgorithm.MD5: md5,
            DigestAlgorithm.SHA1: sha1,
            DigestAlgorithm.SHA256: sha256,
            DigestAlgorithm.SHA512: sha512,
        }
        selected = [algorithm for algorithm, on in flags.items() if on]
    if xxh64:
        selected.append(DigestAlgorithm.XXH64)
    return DigestAlgorithm.canonical(selected) or (DigestAlgorithm.MD5,)


@dataclass
class RunConfig:
    """
    Everything a run needs, resolved from arguments and environment.

    Attributes
    ----------
    sources : list[Path]
        Source operands
    destination : Path
        Destination operand, before any rewriting
    options : CopyOptions
        Options for the copy engine
    output : Path | None
        Explicit result file, or None for the default name
    inputs : list[Path]
        Prior result files the index was built from
    owner_name : str | None
        Owner as given by the user
    group_name : str | None
        Group as given by the user
    """

    sources: list[Path]
    destination: Path
    options: CopyOptions
    output: Path | None = None
    inputs: list[Path] = field(default_factory=list)
    owner_name: str | None = None
    group_name: str | None = None

    @classmethod
    def from_args(
        cls, args: argparse.Namespace, environ: Mapping[str, str] | None = None
    ) -> "RunConfig":
        """
        Create config from command-line arguments and the environment.

        Raises
        ------
        ConfigError
            If an operand is missing or a value cannot be parsed
        EmptyIndex
            If input files were given but hold no usable entries
        IndexReadError
            If an input file cannot be read
        """
        environ = os.environ if environ is None else environ

        paths = [Path(p) for p in args.paths]
        if not paths:
            raise ConfigError("missing file operand")
        if len(paths) == 1:
            raise ConfigError(f"missing destination file operand after '{paths[0]}'")

        owner_name = args.owner if args.owner is not None else environ.get(ENV_OWNER)
        group_name = args.group if args.group is not None else environ.get(ENV_GROUP)
        cache_size = (
            args.cache_size if args.cache_size is not None else environ.get(ENV_CACHE_SIZE)
        )

        requested = select_algorithms(
            md5=args.md5,
            sha1=args.sha1,
            sha256=args.sha256,
            sha512=args.sha512,
            xxh64=args.xxh64,
            all=args.all,
        )

        # Prior result files decide the digests, so re-verification compares
        # like with like
        inputs = [Path(p) for p in args.inputs or []]
        algorithms = resolve_algorithms(inputs, requested)
        if inputs and algorithms != requested:
            logger.info(
                "using digests from input file(s): "
                + ", ".join(a.value for a in algorithms)
            )
        index = Index.build(inputs) if inputs else None

        options = CopyOptions(
            buffer_size=parse_cache_size(cache_size),
            algorithms=algorithms,
            owner_uid=resolve_owner(owner_name),
            owner_gid=resolve_group(group_name),
            index=index,
            verbose=args.verbose,
            workers=args.workers,
        )

        return cls(
            sources=paths[:-1],
            destination=paths[-1],
            options=options,
            output=Path(args.output) if args.output else None,
            inputs=inputs,
            owner_name=owner_name,
            group_name=group_name,
        )
