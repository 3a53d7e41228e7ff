"""
Single-pass computation of several digests over one byte stream.

A :class:`DigestSet` fans every chunk out to one hash state per enabled
algorithm, so content is read exactly once however many digests are wanted.
"""

import hashlib
from collections.abc import Iterable
from pathlib import Path

import xxhash

from .exceptions import AlreadyFinalized
from .models import DEFAULT_BUFFER_SIZE, DigestAlgorithm, DigestRecord

# Spellings accepted from users, mapped to the canonical algorithm
_ALIASES = {
    "md5": DigestAlgorithm.MD5,
    "sha1": DigestAlgorithm.SHA1,
    "sha-1": DigestAlgorithm.SHA1,
    "sha256": DigestAlgorithm.SHA256,
    "sha-256": DigestAlgorithm.SHA256,
    "sha512": DigestAlgorithm.SHA512,
    "sha-512": DigestAlgorithm.SHA512,
    "xxh64": DigestAlgorithm.XXH64,
    "xxh64be": DigestAlgorithm.XXH64,
}


def parse_algorithm(name: str) -> DigestAlgorithm:
    """
    Map a user-facing algorithm name to a :class:`DigestAlgorithm`.

    Raises
    ------
    ValueError
        If the name is not a supported algorithm
    """
    try:
        return _ALIASES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unsupported hash algorithm: {name}") from None


def parse_algorithms(names: Iterable[str]) -> tuple[DigestAlgorithm, ...]:
    """Parse several algorithm names and return them in canonical order."""
    return DigestAlgorithm.canonical(parse_algorithm(n) for n in names)


def _new_hasher(algorithm: DigestAlgorithm):
    if algorithm is DigestAlgorithm.XXH64:
        return xxhash.xxh64()
    return hashlib.new(algorithm.value)


class DigestSet:
    """
    Accumulator computing every enabled digest in lockstep.

    Parameters
    ----------
    algorithms : Iterable[DigestAlgorithm]
        Algorithms to compute; must not be empty

    Raises
    ------
    ValueError
        If no algorithm is given
    """

    def __init__(self, algorithms: Iterable[DigestAlgorithm]):
        self.algorithms = DigestAlgorithm.canonical(algorithms)
        if not self.algorithms:
            raise ValueError("At least one digest algorithm is required")
        self._hashers = [(a, _new_hasher(a)) for a in self.algorithms]
        self._finalized = False

    @property
    def primary(self) -> DigestAlgorithm:
        return self.algorithms[0]

    def update(self, chunk) -> None:
        """
        Feed one chunk to every hash state.

        Parameters
        ----------
        chunk : bytes | bytearray | memoryview
            Next piece of the stream

        Raises
        ------
        AlreadyFinalized
            If :meth:`finalize` was already called
        """
        if self._finalized:
            raise AlreadyFinalized("DigestSet updated after finalize()")
        for _, hasher in self._hashers:
            hasher.update(chunk)

    def finalize(self) -> tuple[DigestRecord, ...]:
        """
        End the stream and return one record per algorithm, in canonical order.

        Raises
        ------
        AlreadyFinalized
            If called more than once
        """
        if self._finalized:
            raise AlreadyFinalized("DigestSet already finalized")
        self._finalized = True
        return tuple(
            DigestRecord(algorithm, hasher.hexdigest().lower())
            for algorithm, hasher in self._hashers
        )


def hash_file(
    path: Path,
    algorithms: Iterable[DigestAlgorithm] = (DigestAlgorithm.MD5,),
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> tuple[DigestRecord, ...]:
    """Hash a file in a single pass with every algorithm in *algorithms*."""
    digests = DigestSet(algorithms)
    with open(path, "rb") as f:
        while chunk := f.read(buffer_size):
            digests.update(chunk)
    return digests.finalize()
