"""Exceptions for dcp.

Only run-level problems are raised. Per-item failures during a copy are
captured as :class:`~dcp.models.RecordError` values on the item's record.
"""


class DcpError(Exception):
    """Base class for all dcp errors."""


class ConfigError(DcpError, ValueError):
    """Raised when options from the command line or environment are invalid."""


class AlreadyFinalized(DcpError, RuntimeError):
    """Raised when a :class:`~dcp.digest.DigestSet` is used after ``finalize()``."""


class EmptyIndex(DcpError):
    """Raised when no usable entries can be parsed from any prior result file."""


class IndexReadError(DcpError, OSError):
    """Raised when a prior result file given as index input cannot be read."""


class DestinationUnavailable(DcpError, OSError):
    """Raised when the destination root cannot be created or written to."""
