"""Error taxonomy for the run-sql pipeline.

Every stage raises one of these and the orchestrator lets them propagate
unchanged, so the CLI can report the failure kind without guessing.
"""

from __future__ import annotations


class RunSqlError(Exception):
    """Base exception for all run-sql errors."""


class ConfigurationError(RunSqlError):
    """Raised when credential or session inputs are missing or contradictory."""


class AuthenticationError(RunSqlError):
    """Raised when the warehouse rejects or fails session establishment."""


class StreamError(RunSqlError):
    """Raised when reading a chunk of the response stream fails."""

    def __init__(self, message: str, timed_out: bool = False):
        self.timed_out = timed_out
        super().__init__(message)


class PayloadParseError(RunSqlError):
    """Raised when reassembled bytes are not a valid response record."""


class DecodeError(RunSqlError):
    """Raised when a valid response record carries unusable result data."""


class ShapeMismatchError(RunSqlError):
    """Raised when an output mode is given a result shape it cannot render."""


class QueryError(RunSqlError):
    """Raised when the warehouse reports the statement itself failed."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(f"{code}: {message}" if code else message)
