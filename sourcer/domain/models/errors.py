"""Exception types raised inside the infrastructure layer.

None of these cross the request executor boundary: the executor converts
each of them into an ApiResponse carrying the matching ErrorKind.
"""

from typing import Optional


class SourcerError(Exception):
    """Base class for sourcer exceptions."""


class ConfigurationValueError(SourcerError, ValueError):
    """Raised at startup when a configuration value is invalid."""


class TransportError(SourcerError):
    """Connection, DNS or socket timeout failure talking to the marketplace."""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        self.original_exception = original_exception
        super().__init__(message)


class SignatureValidationError(SourcerError):
    """Raised when a response is missing its signature header."""
