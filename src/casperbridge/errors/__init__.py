"""Relayer error handling.

Exception taxonomy for the bridge pipeline plus the backoff strategies used
when an operation is retried.
"""

from .exceptions import (
    ConfigurationError,
    ConversionError,
    CryptographicError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    MalformedEventError,
    RelayerError,
    SubmissionRejectedError,
    SubmissionUnconfirmedError,
    TransientIOError,
    create_transient_error,
)
from .recovery import BackoffStrategy

__all__ = [
    # Exceptions
    "RelayerError",
    "ConfigurationError",
    "CryptographicError",
    "TransientIOError",
    "MalformedEventError",
    "ConversionError",
    "SubmissionRejectedError",
    "SubmissionUnconfirmedError",
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "create_transient_error",
    # Recovery
    "BackoffStrategy",
]
