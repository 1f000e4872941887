"""Exception hierarchy for the bridge relayer.

This module defines the error taxonomy used across the relayer. Every
error carries a category, a severity and a retryable flag so the pipeline
can decide between retrying, skipping and escalating without inspecting
message text.
"""

import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    CRYPTOGRAPHIC = "cryptographic"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    DECODING = "decoding"
    CONVERSION = "conversion"
    SUBMISSION = "submission"
    SYSTEM = "system"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    chain: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    source_tx_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "chain": self.chain,
            "component": self.component,
            "operation": self.operation,
            "source_tx_id": self.source_tx_id,
            "metadata": self.metadata,
        }


class RelayerError(Exception):
    """Base exception for all relayer errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.retryable = retryable
        self.metadata = metadata or {}
        self.timestamp = time.time()
        self.traceback = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        if self.retryable:
            parts.append("Retryable: Yes")

        return " | ".join(parts)


class ConfigurationError(RelayerError):
    """Configuration error."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "config_key": self.config_key,
                "config_value": str(self.config_value)
                if self.config_value is not None
                else None,
            }
        )
        return data


class CryptographicError(RelayerError):
    """Cryptographic error."""

    def __init__(
        self,
        message: str,
        algorithm: Optional[str] = None,
        key_type: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CRYPTOGRAPHIC,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.algorithm = algorithm
        self.key_type = key_type

    def to_dict(self) -> Dict[str, Any]:
        """Convert cryptographic error to dictionary."""
        data = super().to_dict()
        data.update({"algorithm": self.algorithm, "key_type": self.key_type})
        return data


class TransientIOError(RelayerError):
    """Gateway unreachable, timed out, or answered with a transport error.

    Always retryable; never terminal for the pipeline.
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message, category=ErrorCategory.NETWORK, retryable=True, **kwargs
        )
        self.endpoint = endpoint
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        """Convert transient I/O error to dictionary."""
        data = super().to_dict()
        data.update({"endpoint": self.endpoint, "operation": self.operation})
        return data


class MalformedEventError(RelayerError):
    """A transaction hit the bridge entry point but its fields do not decode."""

    def __init__(
        self,
        message: str,
        chain: Optional[str] = None,
        tx_id: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.DECODING,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.chain = chain
        self.tx_id = tx_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert malformed event error to dictionary."""
        data = super().to_dict()
        data.update({"chain": self.chain, "tx_id": self.tx_id})
        return data


class ConversionError(RelayerError):
    """Amount is dust or overflows the destination after precision normalization."""

    def __init__(
        self,
        message: str,
        amount: Optional[int] = None,
        delta: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CONVERSION,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.amount = amount
        self.delta = delta

    def to_dict(self) -> Dict[str, Any]:
        """Convert conversion error to dictionary."""
        data = super().to_dict()
        data.update({"amount": self.amount, "delta": self.delta})
        return data


class SubmissionRejectedError(RelayerError):
    """The destination executed the call and the verifier rejected it.

    Business-logic failure (duplicate nonce, insufficient signatures); a retry
    would only burn fees.
    """

    def __init__(
        self,
        message: str,
        source_tx_id: Optional[str] = None,
        destination_tx_id: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.SUBMISSION,
            severity=ErrorSeverity.HIGH,
            retryable=False,
            **kwargs,
        )
        self.source_tx_id = source_tx_id
        self.destination_tx_id = destination_tx_id
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Convert submission rejection to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "source_tx_id": self.source_tx_id,
                "destination_tx_id": self.destination_tx_id,
                "reason": self.reason,
            }
        )
        return data


class SubmissionUnconfirmedError(RelayerError):
    """Broadcast succeeded but the result stayed unknown past the retry ceiling."""

    def __init__(
        self,
        message: str,
        source_tx_id: Optional[str] = None,
        destination_tx_id: Optional[str] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            category=ErrorCategory.SUBMISSION,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            **kwargs,
        )
        self.source_tx_id = source_tx_id
        self.destination_tx_id = destination_tx_id
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert unconfirmed submission to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "source_tx_id": self.source_tx_id,
                "destination_tx_id": self.destination_tx_id,
                "attempts": self.attempts,
            }
        )
        return data


def create_transient_error(
    endpoint: str, operation: str, cause: Exception
) -> TransientIOError:
    """Wrap a transport-level failure from a ledger gateway."""
    return TransientIOError(
        message=f"{operation} against '{endpoint}' failed: {cause}",
        endpoint=endpoint,
        operation=operation,
        cause=cause,
    )
