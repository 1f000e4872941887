"""
Unit tests for the relayer error taxonomy and backoff strategies.
"""

import pytest

from casperbridge.errors import (
    BackoffStrategy,
    ConfigurationError,
    ConversionError,
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


class TestRelayerError:
    """Test the base error."""

    def test_defaults(self):
        """Test default severity, category and retryability."""
        error = RelayerError("boom")
        assert error.message == "boom"
        assert error.severity == ErrorSeverity.MEDIUM
        assert error.category == ErrorCategory.SYSTEM
        assert error.retryable is False
        assert isinstance(error.context, ErrorContext)

    def test_to_dict(self):
        """Test dictionary conversion."""
        error = RelayerError(
            "boom",
            error_code="E1",
            context=ErrorContext(chain="casper", source_tx_id="abc"),
            metadata={"k": "v"},
        )
        data = error.to_dict()
        assert data["type"] == "RelayerError"
        assert data["error_code"] == "E1"
        assert data["context"]["chain"] == "casper"
        assert data["context"]["source_tx_id"] == "abc"
        assert data["metadata"] == {"k": "v"}

    def test_str_includes_code_and_retryable(self):
        """Test the string form."""
        error = TransientIOError("timeout", error_code="NET")
        text = str(error)
        assert "TransientIOError: timeout" in text
        assert "Code: NET" in text
        assert "Retryable: Yes" in text


class TestErrorKinds:
    """Test the per-kind error classes."""

    def test_transient_is_retryable(self):
        """Only transient I/O is retryable."""
        assert TransientIOError("x").retryable is True
        assert MalformedEventError("x").retryable is False
        assert ConversionError("x").retryable is False
        assert SubmissionRejectedError("x").retryable is False
        assert SubmissionUnconfirmedError("x").retryable is False

    def test_categories(self):
        """Test categories per error kind."""
        assert TransientIOError("x").category == ErrorCategory.NETWORK
        assert MalformedEventError("x").category == ErrorCategory.DECODING
        assert ConversionError("x").category == ErrorCategory.CONVERSION
        assert SubmissionRejectedError("x").category == ErrorCategory.SUBMISSION
        assert ConfigurationError("x").category == ErrorCategory.CONFIGURATION

    def test_conversion_error_fields(self):
        """Test conversion error payload."""
        error = ConversionError("dust", amount=1, delta=-9)
        data = error.to_dict()
        assert data["amount"] == 1
        assert data["delta"] == -9

    def test_submission_rejected_fields(self):
        """Test rejection payload."""
        error = SubmissionRejectedError(
            "rejected", source_tx_id="s", destination_tx_id="d", reason="dup"
        )
        data = error.to_dict()
        assert data["source_tx_id"] == "s"
        assert data["destination_tx_id"] == "d"
        assert data["reason"] == "dup"

    def test_unconfirmed_is_critical(self):
        """Unconfirmed submissions need an operator."""
        error = SubmissionUnconfirmedError("x", attempts=10)
        assert error.severity == ErrorSeverity.CRITICAL
        assert error.to_dict()["attempts"] == 10

    def test_create_transient_error(self):
        """Test wrapping of transport failures."""
        cause = ConnectionError("refused")
        error = create_transient_error("http://node", "eth_blockNumber", cause)
        assert isinstance(error, TransientIOError)
        assert error.endpoint == "http://node"
        assert error.operation == "eth_blockNumber"
        assert error.cause is cause
        assert "refused" in error.message


class TestBackoffStrategy:
    """Test backoff strategies."""

    def test_fixed(self):
        """Fixed backoff never grows."""
        strategy = BackoffStrategy.fixed(2.0)
        assert [strategy.get_delay(n) for n in (1, 2, 5)] == [2.0, 2.0, 2.0]

    def test_exponential_is_capped(self):
        """Exponential backoff doubles up to the cap."""
        strategy = BackoffStrategy.exponential(1.0, 5.0)
        assert [strategy.get_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_linear(self):
        """Linear backoff grows by the base delay."""
        strategy = BackoffStrategy(strategy_type="linear", base_delay=1.5, max_delay=10.0)
        assert strategy.get_delay(3) == 4.5

    def test_non_positive_attempt(self):
        """Attempt zero waits nothing."""
        assert BackoffStrategy.fixed(3.0).get_delay(0) == 0.0

    def test_jitter_stays_in_band(self):
        """Jitter scales the delay by 0.5-1.5."""
        strategy = BackoffStrategy(
            strategy_type="fixed", base_delay=2.0, max_delay=2.0, jitter=True
        )
        for _ in range(20):
            assert 1.0 <= strategy.get_delay(1) <= 3.0

    def test_unknown_strategy(self):
        """Unknown strategy names are rejected."""
        with pytest.raises(ValueError):
            BackoffStrategy(strategy_type="random")
