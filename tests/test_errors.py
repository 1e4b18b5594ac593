# tests/test_errors.py
import pytest

from autocrawl.attempt import error_kind_for
from autocrawl.errors import (
    ErrorKind,
    NavigationTimeoutError,
    PageAcquisitionError,
    PageBlockedError,
    PageNotFoundError,
    classify_error,
    describe_error,
)


class TestClassifyError:
    """Tests for message-based failure classification."""

    @pytest.mark.parametrize("message,expected", [
        ("Protocol error (Target.createTarget): Target closed", ErrorKind.PROTOCOL_ERROR),
        ("ProtocolError: session closed", ErrorKind.PROTOCOL_ERROR),
        ("Target page, context or browser has been closed", ErrorKind.PROTOCOL_ERROR),
        ("Timeout 30000ms exceeded.", ErrorKind.TIMEOUT),
        ("Operation timed out", ErrorKind.TIMEOUT),
        ("net::ERR_NAME_NOT_RESOLVED at https://x.test", ErrorKind.NETWORK_ERROR),
        ("Navigation failed because page crashed", ErrorKind.NETWORK_ERROR),
        ("Request blocked by client", ErrorKind.BLOCKED),
        ("captcha wall", ErrorKind.BLOCKED),
        ("HTTP 404", ErrorKind.NOT_FOUND),
        ("Page not found", ErrorKind.NOT_FOUND),
        ("something odd happened", ErrorKind.UNKNOWN_ERROR),
        ("", ErrorKind.UNKNOWN_ERROR),
    ])
    def test_classification(self, message, expected):
        assert classify_error(message) == expected

    def test_navigation_exhaustion_beats_timeout(self):
        """A navigation-exhaustion message that mentions a timeout stays navigation_timeout."""
        error = NavigationTimeoutError("https://x.test", "TimeoutError: Timeout 90000ms exceeded")
        assert "timeout" in str(error).lower()
        assert classify_error(str(error)) == ErrorKind.NAVIGATION_TIMEOUT

    def test_protocol_beats_timeout(self):
        assert classify_error("Protocol error: Timeout while waiting") == ErrorKind.PROTOCOL_ERROR

    def test_case_insensitive(self):
        assert classify_error("NET::ERR_CONNECTION_RESET") == ErrorKind.NETWORK_ERROR


class TestDescribeError:
    """Tests for rendering exceptions as classifiable messages."""

    def test_includes_type_name(self):
        assert describe_error(ValueError("bad value")) == "ValueError: bad value"

    def test_empty_message_uses_type_name(self):
        """An exception with no text, like a bare TimeoutError, is still classifiable."""
        assert describe_error(TimeoutError()) == "TimeoutError"
        assert classify_error(describe_error(TimeoutError())) == ErrorKind.TIMEOUT


class TestErrorKindFor:
    """Typed errors map to their kind without string matching."""

    def test_typed_errors(self):
        assert error_kind_for(PageAcquisitionError("x", kind=ErrorKind.TIMEOUT)) == ErrorKind.TIMEOUT
        assert error_kind_for(NavigationTimeoutError("https://x.test")) == ErrorKind.NAVIGATION_TIMEOUT
        assert error_kind_for(PageBlockedError("still blocked")) == ErrorKind.BLOCKED
        assert error_kind_for(PageNotFoundError("gone")) == ErrorKind.NOT_FOUND

    def test_untyped_errors_fall_back_to_message(self):
        assert error_kind_for(RuntimeError("Target closed")) == ErrorKind.PROTOCOL_ERROR
        assert error_kind_for(RuntimeError("weird")) == ErrorKind.UNKNOWN_ERROR

    def test_error_kind_values(self):
        assert {kind.value for kind in ErrorKind} == {
            "protocol_error", "timeout", "navigation_timeout", "network_error",
            "blocked", "not_found", "unknown_error",
        }
