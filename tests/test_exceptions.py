"""Test client exceptions.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from collections import Counter

import pytest

from ldap_client.exceptions import (
    AuthenticationError,
    CursorExhausted,
    ErrorCodes,
    FilterSyntaxError,
    InvalidDNError,
    InvalidSessionState,
    LDAPClientError,
    LDAPConnectionError,
    MalformedMessage,
    OperationTimeout,
    OpError,
    ProtocolFramingError,
    SecurityUpgradeError,
    TruncatedMessage,
)
from ldap_client.ldap_codes import LDAPCodes


class TestErrorCodeUniqueness:
    """Test that all ErrorCodes values are unique."""

    def test_all_error_code_values_are_unique(self) -> None:
        """Test that all ErrorCodes enum values are unique."""
        values = [error_code.value for error_code in ErrorCodes]
        duplicates = {
            value: count
            for value, count in Counter(values).items()
            if count > 1
        }

        assert not duplicates, f"Found duplicate ErrorCodes: {duplicates}"


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (LDAPConnectionError, ErrorCodes.CONNECTION_ERROR),
        (SecurityUpgradeError, ErrorCodes.SECURITY_UPGRADE_ERROR),
        (AuthenticationError, ErrorCodes.AUTHENTICATION_ERROR),
        (MalformedMessage, ErrorCodes.MALFORMED_MESSAGE),
        (TruncatedMessage, ErrorCodes.TRUNCATED_MESSAGE),
        (InvalidSessionState, ErrorCodes.INVALID_SESSION_STATE),
        (OpError, ErrorCodes.OPERATION_ERROR),
        (CursorExhausted, ErrorCodes.CURSOR_EXHAUSTED),
        (OperationTimeout, ErrorCodes.OPERATION_TIMEOUT),
        (InvalidDNError, ErrorCodes.INVALID_DN),
        (FilterSyntaxError, ErrorCodes.FILTER_SYNTAX_ERROR),
    ],
)
def test_error_codes(exc: type[LDAPClientError], code: ErrorCodes) -> None:
    """Test every error kind has its own code."""
    assert exc.code == code
    assert issubclass(exc, LDAPClientError)


@pytest.mark.parametrize(
    ("exc", "builtin"),
    [
        (LDAPConnectionError, ConnectionError),
        (OperationTimeout, TimeoutError),
        (InvalidDNError, ValueError),
        (FilterSyntaxError, ValueError),
    ],
)
def test_builtin_bases(exc: type[LDAPClientError], builtin: type) -> None:
    assert issubclass(exc, builtin)


def test_framing_errors() -> None:
    assert issubclass(MalformedMessage, ProtocolFramingError)
    assert issubclass(TruncatedMessage, ProtocolFramingError)


def test_subclass_requires_code() -> None:
    """Test subclasses must declare their code."""
    with pytest.raises(AttributeError):

        class _NoCode(LDAPClientError):
            pass


def test_result_error_message() -> None:
    """Test server result is kept on the error."""
    err = OpError(LDAPCodes.NO_SUCH_OBJECT, "missing", "dc=example")

    assert err.result_code == LDAPCodes.NO_SUCH_OBJECT
    assert err.diagnostic == "missing"
    assert err.matched_dn == "dc=example"
    assert str(err) == "NO_SUCH_OBJECT: missing"
    assert str(OpError(4242)) == "4242"
