"""Exceptions for LDAP client operations.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from enum import IntEnum


class ErrorCodes(IntEnum):
    """Error codes."""

    BASE_ERROR = 0
    CONNECTION_ERROR = 1
    SECURITY_UPGRADE_ERROR = 2
    AUTHENTICATION_ERROR = 3
    MALFORMED_MESSAGE = 4
    TRUNCATED_MESSAGE = 5
    INVALID_SESSION_STATE = 6
    OPERATION_ERROR = 7
    CURSOR_EXHAUSTED = 8
    OPERATION_TIMEOUT = 9
    INVALID_DN = 10
    FILTER_SYNTAX_ERROR = 11


class LDAPClientError(Exception):
    """Base client exception."""

    code: ErrorCodes = ErrorCodes.BASE_ERROR

    def __init_subclass__(cls) -> None:
        """Initialize subclass."""
        super().__init_subclass__()

        if "code" not in cls.__dict__:
            raise AttributeError("code must be set")


class LDAPConnectionError(LDAPClientError, ConnectionError):
    """Transport is unreachable or was reset, session is unusable."""

    code = ErrorCodes.CONNECTION_ERROR


class SecurityUpgradeError(LDAPClientError):
    """StartTLS handshake failed or was not allowed."""

    code = ErrorCodes.SECURITY_UPGRADE_ERROR


class _ResultError(LDAPClientError):
    """Server reported a result code other than success."""

    code = ErrorCodes.BASE_ERROR

    def __init__(
        self,
        result_code: int,
        diagnostic: str = "",
        matched_dn: str = "",
    ) -> None:
        """Keep server result."""
        self.result_code = result_code
        self.diagnostic = diagnostic
        self.matched_dn = matched_dn
        super().__init__(result_code, diagnostic)

    def __str__(self) -> str:
        """Result code with diagnostic message."""
        name = getattr(self.result_code, "name", str(self.result_code))
        if self.diagnostic:
            return f"{name}: {self.diagnostic}"
        return name


class AuthenticationError(_ResultError):
    """Bind was rejected, session stays usable as anonymous."""

    code = ErrorCodes.AUTHENTICATION_ERROR


class OpError(_ResultError):
    """Operation failed on server side, session stays usable."""

    code = ErrorCodes.OPERATION_ERROR


class ProtocolFramingError(LDAPClientError):
    """Base for codec errors, framing is presumed corrupted."""

    code = ErrorCodes.MALFORMED_MESSAGE


class MalformedMessage(ProtocolFramingError):
    """Unknown tag or unexpected structure."""

    code = ErrorCodes.MALFORMED_MESSAGE


class TruncatedMessage(ProtocolFramingError):
    """Element length exceeds the remaining buffer."""

    code = ErrorCodes.TRUNCATED_MESSAGE


class InvalidSessionState(LDAPClientError):
    """Session can not perform operations in the current state."""

    code = ErrorCodes.INVALID_SESSION_STATE


class CursorExhausted(LDAPClientError):
    """Paged search cursor has no more pages."""

    code = ErrorCodes.CURSOR_EXHAUSTED


class OperationTimeout(LDAPClientError, TimeoutError):
    """No response in time, request is abandoned locally."""

    code = ErrorCodes.OPERATION_TIMEOUT


class InvalidDNError(LDAPClientError, ValueError):
    """Distinguished name can not be parsed."""

    code = ErrorCodes.INVALID_DN


class FilterSyntaxError(LDAPClientError, ValueError):
    """Search filter string can not be parsed."""

    code = ErrorCodes.FILTER_SYNTAX_ERROR
