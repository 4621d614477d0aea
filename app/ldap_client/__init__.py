"""Asyncio LDAPv3 client core.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from .client import LDAPClient
from .config import Settings
from .controls import Control, PagedResultsValue
from .dialogue import LDAPSession, SessionState
from .dispatcher import OperationDispatcher, SearchResult
from .dn import DistinguishedName
from .exceptions import (
    AuthenticationError,
    CursorExhausted,
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
from .filter import SearchFilter
from .ldap_codes import LDAPCodes
from .messages import LDAPRequestMessage, LDAPResponseMessage, decode, encode
from .objects import Changes, DerefAliases, Entry, Operation, Scope
from .pagination import CursorState, PagedSearchCursor
from .transport import TCPTransport, Transport

__all__ = [
    "AuthenticationError",
    "Changes",
    "Control",
    "CursorExhausted",
    "CursorState",
    "DerefAliases",
    "DistinguishedName",
    "Entry",
    "FilterSyntaxError",
    "InvalidDNError",
    "InvalidSessionState",
    "LDAPClient",
    "LDAPClientError",
    "LDAPCodes",
    "LDAPConnectionError",
    "LDAPRequestMessage",
    "LDAPResponseMessage",
    "LDAPSession",
    "MalformedMessage",
    "OpError",
    "Operation",
    "OperationDispatcher",
    "OperationTimeout",
    "PagedResultsValue",
    "PagedSearchCursor",
    "ProtocolFramingError",
    "Scope",
    "SearchFilter",
    "SearchResult",
    "SecurityUpgradeError",
    "Settings",
    "SessionState",
    "TCPTransport",
    "Transport",
    "TruncatedMessage",
    "decode",
    "encode",
]
