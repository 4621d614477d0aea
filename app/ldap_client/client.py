"""LDAP client facade.

```
async with LDAPClient(Settings(HOST="ldap.example.com")) as client:
    await client.bind("cn=admin,dc=example,dc=com", "password")
    async for entry in client.paged_search("dc=example,dc=com", "(cn=*)"):
        ...
```

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import ssl
from types import TracebackType
from typing import AsyncIterator

from .config import Settings
from .controls import Control
from .dialogue import LDAPSession, SessionState, add_log_sink
from .dispatcher import OperationDispatcher, SearchResult
from .dn import DistinguishedName
from .exceptions import InvalidDNError, InvalidSessionState
from .filter import SearchFilter
from .ldap_requests import SearchRequest
from .ldap_responses import LDAPResult
from .objects import Changes, DerefAliases, Entry, PartialAttribute, Scope
from .pagination import PagedSearchCursor
from .transport import Transport


class LDAPClient:
    """Directory client, one session per instance.

    Arguments are validated before anything is sent: DN syntax raises
    `InvalidDNError`, filter syntax raises `FilterSyntaxError`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: Transport | None = None,
        dispatcher: OperationDispatcher | None = None,
    ) -> None:
        """Create session, connected if transport is given."""
        self.settings = settings or Settings()
        self.session = LDAPSession(transport, self.settings)
        self.dispatcher = dispatcher or OperationDispatcher()

        if self.settings.LOG_FILE:
            add_log_sink(self.settings.LOG_FILE)

    async def __aenter__(self) -> "LDAPClient":
        if self.session.state == SessionState.INITIAL:
            await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @staticmethod
    def _validate_dn(dn: str, allow_root: bool = False) -> str:
        """Check DN syntax.

        :raises InvalidDNError: invalid or empty DN
        """
        if DistinguishedName.parse(dn).is_root and not allow_root:
            raise InvalidDNError("Empty DN is not allowed")
        return dn

    async def connect(
        self,
        host: str | None = None,
        port: int | None = None,
    ) -> None:
        """Open connection, host and port override settings.

        :raises InvalidSessionState: session is already connected or closed
        :raises LDAPConnectionError: refused or timed out
        """
        if self.session.state != SessionState.INITIAL:
            raise InvalidSessionState(f"Session is {self.session.state}")

        if host is not None or port is not None:
            self.settings = self.settings.model_copy(
                update={
                    "HOST": host or self.settings.HOST,
                    "PORT": port or self.settings.PORT,
                },
            )
            self.session = LDAPSession(settings=self.settings)

        await self.session.connect()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
    ) -> None:
        """Upgrade plain connection, must precede any other operation."""
        await self.session.upgrade_transport_security(ssl_context, timeout)

    async def bind(
        self,
        name: str = "",
        password: str = "",
        timeout: float | None = None,
    ) -> None:
        """Simple bind, anonymous without arguments.

        :raises AuthenticationError: invalid credentials
        """
        await self.session.bind(name, password, timeout)

    async def add(
        self,
        dn: str,
        attributes: dict | list[PartialAttribute],
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        await self.dispatcher.add(
            self.session,
            self._validate_dn(dn),
            attributes,
            controls,
            timeout,
        )

    async def modify(
        self,
        dn: str,
        changes: list[Changes],
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Apply changes atomically in a single request."""
        await self.dispatcher.modify(
            self.session,
            self._validate_dn(dn),
            changes,
            controls,
            timeout,
        )

    async def delete(
        self,
        dn: str,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        await self.dispatcher.delete(
            self.session,
            self._validate_dn(dn),
            controls,
            timeout,
        )

    async def compare(
        self,
        dn: str,
        attribute: str,
        value: str | bytes | int | bool,
        timeout: float | None = None,
    ) -> bool:
        return await self.dispatcher.compare(
            self.session,
            self._validate_dn(dn),
            attribute,
            value,
            timeout=timeout,
        )

    def _search_request(
        self,
        base: str,
        search_filter: str | SearchFilter,
        scope: Scope,
        attributes: list[str] | None,
        size_limit: int,
        time_limit: int,
        types_only: bool,
        deref_aliases: DerefAliases,
    ) -> SearchRequest:
        if isinstance(search_filter, str):
            search_filter = SearchFilter.parse(search_filter)

        return SearchRequest(
            base_object=self._validate_dn(base, allow_root=True),
            scope=scope,
            deref_aliases=deref_aliases,
            size_limit=size_limit,
            time_limit=time_limit,
            types_only=types_only,
            filter=search_filter,
            attributes=attributes or [],
        )

    async def search(
        self,
        base: str,
        search_filter: str | SearchFilter = "(objectClass=*)",
        scope: Scope = Scope.WHOLE_SUBTREE,
        attributes: list[str] | None = None,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
        deref_aliases: DerefAliases = DerefAliases.NEVER_DEREF_ALIASES,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> SearchResult:
        """Run search and get all entries at once."""
        request = self._search_request(
            base,
            search_filter,
            scope,
            attributes,
            size_limit,
            time_limit,
            types_only,
            deref_aliases,
        )
        return await self.dispatcher.search(
            self.session,
            request,
            controls,
            timeout,
        )

    def paged_search(
        self,
        base: str,
        search_filter: str | SearchFilter = "(objectClass=*)",
        scope: Scope = Scope.WHOLE_SUBTREE,
        attributes: list[str] | None = None,
        page_size: int | None = None,
        size_limit: int = 0,
        time_limit: int = 0,
        types_only: bool = False,
        deref_aliases: DerefAliases = DerefAliases.NEVER_DEREF_ALIASES,
        timeout: float | None = None,
    ) -> AsyncIterator[Entry]:
        """Get lazy single pass iterator over paged search entries.

        Arguments are validated on call, pages are fetched on iteration.
        `timeout` applies to each page request.
        """
        request = self._search_request(
            base,
            search_filter,
            scope,
            attributes,
            size_limit,
            time_limit,
            types_only,
            deref_aliases,
        )
        cursor = PagedSearchCursor(page_size or self.settings.PAGE_SIZE)
        return cursor.entries(
            self.dispatcher,
            self.session,
            request,
            timeout,
        )

    async def who_am_i(self, timeout: float | None = None) -> str:
        return await self.dispatcher.who_am_i(self.session, timeout)

    async def abandon(self, message_id: int) -> None:
        await self.dispatcher.abandon(self.session, message_id)

    async def cancel(
        self,
        message_id: int,
        timeout: float | None = None,
    ) -> LDAPResult:
        return await self.dispatcher.cancel(
            self.session,
            message_id,
            timeout,
        )

    async def close(self) -> None:
        """Unbind and disconnect, safe to call twice."""
        await self.session.close()
