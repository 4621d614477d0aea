"""Simple paged results search cursor, rfc2696.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from enum import StrEnum
from typing import AsyncIterator

from loguru import logger

from .controls import PagedResultsValue
from .dialogue import LDAPSession
from .dispatcher import OperationDispatcher, SearchResult
from .exceptions import CursorExhausted
from .ldap_requests import SearchRequest
from .objects import Entry

log = logger.bind(name="ldap")


class CursorState(StrEnum):
    """Cursor lifecycle, `NOT_STARTED -> HAS_MORE -> EXHAUSTED`."""

    NOT_STARTED = "not_started"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"


class PagedSearchCursor:
    """Fetch search results page by page.

    Every page is a separate search request carrying the paged results
    control with the cookie of the previous page. Empty cookie or missing
    response control ends the search.
    """

    def __init__(self, page_size: int, criticality: bool = False) -> None:
        """Set page size."""
        if page_size < 1:
            raise ValueError("Page size must be positive")

        self.page_size = page_size
        self.criticality = criticality
        self.state = CursorState.NOT_STARTED
        self.cookie = b""
        self.pages = 0

    def __repr__(self) -> str:
        return f"<PagedSearchCursor {self.state} pages={self.pages}>"

    async def fetch_next(
        self,
        dispatcher: OperationDispatcher,
        session: LDAPSession,
        request: SearchRequest,
        timeout: float | None = None,
    ) -> SearchResult:
        """Get next page.

        :raises CursorExhausted: previous page was the last one
        :raises OpError: search failed, cursor state is kept
        """
        if self.state == CursorState.EXHAUSTED:
            raise CursorExhausted(f"No pages left after {self.pages}")

        control = PagedResultsValue(
            size=self.page_size,
            cookie=self.cookie,
        ).to_control(self.criticality)

        page = await dispatcher.search(session, request, [control], timeout)
        self.pages += 1

        paged = page.paged
        if paged is None or not paged.cookie:
            self.state = CursorState.EXHAUSTED
            self.cookie = b""
        else:
            self.state = CursorState.HAS_MORE
            self.cookie = paged.cookie

        log.debug(
            f"Page {self.pages}: {len(page.entries)} entries, {self.state}",
        )
        return page

    async def entries(
        self,
        dispatcher: OperationDispatcher,
        session: LDAPSession,
        request: SearchRequest,
        timeout: float | None = None,
    ) -> AsyncIterator[Entry]:
        """Iterate entries lazily, next page is fetched on demand.

        Single pass only.

        :raises CursorExhausted: cursor was already used
        """
        if self.state != CursorState.NOT_STARTED:
            raise CursorExhausted("Cursor was already iterated")

        while self.state != CursorState.EXHAUSTED:
            page = await self.fetch_next(dispatcher, session, request, timeout)
            for entry in page.entries:
                yield entry

    async def abandon(
        self,
        dispatcher: OperationDispatcher,
        session: LDAPSession,
        request: SearchRequest,
        timeout: float | None = None,
    ) -> None:
        """Release server side result set, zero size with last cookie."""
        if self.state != CursorState.HAS_MORE:
            self.state = CursorState.EXHAUSTED
            return

        control = PagedResultsValue(size=0, cookie=self.cookie).to_control()
        self.state = CursorState.EXHAUSTED
        self.cookie = b""
        await dispatcher.search(session, request, [control], timeout)
