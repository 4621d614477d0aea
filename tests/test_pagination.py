"""Test simple paged results cursor.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import pytest

from ldap_client.asn1parser import LDAPOID
from ldap_client.controls import Control, PagedResultsValue
from ldap_client.dialogue import LDAPSession
from ldap_client.dispatcher import OperationDispatcher
from ldap_client.exceptions import CursorExhausted, MalformedMessage
from ldap_client.ldap_requests import SearchRequest
from ldap_client.ldap_responses import SearchResultDone, SearchResultEntry
from ldap_client.messages import LDAPRequestMessage, LDAPResponseMessage
from ldap_client.pagination import CursorState, PagedSearchCursor
from tests.conftest import ScriptedTransport, default_handler, respond

PAGES = {b"": (1, b"a"), b"a": (2, b"b"), b"b": (3, b"")}


def paged_directory(
    request: LDAPRequestMessage,
) -> list[LDAPResponseMessage]:
    """Serve three pages of two entries, cookies `a`, `b` and empty."""
    if not isinstance(request.context, SearchRequest):
        return default_handler(request)

    paged = PagedResultsValue.find(request.controls)
    assert paged is not None

    if paged.size == 0:
        return respond(request, SearchResultDone(result_code=0))

    page, cookie = PAGES[paged.cookie]
    entries = respond(
        request,
        *(
            SearchResultEntry(object_name=f"cn=u{page}{n},dc=x")
            for n in range(2)
        ),
    )
    return entries + respond(
        request,
        SearchResultDone(result_code=0),
        controls=[PagedResultsValue(size=6, cookie=cookie).to_control()],
    )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport(paged_directory)


@pytest.fixture
def request_() -> SearchRequest:
    return SearchRequest(base_object="dc=x", filter="(objectClass=*)")


def sent_cookies(transport: ScriptedTransport) -> list[bytes]:
    cookies = []
    for message in transport.requests_of(SearchRequest):
        paged = PagedResultsValue.find(message.controls)
        assert paged is not None
        cookies.append(paged.cookie)
    return cookies


@pytest.mark.asyncio
async def test_fetch_pages(
    session: LDAPSession,
    transport: ScriptedTransport,
    dispatcher: OperationDispatcher,
    request_: SearchRequest,
) -> None:
    """Test cursor follows cookies until the empty one."""
    cursor = PagedSearchCursor(page_size=2)
    assert cursor.state == CursorState.NOT_STARTED

    first = await cursor.fetch_next(dispatcher, session, request_)
    assert cursor.state == CursorState.HAS_MORE
    assert first.cookie == b"a"

    await cursor.fetch_next(dispatcher, session, request_)
    assert cursor.cookie == b"b"

    await cursor.fetch_next(dispatcher, session, request_)
    assert cursor.state == CursorState.EXHAUSTED
    assert cursor.pages == 3

    with pytest.raises(CursorExhausted):
        await cursor.fetch_next(dispatcher, session, request_)

    assert sent_cookies(transport) == [b"", b"a", b"b"]


@pytest.mark.asyncio
async def test_entries_lazy(
    session: LDAPSession,
    transport: ScriptedTransport,
    dispatcher: OperationDispatcher,
    request_: SearchRequest,
) -> None:
    """Test pages are requested on demand."""
    cursor = PagedSearchCursor(page_size=2)
    entries = cursor.entries(dispatcher, session, request_)

    assert transport.sent == []

    first = await anext(entries)
    assert first.dn == "cn=u10,dc=x"
    assert len(transport.sent) == 1

    rest = [entry.dn async for entry in entries]

    assert len(rest) == 5
    assert len(transport.sent) == 3
    assert cursor.state == CursorState.EXHAUSTED


@pytest.mark.asyncio
async def test_single_pass(
    session: LDAPSession,
    dispatcher: OperationDispatcher,
    request_: SearchRequest,
) -> None:
    """Test cursor can not be iterated twice."""
    cursor = PagedSearchCursor(page_size=2)
    dns = [e.dn async for e in cursor.entries(dispatcher, session, request_)]

    assert len(dns) == 6
    assert len(set(dns)) == 6

    with pytest.raises(CursorExhausted):
        await anext(cursor.entries(dispatcher, session, request_))


@pytest.mark.asyncio
async def test_abandon_paged_search(
    session: LDAPSession,
    transport: ScriptedTransport,
    dispatcher: OperationDispatcher,
    request_: SearchRequest,
) -> None:
    """Test abandon releases result set with zero size."""
    cursor = PagedSearchCursor(page_size=2)
    await cursor.fetch_next(dispatcher, session, request_)
    await cursor.abandon(dispatcher, session, request_)

    last = PagedResultsValue.find(
        transport.requests_of(SearchRequest)[-1].controls,
    )
    assert last == PagedResultsValue(size=0, cookie=b"a")
    assert cursor.state == CursorState.EXHAUSTED


@pytest.mark.asyncio
async def test_missing_response_control(
    session: LDAPSession,
    dispatcher: OperationDispatcher,
) -> None:
    """Test server without paging support gives single page."""
    cursor = PagedSearchCursor(page_size=2)
    search = SearchRequest(base_object="dc=x")

    session.transport.handler = lambda request: respond(  # type: ignore
        request,
        SearchResultEntry(object_name="cn=only,dc=x"),
        SearchResultDone(result_code=0),
    )

    dns = [e.dn async for e in cursor.entries(dispatcher, session, search)]

    assert dns == ["cn=only,dc=x"]
    assert cursor.pages == 1


def test_page_size_positive() -> None:
    with pytest.raises(ValueError):  # noqa: PT011
        PagedSearchCursor(page_size=0)


@pytest.mark.parametrize(
    "value",
    [bytes.fromhex("30050201"), bytes.fromhex("3003020102"), b"\x04"],
)
@pytest.mark.asyncio
async def test_malformed_response_control(
    session: LDAPSession,
    dispatcher: OperationDispatcher,
    request_: SearchRequest,
    value: bytes,
) -> None:
    """Test broken paged results value raises MalformedMessage."""
    cursor = PagedSearchCursor(page_size=2)
    control = Control(control_type=LDAPOID.PAGED_RESULTS, control_value=value)

    session.transport.handler = lambda request: respond(  # type: ignore
        request,
        SearchResultDone(result_code=0),
        controls=[control],
    )

    with pytest.raises(MalformedMessage):
        await cursor.fetch_next(dispatcher, session, request_)
