"""Test main config.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import asyncio
from typing import AsyncIterator, Callable, Iterable, TypeAlias

import pytest
import pytest_asyncio

from ldap_client.config import Settings
from ldap_client.dialogue import LDAPSession
from ldap_client.dispatcher import OperationDispatcher
from ldap_client.exceptions import LDAPConnectionError
from ldap_client.ldap_requests import (
    AddRequest,
    BindRequest,
    CompareRequest,
    DeleteRequest,
    ExtendedRequest,
    ModifyRequest,
    SearchRequest,
)
from ldap_client.ldap_responses import (
    AddResponse,
    BaseResponse,
    BindResponse,
    CompareResponse,
    DeleteResponse,
    ExtendedResponse,
    ModifyResponse,
    SearchResultDone,
)
from ldap_client.messages import (
    LDAPMessage,
    LDAPRequestMessage,
    LDAPResponseMessage,
)
from ldap_client.transport import Transport

Handler: TypeAlias = Callable[[LDAPRequestMessage], Iterable[LDAPResponseMessage]]


class ScriptedTransport(Transport):
    """In memory server, handler answers every decoded request."""

    def __init__(self, handler: Handler | None = None) -> None:
        """Set handler, default one answers success to everything."""
        self.handler = handler or default_handler
        self.sent: list[LDAPRequestMessage] = []
        self.tls_upgraded = False
        self.closed = False
        self._inbox: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise LDAPConnectionError("Transport is closed")

        message = LDAPMessage.from_bytes(data)
        assert isinstance(message, LDAPRequestMessage)
        self.sent.append(message)

        for response in self.handler(message):
            self.push(response)

    def push(self, message: LDAPResponseMessage | bytes) -> None:
        """Deliver unsolicited message or raw frame."""
        if isinstance(message, LDAPMessage):
            message = message.encode()
        self._inbox.put_nowait(message)

    def disconnect(self) -> None:
        """Emulate connection reset by server."""
        self._inbox.put_nowait(None)

    async def receive(self) -> bytes:
        data = await self._inbox.get()
        if data is None:
            raise LDAPConnectionError("Connection terminated by server")
        return data

    async def start_tls(self, ssl_context, server_hostname=None) -> None:
        self.tls_upgraded = True

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def requests_of(self, op: type) -> list[LDAPRequestMessage]:
        return [msg for msg in self.sent if isinstance(msg.context, op)]


class SilentTransport(ScriptedTransport):
    """Server that accepts requests and never answers."""

    def __init__(self) -> None:
        """Drop every request."""
        super().__init__(lambda _: ())


def respond(
    request: LDAPRequestMessage,
    *contexts: BaseResponse,
    **kwargs,
) -> list[LDAPResponseMessage]:
    """Wrap responses with request message id."""
    return [
        LDAPResponseMessage(
            messageID=request.message_id,
            context=context,
            **kwargs,
        )
        for context in contexts
    ]


_SUCCESS: dict[type, type[BaseResponse]] = {
    BindRequest: BindResponse,
    AddRequest: AddResponse,
    ModifyRequest: ModifyResponse,
    DeleteRequest: DeleteResponse,
    SearchRequest: SearchResultDone,
    ExtendedRequest: ExtendedResponse,
}


def default_handler(
    request: LDAPRequestMessage,
) -> list[LDAPResponseMessage]:
    """Answer success, compare is always true."""
    if isinstance(request.context, CompareRequest):
        return respond(request, CompareResponse(result_code=6))

    response_type = _SUCCESS.get(type(request.context))
    if response_type is None:
        return []

    return respond(request, response_type(result_code=0))


@pytest.fixture(scope="session")
def settings() -> Settings:
    """Get settings."""
    return Settings(
        HOST="ldap.test",
        PORT=389,
        CONNECT_TIMEOUT=1,
        OPERATION_TIMEOUT=2,
        PAGE_SIZE=2,
    )


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest_asyncio.fixture
async def session(
    transport: ScriptedTransport,
    settings: Settings,
) -> AsyncIterator[LDAPSession]:
    """Get connected session over scripted transport."""
    session = LDAPSession(transport, settings)
    yield session
    await session.close()


@pytest.fixture
def dispatcher() -> OperationDispatcher:
    return OperationDispatcher()
