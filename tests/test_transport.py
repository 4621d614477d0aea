"""Test tcp transport framing over loopback.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import asyncio
from contextlib import suppress
from typing import AsyncIterator

import pytest
import pytest_asyncio

from ldap_client import LDAPClient
from ldap_client.config import Settings
from ldap_client.exceptions import LDAPConnectionError, SecurityUpgradeError
from ldap_client.messages import LDAPMessage
from ldap_client.transport import TCPTransport
from tests.conftest import default_handler

FRAME = bytes.fromhex("300c020101600702010304008000")


async def _serve_directory(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
) -> None:
    """Answer requests with default handler over real socket."""
    transport = TCPTransport(reader, writer, packet_size=7)
    with suppress(LDAPConnectionError):
        while True:
            message = LDAPMessage.from_bytes(await transport.receive())
            for response in default_handler(message):  # type: ignore
                await transport.send(response.encode())

    await transport.close()


@pytest_asyncio.fixture
async def server() -> AsyncIterator[tuple[str, int]]:
    """Get address of loopback directory server."""
    srv = await asyncio.start_server(_serve_directory, "127.0.0.1", 0)
    yield srv.sockets[0].getsockname()[:2]
    srv.close()
    await srv.wait_closed()


@pytest.mark.asyncio
async def test_frames_split_and_joined() -> None:
    """Test receive returns exactly one frame per call."""

    async def write_frames(
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        writer.write(FRAME + FRAME[:5])
        await writer.drain()
        await asyncio.sleep(0.01)
        writer.write(FRAME[5:])
        writer.close()

    srv = await asyncio.start_server(write_frames, "127.0.0.1", 0)
    host, port = srv.sockets[0].getsockname()[:2]

    transport = await TCPTransport.open(host, port, packet_size=4)
    assert await transport.receive() == FRAME
    assert await transport.receive() == FRAME

    with pytest.raises(LDAPConnectionError):
        await transport.receive()

    await transport.close()
    await transport.close()
    assert transport.is_closed

    with pytest.raises(LDAPConnectionError):
        await transport.send(FRAME)

    srv.close()
    await srv.wait_closed()


@pytest.mark.asyncio
async def test_connection_refused() -> None:
    """Test unreachable server maps to LDAPConnectionError."""
    srv = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    host, port = srv.sockets[0].getsockname()[:2]
    srv.close()
    await srv.wait_closed()

    with pytest.raises(LDAPConnectionError):
        await TCPTransport.open(host, port, timeout=1)


@pytest.mark.asyncio
async def test_client_over_tcp(server: tuple[str, int]) -> None:
    """Test client connects, operates and closes over socket."""
    host, port = server
    client = LDAPClient(Settings(HOST=host, PORT=port, OPERATION_TIMEOUT=2))

    async with client:
        await client.delete("cn=user,dc=example")
        assert await client.compare("cn=user,dc=example", "cn", "user")
        assert client.session.is_operational

    assert not client.session.is_operational


@pytest.mark.asyncio
async def test_client_connect_override(server: tuple[str, int]) -> None:
    """Test host and port override settings on connect."""
    host, port = server
    client = LDAPClient(Settings(HOST="unused.test", OPERATION_TIMEOUT=2))

    await client.connect(host, port)
    await client.bind("cn=admin,dc=example", "password")

    assert client.settings.HOST == host
    assert client.session.identity == "cn=admin,dc=example"
    assert await client.who_am_i() == ""

    with pytest.raises(SecurityUpgradeError):
        await client.start_tls()

    await client.close()
