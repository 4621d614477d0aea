"""LDAP tcp transport.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import asyncio
import ssl
from abc import ABC, abstractmethod
from contextlib import suppress

from loguru import logger

from .asn1parser import compute_message_size
from .exceptions import LDAPConnectionError, SecurityUpgradeError

log = logger.bind(name="ldap")


class Transport(ABC):
    """Reliable ordered byte stream carrying BER frames."""

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Write single encoded message.

        :raises LDAPConnectionError: stream is broken
        """

    @abstractmethod
    async def receive(self) -> bytes:
        """Read exactly one complete BER frame.

        :raises LDAPConnectionError: stream closed or broken
        """

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
    ) -> None:
        """Upgrade stream to TLS in place.

        :raises SecurityUpgradeError: transport can not upgrade
        """
        raise SecurityUpgradeError(
            f"{type(self).__name__} does not support TLS upgrade",
        )

    @abstractmethod
    async def close(self) -> None:
        """Release stream, safe to call twice."""


class TCPTransport(Transport):
    """`asyncio` streams transport.

    Reads by `packet_size` chunks into a buffer, bytes past the first
    complete frame are kept for the next `receive` call.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        packet_size: int = 1024,
    ) -> None:
        """Set streams."""
        self._reader = reader
        self._writer = writer
        self._size = packet_size
        self._buffer = bytearray()
        self._closed = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
        packet_size: int = 1024,
    ) -> "TCPTransport":
        """Open connection.

        :raises LDAPConnectionError: refused, unreachable or timed out
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, ssl=ssl_context),
                timeout,
            )
        except TimeoutError as err:
            raise LDAPConnectionError(
                f"Connection to {host}:{port} timed out",
            ) from err
        except OSError as err:
            raise LDAPConnectionError(
                f"Connection to {host}:{port} failed: {err}",
            ) from err

        log.info(f"Connection {host}:{port} opened")
        return cls(reader, writer, packet_size)

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, data: bytes) -> None:
        if self._closed:
            raise LDAPConnectionError("Transport is closed")

        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as err:
            raise LDAPConnectionError(str(err)) from err

    async def receive(self) -> bytes:
        while True:
            size = compute_message_size(self._buffer)

            if size is not None and len(self._buffer) >= size:
                frame = bytes(self._buffer[:size])
                del self._buffer[:size]
                return frame

            try:
                data = await self._reader.read(self._size)
            except OSError as err:
                raise LDAPConnectionError(str(err)) from err

            if not data:
                raise LDAPConnectionError("Connection terminated by server")

            self._buffer += data

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
    ) -> None:
        if self._buffer:
            raise SecurityUpgradeError("Unread data before TLS handshake")

        try:
            await self._writer.start_tls(
                ssl_context,
                server_hostname=server_hostname,
            )
        except OSError as err:
            raise SecurityUpgradeError(f"TLS handshake failed: {err}") from err

    async def close(self) -> None:
        if self._closed:
            return

        self._closed = True
        self._writer.close()
        with suppress(OSError):
            await self._writer.wait_closed()
