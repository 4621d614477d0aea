"""LDAP session state and message correlation.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import asyncio
import ssl
from contextlib import suppress
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

from loguru import logger

from .config import Settings
from .controls import Control
from .exceptions import (
    AuthenticationError,
    InvalidSessionState,
    LDAPClientError,
    LDAPConnectionError,
    MalformedMessage,
    OperationTimeout,
    ProtocolFramingError,
    SecurityUpgradeError,
)
from .ldap_codes import LDAPCodes
from .ldap_requests import (
    BaseRequest,
    BindRequest,
    ExtendedRequest,
    SaslCredentials,
    SimpleAuthentication,
    StartTLSRequestValue,
    UnbindRequest,
)
from .ldap_responses import (
    BindResponse,
    ExtendedResponse,
    IntermediateResponse,
    SearchResultEntry,
    SearchResultReference,
)
from .messages import LDAPMessage, LDAPRequestMessage, LDAPResponseMessage
from .objects import MAX_INT
from .transport import TCPTransport, Transport

if TYPE_CHECKING:
    from .ldap_requests import SaslMechanism

log = logger.bind(name="ldap")

PendingItem: TypeAlias = LDAPResponseMessage | LDAPClientError

_LOG_SINKS: dict[str, int] = {}


def add_log_sink(path: str) -> int:
    """Add rotated file sink for `ldap` bound records once per path."""
    if path not in _LOG_SINKS:
        _LOG_SINKS[path] = logger.add(
            path,
            filter=lambda rec: rec["extra"].get("name") == "ldap",
            retention="10 days",
            rotation="1d",
            colorize=False,
        )
    return _LOG_SINKS[path]


class SessionState(StrEnum):
    """Session lifecycle.

    ```
    INITIAL -> CONNECTED -> BOUND -> UNBOUND
                  ^___________|
    ```
    """

    INITIAL = "initial"
    CONNECTED = "connected"
    BOUND = "bound"
    UNBOUND = "unbound"


def _is_final(response: LDAPResponseMessage) -> bool:
    return not isinstance(
        response.context,
        (SearchResultEntry, SearchResultReference, IntermediateResponse),
    )


class LDAPSession:
    """LDAPSession for one server connection.

    Requests are pipelined: any number of them may wait for responses,
    a single reader task routes responses by message id.
    """

    version: int = 3

    def __init__(
        self,
        transport: Transport | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Set transport, session is connected when transport is given."""
        self.settings = settings or Settings()
        self.addr = f"{self.settings.HOST}:{self.settings.PORT}"

        self._transport = transport
        self.state = (
            SessionState.INITIAL if transport is None
            else SessionState.CONNECTED
        )
        self.identity: str | None = None
        self.tls_active = self.settings.USE_TLS

        self._message_id = 0
        self._lock = asyncio.Lock()
        self._pending: dict[int, asyncio.Queue[PendingItem]] = {}
        self._reader_task: asyncio.Task | None = None
        self._traffic = False

        if self.settings.DEBUG:
            self.req_log = self._req_log_full
            self.rsp_log = self._resp_log_full
        else:
            self.req_log = self.rsp_log = self._log_short

    def __repr__(self) -> str:
        return (
            f"<LDAPSession {self.addr} {self.state} "
            f"identity={self.identity!r}>"
        )

    @property
    def transport(self) -> Transport:
        if self._transport is None:
            raise InvalidSessionState("Session is not connected")
        return self._transport

    @property
    def is_operational(self) -> bool:
        return self.state in (SessionState.CONNECTED, SessionState.BOUND)

    @property
    def pending(self) -> frozenset[int]:
        """Message ids waiting for responses."""
        return frozenset(self._pending)

    def next_message_id(self) -> int:
        """Get strictly increasing message id, starts at 1.

        :raises InvalidSessionState: id space exhausted
        """
        if self._message_id >= MAX_INT:
            raise InvalidSessionState("Message id space exhausted")
        self._message_id += 1
        return self._message_id

    def _check_operational(self) -> None:
        if not self.is_operational:
            raise InvalidSessionState(
                f"Session is {self.state}, operations are not allowed",
            )

    async def connect(self) -> None:
        """Open tcp transport from settings.

        :raises InvalidSessionState: already connected or closed
        :raises LDAPConnectionError: refused or timed out
        """
        if self.state != SessionState.INITIAL:
            raise InvalidSessionState(f"Session is {self.state}")

        self._transport = await TCPTransport.open(
            self.settings.HOST,
            self.settings.PORT,
            ssl_context=(
                self.settings.get_ssl_context()
                if self.settings.USE_TLS
                else None
            ),
            timeout=self.settings.CONNECT_TIMEOUT,
            packet_size=self.settings.TCP_PACKET_SIZE,
        )
        self.state = SessionState.CONNECTED

    async def upgrade_transport_security(
        self,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
    ) -> None:
        """Run StartTLS extended operation and upgrade transport in place.

        Allowed only before any other protocol message was exchanged.

        :raises SecurityUpgradeError: refused by server or transport
        :raises InvalidSessionState: session is not operational
        """
        self._check_operational()

        if self.tls_active:
            raise SecurityUpgradeError("TLS is already active")

        if self._traffic or self._reader_task is not None:
            raise SecurityUpgradeError(
                "StartTLS after protocol traffic is not allowed",
            )

        if timeout is None:
            timeout = self.settings.OPERATION_TIMEOUT

        try:
            response = await self._start_tls_exchange(timeout)
        except (LDAPConnectionError, ProtocolFramingError) as err:
            log.error(f"StartTLS on {self.addr} failed: {err!r}")
            await self._shutdown(err)
            raise

        if not response.context.is_success:
            raise SecurityUpgradeError(
                f"StartTLS refused: {response.context.result_code!r} "
                f"{response.context.error_message}",
            )

        await self.transport.start_tls(
            ssl_context or self.settings.get_ssl_context(),
            server_hostname=self.settings.HOST,
        )
        self.tls_active = True
        log.info(f"Connection {self.addr} upgraded to TLS")

    async def _start_tls_exchange(
        self,
        timeout: float,
    ) -> LDAPResponseMessage:
        async with self._lock:
            request = LDAPRequestMessage(
                messageID=self.next_message_id(),
                context=ExtendedRequest.from_value(StartTLSRequestValue()),
            )
            self.req_log(request)
            await self.transport.send(request.encode())
            try:
                data = await asyncio.wait_for(
                    self.transport.receive(),
                    timeout,
                )
            except TimeoutError as err:
                raise OperationTimeout("StartTLS got no response") from err

        response = LDAPMessage.from_bytes(data)
        self.rsp_log(response)

        if (
            not isinstance(response, LDAPResponseMessage)
            or response.message_id != request.message_id
            or not isinstance(response.context, ExtendedResponse)
        ):
            raise MalformedMessage("Unexpected StartTLS response")

        return response

    async def send(
        self,
        op: BaseRequest,
        controls: list[Control] | None = None,
        expect_response: bool = True,
    ) -> int:
        """Encode and write request, register it as pending.

        :raises InvalidSessionState: nothing is written
        :return int: message id
        """
        self._check_operational()

        async with self._lock:
            message = LDAPRequestMessage(
                messageID=self.next_message_id(),
                context=op,
                controls=controls or [],
            )
            if expect_response:
                self._pending[message.message_id] = asyncio.Queue()

            self.req_log(message)
            self._traffic = True
            try:
                await self.transport.send(message.encode())
            except LDAPConnectionError as err:
                self._pending.pop(message.message_id, None)
                log.error(f"Connection {self.addr} failed: {err!r}")
                await self._shutdown(err)
                raise

        if expect_response:
            self._start_reader()

        return message.message_id

    async def _collect(
        self,
        queue: asyncio.Queue[PendingItem],
    ) -> list[LDAPResponseMessage]:
        responses = []
        while True:
            item = await queue.get()
            if isinstance(item, LDAPClientError):
                raise item

            responses.append(item)
            if _is_final(item):
                return responses

    async def exchange(
        self,
        op: BaseRequest,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> list[LDAPResponseMessage]:
        """Send request and wait for all of its responses.

        Pending entry is dropped on timeout and on cancellation,
        responses arriving later are discarded.

        :param float | None timeout: seconds, settings default if None
        :raises OperationTimeout: no final response in time
        :return list[LDAPResponseMessage]: responses, final one last
        """
        if timeout is None:
            timeout = self.settings.OPERATION_TIMEOUT

        message_id = await self.send(op, controls)
        queue = self._pending.get(message_id)
        if queue is None:
            raise LDAPConnectionError("Session was terminated")

        try:
            return await asyncio.wait_for(self._collect(queue), timeout)
        except TimeoutError as err:
            raise OperationTimeout(
                f"{type(op).__name__}[{message_id}] "
                f"got no response in {timeout}s",
            ) from err
        finally:
            self._pending.pop(message_id, None)

    async def _bind(
        self,
        request: BindRequest,
        timeout: float | None,
    ) -> BindResponse:
        responses = await self.exchange(request, timeout=timeout)
        response = responses[-1].context

        if not isinstance(response, BindResponse):
            raise MalformedMessage(
                f"Expected BindResponse, got {type(response).__name__}",
            )

        if response.is_success:
            self.state = SessionState.BOUND
            self.identity = request.name or None
        elif response.result_code != LDAPCodes.SASL_BIND_IN_PROGRESS:
            self.state = SessionState.CONNECTED
            self.identity = None

        return response

    async def bind(
        self,
        name: str = "",
        password: str = "",
        timeout: float | None = None,
    ) -> None:
        """Simple bind, empty name and password bind anonymously.

        :raises AuthenticationError: session stays usable as anonymous
        """
        response = await self._bind(
            BindRequest(
                name=name,
                AuthenticationChoice=SimpleAuthentication(password=password),
            ),
            timeout,
        )
        response.raise_for_result(AuthenticationError)
        log.info(f"Connection {self.addr} bound as {name or 'ANONYMOUS'}")

    async def sasl_step(
        self,
        credentials: SaslCredentials,
        name: str = "",
        timeout: float | None = None,
    ) -> BindResponse:
        """Send one SASL bind round for mechanism plugins.

        :raises AuthenticationError: neither success nor in progress
        """
        response = await self._bind(
            BindRequest(name=name, AuthenticationChoice=credentials),
            timeout,
        )
        if response.result_code != LDAPCodes.SASL_BIND_IN_PROGRESS:
            response.raise_for_result(AuthenticationError)
        return response

    async def sasl_bind(self, mechanism: "SaslMechanism") -> None:
        """Bind with SASL mechanism plugin."""
        response = await mechanism.negotiate(self)
        response.raise_for_result(AuthenticationError)

    def fail_pending(self, message_id: int, err: LDAPClientError) -> None:
        """Fail waiter of pending request, later responses are discarded."""
        queue = self._pending.pop(message_id, None)
        if queue is not None:
            queue.put_nowait(err)

    def _start_reader(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._handle_responses(),
                name=f"ldap-reader-{self.addr}",
            )

    async def _handle_responses(self) -> None:
        """Read frames and route them to pending requests."""
        try:
            while True:
                data = await self.transport.receive()
                message = LDAPMessage.from_bytes(data)

                if not isinstance(message, LDAPResponseMessage):
                    raise MalformedMessage(
                        f"Unexpected {message.name} from server",
                    )

                self.rsp_log(message)
                self._route(message)

        except LDAPClientError as err:
            if self.state != SessionState.UNBOUND:
                log.error(f"Connection {self.addr} failed: {err!r}")
            await self._shutdown(err)
        except Exception as err:
            log.exception(f"The connection {self.addr} raised")
            await self._shutdown(LDAPConnectionError(str(err)))

    def _route(self, message: LDAPResponseMessage) -> None:
        """Put response to its pending queue.

        :raises LDAPConnectionError: notice of disconnection
        """
        if (
            message.message_id == 0
            and isinstance(message.context, ExtendedResponse)
            and message.context.is_disconnection
        ):
            raise LDAPConnectionError(
                "Notice of disconnection: "
                f"{message.context.result_code!r} "
                f"{message.context.error_message}",
            )

        queue = self._pending.get(message.message_id)
        if queue is None:
            log.warning(
                f"{self.addr}: discarded {message.name}"
                f"[{message.message_id}], no pending request",
            )
            return

        queue.put_nowait(message)

    async def _shutdown(self, err: LDAPClientError) -> None:
        """Terminate session, fail pending requests with error."""
        self.state = SessionState.UNBOUND
        self.identity = None

        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        for queue in self._pending.values():
            queue.put_nowait(err)
        self._pending.clear()

        if self._transport is not None:
            await self._transport.close()

    async def close(self) -> None:
        """Unbind and release transport, safe to call twice."""
        if self.state == SessionState.UNBOUND:
            return

        if self.is_operational:
            try:
                await self.send(UnbindRequest(), expect_response=False)
            except LDAPConnectionError as err:
                log.warning(f"Unbind {self.addr} failed: {err}")

        await self._shutdown(LDAPConnectionError("Session is closed"))
        log.info(f"Connection {self.addr} closed")

    def _req_log_full(self, msg: LDAPMessage) -> None:
        """Request full log."""
        log.debug(
            f"\nTo: {self.addr!r}\n{msg.name}[{msg.message_id}]: "
            f"{msg.model_dump_json()}\n",
        )

    def _resp_log_full(self, msg: LDAPMessage) -> None:
        """Response full log."""
        log.debug(
            f"\nFrom: {self.addr!r}\n{msg.name}[{msg.message_id}]: "
            f"{msg.model_dump_json()}"[:3000],
        )

    def _log_short(self, msg: LDAPMessage) -> None:
        """Short log."""
        log.info(f"\n{self.addr!r}: {msg.name}[{msg.message_id}]\n")
