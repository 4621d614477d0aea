"""Directory operations over session.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import TypeVar

from pydantic import BaseModel

from .controls import Control, PagedResultsValue
from .dialogue import LDAPSession
from .exceptions import MalformedMessage, OpError
from .ldap_codes import LDAPCodes
from .ldap_requests import (
    AbandonRequest,
    AddRequest,
    BaseRequest,
    CancelRequestValue,
    CompareRequest,
    DeleteRequest,
    ExtendedRequest,
    ModifyRequest,
    SearchRequest,
    WhoAmIRequestValue,
)
from .ldap_responses import (
    AddResponse,
    BaseResponse,
    CompareResponse,
    DeleteResponse,
    ExtendedResponse,
    LDAPResult,
    ModifyResponse,
    SearchResultDone,
    SearchResultEntry,
    SearchResultReference,
)
from .objects import Changes, Entry, PartialAttribute

R = TypeVar("R", bound=BaseResponse)


class SearchResult(BaseModel):
    """Complete search outcome."""

    entries: list[Entry] = []
    referrals: list[str] = []
    result: SearchResultDone
    controls: list[Control] = []

    @property
    def paged(self) -> PagedResultsValue | None:
        """Paged results response value, if server sent one."""
        return PagedResultsValue.find(self.controls)

    @property
    def cookie(self) -> bytes:
        """Continuation cookie, empty when there is nothing left."""
        paged = self.paged
        return paged.cookie if paged else b""


class OperationDispatcher:
    """Translate directory operations to requests and check results.

    Failed results are raised as `OpError`, session state errors
    are raised before anything is written.
    """

    async def _request(
        self,
        session: LDAPSession,
        request: BaseRequest,
        response_type: type[R],
        controls: list[Control] | None,
        timeout: float | None,
    ) -> R:
        responses = await session.exchange(request, controls, timeout)
        response = responses[-1].context

        if not isinstance(response, response_type):
            raise MalformedMessage(
                f"Expected {response_type.__name__} for "
                f"{type(request).__name__}, got {type(response).__name__}",
            )

        return response

    async def add(
        self,
        session: LDAPSession,
        dn: str,
        attributes: dict | list[PartialAttribute],
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Add entry.

        :raises OpError: e.g. `entryAlreadyExists`
        """
        response = await self._request(
            session,
            AddRequest(entry=dn, attributes=attributes),
            AddResponse,
            controls,
            timeout,
        )
        response.raise_for_result()

    async def modify(
        self,
        session: LDAPSession,
        dn: str,
        changes: list[Changes],
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Apply all changes in one request, server applies them atomically.

        :raises OpError: nothing was applied
        """
        response = await self._request(
            session,
            ModifyRequest(object=dn, changes=changes),
            ModifyResponse,
            controls,
            timeout,
        )
        response.raise_for_result()

    async def delete(
        self,
        session: LDAPSession,
        dn: str,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> None:
        response = await self._request(
            session,
            DeleteRequest(entry=dn),
            DeleteResponse,
            controls,
            timeout,
        )
        response.raise_for_result()

    async def compare(
        self,
        session: LDAPSession,
        dn: str,
        attribute: str,
        value: str | bytes | int | bool,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> bool:
        """Check attribute value assertion.

        :raises OpError: result is neither `compareTrue` nor `compareFalse`
        :return bool: assertion result
        """
        response = await self._request(
            session,
            CompareRequest(
                entry=dn,
                attribute_desc=attribute,
                assertion_value=value,
            ),
            CompareResponse,
            controls,
            timeout,
        )

        if response.result_code == LDAPCodes.COMPARE_TRUE:
            return True
        if response.result_code == LDAPCodes.COMPARE_FALSE:
            return False

        raise OpError(
            response.result_code,
            response.error_message,
            response.matched_dn,
        )

    async def search(
        self,
        session: LDAPSession,
        request: SearchRequest,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> SearchResult:
        """Run search and collect every entry and reference.

        :raises OpError: SearchResultDone is not success
        """
        responses = await session.exchange(request, controls, timeout)
        done = responses[-1]

        if not isinstance(done.context, SearchResultDone):
            raise MalformedMessage(
                f"Expected SearchResultDone, got {done.name}",
            )

        entries = []
        referrals = []
        for response in responses[:-1]:
            if isinstance(response.context, SearchResultEntry):
                entries.append(response.context.to_entry())
            elif isinstance(response.context, SearchResultReference):
                referrals.extend(response.context.values)

        done.context.raise_for_result()

        return SearchResult(
            entries=entries,
            referrals=referrals,
            result=done.context,
            controls=done.controls,
        )

    async def abandon(self, session: LDAPSession, message_id: int) -> None:
        """Ask server to drop operation, local waiter fails with `canceled`.

        Server sends no response to abandon.
        """
        await session.send(
            AbandonRequest(message_id=message_id),
            expect_response=False,
        )
        session.fail_pending(
            message_id,
            OpError(LDAPCodes.CANCELED, "Abandoned by client"),
        )

    async def extended(
        self,
        session: LDAPSession,
        request: ExtendedRequest,
        controls: list[Control] | None = None,
        timeout: float | None = None,
    ) -> ExtendedResponse:
        response = await self._request(
            session,
            request,
            ExtendedResponse,
            controls,
            timeout,
        )
        response.raise_for_result()
        return response

    async def who_am_i(
        self,
        session: LDAPSession,
        timeout: float | None = None,
    ) -> str:
        """Get authorization identity, rfc4532.

        :return str: `dn:<dn>`, `u:<name>` or empty for anonymous
        """
        response = await self.extended(
            session,
            ExtendedRequest.from_value(WhoAmIRequestValue()),
            timeout=timeout,
        )
        return (response.response_value or b"").decode()

    async def cancel(
        self,
        session: LDAPSession,
        message_id: int,
        timeout: float | None = None,
    ) -> LDAPResult:
        """Cancel outstanding operation, rfc3909.

        Canceled operation gets `canceled` result from server.

        :raises OpError: `noSuchOperation`, `tooLate` or `cannotCancel`
        """
        return await self.extended(
            session,
            ExtendedRequest.from_value(
                CancelRequestValue(cancel_id=message_id),
            ),
            timeout=timeout,
        )
