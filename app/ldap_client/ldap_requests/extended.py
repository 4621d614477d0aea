"""Extended request.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from abc import ABC, abstractmethod
from typing import ClassVar

from asn1 import Classes, Encoder, Numbers
from pydantic import BaseModel, Field

from ldap_client.asn1parser import LDAPOID, ASN1Row, decode_value
from ldap_client.exceptions import MalformedMessage
from ldap_client.objects import ProtocolRequests

from .base import BaseRequest

REQUEST_NAME_TAG = 0
REQUEST_VALUE_TAG = 1


class BaseExtendedValue(ABC, BaseModel):
    """Base extended request body."""

    REQUEST_ID: ClassVar[LDAPOID]

    def __init_subclass__(cls, **kwargs: dict) -> None:
        """Check if OID is valid."""
        super().__init_subclass__(**kwargs)  # type: ignore

        if not LDAPOID.has_value(cls.REQUEST_ID):
            raise ValueError(f"Invalid OID: {cls.REQUEST_ID}")

    @abstractmethod
    def get_value(self) -> bytes | None:
        """Get requestValue contents."""

    @classmethod
    @abstractmethod
    def from_value(cls, value: bytes | None) -> "BaseExtendedValue":
        """Create model from requestValue bytes."""

    @staticmethod
    def _decode_value(value: bytes | None) -> list[ASN1Row]:
        if not value:
            raise MalformedMessage("Extended request value is required")
        rows = decode_value(value)
        if not rows:
            raise MalformedMessage("Extended request value is empty")
        return rows[0].children


class StartTLSRequestValue(BaseExtendedValue):
    """Start TLS, rfc4511 4.14.1, no value."""

    REQUEST_ID: ClassVar[LDAPOID] = LDAPOID.START_TLS

    def get_value(self) -> None:
        return None

    @classmethod
    def from_value(
        cls,
        value: bytes | None,  # noqa: ARG003
    ) -> "StartTLSRequestValue":
        return cls()


class WhoAmIRequestValue(BaseExtendedValue):
    """Who am I, rfc4532, no value."""

    REQUEST_ID: ClassVar[LDAPOID] = LDAPOID.WHOAMI

    def get_value(self) -> None:
        return None

    @classmethod
    def from_value(
        cls,
        value: bytes | None,  # noqa: ARG003
    ) -> "WhoAmIRequestValue":
        return cls()


class CancelRequestValue(BaseExtendedValue):
    """Cancel operation, rfc3909.

    ```
    cancelRequestValue ::= SEQUENCE {
        cancelID        MessageID
    }
    ```
    """

    REQUEST_ID: ClassVar[LDAPOID] = LDAPOID.CANCEL

    cancel_id: int = Field(ge=0)

    def get_value(self) -> bytes:
        enc = Encoder()
        enc.start()
        enc.enter(Numbers.Sequence)
        enc.write(self.cancel_id, Numbers.Integer)
        enc.leave()
        return enc.output()

    @classmethod
    def from_value(cls, value: bytes | None) -> "CancelRequestValue":
        try:
            (cancel_id,) = cls._decode_value(value)
        except ValueError as err:
            raise MalformedMessage("Invalid cancel request value") from err
        return cls(cancel_id=cancel_id.as_int())


EXTENDED_REQUEST_OID_MAP: dict[str, type[BaseExtendedValue]] = {
    value.REQUEST_ID: value
    for value in (StartTLSRequestValue, WhoAmIRequestValue, CancelRequestValue)
}


class ExtendedRequest(BaseRequest):
    """Extended protocol.

    ExtendedRequest ::= [APPLICATION 23] SEQUENCE {
        requestName      [0] LDAPOID,
        requestValue     [1] OCTET STRING OPTIONAL }

    Value of any OID is kept as raw bytes, known ones are available
    through `get_request_value`.
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.EXTENDED

    request_name: str
    request_value: bytes | None = None

    @classmethod
    def from_value(cls, value: BaseExtendedValue) -> "ExtendedRequest":
        """Build request from typed value."""
        return cls(
            request_name=value.REQUEST_ID,
            request_value=value.get_value(),
        )

    def get_request_value(self) -> BaseExtendedValue:
        """Get typed request value.

        :raises MalformedMessage: unknown OID or invalid value
        """
        try:
            ext_value = EXTENDED_REQUEST_OID_MAP[self.request_name]
        except KeyError as err:
            raise MalformedMessage(
                f"Unknown extended request {self.request_name}",
            ) from err
        return ext_value.from_value(self.request_value)

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(
            self.request_name.encode(),
            nr=REQUEST_NAME_TAG,
            cls=Classes.Context,
        )
        if self.request_value is not None:
            enc.write(
                self.request_value,
                nr=REQUEST_VALUE_TAG,
                cls=Classes.Context,
            )

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "ExtendedRequest":
        """Create extended request from asn.1 decoded string.

        :param ASN1Row data: any data
        :return ExtendedRequest: universal request
        """
        name, *value = data
        if not name.is_context(REQUEST_NAME_TAG):
            raise MalformedMessage("Extended request without name")

        request_value = None
        if value and value[0].is_context(REQUEST_VALUE_TAG):
            request_value = value[0].as_bytes()

        return cls(request_name=name.as_str(), request_value=request_value)
