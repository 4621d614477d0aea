"""LDAP response containers.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, TypeAlias

from asn1 import Classes, Encoder, Numbers
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .asn1parser import LDAPOID, ASN1Row
from .exceptions import AuthenticationError, MalformedMessage, OpError
from .ldap_codes import LDAPCodes
from .objects import Entry, PartialAttribute, ProtocolResponse

serializer: TypeAlias = Callable[..., "BaseResponse"]

REFERRAL_TAG = 3


class BaseResponse(ABC, BaseModel):
    """Base class for Response."""

    PROTOCOL_OP: ClassVar[int]
    from_data: ClassVar[serializer]

    @abstractmethod
    def to_asn1(self, enc: Encoder) -> None:
        """Write response contents to asn1 buffer."""

    def write_op(self, enc: Encoder) -> None:
        """Write tagged protocolOp element."""
        enc.enter(nr=self.PROTOCOL_OP, cls=Classes.Application)
        self.to_asn1(enc)
        enc.leave()


class LDAPResult(BaseModel):
    """Base LDAP result structure.

    ```
    LDAPResult ::= SEQUENCE {
        resultCode         ENUMERATED {...},
        matchedDN          LDAPDN,
        diagnosticMessage  LDAPString,
        referral           [3] Referral OPTIONAL }
    ```

    Codes unknown to `LDAPCodes` are kept as plain int.
    """

    result_code: int = Field(..., alias="resultCode")
    matched_dn: str = Field("", alias="matchedDN")
    error_message: str = Field("", alias="errorMessage")
    referral: list[str] | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("result_code")
    @classmethod
    def validate_result_code(cls, value: int) -> LDAPCodes | int:
        return LDAPCodes.from_value(value)

    @property
    def is_success(self) -> bool:
        return self.result_code == LDAPCodes.SUCCESS

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize flat structure to bytes, write to encoder buffer."""
        enc.write(self.result_code, Numbers.Enumerated)
        enc.write(self.matched_dn, Numbers.OctetString)
        enc.write(self.error_message, Numbers.OctetString)

        if self.referral is not None:
            enc.enter(nr=REFERRAL_TAG, cls=Classes.Context)
            for uri in self.referral:
                enc.write(uri, Numbers.OctetString)
            enc.leave()

    @staticmethod
    def _parse_result(data: list[ASN1Row]) -> tuple[dict[str, Any], list]:
        """Get result fields and remaining elements."""
        if len(data) < 3:
            raise MalformedMessage("LDAPResult requires 3 elements")

        code, matched_dn, message, *rest = data
        fields: dict[str, Any] = {
            "result_code": code.as_int(),
            "matched_dn": matched_dn.as_str(),
            "error_message": message.as_str(),
        }

        if rest and rest[0].is_context(REFERRAL_TAG):
            fields["referral"] = [uri.as_str() for uri in rest[0].children]
            rest = rest[1:]

        return fields, rest

    def raise_for_result(
        self,
        exc: type[OpError | AuthenticationError] = OpError,
    ) -> None:
        """Raise error if result is not success.

        :raises OpError: or given result error subclass
        """
        if not self.is_success:
            raise exc(self.result_code, self.error_message, self.matched_dn)


class _ResultResponse(LDAPResult, BaseResponse):
    """Response that carries LDAPResult only."""

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "_ResultResponse":
        fields, _ = cls._parse_result(data)
        return cls(**fields)


class BindResponse(LDAPResult, BaseResponse):
    """Bind response. Description in rfc4511 4.2.2.

    BindResponse ::= [APPLICATION 1] SEQUENCE {
        COMPONENTS OF LDAPResult,
        serverSaslCreds    [7] OCTET STRING OPTIONAL }
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.BIND
    SASL_CREDS_TAG: ClassVar[int] = 7

    server_sasl_creds: bytes | None = Field(None, alias="serverSaslCreds")

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize flat structure to bytes, write to encoder buffer."""
        super().to_asn1(enc)

        if self.server_sasl_creds is not None:
            enc.write(
                self.server_sasl_creds,
                cls=Classes.Context,
                nr=self.SASL_CREDS_TAG,
            )

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "BindResponse":
        fields, rest = cls._parse_result(data)
        for row in rest:
            if row.is_context(cls.SASL_CREDS_TAG):
                fields["server_sasl_creds"] = row.as_bytes()
        return cls(**fields)


class SearchResultEntry(BaseResponse):
    """Search Response.

    SearchResultEntry ::= [APPLICATION 4] SEQUENCE {
            objectName      LDAPDN,
            attributes      PartialAttributeList }

    PartialAttributeList ::= SEQUENCE OF
                            partialAttribute PartialAttribute
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.SEARCH_RESULT_ENTRY

    object_name: str
    partial_attributes: list[PartialAttribute] = []

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize search response structure to asn1 buffer."""
        enc.write(self.object_name, Numbers.OctetString)
        enc.enter(Numbers.Sequence)
        for attr in self.partial_attributes:
            attr.to_asn1(enc)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "SearchResultEntry":
        object_name, attributes = data
        return cls(
            object_name=object_name.as_str(),
            partial_attributes=[
                PartialAttribute.from_data(attr)
                for attr in attributes.children
            ],
        )

    def to_entry(self) -> Entry:
        return Entry(dn=self.object_name, attributes=self.partial_attributes)


class SearchResultReference(BaseResponse):
    """List of uris.

    SearchResultReference ::= [APPLICATION 19] SEQUENCE
                                SIZE (1..MAX) OF uri URI
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.SEARCH_RESULT_REFERENCE

    values: list[str] = Field(min_length=1)

    def to_asn1(self, enc: Encoder) -> None:
        for uri in self.values:
            enc.write(uri, Numbers.OctetString)

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "SearchResultReference":
        return cls(values=[uri.as_str() for uri in data])


class SearchResultDone(_ResultResponse):
    """SearchResultDone ::= [APPLICATION 5] LDAPResult."""

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.SEARCH_RESULT_DONE


class ModifyResponse(_ResultResponse):
    """Modify response."""

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.MODIFY


class AddResponse(_ResultResponse):
    """Add response."""

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.ADD


class DeleteResponse(_ResultResponse):
    """Delete response."""

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.DELETE


class CompareResponse(_ResultResponse):
    """Compare response, `compareTrue` or `compareFalse` on success."""

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.COMPARE


class ExtendedResponse(LDAPResult, BaseResponse):
    """Described in RFC 4511 section 4.12.

    ExtendedResponse ::= [APPLICATION 24] SEQUENCE {
        COMPONENTS OF LDAPResult,
        responseName     [10] LDAPOID OPTIONAL,
        responseValue    [11] OCTET STRING OPTIONAL }
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.EXTENDED
    NAME_TAG: ClassVar[int] = 10
    VALUE_TAG: ClassVar[int] = 11

    response_name: str | None = None
    response_value: bytes | None = None

    @property
    def is_disconnection(self) -> bool:
        """Unsolicited notice of disconnection, rfc4511 4.4.1."""
        return self.response_name == LDAPOID.NOTICE_OF_DISCONNECTION

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize flat structure to bytes, write to encoder buffer."""
        super().to_asn1(enc)

        if self.response_name is not None:
            enc.write(
                self.response_name.encode(),
                nr=self.NAME_TAG,
                cls=Classes.Context,
            )
        if self.response_value is not None:
            enc.write(
                self.response_value,
                nr=self.VALUE_TAG,
                cls=Classes.Context,
            )

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "ExtendedResponse":
        fields, rest = cls._parse_result(data)
        for row in rest:
            if row.is_context(cls.NAME_TAG):
                fields["response_name"] = row.as_str()
            elif row.is_context(cls.VALUE_TAG):
                fields["response_value"] = row.as_bytes()
        return cls(**fields)


class IntermediateResponse(BaseResponse):
    """Intermediate response, rfc4511 4.13.

    IntermediateResponse ::= [APPLICATION 25] SEQUENCE {
        responseName     [0] LDAPOID OPTIONAL,
        responseValue    [1] OCTET STRING OPTIONAL }
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolResponse.INTERMEDIATE

    response_name: str | None = None
    response_value: bytes | None = None

    def to_asn1(self, enc: Encoder) -> None:
        if self.response_name is not None:
            enc.write(self.response_name.encode(), nr=0, cls=Classes.Context)
        if self.response_value is not None:
            enc.write(self.response_value, nr=1, cls=Classes.Context)

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "IntermediateResponse":
        fields: dict[str, Any] = {}
        for row in data:
            if row.is_context(0):
                fields["response_name"] = row.as_str()
            elif row.is_context(1):
                fields["response_value"] = row.as_bytes()
        return cls(**fields)


responses: list[type[BaseResponse]] = [
    BindResponse,
    SearchResultEntry,
    SearchResultReference,
    SearchResultDone,
    ModifyResponse,
    AddResponse,
    DeleteResponse,
    CompareResponse,
    ExtendedResponse,
    IntermediateResponse,
]

response_id_map: dict[int, type[BaseResponse]] = {
    response.PROTOCOL_OP: response for response in responses
}
