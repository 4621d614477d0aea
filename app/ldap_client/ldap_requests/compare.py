"""Compare protocol.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import ClassVar

from asn1 import Encoder, Numbers
from pydantic import field_validator

from ldap_client.asn1parser import ASN1Row
from ldap_client.objects import ProtocolRequests, to_value

from .base import BaseRequest


class CompareRequest(BaseRequest):
    """Compare protocol.

    ```
    CompareRequest ::= [APPLICATION 14] SEQUENCE {
        entry           LDAPDN,
        ava             AttributeValueAssertion }

    AttributeValueAssertion ::= SEQUENCE {
        attributeDesc   AttributeDescription,
        assertionValue  AssertionValue }
    ```
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.COMPARE

    entry: str
    attribute_desc: str
    assertion_value: bytes

    @field_validator("assertion_value", mode="before")
    @classmethod
    def validate_value(cls, value: str | bytes | int | bool) -> bytes:
        return to_value(value)

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.entry, Numbers.OctetString)
        enc.enter(Numbers.Sequence)
        enc.write(self.attribute_desc, Numbers.OctetString)
        enc.write(self.assertion_value, Numbers.OctetString)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "CompareRequest":
        entry, ava = data
        attr, value = ava.children
        return cls(
            entry=entry.as_str(),
            attribute_desc=attr.as_str(),
            assertion_value=value.as_bytes(),
        )
