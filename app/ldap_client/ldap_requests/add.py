"""Add protocol.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import ClassVar

from asn1 import Encoder, Numbers
from pydantic import Field, field_validator

from ldap_client.asn1parser import ASN1Row
from ldap_client.objects import (
    PartialAttribute,
    ProtocolRequests,
    attributes_from_mapping,
)

from .base import BaseRequest


class AddRequest(BaseRequest):
    """Add new entry.

    ```
    AddRequest ::= [APPLICATION 8] SEQUENCE {
        entry           LDAPDN,
        attributes      AttributeList
    }

    AttributeList ::= SEQUENCE OF attribute Attribute
    ```
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.ADD

    entry: str = Field(..., description="Any `DistinguishedName`")
    attributes: list[PartialAttribute]

    @field_validator("attributes", mode="before")
    @classmethod
    def validate_mapping(cls, attributes: dict | list) -> list:
        if isinstance(attributes, dict):
            return attributes_from_mapping(attributes)
        return attributes

    @field_validator("attributes")
    @classmethod
    def check_duplicates(
        cls,
        attributes: list[PartialAttribute],
    ) -> list[PartialAttribute]:
        return attributes_from_mapping(attributes)

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.entry, Numbers.OctetString)
        enc.enter(Numbers.Sequence)
        for attr in self.attributes:
            attr.to_asn1(enc)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "AddRequest":
        """Deserialize."""
        entry, attributes = data
        return cls(
            entry=entry.as_str(),
            attributes=[
                PartialAttribute.from_data(attr)
                for attr in attributes.children
            ],
        )
