"""Search protocol.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import Any, ClassVar

from asn1 import Encoder, Numbers
from pydantic import ConfigDict, Field, field_serializer, field_validator

from ldap_client.asn1parser import ASN1Row
from ldap_client.filter import Present, SearchFilter
from ldap_client.objects import (
    MAX_INT,
    DerefAliases,
    ProtocolRequests,
    Scope,
)

from .base import BaseRequest


class SearchRequest(BaseRequest):
    """Search request schema.

    ```
    SearchRequest ::= [APPLICATION 3] SEQUENCE {
        baseObject      LDAPDN,
        scope           ENUMERATED {
            baseObject              (0),
            singleLevel             (1),
            wholeSubtree            (2),
        },
        derefAliases    ENUMERATED {
            neverDerefAliases       (0),
            derefInSearching        (1),
            derefFindingBaseObj     (2),
            derefAlways             (3)
        },
        sizeLimit       INTEGER (0 ..  maxInt),
        timeLimit       INTEGER (0 ..  maxInt),
        typesOnly       BOOLEAN,
        filter          Filter,
        attributes      AttributeSelection
    }
    ```

    `filter` accepts a compiled tree or rfc4515 string.
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.SEARCH

    base_object: str = Field("", description="Any `DistinguishedName`")
    scope: Scope = Scope.WHOLE_SUBTREE
    deref_aliases: DerefAliases = DerefAliases.NEVER_DEREF_ALIASES
    size_limit: int = Field(0, ge=0, le=MAX_INT, examples=[1000])
    time_limit: int = Field(0, ge=0, le=MAX_INT, examples=[1000])
    types_only: bool = False
    filter: SearchFilter = Field(
        default_factory=lambda: Present("objectClass"),
    )
    attributes: list[str] = []

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("filter", mode="before")
    @classmethod
    def validate_filter(cls, value: str | SearchFilter) -> SearchFilter:
        if isinstance(value, str):
            return SearchFilter.parse(value)
        return value

    @field_serializer("filter")
    def serialize_filter(self, val: SearchFilter, _info: Any) -> str:
        """Serialize filter field."""
        return val.to_ldap_filter()

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.base_object, Numbers.OctetString)
        enc.write(self.scope, Numbers.Enumerated)
        enc.write(self.deref_aliases, Numbers.Enumerated)
        enc.write(self.size_limit, Numbers.Integer)
        enc.write(self.time_limit, Numbers.Integer)
        enc.write(self.types_only, Numbers.Boolean)
        self.filter.to_asn1(enc)

        enc.enter(Numbers.Sequence)
        for attr in self.attributes:
            enc.write(attr, Numbers.OctetString)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "SearchRequest":
        (
            base_object,
            scope,
            deref_aliases,
            size_limit,
            time_limit,
            types_only,
            filter_,
            attributes,
        ) = data

        return cls(
            base_object=base_object.as_str(),
            scope=Scope(scope.as_int()),
            deref_aliases=DerefAliases(deref_aliases.as_int()),
            size_limit=size_limit.as_int(),
            time_limit=time_limit.as_int(),
            types_only=bool(types_only.value),
            filter=SearchFilter.from_data(filter_),
            attributes=[field.as_str() for field in attributes.children],
        )
