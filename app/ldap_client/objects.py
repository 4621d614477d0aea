"""Subcontainers for requests/responses.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from enum import IntEnum, unique
from typing import Annotated

import annotated_types
from asn1 import Encoder, Numbers
from pydantic import BaseModel, field_validator, model_validator

from .asn1parser import ASN1Row
from .exceptions import MalformedMessage

MAX_INT = 2147483647


class Scope(IntEnum):
    """Enum for search request."""

    BASE_OBJECT = 0
    SINGLE_LEVEL = 1
    WHOLE_SUBTREE = 2


class DerefAliases(IntEnum):
    """Enum for search request."""

    NEVER_DEREF_ALIASES = 0
    DEREF_IN_SEARCHING = 1
    DEREF_FINDING_BASE_OBJ = 2
    DEREF_ALWAYS = 3


class Operation(IntEnum):
    """Changes enum for modify request."""

    ADD = 0
    DELETE = 1
    REPLACE = 2
    INCREMENT = 3


@unique
class ProtocolRequests(IntEnum):
    """Enum for LDAP requests."""

    BIND = 0
    UNBIND = 2
    SEARCH = 3
    MODIFY = 6
    ADD = 8
    DELETE = 10
    MODIFY_DN = 12
    COMPARE = 14
    ABANDON = 16
    EXTENDED = 23


@unique
class ProtocolResponse(IntEnum):
    """Enum for LDAP resposnes."""

    BIND = 1
    SEARCH_RESULT_ENTRY = 4
    SEARCH_RESULT_DONE = 5
    MODIFY = 7
    ADD = 9
    DELETE = 11
    MODIFY_DN = 13
    COMPARE = 15
    EXTENDED = 24
    INTERMEDIATE = 25
    SEARCH_RESULT_REFERENCE = 19


def to_value(value: str | bytes | int | bool) -> bytes:
    """Cast python value to attribute value bytes."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        return b"TRUE" if value else b"FALSE"
    return str(value).encode()


class PartialAttribute(BaseModel):
    """Partial attribite structure. Description in rfc2251 4.1.6.

    Values are kept as bytes, duplicates are dropped.
    """

    type: Annotated[str, annotated_types.Len(min_length=1, max_length=8100)]
    vals: list[bytes]

    @property
    def l_name(self) -> str:
        """Get lower case name."""
        return self.type.lower()

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: str | bytes | int) -> str:
        if isinstance(v, bytes):
            return v.decode()
        return str(v)

    @field_validator("vals", mode="before")
    @classmethod
    def validate_vals(cls, vals: list[str | int | bytes]) -> list[bytes]:
        if isinstance(vals, (str, bytes, int)):
            vals = [vals]
        return list(dict.fromkeys(to_value(v) for v in vals))

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize attribute to asn1 buffer."""
        enc.enter(Numbers.Sequence)
        enc.write(self.type, Numbers.OctetString)
        enc.enter(Numbers.Set)

        for val in self.vals:
            enc.write(val, Numbers.OctetString)

        enc.leave()
        enc.leave()

    @classmethod
    def from_data(cls, data: ASN1Row) -> "PartialAttribute":
        """Create attribute from SEQUENCE { type, SET OF value }."""
        try:
            type_, vals = data.children
        except ValueError as err:
            raise MalformedMessage("Invalid attribute structure") from err

        return cls(
            type=type_.as_str(),
            vals=[val.as_bytes() for val in vals.children],
        )


def attributes_from_mapping(
    attributes: "dict[str, list | str | bytes | int] | list[PartialAttribute]",
) -> list[PartialAttribute]:
    """Build attribute list from a name to values mapping.

    :raises ValueError: on duplicate attribute names
    """
    if isinstance(attributes, dict):
        result = [
            PartialAttribute(type=name, vals=vals)
            for name, vals in attributes.items()
        ]
    else:
        result = list(attributes)

    names = [attr.l_name for attr in result]
    if len(names) != len(set(names)):
        raise ValueError(f"Duplicate attribute names: {names}")

    return result


class Changes(BaseModel):
    """Changes for modify request."""

    operation: Operation
    modification: PartialAttribute

    def to_asn1(self, enc: Encoder) -> None:
        """Serialize change to asn1 buffer."""
        enc.enter(Numbers.Sequence)
        enc.write(self.operation, Numbers.Enumerated)
        self.modification.to_asn1(enc)
        enc.leave()

    @classmethod
    def from_data(cls, data: ASN1Row) -> "Changes":
        """Create change from SEQUENCE { operation, modification }."""
        try:
            operation, modification = data.children
            return cls(
                operation=Operation(operation.as_int()),
                modification=PartialAttribute.from_data(modification),
            )
        except ValueError as err:
            raise MalformedMessage(f"Invalid change: {err}") from err

    @classmethod
    def add(cls, name: str, vals: list | str | bytes | int) -> "Changes":
        return cls(
            operation=Operation.ADD,
            modification=PartialAttribute(type=name, vals=vals),
        )

    @classmethod
    def delete(
        cls,
        name: str,
        vals: list | str | bytes | int | None = None,
    ) -> "Changes":
        """Delete values, all values if none given."""
        return cls(
            operation=Operation.DELETE,
            modification=PartialAttribute(
                type=name,
                vals=[] if vals is None else vals,
            ),
        )

    @classmethod
    def replace(cls, name: str, vals: list | str | bytes | int) -> "Changes":
        return cls(
            operation=Operation.REPLACE,
            modification=PartialAttribute(type=name, vals=vals),
        )


class Entry(BaseModel):
    """Directory entry, DN with attributes.

    Attribute lookup is case insensitive.
    """

    dn: str
    attributes: list[PartialAttribute] = []

    @model_validator(mode="after")
    def check_duplicates(self) -> "Entry":
        attributes_from_mapping(self.attributes)
        return self

    def __getitem__(self, name: str) -> list[bytes]:
        """Get attribute values by name."""
        for attr in self.attributes:
            if attr.l_name == name.lower():
                return attr.vals
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        """Check attribute presence."""
        if not isinstance(name, str):
            return False
        return any(attr.l_name == name.lower() for attr in self.attributes)

    @property
    def names(self) -> list[str]:
        """Get attribute names."""
        return [attr.type for attr in self.attributes]

    def get(
        self,
        name: str,
        default: list[bytes] | None = None,
    ) -> list[bytes] | None:
        try:
            return self[name]
        except KeyError:
            return default

    def as_dict(self) -> dict[str, list[bytes]]:
        """Get attributes as mapping."""
        return {attr.type: attr.vals for attr in self.attributes}
