"""ASN1 parser and decoder wrapper with dataclasses.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import Generic, TypeVar

from asn1 import Classes, Decoder, Error as ASN1Error, Tag, Types

from .exceptions import MalformedMessage, TruncatedMessage

_CONSTRUCTED = 0x20
_HIGH_TAG = 0x1F
_LONG_LENGTH = 0x80


class TagNumbers(IntEnum):
    """Enum for filter tags in LDAP search.

    ```
    AND = 0
    OR = 1
    NOT = 2
    EQUALITY_MATCH = 3
    SUBSTRING = 4
    GE = 5
    LE = 6
    PRESENT = 7
    APPROX_MATCH = 8
    EXTENSIBLE_MATCH = 9
    ```
    """

    AND = 0
    OR = 1
    NOT = 2
    EQUALITY_MATCH = 3
    SUBSTRING = 4
    GE = 5
    LE = 6
    PRESENT = 7
    APPROX_MATCH = 8
    EXTENSIBLE_MATCH = 9


class SubstringTag(IntEnum):
    """Enum for substring tags.

    ```
    INITIAL = 0
    ANY = 1
    FINAL = 2
    ```
    """

    INITIAL = 0
    ANY = 1
    FINAL = 2


T = TypeVar(
    "T",
    contravariant=True,
    bound="ASN1Row | list[ASN1Row] | str | bytes | int | bool | None",
)


@dataclass
class ASN1Row(Generic[T]):
    """Row with metadata."""

    class_id: int
    tag_id: int
    value: T

    @classmethod
    def from_tag(cls, tag: Tag, value: T) -> "ASN1Row":
        """Create row from tag."""
        return cls(tag.cls, tag.nr, value)

    @property
    def children(self) -> list["ASN1Row"]:
        """Get constructed row elements."""
        if not isinstance(self.value, list):
            raise MalformedMessage(
                f"Expected constructed element, got tag {self.tag_id}",
            )
        return self.value

    def as_bytes(self) -> bytes:
        """Get primitive value as bytes."""
        if isinstance(self.value, bytes):
            return self.value
        if isinstance(self.value, str):
            return self.value.encode()
        raise MalformedMessage(f"Expected octet string, got {self.value!r}")

    def as_str(self) -> str:
        """Get primitive value as UTF-8 string."""
        try:
            return self.as_bytes().decode()
        except UnicodeDecodeError as err:
            raise MalformedMessage(str(err)) from err

    def as_int(self) -> int:
        """Get primitive value as integer."""
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise MalformedMessage(f"Expected integer, got {self.value!r}")
        return self.value

    def is_context(self, tag_id: int) -> bool:
        """Check context specific tag."""
        return self.class_id == Classes.Context and self.tag_id == tag_id


def _read_header(data: bytes, pos: int, end: int) -> tuple[bool, int, int]:
    """Read tag and length octets of a single element.

    :return tuple[bool, int, int]: constructed flag, content offset
        and content length
    """
    if pos >= end:
        raise TruncatedMessage("Missing tag octet")

    first = data[pos]
    pos += 1

    if first & _HIGH_TAG == _HIGH_TAG:
        while True:
            if pos >= end:
                raise TruncatedMessage("Incomplete high tag number")
            pos += 1
            if not data[pos - 1] & 0x80:
                break

    if pos >= end:
        raise TruncatedMessage("Missing length octet")

    length = data[pos]
    pos += 1

    if length == _LONG_LENGTH:
        raise MalformedMessage("Indefinite length form is not allowed")

    if length & _LONG_LENGTH:
        octets = length & 0x7F
        if pos + octets > end:
            raise TruncatedMessage("Incomplete length octets")
        length = int.from_bytes(data[pos : pos + octets], "big")
        pos += octets

    if pos + length > end:
        raise TruncatedMessage(
            f"Element length {length} exceeds remaining {end - pos} bytes",
        )

    return bool(first & _CONSTRUCTED), pos, length


def check_frame(data: bytes, pos: int = 0, end: int | None = None) -> None:
    """Validate lengths of all nested elements in the buffer.

    :raises TruncatedMessage: length exceeds the remaining buffer
    :raises MalformedMessage: indefinite length form
    """
    if end is None:
        end = len(data)

    while pos < end:
        constructed, offset, length = _read_header(data, pos, end)
        if constructed:
            check_frame(data, offset, offset + length)
        pos = offset + length


def compute_message_size(data: bytes) -> int | None:
    """Compute LDAP Message size according to BER definite length rules.

    returns None if too few data to compute message length.

    BER definite length - short form.
    Highest bit of byte 1 is 0, message length is in the last 7 bits -
        Value can be up to 127 bytes long

    BER definite length - long form.
    Highest bit of byte 1 is 1, last 7 bits
    counts the number of following octets containing the value length.
    """
    if len(data) < 2:
        return None

    if data[1] <= 127:  # short
        return data[1] + 2

    bytes_length = data[1] - 128  # long
    if len(data) < bytes_length + 2:
        return None

    value_length = int.from_bytes(data[2 : 2 + bytes_length], "big")
    return value_length + 2 + bytes_length


def asn1todict(decoder: Decoder) -> list[ASN1Row]:
    """Recursively collect ASN.1 data to list of ASNRows."""
    out = []
    while not decoder.eof():
        tag = decoder.peek()
        if tag is None:
            break

        if tag.typ == Types.Primitive:
            tag, value = decoder.read()
            out.append(ASN1Row.from_tag(tag, value))

        elif tag.typ == Types.Constructed:
            decoder.enter()
            new_out = asn1todict(decoder)
            decoder.leave()

            out.append(ASN1Row.from_tag(tag, new_out))

    return out


def decode_rows(data: bytes) -> list[ASN1Row]:
    """Decode BER buffer to rows.

    :raises TruncatedMessage: element length exceeds buffer
    :raises MalformedMessage: buffer is not valid BER
    """
    check_frame(data)

    dec = Decoder()
    dec.start(data)
    try:
        return asn1todict(dec)
    except (ASN1Error, ValueError, IndexError) as err:
        raise MalformedMessage(str(err)) from err


def decode_value(data: bytes) -> list[ASN1Row]:
    """Decode BER encoded value nested in an octet string.

    :raises MalformedMessage: value is not valid BER
    """
    dec = Decoder()
    dec.start(data)
    try:
        return asn1todict(dec)
    except (ASN1Error, ValueError, IndexError) as err:
        raise MalformedMessage(f"Invalid BER value: {err}") from err


class LDAPOID(StrEnum):
    """Enum for LDAP OIDs."""

    WHOAMI = "1.3.6.1.4.1.4203.1.11.3"
    START_TLS = "1.3.6.1.4.1.1466.20037"
    NOTICE_OF_DISCONNECTION = "1.3.6.1.4.1.1466.20036"
    CANCEL = "1.3.6.1.1.8"
    PAGED_RESULTS = "1.2.840.113556.1.4.319"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_
