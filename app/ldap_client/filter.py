"""LDAP search filter tree, rfc4511 4.5.1.7 and rfc4515.

```
Filter ::= CHOICE {
    and             [0] SET SIZE (1..MAX) OF filter Filter,
    or              [1] SET SIZE (1..MAX) OF filter Filter,
    not             [2] Filter,
    equalityMatch   [3] AttributeValueAssertion,
    substrings      [4] SubstringFilter,
    greaterOrEqual  [5] AttributeValueAssertion,
    lessOrEqual     [6] AttributeValueAssertion,
    present         [7] AttributeDescription,
    approxMatch     [8] AttributeValueAssertion,
    extensibleMatch [9] MatchingRuleAssertion,
    ...  }
```

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Iterator

from asn1 import Classes, Encoder, Numbers
from ldap_filter import Filter

from .asn1parser import ASN1Row, SubstringTag, TagNumbers
from .exceptions import FilterSyntaxError, MalformedMessage

_ESCAPED = re.compile(rb"\\([0-9a-fA-F]{2})")
_ITEM = re.compile(r"\(([^()]*)\)")
_SPECIAL = frozenset(b"*()\\\x00")


def unescape_value(value: str) -> bytes:
    """Decode rfc4515 `\\XX` escapes to raw bytes."""
    return _ESCAPED.sub(
        lambda m: bytes((int(m.group(1), 16),)),
        value.encode(),
    )


def escape_value(value: bytes) -> str:
    """Escape assertion value for the string representation."""
    out = []
    for byte in value:
        if byte in _SPECIAL or byte > 0x7E:
            out.append(f"\\{byte:02x}")
        else:
            out.append(chr(byte))
    return "".join(out)


class SearchFilter(ABC):
    """Base filter node."""

    TAG: ClassVar[TagNumbers]

    @abstractmethod
    def to_asn1(self, enc: Encoder) -> None:
        """Write filter to asn1 buffer."""

    @abstractmethod
    def to_ldap_filter(self) -> str:
        """Get rfc4515 string representation."""

    def __str__(self) -> str:
        return self.to_ldap_filter()

    @classmethod
    def from_data(cls, row: ASN1Row) -> "SearchFilter":
        """Build filter tree from decoded rows.

        :raises MalformedMessage: unknown or unsupported filter tag
        """
        if row.class_id != Classes.Context:
            raise MalformedMessage(f"Invalid filter class {row.class_id}")

        try:
            tag = TagNumbers(row.tag_id)
        except ValueError as err:
            raise MalformedMessage(f"Unknown filter tag {row.tag_id}") from err

        if tag in (TagNumbers.AND, TagNumbers.OR):
            filters = tuple(cls.from_data(child) for child in row.children)
            return And(filters) if tag == TagNumbers.AND else Or(filters)

        if tag == TagNumbers.NOT:
            if len(row.children) != 1:
                raise MalformedMessage("NOT filter must have one element")
            return Not(cls.from_data(row.children[0]))

        if tag == TagNumbers.PRESENT:
            return Present(row.as_str())

        if tag == TagNumbers.SUBSTRING:
            return Substring.from_data(row)

        if tag in _ASSERTIONS:
            attr, value = _unpack_assertion(row)
            return _ASSERTIONS[tag](attr, value)

        raise MalformedMessage(f"Unsupported filter tag {tag.name}")

    @classmethod
    def parse(cls, text: str) -> "SearchFilter":
        """Compile rfc4515 string filter.

        :raises FilterSyntaxError: invalid filter string
        """
        text = text.strip()
        if not text:
            raise FilterSyntaxError("Empty filter")

        if not text.startswith("("):
            text = f"({text})"

        try:
            parsed = Filter.parse(text)
        except Exception as err:
            raise FilterSyntaxError(f"Invalid filter {text!r}: {err}") from err

        items = iter(_ITEM.findall(text))
        result = _from_ldap_filter(parsed, items)

        if next(items, None) is not None:
            raise FilterSyntaxError(f"Invalid filter {text!r}")

        return result


def _unpack_assertion(row: ASN1Row) -> tuple[str, bytes]:
    try:
        attr, value = row.children
    except ValueError as err:
        raise MalformedMessage("Invalid attribute value assertion") from err
    return attr.as_str(), value.as_bytes()


@dataclass(frozen=True)
class _Group(SearchFilter):
    OPERATOR: ClassVar[str]
    filters: tuple[SearchFilter, ...]

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(self.TAG, Classes.Context)
        for item in self.filters:
            item.to_asn1(enc)
        enc.leave()

    def to_ldap_filter(self) -> str:
        subfilters = "".join(f.to_ldap_filter() for f in self.filters)
        return f"({self.OPERATOR}{subfilters})"


@dataclass(frozen=True)
class And(_Group):
    """All subfilters match."""

    TAG: ClassVar[TagNumbers] = TagNumbers.AND
    OPERATOR: ClassVar[str] = "&"


@dataclass(frozen=True)
class Or(_Group):
    """Any subfilter matches."""

    TAG: ClassVar[TagNumbers] = TagNumbers.OR
    OPERATOR: ClassVar[str] = "|"


@dataclass(frozen=True)
class Not(SearchFilter):
    """Negation."""

    TAG: ClassVar[TagNumbers] = TagNumbers.NOT
    filter: SearchFilter

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(self.TAG, Classes.Context)
        self.filter.to_asn1(enc)
        enc.leave()

    def to_ldap_filter(self) -> str:
        return f"(!{self.filter.to_ldap_filter()})"


@dataclass(frozen=True)
class _Assertion(SearchFilter):
    """Attribute value assertion."""

    OPERATOR: ClassVar[str]
    attribute: str
    value: bytes

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(self.TAG, Classes.Context)
        enc.write(self.attribute, Numbers.OctetString)
        enc.write(self.value, Numbers.OctetString)
        enc.leave()

    def to_ldap_filter(self) -> str:
        return f"({self.attribute}{self.OPERATOR}{escape_value(self.value)})"


@dataclass(frozen=True)
class Equality(_Assertion):
    """`(attr=value)`."""

    TAG: ClassVar[TagNumbers] = TagNumbers.EQUALITY_MATCH
    OPERATOR: ClassVar[str] = "="


@dataclass(frozen=True)
class GreaterOrEqual(_Assertion):
    TAG: ClassVar[TagNumbers] = TagNumbers.GE
    OPERATOR: ClassVar[str] = ">="


@dataclass(frozen=True)
class LessOrEqual(_Assertion):
    TAG: ClassVar[TagNumbers] = TagNumbers.LE
    OPERATOR: ClassVar[str] = "<="


@dataclass(frozen=True)
class ApproxMatch(_Assertion):
    TAG: ClassVar[TagNumbers] = TagNumbers.APPROX_MATCH
    OPERATOR: ClassVar[str] = "~="


_ASSERTIONS: dict[TagNumbers, type[_Assertion]] = {
    cls.TAG: cls
    for cls in (Equality, GreaterOrEqual, LessOrEqual, ApproxMatch)
}


@dataclass(frozen=True)
class Substring(SearchFilter):
    """Substring match `(attr=initial*any*final)`.

    ```
    SubstringFilter ::= SEQUENCE {
        type           AttributeDescription,
        substrings     SEQUENCE SIZE (1..MAX) OF substring CHOICE {
            initial [0] AssertionValue,  -- can occur at most once
            any     [1] AssertionValue,
            final   [2] AssertionValue } -- can occur at most once
        }
    ```
    """

    TAG: ClassVar[TagNumbers] = TagNumbers.SUBSTRING
    attribute: str
    initial: bytes | None = None
    any: tuple[bytes, ...] = ()
    final: bytes | None = None

    def __post_init__(self) -> None:
        if self.initial is None and self.final is None and not self.any:
            raise ValueError("Substring filter requires at least one part")

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(self.TAG, Classes.Context)
        enc.write(self.attribute, Numbers.OctetString)
        enc.enter(Numbers.Sequence)

        if self.initial is not None:
            enc.write(
                self.initial,
                nr=SubstringTag.INITIAL,
                cls=Classes.Context,
            )
        for part in self.any:
            enc.write(part, nr=SubstringTag.ANY, cls=Classes.Context)
        if self.final is not None:
            enc.write(self.final, nr=SubstringTag.FINAL, cls=Classes.Context)

        enc.leave()
        enc.leave()

    def to_ldap_filter(self) -> str:
        parts = [escape_value(self.initial or b"")]
        parts.extend(escape_value(part) for part in self.any)
        parts.append(escape_value(self.final or b""))
        return f"({self.attribute}={'*'.join(parts)})"

    @classmethod
    def from_data(cls, row: ASN1Row) -> "Substring":  # type: ignore[override]
        try:
            attr, substrings = row.children
        except ValueError as err:
            raise MalformedMessage("Invalid substring filter") from err

        initial = final = None
        any_: list[bytes] = []

        for part in substrings.children:
            if part.is_context(SubstringTag.INITIAL) and initial is None:
                initial = part.as_bytes()
            elif part.is_context(SubstringTag.ANY):
                any_.append(part.as_bytes())
            elif part.is_context(SubstringTag.FINAL) and final is None:
                final = part.as_bytes()
            else:
                raise MalformedMessage(
                    f"Invalid tag_id ({part.tag_id}) in substring",
                )

        try:
            return cls(attr.as_str(), initial, tuple(any_), final)
        except ValueError as err:
            raise MalformedMessage(str(err)) from err


@dataclass(frozen=True)
class Present(SearchFilter):
    """Attribute presence `(attr=*)`."""

    TAG: ClassVar[TagNumbers] = TagNumbers.PRESENT
    attribute: str

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.attribute.encode(), nr=self.TAG, cls=Classes.Context)

    def to_ldap_filter(self) -> str:
        return f"({self.attribute}=*)"


_COMPARATORS: dict[str, type[_Assertion]] = {
    "=": Equality,
    ">=": GreaterOrEqual,
    "<=": LessOrEqual,
    "~=": ApproxMatch,
}


def _from_ldap_filter(expr: Filter, items: Iterator[str]) -> SearchFilter:
    """Cast parsed `ldap_filter.Filter` to filter tree.

    `ldap_filter` returns unescaped values, where `\\2a` and a wildcard
    are the same character. Assertion values are taken from `items`,
    the raw text of simple items in the order they are written.
    """
    if expr.type == "group":
        filters = tuple(
            _from_ldap_filter(item, items) for item in expr.filters
        )

        if expr.comp == "!":
            if len(filters) != 1:
                raise FilterSyntaxError("NOT filter must have one element")
            return Not(filters[0])

        if not filters:
            raise FilterSyntaxError(f"Empty {expr.comp!r} filter")

        return And(filters) if expr.comp == "&" else Or(filters)

    attr, item = expr.attr, next(items, None)

    if not attr:
        raise FilterSyntaxError("Missing attribute description")

    if item is None or expr.comp not in item:
        raise FilterSyntaxError(f"Invalid filter item {expr.comp!r}")

    value = item.partition(expr.comp)[2]

    if expr.comp == "=" and value == "*":
        return Present(attr)

    if expr.comp == "=" and "*" in value:
        initial, *any_, final = value.split("*")
        try:
            return Substring(
                attr,
                unescape_value(initial) if initial else None,
                tuple(unescape_value(part) for part in any_ if part),
                unescape_value(final) if final else None,
            )
        except ValueError as err:
            raise FilterSyntaxError(f"Invalid substring {item!r}") from err

    try:
        return _COMPARATORS[expr.comp](attr, unescape_value(value))
    except KeyError as err:
        raise FilterSyntaxError(f"Unknown operator {expr.comp!r}") from err
