"""Distinguished name parsing.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import re
from dataclasses import dataclass, field
from typing import TypeAlias

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import escape_rdn, parse_dn

from .exceptions import InvalidDNError

_HEX_PAIR = re.compile(r"\\([0-9a-fA-F]{2})|\\(.)")

AVA: TypeAlias = tuple[str, str]
RDN: TypeAlias = tuple[AVA, ...]


def _unescape(value: str) -> str:
    """Decode rfc4514 escapes, `\\XX` pairs are UTF-8 octets."""
    raw = bytearray()
    pos = 0
    for match in _HEX_PAIR.finditer(value):
        raw += value[pos : match.start()].encode()
        if match.group(1):
            raw.append(int(match.group(1), 16))
        else:
            raw += match.group(2).encode()
        pos = match.end()
    raw += value[pos:].encode()
    return raw.decode(errors="replace")


@dataclass(frozen=True)
class DistinguishedName:
    """Immutable DN, ordered from the leaf RDN to the root.

    ```
    >>> dn = DistinguishedName.parse("cn=John Jones,o=My Company,c=US")
    >>> dn.rdn
    (('cn', 'John Jones'),)
    >>> str(dn.parent)
    'o=My Company,c=US'
    ```

    Equality and hash are case insensitive on types and values.
    """

    rdns: tuple[RDN, ...] = ()
    _key: tuple = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Compute comparison key."""
        key = tuple(
            tuple(sorted((t.lower(), v.lower()) for t, v in rdn))
            for rdn in self.rdns
        )
        object.__setattr__(self, "_key", key)

    @classmethod
    def parse(cls, dn: "str | DistinguishedName") -> "DistinguishedName":
        """Parse rfc4514 string representation.

        :raises InvalidDNError: on invalid syntax
        """
        if isinstance(dn, DistinguishedName):
            return dn

        if not dn.strip():
            return cls()

        try:
            components = parse_dn(dn, escape=False, strip=True)
        except LDAPInvalidDnError as err:
            raise InvalidDNError(f"Invalid DN {dn!r}: {err}") from err

        rdns: list[RDN] = []
        current: list[AVA] = []
        for attr_type, value, separator in components:
            current.append((attr_type.strip(), _unescape(value.strip())))
            if separator != "+":
                rdns.append(tuple(current))
                current = []

        if current:
            rdns.append(tuple(current))

        return cls(tuple(rdns))

    def __str__(self) -> str:
        """Render string representation with escaped values."""
        return ",".join(
            "+".join(f"{t}={escape_rdn(v)}" for t, v in rdn)
            for rdn in self.rdns
        )

    def __eq__(self, other: object) -> bool:
        """Compare normalized forms."""
        if isinstance(other, str):
            try:
                other = DistinguishedName.parse(other)
            except InvalidDNError:
                return False
        if not isinstance(other, DistinguishedName):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __len__(self) -> int:
        return len(self.rdns)

    @property
    def is_root(self) -> bool:
        """Empty DN, root DSE."""
        return not self.rdns

    @property
    def rdn(self) -> RDN:
        """Leaf relative name."""
        if not self.rdns:
            raise InvalidDNError("Root DSE has no RDN")
        return self.rdns[0]

    @property
    def parent(self) -> "DistinguishedName":
        return DistinguishedName(self.rdns[1:])

    def is_descendant_of(self, other: "DistinguishedName | str") -> bool:
        """Check if DN is under other DN, the DN itself included."""
        other = DistinguishedName.parse(other)
        if len(other) > len(self):
            return False
        return self._key[len(self) - len(other) :] == other._key
