"""Modify protocol.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import ClassVar

from asn1 import Encoder, Numbers

from ldap_client.asn1parser import ASN1Row
from ldap_client.objects import Changes, ProtocolRequests

from .base import BaseRequest


class ModifyRequest(BaseRequest):
    """Modify request.

    All changes travel in one request, the server applies them as a unit.

    ```
    ModifyRequest ::= [APPLICATION 6] SEQUENCE {
        object          LDAPDN,
        changes         SEQUENCE OF change SEQUENCE {
            operation       ENUMERATED {
                add     (0),
                delete  (1),
                replace (2),
                ...  },
            modification    PartialAttribute } }
    ```
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.MODIFY

    object: str
    changes: list[Changes]

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.object, Numbers.OctetString)
        enc.enter(Numbers.Sequence)
        for change in self.changes:
            change.to_asn1(enc)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "ModifyRequest":
        entry, proto_changes = data
        return cls(
            object=entry.as_str(),
            changes=[Changes.from_data(c) for c in proto_changes.children],
        )
