"""Delete protocol.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import ClassVar

from ldap_client.objects import ProtocolRequests

from .base import PrimitiveRequest


class DeleteRequest(PrimitiveRequest):
    """Delete request, `DelRequest ::= [APPLICATION 10] LDAPDN`."""

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.DELETE

    entry: str

    def get_value(self) -> bytes:
        return self.entry.encode()

    @classmethod
    def from_data(cls, data: bytes | str) -> "DeleteRequest":
        if isinstance(data, bytes):
            data = data.decode()
        return cls(entry=data)
