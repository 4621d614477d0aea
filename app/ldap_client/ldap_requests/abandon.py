"""Abandon request.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from typing import ClassVar

from pydantic import Field

from ldap_client.objects import ProtocolRequests

from .base import PrimitiveRequest, decode_int, encode_int


class AbandonRequest(PrimitiveRequest):
    """Abandon protocol, `[APPLICATION 16] MessageID`.

    Server sends no response.
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.ABANDON
    message_id: int = Field(ge=0)

    def get_value(self) -> bytes:
        return encode_int(self.message_id)

    @classmethod
    def from_data(cls, data: bytes | int) -> "AbandonRequest":
        """Create structure from raw MessageID contents."""
        return cls(message_id=decode_int(data))
