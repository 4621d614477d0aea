"""Base LDAP message builder.

```
LDAPMessage ::= SEQUENCE {
    messageID       MessageID,
    protocolOp      CHOICE {...},
    controls       [0] Controls OPTIONAL }
```

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from abc import ABC
from typing import Annotated

from asn1 import Classes, Encoder, Numbers
from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

from .asn1parser import ASN1Row, decode_rows
from .controls import Control, decode_controls, encode_controls
from .exceptions import MalformedMessage
from .ldap_requests import BaseRequest, protocol_id_map
from .ldap_requests.base import PrimitiveRequest
from .ldap_responses import BaseResponse, response_id_map
from .objects import MAX_INT

MessageID = Annotated[int, Field(ge=0, le=MAX_INT)]


class LDAPMessage(ABC, BaseModel):
    """Base message structure. Pydantic for types validation."""

    message_id: MessageID = Field(..., alias="messageID")
    context: BaseRequest | BaseResponse
    controls: list[Control] = []

    model_config = ConfigDict(populate_by_name=True)

    @property
    def name(self) -> str:
        """Message name."""
        return type(self.context).__name__

    def encode(self) -> bytes:
        """Encode message to asn1."""
        enc = Encoder()
        enc.start()
        enc.enter(Numbers.Sequence)
        enc.write(self.message_id, Numbers.Integer)
        self.context.write_op(enc)
        encode_controls(enc, self.controls)
        enc.leave()
        return enc.output()

    @classmethod
    def from_bytes(
        cls,
        source: bytes,
    ) -> "LDAPRequestMessage | LDAPResponseMessage":
        """Create message from single BER frame.

        :raises TruncatedMessage: frame is incomplete
        :raises MalformedMessage: frame is not an LDAPMessage
        """
        rows = decode_rows(source)
        if len(rows) != 1:
            raise MalformedMessage(f"Expected one message, got {len(rows)}")

        sequence = rows[0]
        if (
            sequence.class_id != Classes.Universal
            or sequence.tag_id != Numbers.Sequence
        ):
            raise MalformedMessage("Wrong schema")

        seq_fields = sequence.children
        if len(seq_fields) not in (2, 3):
            raise MalformedMessage("Wrong schema")

        message_id: ASN1Row = seq_fields[0]
        protocol: ASN1Row = seq_fields[1]
        controls = []
        if len(seq_fields) == 3:
            controls = decode_controls(seq_fields[2])

        if protocol.class_id != Classes.Application:
            raise MalformedMessage(
                f"Invalid protocol op class {protocol.class_id}",
            )

        message_cls: type[LDAPRequestMessage | LDAPResponseMessage]
        op: type[BaseRequest | BaseResponse]

        if protocol.tag_id in protocol_id_map:
            message_cls = LDAPRequestMessage
            op = protocol_id_map[protocol.tag_id]
        elif protocol.tag_id in response_id_map:
            message_cls = LDAPResponseMessage
            op = response_id_map[protocol.tag_id]
        else:
            raise MalformedMessage(f"Unknown protocol op {protocol.tag_id}")

        primitive = issubclass(op, PrimitiveRequest)
        if primitive == isinstance(protocol.value, list):
            raise MalformedMessage(f"Invalid {op.__name__} encoding")

        try:
            return message_cls(
                messageID=message_id.as_int(),
                context=op.from_data(protocol.value),
                controls=controls,
            )
        except (ValueError, IndexError) as err:
            raise MalformedMessage(f"Invalid {op.__name__}: {err}") from err


class LDAPRequestMessage(LDAPMessage):
    """Request message interface."""

    context: SerializeAsAny[BaseRequest]


class LDAPResponseMessage(LDAPMessage):
    """Response message."""

    context: SerializeAsAny[BaseResponse]


def encode(message: LDAPMessage) -> bytes:
    """Encode request or response message."""
    return message.encode()


def decode(data: bytes) -> LDAPRequestMessage | LDAPResponseMessage:
    """Decode request or response message from single frame."""
    return LDAPMessage.from_bytes(data)
