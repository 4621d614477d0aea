"""LDAP request abstract structure.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, TypeAlias

from asn1 import Classes, Encoder
from pydantic import BaseModel

serializer: TypeAlias = Callable[..., "BaseRequest"]


class BaseRequest(ABC, BaseModel):
    """Base request builder.

    Most operations are constructed `[APPLICATION n] SEQUENCE` elements,
    primitive ones (Unbind, Delete, Abandon) override `write_op`.
    """

    PROTOCOL_OP: ClassVar[int]
    from_data: ClassVar[serializer]

    @abstractmethod
    def to_asn1(self, enc: Encoder) -> None:
        """Write operation contents to asn1 buffer."""

    def write_op(self, enc: Encoder) -> None:
        """Write tagged protocolOp element."""
        enc.enter(nr=self.PROTOCOL_OP, cls=Classes.Application)
        self.to_asn1(enc)
        enc.leave()


class PrimitiveRequest(BaseRequest):
    """Request encoded as a single primitive application element."""

    @abstractmethod
    def get_value(self) -> bytes:
        """Get raw element contents."""

    def to_asn1(self, enc: Encoder) -> None:
        self.write_op(enc)

    def write_op(self, enc: Encoder) -> None:
        enc.write(
            self.get_value(),
            nr=self.PROTOCOL_OP,
            cls=Classes.Application,
        )


def encode_int(value: int) -> bytes:
    """Minimal big-endian two's complement integer contents."""
    bits = (value if value >= 0 else ~value).bit_length()
    return value.to_bytes(bits // 8 + 1, "big", signed=True)


def decode_int(data: Any) -> int:
    """Read integer from raw primitive contents."""
    if isinstance(data, int):
        return data
    return int.from_bytes(data, "big", signed=True)
