"""LDAP controls, rfc4511 4.1.11.

```
Controls ::= SEQUENCE OF control Control

Control ::= SEQUENCE {
    controlType             LDAPOID,
    criticality             BOOLEAN DEFAULT FALSE,
    controlValue            OCTET STRING OPTIONAL }
```

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from asn1 import Classes, Encoder, Numbers
from pydantic import BaseModel, Field

from .asn1parser import LDAPOID, ASN1Row, decode_value
from .exceptions import MalformedMessage

CONTROLS_TAG = 0


class Control(BaseModel):
    """Controls class."""

    control_type: str
    criticality: bool = False
    control_value: bytes | None = None

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(Numbers.Sequence)
        enc.write(self.control_type, Numbers.OctetString)
        if self.criticality:
            enc.write(self.criticality, Numbers.Boolean)
        if self.control_value is not None:
            enc.write(self.control_value, Numbers.OctetString)
        enc.leave()

    @classmethod
    def from_data(cls, data: ASN1Row) -> "Control":
        """Create control, criticality and value are optional."""
        fields = data.children
        if not fields:
            raise MalformedMessage("Control without type")

        control = cls(control_type=fields[0].as_str())
        for field in fields[1:]:
            if isinstance(field.value, bool):
                control.criticality = field.value
            else:
                control.control_value = field.as_bytes()

        return control


def encode_controls(enc: Encoder, controls: list[Control]) -> None:
    """Write `controls [0] Controls OPTIONAL` message component."""
    if not controls:
        return

    enc.enter(CONTROLS_TAG, Classes.Context)
    for control in controls:
        control.to_asn1(enc)
    enc.leave()


def decode_controls(data: ASN1Row) -> list[Control]:
    if not data.is_context(CONTROLS_TAG):
        raise MalformedMessage(f"Unexpected message element {data.tag_id}")
    return [Control.from_data(ctrl) for ctrl in data.children]


class PagedResultsValue(BaseModel):
    """Simple paged results control value, rfc2696.

    ```
    realSearchControlValue ::= SEQUENCE {
        size            INTEGER (0..maxInt),
                                -- requested page size from client
                                -- result set size estimate from server
        cookie          OCTET STRING
    }
    ```
    """

    size: int = Field(ge=0)
    cookie: bytes = b""

    def to_control(self, criticality: bool = False) -> Control:
        enc = Encoder()
        enc.start()
        enc.enter(Numbers.Sequence)
        enc.write(self.size, Numbers.Integer)
        enc.write(self.cookie, Numbers.OctetString)
        enc.leave()

        return Control(
            control_type=LDAPOID.PAGED_RESULTS,
            criticality=criticality,
            control_value=enc.output(),
        )

    @classmethod
    def from_control(cls, control: Control) -> "PagedResultsValue":
        """Decode control value.

        :raises MalformedMessage: not a paged results value
        """
        if not control.control_value:
            raise MalformedMessage("Paged results control without value")

        rows = decode_value(control.control_value)
        try:
            sequence = rows[0]
            size, cookie = sequence.children
        except (ValueError, IndexError) as err:
            raise MalformedMessage("Invalid paged results value") from err

        return cls(size=size.as_int(), cookie=cookie.as_bytes())

    @classmethod
    def find(cls, controls: list[Control]) -> "PagedResultsValue | None":
        """Get paged results value from response controls."""
        for control in controls:
            if control.control_type == LDAPOID.PAGED_RESULTS:
                return cls.from_control(control)
        return None
