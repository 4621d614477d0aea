"""LDAP requests bind.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from asn1 import Classes, Encoder, Numbers
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ldap_client.asn1parser import ASN1Row
from ldap_client.exceptions import MalformedMessage
from ldap_client.objects import ProtocolRequests

from .base import BaseRequest, PrimitiveRequest

if TYPE_CHECKING:
    from ldap_client.dialogue import LDAPSession
    from ldap_client.ldap_responses import BindResponse


class SimpleAuthentication(BaseModel):
    """Simple auth form, `simple [0] OCTET STRING`."""

    METHOD_ID: ClassVar[int] = 0

    password: SecretStr = SecretStr("")

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(
            self.password.get_secret_value().encode(),
            nr=self.METHOD_ID,
            cls=Classes.Context,
        )


class SaslCredentials(BaseModel):
    """Sasl auth form.

    ```
    SaslCredentials ::= SEQUENCE {
        mechanism               LDAPString,
        credentials             OCTET STRING OPTIONAL }
    ```
    """

    METHOD_ID: ClassVar[int] = 3

    mechanism: str
    credentials: bytes | None = None

    def to_asn1(self, enc: Encoder) -> None:
        enc.enter(nr=self.METHOD_ID, cls=Classes.Context)
        enc.write(self.mechanism, Numbers.OctetString)
        if self.credentials is not None:
            enc.write(self.credentials, Numbers.OctetString)
        enc.leave()

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "SaslCredentials":
        mechanism, *credentials = data
        return cls(
            mechanism=mechanism.as_str(),
            credentials=credentials[0].as_bytes() if credentials else None,
        )


class SaslMechanism(ABC):
    """SASL mechanism plugin interface.

    Mechanisms drive one or more `SaslCredentials` binds through the
    session until the server stops answering `saslBindInProgress`.
    """

    name: ClassVar[str]

    @abstractmethod
    async def negotiate(self, session: "LDAPSession") -> "BindResponse":
        """Run mechanism exchange, return final bind response."""


class BindRequest(BaseRequest):
    """Bind request fields mapping.

    ```
    BindRequest ::= [APPLICATION 0] SEQUENCE {
        version                 INTEGER (1 ..  127),
        name                    LDAPDN,
        authentication          AuthenticationChoice }

    AuthenticationChoice ::= CHOICE {
        simple                  [0] OCTET STRING,
        sasl                    [3] SaslCredentials,
        ...  }
    ```
    """

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.BIND

    version: int = Field(3, ge=1, le=127)
    name: str = ""
    authentication_choice: SimpleAuthentication | SaslCredentials = Field(
        default_factory=SimpleAuthentication,
        alias="AuthenticationChoice",
    )

    model_config = ConfigDict(populate_by_name=True)

    def to_asn1(self, enc: Encoder) -> None:
        enc.write(self.version, Numbers.Integer)
        enc.write(self.name, Numbers.OctetString)
        self.authentication_choice.to_asn1(enc)

    @classmethod
    def from_data(cls, data: list[ASN1Row]) -> "BindRequest":
        """Get bind from data dict."""
        version, name, auth = data

        auth_choice: SimpleAuthentication | SaslCredentials
        if auth.is_context(SimpleAuthentication.METHOD_ID):
            auth_choice = SimpleAuthentication(password=auth.as_str())
        elif auth.is_context(SaslCredentials.METHOD_ID):
            auth_choice = SaslCredentials.from_data(auth.children)
        else:
            raise MalformedMessage(f"Auth choice {auth.tag_id} not supported")

        return cls(
            version=version.as_int(),
            name=name.as_str(),
            AuthenticationChoice=auth_choice,
        )


class UnbindRequest(PrimitiveRequest):
    """Unbind request, `[APPLICATION 2] NULL`."""

    PROTOCOL_OP: ClassVar[int] = ProtocolRequests.UNBIND

    def get_value(self) -> bytes:
        return b""

    @classmethod
    def from_data(cls, data: bytes | None) -> "UnbindRequest":  # noqa: ARG003
        """Unbind request has no body."""
        return cls()
