"""Module with settings.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import os
import ssl
from typing import ClassVar

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Client connection settings."""

    ENV_PREFIX: ClassVar[str] = "LDAP_"

    DEBUG: bool = False
    HOST: str = "localhost"
    PORT: int = Field(389, ge=1, le=65535)
    USE_TLS: bool = False

    SSL_VERIFY: bool = True
    CA_FILE: str | None = None

    CONNECT_TIMEOUT: float = Field(10.0, gt=0)
    # None waits for responses forever
    OPERATION_TIMEOUT: float | None = Field(30.0, gt=0)

    PAGE_SIZE: int = Field(500, ge=1)
    TCP_PACKET_SIZE: int = Field(1024, ge=1)

    LOG_FILE: str | None = None

    def get_ssl_context(self) -> ssl.SSLContext:
        """Build client TLS context for LDAPS and StartTLS."""
        context = ssl.create_default_context(cafile=self.CA_FILE)
        if not self.SSL_VERIFY:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    @classmethod
    def from_os(cls) -> "Settings":
        """Get cls from `LDAP_` prefixed environ."""
        return Settings(
            **{
                key.removeprefix(cls.ENV_PREFIX): value
                for key, value in os.environ.items()
                if key.startswith(cls.ENV_PREFIX)
            },
        )
