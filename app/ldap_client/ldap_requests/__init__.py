"""LDAP protocol map.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

from .abandon import AbandonRequest
from .add import AddRequest
from .base import BaseRequest
from .bind import (
    BindRequest,
    SaslCredentials,
    SaslMechanism,
    SimpleAuthentication,
    UnbindRequest,
)
from .compare import CompareRequest
from .delete import DeleteRequest
from .extended import (
    CancelRequestValue,
    ExtendedRequest,
    StartTLSRequestValue,
    WhoAmIRequestValue,
)
from .modify import ModifyRequest
from .search import SearchRequest

requests: list[type[BaseRequest]] = [
    AbandonRequest,
    AddRequest,
    BindRequest,
    UnbindRequest,
    CompareRequest,
    DeleteRequest,
    ExtendedRequest,
    ModifyRequest,
    SearchRequest,
]

protocol_id_map: dict[int, type[BaseRequest]] = {
    request.PROTOCOL_OP: request for request in requests
}


__all__ = [
    "protocol_id_map",
    "AbandonRequest",
    "AddRequest",
    "BaseRequest",
    "BindRequest",
    "CancelRequestValue",
    "CompareRequest",
    "DeleteRequest",
    "ExtendedRequest",
    "ModifyRequest",
    "SaslCredentials",
    "SaslMechanism",
    "SearchRequest",
    "SimpleAuthentication",
    "StartTLSRequestValue",
    "UnbindRequest",
    "WhoAmIRequestValue",
]
