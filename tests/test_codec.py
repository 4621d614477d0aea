"""Test LDAP message encoding and decoding.

Copyright (c) 2024 MultiFactor
License: https://github.com/MultiDirectoryLab/MultiDirectory/blob/main/LICENSE
"""

import pytest

from ldap_client.asn1parser import compute_message_size
from ldap_client.controls import Control, PagedResultsValue
from ldap_client.exceptions import MalformedMessage, TruncatedMessage
from ldap_client.filter import And, Equality, Present, Substring
from ldap_client.ldap_codes import LDAPCodes
from ldap_client.ldap_requests import (
    AbandonRequest,
    AddRequest,
    BindRequest,
    CancelRequestValue,
    CompareRequest,
    DeleteRequest,
    ExtendedRequest,
    ModifyRequest,
    SaslCredentials,
    SearchRequest,
    SimpleAuthentication,
    UnbindRequest,
    WhoAmIRequestValue,
)
from ldap_client.ldap_requests.base import encode_int
from ldap_client.ldap_responses import (
    AddResponse,
    BindResponse,
    CompareResponse,
    ExtendedResponse,
    IntermediateResponse,
    SearchResultDone,
    SearchResultEntry,
    SearchResultReference,
)
from ldap_client.messages import (
    LDAPRequestMessage,
    LDAPResponseMessage,
    decode,
    encode,
)
from ldap_client.objects import Changes, PartialAttribute, Scope

ANONYMOUS_BIND = bytes.fromhex("300c020101600702010304008000")


def test_anonymous_bind_encoding() -> None:
    """Test bind request bytes match rfc4511 BER."""
    message = LDAPRequestMessage(
        messageID=1,
        context=BindRequest(
            name="",
            AuthenticationChoice=SimpleAuthentication(password=""),
        ),
    )
    assert encode(message) == ANONYMOUS_BIND


def test_unbind_is_primitive_null() -> None:
    """Test unbind is encoded as `[APPLICATION 2] NULL`."""
    message = LDAPRequestMessage(messageID=3, context=UnbindRequest())
    assert encode(message) == bytes.fromhex("30050201034200")


def test_delete_is_primitive_dn() -> None:
    """Test delete request carries DN in primitive element."""
    message = LDAPRequestMessage(
        messageID=5,
        context=DeleteRequest(entry="cn=a"),
    )
    assert encode(message) == bytes.fromhex("3009020105") + b"\x4a\x04cn=a"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, b"\x00"),
        (127, b"\x7f"),
        (128, b"\x00\x80"),
        (256, b"\x01\x00"),
        (-1, b"\xff"),
        (-128, b"\x80"),
        (-129, b"\xff\x7f"),
    ],
)
def test_encode_int_minimal(value: int, expected: bytes) -> None:
    """Test integers are encoded in minimal two's complement."""
    assert encode_int(value) == expected


@pytest.mark.parametrize(
    "context",
    [
        BindRequest(
            name="cn=admin,dc=example,dc=com",
            AuthenticationChoice=SimpleAuthentication(password="secret"),
        ),
        BindRequest(
            name="",
            AuthenticationChoice=SaslCredentials(
                mechanism="EXTERNAL",
                credentials=None,
            ),
        ),
        UnbindRequest(),
        AbandonRequest(message_id=300),
        DeleteRequest(entry="cn=user,dc=example,dc=com"),
        AddRequest(
            entry="cn=user,dc=example,dc=com",
            attributes={"objectClass": ["top", "person"], "cn": "user"},
        ),
        ModifyRequest(
            object="cn=user,dc=example,dc=com",
            changes=[
                Changes.replace("mail", "user@example.com"),
                Changes.delete("description"),
                Changes.add("member", [b"\x00\xff", "cn=x"]),
            ],
        ),
        CompareRequest(
            entry="cn=user,dc=example,dc=com",
            attribute_desc="uid",
            assertion_value="user",
        ),
        SearchRequest(
            base_object="dc=example,dc=com",
            scope=Scope.SINGLE_LEVEL,
            size_limit=10,
            time_limit=5,
            filter=And(
                (
                    Equality("objectClass", b"person"),
                    Substring("cn", b"Jo", (b"h",), b"n"),
                    Present("mail"),
                ),
            ),
            attributes=["cn", "mail"],
        ),
        ExtendedRequest.from_value(WhoAmIRequestValue()),
        ExtendedRequest.from_value(CancelRequestValue(cancel_id=7)),
    ],
)
def test_request_round_trip(context) -> None:
    """Test decode restores every encoded request."""
    message = LDAPRequestMessage(messageID=42, context=context)
    decoded = decode(encode(message))

    assert isinstance(decoded, LDAPRequestMessage)
    assert decoded == message


@pytest.mark.parametrize(
    "context",
    [
        BindResponse(result_code=LDAPCodes.SUCCESS),
        BindResponse(
            result_code=LDAPCodes.SASL_BIND_IN_PROGRESS,
            server_sasl_creds=b"challenge",
        ),
        SearchResultEntry(
            object_name="cn=user,dc=example,dc=com",
            partial_attributes=[
                PartialAttribute(type="cn", vals=["user"]),
                PartialAttribute(type="jpegPhoto", vals=[b"\xff\xd8"]),
            ],
        ),
        SearchResultReference(values=["ldap://other/dc=example,dc=com"]),
        SearchResultDone(
            result_code=LDAPCodes.NO_SUCH_OBJECT,
            matched_dn="dc=example,dc=com",
            error_message="missing",
        ),
        SearchResultDone(
            result_code=LDAPCodes.REFERRAL,
            referral=["ldap://other/"],
        ),
        AddResponse(result_code=LDAPCodes.ENTRY_ALREADY_EXISTS),
        CompareResponse(result_code=LDAPCodes.COMPARE_TRUE),
        ExtendedResponse(result_code=0, response_value=b"dn:cn=admin"),
        IntermediateResponse(response_name="1.2.3", response_value=b"x"),
    ],
)
def test_response_round_trip(context) -> None:
    """Test decode restores every encoded response."""
    message = LDAPResponseMessage(messageID=7, context=context)
    decoded = decode(encode(message))

    assert isinstance(decoded, LDAPResponseMessage)
    assert decoded == message


def test_controls_round_trip() -> None:
    """Test message controls survive encoding."""
    message = LDAPResponseMessage(
        messageID=2,
        context=SearchResultDone(result_code=0),
        controls=[
            PagedResultsValue(size=0, cookie=b"next").to_control(),
            Control(control_type="1.2.3.4", criticality=True),
        ],
    )
    decoded = decode(encode(message))

    assert decoded.controls == message.controls
    assert PagedResultsValue.find(decoded.controls) == PagedResultsValue(
        size=0,
        cookie=b"next",
    )


def test_unknown_result_code_is_kept() -> None:
    """Test codes outside of the known set decode as int."""
    message = LDAPResponseMessage(
        messageID=1,
        context=AddResponse(result_code=4242),
    )
    decoded = decode(encode(message))
    assert decoded.context.result_code == 4242


def test_truncated_frame() -> None:
    """Test missing bytes raise TruncatedMessage."""
    with pytest.raises(TruncatedMessage):
        decode(ANONYMOUS_BIND[:-1])


def test_inner_length_overflow() -> None:
    """Test nested element longer than its container."""
    with pytest.raises(TruncatedMessage):
        decode(bytes.fromhex("3006020101040561"))


@pytest.mark.parametrize(
    "data",
    [
        bytes.fromhex("30050201017e00"),
        bytes.fromhex("020101"),
        bytes.fromhex("3003020101"),
        bytes.fromhex("30800201010000"),
        bytes.fromhex("30050201010400"),
        bytes.fromhex("30050201016000"),
    ],
    ids=[
        "unknown-op",
        "not-sequence",
        "missing-op",
        "indefinite-length",
        "universal-op",
        "empty-bind",
    ],
)
def test_malformed_frame(data: bytes) -> None:
    """Test invalid structures raise MalformedMessage."""
    with pytest.raises(MalformedMessage):
        decode(data)


@pytest.mark.parametrize(
    ("data", "size"),
    [
        (b"", None),
        (b"\x30", None),
        (ANONYMOUS_BIND[:4], len(ANONYMOUS_BIND)),
        (b"\x30\x82\x01", None),
        (b"\x30\x82\x01\x00", 0x100 + 4),
    ],
)
def test_compute_message_size(data: bytes, size: int | None) -> None:
    """Test frame size is known from the header only."""
    assert compute_message_size(data) == size


@pytest.mark.parametrize(
    "value",
    [None, b"", bytes.fromhex("3005020105"), bytes.fromhex("3000"), b"\x30"],
)
def test_malformed_cancel_value(value: bytes | None) -> None:
    """Test broken cancel request value raises MalformedMessage."""
    with pytest.raises(MalformedMessage):
        CancelRequestValue.from_value(value)


def test_malformed_paged_value() -> None:
    """Test truncated paged results value raises MalformedMessage."""
    control = Control(
        control_type="1.2.840.113556.1.4.319",
        control_value=bytes.fromhex("30050201"),
    )
    with pytest.raises(MalformedMessage):
        PagedResultsValue.from_control(control)
