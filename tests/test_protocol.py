import cbor2
import pytest

from mdrn.identity import Keypair
from mdrn.protocol import (
    NONCE_LENGTH,
    PROTOCOL_ID,
    PROTOCOL_VERSION,
    Message,
    MessageError,
    MessageType,
)


def test_protocol_constants():
    keypair = Keypair.generate_ed25519()
    msg = Message.new(MessageType.PING, keypair.identity(), b"")
    assert msg.version == 1
    assert PROTOCOL_VERSION == 1
    assert PROTOCOL_ID == "/mdrn/1.0.0"


@pytest.mark.parametrize(
    "type_code, expected",
    [
        (0x01, MessageType.ANNOUNCE),
        (0x22, MessageType.SUB_REJECT),
        (0x30, MessageType.CHUNK),
        (0x41, MessageType.PAY_RECEIPT),
        (0xF0, MessageType.PING),
        (0xF1, MessageType.PONG),
    ],
)
def test_from_code_known(type_code, expected):
    assert MessageType.from_code(type_code) is expected


@pytest.mark.parametrize("type_code", [0x00, 0x03, 0x99, 0xFF])
def test_from_code_unknown(type_code):
    assert MessageType.from_code(type_code) is None


def test_code_round_trip():
    for msg_type in MessageType:
        assert MessageType.from_code(msg_type.code()) is msg_type


def test_message_roundtrip():
    keypair = Keypair.generate_ed25519()
    payload = b"test payload"
    msg = Message.create(MessageType.PING, keypair, payload)
    msg.verify()
    parsed = Message.from_cbor(msg.to_cbor())
    parsed.verify()
    assert parsed.payload == payload
    assert parsed.msg_type is MessageType.PING
    assert parsed.sender == keypair.identity()
    assert parsed.nonce == msg.nonce


def test_new_message_is_unsigned_with_fresh_nonce():
    keypair = Keypair.generate_ed25519()
    first = Message.new(MessageType.CHUNK, keypair.identity(), b"x")
    second = Message.new(MessageType.CHUNK, keypair.identity(), b"x")
    assert first.version == PROTOCOL_VERSION
    assert first.sig == b""
    assert len(first.nonce) == NONCE_LENGTH
    assert first.nonce != second.nonce


def test_signing_data_layout():
    keypair = Keypair.generate_ed25519()
    msg = Message.new(MessageType.PONG, keypair.identity(), b"abc")
    data = msg.signing_data()
    assert data[:4] == PROTOCOL_VERSION.to_bytes(4, "big")
    assert data[4] == 0xF1
    assert data[5:5 + NONCE_LENGTH] == msg.nonce
    assert data[5 + NONCE_LENGTH:] == b"abc"


def test_unsigned_message_fails_verification():
    keypair = Keypair.generate_ed25519()
    msg = Message.new(MessageType.PING, keypair.identity(), b"data")
    with pytest.raises(MessageError):
        msg.verify()


def test_tampered_payload_fails_verification():
    keypair = Keypair.generate_ed25519()
    msg = Message.create(MessageType.SUBSCRIBE, keypair, b"original")
    msg.payload = b"changed"
    with pytest.raises(MessageError):
        msg.verify()


def test_changed_type_fails_verification():
    keypair = Keypair.generate_ed25519()
    msg = Message.create(MessageType.SUBSCRIBE, keypair, b"payload")
    msg.msg_type = MessageType.UNSUBSCRIBE
    with pytest.raises(MessageError):
        msg.verify()


def test_secp256k1_message_roundtrip():
    keypair = Keypair.generate_secp256k1()
    msg = Message.create(MessageType.ANNOUNCE, keypair, b"hello")
    parsed = Message.from_cbor(msg.to_cbor())
    parsed.verify()
    assert parsed.payload == b"hello"


def test_from_cbor_rejects_garbage():
    with pytest.raises(MessageError):
        Message.from_cbor(b"\xff\xff\xff")


def test_from_cbor_rejects_unknown_type():
    keypair = Keypair.generate_ed25519()
    msg = Message.create(MessageType.PING, keypair, b"p")
    value = cbor2.loads(msg.to_cbor())
    value["msg_type"] = 0x99
    with pytest.raises(MessageError):
        Message.from_cbor(cbor2.dumps(value))