"""Protocol message type codes and the signed message envelope."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field

import cbor2

from .identity import Identity, IdentityError, Keypair

PROTOCOL_VERSION = 1
"""Protocol version carried in every message envelope."""

PROTOCOL_ID = "/mdrn/1.0.0"
"""Protocol identifier used on the network."""

NONCE_LENGTH = 12
"""Length of the per-message nonce in bytes."""

__all__ = [
    "NONCE_LENGTH",
    "PROTOCOL_ID",
    "PROTOCOL_VERSION",
    "Message",
    "MessageError",
    "MessageType",
]


class MessageType(enum.IntEnum):
    """Message type codes as defined by the protocol."""

    ANNOUNCE = 0x01
    WITHDRAW = 0x02
    DISCOVER_REQ = 0x10
    DISCOVER_RES = 0x11
    SUBSCRIBE = 0x20
    SUB_ACK = 0x21
    SUB_REJECT = 0x22
    UNSUBSCRIBE = 0x23
    CHUNK = 0x30
    CHUNK_ACK = 0x31
    PAY_COMMIT = 0x40
    PAY_RECEIPT = 0x41
    BACK_MSG = 0x50
    BACK_ACK = 0x51
    PING = 0xF0
    PONG = 0xF1

    @classmethod
    def from_code(cls, code: int) -> MessageType | None:
        """Return the message type for ``code``, or None if it is unknown."""
        try:
            return cls(code)
        except ValueError:
            return None

    def code(self) -> int:
        """Return the one-byte code of this message type."""
        return int(self.value)


class MessageError(Exception):
    """Raised when a message cannot be serialized, parsed or verified."""


@dataclass
class Message:
    """A signed protocol message envelope."""

    version: int
    msg_type: MessageType
    sender: Identity
    nonce: bytes
    payload: bytes
    sig: bytes = field(default=b"", repr=False)

    @classmethod
    def new(cls, msg_type: MessageType, sender: Identity, payload: bytes) -> Message:
        """Create an unsigned message with a fresh random nonce."""
        return cls(
            version=PROTOCOL_VERSION,
            msg_type=MessageType(msg_type),
            sender=sender,
            nonce=os.urandom(NONCE_LENGTH),
            payload=bytes(payload),
        )

    @classmethod
    def create(cls, msg_type: MessageType, keypair: Keypair, payload: bytes) -> Message:
        """Create a message and sign it with ``keypair``."""
        msg = cls.new(msg_type, keypair.identity(), payload)
        msg.sig = keypair.sign(msg.signing_data())
        return msg

    def signing_data(self) -> bytes:
        """Return ``version (4 bytes, big-endian) || type || nonce || payload``."""
        return (
            self.version.to_bytes(4, "big")
            + bytes([MessageType(self.msg_type).code()])
            + bytes(self.nonce)
            + bytes(self.payload)
        )

    def verify(self) -> None:
        """Check the sender's signature; raise MessageError if it fails."""
        try:
            self.sender.verify(self.signing_data(), self.sig)
        except IdentityError as exc:
            raise MessageError("signature verification failed") from exc

    def to_cbor(self) -> bytes:
        """Serialize the envelope to CBOR."""
        value = {
            "version": int(self.version),
            "msg_type": int(self.msg_type),
            "sender": list(self.sender.as_bytes()),
            "nonce": bytes(self.nonce),
            "payload": bytes(self.payload),
            "sig": bytes(self.sig),
        }
        try:
            return cbor2.dumps(value)
        except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
            raise MessageError(f"serialization failed: {exc}") from exc

    @classmethod
    def from_cbor(cls, data: bytes) -> Message:
        """Parse an envelope from CBOR."""
        try:
            value = cbor2.loads(bytes(data))
            if not isinstance(value, dict):
                raise ValueError("expected a map")
            version = value["version"]
            if not isinstance(version, int) or not 0 <= version < 2**32:
                raise ValueError("version out of range")
            return cls(
                version=version,
                msg_type=MessageType(value["msg_type"]),
                sender=Identity.from_bytes(bytes(value["sender"])),
                nonce=bytes(value["nonce"]),
                payload=bytes(value["payload"]),
                sig=bytes(value["sig"]),
            )
        except (cbor2.CBORDecodeError, IdentityError, KeyError, TypeError, ValueError) as exc:
            raise MessageError(f"deserialization failed: {exc}") from exc