"""End-to-end encrypted listener-to-broadcaster messages."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass

import cbor2

from .crypto import EncryptionError, decrypt, encrypt
from .identity import Identity
from .payment import STREAM_ADDR_SIZE

__all__ = [
    "BackchannelError",
    "BackchannelMessage",
    "BackchannelPayload",
    "Reaction",
    "ReactionPayload",
    "TextPayload",
    "TipPayload",
]


class Reaction(enum.Enum):
    """Listener reaction."""

    LIKE = "Like"
    FIRE = "Fire"
    CLAP = "Clap"
    LAUGH = "Laugh"
    MIND_BLOWN = "MindBlown"


class BackchannelPayload:
    """Base of the backchannel payload variants."""

    @classmethod
    def text(cls, msg: str) -> TextPayload:
        """Return a text message payload."""
        return TextPayload(str(msg))

    @classmethod
    def reaction(cls, reaction: Reaction) -> ReactionPayload:
        """Return a reaction payload."""
        return ReactionPayload(Reaction(reaction))

    @classmethod
    def tip(cls, amount: int, currency: str, message: str | None = None) -> TipPayload:
        """Return a tip notification payload."""
        return TipPayload(amount, str(currency), message)

    def _to_value(self) -> dict:
        raise TypeError(f"{type(self).__name__} is not a concrete payload")

    @staticmethod
    def _from_value(value: object) -> BackchannelPayload:
        if not isinstance(value, dict) or len(value) != 1:
            raise ValueError("payload must be a single-entry map")
        ((tag, body),) = value.items()
        if tag == "Text":
            if not isinstance(body, str):
                raise ValueError("text payload must be a string")
            return TextPayload(body)
        if tag == "Reaction":
            return ReactionPayload(Reaction(body))
        if tag == "Tip":
            if not isinstance(body, dict):
                raise ValueError("tip payload must be a map")
            amount, currency, message = body["amount"], body["currency"], body["message"]
            if not isinstance(amount, int) or amount < 0:
                raise ValueError("tip amount must be a non-negative integer")
            if not isinstance(currency, str):
                raise ValueError("tip currency must be a string")
            if message is not None and not isinstance(message, str):
                raise ValueError("tip message must be a string")
            return TipPayload(amount, currency, message)
        raise ValueError(f"unknown payload variant {tag!r}")


@dataclass(frozen=True)
class TextPayload(BackchannelPayload):
    """A text message."""

    content: str

    def _to_value(self) -> dict:
        return {"Text": self.content}


@dataclass(frozen=True)
class ReactionPayload(BackchannelPayload):
    """A reaction."""

    kind: Reaction

    def _to_value(self) -> dict:
        return {"Reaction": self.kind.value}


@dataclass(frozen=True)
class TipPayload(BackchannelPayload):
    """A tip notification; the payment itself travels as a commitment."""

    amount: int
    currency: str
    message: str | None = None

    def _to_value(self) -> dict:
        return {
            "Tip": {"amount": self.amount, "currency": self.currency, "message": self.message}
        }


class BackchannelError(Exception):
    """Raised when a backchannel message cannot be built or opened."""


@dataclass
class BackchannelMessage:
    """An encrypted backchannel message from a listener to a broadcaster."""

    sender: Identity
    recipient: Identity
    stream_addr: bytes
    ephemeral_pubkey: bytes
    nonce: bytes
    ciphertext: bytes
    seq: int
    timestamp: int

    @classmethod
    def create(
        cls,
        sender: Identity,
        recipient: Identity,
        stream_addr: bytes,
        payload: BackchannelPayload,
        shared_key: bytes,
        seq: int,
    ) -> BackchannelMessage:
        """Encrypt ``payload`` under the pre-shared ``shared_key``."""
        stream_addr = bytes(stream_addr)
        if len(stream_addr) != STREAM_ADDR_SIZE:
            raise ValueError(
                f"stream address must be {STREAM_ADDR_SIZE} bytes, got {len(stream_addr)}"
            )
        try:
            plaintext = cbor2.dumps(payload._to_value())
        except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
            raise BackchannelError(f"serialization failed: {exc}") from exc
        try:
            ciphertext, nonce = encrypt(shared_key, plaintext)
        except EncryptionError as exc:
            raise BackchannelError(f"encryption failed: {exc}") from exc
        return cls(
            sender=sender,
            recipient=recipient,
            stream_addr=stream_addr,
            ephemeral_pubkey=b"",
            nonce=nonce,
            ciphertext=ciphertext,
            seq=seq,
            timestamp=int(time.time()),
        )

    def decrypt(self, shared_key: bytes) -> BackchannelPayload:
        """Decrypt and decode the payload."""
        try:
            plaintext = decrypt(shared_key, self.ciphertext, self.nonce)
        except EncryptionError as exc:
            raise BackchannelError(f"decryption failed: {exc}") from exc
        try:
            return BackchannelPayload._from_value(cbor2.loads(plaintext))
        except (cbor2.CBORDecodeError, KeyError, TypeError, ValueError) as exc:
            raise BackchannelError(f"decryption failed: {exc}") from exc