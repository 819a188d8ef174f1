"""Payment methods, signed cumulative commitments and receipts."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

import cbor2

from .identity import Identity, IdentityError, Keypair

STREAM_ADDR_SIZE = 32

__all__ = [
    "CommitmentError",
    "PaymentCommitment",
    "PaymentMethod",
    "PaymentReceipt",
]


class PaymentMethod(enum.IntEnum):
    """Payment method codes; member names are the protocol's method names."""

    FREE = 0
    EVM_L2 = 1
    LIGHTNING = 2
    SUPERFLUID = 3

    @classmethod
    def from_u8(cls, value: int) -> PaymentMethod | None:
        """Return the method for ``value``, or None if it is unknown."""
        try:
            return cls(value)
        except ValueError:
            return None

    def requires_settlement(self) -> bool:
        """Return whether this method settles on-chain."""
        return self is not PaymentMethod.FREE


class CommitmentError(Exception):
    """Raised when a commitment is invalid, unsigned or does not supersede another."""


def _check_stream_addr(stream_addr: bytes) -> bytes:
    stream_addr = bytes(stream_addr)
    if len(stream_addr) != STREAM_ADDR_SIZE:
        raise ValueError(f"stream address must be {STREAM_ADDR_SIZE} bytes, got {len(stream_addr)}")
    return stream_addr


@dataclass
class PaymentCommitment:
    """A listener's signed, cumulative payment commitment to a relay."""

    relay_id: Identity
    listener_id: Identity
    stream_addr: bytes
    method: PaymentMethod
    amount: int
    currency: str
    chain_id: int | None
    seq: int
    timestamp: int
    signature: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        self.stream_addr = _check_stream_addr(self.stream_addr)
        self.method = PaymentMethod(self.method)

    @classmethod
    def create(
        cls,
        relay_id: Identity,
        listener_keypair: Keypair,
        stream_addr: bytes,
        method: PaymentMethod,
        amount: int,
        currency: str,
        chain_id: int | None,
        seq: int,
    ) -> PaymentCommitment:
        """Create a commitment stamped now and sign it with the listener's key."""
        commitment = cls(
            relay_id=relay_id,
            listener_id=listener_keypair.identity(),
            stream_addr=stream_addr,
            method=method,
            amount=amount,
            currency=currency,
            chain_id=chain_id,
            seq=seq,
            timestamp=int(time.time()),
        )
        commitment.signature = listener_keypair.sign(commitment.signing_data())
        return commitment

    def signing_data(self) -> bytes:
        """Return the CBOR encoding of every field except the signature."""
        value = {
            "relay_id": list(self.relay_id.as_bytes()),
            "listener_id": list(self.listener_id.as_bytes()),
            "stream_addr": bytes(self.stream_addr),
            "method": int(self.method),
            "amount": self.amount,
            "currency": self.currency,
            "chain_id": self.chain_id,
            "seq": self.seq,
            "timestamp": self.timestamp,
        }
        try:
            return cbor2.dumps(value)
        except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
            raise CommitmentError(f"serialization failed: {exc}") from exc

    def verify_signature(self) -> None:
        """Check the listener's signature; raise CommitmentError if it fails."""
        try:
            self.listener_id.verify(self.signing_data(), self.signature)
        except IdentityError as exc:
            raise CommitmentError("signature verification failed") from exc

    def validate_supersedes(self, previous: PaymentCommitment) -> None:
        """Check that this commitment may replace ``previous``."""
        if self.seq <= previous.seq:
            raise CommitmentError("sequence number must increase")
        if self.amount < previous.amount:
            raise CommitmentError("amount must increase (cumulative)")


@dataclass
class PaymentReceipt:
    """A relay's signed acknowledgment of a commitment."""

    relay_id: Identity
    listener_id: Identity
    stream_addr: bytes
    commitment_seq: int
    amount: int
    timestamp: int
    signature: bytes = field(default=b"", repr=False)

    def __post_init__(self) -> None:
        self.stream_addr = _check_stream_addr(self.stream_addr)