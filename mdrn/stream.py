"""Audio stream types: codecs, chunks, announcements, relay adverts, subscriptions."""

from __future__ import annotations

import enum
import hashlib
import time
from dataclasses import dataclass, field

import cbor2

from .identity import Identity, IdentityError, Vouch, VouchError
from .payment import STREAM_ADDR_SIZE, PaymentMethod

CHUNK_NONCE_SIZE = 12
"""Size of the nonce carried by an encrypted chunk."""

DEFAULT_ANNOUNCEMENT_TTL = 300
"""Default time-to-live of a stream announcement in seconds."""

__all__ = [
    "CHUNK_NONCE_SIZE",
    "DEFAULT_ANNOUNCEMENT_TTL",
    "Chunk",
    "ChunkFlags",
    "Codec",
    "Endpoint",
    "RelayAdvertisement",
    "StreamAnnouncement",
    "SubscriptionState",
    "Transport",
]


def _check_stream_addr(stream_addr: bytes) -> bytes:
    stream_addr = bytes(stream_addr)
    if len(stream_addr) != STREAM_ADDR_SIZE:
        raise ValueError(
            f"stream address must be {STREAM_ADDR_SIZE} bytes, got {len(stream_addr)}"
        )
    return stream_addr


class Codec(enum.IntEnum):
    """Audio codec identifier."""

    OPUS = 1
    FLAC = 2
    CODEC2 = 3

    @classmethod
    def from_u8(cls, value: int) -> Codec | None:
        """Return the codec for ``value``, or None if it is unknown."""
        try:
            return cls(value)
        except ValueError:
            return None

    def label(self) -> str:
        """Return the human-readable codec name."""
        return _CODEC_LABELS[self]


_CODEC_LABELS = {Codec.OPUS: "Opus", Codec.FLAC: "FLAC", Codec.CODEC2: "Codec2"}


class ChunkFlags(enum.IntFlag):
    """Per-chunk flags."""

    ENCRYPTED = 0x01
    KEYFRAME = 0x02


@dataclass
class Chunk:
    """A chunk of encoded audio belonging to one stream."""

    stream_addr: bytes
    seq: int
    timestamp: int
    codec: Codec
    duration_us: int
    data: bytes
    flags: ChunkFlags = ChunkFlags(0)
    nonce: bytes | None = None

    def __post_init__(self) -> None:
        self.stream_addr = _check_stream_addr(self.stream_addr)
        self.codec = Codec(self.codec)
        self.flags = ChunkFlags(self.flags)
        self.data = bytes(self.data)
        if self.nonce is not None:
            self.nonce = bytes(self.nonce)
            if len(self.nonce) != CHUNK_NONCE_SIZE:
                raise ValueError(
                    f"chunk nonce must be {CHUNK_NONCE_SIZE} bytes, got {len(self.nonce)}"
                )

    @classmethod
    def new_encrypted(
        cls,
        stream_addr: bytes,
        seq: int,
        timestamp: int,
        codec: Codec,
        duration_us: int,
        data: bytes,
        nonce: bytes,
    ) -> Chunk:
        """Create a chunk whose data is encrypted under ``nonce``."""
        return cls(
            stream_addr=stream_addr,
            seq=seq,
            timestamp=timestamp,
            codec=codec,
            duration_us=duration_us,
            data=data,
            flags=ChunkFlags.ENCRYPTED,
            nonce=nonce,
        )

    def is_encrypted(self) -> bool:
        """Return whether the chunk data is encrypted."""
        return ChunkFlags.ENCRYPTED in self.flags

    def is_keyframe(self) -> bool:
        """Return whether the chunk is a keyframe."""
        return ChunkFlags.KEYFRAME in self.flags

    def set_keyframe(self) -> None:
        """Mark the chunk as a keyframe."""
        self.flags |= ChunkFlags.KEYFRAME


def _vouch_to_value(vouch: Vouch) -> dict:
    return {
        "subject": list(vouch.subject.as_bytes()),
        "issuer": list(vouch.issuer.as_bytes()),
        "issued_at": vouch.issued_at,
        "expires_at": vouch.expires_at,
        "signature": bytes(vouch.signature),
    }


def _vouch_from_value(value: dict) -> Vouch:
    if not isinstance(value, dict):
        raise ValueError("vouch must be a map")
    return Vouch(
        subject=Identity.from_bytes(bytes(value["subject"])),
        issuer=Identity.from_bytes(bytes(value["issuer"])),
        issued_at=int(value["issued_at"]),
        expires_at=value["expires_at"],
        signature=bytes(value["signature"]),
    )


@dataclass
class StreamAnnouncement:
    """A stream announcement as published to the DHT."""

    stream_addr: bytes
    broadcaster: Identity
    stream_id: str
    codec: Codec
    bitrate: int
    sample_rate: int
    channels: int
    encrypted: bool
    vouch: Vouch
    started_at: int
    price_min: int | None = None
    tags: list[str] = field(default_factory=list)
    ttl: int = DEFAULT_ANNOUNCEMENT_TTL

    def __post_init__(self) -> None:
        self.stream_addr = _check_stream_addr(self.stream_addr)
        self.codec = Codec(self.codec)

    @staticmethod
    def compute_stream_addr(broadcaster: Identity, stream_id: str) -> bytes:
        """Return SHA-256(broadcaster identity bytes || stream_id)."""
        digest = hashlib.sha256()
        digest.update(broadcaster.as_bytes())
        digest.update(stream_id.encode("utf-8"))
        return digest.digest()

    @classmethod
    def create(
        cls,
        broadcaster: Identity,
        stream_id: str,
        codec: Codec,
        bitrate: int,
        sample_rate: int,
        channels: int,
        encrypted: bool,
        vouch: Vouch,
    ) -> StreamAnnouncement:
        """Create an announcement for a stream starting now."""
        return cls(
            stream_addr=cls.compute_stream_addr(broadcaster, stream_id),
            broadcaster=broadcaster,
            stream_id=stream_id,
            codec=codec,
            bitrate=bitrate,
            sample_rate=sample_rate,
            channels=channels,
            encrypted=encrypted,
            vouch=vouch,
            started_at=int(time.time()),
        )

    def verify(self) -> None:
        """Check the broadcaster's vouch; raise VouchError if it is invalid."""
        self.vouch.verify()

    def to_cbor(self) -> bytes:
        """Serialize the announcement to CBOR."""
        value = {
            "stream_addr": bytes(self.stream_addr),
            "broadcaster": list(self.broadcaster.as_bytes()),
            "stream_id": self.stream_id,
            "codec": int(self.codec),
            "bitrate": self.bitrate,
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "encrypted": bool(self.encrypted),
            "price_min": self.price_min,
            "vouch": _vouch_to_value(self.vouch),
            "tags": list(self.tags),
            "started_at": self.started_at,
            "ttl": self.ttl,
        }
        return cbor2.dumps(value)

    @classmethod
    def from_cbor(cls, data: bytes) -> StreamAnnouncement:
        """Parse an announcement from CBOR; raise ValueError if it is malformed."""
        try:
            value = cbor2.loads(bytes(data))
            if not isinstance(value, dict):
                raise ValueError("expected a map")
            tags = value["tags"]
            if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
                raise ValueError("tags must be a list of strings")
            stream_id = value["stream_id"]
            if not isinstance(stream_id, str):
                raise ValueError("stream_id must be a string")
            return cls(
                stream_addr=bytes(value["stream_addr"]),
                broadcaster=Identity.from_bytes(bytes(value["broadcaster"])),
                stream_id=stream_id,
                codec=Codec(value["codec"]),
                bitrate=int(value["bitrate"]),
                sample_rate=int(value["sample_rate"]),
                channels=int(value["channels"]),
                encrypted=bool(value["encrypted"]),
                vouch=_vouch_from_value(value["vouch"]),
                started_at=int(value["started_at"]),
                price_min=value["price_min"],
                tags=list(tags),
                ttl=int(value["ttl"]),
            )
        except (cbor2.CBORDecodeError, IdentityError, VouchError, KeyError, TypeError) as exc:
            raise ValueError(f"invalid stream announcement: {exc}") from exc
        except ValueError as exc:
            raise ValueError(f"invalid stream announcement: {exc}") from exc


class Transport(enum.Enum):
    """Transport protocol of a network endpoint."""

    TCP = "Tcp"
    QUIC = "Quic"
    WEB_RTC = "WebRtc"


@dataclass
class Endpoint:
    """A network endpoint: multiaddr string and transport."""

    addr: str
    transport: Transport


@dataclass
class RelayAdvertisement:
    """A relay's offer to carry a stream, as published to the DHT."""

    relay_id: Identity
    stream_addr: bytes
    price_per_min: int
    payment_methods: list[PaymentMethod]
    capacity: int
    latency_ms: int
    endpoints: list[Endpoint]
    ttl: int

    def __post_init__(self) -> None:
        self.stream_addr = _check_stream_addr(self.stream_addr)
        self.payment_methods = [PaymentMethod(m) for m in self.payment_methods]

    def is_free(self) -> bool:
        """Return whether the relay offers free access."""
        return self.price_per_min == 0 or PaymentMethod.FREE in self.payment_methods


class SubscriptionState(enum.Enum):
    """Listener-side subscription lifecycle.

    Each transition returns the next state, or None if the event is not
    valid in the current state.
    """

    IDLE = "Idle"
    PENDING = "Pending"
    ACTIVE = "Active"
    CLOSING = "Closing"

    def _step(self, source: SubscriptionState, target: SubscriptionState):
        return target if self is source else None

    def on_subscribe(self) -> SubscriptionState | None:
        """SUBSCRIBE sent: IDLE -> PENDING."""
        return self._step(SubscriptionState.IDLE, SubscriptionState.PENDING)

    def on_sub_ack(self) -> SubscriptionState | None:
        """SUB_ACK received: PENDING -> ACTIVE."""
        return self._step(SubscriptionState.PENDING, SubscriptionState.ACTIVE)

    def on_sub_reject(self) -> SubscriptionState | None:
        """SUB_REJECT received: PENDING -> IDLE."""
        return self._step(SubscriptionState.PENDING, SubscriptionState.IDLE)

    def on_unsubscribe(self) -> SubscriptionState | None:
        """UNSUBSCRIBE sent or timeout: ACTIVE -> CLOSING."""
        return self._step(SubscriptionState.ACTIVE, SubscriptionState.CLOSING)

    def on_settled(self) -> SubscriptionState | None:
        """Settlement complete: CLOSING -> IDLE."""
        return self._step(SubscriptionState.CLOSING, SubscriptionState.IDLE)

    def can_receive_chunks(self) -> bool:
        """Return whether chunks may be received in this state."""
        return self is SubscriptionState.ACTIVE