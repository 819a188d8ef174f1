"""Identities, keypairs, vouch credentials and trust-chain checks."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field

import cbor2
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

ED25519_MULTICODEC = b"\xed\x01"
"""Multicodec prefix for Ed25519 public keys (0xED01)."""

SECP256K1_MULTICODEC = b"\xe7\x01"
"""Multicodec prefix for secp256k1 public keys (0xE701)."""

_SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

__all__ = [
    "ED25519_MULTICODEC",
    "SECP256K1_MULTICODEC",
    "Identity",
    "IdentityError",
    "KeyType",
    "Keypair",
    "TrustChain",
    "Vouch",
    "VouchError",
    "VouchExpiredError",
    "genesis_broadcasters",
]


class KeyType(enum.Enum):
    """Signature scheme of a key."""

    ED25519 = "Ed25519"
    SECP256K1 = "Secp256k1"


class IdentityError(Exception):
    """Raised for malformed identities, bad keys and failed signature checks."""


_EXPECTED_LENGTH = {ED25519_MULTICODEC: 34, SECP256K1_MULTICODEC: 35}
_PREFIX_TYPE = {ED25519_MULTICODEC: KeyType.ED25519, SECP256K1_MULTICODEC: KeyType.SECP256K1}


def _now() -> int:
    return int(time.time())


@dataclass(frozen=True)
class Identity:
    """A multicodec-prefixed public key."""

    raw: bytes

    def __post_init__(self) -> None:
        data = bytes(self.raw)
        if len(data) < 2:
            raise IdentityError("invalid multicodec prefix")
        prefix = data[:2]
        expected = _EXPECTED_LENGTH.get(prefix)
        if expected is None:
            raise IdentityError("invalid multicodec prefix")
        if len(data) != expected:
            raise IdentityError(f"invalid key length: expected {expected}, got {len(data)}")
        object.__setattr__(self, "raw", data)

    @classmethod
    def ed25519(cls, public_key: bytes) -> Identity:
        """Build an identity from a 32-byte Ed25519 public key."""
        return cls(ED25519_MULTICODEC + bytes(public_key))

    @classmethod
    def secp256k1(cls, public_key: bytes) -> Identity:
        """Build an identity from a 33-byte compressed secp256k1 public key."""
        return cls(SECP256K1_MULTICODEC + bytes(public_key))

    @classmethod
    def from_bytes(cls, data: bytes) -> Identity:
        """Parse an identity from multicodec-prefixed bytes."""
        return cls(data)

    def key_type(self) -> KeyType:
        """Return the key type named by the prefix."""
        return _PREFIX_TYPE[self.raw[:2]]

    def public_key_bytes(self) -> bytes:
        """Return the public key without its multicodec prefix."""
        return self.raw[2:]

    def as_bytes(self) -> bytes:
        """Return the full multicodec-prefixed bytes."""
        return self.raw

    def verify(self, message: bytes, signature: bytes) -> None:
        """Check ``signature`` over ``message``; raise IdentityError if it fails."""
        message = bytes(message)
        signature = bytes(signature)
        try:
            if self.key_type() is KeyType.ED25519:
                if len(signature) != 64:
                    raise ValueError("bad signature length")
                key = ed25519.Ed25519PublicKey.from_public_bytes(self.public_key_bytes())
                key.verify(signature, message)
            else:
                if len(signature) != 64:
                    raise ValueError("bad signature length")
                r = int.from_bytes(signature[:32], "big")
                s = int.from_bytes(signature[32:], "big")
                if not (0 < r < _SECP256K1_ORDER and 0 < s <= _SECP256K1_ORDER // 2):
                    raise ValueError("signature scalar out of range")
                key = ec.EllipticCurvePublicKey.from_encoded_point(
                    ec.SECP256K1(), self.public_key_bytes()
                )
                key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        except (InvalidSignature, ValueError) as exc:
            raise IdentityError("signature verification failed") from exc

    def __repr__(self) -> str:
        return f"Identity({self.raw.hex()})"


def _load_signing_key(key_type: KeyType, seed: bytes):
    if len(seed) != 32:
        raise ValueError(f"private key must be 32 bytes, got {len(seed)}")
    if key_type is KeyType.ED25519:
        return ed25519.Ed25519PrivateKey.from_private_bytes(seed)
    return ec.derive_private_key(int.from_bytes(seed, "big"), ec.SECP256K1())


class Keypair:
    """A signing key together with its identity."""

    __slots__ = ("_key_type", "_identity", "_seed", "_signing_key")

    def __init__(self, key_type: KeyType, identity: Identity, seed: bytes) -> None:
        seed = bytes(seed)
        try:
            self._signing_key = _load_signing_key(key_type, seed)
        except ValueError as exc:
            raise IdentityError(f"invalid private key: {exc}") from exc
        self._key_type = key_type
        self._identity = identity
        self._seed = seed

    @classmethod
    def generate_ed25519(cls) -> Keypair:
        """Generate a new Ed25519 keypair."""
        private = ed25519.Ed25519PrivateKey.generate()
        public = private.public_key().public_bytes(
            serialization.Encoding.Raw, serialization.PublicFormat.Raw
        )
        seed = private.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )
        return cls(KeyType.ED25519, Identity.ed25519(public), seed)

    @classmethod
    def generate_secp256k1(cls) -> Keypair:
        """Generate a new secp256k1 keypair."""
        private = ec.generate_private_key(ec.SECP256K1())
        compressed = private.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
        )
        if len(compressed) != 33:
            raise IdentityError("key generation failed: compressed key wrong size")
        seed = private.private_numbers().private_value.to_bytes(32, "big")
        return cls(KeyType.SECP256K1, Identity.secp256k1(compressed), seed)

    def identity(self) -> Identity:
        """Return the public identity."""
        return self._identity

    def key_type(self) -> KeyType:
        """Return the key type."""
        return self._key_type

    def secret_bytes(self) -> bytes:
        """Return the 32-byte private key."""
        return self._seed

    def sign(self, message: bytes) -> bytes:
        """Sign ``message``; the result is always 64 bytes."""
        message = bytes(message)
        if self._key_type is KeyType.ED25519:
            return self._signing_key.sign(message)
        der = self._signing_key.sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > _SECP256K1_ORDER // 2:
            s = _SECP256K1_ORDER - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def to_cbor(self) -> bytes:
        """Serialize the keypair to CBOR."""
        value = {
            "key_type": self._key_type.value,
            "identity": list(self._identity.as_bytes()),
            "secret": list(self._seed),
        }
        try:
            return cbor2.dumps(value)
        except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
            raise IdentityError(f"key generation failed: CBOR serialization failed: {exc}") from exc

    @classmethod
    def from_cbor(cls, data: bytes) -> Keypair:
        """Deserialize a keypair from CBOR."""
        try:
            value = cbor2.loads(bytes(data))
            if not isinstance(value, dict):
                raise ValueError("expected a map")
            key_type = KeyType(value["key_type"])
            identity = Identity.from_bytes(bytes(value["identity"]))
            seed = bytes(value["secret"])
        except IdentityError as exc:
            raise IdentityError(f"key generation failed: CBOR deserialization failed: {exc}") from exc
        except (cbor2.CBORDecodeError, KeyError, TypeError, ValueError) as exc:
            raise IdentityError(f"key generation failed: CBOR deserialization failed: {exc}") from exc
        return cls(key_type, identity, seed)

    def __repr__(self) -> str:
        return f"Keypair({self._key_type.value}, {self._identity!r})"


class VouchError(Exception):
    """Raised when a vouch is invalid or cannot be serialized."""


class VouchExpiredError(VouchError):
    """Raised when a vouch has expired."""


@dataclass
class Vouch:
    """Signed attestation from an existing broadcaster admitting a new one."""

    subject: Identity
    issuer: Identity
    issued_at: int
    expires_at: int | None = None
    signature: bytes = field(default=b"", repr=False)

    @classmethod
    def create(
        cls, subject: Identity, issuer_keypair: Keypair, expires_at: int | None = None
    ) -> Vouch:
        """Create a vouch issued now and sign it with ``issuer_keypair``."""
        vouch = cls(
            subject=subject,
            issuer=issuer_keypair.identity(),
            issued_at=_now(),
            expires_at=expires_at,
        )
        vouch.signature = issuer_keypair.sign(vouch.signing_data())
        return vouch

    def signing_data(self) -> bytes:
        """Return the CBOR encoding of every field except the signature."""
        value = {
            "subject": list(self.subject.as_bytes()),
            "issuer": list(self.issuer.as_bytes()),
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
        }
        try:
            return cbor2.dumps(value)
        except (cbor2.CBOREncodeError, TypeError, ValueError) as exc:
            raise VouchError(f"serialization failed: {exc}") from exc

    def verify(self) -> None:
        """Check expiry and the issuer's signature."""
        if self.expires_at is not None and _now() > self.expires_at:
            raise VouchExpiredError("vouch has expired")
        try:
            self.issuer.verify(self.signing_data(), self.signature)
        except IdentityError as exc:
            raise VouchError("signature verification failed") from exc


def genesis_broadcasters() -> list[Identity]:
    """Return the network's genesis broadcaster identities."""
    return []


class TrustChain:
    """Checks broadcaster admission against a set of genesis keys."""

    def __init__(self, genesis_keys: list[Identity]) -> None:
        self.genesis_keys = list(genesis_keys)

    def verify_broadcaster_admission(self, broadcaster: Identity, vouch: Vouch) -> None:
        """Accept a broadcaster that is genesis or vouched for by a genesis key."""
        vouch.verify()
        if vouch.subject != broadcaster:
            raise VouchError("signature verification failed: vouch subject does not match")
        if broadcaster in self.genesis_keys or vouch.issuer in self.genesis_keys:
            return
        raise VouchError("signature verification failed: issuer is not in the trust network")

    def can_vouch(self, broadcaster: Identity) -> bool:
        """Return whether ``broadcaster`` may vouch for others."""
        return broadcaster in self.genesis_keys