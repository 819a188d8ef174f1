import cbor2
import pytest

from mdrn.identity import (
    ED25519_MULTICODEC,
    SECP256K1_MULTICODEC,
    Identity,
    IdentityError,
    KeyType,
    Keypair,
    TrustChain,
    Vouch,
    VouchError,
    VouchExpiredError,
    genesis_broadcasters,
)


@pytest.fixture(params=["ed25519", "secp256k1"])
def keypair(request):
    if request.param == "ed25519":
        return Keypair.generate_ed25519()
    return Keypair.generate_secp256k1()


def test_ed25519_keypair_sign_verify():
    kp = Keypair.generate_ed25519()
    signature = kp.sign(b"hello world")
    kp.identity().verify(b"hello world", signature)
    assert len(signature) == 64


def test_secp256k1_keypair_sign_verify():
    kp = Keypair.generate_secp256k1()
    signature = kp.sign(b"hello world")
    kp.identity().verify(b"hello world", signature)
    assert len(signature) == 64


def test_identity_roundtrip(keypair):
    identity = keypair.identity()
    parsed = Identity.from_bytes(identity.as_bytes())
    assert parsed == identity
    assert hash(parsed) == hash(identity)


def test_key_types_and_prefixes():
    ed = Keypair.generate_ed25519()
    secp = Keypair.generate_secp256k1()
    assert ed.key_type() is KeyType.ED25519
    assert ed.identity().key_type() is KeyType.ED25519
    assert ed.identity().as_bytes()[:2] == b"\xed\x01"
    assert len(ed.identity().public_key_bytes()) == 32
    assert secp.key_type() is KeyType.SECP256K1
    assert secp.identity().key_type() is KeyType.SECP256K1
    assert secp.identity().as_bytes()[:2] == b"\xe7\x01"
    assert len(secp.identity().public_key_bytes()) == 33
    assert len(ed.secret_bytes()) == 32
    assert len(secp.secret_bytes()) == 32


def test_identity_constructors():
    pk = bytes(range(32))
    identity = Identity.ed25519(pk)
    assert identity.as_bytes() == ED25519_MULTICODEC + pk
    assert identity.public_key_bytes() == pk
    compressed = b"\x02" + bytes(range(32))
    secp = Identity.secp256k1(compressed)
    assert secp.as_bytes() == SECP256K1_MULTICODEC + compressed


def test_from_bytes_too_short():
    with pytest.raises(IdentityError, match="invalid multicodec prefix"):
        Identity.from_bytes(b"\xed")


def test_from_bytes_unknown_prefix():
    with pytest.raises(IdentityError, match="invalid multicodec prefix"):
        Identity.from_bytes(b"\x00\x01" + bytes(32))


def test_from_bytes_wrong_length():
    with pytest.raises(IdentityError, match="expected 34, got 10"):
        Identity.from_bytes(ED25519_MULTICODEC + bytes(8))
    with pytest.raises(IdentityError, match="expected 35, got 34"):
        Identity.from_bytes(SECP256K1_MULTICODEC + bytes(32))


def test_verify_wrong_message_fails(keypair):
    signature = keypair.sign(b"original")
    with pytest.raises(IdentityError):
        keypair.identity().verify(b"tampered", signature)


def test_verify_with_other_identity_fails(keypair):
    other = Keypair.generate_ed25519()
    signature = keypair.sign(b"message")
    with pytest.raises(IdentityError):
        other.identity().verify(b"message", signature)


def test_verify_bad_signature_length(keypair):
    with pytest.raises(IdentityError):
        keypair.identity().verify(b"message", b"short")


def test_ed25519_signatures_are_deterministic():
    kp = Keypair.generate_ed25519()
    signature = kp.sign(b"data")
    restored = Keypair.from_cbor(kp.to_cbor())
    assert len(signature) == 64
    assert restored.sign(b"data") == signature


def test_keypair_cbor_roundtrip(keypair):
    restored = Keypair.from_cbor(keypair.to_cbor())
    assert restored.identity() == keypair.identity()
    assert restored.key_type() is keypair.key_type()
    assert restored.secret_bytes() == keypair.secret_bytes()
    keypair.identity().verify(b"payload", restored.sign(b"payload"))


def test_keypair_cbor_layout():
    kp = Keypair.generate_ed25519()
    decoded = cbor2.loads(kp.to_cbor())
    assert list(decoded) == ["key_type", "identity", "secret"]
    assert decoded["key_type"] == "Ed25519"
    assert bytes(decoded["identity"]) == kp.identity().as_bytes()


def test_keypair_from_invalid_cbor():
    with pytest.raises(IdentityError):
        Keypair.from_cbor(b"\xff\xff\xff")


def test_keypair_from_cbor_missing_field():
    with pytest.raises(IdentityError):
        Keypair.from_cbor(cbor2.dumps({"key_type": "Ed25519"}))


def test_vouch_create_and_verify(keypair):
    subject = Keypair.generate_ed25519()
    vouch = Vouch.create(subject.identity(), keypair, None)
    vouch.verify()
    assert vouch.subject == subject.identity()
    assert vouch.issuer == keypair.identity()
    assert vouch.expires_at is None


def test_vouch_expired():
    issuer = Keypair.generate_ed25519()
    subject = Keypair.generate_ed25519()
    vouch = Vouch.create(subject.identity(), issuer, 0)
    with pytest.raises(VouchExpiredError):
        vouch.verify()


def test_vouch_future_expiry_is_valid():
    issuer = Keypair.generate_ed25519()
    subject = Keypair.generate_ed25519()
    vouch = Vouch.create(subject.identity(), issuer, None)
    vouch_later = Vouch.create(subject.identity(), issuer, vouch.issued_at + 3600)
    vouch_later.verify()
    assert vouch_later.expires_at > vouch_later.issued_at


def test_vouch_tampered_signature():
    issuer = Keypair.generate_ed25519()
    subject = Keypair.generate_ed25519()
    vouch = Vouch.create(subject.identity(), issuer, None)
    vouch.issued_at += 1
    with pytest.raises(VouchError) as info:
        vouch.verify()
    assert not isinstance(info.value, VouchExpiredError)


def test_vouch_signing_data_excludes_signature():
    issuer = Keypair.generate_ed25519()
    subject = Keypair.generate_ed25519()
    vouch = Vouch.create(subject.identity(), issuer, None)
    decoded = cbor2.loads(vouch.signing_data())
    assert list(decoded) == ["subject", "issuer", "issued_at", "expires_at"]
    assert decoded["expires_at"] is None
    assert bytes(decoded["subject"]) == subject.identity().as_bytes()


def test_genesis_broadcasters_empty():
    assert genesis_broadcasters() == []


def test_trust_chain_admits_vouch_from_genesis():
    genesis = Keypair.generate_ed25519()
    broadcaster = Keypair.generate_ed25519()
    chain = TrustChain([genesis.identity()])
    vouch = Vouch.create(broadcaster.identity(), genesis, None)
    chain.verify_broadcaster_admission(broadcaster.identity(), vouch)
    assert chain.can_vouch(genesis.identity())
    assert not chain.can_vouch(broadcaster.identity())


def test_trust_chain_admits_genesis_broadcaster():
    genesis = Keypair.generate_ed25519()
    issuer = Keypair.generate_ed25519()
    chain = TrustChain([genesis.identity()])
    vouch = Vouch.create(genesis.identity(), issuer, None)
    chain.verify_broadcaster_admission(genesis.identity(), vouch)
    assert chain.can_vouch(genesis.identity())


def test_trust_chain_rejects_unknown_issuer():
    genesis = Keypair.generate_ed25519()
    issuer = Keypair.generate_ed25519()
    broadcaster = Keypair.generate_ed25519()
    chain = TrustChain([genesis.identity()])
    vouch = Vouch.create(broadcaster.identity(), issuer, None)
    with pytest.raises(VouchError):
        chain.verify_broadcaster_admission(broadcaster.identity(), vouch)


def test_trust_chain_rejects_subject_mismatch():
    genesis = Keypair.generate_ed25519()
    broadcaster = Keypair.generate_ed25519()
    other = Keypair.generate_ed25519()
    chain = TrustChain([genesis.identity()])
    vouch = Vouch.create(other.identity(), genesis, None)
    with pytest.raises(VouchError):
        chain.verify_broadcaster_admission(broadcaster.identity(), vouch)


def test_trust_chain_rejects_expired_vouch():
    genesis = Keypair.generate_ed25519()
    broadcaster = Keypair.generate_ed25519()
    chain = TrustChain([genesis.identity()])
    vouch = Vouch.create(broadcaster.identity(), genesis, 0)
    with pytest.raises(VouchExpiredError):
        chain.verify_broadcaster_admission(broadcaster.identity(), vouch)