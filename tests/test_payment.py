import pytest

from mdrn.identity import Keypair
from mdrn.payment import (
    CommitmentError,
    PaymentCommitment,
    PaymentMethod,
    PaymentReceipt,
)


@pytest.fixture
def listener():
    return Keypair.generate_ed25519()


@pytest.fixture
def relay():
    return Keypair.generate_ed25519()


def _commit(relay, listener, amount, seq, method=PaymentMethod.EVM_L2):
    return PaymentCommitment.create(
        relay.identity(), listener, bytes(32), method, amount, "USDC", 8453, seq
    )


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, PaymentMethod.FREE),
        (1, PaymentMethod.EVM_L2),
        (2, PaymentMethod.LIGHTNING),
        (3, PaymentMethod.SUPERFLUID),
    ],
)
def test_from_u8(value, expected):
    assert PaymentMethod.from_u8(value) is expected


def test_from_u8_unknown():
    assert PaymentMethod.from_u8(4) is None


@pytest.mark.parametrize(
    "value, name",
    [(0, "FREE"), (1, "EVM_L2"), (2, "LIGHTNING"), (3, "SUPERFLUID")],
)
def test_method_names(value, name):
    assert PaymentMethod.from_u8(value).name == name


def test_requires_settlement():
    assert not PaymentMethod.FREE.requires_settlement()
    assert all(
        m.requires_settlement() for m in PaymentMethod if m is not PaymentMethod.FREE
    )


def test_commitment_sign_and_verify(relay, listener):
    commitment = _commit(relay, listener, 1000000, 1)
    commitment.verify_signature()
    assert commitment.listener_id == listener.identity()
    assert commitment.relay_id == relay.identity()
    assert commitment.amount == 1000000
    assert commitment.chain_id == 8453


def test_commitment_secp256k1(relay):
    listener = Keypair.generate_secp256k1()
    commitment = _commit(relay, listener, 50, 2, PaymentMethod.LIGHTNING)
    commitment.verify_signature()
    assert commitment.method is PaymentMethod.LIGHTNING


def test_tampered_amount_fails(relay, listener):
    commitment = _commit(relay, listener, 10, 1)
    commitment.amount = 1000
    with pytest.raises(CommitmentError, match="signature"):
        commitment.verify_signature()


def test_signature_from_other_key_fails(relay, listener):
    commitment = _commit(relay, listener, 10, 1)
    other = _commit(relay, Keypair.generate_ed25519(), 10, 1)
    commitment.signature = other.signature
    with pytest.raises(CommitmentError):
        commitment.verify_signature()


def test_signing_data_excludes_signature(relay, listener):
    commitment = _commit(relay, listener, 10, 1)
    before = commitment.signing_data()
    commitment.signature = b"\x00" * 64
    assert commitment.signing_data() == before


def test_supersedes_ok(relay, listener):
    first = _commit(relay, listener, 100, 1)
    second = _commit(relay, listener, 200, 2)
    assert second.validate_supersedes(first) is None
    same_amount = _commit(relay, listener, 100, 3)
    assert same_amount.validate_supersedes(first) is None
    with pytest.raises(CommitmentError):
        first.validate_supersedes(second)


def test_supersedes_requires_higher_seq(relay, listener):
    first = _commit(relay, listener, 100, 5)
    second = _commit(relay, listener, 200, 5)
    with pytest.raises(CommitmentError, match="sequence number must increase"):
        second.validate_supersedes(first)


def test_supersedes_requires_cumulative_amount(relay, listener):
    first = _commit(relay, listener, 100, 1)
    second = _commit(relay, listener, 50, 2)
    with pytest.raises(CommitmentError, match="cumulative"):
        second.validate_supersedes(first)


def test_stream_addr_length_checked(relay, listener):
    with pytest.raises(ValueError):
        PaymentCommitment.create(
            relay.identity(), listener, b"short", PaymentMethod.FREE, 0, "FREE", None, 1
        )


def test_receipt_fields(relay, listener):
    receipt = PaymentReceipt(
        relay_id=relay.identity(),
        listener_id=listener.identity(),
        stream_addr=bytes(32),
        commitment_seq=3,
        amount=300,
        timestamp=0,
    )
    assert receipt.commitment_seq == 3
    assert receipt.signature == b""
    with pytest.raises(ValueError):
        PaymentReceipt(relay.identity(), listener.identity(), b"x", 1, 1, 0)