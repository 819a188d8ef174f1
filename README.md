# mdrn

Building blocks for a distributed radio network. Broadcasters publish live
audio, relays carry it, and listeners tune in and pay.

## What is in the package

- **`mdrn.identity`**: Ed25519 and secp256k1 keypairs (`Keypair`).
  Identities (`Identity`) are multicodec-prefixed public keys. Keypairs
  serialize to and from CBOR. A `Vouch` is a signed credential that admits a
  new broadcaster. `TrustChain` accepts a broadcaster that is itself a genesis
  key or is vouched for directly by one.
- **`mdrn.crypto`**: ChaCha20-Poly1305 encryption (`StreamCipher`, `encrypt`,
  `decrypt`), random stream keys (`generate_stream_key`) and HKDF-SHA256
  derivation (`derive_stream_key`).
- **`mdrn.protocol`**: message type codes (`MessageType`) and the signed,
  CBOR-encoded message envelope (`Message`). `PROTOCOL_VERSION` is 1 and
  `PROTOCOL_ID` is `/mdrn/1.0.0`.
- **`mdrn.stream`**: audio codecs (`Codec`), chunks and their flags (`Chunk`,
  `ChunkFlags`), stream announcements (`StreamAnnouncement`, with CBOR
  encoding), relay advertisements (`RelayAdvertisement`, `Endpoint`,
  `Transport`) and the listener subscription state machine
  (`SubscriptionState`).
- **`mdrn.payment`**: payment methods (`PaymentMethod`), signed cumulative
  payment commitments (`PaymentCommitment`) and receipts (`PaymentReceipt`).
- **`mdrn.settlement`**: `SettlementContract` settles a commitment and checks
  a `SettlementResult`.
- **`mdrn.backchannel`**: encrypted listener-to-broadcaster messages
  (`BackchannelMessage`). Payloads are text, reactions or tip notices
  (`BackchannelPayload.text`, `.reaction`, `.tip`).
- **`mdrn.transport`**: network configuration (`TransportConfig`,
  `NetworkMode`, `PaymentConfig`), stream topic names (`stream_topic`) and
  `MdrnSwarm`. A swarm holds topic subscriptions and a local DHT record store.
  It can also listen on and dial plain TCP addresses such as
  `/ip4/127.0.0.1/tcp/0`.
- **`mdrn.relay`**: the `mdrn-relay` command.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Examples

Sign and verify a protocol message:

```python
from mdrn.identity import Keypair
from mdrn.protocol import Message, MessageType

keypair = Keypair.generate_ed25519()

msg = Message.create(MessageType.PING, keypair, b"payload")
msg.verify()                        # raises MessageError if the signature is bad

decoded = Message.from_cbor(msg.to_cbor())
decoded.verify()
```

Encrypt an audio chunk with a stream key:

```python
from mdrn.crypto import decrypt, encrypt, generate_stream_key

key = generate_stream_key()
ciphertext, nonce = encrypt(key, b"audio chunk data")
assert decrypt(key, ciphertext, nonce) == b"audio chunk data"
```

Vouch for a broadcaster and announce a stream:

```python
from mdrn.identity import Keypair, Vouch
from mdrn.stream import Codec, StreamAnnouncement

issuer = Keypair.generate_ed25519()
broadcaster = Keypair.generate_ed25519()

vouch = Vouch.create(broadcaster.identity(), issuer, None)
announcement = StreamAnnouncement.create(
    broadcaster.identity(), "my-stream", Codec.OPUS, 128, 48000, 2, False, vouch
)
announcement.verify()               # raises VouchError if the vouch is invalid
record = announcement.to_cbor()
assert StreamAnnouncement.from_cbor(record).stream_id == "my-stream"
```

Send a backchannel text message:

```python
from mdrn.backchannel import BackchannelMessage, BackchannelPayload
from mdrn.crypto import generate_stream_key
from mdrn.identity import Keypair

listener = Keypair.generate_ed25519()
broadcaster = Keypair.generate_ed25519()
shared_key = generate_stream_key()

payload = BackchannelPayload.text("Hello broadcaster!")
message = BackchannelMessage.create(
    listener.identity(), broadcaster.identity(), bytes(32), payload, shared_key, 1
)
assert message.decrypt(shared_key) == payload
```

Store and look up a DHT record, and track a topic subscription:

```python
from mdrn.identity import Keypair
from mdrn.transport import DHT_STREAM_NAMESPACE, MdrnSwarm, stream_topic

swarm = MdrnSwarm(Keypair.generate_ed25519())
swarm.dht_put(b"/mdrn/local/test", b"local_value")
assert swarm.dht_get(b"/mdrn/local/test") == b"local_value"

topic = stream_topic(bytes(32))     # "/mdrn/stream/<64 hex digits>"
swarm.subscribe(topic)
assert swarm.is_subscribed(topic)
```

## Relay node

The `mdrn-relay` command logs the protocol identifier and creates a swarm
with a fresh Ed25519 key. It listens on the configured addresses and runs
until interrupted:

```
mdrn-relay
mdrn-relay --listen /ip4/127.0.0.1/tcp/9000 --run-for 30 --log-level DEBUG
```

- `--listen MULTIADDR` sets a listen address. It may be repeated. Without it
  the transport defaults are tried. Addresses the node cannot use, such as
  QUIC addresses, are skipped with a warning. The command exits with status 1
  if no address is usable.
- `--run-for SECONDS` stops the node after that many seconds.
- `--log-level` takes one of `DEBUG`, `INFO`, `WARNING` or `ERROR`. The
  default is `INFO`.

## What the package does not do

- **Peer-to-peer networking is minimal.**
  - `MdrnSwarm` only speaks plain TCP between nodes. It has no transport
    encryption, no peer discovery and no bootstrap.
  - The DHT store is local to each node: records are not shared with peers.
  - `publish` writes a frame to every directly connected peer, and raises
    `SwarmError` when there are none.
  - Received frames are only logged. The API gives the caller no way to
    receive them, and nothing is forwarded onward.
- **The relay does not relay audio, take payments or check vouches.** It
  listens and accepts connections, and nothing more.
- **Settlement is simulated.**
  - `SettlementContract` makes no network or chain calls.
  - EVM L2, Lightning and Superfluid settlements return made-up transaction
    hashes and block numbers built from the commitment.
  - `verify_settlement` accepts any FREE result and any EVM L2 hash that
    starts with `0x`. It rejects everything else.
- **The backchannel has no key exchange.** Messages are encrypted under a key
  both sides already share, and `ephemeral_pubkey` is left empty.
- **The trust chain has one hop only.** Only genesis keys can vouch, and
  `genesis_broadcasters()` returns an empty list.
- **secp256k1 keys cannot start a swarm.** `MdrnSwarm` accepts only Ed25519
  keypairs.
- **No audio is decoded or encoded.** Chunks carry already-encoded data.