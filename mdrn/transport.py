"""Transport layer: configuration, gossip topics, a local DHT store and TCP peers."""

from __future__ import annotations

import asyncio
import enum
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Iterator

import cbor2

from .identity import Identity, KeyType, Keypair, genesis_broadcasters
from .payment import STREAM_ADDR_SIZE, PaymentMethod
from .protocol import PROTOCOL_ID

MDRN_PROTOCOL_ID = PROTOCOL_ID
"""Protocol identifier announced by every swarm."""

DHT_STREAM_NAMESPACE = "/mdrn/streams/"
"""DHT key namespace for stream announcements."""

DHT_RELAY_NAMESPACE = "/mdrn/relays/"
"""DHT key namespace for relay advertisements."""

_MAX_FRAME_SIZE = 16 * 1024 * 1024
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

__all__ = [
    "DHT_RELAY_NAMESPACE",
    "DHT_STREAM_NAMESPACE",
    "MDRN_PROTOCOL_ID",
    "MdrnSwarm",
    "NetworkMode",
    "NotSubscribedError",
    "PaymentConfig",
    "SwarmError",
    "TransportConfig",
    "stream_topic",
]

logger = logging.getLogger(__name__)


class NetworkMode(enum.Enum):
    """Testnet runs free and unvouched; mainnet enforces payments and vouches."""

    TESTNET = "Testnet"
    MAINNET = "Mainnet"

    def requires_payment(self) -> bool:
        """Return whether this mode requires payment."""
        return self is NetworkMode.MAINNET

    def requires_vouches(self) -> bool:
        """Return whether this mode requires vouch verification."""
        return self is NetworkMode.MAINNET


@dataclass
class PaymentConfig:
    """Payment terms a relay node accepts."""

    method: PaymentMethod
    currency: str
    price_per_mb: int
    settlement_contract: str | None = None

    def __post_init__(self) -> None:
        self.method = PaymentMethod(self.method)

    @classmethod
    def testnet(cls) -> PaymentConfig:
        """Return the free testnet payment configuration."""
        return cls(PaymentMethod.FREE, "FREE", 0, None)


def _default_listen_addrs() -> list[str]:
    return ["/ip4/0.0.0.0/tcp/0", "/ip4/0.0.0.0/udp/0/quic-v1"]


@dataclass
class TransportConfig:
    """Transport layer configuration; durations are in seconds."""

    network_mode: NetworkMode = NetworkMode.TESTNET
    genesis_keys: list[Identity] = field(default_factory=genesis_broadcasters)
    payment_config: PaymentConfig | None = None
    listen_addrs: list[str] = field(default_factory=_default_listen_addrs)
    bootstrap_nodes: list[str] = field(default_factory=list)
    kademlia_k: int = 20
    kademlia_alpha: int = 3
    gossipsub_heartbeat: float = 1.0
    idle_timeout: float = 60.0


def stream_topic(stream_addr: bytes) -> str:
    """Return the gossip topic name of a stream."""
    stream_addr = bytes(stream_addr)
    if len(stream_addr) != STREAM_ADDR_SIZE:
        raise ValueError(
            f"stream address must be {STREAM_ADDR_SIZE} bytes, got {len(stream_addr)}"
        )
    return f"/mdrn/stream/{stream_addr.hex()}"


class SwarmError(Exception):
    """Raised when a swarm operation fails."""


class NotSubscribedError(SwarmError):
    """Raised when publishing to a topic the swarm is not subscribed to."""


def _base58(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, rem = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[rem])
    padding = len(data) - len(data.lstrip(b"\x00"))
    return "1" * padding + "".join(reversed(digits))


def _ed25519_peer_id(public_key: bytes) -> str:
    # Protobuf PublicKey {Type: Ed25519, Data: key} wrapped in an identity multihash.
    encoded = bytes([0x08, 0x01, 0x12, len(public_key)]) + public_key
    return _base58(bytes([0x00, len(encoded)]) + encoded)


def _parse_tcp_multiaddr(addr: str) -> tuple[str, int]:
    parts = str(addr).split("/")
    if len(parts) != 5 or parts[0] != "" or parts[3] != "tcp":
        raise ValueError(f"unsupported multiaddr: {addr}")
    proto, host, port_text = parts[1], parts[2], parts[4]
    if proto == "ip4":
        ipaddress.IPv4Address(host)
    elif proto == "ip6":
        ipaddress.IPv6Address(host)
    elif proto not in ("dns", "dns4", "dns6") or not host:
        raise ValueError(f"unsupported multiaddr: {addr}")
    port = int(port_text)
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return host, port


def _format_tcp_multiaddr(host: str, port: int) -> str:
    version = ipaddress.ip_address(host).version
    return f"/ip{version}/{host}/tcp/{port}"


def _encode_frame(topic: str, data: bytes) -> bytes:
    body = cbor2.dumps({"topic": topic, "data": bytes(data)})
    return len(body).to_bytes(4, "big") + body


class MdrnSwarm:
    """A network node: gossip topic subscriptions, a DHT record store and TCP peers.

    Use ``async with`` (or ``await close()``) to release listeners and connections.
    """

    def __init__(self, keypair: Keypair, config: TransportConfig | None = None) -> None:
        if keypair.key_type() is not KeyType.ED25519:
            raise SwarmError("failed to create swarm: secp256k1 not yet supported")
        secret = keypair.secret_bytes()
        if len(secret) != 32:
            raise SwarmError(
                f"failed to create swarm: Invalid Ed25519 secret key length: {len(secret)}"
            )
        self._peer_id = _ed25519_peer_id(keypair.identity().public_key_bytes())
        self._config = config if config is not None else TransportConfig()
        self._topics: set[str] = set()
        self._dht: dict[bytes, bytes] = {}
        self._servers: list[asyncio.AbstractServer] = []
        self._listen_addrs: list[str] = []
        self._writers: set[asyncio.StreamWriter] = set()
        self._tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> MdrnSwarm:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def local_peer_id(self) -> str:
        """Return the peer ID derived from the node's public key."""
        return self._peer_id

    @staticmethod
    def protocol_id() -> str:
        """Return the protocol identifier."""
        return MDRN_PROTOCOL_ID

    async def listen(self, addr: str) -> None:
        """Start accepting TCP connections on a ``/ip4|ip6/.../tcp/<port>`` address."""
        try:
            host, port = _parse_tcp_multiaddr(addr)
        except ValueError as exc:
            raise SwarmError(f"failed to listen: {exc}") from exc
        try:
            server = await asyncio.start_server(self._on_inbound, host, port)
        except OSError as exc:
            raise SwarmError(f"failed to listen: {exc}") from exc
        self._servers.append(server)
        for sock in server.sockets:
            bound_host, bound_port = sock.getsockname()[:2]
            address = _format_tcp_multiaddr(bound_host, bound_port)
            self._listen_addrs.append(address)
            logger.info("Listening on %s", address)

    async def dial(self, addr: str) -> None:
        """Open a TCP connection to a peer."""
        try:
            host, port = _parse_tcp_multiaddr(addr)
        except ValueError as exc:
            raise SwarmError(f"failed to dial peer: {exc}") from exc
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as exc:
            raise SwarmError(f"failed to dial peer: {exc}") from exc
        task = asyncio.ensure_future(self._serve(reader, writer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def listeners(self) -> tuple[str, ...]:
        """Return the addresses the node is listening on."""
        return tuple(self._listen_addrs)

    def subscribe(self, topic: str) -> None:
        """Subscribe to a gossip topic."""
        self._topics.add(str(topic))

    def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from a gossip topic."""
        self._topics.discard(str(topic))

    def publish(self, topic: str, data: bytes) -> None:
        """Send ``data`` on ``topic`` to every connected peer."""
        topic = str(topic)
        if topic not in self._topics:
            raise NotSubscribedError(f"not subscribed to topic: {topic}")
        writers = [w for w in self._writers if not w.is_closing()]
        if not writers:
            raise SwarmError("failed to publish: InsufficientPeers")
        frame = _encode_frame(topic, data)
        for writer in writers:
            writer.write(frame)

    def dht_put(self, key: bytes, value: bytes) -> None:
        """Store a record in the DHT."""
        self._dht[bytes(key)] = bytes(value)

    def dht_get(self, key: bytes) -> bytes | None:
        """Return the stored value for ``key``, or None."""
        return self._dht.get(bytes(key))

    def dht_items(self) -> Iterator[tuple[bytes, bytes]]:
        """Iterate over the stored DHT records."""
        return iter(list(self._dht.items()))

    def is_subscribed(self, topic: str) -> bool:
        """Return whether the node is subscribed to ``topic``."""
        return str(topic) in self._topics

    def config(self) -> TransportConfig:
        """Return the transport configuration."""
        return self._config

    async def close(self) -> None:
        """Stop listening and drop every connection."""
        for server in self._servers:
            server.close()
        for writer in list(self._writers):
            writer.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for server in self._servers:
            await server.wait_closed()
        self._servers.clear()
        self._listen_addrs.clear()

    async def _on_inbound(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            await self._serve(reader, writer)
        finally:
            if task is not None:
                self._tasks.discard(task)

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        self._writers.add(writer)
        logger.info("Connected to peer: %s", peer)
        try:
            while True:
                size = int.from_bytes(await reader.readexactly(4), "big")
                if size > _MAX_FRAME_SIZE:
                    logger.warning("Dropping peer %s: frame of %d bytes too large", peer, size)
                    break
                self._on_frame(await reader.readexactly(size))
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self._writers.discard(writer)
            writer.close()
            logger.info("Disconnected from peer: %s", peer)

    def _on_frame(self, body: bytes) -> None:
        try:
            value = cbor2.loads(body)
            topic, data = value["topic"], value["data"]
        except (cbor2.CBORDecodeError, KeyError, TypeError, ValueError):
            logger.debug("Ignoring malformed frame of %d bytes", len(body))
            return
        if topic in self._topics:
            logger.debug("Received message: %d bytes on topic %s", len(data), topic)