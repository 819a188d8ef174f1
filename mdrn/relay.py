"""Standalone relay node daemon."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal

from .identity import Keypair
from .protocol import PROTOCOL_ID
from .transport import MdrnSwarm, SwarmError, TransportConfig

__all__ = ["main"]

logger = logging.getLogger(__name__)


def _non_negative(text: str) -> float:
    value = float(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return value


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mdrn-relay", description="Run an MDRN relay node.")
    parser.add_argument(
        "--listen",
        action="append",
        metavar="MULTIADDR",
        help="address to listen on (repeatable); defaults to the transport defaults",
    )
    parser.add_argument(
        "--run-for",
        type=_non_negative,
        metavar="SECONDS",
        help="stop after this many seconds instead of running until interrupted",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging level (default: INFO)",
    )
    return parser.parse_args(argv)


async def _wait_for_shutdown(run_for: float | None) -> None:
    if run_for is not None:
        await asyncio.sleep(run_for)
        return
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass
    await stop.wait()


async def _run(args: argparse.Namespace) -> int:
    config = TransportConfig()
    if args.listen:
        config.listen_addrs = list(args.listen)
    swarm = MdrnSwarm(Keypair.generate_ed25519(), config)
    async with swarm:
        logger.info("Local peer id: %s", swarm.local_peer_id())
        for addr in config.listen_addrs:
            try:
                await swarm.listen(addr)
            except SwarmError as exc:
                logger.warning("Skipping listen address %s: %s", addr, exc)
        if not swarm.listeners():
            logger.error("No usable listen address")
            return 1
        for address in swarm.listeners():
            logger.info("Relay listening on %s", address)
        await _wait_for_shutdown(args.run_for)
        logger.info("Relay shutting down")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the relay daemon; return the process exit code."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logger.info("MDRN Relay starting...")
    logger.info("Protocol: %s", PROTOCOL_ID)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Relay interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())