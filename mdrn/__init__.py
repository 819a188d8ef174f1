"""Distributed radio network protocol: keys, messages, streams, payments and a minimal relay."""

__version__ = "0.1.0"

__all__ = [
    "backchannel",
    "crypto",
    "identity",
    "payment",
    "protocol",
    "relay",
    "settlement",
    "stream",
    "transport",
]