"""Error taxonomy shared by the core and adapters.

Adapters translate platform-specific failures into these types so the relay
engine can decide what stops a cycle and what is fatal at startup.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""


class TransientFetchError(BridgeError):
    """The source could not be read this cycle; the cycle ends quietly."""


class DeliveryError(BridgeError):
    """The sink rejected a message; delivery halts for the rest of the cycle."""


class PersistenceError(BridgeError):
    """The cursor could not be written to durable storage."""


class ConfigError(BridgeError):
    """Missing or invalid configuration detected before any cycle runs."""
