"""Dapp-side client for pairing with wallets over an encrypted relay bridge."""

from .bridge_client import BridgeClient, BridgeError, BridgeTransportError, fetch_decrypted
from .config import BridgeConfig, ConfigurationError, load_bridge_config
from .encryption import CryptoProvider, DecryptionError, EncryptedPayload
from .model import (
    InvalidArgumentError,
    NoSessionError,
    PairingInfo,
    Session,
    Transaction,
)
from .poller import PollOutcome, PollTimeoutError, PollerState, StatusPoller
from .relay import TransactionRelay
from .session_manager import AlreadyPairedError, SessionManager
from .store import KeyValueStorage, MemoryStorage, SessionStore, SQLiteStorage

__all__ = [
    "AlreadyPairedError",
    "BridgeClient",
    "BridgeConfig",
    "BridgeError",
    "BridgeTransportError",
    "ConfigurationError",
    "CryptoProvider",
    "DecryptionError",
    "EncryptedPayload",
    "InvalidArgumentError",
    "KeyValueStorage",
    "MemoryStorage",
    "NoSessionError",
    "PairingInfo",
    "PollOutcome",
    "PollTimeoutError",
    "PollerState",
    "SQLiteStorage",
    "Session",
    "SessionManager",
    "SessionStore",
    "StatusPoller",
    "Transaction",
    "TransactionRelay",
    "fetch_decrypted",
    "load_bridge_config",
]
