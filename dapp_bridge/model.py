"""Domain models for dapp/wallet pairing sessions.

Attribute names follow Python conventions while the JSON records exchanged
with the wallet (pairing payload) and stored locally keep the camelCase keys
the wallet side expects.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional


class NoSessionError(RuntimeError):
    """Raised when an operation needs an established session."""


class InvalidArgumentError(ValueError):
    """Raised when a required argument is missing or empty."""


_WIRE_FIELDS = {
    "bridge_url": "bridgeUrl",
    "session_id": "sessionId",
    "shared_key": "sharedKey",
    "dapp_name": "dappName",
    "expires": "expires",
    "accounts": "accounts",
}
_PAIRING_FIELDS = ("bridge_url", "session_id", "shared_key", "dapp_name", "expires")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Session:
    """Pairing context between this dapp and a wallet.

    ``expires`` is an absolute timestamp in epoch milliseconds.  A non-empty
    ``accounts`` list means the wallet approved the pairing.
    """

    bridge_url: str
    session_id: Optional[str] = None
    shared_key: Optional[str] = None
    dapp_name: Optional[str] = None
    expires: Optional[int] = None
    accounts: Optional[List[str]] = None

    def is_expired(self, now: int | None = None) -> bool:
        if self.expires is None:
            return False
        current = now_ms() if now is None else now
        return current > self.expires

    def is_live_candidate(self, now: int | None = None) -> bool:
        """True when the session has a future expiry and can be resumed."""

        if self.expires is None or not self.session_id or not self.shared_key:
            return False
        current = now_ms() if now is None else now
        return self.expires > current

    @property
    def is_approved(self) -> bool:
        return bool(self.accounts)

    def pairing_payload(self) -> dict[str, Any]:
        """Fields the wallet needs to join this session."""

        return {_WIRE_FIELDS[name]: getattr(self, name) for name in _PAIRING_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        record = self.pairing_payload()
        if self.accounts is not None:
            record["accounts"] = list(self.accounts)
        return record

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Session":
        values = {name: data.get(wire) for name, wire in _WIRE_FIELDS.items()}
        if not values["bridge_url"]:
            raise InvalidArgumentError("Session record is missing bridgeUrl")
        if values["accounts"] is not None:
            values["accounts"] = [str(account) for account in values["accounts"]]
        if values["expires"] is not None:
            values["expires"] = int(values["expires"])
        return cls(**values)


@dataclass
class Transaction:
    """Signing request submitted against a live session."""

    transaction_id: str
    data: Any = None
    status: Any = None


@dataclass
class PairingInfo:
    """Result of negotiating a new session."""

    session: Session
    uri: str
    qrcode: Optional[str] = None


def extract_accounts(data: Any) -> list[str]:
    """Return the approved accounts carried by a decrypted session blob."""

    if isinstance(data, Mapping):
        data = data.get("accounts")
    if isinstance(data, (list, tuple)):
        return [str(account) for account in data if account]
    return []
