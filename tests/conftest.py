from __future__ import annotations

from typing import Any

import pytest

from dapp_bridge.encryption import CryptoProvider, EncryptedPayload
from dapp_bridge.session_manager import SessionManager
from dapp_bridge.store import MemoryStorage, SessionStore

BRIDGE_URL = "https://bridge.example.org"


class StubBridge:
    """In-memory stand-in for :class:`BridgeClient`."""

    def __init__(
        self,
        session_id: str = "abc123",
        transaction_id: str = "tx-1",
        bridge_url: str = BRIDGE_URL,
    ) -> None:
        self.bridge_url = bridge_url
        self.session_id = session_id
        self.transaction_id = transaction_id
        self.blobs: dict[str, Any] = {}
        self.created = 0
        self.fetched: list[str] = []
        self.posted: list[dict[str, Any]] = []
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def create_session(self) -> str:
        self.created += 1
        return self.session_id

    async def fetch_encrypted(self, path: str) -> EncryptedPayload | None:
        self.fetched.append(path)
        value = self.blobs.get(path)
        if callable(value):
            value = value()
        if isinstance(value, Exception):
            raise value
        return value

    async def post_transaction(
        self, session_id: str, envelope: EncryptedPayload, dapp_name: str | None
    ) -> str:
        self.posted.append(
            {"session_id": session_id, "body": {"data": envelope.to_dict(), "dappName": dapp_name}}
        )
        return self.transaction_id


class StubRenderer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.rendered: list[str] = []

    def render(self, pairing_uri: str) -> str:
        self.rendered.append(pairing_uri)
        if self.fail:
            raise RuntimeError("canvas unavailable")
        return "data:image/svg+xml;base64,stub"


@pytest.fixture
def crypto() -> CryptoProvider:
    return CryptoProvider()


@pytest.fixture
def bridge() -> StubBridge:
    return StubBridge()


@pytest.fixture
def renderer() -> StubRenderer:
    return StubRenderer()


@pytest.fixture
def store() -> SessionStore:
    session_store = SessionStore(MemoryStorage())
    session_store.initialize()
    return session_store


@pytest.fixture
def manager(store: SessionStore, crypto: CryptoProvider, bridge: StubBridge, renderer: StubRenderer) -> SessionManager:
    return SessionManager(
        BRIDGE_URL,
        store=store,
        crypto=crypto,
        bridge=bridge,  # type: ignore[arg-type]
        renderer=renderer,
        dapp_name="Example Dapp",
    )
