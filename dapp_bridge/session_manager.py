"""Pairing lifecycle for the dapp side of a bridge session.

A :class:`SessionManager` either resumes a previously stored session that the
wallet already approved, or negotiates a fresh one with the bridge and
produces the pairing payload the wallet scans.  Persistence goes through an
injected :class:`~dapp_bridge.store.SessionStore`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from typing import Any, Callable, Optional

from .bridge_client import BridgeClient, fetch_decrypted
from .encryption import CryptoProvider
from .model import NoSessionError, PairingInfo, Session, extract_accounts, now_ms
from .poller import PollerState, PollCallback, StatusPoller
from .qr import PairingRenderer
from .store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 24 * 60 * 60


class AlreadyPairedError(RuntimeError):
    """Raised when negotiating on a manager that already holds a session id."""


class SessionManager:
    """Own the active session and its pairing with a wallet.

    One manager corresponds to one pairing attempt; use a fresh instance to
    pair again once a session id has been assigned.
    """

    def __init__(
        self,
        bridge_url: str,
        *,
        store: SessionStore,
        crypto: CryptoProvider | None = None,
        bridge: BridgeClient | None = None,
        bridge_factory: Callable[[str], BridgeClient] | None = None,
        renderer: PairingRenderer | None = None,
        dapp_name: str | None = None,
        expires: int | None = None,
        session_ttl: float = DEFAULT_SESSION_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.crypto = crypto or CryptoProvider()
        self._bridge_factory = bridge_factory or BridgeClient
        self.bridge = bridge or self._bridge_factory(bridge_url)
        self._bridges: dict[str, BridgeClient] = {bridge_url.rstrip("/"): self.bridge}
        self.renderer = renderer
        self.session_ttl = session_ttl
        self.session = Session(bridge_url=bridge_url, dapp_name=dapp_name, expires=expires)
        self.pairing: Optional[PairingInfo] = None

    @property
    def has_session(self) -> bool:
        return bool(self.session.session_id)

    async def resume(self, negotiate: bool = True) -> Session:
        """Adopt the first stored session the wallet still holds, or negotiate.

        Stored sessions with a future expiry are checked concurrently, each
        against the bridge it was created on; adopting one switches
        :attr:`bridge` to that bridge.  A candidate whose lookup fails or
        returns no accounts is skipped; selection follows store order.  With
        ``negotiate=False`` a miss raises :class:`NoSessionError` instead of
        starting a pairing.
        """

        now = now_ms()
        candidates = [session for session in self.store.list_all() if session.is_live_candidate(now)]
        logger.debug("Checking %d stored sessions for resumption", len(candidates))

        results = await asyncio.gather(
            *(self._lookup_accounts(candidate) for candidate in candidates),
            return_exceptions=True,
        )
        for candidate, result in zip(candidates, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Skipping stored session %s: %s",
                    candidate.session_id,
                    result,
                    extra={"session_id": candidate.session_id},
                )
                continue
            if result:
                self.session = replace(candidate, accounts=result)
                self.bridge = self._bridge_for(candidate.bridge_url)
                self.pairing = None
                logger.info("Resumed stored session", extra={"session_id": candidate.session_id})
                return self.session

        if not negotiate:
            raise NoSessionError("No approved session is stored")
        logger.info("No live stored session; negotiating a new one")
        await self.negotiate()
        return self.session

    async def negotiate(self) -> PairingInfo:
        """Register a new session with the bridge and build its pairing payload."""

        if self.session.session_id:
            raise AlreadyPairedError(
                f"Session {self.session.session_id} already created; use a new manager to pair again"
            )

        shared_key = self.session.shared_key or self.crypto.generate_key()
        session_id = await self.bridge.create_session()

        self.session.shared_key = shared_key
        self.session.session_id = session_id
        if self.session.expires is None:
            self.session.expires = now_ms() + int(self.session_ttl * 1000)

        uri = json.dumps(self.session.pairing_payload(), separators=(",", ":"))
        self.pairing = PairingInfo(session=self.session, uri=uri, qrcode=self._render(uri))
        logger.info("Negotiated new session", extra={"session_id": session_id})
        return self.pairing

    def _render(self, uri: str) -> Optional[str]:
        if self.renderer is None:
            return None
        try:
            return self.renderer.render(uri)
        except Exception as exc:
            logger.warning("Failed to render pairing QR code: %s", exc)
            return None

    def _bridge_for(self, bridge_url: str) -> BridgeClient:
        key = bridge_url.rstrip("/")
        client = self._bridges.get(key)
        if client is None:
            client = self._bridge_factory(bridge_url)
            self._bridges[key] = client
        return client

    async def _lookup_accounts(self, session: Session) -> list[str]:
        data = await fetch_decrypted(
            self._bridge_for(session.bridge_url),
            self.crypto,
            session.shared_key or "",
            f"/session/{session.session_id}",
        )
        return extract_accounts(data)

    async def get_session_status(self) -> Any:
        """Fetch the wallet's decrypted answer for the active session."""

        if not self.session.session_id or not self.session.shared_key:
            raise NoSessionError("sessionId is required; call resume() or negotiate() first")
        return await fetch_decrypted(
            self.bridge,
            self.crypto,
            self.session.shared_key,
            f"/session/{self.session.session_id}",
        )

    def listen_session_status(
        self,
        callback: PollCallback | None = None,
        poll_interval: float = 1.0,
        timeout: float = 60.0,
    ) -> StatusPoller:
        if not self.session.session_id:
            raise NoSessionError("sessionId is required; call resume() or negotiate() first")
        return StatusPoller(
            self.get_session_status,
            callback,
            poll_interval=poll_interval,
            timeout=timeout,
        ).start()

    async def wait_for_approval(self, poll_interval: float = 1.0, timeout: float = 60.0) -> Session:
        """Poll until the wallet approves the pairing, then persist the session."""

        if self.session.is_approved:
            return self.session
        outcome = await self.listen_session_status(
            poll_interval=poll_interval, timeout=timeout
        ).wait()
        if outcome.state is not PollerState.COMPLETED:
            raise outcome.error or RuntimeError(f"Pairing ended in state {outcome.state.name}")
        accounts = extract_accounts(outcome.result)
        if not accounts:
            raise NoSessionError("Wallet answered without approving any accounts")
        self.session.accounts = accounts
        self.save()
        logger.info(
            "Wallet approved session with %d accounts",
            len(accounts),
            extra={"session_id": self.session.session_id},
        )
        return self.session

    def save(self) -> None:
        if not self.session.session_id:
            raise NoSessionError("Nothing to save; no session has been negotiated")
        self.store.save(self.session)

    def forget(self) -> None:
        if self.session.session_id:
            self.store.delete(self.session)

    def close(self) -> None:
        """Close every bridge client the manager has used."""

        for client in self._bridges.values():
            client.close()
        self._bridges.clear()
