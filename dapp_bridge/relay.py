"""Submission and status tracking of transactions over a paired session."""

from __future__ import annotations

import logging
from typing import Any

from .bridge_client import fetch_decrypted
from .model import InvalidArgumentError, NoSessionError, Transaction
from .poller import PollerState, PollCallback, StatusPoller
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class TransactionRelay:
    """Send encrypted signing requests through the manager's active session."""

    def __init__(self, manager: SessionManager) -> None:
        self.manager = manager

    async def submit(self, payload: Any = None) -> str:
        """Encrypt *payload* and post it to the bridge; return the transaction id."""

        session = self.manager.session
        if not session.session_id or not session.shared_key:
            raise NoSessionError("Create a session with resume() or negotiate() before sending transactions")

        envelope = self.manager.crypto.encrypt({} if payload is None else payload, session.shared_key)
        transaction_id = await self.manager.bridge.post_transaction(
            session.session_id, envelope, session.dapp_name
        )
        logger.debug("Submitted transaction %s", transaction_id)
        return transaction_id

    async def fetch_status(self, transaction_id: str) -> Any:
        """Return the decrypted status for *transaction_id*, or ``None`` if none yet."""

        session = self.manager.session
        if not session.session_id or not session.shared_key or not transaction_id:
            raise InvalidArgumentError("sessionId and transactionId are required")
        return await fetch_decrypted(
            self.manager.bridge,
            self.manager.crypto,
            session.shared_key,
            f"/transaction-status/{transaction_id}",
        )

    def listen_transaction_status(
        self,
        transaction_id: str,
        callback: PollCallback | None = None,
        poll_interval: float = 1.0,
        timeout: float = 60.0,
    ) -> StatusPoller:
        if not transaction_id:
            raise InvalidArgumentError("transactionId is required")
        return StatusPoller(
            lambda: self.fetch_status(transaction_id),
            callback,
            poll_interval=poll_interval,
            timeout=timeout,
        ).start()

    async def send(
        self,
        payload: Any,
        poll_interval: float = 1.0,
        timeout: float = 60.0,
    ) -> Transaction:
        """Submit *payload* and wait for the wallet's answer."""

        transaction_id = await self.submit(payload)
        outcome = await self.listen_transaction_status(
            transaction_id, poll_interval=poll_interval, timeout=timeout
        ).wait()
        if outcome.state is not PollerState.COMPLETED:
            raise outcome.error or RuntimeError(
                f"Transaction {transaction_id} polling ended in state {outcome.state.name}"
            )
        return Transaction(transaction_id=transaction_id, data=payload, status=outcome.result)
