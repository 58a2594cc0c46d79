"""HTTP client for the relay bridge.

The bridge is an untrusted store-and-forward server: it issues session and
transaction identifiers and holds encrypted blobs until the other side picks
them up.  The client is intentionally thin; every helper maps to one REST
call and surfaces HTTP failures as :class:`BridgeError`.

Requests are made with a blocking :class:`requests.Session` and pushed to a
worker thread via :func:`asyncio.to_thread`, so callers simply ``await`` the
coroutine helpers without stalling the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import requests
from requests import RequestException, Response

from .encryption import CryptoProvider, DecryptionError, EncryptedPayload

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}
_NOTHING_YET = {204, 404}


class BridgeError(RuntimeError):
    """Raised when the bridge answers with a client or server error."""

    def __init__(self, status_code: int | None, message: str) -> None:
        prefix = f"Bridge error {status_code}" if status_code is not None else "Bridge error"
        super().__init__(f"{prefix}: {message}")
        self.status_code = status_code
        self.message = message


class BridgeTransportError(BridgeError):
    """Raised when the bridge is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(status_code, message)


class BridgeClient:
    """Stateless wrapper around the bridge REST surface."""

    def __init__(
        self,
        bridge_url: str,
        *,
        timeout: float = 30.0,
        http: requests.Session | None = None,
    ) -> None:
        self.bridge_url = bridge_url.rstrip("/")
        self.timeout = timeout
        self._http = http or requests.Session()

    def close(self) -> None:
        self._http.close()

    async def create_session(self) -> str:
        """Register a new session and return its server-issued id."""

        body = await asyncio.to_thread(self._request_json, "POST", "/session/new")
        session_id = body.get("sessionId") if isinstance(body, dict) else None
        if not session_id:
            raise BridgeTransportError("Bridge response did not include a sessionId")
        logger.info("Bridge created session", extra={"session_id": session_id})
        return str(session_id)

    async def fetch_encrypted(self, path: str) -> Optional[EncryptedPayload]:
        """Fetch the encrypted blob stored at *path*, or ``None`` if there is none yet."""

        return await asyncio.to_thread(self._fetch_envelope, path)

    async def post_transaction(
        self,
        session_id: str,
        envelope: EncryptedPayload,
        dapp_name: str | None,
    ) -> str:
        """Store an encrypted transaction for *session_id* and return its id."""

        payload = {"data": envelope.to_dict(), "dappName": dapp_name}
        body = await asyncio.to_thread(
            self._request_json,
            "POST",
            f"/session/{session_id}/transaction/new",
            payload,
        )
        transaction_id = body.get("transactionId") if isinstance(body, dict) else None
        if not transaction_id:
            raise BridgeTransportError("Bridge response did not include a transactionId")
        logger.info(
            "Bridge accepted transaction",
            extra={"session_id": session_id, "transaction_id": transaction_id},
        )
        return str(transaction_id)

    # Blocking helpers -----------------------------------------------------

    def _send(self, method: str, path: str, payload: Any = None) -> Response:
        url = f"{self.bridge_url}{path}"
        logger.debug("Bridge %s %s", method, url)
        try:
            return self._http.request(
                method,
                url,
                json=payload,
                headers=_JSON_HEADERS,
                timeout=self.timeout,
            )
        except RequestException as exc:
            logger.error(
                "Bridge connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise BridgeTransportError(f"Bridge at {self.bridge_url} is unreachable") from exc

    def _raise_for_status(self, response: Response) -> None:
        if response.status_code < 400:
            return
        message = response.reason or response.text or "request failed"
        logger.error("Bridge HTTP error %s from %s", response.status_code, response.url)
        raise BridgeError(response.status_code, message)

    def _decode(self, response: Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.debug("Bridge JSON parse error: %s", response.text, exc_info=True)
            raise BridgeTransportError(
                "Bridge returned malformed JSON", status_code=response.status_code
            ) from exc

    def _request_json(self, method: str, path: str, payload: Any = None) -> Any:
        response = self._send(method, path, payload)
        self._raise_for_status(response)
        return self._decode(response)

    def _fetch_envelope(self, path: str) -> Optional[EncryptedPayload]:
        response = self._send("GET", path)
        if response.status_code in _NOTHING_YET:
            return None
        self._raise_for_status(response)
        body = self._decode(response)
        data = body.get("data") if isinstance(body, dict) else None
        if not data:
            return None
        if not isinstance(data, dict):
            raise BridgeTransportError(f"Unexpected blob format at {path}")
        return EncryptedPayload.from_dict(data)


async def fetch_decrypted(
    bridge: BridgeClient,
    crypto: CryptoProvider,
    shared_key: str,
    path: str,
) -> Any:
    """Fetch the blob at *path* and decrypt it with *shared_key*.

    Returns ``None`` when the bridge holds nothing for *path*.  A
    :class:`DecryptionError` means the envelope does not belong to this key
    and the session should be treated as compromised.
    """

    envelope = await bridge.fetch_encrypted(path)
    if envelope is None:
        return None
    try:
        return crypto.decrypt(envelope, shared_key)
    except DecryptionError:
        logger.warning("Could not decrypt bridge blob at %s", path)
        raise
