"""Tests for the bridge HTTP client against a fake requests session."""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from dapp_bridge.bridge_client import (
    BridgeClient,
    BridgeError,
    BridgeTransportError,
    fetch_decrypted,
)
from dapp_bridge.encryption import CryptoProvider, DecryptionError

BRIDGE_URL = "https://bridge.example.org/"


def _response(status: int, body: Any = None, reason: str = "OK", raw: bytes | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    if raw is not None:
        response._content = raw
    else:
        response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    return response


class FakeHTTP:
    def __init__(self, *responses: requests.Response | Exception) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        response.url = url
        return response

    def close(self) -> None:
        self.closed = True


async def test_create_session_posts_to_session_new() -> None:
    http = FakeHTTP(_response(200, {"sessionId": "abc123"}))
    client = BridgeClient(BRIDGE_URL, http=http)  # type: ignore[arg-type]

    session_id = await client.create_session()

    assert session_id == "abc123"
    assert http.calls[0]["method"] == "POST"
    assert http.calls[0]["url"] == "https://bridge.example.org/session/new"
    assert http.calls[0]["json"] is None


async def test_create_session_surfaces_http_errors() -> None:
    http = FakeHTTP(_response(503, reason="Service Unavailable"))
    client = BridgeClient(BRIDGE_URL, http=http)  # type: ignore[arg-type]

    with pytest.raises(BridgeError) as excinfo:
        await client.create_session()

    assert excinfo.value.status_code == 503
    assert excinfo.value.message == "Service Unavailable"


async def test_create_session_requires_session_id() -> None:
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(200, {})))  # type: ignore[arg-type]

    with pytest.raises(BridgeTransportError):
        await client.create_session()


async def test_connection_failure_is_transport_error() -> None:
    http = FakeHTTP(requests.ConnectionError("refused"))
    client = BridgeClient(BRIDGE_URL, http=http)  # type: ignore[arg-type]

    with pytest.raises(BridgeTransportError) as excinfo:
        await client.fetch_encrypted("/session/abc")

    assert excinfo.value.status_code is None


@pytest.mark.parametrize("status", [204, 404])
async def test_fetch_encrypted_treats_missing_blob_as_none(status: int) -> None:
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(status)))  # type: ignore[arg-type]

    assert await client.fetch_encrypted("/transaction-status/tx-1") is None


async def test_fetch_encrypted_treats_empty_body_as_none() -> None:
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(200)))  # type: ignore[arg-type]

    assert await client.fetch_encrypted("/session/abc") is None


async def test_fetch_encrypted_rejects_malformed_json() -> None:
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(200, raw=b"<html>")))  # type: ignore[arg-type]

    with pytest.raises(BridgeTransportError):
        await client.fetch_encrypted("/session/abc")


async def test_fetch_encrypted_raises_on_server_error() -> None:
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(500, reason="Boom")))  # type: ignore[arg-type]

    with pytest.raises(BridgeError) as excinfo:
        await client.fetch_encrypted("/session/abc")

    assert excinfo.value.status_code == 500


async def test_fetch_decrypted_round_trip() -> None:
    crypto = CryptoProvider()
    key = crypto.generate_key()
    envelope = crypto.encrypt({"accounts": ["0xabc"]}, key)
    http = FakeHTTP(_response(200, {"data": envelope.to_dict()}))
    client = BridgeClient(BRIDGE_URL, http=http)  # type: ignore[arg-type]

    data = await fetch_decrypted(client, crypto, key, "/session/abc")

    assert data == {"accounts": ["0xabc"]}
    assert http.calls[0]["method"] == "GET"
    assert http.calls[0]["url"] == "https://bridge.example.org/session/abc"


async def test_fetch_decrypted_with_foreign_key_raises() -> None:
    crypto = CryptoProvider()
    envelope = crypto.encrypt({"accounts": ["0xabc"]}, crypto.generate_key())
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(200, {"data": envelope.to_dict()})))  # type: ignore[arg-type]

    with pytest.raises(DecryptionError):
        await fetch_decrypted(client, crypto, crypto.generate_key(), "/session/abc")


async def test_post_transaction_sends_envelope_and_dapp_name() -> None:
    crypto = CryptoProvider()
    envelope = crypto.encrypt({"to": "0x1"}, crypto.generate_key())
    http = FakeHTTP(_response(201, {"transactionId": "tx-9"}))
    client = BridgeClient(BRIDGE_URL, http=http)  # type: ignore[arg-type]

    transaction_id = await client.post_transaction("abc123", envelope, "Dapp")

    assert transaction_id == "tx-9"
    call = http.calls[0]
    assert call["url"] == "https://bridge.example.org/session/abc123/transaction/new"
    assert call["json"] == {"data": envelope.to_dict(), "dappName": "Dapp"}
    assert call["headers"]["Content-Type"] == "application/json"


async def test_post_transaction_surfaces_client_errors() -> None:
    crypto = CryptoProvider()
    envelope = crypto.encrypt({}, crypto.generate_key())
    client = BridgeClient(BRIDGE_URL, http=FakeHTTP(_response(400, reason="Bad Request")))  # type: ignore[arg-type]

    with pytest.raises(BridgeError) as excinfo:
        await client.post_transaction("abc123", envelope, None)

    assert excinfo.value.status_code == 400


def test_close_closes_http_session() -> None:
    http = FakeHTTP()
    BridgeClient(BRIDGE_URL, http=http).close()  # type: ignore[arg-type]

    assert http.closed
