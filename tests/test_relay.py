"""Tests for transaction submission and status retrieval."""

from __future__ import annotations

import json

import pytest

from dapp_bridge.encryption import EncryptedPayload
from dapp_bridge.model import InvalidArgumentError, NoSessionError
from dapp_bridge.poller import PollerState, PollTimeoutError
from dapp_bridge.relay import TransactionRelay
from dapp_bridge.session_manager import SessionManager


async def test_submit_without_session_makes_no_request(manager: SessionManager, bridge) -> None:
    relay = TransactionRelay(manager)

    with pytest.raises(NoSessionError):
        await relay.submit({"to": "0x1", "value": 1})

    assert bridge.posted == []


async def test_submitted_payload_is_encrypted_on_the_wire(manager: SessionManager, bridge, crypto) -> None:
    payload = {"to": "0x1", "value": 1}
    await manager.negotiate()
    relay = TransactionRelay(manager)

    transaction_id = await relay.submit(payload)

    assert transaction_id == "tx-1"
    request = bridge.posted[0]
    assert request["session_id"] == "abc123"
    assert request["body"]["dappName"] == "Example Dapp"
    data = request["body"]["data"]
    assert data != payload
    assert json.dumps(payload) not in json.dumps(data)
    assert crypto.decrypt(EncryptedPayload.from_dict(data), manager.session.shared_key) == payload


async def test_submit_defaults_to_empty_payload(manager: SessionManager, bridge, crypto) -> None:
    await manager.negotiate()

    await TransactionRelay(manager).submit()

    data = EncryptedPayload.from_dict(bridge.posted[0]["body"]["data"])
    assert crypto.decrypt(data, manager.session.shared_key) == {}


async def test_fetch_status_validates_arguments(manager: SessionManager) -> None:
    relay = TransactionRelay(manager)

    with pytest.raises(InvalidArgumentError):
        await relay.fetch_status("tx-1")

    await manager.negotiate()
    with pytest.raises(InvalidArgumentError):
        await relay.fetch_status("")


async def test_fetch_status_returns_none_until_available(manager: SessionManager, bridge, crypto) -> None:
    await manager.negotiate()
    relay = TransactionRelay(manager)

    assert await relay.fetch_status("tx-1") is None

    bridge.blobs["/transaction-status/tx-1"] = crypto.encrypt(
        {"approved": True, "result": "0xsigned"}, manager.session.shared_key
    )
    assert await relay.fetch_status("tx-1") == {"approved": True, "result": "0xsigned"}


async def test_listen_transaction_status_completes(manager: SessionManager, bridge, crypto) -> None:
    await manager.negotiate()
    bridge.blobs["/transaction-status/tx-1"] = crypto.encrypt({"approved": False}, manager.session.shared_key)
    outcomes = []

    poller = TransactionRelay(manager).listen_transaction_status(
        "tx-1", outcomes.append, poll_interval=0.01, timeout=1
    )
    outcome = await poller.wait()

    assert outcome.state is PollerState.COMPLETED
    assert outcome.result == {"approved": False}
    assert outcomes == [outcome]


async def test_listen_requires_transaction_id(manager: SessionManager) -> None:
    with pytest.raises(InvalidArgumentError):
        TransactionRelay(manager).listen_transaction_status("")


async def test_send_returns_transaction_with_status(manager: SessionManager, bridge, crypto) -> None:
    await manager.negotiate()
    bridge.blobs["/transaction-status/tx-1"] = crypto.encrypt({"approved": True}, manager.session.shared_key)

    transaction = await TransactionRelay(manager).send({"to": "0x1"}, poll_interval=0.01, timeout=1)

    assert transaction.transaction_id == "tx-1"
    assert transaction.data == {"to": "0x1"}
    assert transaction.status == {"approved": True}


async def test_send_raises_when_wallet_never_answers(manager: SessionManager) -> None:
    await manager.negotiate()

    with pytest.raises(PollTimeoutError):
        await TransactionRelay(manager).send({"to": "0x1"}, poll_interval=0.01, timeout=0.05)
