"""Command-line interface for pairing with a wallet over a bridge.

The CLI is a thin façade over :class:`SessionManager` and
:class:`TransactionRelay` so operators can pair, push signing requests and
inspect locally stored sessions without writing Python.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from .bridge_client import BridgeClient, BridgeError
from .config import BridgeConfig, ConfigurationError, load_bridge_config, set_default_config_path
from .encryption import DecryptionError
from .model import InvalidArgumentError, NoSessionError, now_ms
from .poller import PollTimeoutError
from .qr import QRCodeRenderer
from .relay import TransactionRelay
from .session_manager import AlreadyPairedError, SessionManager
from .store import SessionStore, SQLiteStorage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

COMPACT_JSON_SEPARATORS = (",", ":")


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dapp bridge pairing CLI")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--bridge-url", default=None, help="Bridge base URL")
    parser.add_argument("--dapp-name", default=None, help="Name shown to the wallet")
    parser.add_argument("--store", default=None, help="SQLite file holding stored sessions")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pair_parser = subparsers.add_parser(
        "pair", help="resume a stored session or negotiate a new pairing"
    )
    pair_parser.add_argument(
        "--new", action="store_true", help="Skip stored sessions and always negotiate"
    )
    pair_parser.add_argument(
        "--wait", action="store_true", help="Wait for the wallet to approve the pairing"
    )
    pair_parser.add_argument(
        "--qr", action="store_true", help="Include an SVG QR code data URL in the output"
    )

    send_parser = subparsers.add_parser(
        "send-tx", help="submit an encrypted transaction over the stored session"
    )
    send_parser.add_argument(
        "--payload-json", required=True, help="JSON document describing the transaction"
    )
    send_parser.add_argument(
        "--wait", action="store_true", help="Poll until the wallet answers"
    )

    status_parser = subparsers.add_parser("tx-status", help="fetch a transaction's status once")
    status_parser.add_argument("--transaction-id", required=True)

    sessions_parser = subparsers.add_parser("sessions", help="list locally stored sessions")
    sessions_parser.add_argument(
        "--purge-expired", action="store_true", help="Delete expired sessions first"
    )
    return parser


def _parse_payload_json(payload_json: str) -> Any:
    try:
        return json.loads(payload_json)
    except json.JSONDecodeError as exc:
        raise CLIError(f"invalid JSON payload: {exc}") from exc


def _load_config(args: argparse.Namespace) -> BridgeConfig:
    if args.config:
        set_default_config_path(args.config)
    return load_bridge_config(
        overrides={
            "bridge_url": args.bridge_url,
            "dapp_name": args.dapp_name,
            "store_path": args.store,
        }
    )


@contextmanager
def _open_store(config: BridgeConfig) -> Iterator[SessionStore]:
    with SQLiteStorage(config.store_path) as storage:
        store = SessionStore(storage)
        store.initialize()
        yield store


@contextmanager
def _open_manager(config: BridgeConfig, *, with_qr: bool = False) -> Iterator[SessionManager]:
    def bridge_factory(bridge_url: str) -> BridgeClient:
        return BridgeClient(bridge_url, timeout=config.request_timeout_seconds)

    with _open_store(config) as store:
        manager = SessionManager(
            config.bridge_url,
            store=store,
            bridge_factory=bridge_factory,
            renderer=QRCodeRenderer() if with_qr else None,
            dapp_name=config.dapp_name,
            session_ttl=config.session_ttl_seconds,
        )
        try:
            yield manager
        finally:
            manager.close()


def _print_json(data: Any) -> None:
    print(json.dumps(data, separators=COMPACT_JSON_SEPARATORS))


async def cmd_pair(args: argparse.Namespace, config: BridgeConfig) -> None:
    with _open_manager(config, with_qr=args.qr) as manager:
        if args.new:
            await manager.negotiate()
        else:
            await manager.resume()

        if manager.pairing is not None:
            manager.save()
            output: dict[str, Any] = {"status": "pending", "pairing": manager.pairing.uri}
            if manager.pairing.qrcode:
                output["qrcode"] = manager.pairing.qrcode
            _print_json(output)
            if not args.wait:
                return
            await manager.wait_for_approval(
                poll_interval=config.poll_interval_seconds, timeout=config.poll_timeout_seconds
            )

        _print_json({"status": "approved", "session": manager.session.to_dict()})


async def cmd_send_tx(args: argparse.Namespace, config: BridgeConfig) -> None:
    payload = _parse_payload_json(args.payload_json)
    with _open_manager(config) as manager:
        await manager.resume(negotiate=False)
        relay = TransactionRelay(manager)
        if args.wait:
            transaction = await relay.send(
                payload,
                poll_interval=config.poll_interval_seconds,
                timeout=config.poll_timeout_seconds,
            )
            _print_json({"transactionId": transaction.transaction_id, "status": transaction.status})
            return
        _print_json({"transactionId": await relay.submit(payload)})


async def cmd_tx_status(args: argparse.Namespace, config: BridgeConfig) -> None:
    with _open_manager(config) as manager:
        await manager.resume(negotiate=False)
        status = await TransactionRelay(manager).fetch_status(args.transaction_id)
    _print_json({"transactionId": args.transaction_id, "status": status})


def cmd_sessions(args: argparse.Namespace, config: BridgeConfig) -> None:
    with _open_store(config) as store:
        if args.purge_expired:
            removed = store.purge_expired()
            logger.info("Removed %d expired sessions", removed)
        sessions = store.list_all()
    now = now_ms()
    for session in sessions:
        record = session.to_dict()
        record.pop("sharedKey", None)
        record["expired"] = session.is_expired(now)
        _print_json(record)


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        config = _load_config(args)
        if args.command == "pair":
            asyncio.run(cmd_pair(args, config))
        elif args.command == "send-tx":
            asyncio.run(cmd_send_tx(args, config))
        elif args.command == "tx-status":
            asyncio.run(cmd_tx_status(args, config))
        elif args.command == "sessions":
            cmd_sessions(args, config)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        BridgeError,
        DecryptionError,
        AlreadyPairedError,
        NoSessionError,
        InvalidArgumentError,
        PollTimeoutError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
