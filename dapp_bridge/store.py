"""Local persistence for pairing sessions.

Sessions are kept in a single keyed blob, mirroring browser local storage:
one key holds a versioned JSON document mapping session ids to records.  The
storage backend is pluggable; :class:`MemoryStorage` serves tests and
short-lived processes, :class:`SQLiteStorage` keeps sessions across restarts.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .model import Session, now_ms

logger = logging.getLogger(__name__)

REGISTRY_KEY = "wcsmngt"
REGISTRY_VERSION = 1


class KeyValueStorage:
    """Interface for a string key/value store."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class SQLiteStorage(KeyValueStorage):
    """Persist key/value pairs to a local SQLite database."""

    DEFAULT_DB_PATH = Path.home() / ".dapp-bridge" / "storage.sqlite"

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at INTEGER DEFAULT (strftime('%s', 'now'))
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "SQLiteStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_item(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM storage WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO storage (key, value) VALUES (?, ?)",
            (key, value),
        )
        self.conn.commit()

    def remove_item(self, key: str) -> None:
        self.conn.execute("DELETE FROM storage WHERE key = ?", (key,))
        self.conn.commit()


class SessionStore:
    """CRUD over the local session registry.

    The registry must be created with :meth:`initialize` before use.  Writes
    against an uninitialized store are dropped with a debug log instead of
    raising: losing a cached session only costs a re-pairing.
    """

    def __init__(self, storage: KeyValueStorage | None = None, key: str = REGISTRY_KEY) -> None:
        self.storage = storage if storage is not None else MemoryStorage()
        self.key = key
        self._lock = threading.RLock()

    @property
    def is_initialized(self) -> bool:
        with self._lock:
            return self.storage.get_item(self.key) is not None

    def initialize(self) -> None:
        with self._lock:
            if self.storage.get_item(self.key) is None:
                self._write({})
                logger.debug("Initialized session registry under %r", self.key)

    def save(self, session: Session) -> None:
        if not session.session_id:
            raise ValueError("Cannot store a session without a session id")
        with self._lock:
            records = self._read()
            if records is None:
                logger.debug("Session registry not initialized; dropping save of %s", session.session_id)
                return
            records[session.session_id] = session.to_dict()
            self._write(records)

    def update(self, session_id: str, changes: Mapping[str, Any]) -> None:
        """Merge camelCase *changes* into the stored record for *session_id*."""

        with self._lock:
            records = self._read()
            if records is None or session_id not in records:
                logger.debug("No stored session %s; update dropped", session_id)
                return
            merged = {**records[session_id], **changes, "sessionId": session_id}
            records[session_id] = merged
            self._write(records)

    def update_session(self, session: Session) -> None:
        """Merge every set field of *session* into its stored record."""

        if not session.session_id:
            raise ValueError("Cannot update a session without a session id")
        changes = {key: value for key, value in session.to_dict().items() if value is not None}
        self.update(session.session_id, changes)

    def delete(self, session: Session | str) -> None:
        session_id = session if isinstance(session, str) else session.session_id
        with self._lock:
            records = self._read()
            if records is None or session_id not in records:
                return
            del records[session_id]
            self._write(records)

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            records = self._read() or {}
        record = records.get(session_id)
        return Session.from_dict(record) if record else None

    def list_all(self) -> list[Session]:
        with self._lock:
            records = self._read() or {}
        sessions: list[Session] = []
        for session_id, record in records.items():
            try:
                sessions.append(Session.from_dict(record))
            except (TypeError, ValueError):
                logger.warning("Skipping malformed stored session %s", session_id)
        return sessions

    def purge_expired(self, now: int | None = None) -> int:
        """Remove expired records and return how many were dropped."""

        current = now_ms() if now is None else now
        with self._lock:
            records = self._read()
            if not records:
                return 0
            kept = {}
            for session_id, record in records.items():
                expires = record.get("expires")
                if expires is not None:
                    try:
                        expires = int(expires)
                    except (TypeError, ValueError):
                        logger.warning(
                            "Keeping stored session %s with unreadable expiry %r",
                            session_id,
                            expires,
                            extra={"session_id": session_id},
                        )
                        expires = None
                if expires is None or expires >= current:
                    kept[session_id] = record
            removed = len(records) - len(kept)
            if removed:
                self._write(kept)
                logger.info("Purged %d expired sessions", removed)
            return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._read() or {})

    def _read(self) -> Optional[Dict[str, Dict[str, Any]]]:
        raw = self.storage.get_item(self.key)
        if raw is None:
            return None
        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Session registry under %r is corrupt; starting empty", self.key)
            return {}
        if not isinstance(document, dict):
            return {}
        if "version" not in document:
            # unversioned blobs hold the mapping directly
            return dict(document)
        version = document.get("version")
        if version != REGISTRY_VERSION:
            logger.warning("Unsupported session registry version %s; ignoring stored sessions", version)
            return {}
        sessions = document.get("sessions") or {}
        return dict(sessions) if isinstance(sessions, dict) else {}

    def _write(self, records: Mapping[str, Mapping[str, Any]]) -> None:
        document = {"version": REGISTRY_VERSION, "sessions": dict(records)}
        self.storage.set_item(self.key, json.dumps(document, separators=(",", ":")))
