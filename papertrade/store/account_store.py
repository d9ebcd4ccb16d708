"""
Account Store — durable home of one serialized Account per account id.
=======================================================================

The engine never updates an account partially: callers load the whole
record, mutate it in memory and save the whole record back.

Backends:
  InMemoryAccountStore — JSON blobs in a dict (tests, ephemeral sessions)
  SqliteAccountStore   — one row per account, blob in a TEXT column

Any backend failure, including a blob that no longer parses, surfaces as
StoreUnavailable. Callers must not fall back to a fresh account on error.
"""

from __future__ import annotations
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol, List

from pydantic import ValidationError

from papertrade.engine.contracts import Account
from papertrade.utils.exceptions import StoreUnavailable
from papertrade.utils.logger import get_logger

logger = get_logger(__name__)


class AccountStore(Protocol):
    def load(self, account_id: str) -> Optional[Account]: ...

    def save(self, account_id: str, account: Account) -> None: ...

    def delete(self, account_id: str) -> None: ...


def _decode(account_id: str, raw: str) -> Account:
    try:
        return Account.from_json(raw)
    except ValidationError as e:
        logger.error("account_store_corrupt_record", account_id=account_id, error=str(e))
        raise StoreUnavailable(f"Stored account {account_id!r} could not be decoded") from e


class InMemoryAccountStore:
    """Keeps serialized blobs, so every load is a fresh snapshot."""

    def __init__(self) -> None:
        self._blobs: dict[str, str] = {}

    def load(self, account_id: str) -> Optional[Account]:
        raw = self._blobs.get(account_id)
        if raw is None:
            return None
        return _decode(account_id, raw)

    def save(self, account_id: str, account: Account) -> None:
        self._blobs[account_id] = account.to_json()

    def delete(self, account_id: str) -> None:
        self._blobs.pop(account_id, None)

    def account_ids(self) -> List[str]:
        return sorted(self._blobs)


class SqliteAccountStore:
    """
    SQLite account store.
    One connection per thread; whole-record INSERT OR REPLACE on save.
    """

    def __init__(self, db_path: str = "data/paper_trading.db"):
        self._db_path = db_path
        self._local = threading.local()
        try:
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            logger.error("account_store_error", op="init", path=db_path, error=str(e))
            raise StoreUnavailable(f"Cannot open account store at {db_path}: {e}") from e
        logger.info("account_store_initialized", path=db_path)

    def _get_conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self._db_path, timeout=10)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def _init_db(self):
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS accounts (
                account_id  TEXT PRIMARY KEY,
                data        TEXT NOT NULL,
                updated_at  TEXT DEFAULT ''
            );
        """)
        conn.commit()

    def load(self, account_id: str) -> Optional[Account]:
        try:
            row = self._get_conn().execute(
                "SELECT data FROM accounts WHERE account_id = ?", (account_id,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error("account_store_error", op="load", account_id=account_id, error=str(e))
            raise StoreUnavailable(f"Failed to load account {account_id!r}: {e}") from e
        if row is None:
            return None
        return _decode(account_id, row["data"])

    def save(self, account_id: str, account: Account) -> None:
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO accounts (account_id, data, updated_at) VALUES (?, ?, ?)",
                    (account_id, account.to_json(), datetime.now(timezone.utc).isoformat()),
                )
        except sqlite3.Error as e:
            logger.error("account_store_error", op="save", account_id=account_id, error=str(e))
            raise StoreUnavailable(f"Failed to save account {account_id!r}: {e}") from e

    def delete(self, account_id: str) -> None:
        try:
            with self._get_conn() as conn:
                conn.execute("DELETE FROM accounts WHERE account_id = ?", (account_id,))
        except sqlite3.Error as e:
            logger.error("account_store_error", op="delete", account_id=account_id, error=str(e))
            raise StoreUnavailable(f"Failed to delete account {account_id!r}: {e}") from e

    def account_ids(self) -> List[str]:
        try:
            rows = self._get_conn().execute("SELECT account_id FROM accounts ORDER BY account_id").fetchall()
        except sqlite3.Error as e:
            logger.error("account_store_error", op="list", error=str(e))
            raise StoreUnavailable(f"Failed to list accounts: {e}") from e
        return [r["account_id"] for r in rows]

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


def build_store(backend: str, path: str = "") -> AccountStore:
    if backend == "memory":
        return InMemoryAccountStore()
    if backend == "sqlite":
        return SqliteAccountStore(path or "data/paper_trading.db")
    raise ValueError(f"Unknown store backend: {backend}")
