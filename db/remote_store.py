import asyncio
import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Protocol

from models.card import FlashcardRecord, as_utc
from utils.errors import RemoteUnavailable
from .schema import INDEXES_SQL, SCHEMA_SQL, SCHEMA_VERSION, UPSERT_SQL


@dataclass
class RemoteChanges:
    """One page of an incremental pull and the cursor to resume from."""

    records: List[FlashcardRecord] = field(default_factory=list)
    cursor: Optional[int] = None


class RemoteStore(Protocol):
    """Durable per-user store the sync coordinator reconciles against."""

    async def upsert(self, user_id: str, record: FlashcardRecord) -> bool:
        """Store `record` unless the remote copy is strictly newer. Returns True if stored."""
        ...

    async def fetch_updated_since(self, user_id: str, since: Optional[datetime]) -> List[FlashcardRecord]:
        ...

    async def fetch_changes(self, user_id: str, cursor: Optional[int]) -> RemoteChanges:
        """Records received after `cursor`, in receive order, whatever their `updated_at`."""
        ...


def version_key(value: datetime) -> str:
    """Fixed-width UTC timestamp, so SQL string comparison orders versions."""
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _records(rows) -> List[FlashcardRecord]:
    return [FlashcardRecord.model_validate(json.loads(row["payload"])) for row in rows]


class SQLiteRemoteStore:
    """Remote store over SQLite. Queries run in a worker thread so a locked
    database never stalls the event loop."""

    def __init__(self, db_path: Path, busy_timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout

    @contextmanager
    def get_conn(self):
        """Context manager for SQLite connection, using row_factory for dict-like rows."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, check_same_thread=False)
        except sqlite3.OperationalError as exc:
            raise RemoteUnavailable(f"Cannot open remote store at {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.OperationalError as exc:
            raise RemoteUnavailable(str(exc)) from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.get_conn() as conn:
            conn.executescript(SCHEMA_SQL)
            ensure_server_seq(conn)
            conn.executescript(INDEXES_SQL)
            ensure_schema_version(conn)
            conn.commit()

    def _upsert(self, user_id: str, record: FlashcardRecord) -> bool:
        payload = record.model_copy(update={"dirty": False}).to_json_dict()
        with self.get_conn() as conn:
            cursor = conn.cursor()
            cursor.execute(
                UPSERT_SQL,
                (user_id, record.id, json.dumps(payload), version_key(record.updated_at), user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def _fetch_updated_since(self, user_id: str, since: Optional[datetime]) -> List[FlashcardRecord]:
        with self.get_conn() as conn:
            cursor = conn.cursor()
            if since is None:
                cursor.execute(
                    "SELECT payload FROM remote_flashcards WHERE user_id = ? ORDER BY updated_at ASC",
                    (user_id,),
                )
            else:
                cursor.execute(
                    """
                    SELECT payload FROM remote_flashcards
                    WHERE user_id = ? AND updated_at > ?
                    ORDER BY updated_at ASC
                    """,
                    (user_id, version_key(since)),
                )
            return _records(cursor.fetchall())

    def _fetch_changes(self, user_id: str, cursor_value: Optional[int]) -> RemoteChanges:
        with self.get_conn() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT payload, server_seq FROM remote_flashcards
                WHERE user_id = ? AND server_seq > ?
                ORDER BY server_seq ASC
                """,
                (user_id, cursor_value if cursor_value is not None else -1),
            )
            rows = cursor.fetchall()
        if not rows:
            return RemoteChanges(cursor=cursor_value)
        return RemoteChanges(records=_records(rows), cursor=rows[-1]["server_seq"])

    async def upsert(self, user_id: str, record: FlashcardRecord) -> bool:
        return await asyncio.to_thread(self._upsert, user_id, record)

    async def fetch_updated_since(self, user_id: str, since: Optional[datetime] = None) -> List[FlashcardRecord]:
        return await asyncio.to_thread(self._fetch_updated_since, user_id, since)

    async def fetch_changes(self, user_id: str, cursor: Optional[int] = None) -> RemoteChanges:
        return await asyncio.to_thread(self._fetch_changes, user_id, cursor)


def ensure_server_seq(conn: sqlite3.Connection) -> None:
    """Add the receive sequence to version 1 databases, numbering old rows by rowid."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA table_info(remote_flashcards)")
    columns = {row[1] for row in cursor.fetchall()}
    if "server_seq" not in columns:
        cursor.execute("ALTER TABLE remote_flashcards ADD COLUMN server_seq INTEGER NOT NULL DEFAULT 0")
        cursor.execute("UPDATE remote_flashcards SET server_seq = rowid")


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the SQLite schema version from PRAGMA user_version."""
    cursor = conn.cursor()
    cursor.execute("PRAGMA user_version")
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def ensure_schema_version(conn: sqlite3.Connection) -> None:
    """Ensure the current schema version is written to the database."""
    if get_schema_version(conn) != SCHEMA_VERSION:
        conn.execute(f"PRAGMA user_version = {int(SCHEMA_VERSION)}")
