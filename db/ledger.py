from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from models.card import as_utc


@dataclass
class LedgerEntry:
    last_synced_version: Optional[datetime] = None
    pending: bool = False
    failed_attempts: int = 0


class SyncLedger:
    """Per-card sync bookkeeping: last version confirmed remotely and pending flag."""

    def __init__(self) -> None:
        self._entries: Dict[str, LedgerEntry] = {}
        self.pull_cursor: Optional[int] = None

    def entry(self, card_id: str) -> LedgerEntry:
        return self._entries.setdefault(card_id, LedgerEntry())

    def get(self, card_id: str) -> Optional[LedgerEntry]:
        return self._entries.get(card_id)

    def mark_dirty(self, card_id: str) -> None:
        self.entry(card_id).pending = True

    def mark_synced(self, card_id: str, version: datetime, still_pending: bool = False) -> None:
        entry = self.entry(card_id)
        if entry.last_synced_version is None or version > entry.last_synced_version:
            entry.last_synced_version = version
        entry.pending = still_pending
        entry.failed_attempts = 0

    def mark_failed(self, card_id: str) -> None:
        self.entry(card_id).failed_attempts += 1

    def advance_pull_cursor(self, cursor: Optional[int]) -> None:
        """Remember the remote receive sequence already pulled. Never moves back."""
        if cursor is not None and (self.pull_cursor is None or cursor > self.pull_cursor):
            self.pull_cursor = cursor

    def pending_ids(self):
        return [card_id for card_id, entry in self._entries.items() if entry.pending]

    def to_dict(self) -> dict:
        return {
            "pullCursor": self.pull_cursor,
            "cards": {
                card_id: {
                    "lastSyncedVersion": (
                        entry.last_synced_version.isoformat() if entry.last_synced_version else None
                    ),
                    "pending": entry.pending,
                    "failedAttempts": entry.failed_attempts,
                }
                for card_id, entry in self._entries.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> SyncLedger:
        ledger = cls()
        # Older files kept a timestamp watermark (lastPullAt); dropping it
        # just makes the next pull a full one.
        if data.get("pullCursor") is not None:
            ledger.pull_cursor = int(data["pullCursor"])
        for card_id, raw in (data.get("cards") or {}).items():
            version = raw.get("lastSyncedVersion")
            ledger._entries[card_id] = LedgerEntry(
                last_synced_version=as_utc(datetime.fromisoformat(version)) if version else None,
                pending=bool(raw.get("pending", False)),
                failed_attempts=int(raw.get("failedAttempts", 0)),
            )
        return ledger
