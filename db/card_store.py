from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from db.ledger import SyncLedger
from models.card import FlashcardRecord, utc_now
from utils.errors import CardNotFound

logger = logging.getLogger(__name__)

Subscriber = Callable[["StoreEvent"], None]


@dataclass(frozen=True)
class StoreEvent:
    kind: str  # upsert | remote | synced | load
    record: Optional[FlashcardRecord] = None


class DueCards:
    """Restartable view over cards due on or before `today`.

    Each iteration filters the store afresh, so callers can loop over it any
    number of times. Cards come out in insertion order.
    """

    def __init__(self, store: CardStore, today: date) -> None:
        self._store = store
        self.today = today

    def __iter__(self) -> Iterator[FlashcardRecord]:
        for record in tuple(self._store._records.values()):
            if record.due_date <= self.today:
                yield record.model_copy()

    def __len__(self) -> int:
        return sum(1 for _ in self)


class CardStore:
    """Owned, in-memory index of flashcard records with change notification.

    The session manager and the sync coordinator are its only writers.
    Readers get copies, so the one instance per id lives here.
    """

    def __init__(
        self,
        records: Optional[Iterable[FlashcardRecord]] = None,
        ledger: Optional[SyncLedger] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._records: Dict[str, FlashcardRecord] = {}
        self._subscribers: List[Subscriber] = []
        self._clock = clock
        self.ledger = ledger or SyncLedger()
        if records is not None:
            self.load(records)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, event: StoreEvent) -> None:
        for callback in list(self._subscribers):
            callback(event)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, card_id: str) -> bool:
        return card_id in self._records

    def get(self, card_id: str) -> Optional[FlashcardRecord]:
        record = self._records.get(card_id)
        return record.model_copy() if record is not None else None

    def require(self, card_id: str) -> FlashcardRecord:
        record = self.get(card_id)
        if record is None:
            raise CardNotFound(card_id)
        return record

    def records(self) -> List[FlashcardRecord]:
        return [record.model_copy() for record in self._records.values()]

    def dirty_records(self) -> List[FlashcardRecord]:
        return [record.model_copy() for record in self._records.values() if record.dirty]

    def get_due_cards(self, today: Optional[date] = None) -> DueCards:
        return DueCards(self, today or self._clock().date())

    def _next_version(self, card_id: str) -> datetime:
        now = self._clock()
        previous = self._records.get(card_id)
        # Keep local versions strictly increasing even if the clock stalls.
        if previous is not None and now <= previous.updated_at:
            now = previous.updated_at + timedelta(microseconds=1)
        return now

    def upsert(self, record: FlashcardRecord) -> FlashcardRecord:
        """Insert or replace a card as a local mutation: dirty, freshly stamped."""
        stored = record.model_copy(update={"updated_at": self._next_version(record.id), "dirty": True})
        self._records[record.id] = stored
        self.ledger.mark_dirty(record.id)
        self._publish(StoreEvent("upsert", stored))
        return stored.model_copy()

    def apply_remote(self, record: FlashcardRecord) -> bool:
        """Merge a remote copy by last-write-wins on `updated_at`.

        Only strictly newer remote writes are applied, which also keeps any
        unflushed local mutation from being overwritten by an older copy.
        """
        local = self._records.get(record.id)
        if local is not None and record.updated_at <= local.updated_at:
            return False
        stored = record.model_copy(update={"dirty": False})
        self._records[record.id] = stored
        self.ledger.mark_synced(record.id, record.updated_at)
        self._publish(StoreEvent("remote", stored))
        return True

    def mark_synced(self, card_id: str, version: datetime) -> bool:
        """Clear the dirty flag if `version` is still the current local version."""
        local = self._records.get(card_id)
        if local is None:
            return False
        if local.updated_at != version:
            # A newer local write landed while the flush was in flight.
            self.ledger.mark_synced(card_id, version, still_pending=True)
            return False
        self._records[card_id] = local.model_copy(update={"dirty": False})
        self.ledger.mark_synced(card_id, version)
        self._publish(StoreEvent("synced", self._records[card_id]))
        return True

    def load(self, records: Iterable[FlashcardRecord]) -> None:
        """Hydrate from local persistence, keeping each record's dirty flag."""
        count = 0
        for record in records:
            self._records[record.id] = record.model_copy()
            if record.dirty:
                self.ledger.mark_dirty(record.id)
            count += 1
        logger.debug("Loaded %d cards into store", count)
        self._publish(StoreEvent("load"))
