import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, List

from db.card_store import CardStore, StoreEvent
from db.ledger import SyncLedger
from models.card import FlashcardRecord
from models.session import SessionSummary
from utils.session import StudySessionManager

logger = logging.getLogger(__name__)

CARDS_FILENAME = "flashcards.json"
LEDGER_FILENAME = "sync_ledger.json"
HISTORY_FILENAME = "study_history.json"


def _write_json_atomic(path: Path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class LocalStorage:
    """Device-local copy of the card store: a JSON mapping of card id to record,
    plus the sync ledger and the completed study session summaries."""

    def __init__(
        self,
        directory: Path,
        cards_filename: str = CARDS_FILENAME,
        ledger_filename: str = LEDGER_FILENAME,
        history_filename: str = HISTORY_FILENAME,
    ):
        self.directory = Path(directory)
        self.cards_path = self.directory / cards_filename
        self.ledger_path = self.directory / ledger_filename
        self.history_path = self.directory / history_filename

    def load_records(self) -> List[FlashcardRecord]:
        if not self.cards_path.exists():
            return []
        data = json.loads(self.cards_path.read_text(encoding="utf-8"))
        records = []
        for card_id, raw in data.items():
            raw = dict(raw)
            raw.setdefault("id", card_id)
            records.append(FlashcardRecord.model_validate(raw))
        return records

    def load_ledger(self) -> SyncLedger:
        if not self.ledger_path.exists():
            return SyncLedger()
        return SyncLedger.from_dict(json.loads(self.ledger_path.read_text(encoding="utf-8")))

    def load_history(self) -> List[SessionSummary]:
        if not self.history_path.exists():
            return []
        data = json.loads(self.history_path.read_text(encoding="utf-8"))
        return [SessionSummary.model_validate(raw) for raw in data]

    def open_store(self, **kwargs) -> CardStore:
        """Build a card store hydrated from disk, with its ledger."""
        store = CardStore(ledger=self.load_ledger(), **kwargs)
        store.load(self.load_records())
        return store

    def save(self, store: CardStore) -> None:
        cards = {record.id: record.to_json_dict() for record in store.records()}
        _write_json_atomic(self.cards_path, cards)
        _write_json_atomic(self.ledger_path, store.ledger.to_dict())

    def save_history(self, history: List[SessionSummary]) -> None:
        _write_json_atomic(self.history_path, [summary.model_dump(mode="json") for summary in history])

    def attach(self, store: CardStore) -> Callable[[], None]:
        """Write the store through to disk on every change."""

        def on_change(event: StoreEvent) -> None:
            if event.kind == "load":
                return
            self.save(store)

        logger.debug("Persisting card store to %s", self.cards_path)
        return store.subscribe(on_change)

    def attach_history(self, sessions: StudySessionManager) -> Callable[[], None]:
        """Append each completed session to the history file."""

        def on_complete(summary: SessionSummary) -> None:
            self.save_history(sessions.history)

        return sessions.subscribe(on_complete)
