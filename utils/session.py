"""Study session state machine.

idle -> active -> (paused <-> active) -> completed

The queue is fixed when the session starts. Each answer reschedules exactly
one card through the card store, which stamps it dirty for the sync
coordinator.
"""
import logging
import uuid
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from db.card_store import CardStore
from models.card import FlashcardRecord, utc_now
from models.review import ReviewAnswer
from models.session import SessionState, SessionSummary, StudySession
from utils.errors import EmptyQueue, InvalidStateTransition
from utils.sm2 import schedule, validate_quality

logger = logging.getLogger(__name__)


def _new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


class StudySessionManager:
    def __init__(
        self,
        store: CardStore,
        clock: Callable[[], datetime] = utc_now,
        max_cards: Optional[int] = None,
        history: Optional[Iterable[SessionSummary]] = None,
    ) -> None:
        self.store = store
        self._clock = clock
        self.max_cards = max_cards
        self.session = StudySession(id=_new_session_id())
        self.history: List[SessionSummary] = list(history or [])
        self._listeners: List[Callable[[SessionSummary], None]] = []

    def subscribe(self, callback: Callable[[SessionSummary], None]) -> Callable[[], None]:
        """Call `callback` with the summary of every completed session."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    @property
    def state(self) -> SessionState:
        return self.session.state

    def today(self) -> date:
        return self._clock().date()

    def _require(self, action: str, *allowed: SessionState) -> None:
        if self.session.state not in allowed:
            raise InvalidStateTransition(action, self.session.state.value)

    def start_session(self, due_cards: Iterable[FlashcardRecord], max_cards: Optional[int] = None) -> StudySession:
        """Snapshot the queue: by due date, ties in the order given.

        `max_cards` overrides the manager's configured limit for this session.
        """
        self._require("start a session", SessionState.IDLE, SessionState.COMPLETED)
        seen = set()
        cards = []
        for card in due_cards:
            if card.id in seen:
                continue
            seen.add(card.id)
            cards.append(card)
        if not cards:
            raise EmptyQueue()
        cards.sort(key=lambda card: card.due_date)
        limit = max_cards or self.max_cards
        if limit:
            cards = cards[:limit]
        self.session = StudySession(
            id=_new_session_id(),
            queue=[card.id for card in cards],
            state=SessionState.ACTIVE,
            started_at=self._clock(),
        )
        logger.info("Started %s with %d cards", self.session.id, len(cards))
        return self.session

    def current_card(self) -> Optional[FlashcardRecord]:
        if self.session.state in (SessionState.IDLE, SessionState.COMPLETED):
            return None
        if self.session.position >= len(self.session.queue):
            return None
        return self.store.get(self.session.queue[self.session.position])

    def remaining(self) -> int:
        return len(self.session.queue) - self.session.position

    def record_answer(self, quality: int) -> FlashcardRecord:
        """Grade the current card, store the rescheduled record and advance."""
        self._require("record an answer", SessionState.ACTIVE)
        validate_quality(quality)
        card_id = self.session.queue[self.session.position]
        record = self.store.require(card_id)
        answered_at = self._clock()
        stored = self.store.upsert(schedule(record, quality, answered_at))
        self.session.answers.append(ReviewAnswer(card_id=card_id, quality=quality, answered_at=answered_at))
        self.session.position += 1
        if self.session.position == len(self.session.queue):
            self._complete(answered_at)
        return stored

    async def on_quality_response(self, quality: int) -> None:
        self.record_answer(quality)

    def pause_session(self) -> None:
        self._require("pause", SessionState.ACTIVE)
        self.session.state = SessionState.PAUSED
        self.session.paused_at = self._clock()

    def resume_session(self) -> None:
        self._require("resume", SessionState.PAUSED)
        self._accumulate_pause(self._clock())
        self.session.state = SessionState.ACTIVE

    def end_session(self) -> SessionSummary:
        """Stop now. Cards not yet answered stay due as they were."""
        self._require("end the session", SessionState.ACTIVE, SessionState.PAUSED)
        now = self._clock()
        self._accumulate_pause(now)
        return self._complete(now)

    def _accumulate_pause(self, now: datetime) -> None:
        if self.session.paused_at is not None:
            self.session.total_paused_seconds += (now - self.session.paused_at).total_seconds()
            self.session.paused_at = None

    def _complete(self, now: datetime) -> SessionSummary:
        self.session.state = SessionState.COMPLETED
        self.session.ended_at = now
        summary = self.summary()
        self.history.append(summary)
        for callback in list(self._listeners):
            callback(summary)
        logger.info(
            "Completed %s: %d/%d correct",
            summary.session_id,
            summary.correct_answers,
            summary.cards_reviewed,
        )
        return summary

    def summary(self) -> SessionSummary:
        session = self.session
        started = session.started_at or self._clock()
        ended = session.ended_at or self._clock()
        active_seconds = max(0.0, (ended - started).total_seconds() - session.total_paused_seconds)
        reviewed = len(session.answers)
        return SessionSummary(
            session_id=session.id,
            date=started.date().isoformat(),
            cards_reviewed=reviewed,
            correct_answers=sum(1 for answer in session.answers if answer.correct),
            total_seconds=int(active_seconds),
            average_response_seconds=round(active_seconds / reviewed, 1) if reviewed else 0.0,
        )
