from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from models.card import DEFAULT_EASINESS_FACTOR, FlashcardRecord, utc_now
from models.review import ReviewAnswer
from models.session import SessionSummary
from utils.mastery import mastery_percent, mastery_status_from_rules
from utils.sm2 import schedule


@dataclass(frozen=True)
class ProgressStats:
    total_cards: int
    cards_mastered: int
    cards_in_progress: int
    cards_new: int
    cards_due_today: int
    study_sessions_today: int
    study_sessions_this_week: int
    study_sessions_this_month: int
    total_study_minutes: float
    average_accuracy: float
    mastery_percent: float


def calculate_progress_stats(
    records: Iterable[FlashcardRecord],
    sessions: Iterable[SessionSummary],
    today: Optional[date] = None,
    mastery_rules: Optional[dict] = None,
) -> ProgressStats:
    today = today or utc_now().date()
    records = list(records)
    sessions = list(sessions)
    statuses = [mastery_status_from_rules(record.repetitions, mastery_rules) for record in records]
    mastered = statuses.count("mastered")
    week_ago = (today - timedelta(days=7)).isoformat()
    month_ago = (today - timedelta(days=30)).isoformat()
    total_reviewed = sum(session.cards_reviewed for session in sessions)
    total_correct = sum(session.correct_answers for session in sessions)
    return ProgressStats(
        total_cards=len(records),
        cards_mastered=mastered,
        cards_in_progress=statuses.count("learning"),
        cards_new=statuses.count("new"),
        cards_due_today=sum(1 for record in records if record.due_date <= today),
        study_sessions_today=sum(1 for session in sessions if session.date == today.isoformat()),
        study_sessions_this_week=sum(1 for session in sessions if session.date >= week_ago),
        study_sessions_this_month=sum(1 for session in sessions if session.date >= month_ago),
        total_study_minutes=round(sum(session.total_seconds for session in sessions) / 60, 1),
        average_accuracy=round(total_correct / total_reviewed * 100, 1) if total_reviewed else 0.0,
        mastery_percent=mastery_percent(mastered, len(records)),
    )


def reset_schedule(record: FlashcardRecord) -> FlashcardRecord:
    """Scheduling state of a card that has never been reviewed."""
    return record.model_copy(
        update={
            "interval_days": 0,
            "easiness_factor": DEFAULT_EASINESS_FACTOR,
            "repetitions": 0,
            "last_reviewed": None,
        }
    )


def replay_answers(record: FlashcardRecord, answers: Iterable[ReviewAnswer]) -> FlashcardRecord:
    """Rebuild a card's scheduling state from its answer log, oldest first."""
    state = reset_schedule(record)
    relevant = sorted(
        (answer for answer in answers if answer.card_id == record.id),
        key=lambda answer: answer.answered_at,
    )
    for answer in relevant:
        state = schedule(state, answer.quality, answer.answered_at)
    return state
