import math
from datetime import date, datetime, timedelta
from typing import Tuple

from models.card import MIN_EASINESS_FACTOR, FlashcardRecord
from models.review import RecallQuality
from utils.errors import InvalidQuality

LEARNING_STEPS_DAYS = (1, 6)
PASSING_QUALITY = 3


def map_recall_to_quality(recall: RecallQuality) -> int:
    """Map a rating button to SM-2 quality score (0-5)."""
    mapping = {
        RecallQuality.AGAIN: 0,
        RecallQuality.HARD: 3,
        RecallQuality.GOOD: 4,
        RecallQuality.EASY: 5,
    }
    return mapping[RecallQuality(recall)]


def validate_quality(quality) -> int:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQuality(quality)
    if quality < 0 or quality > 5:
        raise InvalidQuality(quality)
    return quality


def next_easiness_factor(card_ef: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASINESS_FACTOR, card_ef + (0.1 - miss * (0.08 + miss * 0.02)))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def update_sm2(
    card_interval: int,
    card_ef: float,
    quality: int,
    repetitions: int,
    base_date: date,
) -> Tuple[int, float, int, date]:
    """Update SM-2 parameters and compute new due date."""
    validate_quality(quality)
    new_ef = next_easiness_factor(card_ef, quality)
    if quality < PASSING_QUALITY:
        new_repetitions = 0
        new_interval = LEARNING_STEPS_DAYS[0]
    else:
        new_repetitions = repetitions + 1
        if new_repetitions <= len(LEARNING_STEPS_DAYS):
            new_interval = LEARNING_STEPS_DAYS[new_repetitions - 1]
        else:
            new_interval = round_half_up(max(1, card_interval) * new_ef)
    new_due = base_date + timedelta(days=new_interval)
    return new_interval, new_ef, new_repetitions, new_due


def schedule(record: FlashcardRecord, quality: int, reviewed_at: datetime) -> FlashcardRecord:
    """Return the record rescheduled for a review graded `quality` at `reviewed_at`.

    Pure: the input record is not modified, and `updated_at`/`dirty` are left
    for the card store to stamp.
    """
    new_interval, new_ef, new_repetitions, new_due = update_sm2(
        record.interval_days,
        record.easiness_factor,
        quality,
        record.repetitions,
        base_date=reviewed_at.date(),
    )
    return record.model_copy(
        update={
            "interval_days": new_interval,
            "easiness_factor": new_ef,
            "repetitions": new_repetitions,
            "due_date": new_due,
            "last_reviewed": reviewed_at,
        }
    )
