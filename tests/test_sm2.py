from datetime import date, datetime, timedelta, timezone

import pytest

from models.card import FlashcardRecord
from models.review import RecallQuality
from utils.errors import InvalidQuality
from utils.sm2 import map_recall_to_quality, schedule, update_sm2

REVIEWED_AT = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


def _card(**overrides) -> FlashcardRecord:
    fields = {"id": "c1", "front": "house", "back": "casa", "due_date": date(2024, 3, 10)}
    fields.update(overrides)
    return FlashcardRecord(**fields)


@pytest.mark.parametrize("quality", [0, 1, 2])
def test_lapse_resets_repetitions_and_interval(quality):
    result = schedule(_card(repetitions=3, interval_days=15), quality, REVIEWED_AT)

    assert result.repetitions == 0
    assert result.interval_days == 1
    assert result.due_date == date(2024, 3, 11)
    assert result.last_reviewed == REVIEWED_AT


def test_successful_reviews_grow_interval_1_6_then_by_easiness():
    card = _card()
    intervals = []
    for _ in range(4):
        card = schedule(card, 4, REVIEWED_AT)
        intervals.append(card.interval_days)

    # quality 4 leaves EF at 2.5; 37.5 rounds half-up
    assert intervals == [1, 6, 15, 38]
    assert card.repetitions == 4
    assert card.easiness_factor == pytest.approx(2.5)


def test_third_repetition_uses_updated_easiness_factor():
    result = schedule(_card(repetitions=2, interval_days=6, easiness_factor=2.5), 4, REVIEWED_AT)

    assert result.repetitions == 3
    assert result.interval_days == 15
    assert result.due_date == date(2024, 3, 25)


def test_easy_answers_raise_easiness_without_ceiling():
    card = _card(easiness_factor=2.5)
    for _ in range(3):
        card = schedule(card, 5, REVIEWED_AT)

    assert card.easiness_factor == pytest.approx(2.8)


@pytest.mark.parametrize(
    "qualities",
    [
        [0, 0, 0, 0],
        [2, 1, 0, 3, 0, 0],
        [5, 0, 5, 0, 1, 1, 1],
        [3, 3, 3, 3, 3, 3, 3, 3],
    ],
)
def test_easiness_factor_never_drops_below_floor(qualities):
    card = _card()
    for quality in qualities:
        card = schedule(card, quality, REVIEWED_AT)
        assert card.easiness_factor >= 1.3

    if qualities[:2] == [0, 0]:
        assert card.easiness_factor == pytest.approx(1.3)


def test_schedule_is_deterministic_and_leaves_input_untouched():
    card = _card(repetitions=2, interval_days=6)
    before = card.model_dump()

    first = schedule(card, 3, REVIEWED_AT)
    second = schedule(card, 3, REVIEWED_AT)

    assert first == second
    assert card.model_dump() == before


def test_schedule_does_not_stamp_sync_fields():
    card = _card(dirty=False)

    result = schedule(card, 4, REVIEWED_AT)

    assert result.updated_at == card.updated_at
    assert result.dirty is False


@pytest.mark.parametrize("quality", [-1, 6, 2.5, True, "3", None])
def test_invalid_quality_is_rejected(quality):
    with pytest.raises(InvalidQuality):
        schedule(_card(), quality, REVIEWED_AT)


def test_invalid_quality_is_a_value_error():
    with pytest.raises(ValueError):
        update_sm2(1, 2.5, 7, 0, base_date=date(2024, 3, 10))


def test_due_date_never_before_review_date():
    card = _card()
    for quality in [5, 4, 0, 3, 2, 5]:
        card = schedule(card, quality, REVIEWED_AT)
        assert card.due_date >= REVIEWED_AT.date() + timedelta(days=1)


def test_recall_buttons_map_to_quality_scores():
    assert map_recall_to_quality(RecallQuality.AGAIN) == 0
    assert map_recall_to_quality(RecallQuality.HARD) == 3
    assert map_recall_to_quality(RecallQuality.GOOD) == 4
    assert map_recall_to_quality("easy") == 5
