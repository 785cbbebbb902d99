from datetime import date, datetime, timedelta, timezone

from db.card_store import CardStore
from models.card import FlashcardRecord


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def T(hour: int) -> datetime:
    return datetime(2024, 3, 10, hour, tzinfo=timezone.utc)


def _card(card_id: str, due: date = date(2024, 3, 10), **overrides) -> FlashcardRecord:
    fields = {"id": card_id, "front": f"front {card_id}", "back": f"back {card_id}", "due_date": due}
    fields.update(overrides)
    return FlashcardRecord(**fields)


def test_upsert_marks_dirty_and_stamps_updated_at():
    clock = FakeClock(T(12))
    store = CardStore(clock=clock)

    stored = store.upsert(_card("a", updated_at=T(1)))

    assert stored.dirty is True
    assert stored.updated_at == T(12)
    assert store.ledger.get("a").pending is True
    assert [record.id for record in store.dirty_records()] == ["a"]


def test_upsert_versions_increase_when_clock_stalls():
    store = CardStore(clock=FakeClock(T(12)))

    first = store.upsert(_card("a"))
    second = store.upsert(_card("a", back="updated"))

    assert second.updated_at > first.updated_at
    assert len(store) == 1
    assert store.get("a").back == "updated"


def test_get_returns_copies():
    store = CardStore(records=[_card("a")])

    copy = store.get("a")
    copy.back = "changed"

    assert store.get("a").back == "back a"


def test_due_cards_view_is_restartable_and_stateless():
    store = CardStore(
        records=[
            _card("a", due=date(2024, 3, 9)),
            _card("b", due=date(2024, 3, 12)),
            _card("c", due=date(2024, 3, 10)),
        ],
        clock=FakeClock(T(12)),
    )
    due = store.get_due_cards(date(2024, 3, 10))

    assert [card.id for card in due] == ["a", "c"]
    assert [card.id for card in due] == ["a", "c"]
    assert len(due) == 2

    store.upsert(_card("d", due=date(2024, 3, 1)))
    assert [card.id for card in due] == ["a", "c", "d"]


def test_due_cards_default_to_the_store_clock_utc_date():
    late_evening = datetime(2024, 3, 10, 23, 30, tzinfo=timezone.utc)
    store = CardStore(
        records=[_card("today", due=date(2024, 3, 10)), _card("tomorrow", due=date(2024, 3, 11))],
        clock=FakeClock(late_evening),
    )

    due = store.get_due_cards()

    assert due.today == date(2024, 3, 10)
    assert [card.id for card in due] == ["today"]


def test_subscribers_are_notified_until_unsubscribed():
    store = CardStore(clock=FakeClock(T(12)))
    events = []
    unsubscribe = store.subscribe(events.append)

    store.upsert(_card("a"))
    unsubscribe()
    store.upsert(_card("b"))

    assert [(event.kind, event.record.id) for event in events] == [("upsert", "a")]


def test_apply_remote_only_accepts_strictly_newer_copies():
    clock = FakeClock(T(12))
    store = CardStore(clock=clock)
    store.upsert(_card("a", back="local"))

    assert store.apply_remote(_card("a", back="older", updated_at=T(11))) is False
    assert store.apply_remote(_card("a", back="same", updated_at=T(12))) is False
    assert store.get("a").back == "local"
    assert store.get("a").dirty is True

    assert store.apply_remote(_card("a", back="newer", updated_at=T(13))) is True
    assert store.get("a").back == "newer"
    assert store.get("a").dirty is False
    assert store.ledger.get("a").pending is False


def test_apply_remote_inserts_unknown_cards_clean():
    store = CardStore()

    assert store.apply_remote(_card("z", updated_at=T(9), dirty=True)) is True
    assert store.get("z").dirty is False


def test_mark_synced_ignores_stale_versions():
    clock = FakeClock(T(12))
    store = CardStore(clock=clock)
    sent = store.upsert(_card("a"))
    clock.advance(minutes=5)
    store.upsert(_card("a", back="edited offline"))

    assert store.mark_synced("a", sent.updated_at) is False
    assert store.get("a").dirty is True
    assert store.ledger.get("a").last_synced_version == sent.updated_at
    assert store.ledger.get("a").pending is True


def test_load_keeps_dirty_flags_without_restamping():
    store = CardStore(records=[_card("a", updated_at=T(3), dirty=True), _card("b", updated_at=T(4))])

    assert store.get("a").updated_at == T(3)
    assert store.ledger.pending_ids() == ["a"]
