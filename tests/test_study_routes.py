import asyncio
from datetime import date, timedelta

from fastapi.testclient import TestClient

from db.card_store import CardStore
from db.local_storage import LocalStorage
from db.remote_store import SQLiteRemoteStore
from main import create_app
from models.card import FlashcardRecord
from routes.deps import Services
from utils.session import StudySessionManager
from utils.sync import SyncCoordinator

# due under both local and UTC dates
YESTERDAY = date.today() - timedelta(days=1)


def _test_config(tmp_path) -> dict:
    return {
        "session": {"max_cards": 20, "mode": "review-only"},
        "sync": {"user_id": "ana", "background": False, "interval_seconds": 300},
        "storage": {"data_dir": str(tmp_path)},
        "mastery": {"min_repetitions": 5, "difficult_ease_factor": 2.0},
    }


def _services(tmp_path):
    local = LocalStorage(tmp_path)
    store = CardStore()
    store.load([
        FlashcardRecord(id="c1", front="apple", back="manzana", due_date=YESTERDAY),
        FlashcardRecord(id="c2", front="pear", back="pera", due_date=YESTERDAY),
    ])
    local.attach(store)
    remote = SQLiteRemoteStore(tmp_path / "remote.db")
    remote.init_db()

    async def no_sleep(delay):
        return None

    sync = SyncCoordinator(store, remote, user_id="ana", sleep=no_sleep)
    services = Services(
        config=_test_config(tmp_path),
        store=store,
        sessions=StudySessionManager(store),
        sync=sync,
    )
    return services, local, remote


def test_study_flow_schedules_cards_and_syncs(tmp_path):
    services, local, remote = _services(tmp_path)
    client = TestClient(create_app(services))

    response = client.post("/study/start")
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "active"
    assert body["total"] == 2
    assert body["current_card"]["id"] == "c1"

    response = client.post("/study/answer", json={"quality": 4})
    assert response.status_code == 200
    answered = response.json()["answered"]
    assert answered["repetitions"] == 1
    assert answered["intervalDays"] == 1

    assert client.post("/study/answer", json={"quality": 9}).status_code == 400

    assert client.post("/study/pause").json()["state"] == "paused"
    assert client.post("/study/answer", json={"quality": 3}).status_code == 409
    assert client.post("/study/resume").json()["state"] == "active"

    response = client.post("/study/rate", json={"recall": "again"})
    assert response.status_code == 200
    assert response.json()["state"] == "completed"
    assert response.json()["answered"]["repetitions"] == 0

    # every answer was written through to the local JSON copy
    reopened = local.open_store()
    assert reopened.get("c1").repetitions == 1
    assert reopened.get("c2").interval_days == 1

    response = client.post("/sync/force")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert services.store.dirty_records() == []
    remote_ids = sorted(record.id for record in asyncio.run(remote.fetch_updated_since("ana", None)))
    assert remote_ids == ["c1", "c2"]

    assert client.post("/sync/force", params={"user_id": "bob"}).status_code == 403

    status = client.get("/sync/status").json()
    assert status["pending_changes"] == 0

    stats = client.get("/stats/progress").json()
    assert stats["total_cards"] == 2
    assert stats["cards_in_progress"] == 1
    assert stats["cards_new"] == 1


def test_start_without_due_cards_is_not_found(tmp_path):
    services, _, _ = _services(tmp_path)
    client = TestClient(create_app(services))

    response = client.post("/study/start", json={"mode": "new-cards-only", "max_cards": 1})
    assert response.json()["total"] == 1
    client.post("/study/answer", json={"quality": 5})

    response = client.post("/study/start", json={"mode": "review-only"})
    assert response.status_code == 200
    assert response.json()["current_card"]["id"] == "c2"

    client.post("/study/end")
    client.post("/study/start")
    client.post("/study/answer", json={"quality": 5})
    response = client.post("/study/start")
    assert response.status_code == 404


def test_requested_max_cards_wins_over_configured_limit(tmp_path):
    services, _, _ = _services(tmp_path)
    services.sessions.max_cards = 1
    client = TestClient(create_app(services))

    assert client.post("/study/start", json={"max_cards": 2}).json()["total"] == 2
    client.post("/study/end")
    assert client.post("/study/start").json()["total"] == 1


def test_end_without_session_is_conflict(tmp_path):
    services, _, _ = _services(tmp_path)
    client = TestClient(create_app(services))

    assert client.post("/study/end").status_code == 409
    assert client.get("/study/state").json()["state"] == "idle"
