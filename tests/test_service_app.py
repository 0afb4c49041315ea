import datetime as dt

import pytest
from fastapi.testclient import TestClient

import service_app
from srs.errors import CardStoreError, ReviewLogError
from srs.workflow.utils.session_cache import ReviewSessionCache


class FlakyStore:
    def __init__(self, inner):
        self.inner = inner
        self.fail_next_save = False

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def save_state(self, card_id, state):
        if self.fail_next_save:
            self.fail_next_save = False
            raise CardStoreError("connection reset")
        self.inner.save_state(card_id, state)


class SwitchableLog:
    def __init__(self, inner):
        self.inner = inner
        self.broken = False

    def append(self, event):
        if self.broken:
            raise ReviewLogError("insert rejected")
        self.inner.append(event)

    def list_review_times(self, user_id, since, limit=5000):
        return self.inner.list_review_times(user_id, since, limit)


@pytest.fixture
def deps(card_store, review_log, content_reader, fake_redis):
    store = FlakyStore(card_store)
    log = SwitchableLog(review_log)
    cache = ReviewSessionCache(fake_redis)
    service_app.app.dependency_overrides[service_app.get_card_store] = lambda: store
    service_app.app.dependency_overrides[service_app.get_review_log] = lambda: log
    service_app.app.dependency_overrides[service_app.get_content_reader] = lambda: content_reader
    service_app.app.dependency_overrides[service_app.get_session_cache] = lambda: cache
    yield store, log, cache
    service_app.app.dependency_overrides.clear()


@pytest.fixture
def client(deps):
    return TestClient(service_app.app)


def _enroll(client, origin_id):
    resp = client.post("/cards", json={"user_id": "user-1", "origin_type": "chunk", "origin_id": origin_id, "chunk_id": origin_id})
    assert resp.status_code == 200
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_enroll_and_review_flow(client):
    first = _enroll(client, "c-1")
    _enroll(client, "c-2")
    assert first["state"]["interval_days"] == 0
    assert first["state"]["ease_factor"] == pytest.approx(2.0)

    started = client.post("/reviews/sessions", json={"user_id": "user-1"}).json()
    assert started["total"] == 2
    assert started["current"]["card_id"] == first["card_id"]

    graded = client.post("/reviews/sessions/user-1/grade", json={"quality": 4})
    assert graded.status_code == 200
    body = graded.json()
    assert body["card_id"] == first["card_id"]
    assert body["next"]["interval_days"] == 1
    assert body["next"]["repetitions"] == 1
    assert body["review_logged"] is True
    assert body["session"]["position"] == 2
    assert body["session"]["progress_pct"] == 50

    resumed = client.get("/reviews/sessions/user-1").json()
    assert resumed["current"]["origin_id"] == "c-2"

    last = client.post("/reviews/sessions/user-1/grade", json={"quality": 0}).json()
    assert last["session"]["complete"] is True
    assert last["session"]["current"] is None

    finished = client.post("/reviews/sessions/user-1/grade", json={"quality": 5})
    assert finished.status_code == 409


@pytest.mark.parametrize("quality", [-1, 6])
def test_quality_outside_range_is_rejected(client, quality):
    _enroll(client, "c-1")
    client.post("/reviews/sessions", json={"user_id": "user-1"})

    resp = client.post("/reviews/sessions/user-1/grade", json={"quality": quality})

    assert resp.status_code == 422


def test_store_failure_is_retryable_and_keeps_position(client, deps, card_store):
    store, _, _ = deps
    card = _enroll(client, "c-1")
    _enroll(client, "c-2")
    client.post("/reviews/sessions", json={"user_id": "user-1"})
    store.fail_next_save = True

    failed = client.post("/reviews/sessions/user-1/grade", json={"quality": 5})

    assert failed.status_code == 503
    assert failed.json()["retryable"] is True
    assert failed.json()["kind"] == "primary"
    view = client.get("/reviews/sessions/user-1").json()
    assert view["current"]["card_id"] == card["card_id"]
    assert view["has_pending"] is True

    retried = client.post("/reviews/sessions/user-1/grade", json={"quality": 5}).json()

    assert retried["card_id"] == card["card_id"]
    assert retried["session"]["position"] == 2
    assert card_store.get_card(card["card_id"]).state.repetitions == 1


def test_review_log_failure_returns_warning(client, deps):
    _, log, _ = deps
    _enroll(client, "c-1")
    client.post("/reviews/sessions", json={"user_id": "user-1"})
    log.broken = True

    resp = client.post("/reviews/sessions/user-1/grade", json={"quality": 3})

    assert resp.status_code == 200
    assert resp.json()["review_logged"] is False
    assert resp.json()["warning"]
    assert resp.json()["session"]["complete"] is True


def test_skip_moves_to_next_card(client):
    _enroll(client, "c-1")
    second = _enroll(client, "c-2")
    client.post("/reviews/sessions", json={"user_id": "user-1"})

    view = client.post("/reviews/sessions/user-1/skip").json()

    assert view["current"]["card_id"] == second["card_id"]


def test_unknown_session_is_404(client):
    assert client.get("/reviews/sessions/ghost").status_code == 404
    assert client.post("/reviews/sessions/ghost/grade", json={"quality": 3}).status_code == 404


def test_suspended_cards_leave_the_queue(client):
    card = _enroll(client, "c-1")

    resp = client.post(f"/cards/{card['card_id']}/status", json={"status": "suspended"})

    assert resp.json()["status"] == "suspended"
    started = client.post("/reviews/sessions", json={"user_id": "user-1"}).json()
    assert started["total"] == 0
    assert started["complete"] is True


def test_status_of_unknown_card_is_404(client):
    assert client.post("/cards/missing/status", json={"status": "archived"}).status_code == 404


def test_summary_reports_due_counts_and_streak(client):
    _enroll(client, "c-1")
    _enroll(client, "c-2")
    client.post("/reviews/sessions", json={"user_id": "user-1"})
    client.post("/reviews/sessions/user-1/grade", json={"quality": 4})

    summary = client.get("/reviews/summary", params={"user_id": "user-1"}).json()

    assert summary["total_due_now"] == 1
    assert len(summary["upcoming"]) == 7
    assert summary["upcoming"][0]["count"] == 1
    assert summary["streak"] == 1
    assert summary["completed_today"] == 1


def test_summary_rejects_unknown_timezone(client):
    resp = client.get("/reviews/summary", params={"user_id": "user-1", "tz": "Mars/Olympus"})

    assert resp.status_code == 400


def test_session_view_carries_card_content(client, study_material):
    client.post(
        "/cards",
        json={"user_id": "user-1", "origin_type": "quiz_question", "origin_id": "q-1", "quiz_question_id": "q-1"},
    )
    client.post("/cards", json={"user_id": "user-1", "origin_type": "chunk", "origin_id": "chunk-2", "chunk_id": "chunk-2"})

    started = client.post("/reviews/sessions", json={"user_id": "user-1"}).json()

    content = started["content"]
    assert content["kind"] == "quiz"
    assert content["prompt"] == "Which organelle produces ATP?"
    assert content["options"] == ["Mitochondria", "Ribosome", "Nucleus"]
    assert content["answer"] == "Mitochondria"
    assert content["source"] == {"document_title": "Cell Biology", "page": 4, "slide": None}

    graded = client.post("/reviews/sessions/user-1/grade", json={"quality": 5}).json()

    assert graded["session"]["content"]["kind"] == "chunk"
    assert graded["session"]["content"]["chunk_text"] == "Ribosomes build proteins."


def test_unresolved_card_gets_generic_content(client):
    _enroll(client, "c-1")

    started = client.post("/reviews/sessions", json={"user_id": "user-1"}).json()

    assert started["content"]["kind"] == "generic"
    assert started["content"]["prompt"] == "Review item"


def test_grading_while_session_is_locked_is_rejected(client, deps, card_store):
    _, _, cache = deps
    card = _enroll(client, "c-1")
    client.post("/reviews/sessions", json={"user_id": "user-1"})

    with cache.locked("user-1"):
        busy = client.post("/reviews/sessions/user-1/grade", json={"quality": 4})
        skipped = client.post("/reviews/sessions/user-1/skip")

    assert busy.status_code == 409
    assert busy.json()["retryable"] is True
    assert skipped.status_code == 409
    assert card_store.get_card(card["card_id"]).state.repetitions == 0
    assert client.post("/reviews/sessions/user-1/grade", json={"quality": 4}).status_code == 200


def test_summary_sample_includes_document_titles(client, study_material):
    client.post(
        "/cards",
        json={"user_id": "user-1", "origin_type": "chunk", "origin_id": "chunk-1", "chunk_id": "chunk-1", "document_id": "doc-1"},
    )

    summary = client.get("/reviews/summary", params={"user_id": "user-1"}).json()

    assert summary["sample_today"][0]["document_title"] == "Cell Biology"
