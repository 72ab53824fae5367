# tests/test_routes.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from concisely import content_fetcher
from concisely.content_fetcher import FetchResult
from concisely.models import Newsletter, User

LONG_TEXT = "A long enough body of text about quantum error correction. " * 3


@pytest.fixture()
def no_llm(mocker):
    mocker.patch.object(content_fetcher, "summarize_content", return_value="A tidy summary.")
    mocker.patch.object(content_fetcher, "detect_topics", return_value=["quantum"])


# ---------- users ----------

def test_requires_api_key(client):
    r = client.get("/api/users")
    assert r.status_code == 401

def test_create_user_and_conflict(client, auth):
    body = {"name": "Ada", "email": "Ada@Example.com", "topics": ["quantum"]}
    r = client.post("/api/users", json=body, headers=auth)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["email"] == "ada@example.com"
    assert data["delivery_frequency"] == "weekly"

    r = client.post("/api/users", json={**body, "email": "ada@example.com"}, headers=auth)
    assert r.status_code == 409
    assert r.json()["success"] is False

def test_create_user_validation(client, auth):
    r = client.post("/api/users", json={"name": "Ada", "email": "a@b.c", "delivery_frequency": "hourly"}, headers=auth)
    assert r.status_code == 422
    assert r.json()["message"] == "Invalid request"

def test_update_preferences(client, auth, make_user):
    user = make_user()
    r = client.put(
        f"/api/users/{user.id}/preferences",
        json={"topics": [" ai ", "ai", "", "robotics"], "delivery_frequency": "daily"},
        headers=auth,
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["topics"] == ["ai", "robotics"]
    assert data["delivery_frequency"] == "daily"
    assert data["summary_length"] == "medium"

def test_missing_user_is_404(client, auth):
    r = client.get("/api/users/999", headers=auth)
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "User not found", "error": None}

def test_saved_summaries_flow(client, auth, make_user, make_summary):
    author = make_user("author@example.com")
    reader = make_user("reader@example.com")
    summary = make_summary(author.id)

    r = client.post(f"/api/users/{reader.id}/saved-summaries/{summary.id}", headers=auth)
    assert r.json()["data"] == [summary.id]

    r = client.post(f"/api/users/{reader.id}/saved-summaries/{summary.id}", headers=auth)
    assert r.json()["message"] == "Summary already saved"

    r = client.get(f"/api/users/{reader.id}/saved-summaries", headers=auth)
    assert [s["id"] for s in r.json()["data"]] == [summary.id]

    r = client.delete(f"/api/users/{reader.id}/saved-summaries/{summary.id}", headers=auth)
    assert r.json()["data"] == []

def test_saving_second_summary_of_same_url_conflicts(client, auth, make_user, make_summary):
    author = make_user("author@example.com")
    reader = make_user("reader@example.com")
    theirs = make_summary(author.id, url="https://example.com/a")
    make_summary(reader.id, url="https://example.com/a")
    r = client.post(f"/api/users/{reader.id}/saved-summaries/{theirs.id}", headers=auth)
    assert r.status_code == 409


# ---------- summaries ----------

def test_create_article_summary(client, auth, make_user, no_llm, mocker):
    mocker.patch.object(content_fetcher, "fetch_and_extract", return_value=(LONG_TEXT, "QEC explained"))
    user = make_user()
    r = client.post("/api/summaries/article", json={"user_id": user.id, "url": "https://example.com/qec"}, headers=auth)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["title"] == "QEC explained"
    assert data["summary"] == "A tidy summary."

    r = client.post("/api/summaries/article", json={"user_id": user.id, "url": "https://example.com/qec/"}, headers=auth)
    assert r.status_code == 409

def test_create_summary_unreachable_page(client, auth, make_user, no_llm, mocker):
    mocker.patch.object(content_fetcher, "fetch_and_extract", return_value=("", None))
    user = make_user()
    r = client.post("/api/summaries/article", json={"user_id": user.id, "url": "https://example.com/gone"}, headers=auth)
    assert r.status_code == 422

def test_unknown_source_type_rejected(client, auth, make_user):
    user = make_user()
    r = client.post("/api/summaries/fax", json={"user_id": user.id, "url": "https://x"}, headers=auth)
    assert r.status_code == 422

def test_rate_and_delete_summary(client, auth, session, make_user, make_summary):
    author = make_user("author@example.com")
    summary = make_summary(author.id)
    reader = make_user("reader@example.com", saved_summary_ids=[summary.id])

    r = client.post(f"/api/summaries/{summary.id}/rate", json={"rating": "helpful"}, headers=auth)
    assert r.json()["data"]["helpful"] == 1

    r = client.get("/api/summaries", params={"user_id": author.id}, headers=auth)
    assert len(r.json()["data"]) == 1

    r = client.delete(f"/api/summaries/{summary.id}", headers=auth)
    assert r.status_code == 200
    session.expire_all()
    assert session.get(User, reader.id).saved_summary_ids == []


def test_delete_user_removes_their_content(client, auth, session, make_user, make_summary):
    from concisely.models import Summary

    user = make_user()
    other = make_user("other@example.com")
    private = make_summary(user.id, url="https://example.com/mine")
    shared = make_summary(user.id, url="https://example.com/shared")
    other.saved_summary_ids = [shared.id]
    session.add(other)
    session.add(Newsletter(title="issue", content="c", owner_id=user.id))
    session.add(Newsletter(title="broadcast", content="c"))
    session.commit()
    private_id, shared_id = private.id, shared.id

    r = client.delete(f"/api/users/{user.id}", headers=auth)

    assert r.status_code == 200
    session.expire_all()
    assert session.get(User, user.id) is None
    assert session.get(Summary, private_id) is None
    assert session.get(Summary, shared_id) is not None
    assert [n.title for n in session.exec(select(Newsletter)).all()] == ["broadcast"]


# ---------- newsletters ----------

def test_newsletter_lifecycle(client, auth, session, make_user, make_summary):
    user = make_user()
    summary = make_summary(user.id, title="Big qubit news")

    r = client.post("/api/newsletters", json={"title": "Weekly", "topics": ["quantum computing"], "summary_ids": [summary.id]}, headers=auth)
    assert r.status_code == 201
    newsletter_id = r.json()["data"]["id"]
    assert "Big qubit news" in r.json()["data"]["content"]

    r = client.get(f"/api/newsletters/{newsletter_id}", headers=auth)
    assert [s["id"] for s in r.json()["data"]["summaries"]] == [summary.id]

    r = client.post(f"/api/newsletters/{newsletter_id}/schedule", json={"scheduled_date": "2001-01-01T00:00:00"}, headers=auth)
    assert r.status_code == 400

    later = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
    r = client.post(f"/api/newsletters/{newsletter_id}/schedule", json={"scheduled_date": later}, headers=auth)
    assert r.json()["data"]["status"] == "scheduled"

    r = client.get("/api/newsletters/latest", params={"user_id": user.id}, headers=auth)
    assert r.json()["data"]["id"] == newsletter_id

    r = client.post(f"/api/newsletters/{newsletter_id}/send", headers=auth)
    assert r.status_code == 200
    assert r.json()["data"]["sent_count"] == 1

    r = client.post(f"/api/newsletters/{newsletter_id}/send", headers=auth)
    assert r.status_code == 409

def test_create_newsletter_with_unknown_summaries(client, auth):
    r = client.post("/api/newsletters", json={"title": "x", "summary_ids": [1, 2]}, headers=auth)
    assert r.status_code == 400
    assert r.json()["message"] == "No valid summaries found"

def test_send_without_recipients(client, auth, session):
    n = Newsletter(title="t", content="c", topics=["nobody"])
    session.add(n); session.commit(); session.refresh(n)
    r = client.post(f"/api/newsletters/{n.id}/send", headers=auth)
    assert r.status_code == 400

def test_latest_prefers_sent(client, auth, session, make_user):
    user = make_user()
    now = datetime.now(timezone.utc)
    session.add_all([
        Newsletter(title="old", content="c", owner_id=user.id, status="sent", sent_at=now - timedelta(days=7)),
        Newsletter(title="new", content="c", owner_id=user.id, status="sent", sent_at=now - timedelta(days=1)),
        Newsletter(title="next", content="c", owner_id=user.id, status="scheduled", scheduled_date=now + timedelta(days=1)),
        Newsletter(title="someone else", content="c", owner_id=user.id + 1, status="sent", sent_at=now),
    ])
    session.commit()
    r = client.get("/api/newsletters/latest", params={"user_id": user.id}, headers=auth)
    assert r.json()["data"]["title"] == "new"

def test_latest_none(client, auth, make_user):
    user = make_user()
    r = client.get("/api/newsletters/latest", params={"user_id": user.id}, headers=auth)
    assert r.status_code == 404


# ---------- content ----------

def test_fetch_requires_topics(client, auth, make_user):
    user = make_user(topics=[])
    r = client.post("/api/content/fetch", json={"user_id": user.id}, headers=auth)
    assert r.status_code == 400

def test_fetch_content(client, auth, make_user, make_summary, mocker):
    user = make_user()
    summary = make_summary(user.id)
    mocker.patch(
        "concisely.routers.content.fetch_and_process_content_for_user",
        return_value=FetchResult(True, "Successfully processed 1 items", [summary.model_dump()], ["https://bad"]),
    )
    r = client.post("/api/content/fetch", json={"user_id": user.id}, headers=auth)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["summaries"][0]["id"] == summary.id
    assert data["failed_items"] == ["https://bad"]

def test_newsletter_trigger(client, auth, make_user, mocker):
    user = make_user()
    mocker.patch(
        "concisely.routers.content.trigger_content_and_newsletter_for_user",
        return_value={"success": True, "message": "Content fetched and newsletter sent", "status": "sent", "newsletter_id": 7, "summaries": 2},
    )
    r = client.post("/api/content/newsletter", json={"user_id": user.id}, headers=auth)
    assert r.json()["data"]["newsletter_id"] == 7
