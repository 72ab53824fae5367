# tests/test_workflow_smoke.py
from datetime import datetime, timezone

from freezegun import freeze_time
from sqlmodel import select

from concisely import workflow
from concisely.content_fetcher import FetchResult
from concisely.emailer import SendResult
from concisely.models import Newsletter


def _fetched(summary):
    return FetchResult(True, "Successfully processed 1 items", [summary.model_dump()])


def test_newsletter_title():
    assert workflow.newsletter_title("weekly", datetime(2025, 1, 6)) == "Your Weekly Update - 2025-01-06"


def test_run_weekly_smoke(session, make_user, make_summary, mocker):
    # Avoid live HTTP + OpenAI calls
    weekly = make_user("weekly@example.com", delivery_frequency="weekly")
    make_user("daily@example.com", delivery_frequency="daily")
    make_user("idle@example.com", delivery_frequency="weekly", topics=[])
    summary = make_summary(weekly.id)
    fetch = mocker.patch.object(workflow, "fetch_and_process_content_for_user", return_value=_fetched(summary))

    with freeze_time("2025-01-06 04:00:00"):
        outcome = workflow.process_frequency_group("weekly")

    assert outcome == {weekly.id: "sent"}
    fetch.assert_called_once_with(weekly.id)
    n = session.exec(select(Newsletter)).one()
    assert n.title == "Your Weekly Update - 2025-01-06"
    assert n.owner_id == weekly.id
    assert n.status == "sent"
    assert n.sent_to == [weekly.id]


def test_group_isolates_failing_user(make_user, make_summary, mocker):
    bad = make_user("bad@example.com")
    good = make_user("good@example.com")
    summary = make_summary(good.id)

    def fetch(user_id):
        if user_id == bad.id:
            raise RuntimeError("boom")
        return _fetched(summary)

    mocker.patch.object(workflow, "fetch_and_process_content_for_user", side_effect=fetch)
    outcome = workflow.process_frequency_group("weekly")
    assert outcome == {bad.id: "error", good.id: "sent"}


def test_no_content_means_no_newsletter(session, make_user, mocker):
    user = make_user()
    mocker.patch.object(
        workflow, "fetch_and_process_content_for_user",
        return_value=FetchResult(False, "No new content could be processed"),
    )
    assert workflow.process_user_content(user.id, "weekly")["status"] == "no_content"
    assert session.exec(select(Newsletter)).all() == []


def test_failed_delivery_marks_newsletter_failed(session, make_user, make_summary, mocker):
    user = make_user()
    summary = make_summary(user.id)
    mocker.patch.object(workflow, "fetch_and_process_content_for_user", return_value=_fetched(summary))
    mocker.patch("concisely.emailer.send_email", return_value=False)

    result = workflow.trigger_content_and_newsletter_for_user(user.id)

    assert result["success"] is False and result["status"] == "failed"
    assert session.get(Newsletter, result["newsletter_id"]).status == "failed"


def test_trigger_for_missing_user():
    assert workflow.trigger_content_and_newsletter_for_user(999)["success"] is False


def test_dispatch_due_newsletters(session, make_user):
    make_user(topics=["quantum computing"])
    due = Newsletter(title="due", content="<p>x</p>", topics=["quantum computing"], status="scheduled")
    with freeze_time("2025-01-06 09:00:00"):
        due.scheduled_date = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
        session.add(due); session.commit(); session.refresh(due)
        sent = workflow.dispatch_due_newsletters()
    assert sent == {due.id: True}
    session.refresh(due)
    assert due.status == "sent"


def test_dispatch_marks_crash_as_failed(session, mocker):
    n = Newsletter(title="due", content="c", status="scheduled")
    with freeze_time("2025-01-06 09:00:00"):
        n.scheduled_date = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
        session.add(n); session.commit(); session.refresh(n)
        mocker.patch.object(workflow, "send_newsletter", side_effect=RuntimeError("smtp exploded"))
        sent = workflow.dispatch_due_newsletters()
    assert sent == {n.id: False}
    session.refresh(n)
    assert n.status == "failed"


def test_send_result_shape():
    assert SendResult(True, 1, 0).sent_count == 1


def test_pipeline_issue_is_not_picked_up_by_dispatch(session, make_user, make_summary, mocker):
    user = make_user()
    summary = make_summary(user.id)
    mocker.patch.object(workflow, "fetch_and_process_content_for_user", return_value=_fetched(summary))
    seen = []

    def deliver(*args, **kwargs):
        seen.append(workflow.dispatch_due_newsletters())
        return True

    mocker.patch("concisely.emailer.send_email", side_effect=deliver)

    result = workflow.process_user_content(user.id, "weekly")

    assert result["status"] == "sent"
    assert seen == [{}]
    n = session.get(Newsletter, result["newsletter_id"])
    assert n.scheduled_date is None
    assert n.sending_since is None


def test_dispatch_fails_newsletter_without_recipients(session, make_user):
    make_user(topics=["gardening"])
    n = Newsletter(title="due", content="c", topics=["quantum computing"], status="scheduled")
    with freeze_time("2025-01-06 09:00:00"):
        n.scheduled_date = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
        session.add(n); session.commit(); session.refresh(n)
        assert workflow.dispatch_due_newsletters() == {n.id: False}
        assert workflow.dispatch_due_newsletters() == {}
    session.refresh(n)
    assert n.status == "failed"


def test_dispatch_skips_newsletter_being_sent(session, make_user, mocker):
    make_user()
    n = Newsletter(title="due", content="c", topics=["quantum computing"], status="scheduled")
    with freeze_time("2025-01-06 09:00:00"):
        n.scheduled_date = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
        session.add(n); session.commit(); session.refresh(n)
        from concisely.errors import SendInProgress
        mocker.patch.object(workflow, "send_newsletter", side_effect=SendInProgress(n.id))
        assert workflow.dispatch_due_newsletters() == {}
    session.refresh(n)
    assert n.status == "scheduled"
