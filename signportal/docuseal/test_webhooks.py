from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from signportal.core.config import settings
from signportal.docuseal.models import Submission, SubmitterStatus
from signportal.docuseal.repository import DocusealRepository
from signportal.docuseal.utils import as_utc
from signportal.testing_dependencies import auth_headers, client, db_session, docuseal_client


def seed_submission(client, docuseal_client):
    """Create a caller + administrator submission and return its remote submitters."""
    docuseal_client.add_template(5, ["Student", "Administrator"])
    response = client.post(
        "/submissions",
        json={"template_id": 5},
        headers=auth_headers("student@example.com"),
    )
    assert response.status_code == 201
    return response.json()


def send_event(client, event_type, data, headers=None):
    return client.post(
        "/webhook",
        json={"event_type": event_type, "timestamp": "2026-03-01T09:00:00Z", "data": data},
        headers=headers or {},
    )


def rows_for(db_session, submitter_id):
    db_session.expire_all()
    stmt = select(SubmitterStatus).where(SubmitterStatus.docuseal_submitter_id == submitter_id)
    return db_session.execute(stmt).scalars().all()


def test_opened_event_updates_status_and_timestamp(client, db_session, docuseal_client):
    student, _ = seed_submission(client, docuseal_client)

    response = send_event(
        client,
        "submitter.opened",
        {"id": student["id"], "submission_id": student["submission_id"], "opened_at": "2026-03-01T09:30:00Z"},
    )
    assert response.status_code == 200
    assert response.json() == {"message": "Webhook processed successfully"}

    (row,) = rows_for(db_session, student["id"])
    assert row.status == "opened"
    assert as_utc(row.opened_at) == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def test_event_updates_every_row_with_the_submitter_id(client, db_session, docuseal_client):
    student, admin = seed_submission(client, docuseal_client)
    (admin_row,) = rows_for(db_session, admin["id"])
    admin_row.docuseal_submitter_id = student["id"]
    db_session.commit()

    send_event(client, "submitter.sent", {"id": student["id"], "sent_at": "2026-03-01T08:00:00Z"})

    rows = rows_for(db_session, student["id"])
    assert len(rows) == 2
    assert all(row.status == "sent" for row in rows)


def test_completed_party_never_regresses(client, db_session, docuseal_client):
    student, _ = seed_submission(client, docuseal_client)

    send_event(client, "submitter.completed", {"id": student["id"], "completed_at": "2026-03-01T10:00:00Z"})
    send_event(client, "submitter.opened", {"id": student["id"], "opened_at": "2026-03-01T09:30:00Z"})
    send_event(client, "submitter.declined", {"id": student["id"]})

    (row,) = rows_for(db_session, student["id"])
    assert row.status == "completed"
    assert as_utc(row.completed_at) == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert row.opened_at is None
    assert row.declined_at is None


def test_declined_from_opened_is_final(client, db_session, docuseal_client):
    student, _ = seed_submission(client, docuseal_client)

    send_event(client, "submitter.opened", {"id": student["id"]})
    send_event(client, "submitter.declined", {"id": student["id"], "declined_at": "2026-03-02T12:00:00Z"})
    send_event(client, "submitter.completed", {"id": student["id"], "completed_at": "2026-03-03T12:00:00Z"})

    (row,) = rows_for(db_session, student["id"])
    assert row.status == "declined"
    assert as_utc(row.declined_at) == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
    assert row.completed_at is None


def test_replayed_event_is_idempotent(client, db_session, docuseal_client):
    student, _ = seed_submission(client, docuseal_client)

    send_event(client, "submitter.opened", {"id": student["id"]})
    (row,) = rows_for(db_session, student["id"])
    first = (row.status, as_utc(row.opened_at))
    assert first[1] is not None

    send_event(client, "submitter.opened", {"id": student["id"]})
    (row,) = rows_for(db_session, student["id"])
    assert (row.status, as_utc(row.opened_at)) == first


def test_unknown_submitter_is_ignored(client, db_session, docuseal_client):
    seed_submission(client, docuseal_client)

    response = send_event(client, "submitter.completed", {"id": 123456})
    assert response.status_code == 200
    db_session.expire_all()
    statuses = db_session.execute(select(SubmitterStatus.status)).scalars().all()
    assert statuses == ["pending", "pending"]


def test_submission_completed_waits_for_every_party(client, db_session, docuseal_client):
    student, admin = seed_submission(client, docuseal_client)
    submission_id = student["submission_id"]

    send_event(client, "submitter.completed", {"id": student["id"]})
    send_event(client, "submission.completed", {"id": submission_id})
    db_session.expire_all()
    assert db_session.execute(select(Submission.status)).scalar_one() == "pending"

    send_event(client, "submitter.completed", {"id": admin["id"]})
    send_event(client, "submission.completed", {"id": submission_id})
    db_session.expire_all()
    assert db_session.execute(select(Submission.status)).scalar_one() == "completed"


def test_submission_completed_for_unknown_submission(client):
    response = send_event(client, "submission.completed", {"id": 999})
    assert response.status_code == 200


def test_delivery_failure_and_unknown_events_change_nothing(client, db_session, docuseal_client):
    student, _ = seed_submission(client, docuseal_client)

    assert send_event(client, "bounce_email", {"id": student["id"]}).status_code == 200
    assert send_event(client, "complaint_email", {"id": student["id"]}).status_code == 200
    assert send_event(client, "form.viewed", {"id": student["id"]}).status_code == 200

    (row,) = rows_for(db_session, student["id"])
    assert row.status == "pending"


def test_missing_event_type_or_data(client):
    response = client.post("/webhook", json={"data": {"id": 1}})
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payload"

    response = client.post("/webhook", json={"event_type": "submitter.opened"})
    assert response.status_code == 400


def test_malformed_json(client):
    response = client.post(
        "/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


def test_webhook_secret_is_checked_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "docuseal_webhook_secret", "s3cret")

    assert send_event(client, "form.viewed", {"id": 1}).status_code == 401
    assert send_event(client, "form.viewed", {"id": 1}, {"X-Docuseal-Secret": "wrong"}).status_code == 401
    assert send_event(client, "form.viewed", {"id": 1}, {"X-Docuseal-Secret": "s3cret"}).status_code == 200


def test_persistence_error_still_acknowledged(client, docuseal_client, monkeypatch):
    student, _ = seed_submission(client, docuseal_client)

    def failing_lookup(self, docuseal_submitter_id):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(DocusealRepository, "get_submitter_statuses", failing_lookup)

    response = send_event(client, "submitter.opened", {"id": student["id"]})
    assert response.status_code == 200
