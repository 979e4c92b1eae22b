from sqlalchemy import select

from signportal.docuseal.models import SubmitterStatus
from signportal.testing_dependencies import auth_headers, client, db_session, docuseal_client

STUDENT = "student@example.com"


def test_get_submitter(client, docuseal_client):
    response = client.get("/submitters/31", headers=auth_headers(STUDENT))
    assert response.status_code == 200
    assert response.json()["id"] == 31
    assert docuseal_client.calls_to("get_submitter") == [("get_submitter", 31)]


def test_update_submitter_syncs_local_rows(client, db_session, docuseal_client):
    docuseal_client.add_template(5, ["Student", "Administrator"])
    student, _ = client.post(
        "/submissions", json={"template_id": 5}, headers=auth_headers(STUDENT)
    ).json()

    response = client.put(
        f"/submitters/{student['id']}",
        json={"email": "student.new@example.com", "send_email": True},
        headers=auth_headers(STUDENT),
    )
    assert response.status_code == 200
    assert docuseal_client.calls_to("update_submitter")[0][2]["email"] == "student.new@example.com"

    db_session.expire_all()
    row = db_session.execute(
        select(SubmitterStatus).where(SubmitterStatus.docuseal_submitter_id == student["id"])
    ).scalar_one()
    assert row.email == "student.new@example.com"


def test_send_otp(client, docuseal_client):
    response = client.post(
        "/submitters/31/verify-otp",
        json={"action": "send_otp", "email": "student@example.com"},
        headers=auth_headers(STUDENT),
    )
    assert response.status_code == 200
    assert response.json() == {"message": "OTP sent successfully"}
    assert docuseal_client.calls_to("send_otp") == [("send_otp", 31, "student@example.com")]


def test_send_otp_requires_email(client, docuseal_client):
    response = client.post(
        "/submitters/31/verify-otp", json={"action": "send_otp"}, headers=auth_headers(STUDENT)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Email is required to send OTP"
    assert docuseal_client.calls == []


def test_verify_otp(client, docuseal_client):
    response = client.post(
        "/submitters/31/verify-otp",
        json={"action": "verify_otp", "otp": "123456"},
        headers=auth_headers(STUDENT),
    )
    assert response.status_code == 200
    assert response.json() == {"verified": True}


def test_verify_otp_requires_code(client):
    response = client.post(
        "/submitters/31/verify-otp", json={"action": "verify_otp"}, headers=auth_headers(STUDENT)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "OTP is required for verification"


def test_unknown_otp_action(client):
    response = client.post(
        "/submitters/31/verify-otp", json={"action": "resend"}, headers=auth_headers(STUDENT)
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid action"
