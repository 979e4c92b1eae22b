import base64

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from signportal.docuseal.models import Template
from signportal.docuseal.repository import DocusealRepository
from signportal.docuseal.utils import DOCX_MIME
from signportal.testing_dependencies import auth_headers, client, db_session, docuseal_client
from signportal.users.models import User

OWNER = "owner@example.com"
OTHER = "other@example.com"


def upload(client, path="/templates/upload", email=OWNER, filename="Lease Agreement.pdf",
           content=b"%PDF-1.4 lease", content_type="application/pdf", data=None):
    return client.post(
        path,
        files={"file": (filename, content, content_type)},
        data=data or {},
        headers=auth_headers(email),
    )


def test_upload_pdf_records_owner(client, db_session, docuseal_client):
    response = upload(client)
    assert response.status_code == 201
    template_id = response.json()["id"]

    ((_, kind, payload),) = docuseal_client.calls_to("create_template_from_file")
    assert kind == "pdf"
    assert payload["name"] == "Lease Agreement"
    assert payload["documents"][0]["name"] == "Lease Agreement.pdf"
    assert base64.b64decode(payload["documents"][0]["file"]) == b"%PDF-1.4 lease"

    template = db_session.execute(select(Template)).scalar_one()
    owner = db_session.execute(select(User).where(User.email == OWNER)).scalar_one()
    assert template.docuseal_id == template_id
    assert template.user_id == owner.id
    assert template.name == "Lease Agreement"


def test_upload_docx_with_explicit_name(client, docuseal_client):
    response = upload(
        client,
        path="/templates",
        filename="contract.docx",
        content=b"PK docx",
        content_type=DOCX_MIME,
        data={"name": "Service Contract"},
    )
    assert response.status_code == 201
    ((_, kind, payload),) = docuseal_client.calls_to("create_template_from_file")
    assert kind == "docx"
    assert payload["name"] == "Service Contract"


def test_create_template_default_name(client, docuseal_client):
    response = upload(client, path="/templates")
    assert response.status_code == 201
    assert response.json()["name"] == "Untitled Template"


def test_upload_requires_file(client, docuseal_client):
    response = client.post("/templates/upload", data={"name": "x"}, headers=auth_headers(OWNER))
    assert response.status_code == 400
    assert response.json()["detail"] == "File is required"
    assert docuseal_client.calls == []


def test_upload_local_failure_still_returns_created(client, db_session, docuseal_client, monkeypatch):
    def failing(self, user_id, docuseal_id, name):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(DocusealRepository, "get_or_create_template", failing)

    response = upload(client)
    assert response.status_code == 201
    assert db_session.execute(select(Template)).scalars().first() is None


def test_get_or_create_template_reuses_row(db_session):
    user = User(email=OWNER)
    db_session.add(user)
    db_session.commit()

    repo = DocusealRepository(db_session)
    first = repo.get_or_create_template(user.id, 77, "Lease")
    repo.commit()
    second = repo.get_or_create_template(user.id, 77, "Lease again")

    assert first.id == second.id
    assert len(repo.list_templates(user.id)) == 1


def test_list_templates_without_uploads(client, docuseal_client):
    docuseal_client.add_template(1, ["Student"])

    response = client.get("/templates", headers=auth_headers(OWNER))
    assert response.status_code == 200
    assert response.json() == {"data": []}
    assert docuseal_client.calls_to("list_templates") == []


def test_list_templates_only_returns_owned(client, docuseal_client):
    mine = upload(client).json()["id"]
    upload(client, email=OTHER)
    docuseal_client.add_template(1, ["Student"])

    response = client.get("/templates?archived=false&q=lease", headers=auth_headers(OWNER))
    assert response.status_code == 200
    assert [t["id"] for t in response.json()["data"]] == [mine]

    ((_, params),) = docuseal_client.calls_to("list_templates")
    assert params["archived"] == "false"
    assert params["q"] == "lease"
    assert params["limit"] == "100"


def test_get_template(client, docuseal_client):
    docuseal_client.add_template(5, ["Student", "Advisor", "Administrator"])

    response = client.get("/templates/5", headers=auth_headers(OWNER))
    assert response.status_code == 200
    assert [s["name"] for s in response.json()["submitters"]] == ["Student", "Advisor", "Administrator"]


def test_templates_require_session(client):
    assert client.get("/templates").status_code == 401
    assert client.get("/templates/5").status_code == 401
