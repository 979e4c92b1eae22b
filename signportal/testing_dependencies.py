import logging
import os
from typing import Any, Dict, List, Optional

import pytest
from dotenv import find_dotenv, load_dotenv
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .core.config import settings
from .core.db import Base, get_db
from .core.jwt import create_access_token
from .docuseal.client import DocusealAPIError, get_docuseal_client
from .main import signportal_app as fast_api_app

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

env_file = find_dotenv(f'.env{os.getenv("ENV", "")}')
logger.info("Fetching env_file %s", env_file)
load_dotenv(env_file)

TEST_DATABASE_FILE = os.getenv("TEST_DATABASE_FILE")
ADMIN_EMAIL = "admin@signportal.test"

if TEST_DATABASE_FILE:
    engine = create_engine(
        f"sqlite:///{TEST_DATABASE_FILE}", connect_args={"check_same_thread": False}
    )
else:
    # One shared in-memory database for the whole session
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeDocusealClient:
    """
    Stands in for DocusealClient: records every call and answers from the
    in-memory `templates` and `submissions` maps. Put a DocusealAPIError in
    `errors` under a method name to make that method fail.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.errors: Dict[str, Exception] = {}
        self.templates: Dict[int, Dict[str, Any]] = {}
        self.submissions: Dict[int, Dict[str, Any]] = {}
        self._next_id = 100

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if name in self.errors:
            raise self.errors[name]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def calls_to(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def add_template(self, template_id: int, roles: List[str], name: str = "Agreement") -> Dict[str, Any]:
        template = {
            "id": template_id,
            "name": name,
            "submitters": [{"name": role, "uuid": f"role-{i}"} for i, role in enumerate(roles)],
        }
        self.templates[template_id] = template
        return template

    # --- Templates ---

    async def list_templates(self, params: Optional[Dict[str, Any]] = None):
        self._record("list_templates", params)
        items = list(self.templates.values())
        return {"data": items, "pagination": {"count": len(items), "next": None, "prev": None}}

    async def get_template(self, template_id: int):
        self._record("get_template", template_id)
        if template_id not in self.templates:
            raise DocusealAPIError(404, {"error": "Not found"})
        return self.templates[template_id]

    async def create_template_from_file(self, kind: str, payload: Dict[str, Any]):
        self._record("create_template_from_file", kind, payload)
        template = self.add_template(self._new_id(), ["First Party"], name=payload["name"])
        return template

    # --- Submissions ---

    async def list_submissions(self, params: Optional[Dict[str, Any]] = None):
        self._record("list_submissions", params)
        items = list(self.submissions.values())
        return {"data": items, "pagination": {"count": len(items), "next": None, "prev": None}}

    async def get_submission(self, submission_id: int):
        self._record("get_submission", submission_id)
        if submission_id not in self.submissions:
            raise DocusealAPIError(404, {"error": "Not found"})
        return self.submissions[submission_id]

    async def create_submission(self, payload: Dict[str, Any]):
        self._record("create_submission", payload)
        submission_id = self._new_id()
        submitters = [
            {
                "id": submission_id * 10 + index,
                "submission_id": submission_id,
                "email": party["email"],
                "name": party.get("name"),
                "role": party["role"],
                "status": "awaiting",
                "embed_src": f"https://docuseal.test/s/{submission_id}-{index}",
            }
            for index, party in enumerate(payload["submitters"])
        ]
        self.submissions[submission_id] = {
            "id": submission_id,
            "status": "pending",
            "template": {"id": payload["template_id"]},
            "submitters": [dict(s) for s in submitters],
        }
        return submitters

    async def create_submission_raw(self, body: bytes, content_type: str):
        self._record("create_submission_raw", body, content_type)
        return [{"id": 1, "submission_id": self._new_id()}]

    async def delete_submission(self, submission_id: int):
        self._record("delete_submission", submission_id)
        self.submissions.pop(submission_id, None)
        return {"id": submission_id, "archived_at": "2026-01-01T00:00:00Z"}

    async def get_submission_documents(self, submission_id: int):
        self._record("get_submission_documents", submission_id)
        return {
            "id": submission_id,
            "documents": [{"name": "agreement", "url": f"https://docuseal.test/d/{submission_id}.pdf"}],
        }

    # --- Submitters ---

    async def get_submitter(self, submitter_id: int):
        self._record("get_submitter", submitter_id)
        return {"id": submitter_id, "email": "party@example.com", "status": "opened"}

    async def update_submitter(self, submitter_id: int, payload: Dict[str, Any]):
        self._record("update_submitter", submitter_id, payload)
        return {"id": submitter_id, **payload}

    async def send_otp(self, submitter_id: int, email: str):
        self._record("send_otp", submitter_id, email)
        return {}

    async def verify_otp(self, submitter_id: int, otp: str):
        self._record("verify_otp", submitter_id, otp)
        return {"verified": otp == "123456"}


def auth_headers(email: str, name: Optional[str] = None) -> Dict[str, str]:
    """Bearer header for a session token carrying the given identity."""
    claims = {"sub": email, "email": email}
    if name:
        claims["name"] = name
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture()
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def docuseal_client():
    return FakeDocusealClient()


@pytest.fixture()
def client(db_session, docuseal_client, monkeypatch):

    # Override FastAPI's dependencies to use the test database and fake DocuSeal
    def override_get_db():
        yield db_session

    monkeypatch.setattr(settings, "admin_email", ADMIN_EMAIL)
    monkeypatch.setattr(settings, "admin_name", "Administrator")
    monkeypatch.setattr(settings, "docuseal_webhook_secret", None)

    fast_api_app.dependency_overrides[get_db] = override_get_db
    fast_api_app.dependency_overrides[get_docuseal_client] = lambda: docuseal_client
    yield TestClient(fast_api_app)
    fast_api_app.dependency_overrides.clear()
