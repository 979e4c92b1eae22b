# signportal/docuseal/services.py

import base64
from typing import Any, Dict, List, Optional

import aiohttp
from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from signportal.core.config import settings
from signportal.core.db import get_db
from signportal.docuseal import utils
from signportal.docuseal.client import DocusealAPIError, DocusealClient, get_docuseal_client
from signportal.docuseal.models import Submission, SubmitterStatus
from signportal.docuseal.repository import DocusealRepository
from signportal.docuseal.schemas import (
    AdditionalParty,
    OTPRequest,
    SubmissionCreateRequest,
    SubmissionListParams,
    TemplateListParams,
)
from signportal.users.models import User
from signportal.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_FIRST_ROLE = "Student"
DEFAULT_LAST_ROLE = "Administrator"

# DocuSeal reports parties that have not been emailed yet as "awaiting"
SUBMITTER_STATUS_ALIASES = {"awaiting": "pending"}


class PartyCountMismatch(ValueError):
    """Raised when the caller supplies the wrong number of additional parties."""

    def __init__(self, expected: int, provided: int):
        self.expected = expected
        self.provided = provided
        super().__init__(
            f"This template requires exactly {expected} additional "
            f"part{'y' if expected == 1 else 'ies'}, but {provided} "
            f"{'was' if provided == 1 else 'were'} provided."
        )


def get_docuseal_repository(db: Session = Depends(get_db)) -> DocusealRepository:
    """Dependency to get DocusealRepository instance."""
    return DocusealRepository(db)


def normalize_submitter_status(value: Optional[str]) -> str:
    value = (value or "pending").lower()
    return SUBMITTER_STATUS_ALIASES.get(value, value)


def declared_roles(template: Dict[str, Any]) -> List[Optional[str]]:
    """Role names declared by a DocuSeal template, in signing order."""
    return [(s or {}).get("name") for s in template.get("submitters") or []]


def party_count(template: Dict[str, Any]) -> int:
    # A template declaring no roles is treated as the caller + administrator pair
    return len(declared_roles(template)) or 2


def build_parties(
    template: Dict[str, Any],
    user: User,
    additional_parties: List[AdditionalParty],
    admin_email: str,
    admin_name: str,
) -> List[Dict[str, Any]]:
    """
    Build the ordered submitter list for a sequential-signing submission:
    the caller first, the additional parties in the middle and the configured
    administrator last, each mapped onto the template's declared roles.
    """
    roles = declared_roles(template)
    count = party_count(template)
    expected = max(count - 2, 0)
    if len(additional_parties) != expected:
        raise PartyCountMismatch(expected, len(additional_parties))

    def role_at(index: int, fallback: str) -> str:
        if index < len(roles) and roles[index]:
            return roles[index]
        return fallback

    metadata = {"created_by_user_id": str(user.id), "created_by_email": user.email}

    def party(email: str, name: Optional[str], role: str) -> Dict[str, Any]:
        entry = {
            "email": email,
            "role": role,
            "send_email": True,
            "external_id": str(user.id),
            "metadata": dict(metadata),
        }
        if name:
            entry["name"] = name
        return entry

    parties = [party(user.email, user.name, role_at(0, DEFAULT_FIRST_ROLE))]
    if count == 1:
        return parties

    for index, extra in enumerate(additional_parties, start=1):
        parties.append(party(extra.email, extra.name, role_at(index, extra.role or f"Party {index + 1}")))

    parties.append(party(admin_email, admin_name, role_at(count - 1, DEFAULT_LAST_ROLE)))
    return parties


def apply_remote_submitter(row: SubmitterStatus, remote: Dict[str, Any]) -> bool:
    """
    Copy the provider's view of one party onto its local row.
    Returns True when anything changed.
    """
    changed = False

    remote_id = utils.as_int(remote.get("id"))
    if remote_id is not None and row.docuseal_submitter_id != remote_id:
        row.docuseal_submitter_id = remote_id
        changed = True

    if remote.get("status"):
        remote_status = normalize_submitter_status(remote.get("status"))
        if row.status != remote_status:
            row.status = remote_status
            changed = True

    embed_src = remote.get("embed_src")
    if embed_src and row.embed_src != embed_src:
        row.embed_src = embed_src
        changed = True

    for field in ("sent_at", "opened_at", "completed_at", "declined_at"):
        remote_value = utils.parse_timestamp(remote.get(field))
        if remote_value and not utils.same_instant(getattr(row, field), remote_value):
            setattr(row, field, remote_value)
            changed = True

    return changed


def reconcile_submission(local: Submission, remote: Dict[str, Any]) -> Dict[str, Any]:
    """
    Read-repair the cached rows of one submission from fresh provider data and
    return the provider data enriched with locally known signing links.
    """
    remote_status = remote.get("status")
    if remote_status and local.status != remote_status:
        logger.info(
            "Submission status drift",
            docuseal_id=local.docuseal_id,
            local_status=local.status,
            remote_status=remote_status,
        )
        local.status = remote_status

    by_id = {row.docuseal_submitter_id: row for row in local.submitter_statuses if row.docuseal_submitter_id}
    by_email = {row.email.lower(): row for row in local.submitter_statuses if row.email}

    enriched = []
    for remote_submitter in remote.get("submitters") or []:
        row = by_id.get(utils.as_int(remote_submitter.get("id"))) or by_email.get(
            (remote_submitter.get("email") or "").lower()
        )
        if row is None:
            enriched.append(remote_submitter)
            continue

        apply_remote_submitter(row, remote_submitter)
        if not remote_submitter.get("embed_src") and row.embed_src:
            remote_submitter = {**remote_submitter, "embed_src": row.embed_src}
        enriched.append(remote_submitter)

    if "submitters" in remote:
        return {**remote, "submitters": enriched}
    return remote


class SubmissionService:
    """
    Business logic for creating, listing and reconciling submissions.
    """

    def __init__(
        self,
        repo: DocusealRepository = Depends(get_docuseal_repository),
        client: DocusealClient = Depends(get_docuseal_client),
    ):
        self.repo = repo
        self.client = client

    async def create_submission(self, user: User, request: SubmissionCreateRequest) -> Any:
        """Create a sequential-signing submission and cache it locally."""
        if not request.template_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="template_id is required",
            )

        try:
            template = await self.client.get_template(request.template_id)
        except (DocusealAPIError, aiohttp.ClientError) as e:
            logger.error("Failed to fetch template", template_id=request.template_id, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to fetch template {request.template_id}: {e}",
            ) from e

        if party_count(template) > 1 and not settings.admin_email:
            logger.error("Administrator email is not configured")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server configuration error: administrator email is not configured.",
            )

        try:
            parties = build_parties(
                template,
                user,
                request.additional_parties,
                admin_email=settings.admin_email,
                admin_name=settings.admin_name,
            )
        except PartyCountMismatch as e:
            logger.warning(
                "Additional party count mismatch",
                template_id=request.template_id,
                expected=e.expected,
                provided=e.provided,
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        payload: Dict[str, Any] = {
            "template_id": request.template_id,
            "send_email": request.send_email,
            "order": "preserved",
            "submitters": parties,
        }
        if request.message:
            payload["message"] = request.message.model_dump(exclude_none=True)

        logger.info(
            "Creating DocuSeal submission",
            template_id=request.template_id,
            parties=[(p["role"], p["email"]) for p in parties],
        )
        data = await self.client.create_submission(payload)

        self._save_submission(user, request.template_id, template, parties, data)
        return data

    def _save_submission(
        self,
        user: User,
        template_id: int,
        template: Dict[str, Any],
        parties: List[Dict[str, Any]],
        data: Any,
    ) -> None:
        # The submission already exists upstream, so local failures are only logged
        submitters = data if isinstance(data, list) else (data.get("submitters") or [data])
        submission_id = utils.as_int(submitters[0].get("submission_id")) if submitters else None
        if submission_id is None and isinstance(data, dict):
            submission_id = utils.as_int(data.get("id"))
        if submission_id is None:
            logger.warning("DocuSeal response carries no submission id, nothing saved", response=data)
            return

        try:
            local_template = self.repo.get_or_create_template(
                user.id, template_id, template.get("name") or "Untitled Template"
            )
            submission = Submission(
                docuseal_id=submission_id,
                user_id=user.id,
                template_id=local_template.id,
                status="pending",
                submitter_email=submitters[0].get("email") or user.email,
            )
            for index, remote in enumerate(submitters):
                party = parties[index] if index < len(parties) else {}
                row = SubmitterStatus(
                    email=remote.get("email") or party.get("email"),
                    name=remote.get("name") or party.get("name"),
                    role=remote.get("role") or party.get("role"),
                    status=normalize_submitter_status(remote.get("status")),
                )
                apply_remote_submitter(row, remote)
                submission.submitter_statuses.append(row)

            self.repo.add_submission(submission)
            self.repo.commit()
            logger.info(
                "Saved submission",
                docuseal_id=submission_id,
                user_id=user.id,
                parties=len(submitters),
            )
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                "Error saving submission to database",
                docuseal_id=submission_id,
                error=str(e),
                exc_info=True,
            )

    async def forward_raw_submission(self, body: bytes, content_type: str) -> Any:
        """Relay a multipart submission request to DocuSeal unchanged."""
        return await self.client.create_submission_raw(body, content_type)

    async def list_submissions(self, user: User, params: SubmissionListParams) -> Dict[str, Any]:
        """
        List the caller's submissions with fresh provider data, repairing the
        local cache along the way.
        """
        local_submissions = {s.docuseal_id: s for s in self.repo.list_submissions(user.id)}
        if not local_submissions:
            return {"data": [], "pagination": {"count": 0, "next": None, "prev": None}}

        query: Dict[str, str] = {"limit": str(params.limit)}
        for key in ("after", "before", "template_id", "q", "slug", "template_folder"):
            value = getattr(params, key)
            if value not in (None, ""):
                query[key] = str(value)
        mapped_status = utils.map_status_filter(params.status)
        if mapped_status:
            query["status"] = mapped_status
        if params.archived is not None:
            query["archived"] = "true" if params.archived else "false"

        data = await self.client.list_submissions(query)

        items = []
        for remote in utils.extract_items(data):
            local = local_submissions.get(utils.as_int(remote.get("id")))
            if local is None:
                continue
            items.append(reconcile_submission(local, remote))

        self._commit_reconciliation()
        return utils.with_items(data, items)

    async def get_submission(self, submission_id: int) -> Any:
        data = await self.client.get_submission(submission_id)
        local = self.repo.get_submission(submission_id)
        if local is None or not isinstance(data, dict):
            return data
        data = reconcile_submission(local, data)
        self._commit_reconciliation()
        return data

    def _commit_reconciliation(self) -> None:
        try:
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error("Error saving reconciled statuses", error=str(e), exc_info=True)

    async def delete_submission(self, user: User, submission_id: int) -> Dict[str, str]:
        local = self.repo.get_user_submission(user.id, submission_id)
        if local is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Submission not found.",
            )

        await self.client.delete_submission(submission_id)
        logger.info("Deleted DocuSeal submission", docuseal_id=submission_id, user_id=user.id)

        try:
            self.repo.delete_submission(local)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                "Error deleting local submission",
                docuseal_id=submission_id,
                error=str(e),
                exc_info=True,
            )
        return {"message": "Submission deleted successfully"}

    async def get_documents(self, submission_id: int) -> Any:
        return await self.client.get_submission_documents(submission_id)


class TemplateService:
    """
    Business logic for template upload and per-user template listing.
    """

    def __init__(
        self,
        repo: DocusealRepository = Depends(get_docuseal_repository),
        client: DocusealClient = Depends(get_docuseal_client),
    ):
        self.repo = repo
        self.client = client

    async def list_templates(self, user: User, params: TemplateListParams) -> Dict[str, Any]:
        owned_ids = {t.docuseal_id for t in self.repo.list_templates(user.id)}
        if not owned_ids:
            logger.info("User has no templates", user_id=user.id)
            return {"data": []}

        query: Dict[str, str] = {}
        for key, value in params.model_dump().items():
            if value in (None, ""):
                continue
            query[key] = ("true" if value else "false") if isinstance(value, bool) else str(value)

        data = await self.client.list_templates(query)
        items = [t for t in utils.extract_items(data) if utils.as_int(t.get("id")) in owned_ids]
        logger.info("Filtered templates", user_id=user.id, returned=len(items))
        return utils.with_items(data, items)

    async def get_template(self, template_id: int) -> Any:
        return await self.client.get_template(template_id)

    async def upload_template(
        self,
        user: User,
        content: bytes,
        filename: Optional[str],
        content_type: Optional[str],
        name: str,
    ) -> Any:
        """
        Create a DocuSeal template from an uploaded PDF or DOCX and record the
        caller as its owner.
        """
        kind = utils.template_kind(filename, content_type)
        if kind == "pdf" and not (filename or "").lower().endswith(".pdf") and content_type != "application/pdf":
            logger.warning("Unknown file type, defaulting to PDF endpoint", filename=filename, content_type=content_type)

        payload = {
            "name": name,
            "documents": [
                {
                    "name": filename or "document",
                    "file": base64.b64encode(content).decode("utf-8"),
                }
            ],
        }
        data = await self.client.create_template_from_file(kind, payload)

        docuseal_id = utils.as_int(data.get("id")) if isinstance(data, dict) else None
        if docuseal_id is None:
            return data

        try:
            self.repo.get_or_create_template(user.id, docuseal_id, data.get("name") or name)
            self.repo.commit()
            logger.info("Saved template", docuseal_id=docuseal_id, user_id=user.id)
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                "Error saving template to database",
                docuseal_id=docuseal_id,
                error=str(e),
                exc_info=True,
            )
        return data


class SubmitterService:
    """
    Submitter passthrough operations and one-time-password verification.
    """

    def __init__(
        self,
        repo: DocusealRepository = Depends(get_docuseal_repository),
        client: DocusealClient = Depends(get_docuseal_client),
    ):
        self.repo = repo
        self.client = client

    async def get_submitter(self, submitter_id: int) -> Any:
        return await self.client.get_submitter(submitter_id)

    async def update_submitter(self, submitter_id: int, payload: Dict[str, Any]) -> Any:
        data = await self.client.update_submitter(submitter_id, payload)
        if not isinstance(data, dict):
            return data

        try:
            for row in self.repo.get_submitter_statuses(submitter_id):
                if data.get("email"):
                    row.email = data["email"]
                if data.get("name"):
                    row.name = data["name"]
                apply_remote_submitter(row, data)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                "Error syncing submitter after update",
                submitter_id=submitter_id,
                error=str(e),
                exc_info=True,
            )
        return data

    async def handle_otp(self, submitter_id: int, request: OTPRequest) -> Any:
        if request.action == "send_otp":
            if not request.email:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Email is required to send OTP",
                )
            logger.info("Requesting OTP", submitter_id=submitter_id)
            await self.client.send_otp(submitter_id, request.email)
            return {"message": "OTP sent successfully"}

        if request.action == "verify_otp":
            if not request.otp:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="OTP is required for verification",
                )
            logger.info("Verifying OTP", submitter_id=submitter_id)
            return await self.client.verify_otp(submitter_id, request.otp)

        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action")
