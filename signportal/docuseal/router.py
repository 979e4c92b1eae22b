# signportal/docuseal/router.py

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from signportal.docuseal import utils
from signportal.docuseal.client import DocusealAPIError
from signportal.docuseal.schemas import (
    OTPRequest,
    SubmissionCreateRequest,
    SubmissionListParams,
    TemplateListParams,
    WebhookPayload,
)
from signportal.docuseal.services import SubmissionService, SubmitterService, TemplateService
from signportal.docuseal.webhooks import WebhookService
from signportal.users.models import User
from signportal.users.utils import get_current_user, get_optional_user
from signportal.utils.logger import get_logger

router = APIRouter(tags=["DocuSeal"])
logger = get_logger(__name__)


def _internal_error(message: str, e: Exception, **context) -> HTTPException:
    logger.error(message, error=str(e), exc_info=True, **context)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal Server Error: {e}",
    )


def _validation_message(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in e.errors()
    )


# --- Submissions ---

@router.get("/submissions")
async def list_submissions(
    params: SubmissionListParams = Depends(),
    current_user: User = Depends(get_current_user),
    service: SubmissionService = Depends(),
):
    """
    List the caller's submissions with per-party status, syncing the local
    cache with DocuSeal on the way.
    """
    try:
        return await service.list_submissions(current_user, params)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching DocuSeal submissions", e) from e


@router.post("/submissions", status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: Request,
    current_user: User = Depends(get_current_user),
    service: SubmissionService = Depends(),
):
    """
    Create a sequential-signing submission for a template.
    Multipart bodies are forwarded to DocuSeal untouched.
    """
    try:
        content_type = request.headers.get("content-type", "")
        if content_type.startswith("multipart/form-data"):
            data = await service.forward_raw_submission(await request.body(), content_type)
            return JSONResponse(data, status_code=status.HTTP_201_CREATED)

        try:
            body = await request.json()
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from e

        try:
            submission_request = SubmissionCreateRequest.model_validate(body)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=_validation_message(e)
            ) from e

        data = await service.create_submission(current_user, submission_request)
        return JSONResponse(data, status_code=status.HTTP_201_CREATED)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error creating DocuSeal submission", e) from e


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: int,
    current_user: Optional[User] = Depends(get_optional_user),
    service: SubmissionService = Depends(),
):
    """
    Fetch one submission. Signing parties who are not the owner may open it,
    so a session is optional here.
    """
    if current_user is None:
        logger.warning("Fetching submission without a session", docuseal_id=submission_id)
    try:
        return await service.get_submission(submission_id)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching DocuSeal submission", e, docuseal_id=submission_id) from e


@router.delete("/submissions/{submission_id}")
async def delete_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    service: SubmissionService = Depends(),
):
    """Permanently delete one of the caller's submissions."""
    try:
        return await service.delete_submission(current_user, submission_id)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error deleting DocuSeal submission", e, docuseal_id=submission_id) from e


@router.get("/submissions/{submission_id}/documents")
async def get_submission_documents(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    service: SubmissionService = Depends(),
):
    try:
        return await service.get_documents(submission_id)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching submission documents", e, docuseal_id=submission_id) from e


# --- Submitters ---

@router.get("/submitters/{submitter_id}")
async def get_submitter(
    submitter_id: int,
    current_user: User = Depends(get_current_user),
    service: SubmitterService = Depends(),
):
    try:
        return await service.get_submitter(submitter_id)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching DocuSeal submitter", e, submitter_id=submitter_id) from e


@router.put("/submitters/{submitter_id}")
async def update_submitter(
    submitter_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    service: SubmitterService = Depends(),
):
    """Update a submitter (e.g. resend the invitation or change the email)."""
    try:
        return await service.update_submitter(submitter_id, payload)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error updating DocuSeal submitter", e, submitter_id=submitter_id) from e


@router.post("/submitters/{submitter_id}/verify-otp")
async def submitter_otp(
    submitter_id: int,
    payload: OTPRequest,
    current_user: User = Depends(get_current_user),
    service: SubmitterService = Depends(),
):
    """Send (`send_otp`) or check (`verify_otp`) a one-time password for a submitter."""
    try:
        return await service.handle_otp(submitter_id, payload)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error in OTP handling", e, submitter_id=submitter_id) from e


# --- Templates ---

@router.get("/templates")
async def list_templates(
    params: TemplateListParams = Depends(),
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(),
):
    """List the DocuSeal templates owned by the caller."""
    try:
        return await service.list_templates(current_user, params)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching DocuSeal templates", e) from e


async def _upload(
    service: TemplateService,
    user: User,
    file: Optional[UploadFile],
    name: Optional[str],
    default_name: str,
):
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File is required")

    content = await file.read()
    data = await service.upload_template(
        user,
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        name=name or default_name,
    )
    return JSONResponse(data, status_code=status.HTTP_201_CREATED)


@router.post("/templates", status_code=status.HTTP_201_CREATED)
async def create_template(
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    template_name: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(),
):
    """Create a template from an uploaded PDF or DOCX."""
    try:
        return await _upload(service, current_user, file, name or template_name, "Untitled Template")
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error creating DocuSeal template", e) from e


@router.post("/templates/upload", status_code=status.HTTP_201_CREATED)
async def upload_template(
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    template_name: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(),
):
    """Upload a document as a new template, named after the file by default."""
    try:
        default_name = utils.strip_extension(file.filename or "document") if file else "document"
        return await _upload(service, current_user, file, name or template_name, default_name)
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error uploading DocuSeal template", e) from e


@router.get("/templates/{template_id}")
async def get_template(
    template_id: int,
    current_user: User = Depends(get_current_user),
    service: TemplateService = Depends(),
):
    """Template details, used to learn the declared party roles."""
    try:
        template = await service.get_template(template_id)
        logger.info(
            "Template fetched",
            template_id=template_id,
            submitters=len(template.get("submitters") or []) if isinstance(template, dict) else 0,
        )
        return template
    except (HTTPException, DocusealAPIError):
        raise
    except Exception as e:
        raise _internal_error("Error fetching template", e, template_id=template_id) from e


# --- Webhook ---

@router.post("/webhook")
async def docuseal_webhook(
    request: Request,
    service: WebhookService = Depends(),
):
    """
    Receives party lifecycle events from DocuSeal and applies them to the
    local status cache.
    """
    headers = {k.lower(): v for k, v in request.headers.items()}
    if not utils.verify_webhook_secret(headers):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Bad webhook secret")

    raw = await request.body()
    try:
        payload = WebhookPayload.model_validate(json.loads(raw.decode("utf-8")))
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload") from e

    if not payload.event_type or payload.data is None:
        logger.error("Invalid webhook payload: missing event_type or data")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    logger.info("Received DocuSeal webhook", event_type=payload.event_type)
    try:
        service.handle_event(payload.event_type, payload.data)
    except Exception as e:
        raise _internal_error("Error processing webhook", e, event_type=payload.event_type) from e

    return {"message": "Webhook processed successfully"}
