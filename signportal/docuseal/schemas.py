# signportal/docuseal/schemas.py

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class AdditionalParty(BaseModel):
    """
    A party supplied by the caller to fill an intermediate template role.
    """

    email: EmailStr
    name: Optional[str] = None
    role: Optional[str] = None


class EmailMessage(BaseModel):
    subject: Optional[str] = None
    body: Optional[str] = None


class SubmissionCreateRequest(BaseModel):
    """Request to create a sequential-signing submission from a template."""

    # Optional here so a missing id is reported as a 400 with a clear message
    template_id: Optional[int] = None
    additional_parties: List[AdditionalParty] = Field(default_factory=list)
    send_email: bool = True
    message: Optional[EmailMessage] = None


class SubmissionListParams(BaseModel):
    """Filters accepted by the submission listing endpoint."""

    limit: int = 10
    after: Optional[int] = None
    before: Optional[int] = None
    template_id: Optional[int] = None
    status: Optional[str] = None
    q: Optional[str] = None
    slug: Optional[str] = None
    template_folder: Optional[str] = None
    archived: Optional[bool] = None


class TemplateListParams(BaseModel):
    """Filters forwarded to the DocuSeal template listing."""

    q: Optional[str] = None
    slug: Optional[str] = None
    external_id: Optional[str] = None
    folder: Optional[str] = None
    archived: Optional[bool] = None
    limit: int = 100
    after: Optional[int] = None
    before: Optional[int] = None


class OTPRequest(BaseModel):
    """Send or verify a one-time password for a submitter."""

    # send_otp or verify_otp
    action: Optional[str] = None
    email: Optional[EmailStr] = None
    otp: Optional[str] = None


class WebhookPayload(BaseModel):
    """Structure of the incoming webhook from DocuSeal."""

    event_type: Optional[str] = None
    timestamp: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

