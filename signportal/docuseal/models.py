# signportal/docuseal/models.py

from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from signportal.core.db import Base
from signportal.users.models import AuditMixin


class Template(Base, AuditMixin):
    """
    Local ownership record for a template stored in DocuSeal.
    """
    __tablename__ = "templates"
    __table_args__ = (
        UniqueConstraint("user_id", "docuseal_id", name="uq_templates_user_docuseal"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # The template id assigned by DocuSeal
    docuseal_id: Mapped[int] = mapped_column(Integer, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255))

    # --- Relationships ---
    user: Mapped["User"] = relationship(back_populates="templates")
    submissions: Mapped[List["Submission"]] = relationship(back_populates="template")

    def __repr__(self):
        return f"<Template(id={self.id}, docuseal_id={self.docuseal_id}, user_id={self.user_id})>"


class Submission(Base, AuditMixin):
    """
    Local cache of a DocuSeal submission: who owns it and its last known status.
    """
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # The submission id assigned by DocuSeal
    docuseal_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("templates.id", ondelete="SET NULL"), nullable=True
    )

    # pending, opened, completed, declined or expired
    status: Mapped[str] = mapped_column(String(32), default="pending")
    submitter_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # --- Relationships ---
    user: Mapped["User"] = relationship(back_populates="submissions")
    template: Mapped[Optional["Template"]] = relationship(back_populates="submissions")
    submitter_statuses: Mapped[List["SubmitterStatus"]] = relationship(
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="SubmitterStatus.id",
    )

    def __repr__(self):
        return f"<Submission(id={self.id}, docuseal_id={self.docuseal_id}, status='{self.status}')>"


class SubmitterStatus(Base, AuditMixin):
    """
    Per-party signing status within a submission.
    """
    __tablename__ = "submitter_statuses"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    submission_id: Mapped[int] = mapped_column(
        ForeignKey("submissions.id", ondelete="CASCADE"), index=True
    )

    # Not unique: webhooks update every row carrying the id
    docuseal_submitter_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, nullable=True)

    email: Mapped[str] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # pending, sent, opened, completed or declined
    status: Mapped[str] = mapped_column(String(32), default="pending")

    # Reusable signing link for this party
    embed_src: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    declined_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    submission: Mapped["Submission"] = relationship(back_populates="submitter_statuses")

    def __repr__(self):
        return (
            f"<SubmitterStatus(id={self.id}, docuseal_submitter_id={self.docuseal_submitter_id}, "
            f"email='{self.email}', status='{self.status}')>"
        )
