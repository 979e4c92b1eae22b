# signportal/users/models.py

from typing import List, Optional

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import declared_attr, relationship, Mapped, mapped_column

from signportal.core.db import Base

# --- Mixins ---
class AuditMixin:
    """Mixin for auditing fields."""

    @declared_attr
    def created_on(cls):
        """
        Column for the timestamp when this record was created
        """
        return Column(
            DateTime(timezone=True),
            server_default=func.now(),
            comment="Timestamp when this record was created",
        )

    @declared_attr
    def updated_on(cls):
        """
        Column for the timestamp when this record was last updated
        """
        return Column(
            DateTime(timezone=True),
            onupdate=func.now(),
            server_default=func.now(),
            comment="Timestamp when this record was last updated",
        )
# --- End of Mixins ---


class User(Base, AuditMixin):
    """User model"""
    __tablename__ = "users"

    # --- Columns ---
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # --- Relationships ---
    templates: Mapped[List["Template"]] = relationship(back_populates="user")
    submissions: Mapped[List["Submission"]] = relationship(back_populates="user")

    def __repr__(self):
        """
        String representation of the User model
        """
        return f"<User(id={self.id}, email='{self.email}', name='{self.name}')>"
