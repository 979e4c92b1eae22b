# signportal/docuseal/repository.py

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from signportal.docuseal.models import Submission, SubmitterStatus, Template
from signportal.utils.logger import get_logger

logger = get_logger(__name__)


class DocusealRepository:
    """
    Data Access Layer for the locally cached DocuSeal templates, submissions
    and per-party statuses. Every method scopes by owner where ownership applies.
    """

    def __init__(self, db: Session):
        self.db = db

    # --- Templates ---

    def list_templates(self, user_id: int) -> List[Template]:
        stmt = select(Template).where(Template.user_id == user_id).order_by(Template.id)
        return list(self.db.execute(stmt).scalars().all())

    def get_template(self, user_id: int, docuseal_id: int) -> Optional[Template]:
        stmt = select(Template).where(
            Template.user_id == user_id, Template.docuseal_id == docuseal_id
        )
        return self.db.execute(stmt).scalars().first()

    def get_or_create_template(self, user_id: int, docuseal_id: int, name: str) -> Template:
        """
        Return the caller's template row, creating it when missing.
        A concurrent insert of the same row surfaces as a unique-constraint
        violation, in which case the winner's row is returned.
        """
        template = self.get_template(user_id, docuseal_id)
        if template:
            return template

        template = Template(user_id=user_id, docuseal_id=docuseal_id, name=name)
        self.db.add(template)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Template row created concurrently, fetching existing",
                user_id=user_id,
                docuseal_id=docuseal_id,
            )
            template = self.get_template(user_id, docuseal_id)
            if template is None:
                raise
        return template

    # --- Submissions ---

    def list_submissions(self, user_id: int) -> List[Submission]:
        stmt = (
            select(Submission)
            .options(selectinload(Submission.submitter_statuses))
            .where(Submission.user_id == user_id)
            .order_by(Submission.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_submission(self, docuseal_id: int) -> Optional[Submission]:
        stmt = (
            select(Submission)
            .options(selectinload(Submission.submitter_statuses))
            .where(Submission.docuseal_id == docuseal_id)
        )
        return self.db.execute(stmt).scalars().first()

    def get_user_submission(self, user_id: int, docuseal_id: int) -> Optional[Submission]:
        stmt = select(Submission).where(
            Submission.user_id == user_id, Submission.docuseal_id == docuseal_id
        )
        return self.db.execute(stmt).scalars().first()

    def add_submission(self, submission: Submission) -> Submission:
        """Stage a submission together with its submitter rows and flush it."""
        self.db.add(submission)
        self.db.flush()
        return submission

    def delete_submission(self, submission: Submission) -> None:
        self.db.delete(submission)
        self.db.flush()

    # --- Submitters ---

    def get_submitter_statuses(self, docuseal_submitter_id: int) -> List[SubmitterStatus]:
        stmt = select(SubmitterStatus).where(
            SubmitterStatus.docuseal_submitter_id == docuseal_submitter_id
        )
        return list(self.db.execute(stmt).scalars().all())

    # --- Unit of work ---

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
