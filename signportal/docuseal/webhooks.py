# signportal/docuseal/webhooks.py

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError

from signportal.docuseal import utils
from signportal.docuseal.repository import DocusealRepository
from signportal.docuseal.services import get_docuseal_repository
from signportal.utils.logger import get_logger

logger = get_logger(__name__)

# event -> (target status, timestamp field)
SUBMITTER_EVENTS = {
    "submitter.sent": ("sent", "sent_at"),
    "submitter.opened": ("opened", "opened_at"),
    "submitter.completed": ("completed", "completed_at"),
    "submitter.declined": ("declined", "declined_at"),
}

DELIVERY_FAILURE_EVENTS = {"bounce_email", "complaint_email"}


class WebhookService:
    """Applies DocuSeal party lifecycle events to the local cache."""

    def __init__(self, repo: DocusealRepository = Depends(get_docuseal_repository)):
        self.repo = repo

    def handle_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """
        Dispatch one webhook event. Persistence errors are logged and rolled
        back so the provider always receives a success answer.
        """
        try:
            if event_type in SUBMITTER_EVENTS:
                target_status, timestamp_field = SUBMITTER_EVENTS[event_type]
                self.update_submitter(data, target_status, timestamp_field)
            elif event_type == "submission.completed":
                self.complete_submission(data)
            elif event_type in DELIVERY_FAILURE_EVENTS:
                logger.error("Email delivery failed", event_type=event_type, data=data)
            else:
                logger.info("Unhandled webhook event", event_type=event_type)
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                "Error handling webhook event",
                event_type=event_type,
                error=str(e),
                exc_info=True,
            )

    def update_submitter(self, data: Dict[str, Any], target_status: str, timestamp_field: str) -> int:
        """
        Move every local row for the submitter towards `target_status`.
        Returns the number of rows matched.
        """
        submitter_id = utils.as_int(data.get("id"))
        if submitter_id is None:
            logger.warning("Webhook submitter event without id", data=data)
            return 0

        event_time = utils.parse_timestamp(data.get(timestamp_field))
        rows = self.repo.get_submitter_statuses(submitter_id)
        if not rows:
            logger.warning("No submitter found for webhook", docuseal_submitter_id=submitter_id)
            return 0

        for row in rows:
            if utils.can_transition(row.status, target_status):
                # Keep an existing timestamp when the event carries none so replays are no-ops
                timestamp = event_time or getattr(row, timestamp_field) or datetime.now(timezone.utc)
                setattr(row, timestamp_field, timestamp)
                row.status = target_status
            else:
                logger.info(
                    "Ignoring out-of-order submitter status",
                    docuseal_submitter_id=submitter_id,
                    current_status=row.status,
                    target_status=target_status,
                )

        self.repo.commit()
        logger.info(
            "Updated submitter status",
            docuseal_submitter_id=submitter_id,
            status=target_status,
            count=len(rows),
        )
        return len(rows)

    def complete_submission(self, data: Dict[str, Any]) -> bool:
        """
        Mark the submission completed once every local party has completed.
        Returns True when the status was changed.
        """
        submission_id = utils.as_int(data.get("id"))
        submission = self.repo.get_submission(submission_id) if submission_id is not None else None
        if submission is None:
            logger.info("Submission not found in database", docuseal_id=submission_id)
            return False

        if not all(row.status == "completed" for row in submission.submitter_statuses):
            logger.info(
                "Submission completed upstream but not all parties completed locally",
                docuseal_id=submission_id,
            )
            return False

        if submission.status != "completed":
            submission.status = "completed"
            self.repo.commit()
            logger.info("Updated submission status to completed", docuseal_id=submission_id)
        return True
