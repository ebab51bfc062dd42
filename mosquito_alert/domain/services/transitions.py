"""
Report lifecycle: creation, admin status transitions and owner deletion.

Status graph:

    PENDING     -> VALID, INVALID
    VALID       -> IN_PROGRESS, INVALID, PENDING
    IN_PROGRESS -> CLEARED, PENDING
    CLEARED, INVALID: terminal

PENDING -> INVALID deletes the report outright; VALID -> INVALID keeps it with
its award revoked. Every change to points_awarded is matched by the same delta
on the owner's balance inside one transaction.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Set, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from ...infrastructure import models
from ...infrastructure.ai_client import Classification
from ...infrastructure.database import transaction
from ..errors import RejectedTransition, ValidationError
from ..models import ReportStatus
from .access import Action, authorize
from .ledger import POINTS_SYSTEM, PointLedger
from .report_draft import ReportDraft
from .report_store import ReportStore

logger = logging.getLogger(__name__)


class CreationPolicy(str, Enum):
    """How new reports enter the lifecycle."""
    AI_GATED = "ai_gated"            # classified before saving, created VALID with points
    MANUAL_REVIEW = "manual_review"  # created PENDING, an admin decides


ALLOWED_TRANSITIONS: Dict[ReportStatus, Set[ReportStatus]] = {
    ReportStatus.PENDING: {ReportStatus.VALID, ReportStatus.INVALID},
    ReportStatus.VALID: {ReportStatus.IN_PROGRESS, ReportStatus.INVALID, ReportStatus.PENDING},
    ReportStatus.IN_PROGRESS: {ReportStatus.CLEARED, ReportStatus.PENDING},
    ReportStatus.CLEARED: set(),
    ReportStatus.INVALID: set(),
}


@dataclass
class TransitionResult:
    report_id: UUID
    previous_status: ReportStatus
    new_status: ReportStatus
    points_change: int
    deleted: bool
    message: str
    report: Optional[models.Report] = None


def _describe(status: ReportStatus, points_change: int) -> str:
    if points_change > 0:
        outcome = f"User earned {points_change} points."
    elif points_change < 0:
        outcome = f"User lost {abs(points_change)} points."
    else:
        outcome = "Status updated successfully."
    return f"Report marked as {status.value}. {outcome}"


def _parse_status(value) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    try:
        return ReportStatus(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in ReportStatus)
        raise RejectedTransition(f"Unknown status '{value}'. Expected one of: {allowed}")


class StatusTransitionEngine:
    """
    The state machine governing report status, coupled to the point ledger.

    One engine serves both deployment variants; the CreationPolicy only
    changes how reports are created; transitions are identical.
    """

    def __init__(self, db: Session, policy: CreationPolicy = CreationPolicy.MANUAL_REVIEW):
        self.db = db
        self.policy = policy
        self.store = ReportStore(db)
        self.ledger = PointLedger(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _initial_state(self, classification: Optional[Classification]) -> Tuple[ReportStatus, int]:
        if self.policy == CreationPolicy.MANUAL_REVIEW:
            return ReportStatus.PENDING, 0

        if classification is None:
            raise ValidationError("Image must be validated by AI before submission", field="image")
        if not classification.is_valid:
            raise ValidationError(
                "Image was not recognised as a mosquito breeding site", field="image"
            )
        if classification.fallback:
            # Accepted only because the classifier was down: leave it for an admin
            return ReportStatus.PENDING, 0
        return ReportStatus.VALID, POINTS_SYSTEM['report_validated']

    def create_report(
        self,
        owner: models.Account,
        draft: ReportDraft,
        image_url: Optional[str],
        classification: Optional[Classification] = None,
    ) -> models.Report:
        """
        Persist a new report and credit its owner according to the creation policy.

        Raises:
            ValidationError: no image, or the image failed AI validation
            ForbiddenError: the owner is not a reporter
        """
        authorize(owner, Action.CREATE_REPORT)

        if not image_url:
            raise ValidationError("Image upload is required. Please upload an image.", field="image")

        status, points = self._initial_state(classification)

        with transaction(self.db):
            report = self.store.create(
                user_id=owner.id,
                image_url=image_url,
                status=status.value,
                points_awarded=points,
                ai_verdict=classification.verdict if classification else None,
                ai_confidence=classification.confidence if classification else None,
                **draft.to_fields(),
            )
            if points:
                self.ledger.apply_delta(owner.id, points)

        logger.info(
            f"Report created: {report.id} by {owner.id}, status {status.value}, "
            f"points {points} ({self.policy.value})"
        )
        return report

    # ------------------------------------------------------------------
    # Admin transitions
    # ------------------------------------------------------------------

    def _check_transition(
        self,
        current: ReportStatus,
        target: ReportStatus,
        expected: Optional[ReportStatus],
    ) -> None:
        if expected is not None and expected != current:
            raise RejectedTransition(
                f"Report is {current.value}, not {expected.value}; reload and try again"
            )
        if target == current:
            raise RejectedTransition(f"Report is already {current.value}")
        if target not in ALLOWED_TRANSITIONS[current]:
            raise RejectedTransition(
                f"Cannot change report status from {current.value} to {target.value}"
            )

    def transition(
        self,
        report_id: UUID,
        target,
        actor: models.Account,
        expected_status=None,
    ) -> TransitionResult:
        """
        Move a report to a new status and settle the owner's points.

        Args:
            report_id: Report to change
            target: New status (ReportStatus or its string value)
            actor: Account performing the change; must be an admin
            expected_status: Optional status the caller believes the report is in

        Raises:
            ForbiddenError, NotFoundError, RejectedTransition, LedgerError
        """
        authorize(actor, Action.TRANSITION_STATUS)

        target_status = _parse_status(target)
        expected = _parse_status(expected_status) if expected_status is not None else None

        report = self.store.get(report_id)
        current = ReportStatus(report.status)
        self._check_transition(current, target_status, expected)

        owner_id = report.user_id
        awarded = report.points_awarded

        if current == ReportStatus.PENDING and target_status == ReportStatus.INVALID:
            # Rejected at intake: penalise and remove, reconciling any standing award
            points_change = POINTS_SYSTEM['report_rejected'] - awarded
            with transaction(self.db):
                self.ledger.apply_delta(owner_id, points_change)
                self.store.delete(report_id)

            logger.info(f"Report {report_id} rejected at intake and deleted ({points_change:+d} points)")
            return TransitionResult(
                report_id=report_id,
                previous_status=current,
                new_status=target_status,
                points_change=points_change,
                deleted=True,
                message=f"Report marked as INVALID and deleted. User lost {abs(points_change)} points.",
            )

        if target_status == ReportStatus.VALID:
            new_awarded = POINTS_SYSTEM['report_validated']
        elif target_status == ReportStatus.INVALID:
            new_awarded = 0
        else:
            new_awarded = awarded
        points_change = new_awarded - awarded

        with transaction(self.db):
            # Always touches the owner row, so a missing owner aborts before the status write
            self.ledger.apply_delta(owner_id, points_change)
            self.store.update_status(report_id, target_status.value, new_awarded)

        logger.info(
            f"Report {report_id}: {current.value} -> {target_status.value} ({points_change:+d} points)"
        )
        return TransitionResult(
            report_id=report_id,
            previous_status=current,
            new_status=target_status,
            points_change=points_change,
            deleted=False,
            message=_describe(target_status, points_change),
            report=self.store.get(report_id),
        )

    # ------------------------------------------------------------------
    # Owner deletion
    # ------------------------------------------------------------------

    def delete_report(self, report_id: UUID, actor: models.Account) -> int:
        """
        Delete a report on its owner's request, revoking its outstanding award.

        Returns the number of points revoked.
        """
        report = self.store.get(report_id)
        authorize(actor, Action.DELETE_REPORT, report)

        awarded = report.points_awarded
        with transaction(self.db):
            if awarded > 0:
                self.ledger.apply_delta(report.user_id, -awarded)
            self.store.delete(report_id)

        logger.info(f"Report {report_id} deleted by owner {actor.id} (-{max(awarded, 0)} points)")
        return max(awarded, 0)
