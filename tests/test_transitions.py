"""Tests for the report lifecycle: creation variants, status transitions, owner deletion."""
import uuid

import pytest

from mosquito_alert.domain.errors import (
    ForbiddenError,
    GatewayFailure,
    LedgerError,
    NotFoundError,
    RejectedTransition,
    ValidationError,
)
from mosquito_alert.domain.models import ReportStatus
from mosquito_alert.domain.services.ledger import PointLedger
from mosquito_alert.domain.services.report_draft import ReportDraft
from mosquito_alert.domain.services.report_store import ReportStore
from mosquito_alert.domain.services.transitions import CreationPolicy, StatusTransitionEngine
from mosquito_alert.infrastructure.ai_client import Classification, FailurePolicy, resolve_failure
from mosquito_alert.infrastructure.models import Account, Report

IMAGE_URL = "https://images.test/site.png"


def draft():
    return ReportDraft(
        breeding_type="Standing Water",
        severity="High",
        latitude=28.61,
        longitude=77.21,
        address="Lodhi Road",
    )


def valid_classification(confidence=88):
    return Classification(is_valid=True, confidence=confidence, verdict="VALID", reasoning=[])


def invalid_classification():
    return Classification(is_valid=False, confidence=72, verdict="INVALID", reasoning=[])


def balance(test_db, account):
    return PointLedger(test_db).balance(account.id)


@pytest.fixture
def manual_engine(test_db):
    return StatusTransitionEngine(test_db, CreationPolicy.MANUAL_REVIEW)


@pytest.fixture
def gated_engine(test_db):
    return StatusTransitionEngine(test_db, CreationPolicy.AI_GATED)


@pytest.fixture
def pending_report(manual_engine, reporter):
    return manual_engine.create_report(reporter, draft(), IMAGE_URL)


@pytest.fixture
def valid_report(gated_engine, reporter):
    return gated_engine.create_report(reporter, draft(), IMAGE_URL, valid_classification())


class TestManualReviewCreation:

    def test_created_pending_without_points(self, test_db, manual_engine, reporter):
        report = manual_engine.create_report(reporter, draft(), IMAGE_URL)

        assert report.status == ReportStatus.PENDING.value
        assert report.points_awarded == 0
        assert balance(test_db, reporter) == 0

    def test_classification_is_ignored(self, test_db, manual_engine, reporter):
        report = manual_engine.create_report(reporter, draft(), IMAGE_URL, valid_classification())
        assert report.status == ReportStatus.PENDING.value
        assert balance(test_db, reporter) == 0

    def test_missing_image_persists_nothing(self, test_db, manual_engine, reporter):
        with pytest.raises(ValidationError) as exc:
            manual_engine.create_report(reporter, draft(), None)

        assert exc.value.field == "image"
        assert test_db.query(Report).count() == 0

    def test_admin_cannot_create(self, test_db, manual_engine, admin):
        with pytest.raises(ForbiddenError):
            manual_engine.create_report(admin, draft(), IMAGE_URL)
        assert test_db.query(Report).count() == 0


class TestAiGatedCreation:

    def test_valid_image_credits_owner(self, test_db, gated_engine, reporter):
        report = gated_engine.create_report(reporter, draft(), IMAGE_URL, valid_classification(93))

        assert report.status == ReportStatus.VALID.value
        assert report.points_awarded == 10
        assert report.ai_verdict == "VALID"
        assert report.ai_confidence == 93
        assert balance(test_db, reporter) == 10

    def test_invalid_image_rejected(self, test_db, gated_engine, reporter):
        with pytest.raises(ValidationError) as exc:
            gated_engine.create_report(reporter, draft(), IMAGE_URL, invalid_classification())

        assert exc.value.field == "image"
        assert test_db.query(Report).count() == 0
        assert balance(test_db, reporter) == 0

    def test_unclassified_image_rejected(self, test_db, gated_engine, reporter):
        with pytest.raises(ValidationError):
            gated_engine.create_report(reporter, draft(), IMAGE_URL)
        assert test_db.query(Report).count() == 0

    def test_provisional_fallback_left_pending(self, test_db, gated_engine, reporter):
        fallback = resolve_failure(GatewayFailure("timed out"), FailurePolicy.PROVISIONAL)
        report = gated_engine.create_report(reporter, draft(), IMAGE_URL, fallback)

        assert report.status == ReportStatus.PENDING.value
        assert report.points_awarded == 0
        assert report.ai_verdict == "ERROR"
        assert balance(test_db, reporter) == 0

    def test_reject_fallback_rejected(self, test_db, gated_engine, reporter):
        fallback = resolve_failure(GatewayFailure("timed out"), FailurePolicy.REJECT)
        with pytest.raises(ValidationError):
            gated_engine.create_report(reporter, draft(), IMAGE_URL, fallback)
        assert test_db.query(Report).count() == 0


class TestTransitions:

    def test_pending_to_valid(self, test_db, manual_engine, pending_report, reporter, admin):
        result = manual_engine.transition(pending_report.id, "VALID", admin)

        assert result.points_change == 10
        assert result.new_status == ReportStatus.VALID
        assert result.message == "Report marked as VALID. User earned 10 points."
        assert result.report.points_awarded == 10
        assert balance(test_db, reporter) == 10

    def test_pending_to_invalid_deletes_and_penalises(self, test_db, manual_engine, make_account, admin):
        owner = make_account(name="Owner", points=12)
        report_id = manual_engine.create_report(owner, draft(), IMAGE_URL).id

        result = manual_engine.transition(report_id, ReportStatus.INVALID, admin)

        assert result.deleted is True
        assert result.points_change == -5
        assert result.report is None
        assert result.message == "Report marked as INVALID and deleted. User lost 5 points."
        assert ReportStore(test_db).find(report_id) is None
        assert balance(test_db, owner) == 7

    def test_pending_to_invalid_clamps_at_zero(self, test_db, manual_engine, pending_report, reporter, admin):
        manual_engine.transition(pending_report.id, "INVALID", admin)
        assert balance(test_db, reporter) == 0

    def test_valid_to_invalid_revokes_and_keeps(self, test_db, gated_engine, valid_report, reporter, admin):
        result = gated_engine.transition(valid_report.id, "INVALID", admin)

        assert result.deleted is False
        assert result.points_change == -10
        assert result.message == "Report marked as INVALID. User lost 10 points."
        stored = ReportStore(test_db).get(valid_report.id)
        assert stored.status == ReportStatus.INVALID.value
        assert stored.points_awarded == 0
        assert balance(test_db, reporter) == 0

    def test_valid_to_in_progress_to_cleared(self, test_db, gated_engine, valid_report, reporter, admin):
        first = gated_engine.transition(valid_report.id, "IN_PROGRESS", admin)
        second = gated_engine.transition(valid_report.id, "CLEARED", admin)

        assert first.points_change == 0
        assert second.points_change == 0
        assert second.message == "Report marked as CLEARED. Status updated successfully."
        stored = ReportStore(test_db).get(valid_report.id)
        assert stored.status == ReportStatus.CLEARED.value
        assert stored.points_awarded == 10
        assert balance(test_db, reporter) == 10

    @pytest.mark.parametrize("path", [["PENDING"], ["IN_PROGRESS", "PENDING"]])
    def test_reversal_to_pending_keeps_points(self, test_db, gated_engine, valid_report, reporter, admin, path):
        for status in path:
            result = gated_engine.transition(valid_report.id, status, admin)
            assert result.points_change == 0

        stored = ReportStore(test_db).get(valid_report.id)
        assert stored.status == ReportStatus.PENDING.value
        assert stored.points_awarded == 10
        assert balance(test_db, reporter) == 10

    def test_revalidation_after_reversal_does_not_double_credit(
        self, test_db, gated_engine, valid_report, reporter, admin
    ):
        gated_engine.transition(valid_report.id, "PENDING", admin)
        result = gated_engine.transition(valid_report.id, "VALID", admin)

        assert result.points_change == 0
        assert balance(test_db, reporter) == 10

    def test_rejection_after_reversal_reconciles_award(
        self, test_db, gated_engine, valid_report, reporter, admin
    ):
        PointLedger(test_db).apply_delta(reporter.id, 20)
        test_db.commit()
        gated_engine.transition(valid_report.id, "PENDING", admin)

        result = gated_engine.transition(valid_report.id, "INVALID", admin)

        assert result.deleted is True
        assert result.points_change == -15
        assert balance(test_db, reporter) == 15

    def test_lowercase_status_accepted(self, test_db, manual_engine, pending_report, admin):
        result = manual_engine.transition(pending_report.id, "valid", admin)
        assert result.new_status == ReportStatus.VALID


class TestRejectedTransitions:

    @pytest.mark.parametrize("target", ["PENDING", "IN_PROGRESS", "CLEARED", "APPROVED", ""])
    def test_from_pending(self, test_db, manual_engine, pending_report, reporter, admin, target):
        with pytest.raises(RejectedTransition):
            manual_engine.transition(pending_report.id, target, admin)

        stored = ReportStore(test_db).get(pending_report.id)
        assert stored.status == ReportStatus.PENDING.value
        assert balance(test_db, reporter) == 0

    @pytest.mark.parametrize("target", ["VALID", "PENDING", "INVALID", "IN_PROGRESS"])
    def test_cleared_is_terminal(self, test_db, gated_engine, valid_report, reporter, admin, target):
        gated_engine.transition(valid_report.id, "IN_PROGRESS", admin)
        gated_engine.transition(valid_report.id, "CLEARED", admin)

        with pytest.raises(RejectedTransition):
            gated_engine.transition(valid_report.id, target, admin)
        assert balance(test_db, reporter) == 10

    @pytest.mark.parametrize("target", ["VALID", "PENDING", "INVALID"])
    def test_retained_invalid_is_terminal(self, test_db, gated_engine, valid_report, reporter, admin, target):
        gated_engine.transition(valid_report.id, "INVALID", admin)

        with pytest.raises(RejectedTransition):
            gated_engine.transition(valid_report.id, target, admin)
        assert balance(test_db, reporter) == 0

    def test_repeated_validation_not_recredited(self, test_db, manual_engine, pending_report, reporter, admin):
        manual_engine.transition(pending_report.id, "VALID", admin)
        with pytest.raises(RejectedTransition):
            manual_engine.transition(pending_report.id, "VALID", admin)
        assert balance(test_db, reporter) == 10

    def test_expected_status_mismatch(self, test_db, manual_engine, pending_report, reporter, admin):
        manual_engine.transition(pending_report.id, "VALID", admin)

        with pytest.raises(RejectedTransition):
            manual_engine.transition(pending_report.id, "INVALID", admin, expected_status="PENDING")

        stored = ReportStore(test_db).get(pending_report.id)
        assert stored.status == ReportStatus.VALID.value
        assert balance(test_db, reporter) == 10

    def test_expected_status_match(self, manual_engine, pending_report, admin):
        result = manual_engine.transition(pending_report.id, "VALID", admin, expected_status="PENDING")
        assert result.new_status == ReportStatus.VALID

    def test_reporter_cannot_transition(self, test_db, manual_engine, pending_report, reporter):
        with pytest.raises(ForbiddenError):
            manual_engine.transition(pending_report.id, "VALID", reporter)
        assert balance(test_db, reporter) == 0

    def test_missing_report(self, manual_engine, admin):
        with pytest.raises(NotFoundError):
            manual_engine.transition(uuid.uuid4(), "VALID", admin)

    def test_missing_owner_rolls_back(self, test_db, manual_engine, admin):
        ghost_id = uuid.uuid4()
        report = Report(
            user_id=ghost_id,
            latitude=28.6,
            longitude=77.2,
            breeding_type="Drain",
            severity="Low",
            image_url=IMAGE_URL,
        )
        test_db.add(report)
        test_db.commit()

        with pytest.raises(LedgerError):
            manual_engine.transition(report.id, "VALID", admin)

        stored = ReportStore(test_db).get(report.id)
        assert stored.status == ReportStatus.PENDING.value
        assert stored.points_awarded == 0


class TestOwnerDeletion:

    def test_delete_valid_report_revokes_award(self, test_db, gated_engine, valid_report, reporter):
        report_id = valid_report.id
        revoked = gated_engine.delete_report(report_id, reporter)

        assert revoked == 10
        assert ReportStore(test_db).find(report_id) is None
        assert balance(test_db, reporter) == 0

    def test_delete_pending_report_keeps_balance(self, test_db, manual_engine, make_account):
        owner = make_account(name="Owner", points=25)
        report = manual_engine.create_report(owner, draft(), IMAGE_URL)

        assert manual_engine.delete_report(report.id, owner) == 0
        assert balance(test_db, owner) == 25

    def test_delete_clamps_at_zero(self, test_db, gated_engine, valid_report, reporter):
        PointLedger(test_db).apply_delta(reporter.id, -7)
        test_db.commit()

        gated_engine.delete_report(valid_report.id, reporter)
        assert balance(test_db, reporter) == 0

    def test_non_owner_forbidden(self, test_db, gated_engine, valid_report, reporter, other_reporter, admin):
        for actor in (other_reporter, admin):
            with pytest.raises(ForbiddenError):
                gated_engine.delete_report(valid_report.id, actor)

        assert ReportStore(test_db).find(valid_report.id) is not None
        assert balance(test_db, reporter) == 10

    def test_missing_report(self, gated_engine, reporter):
        with pytest.raises(NotFoundError):
            gated_engine.delete_report(uuid.uuid4(), reporter)


@pytest.mark.parametrize("policy", list(CreationPolicy))
@pytest.mark.parametrize("walk", [
    ["VALID", "IN_PROGRESS", "PENDING", "VALID", "INVALID"],
    ["VALID", "PENDING", "INVALID"],
    ["INVALID"],
    ["VALID", "IN_PROGRESS", "CLEARED"],
])
def test_balance_tracks_outstanding_awards(test_db, reporter, admin, policy, walk):
    """Across any walk, the owner's balance never drops below zero and matches surviving awards."""
    engine = StatusTransitionEngine(test_db, policy)
    classification = valid_classification() if policy == CreationPolicy.AI_GATED else None
    report = engine.create_report(reporter, draft(), IMAGE_URL, classification)
    report_id = report.id

    deleted = False
    for target in walk:
        try:
            result = engine.transition(report_id, target, admin)
        except RejectedTransition:
            continue
        deleted = result.deleted
        assert balance(test_db, reporter) >= 0
        if deleted:
            break

    if not deleted:
        assert balance(test_db, reporter) == ReportStore(test_db).get(report_id).points_awarded
    assert test_db.get(Account, reporter.id).points >= 0
