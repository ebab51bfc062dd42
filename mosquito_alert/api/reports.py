from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Depends
from sqlalchemy.orm import Session
from typing import Optional, List
from uuid import UUID
import logging

from ..core.config import settings
from ..domain.errors import MosquitoAlertError, ValidationError
from ..domain.models import (
    MessageResponse,
    ReportCreatedResponse,
    ReportResponse,
    ReportStatus,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from ..domain.services.report_draft import build_draft
from ..domain.services.report_store import ReportStore
from ..domain.services.transitions import CreationPolicy, StatusTransitionEngine
from ..infrastructure.ai_client import FailurePolicy, RoboflowClassifier, classify_with_policy
from ..infrastructure.database import get_db
from ..infrastructure.models import Account
from ..infrastructure.storage import CloudinaryStorageService, validate_image
from .deps import (
    get_classifier_dep,
    get_current_admin_user,
    get_current_reporter,
    get_current_user,
    get_engine,
    get_failure_policy_dep,
    get_storage,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/", response_model=ReportCreatedResponse, status_code=201)
async def create_report(
    breeding_type: Optional[str] = Form(None, alias="breedingType"),
    severity: Optional[str] = Form(None),
    location: Optional[str] = Form(None, description='JSON object: {"lat": .., "lng": ..}'),
    location_text: Optional[str] = Form(None, alias="locationText"),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: Account = Depends(get_current_reporter),
    engine: StatusTransitionEngine = Depends(get_engine),
    storage: CloudinaryStorageService = Depends(get_storage),
    classifier: RoboflowClassifier = Depends(get_classifier_dep),
    failure_policy: FailurePolicy = Depends(get_failure_policy_dep),
):
    """
    Submit a mosquito breeding-site report.

    Required:
    - Location: map coordinates (`location`) and/or a text description (`locationText`)
    - breedingType and severity
    - Photo (MANDATORY)

    AI-gated deployments classify the photo first and credit 10 points at once;
    manual-review deployments create the report as PENDING for an admin.
    """
    # 1. Validate fields before touching the image host
    draft = build_draft(
        breeding_type=breeding_type,
        severity=severity,
        location=location,
        location_text=location_text,
        description=description,
    )

    if image is None:
        raise ValidationError("Image upload is required. Please upload an image.", field="image")

    content = await image.read()
    validate_image(content, image.content_type, settings.MAX_UPLOAD_BYTES)

    # 2. Classify (AI-gated only); a rejected image is never uploaded
    classification = None
    if engine.policy == CreationPolicy.AI_GATED:
        classification = await classify_with_policy(classifier, content, failure_policy)
        if not classification.is_valid:
            raise ValidationError(
                "Image was not recognised as a mosquito breeding site", field="image"
            )

    # 3. Upload, then persist
    image_url, public_id = await storage.upload_image(
        content, image.filename or "report.jpg", image.content_type, str(current_user.id)
    )

    try:
        report = engine.create_report(current_user, draft, image_url, classification)
    except MosquitoAlertError:
        await storage.delete_image(public_id)
        raise
    except Exception as e:
        logger.error(f"Database error creating report: {e}")
        await storage.delete_image(public_id)
        raise HTTPException(status_code=500, detail="Server error creating report")

    if report.status == ReportStatus.VALID.value:
        message = "Report created successfully! AI validated."
    else:
        message = "Report submitted successfully and is awaiting review."

    return ReportCreatedResponse(
        message=message,
        report_id=report.id,
        status=report.status,
        points_awarded=report.points_awarded,
        report=ReportResponse.model_validate(report),
    )


@router.get("/", response_model=List[ReportResponse])
def list_reports(
    current_user: Account = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List all reports, newest first (feed view).
    """
    try:
        return ReportStore(db).find_all().all()
    except Exception as e:
        logger.error(f"Error listing reports: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching reports")


@router.get("/my-reports", response_model=List[ReportResponse])
def list_my_reports(
    current_user: Account = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's own reports, newest first."""
    try:
        return ReportStore(db).find_by_owner(current_user.id).all()
    except Exception as e:
        logger.error(f"Error listing reports for {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching reports")


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: UUID,
    current_user: Account = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ReportStore(db).get(report_id)


@router.delete("/{report_id}", response_model=MessageResponse)
def delete_report(
    report_id: UUID,
    current_user: Account = Depends(get_current_user),
    engine: StatusTransitionEngine = Depends(get_engine),
):
    """
    Delete one of your own reports.

    Any points the report still carries are taken back from the owner.
    """
    try:
        engine.delete_report(report_id, current_user)
    except MosquitoAlertError:
        raise
    except Exception as e:
        logger.error(f"Error deleting report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Server error deleting report")

    return MessageResponse(message="Report deleted successfully")


@router.put("/{report_id}/status", response_model=StatusUpdateResponse)
def update_report_status(
    report_id: UUID,
    request: StatusUpdateRequest,
    admin: Account = Depends(get_current_admin_user),
    engine: StatusTransitionEngine = Depends(get_engine),
):
    """
    Change a report's status (admin only).

    - PENDING -> VALID: owner earns 10 points
    - PENDING -> INVALID: owner loses 5 points and the report is deleted
    - VALID -> INVALID: the 10 points are taken back, report kept
    - VALID -> IN_PROGRESS -> CLEARED, or back to PENDING: no point change

    Send `expectedStatus` to have the change refused if someone else moved the
    report first.
    """
    try:
        result = engine.transition(report_id, request.status, admin, request.expected_status)
    except MosquitoAlertError:
        raise
    except Exception as e:
        logger.error(f"Error updating status of report {report_id}: {e}")
        raise HTTPException(status_code=500, detail="Server error updating status")

    return StatusUpdateResponse(
        message=result.message,
        points_change=result.points_change,
        deleted=result.deleted,
        report=ReportResponse.model_validate(result.report) if result.report is not None else None,
    )
